"""Invoice domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.dates import to_naive_utc
from ..jobs.schemas import PAYMENT_METHODS


class InvoicePaymentCreate(BaseModel):
    amount: float
    method: str = "card"
    reference: Optional[str] = None
    notes: Optional[str] = None
    paidAt: Optional[datetime] = None

    @field_validator("paidAt")
    @classmethod
    def normalize_paid_at(cls, v):
        return to_naive_utc(v)

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        if v <= 0:
            raise ValueError("Payment amount must be greater than zero")
        return v

    @field_validator("method")
    @classmethod
    def validate_method(cls, v):
        if v not in PAYMENT_METHODS:
            raise ValueError(f"Payment method must be one of: {', '.join(PAYMENT_METHODS)}")
        return v


class InvoicePaymentResponse(BaseModel):
    id: int
    amount: float
    method: str
    reference: Optional[str] = None
    notes: Optional[str] = None
    paidAt: Optional[datetime] = None

    class Config:
        from_attributes = True


class InvoiceResponse(BaseModel):
    id: int
    public_id: str
    invoiceNumber: str
    clientId: int
    clientName: Optional[str] = None
    jobId: Optional[int] = None
    title: str
    description: Optional[str] = None
    lineItems: list[dict] = []
    subtotal: float
    taxRate: float
    taxAmount: float
    totalAmount: float
    amountPaid: float
    balanceDue: float
    currency: str
    status: str
    paymentUrl: Optional[str] = None
    issueDate: Optional[datetime] = None
    dueDate: Optional[datetime] = None
    sentAt: Optional[datetime] = None
    paidAt: Optional[datetime] = None
    voidedAt: Optional[datetime] = None
    payments: list[InvoicePaymentResponse] = []
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


def invoice_to_response(invoice) -> InvoiceResponse:
    return InvoiceResponse(
        id=invoice.id,
        public_id=invoice.public_id,
        invoiceNumber=invoice.invoice_number,
        clientId=invoice.client_id,
        clientName=invoice.client.display_name if invoice.client else None,
        jobId=invoice.job_id,
        title=invoice.title,
        description=invoice.description,
        lineItems=invoice.line_items or [],
        subtotal=invoice.subtotal or 0,
        taxRate=invoice.tax_rate or 0,
        taxAmount=invoice.tax_amount or 0,
        totalAmount=invoice.total_amount or 0,
        amountPaid=invoice.amount_paid or 0,
        balanceDue=invoice.balance_due,
        currency=invoice.currency or "USD",
        status=invoice.status,
        paymentUrl=invoice.square_payment_url,
        issueDate=invoice.issue_date,
        dueDate=invoice.due_date,
        sentAt=invoice.sent_at,
        paidAt=invoice.paid_at,
        voidedAt=invoice.voided_at,
        payments=[
            InvoicePaymentResponse(
                id=p.id,
                amount=p.amount,
                method=p.method or "card",
                reference=p.reference,
                notes=p.notes,
                paidAt=p.paid_at,
            )
            for p in invoice.payments
        ],
        created_at=invoice.created_at,
    )
