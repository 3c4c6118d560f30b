"""Job domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...services.status_automation import JOB_STATUSES, get_allowed_transitions, get_next_required_action
from ...shared.dates import to_naive_utc
from ...shared.validators import validate_non_negative, validate_tax_rate

INITIAL_JOB_STATUSES = ["draft", "quote", "scheduled"]
LINE_ITEM_TYPES = ["service", "material", "labor"]
PAYMENT_METHODS = ["cash", "check", "card", "square", "other"]


class LineItemCreate(BaseModel):
    description: str
    quantity: float = 1
    unitPrice: float = 0
    itemType: str = "service"

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v):
        return validate_non_negative(v, "Quantity")

    @field_validator("unitPrice")
    @classmethod
    def validate_unit_price(cls, v):
        return validate_non_negative(v, "Unit price")

    @field_validator("itemType")
    @classmethod
    def validate_item_type(cls, v):
        if v not in LINE_ITEM_TYPES:
            raise ValueError(f"Item type must be one of: {', '.join(LINE_ITEM_TYPES)}")
        return v


class JobCreate(BaseModel):
    clientId: int
    title: str
    description: Optional[str] = None
    status: str = "draft"
    serviceDate: Optional[datetime] = None
    scheduledTime: Optional[str] = None
    address: Optional[str] = None
    assignedTo: Optional[int] = None
    taxRate: Optional[float] = None
    lineItems: list[LineItemCreate] = []

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v not in INITIAL_JOB_STATUSES:
            raise ValueError(f"New jobs must start as one of: {', '.join(INITIAL_JOB_STATUSES)}")
        return v

    @field_validator("taxRate")
    @classmethod
    def validate_tax(cls, v):
        return validate_tax_rate(v)

    @field_validator("serviceDate")
    @classmethod
    def normalize_service_date(cls, v):
        return to_naive_utc(v)


class JobUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    serviceDate: Optional[datetime] = None
    scheduledTime: Optional[str] = None
    address: Optional[str] = None
    assignedTo: Optional[int] = None
    taxRate: Optional[float] = None
    readyForInvoice: Optional[bool] = None

    @field_validator("taxRate")
    @classmethod
    def validate_tax(cls, v):
        return validate_tax_rate(v)

    @field_validator("serviceDate")
    @classmethod
    def normalize_service_date(cls, v):
        return to_naive_utc(v)


class StatusChangeRequest(BaseModel):
    status: str
    reason: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v not in JOB_STATUSES:
            raise ValueError(f"Status must be one of: {', '.join(JOB_STATUSES)}")
        return v

    @field_validator("reason")
    @classmethod
    def validate_reason(cls, v):
        if v and len(v.strip()) > 500:
            raise ValueError("Reason must be 500 characters or less")
        return v


class ConvertQuoteRequest(BaseModel):
    serviceDate: Optional[datetime] = None
    scheduledTime: Optional[str] = None

    @field_validator("serviceDate")
    @classmethod
    def normalize_service_date(cls, v):
        return to_naive_utc(v)


class PaymentCreate(BaseModel):
    amount: float
    method: str = "cash"
    reference: Optional[str] = None
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


class NoteCreate(BaseModel):
    note: str


class LineItemResponse(BaseModel):
    id: int
    description: str
    quantity: float
    unitPrice: float
    total: float
    itemType: str

    class Config:
        from_attributes = True


class PaymentResponse(BaseModel):
    id: int
    amount: float
    method: str
    reference: Optional[str] = None
    paidAt: Optional[datetime] = None

    class Config:
        from_attributes = True


class NoteResponse(BaseModel):
    id: int
    note: str
    noteType: str
    userId: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class JobResponse(BaseModel):
    id: int
    public_id: Optional[str] = None
    jobNumber: str
    clientId: int
    clientName: Optional[str] = None
    estimateId: Optional[int] = None
    assignedTo: Optional[int] = None
    title: str
    description: Optional[str] = None
    status: str
    serviceDate: Optional[datetime] = None
    scheduledTime: Optional[str] = None
    address: Optional[str] = None
    subtotal: float
    taxRate: float
    taxAmount: float
    totalAmount: float
    amountPaid: float
    paymentStatus: str
    readyForInvoice: bool
    completedAt: Optional[datetime] = None
    invoiceId: Optional[int] = None
    allowedTransitions: list[str] = []
    nextAction: Optional[str] = None
    lineItems: list[LineItemResponse] = []
    payments: list[PaymentResponse] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


def job_to_response(job) -> JobResponse:
    return JobResponse(
        id=job.id,
        public_id=job.public_id,
        jobNumber=job.job_number,
        clientId=job.client_id,
        clientName=job.client.display_name if job.client else None,
        estimateId=job.estimate_id,
        assignedTo=job.assigned_to,
        title=job.title,
        description=job.description,
        status=job.status,
        serviceDate=job.service_date,
        scheduledTime=job.scheduled_time,
        address=job.address,
        subtotal=job.subtotal or 0,
        taxRate=job.tax_rate or 0,
        taxAmount=job.tax_amount or 0,
        totalAmount=job.total_amount or 0,
        amountPaid=job.amount_paid or 0,
        paymentStatus=job.payment_status or "unpaid",
        readyForInvoice=bool(job.ready_for_invoice),
        completedAt=job.completed_at,
        invoiceId=job.invoice.id if job.invoice else None,
        allowedTransitions=get_allowed_transitions(job.status),
        nextAction=get_next_required_action(job),
        lineItems=[
            LineItemResponse(
                id=item.id,
                description=item.description,
                quantity=item.quantity or 0,
                unitPrice=item.unit_price or 0,
                total=item.total or 0,
                itemType=item.item_type or "service",
            )
            for item in job.line_items
        ],
        payments=[
            PaymentResponse(
                id=payment.id,
                amount=payment.amount,
                method=payment.method or "cash",
                reference=payment.reference,
                paidAt=payment.paid_at,
            )
            for payment in job.payments
        ],
        created_at=job.created_at,
        updated_at=job.updated_at,
    )


def note_to_response(note) -> NoteResponse:
    return NoteResponse(
        id=note.id,
        note=note.note,
        noteType=note.note_type or "note",
        userId=note.user_id,
        created_at=note.created_at,
    )
