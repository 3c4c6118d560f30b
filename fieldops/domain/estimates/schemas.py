"""Estimate domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.dates import to_naive_utc
from ...shared.validators import validate_tax_rate
from ..jobs.schemas import LineItemCreate

ESTIMATE_STATUSES = ["draft", "sent", "viewed", "accepted", "declined", "expired"]


class EstimateCreate(BaseModel):
    clientId: int
    title: str
    description: Optional[str] = None
    lineItems: list[LineItemCreate] = []
    taxRate: Optional[float] = None
    validUntil: Optional[datetime] = None

    @field_validator("taxRate")
    @classmethod
    def validate_tax(cls, v):
        return validate_tax_rate(v)

    @field_validator("validUntil")
    @classmethod
    def normalize_valid_until(cls, v):
        return to_naive_utc(v)


class EstimateUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    lineItems: Optional[list[LineItemCreate]] = None
    taxRate: Optional[float] = None
    validUntil: Optional[datetime] = None

    @field_validator("taxRate")
    @classmethod
    def validate_tax(cls, v):
        return validate_tax_rate(v)

    @field_validator("validUntil")
    @classmethod
    def normalize_valid_until(cls, v):
        return to_naive_utc(v)


class EstimateApproval(BaseModel):
    """Public approval submitted from the estimate link"""

    clientName: str
    signature: str

    @field_validator("clientName", "signature")
    @classmethod
    def validate_required(cls, v):
        if not v or not v.strip():
            raise ValueError("Name and signature are required")
        return v.strip()


class EstimateDecline(BaseModel):
    reason: Optional[str] = None


class EstimateResponse(BaseModel):
    id: int
    public_id: str
    estimateNumber: str
    clientId: int
    clientName: Optional[str] = None
    title: str
    description: Optional[str] = None
    lineItems: list[dict] = []
    subtotal: float
    taxRate: float
    taxAmount: float
    totalAmount: float
    status: str
    validUntil: Optional[datetime] = None
    sentDate: Optional[datetime] = None
    viewedAt: Optional[datetime] = None
    acceptedAt: Optional[datetime] = None
    declinedAt: Optional[datetime] = None
    declineReason: Optional[str] = None
    approvalInfo: Optional[dict] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PublicEstimateResponse(BaseModel):
    """What the client sees on the public estimate page"""

    public_id: str
    estimateNumber: str
    businessName: str
    clientName: Optional[str] = None
    title: str
    description: Optional[str] = None
    lineItems: list[dict] = []
    subtotal: float
    taxAmount: float
    totalAmount: float
    status: str
    validUntil: Optional[datetime] = None


def estimate_to_response(estimate) -> EstimateResponse:
    return EstimateResponse(
        id=estimate.id,
        public_id=estimate.public_id,
        estimateNumber=estimate.estimate_number,
        clientId=estimate.client_id,
        clientName=estimate.client.display_name if estimate.client else None,
        title=estimate.title,
        description=estimate.description,
        lineItems=estimate.line_items or [],
        subtotal=estimate.subtotal or 0,
        taxRate=estimate.tax_rate or 0,
        taxAmount=estimate.tax_amount or 0,
        totalAmount=estimate.total_amount or 0,
        status=estimate.status,
        validUntil=estimate.valid_until,
        sentDate=estimate.sent_date,
        viewedAt=estimate.viewed_at,
        acceptedAt=estimate.accepted_at,
        declinedAt=estimate.declined_at,
        declineReason=estimate.decline_reason,
        approvalInfo=estimate.approval_info,
        created_at=estimate.created_at,
        updated_at=estimate.updated_at,
    )


def estimate_to_public_response(estimate, business_name: str) -> PublicEstimateResponse:
    return PublicEstimateResponse(
        public_id=estimate.public_id,
        estimateNumber=estimate.estimate_number,
        businessName=business_name,
        clientName=estimate.client.display_name if estimate.client else None,
        title=estimate.title,
        description=estimate.description,
        lineItems=estimate.line_items or [],
        subtotal=estimate.subtotal or 0,
        taxAmount=estimate.tax_amount or 0,
        totalAmount=estimate.total_amount or 0,
        status=estimate.status,
        validUntil=estimate.valid_until,
    )
