"""Client domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import validate_email, validate_us_phone

CLIENT_STATUSES = ["active", "inactive"]


class ClientCreate(BaseModel):
    """Schema for creating a new client"""

    firstName: Optional[str] = None
    lastName: Optional[str] = None
    companyName: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zipCode: Optional[str] = None
    notes: Optional[str] = None
    source: Optional[str] = "manual"

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        if v:
            return validate_us_phone(v)
        return v

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v):
        if v:
            return validate_email(v)
        return v


class ClientUpdate(ClientCreate):
    """Schema for updating an existing client"""

    source: Optional[str] = None
    status: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v and v not in CLIENT_STATUSES:
            raise ValueError(f"Status must be one of: {', '.join(CLIENT_STATUSES)}")
        return v


class ClientResponse(BaseModel):
    """Schema for client response"""

    id: int
    public_id: Optional[str] = None
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    companyName: Optional[str] = None
    displayName: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zipCode: Optional[str] = None
    notes: Optional[str] = None
    status: str
    source: Optional[str] = None
    squareCustomerId: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ActivityCreate(BaseModel):
    activityType: str = "note"
    title: str
    description: Optional[str] = None
    dueDate: Optional[datetime] = None


class ActivityResponse(BaseModel):
    id: int
    activityType: str
    title: str
    description: Optional[str] = None
    status: str
    jobId: Optional[int] = None
    dueDate: Optional[datetime] = None
    completedAt: Optional[datetime] = None
    details: Optional[dict] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


def client_to_response(client) -> ClientResponse:
    return ClientResponse(
        id=client.id,
        public_id=client.public_id,
        firstName=client.first_name,
        lastName=client.last_name,
        companyName=client.company_name,
        displayName=client.display_name,
        email=client.email,
        phone=client.phone,
        address=client.address,
        city=client.city,
        state=client.state,
        zipCode=client.zip_code,
        notes=client.notes,
        status=client.status or "active",
        source=client.source,
        squareCustomerId=client.square_customer_id,
        created_at=client.created_at,
    )


def activity_to_response(activity) -> ActivityResponse:
    return ActivityResponse(
        id=activity.id,
        activityType=activity.activity_type,
        title=activity.title,
        description=activity.description,
        status=activity.status,
        jobId=activity.job_id,
        dueDate=activity.due_date,
        completedAt=activity.completed_at,
        details=activity.details,
        created_at=activity.created_at,
    )
