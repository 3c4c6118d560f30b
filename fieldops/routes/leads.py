"""
Leads API Routes

Lead capture, qualification, conversion to clients and pipeline analytics.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, field_validator
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..auth import AccountContext, require_staff
from ..database import get_db
from ..models import Client, Lead
from ..services.activity_service import log_activity
from ..services.automation_triggers import safely_schedule, schedule_lead_response
from ..shared.dates import utcnow
from ..shared.validators import validate_email, validate_us_phone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/leads", tags=["Leads"])

LEAD_STATUSES = ["new", "contacted", "qualified", "converted", "lost", "unqualified"]
LEAD_SOURCES = ["website", "referral", "email", "phone", "other"]


class LeadCreate(BaseModel):
    firstName: str
    lastName: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    serviceType: Optional[str] = None
    serviceDescription: Optional[str] = None
    source: str = "website"
    notes: Optional[str] = None

    @field_validator("firstName")
    @classmethod
    def validate_first_name(cls, v):
        if not v or not v.strip():
            raise ValueError("First name is required")
        return v.strip()

    @field_validator("email")
    @classmethod
    def validate_lead_email(cls, v):
        return validate_email(v)

    @field_validator("phone")
    @classmethod
    def validate_lead_phone(cls, v):
        return validate_us_phone(v)

    @field_validator("source")
    @classmethod
    def validate_source(cls, v):
        if v not in LEAD_SOURCES:
            raise ValueError(f"Source must be one of: {', '.join(LEAD_SOURCES)}")
        return v


class LeadUpdate(BaseModel):
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    serviceType: Optional[str] = None
    serviceDescription: Optional[str] = None
    status: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_lead_email(cls, v):
        return validate_email(v)

    @field_validator("phone")
    @classmethod
    def validate_lead_phone(cls, v):
        return validate_us_phone(v)

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        # Conversion goes through POST /leads/{id}/convert
        if v is not None and (v not in LEAD_STATUSES or v == "converted"):
            raise ValueError("Invalid lead status")
        return v


class LeadResponse(BaseModel):
    id: int
    public_id: str
    firstName: str
    lastName: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    serviceType: Optional[str] = None
    serviceDescription: Optional[str] = None
    source: Optional[str] = None
    status: str
    notes: Optional[str] = None
    convertedClientId: Optional[int] = None
    convertedAt: Optional[str] = None
    created_at: Optional[str] = None

    class Config:
        from_attributes = True


FIELD_MAP = {
    "firstName": "first_name",
    "lastName": "last_name",
    "email": "email",
    "phone": "phone",
    "city": "city",
    "state": "state",
    "serviceType": "service_type",
    "serviceDescription": "service_description",
    "source": "source",
    "status": "status",
    "notes": "notes",
}


def lead_to_response(lead: Lead) -> LeadResponse:
    return LeadResponse(
        id=lead.id,
        public_id=lead.public_id,
        firstName=lead.first_name,
        lastName=lead.last_name,
        email=lead.email,
        phone=lead.phone,
        city=lead.city,
        state=lead.state,
        serviceType=lead.service_type,
        serviceDescription=lead.service_description,
        source=lead.source,
        status=lead.status,
        notes=lead.notes,
        convertedClientId=lead.converted_client_id,
        convertedAt=lead.converted_at.isoformat() if lead.converted_at else None,
        created_at=lead.created_at.isoformat() if lead.created_at else None,
    )


def _get_lead(db: Session, lead_id: int, account_id: int) -> Lead:
    lead = db.query(Lead).filter(Lead.id == lead_id, Lead.account_id == account_id).first()
    if not lead:
        raise HTTPException(status_code=404, detail="Lead not found")
    return lead


@router.get("", response_model=list[LeadResponse])
async def list_leads(
    status: Optional[str] = Query(None),
    source: Optional[str] = Query(None),
    context: AccountContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    query = db.query(Lead).filter(Lead.account_id == context.account_id)
    if status:
        query = query.filter(Lead.status == status)
    if source:
        query = query.filter(Lead.source == source)
    return [lead_to_response(lead) for lead in query.order_by(Lead.created_at.desc(), Lead.id.desc()).all()]


@router.get("/analytics")
async def get_lead_analytics(
    context: AccountContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    """Lead counts by status and source, plus the conversion rate"""
    by_status = dict(
        db.query(Lead.status, func.count(Lead.id))
        .filter(Lead.account_id == context.account_id)
        .group_by(Lead.status)
        .all()
    )
    by_source = dict(
        db.query(Lead.source, func.count(Lead.id))
        .filter(Lead.account_id == context.account_id)
        .group_by(Lead.source)
        .all()
    )
    total = sum(by_status.values())
    converted = by_status.get("converted", 0)

    return {
        "total": total,
        "byStatus": {status: by_status.get(status, 0) for status in LEAD_STATUSES},
        "bySource": {source or "unknown": count for source, count in by_source.items()},
        "conversionRate": round(converted / total * 100, 1) if total else 0.0,
    }


@router.post("", response_model=LeadResponse, status_code=201)
async def create_lead(
    data: LeadCreate,
    context: AccountContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    values = {column: getattr(data, field) for field, column in FIELD_MAP.items() if getattr(data, field, None) is not None}
    lead = Lead(account_id=context.account_id, status="new", **values)
    db.add(lead)
    db.commit()
    db.refresh(lead)
    logger.info(f"📥 New lead {lead.id} ({lead.source}) for account {context.account_id}")

    safely_schedule(schedule_lead_response, db, lead)
    return lead_to_response(lead)


@router.get("/{lead_id}", response_model=LeadResponse)
async def get_lead(
    lead_id: int,
    context: AccountContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    return lead_to_response(_get_lead(db, lead_id, context.account_id))


@router.put("/{lead_id}", response_model=LeadResponse)
async def update_lead(
    lead_id: int,
    data: LeadUpdate,
    context: AccountContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    lead = _get_lead(db, lead_id, context.account_id)
    if lead.status == "converted":
        raise HTTPException(status_code=400, detail="Converted leads cannot be edited")

    for field, column in FIELD_MAP.items():
        value = getattr(data, field, None)
        if value is not None:
            setattr(lead, column, value.strip() if isinstance(value, str) else value)
    lead.updated_at = utcnow()
    db.commit()
    db.refresh(lead)
    return lead_to_response(lead)


@router.delete("/{lead_id}")
async def delete_lead(
    lead_id: int,
    context: AccountContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    lead = _get_lead(db, lead_id, context.account_id)
    db.delete(lead)
    db.commit()
    logger.info(f"🗑️ Deleted lead {lead_id} from account {context.account_id}")
    return {"message": "Lead deleted"}


@router.post("/{lead_id}/convert")
async def convert_lead(
    lead_id: int,
    context: AccountContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    """Create a client from the lead and mark the lead converted"""
    lead = _get_lead(db, lead_id, context.account_id)
    if lead.status == "converted":
        raise HTTPException(status_code=409, detail="Lead already converted")

    try:
        client = Client(
            account_id=context.account_id,
            first_name=lead.first_name,
            last_name=lead.last_name,
            email=lead.email,
            phone=lead.phone,
            city=lead.city,
            state=lead.state,
            notes=lead.service_description,
            source="lead",
            status="active",
        )
        db.add(client)
        db.flush()

        lead.status = "converted"
        lead.converted_client_id = client.id
        lead.converted_at = utcnow()
        db.commit()
        db.refresh(client)
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Failed to convert lead {lead_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to convert lead") from e

    logger.info(f"✅ Converted lead {lead.id} to client {client.id}")

    try:
        log_activity(
            db,
            context.account_id,
            client.id,
            "note",
            "Converted from lead",
            description=lead.service_type,
            details={"lead_id": lead.id, "source": lead.source},
            created_by=context.user_id,
        )
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Failed to log lead conversion activity: {e}")

    return {"message": "Lead converted", "clientId": client.id, "lead": lead_to_response(lead)}
