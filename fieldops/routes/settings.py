"""
Account Settings API Routes

AI automation toggles and the business defaults used by jobs, invoices and
outbound email.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from ..auth import AccountContext, require_permission, require_staff
from ..database import get_db
from ..models import BusinessSettings
from ..services.business_settings import get_automation_settings, get_or_create_settings, update_automation_settings
from ..shared.validators import validate_email, validate_tax_rate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/settings", tags=["Settings"])


class AutomationSettingsUpdate(BaseModel):
    settings: dict[str, bool]


class BusinessSettingsUpdate(BaseModel):
    businessName: Optional[str] = Field(None, max_length=255)
    replyToEmail: Optional[str] = None
    defaultTaxRate: Optional[float] = None
    autoInvoiceOnCompletion: Optional[bool] = None
    invoiceDueDays: Optional[int] = Field(None, ge=0, le=365)

    @field_validator("replyToEmail")
    @classmethod
    def validate_reply_to(cls, v):
        return validate_email(v)

    @field_validator("defaultTaxRate")
    @classmethod
    def validate_rate(cls, v):
        return validate_tax_rate(v)


class BusinessSettingsResponse(BaseModel):
    businessName: Optional[str] = None
    replyToEmail: Optional[str] = None
    defaultTaxRate: float
    autoInvoiceOnCompletion: bool
    invoiceDueDays: int


def settings_to_response(settings: BusinessSettings) -> BusinessSettingsResponse:
    return BusinessSettingsResponse(
        businessName=settings.business_name,
        replyToEmail=settings.reply_to_email,
        defaultTaxRate=settings.default_tax_rate if settings.default_tax_rate is not None else 0.08,
        autoInvoiceOnCompletion=bool(settings.auto_invoice_on_completion),
        invoiceDueDays=settings.invoice_due_days if settings.invoice_due_days is not None else 30,
    )


@router.get("/automation")
async def get_automation(
    context: AccountContext = Depends(require_permission("manage_automations")),
    db: Session = Depends(get_db),
):
    return {"settings": get_automation_settings(db, context.account_id)}


@router.put("/automation")
async def put_automation(
    data: AutomationSettingsUpdate,
    context: AccountContext = Depends(require_permission("manage_automations")),
    db: Session = Depends(get_db),
):
    try:
        merged = update_automation_settings(db, context.account_id, data.settings)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return {"settings": merged}


@router.get("/business", response_model=BusinessSettingsResponse)
async def get_business_settings(
    context: AccountContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    return settings_to_response(get_or_create_settings(db, context.account_id))


@router.put("/business", response_model=BusinessSettingsResponse)
async def put_business_settings(
    data: BusinessSettingsUpdate,
    context: AccountContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    settings = get_or_create_settings(db, context.account_id)

    updates = data.model_dump(exclude_unset=True)
    if "businessName" in updates:
        settings.business_name = (updates["businessName"] or "").strip() or None
    if "replyToEmail" in updates:
        settings.reply_to_email = updates["replyToEmail"]
    if updates.get("defaultTaxRate") is not None:
        settings.default_tax_rate = updates["defaultTaxRate"]
    if updates.get("autoInvoiceOnCompletion") is not None:
        settings.auto_invoice_on_completion = updates["autoInvoiceOnCompletion"]
    if updates.get("invoiceDueDays") is not None:
        settings.invoice_due_days = updates["invoiceDueDays"]

    db.commit()
    db.refresh(settings)
    logger.info(f"⚙️ Business settings updated for account {context.account_id} by user {context.user_id}")
    return settings_to_response(settings)
