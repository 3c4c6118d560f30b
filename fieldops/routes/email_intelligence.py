"""
Email Intelligence API Routes

Inbound email intake webhook, on-demand processing, insights, alerts and
the daily summary.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from ..auth import AccountContext, require_staff
from ..config import EMAIL_WEBHOOK_SECRET
from ..database import get_db
from ..models import Account
from ..models_email import Alert, EmailInsight, EmailRaw
from ..rate_limiter import create_rate_limiter
from ..services.email_alerts import ALERT_SEVERITIES, ALERT_TYPES, list_alerts, resolve_alert
from ..services.email_intelligence import EMAIL_CATEGORIES
from ..services.email_pipeline import (
    get_daily_summary,
    process_email_intelligence,
    process_emails_batch,
    process_pending_emails,
    store_email_raw,
)
from ..utils.sanitization import clean_text_input
from ..webhook_security import verify_email_webhook

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Email Intelligence"])

rate_limit_intake = create_rate_limiter(limit=120, window_seconds=60, key_prefix="email_intake")


class InboundEmail(BaseModel):
    messageId: str = Field(..., min_length=1, max_length=255)
    threadId: Optional[str] = None
    fromAddress: Optional[str] = None
    toAddress: Optional[str] = None
    subject: Optional[str] = None
    bodyText: Optional[str] = None
    bodyHtml: Optional[str] = None
    receivedAt: Optional[str] = None
    processNow: bool = False

    @field_validator("messageId")
    @classmethod
    def validate_message_id(cls, v):
        if not v.strip():
            raise ValueError("messageId is required")
        return v.strip()


class ProcessRequest(BaseModel):
    emailIds: Optional[list[int]] = None
    limit: Optional[int] = Field(None, ge=1, le=100)


class ResolveAlertRequest(BaseModel):
    notes: Optional[str] = None


def insight_to_dict(insight: EmailInsight, email: Optional[EmailRaw] = None) -> dict:
    data = {
        "id": insight.id,
        "emailId": insight.email_id,
        "category": insight.category,
        "priority": insight.priority,
        "isActionRequired": bool(insight.is_action_required),
        "actionType": insight.action_type,
        "summary": insight.summary,
        "notes": insight.notes,
        "details": insight.details or {},
        "createdAt": insight.created_at.isoformat() if insight.created_at else None,
    }
    if email is not None:
        data["email"] = {
            "from": email.from_address,
            "subject": email.subject,
            "receivedAt": email.received_at.isoformat() if email.received_at else None,
        }
    return data


def alert_to_dict(alert: Alert) -> dict:
    return {
        "id": alert.id,
        "insightId": alert.email_insight_id,
        "type": alert.type,
        "severity": alert.severity,
        "title": alert.title,
        "message": alert.message,
        "dueAt": alert.due_at.isoformat() if alert.due_at else None,
        "resolved": bool(alert.resolved),
        "resolvedAt": alert.resolved_at.isoformat() if alert.resolved_at else None,
        "resolutionNotes": alert.resolution_notes,
        "createdAt": alert.created_at.isoformat() if alert.created_at else None,
    }


@router.post("/email/intake/{account_public_id}", status_code=202)
async def intake_email(
    account_public_id: str,
    data: InboundEmail,
    request: Request,
    db: Session = Depends(get_db),
    _: None = Depends(rate_limit_intake),
):
    """
    Webhook for inbound email forwarded by the mail provider.
    Authenticated with the X-Webhook-Secret header. Duplicate message ids are ignored.
    """
    await verify_email_webhook(request, EMAIL_WEBHOOK_SECRET)

    account = (
        db.query(Account).filter(Account.public_id == account_public_id, Account.is_active.is_(True)).first()
    )
    if not account:
        raise HTTPException(status_code=404, detail="Account not found")

    email, created = store_email_raw(
        db,
        account.id,
        {
            "message_id": data.messageId,
            "thread_id": data.threadId,
            "from_address": data.fromAddress,
            "to_address": data.toAddress,
            "subject": data.subject,
            "body_text": data.bodyText,
            "body_html": data.bodyHtml,
            "received_at": data.receivedAt,
        },
    )
    response = {"emailId": email.id, "created": created, "status": email.processing_status}

    if created and data.processNow:
        result = await process_email_intelligence(db, email)
        response["status"] = email.processing_status
        response["result"] = result
    return response


@router.post("/email-intelligence/process")
async def process_emails(
    data: ProcessRequest,
    context: AccountContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    """Process specific emails, or the account's pending backlog"""
    if data.emailIds:
        results = await process_emails_batch(db, context.account_id, data.emailIds)
        succeeded = sum(1 for r in results if r["success"])
        return {"processed": len(results), "succeeded": succeeded, "failed": len(results) - succeeded, "results": results}
    return await process_pending_emails(db, limit=data.limit, account_id=context.account_id)


@router.get("/email-intelligence/insights")
async def get_insights(
    category: Optional[str] = Query(None),
    priority: Optional[str] = Query(None),
    action_required: Optional[bool] = Query(None, alias="actionRequired"),
    limit: int = Query(50, ge=1, le=200),
    context: AccountContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    if category and category not in EMAIL_CATEGORIES:
        raise HTTPException(status_code=400, detail=f"Invalid category: {category}")

    query = (
        db.query(EmailInsight, EmailRaw)
        .join(EmailRaw, EmailRaw.id == EmailInsight.email_id)
        .filter(EmailInsight.account_id == context.account_id)
    )
    if category:
        query = query.filter(EmailInsight.category == category)
    if priority:
        query = query.filter(EmailInsight.priority == priority)
    if action_required is not None:
        query = query.filter(EmailInsight.is_action_required == action_required)

    rows = query.order_by(EmailInsight.created_at.desc(), EmailInsight.id.desc()).limit(limit).all()
    return [insight_to_dict(insight, email) for insight, email in rows]


@router.get("/email-intelligence/daily-summary")
async def daily_summary(
    hours: int = Query(24, ge=1, le=168),
    context: AccountContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    return get_daily_summary(db, context.account_id, hours)


@router.get("/alerts")
async def get_alerts(
    alert_type: Optional[str] = Query(None, alias="type"),
    severity: Optional[str] = Query(None),
    resolved: Optional[bool] = Query(False),
    limit: int = Query(50, ge=1, le=200),
    context: AccountContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    if alert_type and alert_type not in ALERT_TYPES:
        raise HTTPException(status_code=400, detail=f"Invalid alert type: {alert_type}")
    if severity and severity not in ALERT_SEVERITIES:
        raise HTTPException(status_code=400, detail=f"Invalid severity: {severity}")
    return [alert_to_dict(a) for a in list_alerts(db, context.account_id, alert_type, severity, resolved, limit)]


@router.post("/alerts/{alert_id}/resolve")
async def resolve(
    alert_id: int,
    data: ResolveAlertRequest,
    context: AccountContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    try:
        notes = clean_text_input(data.notes, max_length=1000) or None
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    alert = resolve_alert(db, context.account_id, alert_id, notes)
    logger.info(f"✅ Alert {alert_id} resolved by user {context.user_id}")
    return alert_to_dict(alert)
