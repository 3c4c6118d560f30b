"""
Email intelligence pipeline
pending → processing → (insight + alerts) → completed | failed
"""

import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ..config import EMAIL_BATCH_SIZE
from ..models_email import Alert, EmailInsight, EmailRaw
from ..shared.dates import parse_iso_datetime, utcnow
from .ai_messages import AIConfigurationError
from .email_alerts import generate_alerts_from_insight
from .email_intelligence import (
    analyze_email,
    analyze_email_with_keywords,
    store_email_insight,
    update_email_raw_status,
)

logger = logging.getLogger(__name__)


def store_email_raw(db: Session, account_id: int, data: dict) -> tuple[EmailRaw, bool]:
    """
    Store an inbound email once per (account, message_id).

    Returns:
        (email, created): created is False when the message was already stored
    """
    message_id = str(data.get("message_id") or "").strip()
    existing = (
        db.query(EmailRaw)
        .filter(EmailRaw.account_id == account_id, EmailRaw.message_id == message_id)
        .first()
    )
    if existing:
        return existing, False

    email = EmailRaw(
        account_id=account_id,
        message_id=message_id,
        thread_id=data.get("thread_id"),
        from_address=data.get("from_address"),
        to_address=data.get("to_address"),
        subject=data.get("subject"),
        body_text=data.get("body_text"),
        body_html=data.get("body_html"),
        received_at=parse_iso_datetime(data.get("received_at")) or utcnow(),
        processing_status="pending",
    )
    db.add(email)
    db.commit()
    db.refresh(email)
    logger.info(f"📥 Stored inbound email {email.id} for account {account_id}")
    return email, True


async def _analyze(email: EmailRaw) -> dict:
    try:
        return await analyze_email(email)
    except AIConfigurationError:
        logger.warning(f"⚠️ OpenAI not configured, using keyword categorization for email {email.id}")
        return analyze_email_with_keywords(email)


async def process_email_intelligence(db: Session, email: EmailRaw) -> dict:
    """Run one email through analysis, insight storage and alert generation"""
    try:
        update_email_raw_status(db, email, "processing")

        analysis = await _analyze(email)
        insight = store_email_insight(db, email, analysis)
        alerts = generate_alerts_from_insight(db, insight)

        update_email_raw_status(db, email, "completed")
        logger.info(f"✅ Email {email.id} categorized as {insight.category} ({len(alerts)} alerts)")
        return {
            "success": True,
            "email_id": email.id,
            "insight_id": insight.id,
            "category": insight.category,
            "alerts_created": len(alerts),
        }
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Email intelligence failed for email {email.id}: {e}")
        update_email_raw_status(db, email, "failed", str(e))
        return {"success": False, "email_id": email.id, "error": str(e)}


async def process_emails_batch(db: Session, account_id: int, email_ids: list[int]) -> list[dict]:
    emails = (
        db.query(EmailRaw)
        .filter(EmailRaw.account_id == account_id, EmailRaw.id.in_(email_ids))
        .order_by(EmailRaw.id.asc())
        .all()
    )
    return [await process_email_intelligence(db, email) for email in emails]


async def process_pending_emails(db: Session, limit: Optional[int] = None, account_id: Optional[int] = None) -> dict:
    query = db.query(EmailRaw).filter(EmailRaw.processing_status == "pending")
    if account_id is not None:
        query = query.filter(EmailRaw.account_id == account_id)
    emails = query.order_by(EmailRaw.received_at.asc(), EmailRaw.id.asc()).limit(limit or EMAIL_BATCH_SIZE).all()

    results = [await process_email_intelligence(db, email) for email in emails]
    succeeded = sum(1 for result in results if result["success"])
    if emails:
        logger.info(f"📊 Email intelligence run: {succeeded}/{len(emails)} processed")
    return {"processed": len(emails), "succeeded": succeeded, "failed": len(emails) - succeeded, "results": results}


def get_daily_summary(db: Session, account_id: int, hours: int = 24) -> dict:
    since = utcnow() - timedelta(hours=hours)

    insights = (
        db.query(EmailInsight)
        .filter(EmailInsight.account_id == account_id, EmailInsight.created_at >= since)
        .all()
    )
    by_category: dict[str, int] = {}
    by_priority: dict[str, int] = {}
    for insight in insights:
        by_category[insight.category] = by_category.get(insight.category, 0) + 1
        by_priority[insight.priority] = by_priority.get(insight.priority, 0) + 1

    open_alerts = (
        db.query(Alert)
        .filter(Alert.account_id == account_id, Alert.resolved.is_(False))
        .all()
    )

    return {
        "period_hours": hours,
        "emails_processed": len(insights),
        "action_required": sum(1 for insight in insights if insight.is_action_required),
        "by_category": by_category,
        "by_priority": by_priority,
        "open_alerts": len(open_alerts),
        "urgent_alerts": sum(1 for alert in open_alerts if alert.severity == "urgent"),
        "new_leads": by_category.get("LEAD_NEW", 0) + by_category.get("LEAD_FOLLOWUP", 0),
    }
