"""
Automation queue
Scheduling, claiming and status bookkeeping for queued AI automations.

Rows are polled (run_at <= now AND status = pending). A row is claimed with a
conditional UPDATE that only succeeds while it is still pending, so two
schedulers racing on the same row cannot both process it.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..models_automation import Automation, AutomationHistory
from ..shared.dates import utcnow
from .business_settings import get_automation_settings

logger = logging.getLogger(__name__)

AUTOMATION_TYPES = [
    "estimate_followup",
    "invoice_followup",
    "job_closeout",
    "review_request",
    "lead_response",
]

AUTOMATION_STATUSES = ["pending", "processing", "completed", "failed", "cancelled"]

TYPE_SETTING_MAP = {
    "estimate_followup": "estimate_followups",
    "invoice_followup": "invoice_followups",
    "job_closeout": "job_closeout",
    "review_request": "review_requests",
    "lead_response": "lead_response",
}


def is_automation_enabled_for_settings(automation_type: str, settings: dict) -> bool:
    setting_key = TYPE_SETTING_MAP.get(automation_type)
    if not setting_key:
        return False
    return bool(settings.get(setting_key, False))


def is_automation_enabled(db: Session, account_id: int, automation_type: str) -> bool:
    return is_automation_enabled_for_settings(automation_type, get_automation_settings(db, account_id))


def record_automation_history(
    db: Session, automation_id: int, status: str, message: Optional[str] = None
) -> AutomationHistory:
    entry = AutomationHistory(automation_id=automation_id, status=status, message=message)
    db.add(entry)
    db.commit()
    return entry


def schedule_automation(
    db: Session,
    account_id: int,
    automation_type: str,
    related_id: Optional[int],
    run_at: datetime,
    payload: Optional[dict] = None,
) -> Optional[Automation]:
    """
    Queue an automation. Returns None when the type is disabled for the account.
    Scheduling the same (type, related_id, run_at) twice returns the existing row.
    """
    if automation_type not in AUTOMATION_TYPES:
        raise ValueError(f"Unknown automation type: {automation_type}")

    if not is_automation_enabled(db, account_id, automation_type):
        logger.debug(f"ℹ️ {automation_type} disabled for account {account_id}, not scheduling")
        return None

    query = db.query(Automation).filter(
        Automation.account_id == account_id,
        Automation.type == automation_type,
        Automation.run_at == run_at,
    )
    if related_id is None:
        query = query.filter(Automation.related_id.is_(None))
    else:
        query = query.filter(Automation.related_id == related_id)

    existing = query.first()
    if existing:
        logger.debug(f"ℹ️ Automation {existing.id} already scheduled ({automation_type} @ {run_at})")
        return existing

    automation = Automation(
        account_id=account_id,
        type=automation_type,
        related_id=related_id,
        run_at=run_at,
        payload=payload or {},
        status="pending",
        attempts=0,
    )
    db.add(automation)
    db.commit()
    db.refresh(automation)

    record_automation_history(db, automation.id, "pending", "Automation scheduled")
    logger.info(f"🗓️ Scheduled {automation_type} #{automation.id} for {run_at.isoformat()}")
    return automation


def update_automation_status(
    db: Session,
    automation_id: int,
    status: str,
    result: Optional[dict] = None,
    message: Optional[str] = None,
) -> None:
    if status not in AUTOMATION_STATUSES:
        raise ValueError(f"Invalid automation status: {status}")

    updates = {Automation.status: status, Automation.updated_at: utcnow()}
    if result is not None:
        updates[Automation.result] = result

    db.query(Automation).filter(Automation.id == automation_id).update(
        updates, synchronize_session=False
    )
    db.commit()

    if message:
        record_automation_history(db, automation_id, status, message)


def get_due_automations(
    db: Session, limit: int = 10, now: Optional[datetime] = None, account_id: Optional[int] = None
) -> list[Automation]:
    now = now or utcnow()
    query = db.query(Automation).filter(Automation.status == "pending", Automation.run_at <= now)
    if account_id is not None:
        query = query.filter(Automation.account_id == account_id)
    return (
        query.order_by(Automation.run_at.asc(), Automation.id.asc())
        .limit(limit)
        .all()
    )


def claim_automation(db: Session, automation: Automation) -> Optional[Automation]:
    """
    Move a pending row to processing. Returns the refreshed row, or None when
    another worker claimed it first.
    """
    now = utcnow()
    claimed = (
        db.query(Automation)
        .filter(Automation.id == automation.id, Automation.status == "pending")
        .update(
            {
                Automation.status: "processing",
                Automation.last_attempt: now,
                Automation.attempts: Automation.attempts + 1,
                Automation.updated_at: now,
            },
            synchronize_session=False,
        )
    )
    db.commit()

    if claimed != 1:
        logger.info(f"⚠️ Automation {automation.id} already claimed by another worker")
        return None

    db.refresh(automation)
    record_automation_history(db, automation.id, "processing", "Picked up by scheduler")
    return automation


def cancel_automation(db: Session, account_id: int, automation_id: int) -> Optional[Automation]:
    """Cancel a pending automation. Returns None when the row is missing or no longer pending."""
    cancelled = (
        db.query(Automation)
        .filter(
            Automation.id == automation_id,
            Automation.account_id == account_id,
            Automation.status == "pending",
        )
        .update({Automation.status: "cancelled", Automation.updated_at: utcnow()}, synchronize_session=False)
    )
    db.commit()
    if cancelled != 1:
        return None

    record_automation_history(db, automation_id, "cancelled", "Cancelled by user")
    return db.query(Automation).filter(Automation.id == automation_id).first()


def list_automations_with_history(
    db: Session, account_id: int, status: Optional[str] = None, limit: int = 100
) -> list[Automation]:
    query = db.query(Automation).filter(Automation.account_id == account_id)
    if status and status != "all":
        query = query.filter(Automation.status == status)
    return query.order_by(Automation.run_at.asc(), Automation.id.asc()).limit(limit).all()
