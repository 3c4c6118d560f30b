"""
Automation triggers
Translate business events into queued automations with the right run_at offsets
"""

import logging
from datetime import timedelta

from sqlalchemy.orm import Session

from ..models import Lead
from ..models_estimate import Estimate
from ..models_invoice import Invoice
from ..models_job import Job
from ..models_automation import Automation
from ..shared.dates import utcnow
from .automation_queue import schedule_automation

logger = logging.getLogger(__name__)

ESTIMATE_FOLLOWUP_DELAY = timedelta(hours=48)
INVOICE_FOLLOWUP_DAYS = [3, 7, 14, 30]
JOB_CLOSEOUT_DELAY = timedelta(hours=1)
REVIEW_REQUEST_DELAY = timedelta(hours=24)


def schedule_estimate_followup(db: Session, estimate: Estimate) -> list[Automation]:
    base = estimate.sent_date or utcnow()
    automation = schedule_automation(
        db,
        estimate.account_id,
        "estimate_followup",
        estimate.id,
        base + ESTIMATE_FOLLOWUP_DELAY,
        {"estimate_number": estimate.estimate_number},
    )
    return [automation] if automation else []


def schedule_invoice_followups(db: Session, invoice: Invoice) -> list[Automation]:
    if invoice.status in ("paid", "void"):
        return []

    base = invoice.issue_date or utcnow()
    scheduled = []
    for days in INVOICE_FOLLOWUP_DAYS:
        automation = schedule_automation(
            db,
            invoice.account_id,
            "invoice_followup",
            invoice.id,
            base + timedelta(days=days),
            {"invoice_number": invoice.invoice_number, "offset_days": days},
        )
        if automation:
            scheduled.append(automation)
    return scheduled


def schedule_job_completion_automations(db: Session, job: Job) -> list[Automation]:
    if job.status != "completed":
        return []

    base = job.completed_at or job.updated_at or utcnow()
    scheduled = []
    for automation_type, delay in (
        ("job_closeout", JOB_CLOSEOUT_DELAY),
        ("review_request", REVIEW_REQUEST_DELAY),
    ):
        automation = schedule_automation(
            db,
            job.account_id,
            automation_type,
            job.id,
            base + delay,
            {"job_number": job.job_number},
        )
        if automation:
            scheduled.append(automation)
    return scheduled


def schedule_lead_response(db: Session, lead: Lead) -> list[Automation]:
    automation = schedule_automation(
        db,
        lead.account_id,
        "lead_response",
        lead.id,
        lead.created_at or utcnow(),
        {"lead_name": f"{lead.first_name} {lead.last_name or ''}".strip()},
    )
    return [automation] if automation else []


def safely_schedule(scheduler, db: Session, entity) -> list[Automation]:
    """
    Run a trigger without letting scheduling errors break the calling operation.
    Failures are logged and an empty list is returned.
    """
    try:
        return scheduler(db, entity)
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Failed to schedule automations via {scheduler.__name__}: {e}")
        return []
