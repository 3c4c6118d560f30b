"""
Automation runner
Claims due automations one at a time and dispatches on their type.

A failure inside one automation marks that row failed and moves on; the
batch never aborts. There is no retry: failed rows stay failed.
"""

import logging
import math
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..config import AUTOMATION_BATCH_SIZE
from ..models import Lead
from ..models_automation import Automation
from ..models_estimate import Estimate
from ..models_invoice import Invoice
from ..models_job import Job
from ..shared.dates import utcnow
from . import ai_messages
from .automation_queue import (
    claim_automation,
    get_due_automations,
    is_automation_enabled_for_settings,
    record_automation_history,
    update_automation_status,
)
from .business_settings import get_automation_settings

logger = logging.getLogger(__name__)

ESTIMATE_SKIP_STATUSES = ("approved", "accepted", "declined")
INVOICE_SKIP_STATUSES = ("paid", "void")
JOB_CLOSEOUT_STATUSES = ("completed", "invoiced")
LEAD_SKIP_STATUSES = ("converted", "lost", "unqualified")


class AutomationOutcome:
    """What happened to one automation; applied to the row by _apply_outcome"""

    def __init__(self, status: str, result: dict, message: str, ai_message: Optional[str] = None):
        self.status = status
        self.result = result
        self.message = message
        self.ai_message = ai_message

    @classmethod
    def failed(cls, reason: str) -> "AutomationOutcome":
        return cls("failed", {"error": reason}, f"Failed: {reason}")

    @classmethod
    def skipped(cls, reason: str, **extra) -> "AutomationOutcome":
        return cls("completed", {"skipped": True, "reason": reason, **extra}, f"Skipped: {reason}")

    @classmethod
    def completed(cls, automation_type: str, label: str, ai_message: str, **extra) -> "AutomationOutcome":
        result = {"message": ai_message, "type": automation_type, **extra}
        return cls("completed", result, f"Completed {label}", ai_message)


def calculate_days_overdue(due_date: Optional[datetime], now: Optional[datetime] = None) -> int:
    if not due_date:
        return 0
    now = now or utcnow()
    days = math.floor((now - due_date).total_seconds() / 86400)
    return max(days, 0)


async def _process_estimate_followup(db: Session, automation: Automation) -> AutomationOutcome:
    if not automation.related_id:
        return AutomationOutcome.failed("Missing related estimate")

    estimate = (
        db.query(Estimate)
        .filter(Estimate.id == automation.related_id, Estimate.account_id == automation.account_id)
        .first()
    )
    if not estimate:
        return AutomationOutcome.failed("Estimate not found")

    if estimate.status in ESTIMATE_SKIP_STATUSES:
        return AutomationOutcome.skipped(f"Estimate already {estimate.status}", estimate_id=estimate.id)

    message = await ai_messages.generate_estimate_follow_up(estimate)
    return AutomationOutcome.completed(
        automation.type, "estimate follow-up", message, estimate_id=estimate.id
    )


async def _process_invoice_followup(db: Session, automation: Automation) -> AutomationOutcome:
    if not automation.related_id:
        return AutomationOutcome.failed("Missing related invoice")

    invoice = (
        db.query(Invoice)
        .filter(Invoice.id == automation.related_id, Invoice.account_id == automation.account_id)
        .first()
    )
    if not invoice:
        return AutomationOutcome.failed("Invoice not found")

    if invoice.status in INVOICE_SKIP_STATUSES:
        return AutomationOutcome.skipped(f"Invoice already {invoice.status}", invoice_id=invoice.id)

    days_overdue = calculate_days_overdue(invoice.due_date)
    message = await ai_messages.generate_invoice_follow_up(invoice, days_overdue)
    return AutomationOutcome.completed(
        automation.type,
        "invoice follow-up",
        message,
        invoice_id=invoice.id,
        days_overdue=days_overdue,
    )


def _load_job(db: Session, automation: Automation) -> Optional[Job]:
    return (
        db.query(Job)
        .filter(Job.id == automation.related_id, Job.account_id == automation.account_id)
        .first()
    )


async def _process_job_closeout(db: Session, automation: Automation) -> AutomationOutcome:
    if not automation.related_id:
        return AutomationOutcome.failed("Missing related job")

    job = _load_job(db, automation)
    if not job:
        return AutomationOutcome.failed("Job not found")

    # Auto-invoicing moves completed jobs straight on to invoiced
    if job.status not in JOB_CLOSEOUT_STATUSES:
        return AutomationOutcome.skipped(f"Job is {job.status}, not completed", job_id=job.id)

    message = await ai_messages.generate_job_closeout(job)
    return AutomationOutcome.completed(automation.type, "job closeout", message, job_id=job.id)


async def _process_review_request(db: Session, automation: Automation) -> AutomationOutcome:
    if not automation.related_id:
        return AutomationOutcome.failed("Missing related job")

    job = _load_job(db, automation)
    if not job:
        return AutomationOutcome.failed("Job not found")

    client = job.client
    if not client or not (client.email or client.phone):
        return AutomationOutcome.failed("Client has no email or phone for review request")

    message = await ai_messages.generate_review_request(job)
    return AutomationOutcome.completed(
        automation.type,
        "review request",
        message,
        job_id=job.id,
        channel="email" if client.email else "sms",
    )


async def _process_lead_response(db: Session, automation: Automation) -> AutomationOutcome:
    if not automation.related_id:
        return AutomationOutcome.failed("Missing related lead")

    lead = (
        db.query(Lead)
        .filter(Lead.id == automation.related_id, Lead.account_id == automation.account_id)
        .first()
    )
    if not lead:
        return AutomationOutcome.failed("Lead not found")

    if lead.status in LEAD_SKIP_STATUSES:
        return AutomationOutcome.skipped(f"Lead already {lead.status}", lead_id=lead.id)

    message = await ai_messages.generate_lead_response(lead)
    return AutomationOutcome.completed(automation.type, "lead response", message, lead_id=lead.id)


PROCESSORS = {
    "estimate_followup": _process_estimate_followup,
    "invoice_followup": _process_invoice_followup,
    "job_closeout": _process_job_closeout,
    "review_request": _process_review_request,
    "lead_response": _process_lead_response,
}


def _apply_outcome(db: Session, automation: Automation, outcome: AutomationOutcome) -> None:
    update_automation_status(db, automation.id, outcome.status, outcome.result, outcome.message)
    if outcome.ai_message:
        record_automation_history(db, automation.id, outcome.status, f"AI response: {outcome.ai_message}")


async def process_automation(db: Session, automation: Automation, settings: dict) -> AutomationOutcome:
    """Process one claimed automation and write its outcome back"""
    try:
        processor = PROCESSORS.get(automation.type)
        if processor is None:
            outcome = AutomationOutcome.failed(f"Unknown automation type: {automation.type}")
        elif not is_automation_enabled_for_settings(automation.type, settings):
            outcome = AutomationOutcome.skipped("Automation disabled in settings")
        else:
            outcome = await processor(db, automation)
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Automation {automation.id} ({automation.type}) failed: {e}")
        outcome = AutomationOutcome.failed(str(e))

    _apply_outcome(db, automation, outcome)

    if outcome.status == "failed":
        logger.warning(f"⚠️ Automation {automation.id} failed: {outcome.result.get('error')}")
    else:
        logger.info(f"✅ Automation {automation.id} ({automation.type}): {outcome.message}")
    return outcome


async def run_due_automations(db: Session, limit: Optional[int] = None, account_id: Optional[int] = None) -> dict:
    """
    Claim and process due automations.

    Returns:
        {"attempted": int, "processed": int, "results": [{"id", "type", "status"}]}
    """
    due = get_due_automations(db, limit or AUTOMATION_BATCH_SIZE, account_id=account_id)
    settings_cache: dict[int, dict] = {}
    results = []

    for automation in due:
        claimed = claim_automation(db, automation)
        if not claimed:
            continue

        if claimed.account_id not in settings_cache:
            settings_cache[claimed.account_id] = get_automation_settings(db, claimed.account_id)

        await process_automation(db, claimed, settings_cache[claimed.account_id])
        results.append({"id": claimed.id, "type": claimed.type, "status": "processed"})

    summary = {"attempted": len(due), "processed": len(results), "results": results}
    if due:
        logger.info(f"📊 Automation run: {summary['processed']}/{summary['attempted']} processed")
    return summary
