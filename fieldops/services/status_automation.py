"""
Status rules for jobs and invoices
Manual job transitions are validated here; invoice overdue marking runs as a daily cron
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..models_invoice import Invoice
from ..models_job import Job
from ..shared.dates import utcnow

logger = logging.getLogger(__name__)

JOB_STATUSES = ["draft", "quote", "scheduled", "in_progress", "completed", "invoiced", "cancelled"]

VALID_JOB_TRANSITIONS = {
    "draft": ["quote", "scheduled", "cancelled"],
    "quote": ["scheduled", "cancelled"],
    "scheduled": ["in_progress", "cancelled"],
    "in_progress": ["completed"],
    "completed": ["invoiced"],
    "invoiced": [],  # Terminal state
    "cancelled": [],  # Terminal state
}

INVOICE_STATUSES = ["draft", "sent", "partial", "paid", "overdue", "void"]


def validate_status_transition(current_status: str, new_status: str) -> bool:
    """
    Validate if a job status transition is allowed.
    Re-applying the current status is not a transition and is rejected.
    """
    if new_status not in JOB_STATUSES:
        return False
    return new_status in VALID_JOB_TRANSITIONS.get(current_status, [])


def get_allowed_transitions(current_status: str) -> list[str]:
    return list(VALID_JOB_TRANSITIONS.get(current_status, []))


def get_next_required_action(job: Job) -> Optional[str]:
    """
    Determine what action is required next for a job

    Returns:
        str: Description of next required action, or None when nothing is pending
    """
    if job.status == "draft":
        return "Add line items and send as a quote or schedule the job"
    elif job.status == "quote":
        return "Waiting for customer to approve the quote"
    elif job.status == "scheduled":
        if not job.service_date:
            return "Set a service date"
        return "Start the job on the service date"
    elif job.status == "in_progress":
        return "Complete the job when work is finished"
    elif job.status == "completed":
        return "Create an invoice for this job"
    elif job.status == "invoiced":
        if job.payment_status != "paid":
            return "Collect payment"
        return None
    return None


def mark_overdue_invoices(db: Session) -> dict:
    """
    Mark sent/partial invoices whose due date has passed as overdue.
    Should be run as a scheduled job (daily cron).

    Returns:
        dict: Summary of status changes made
    """
    summary = {"sent_to_overdue": 0, "partial_to_overdue": 0, "total_updated": 0}

    try:
        now = utcnow()
        invoices = (
            db.query(Invoice)
            .filter(
                Invoice.status.in_(["sent", "partial"]),
                Invoice.due_date.isnot(None),
                Invoice.due_date < now,
            )
            .all()
        )

        for invoice in invoices:
            summary[f"{invoice.status}_to_overdue"] += 1
            logger.info(f"✅ Invoice {invoice.invoice_number} transitioned: {invoice.status} → overdue")
            invoice.status = "overdue"

        total = summary["sent_to_overdue"] + summary["partial_to_overdue"]
        if total > 0:
            db.commit()
            summary["total_updated"] = total
            logger.info(f"📊 Invoice status automation summary: {summary}")
        else:
            logger.debug("ℹ️ No overdue invoices")

        return summary

    except Exception as e:
        logger.error(f"❌ Error marking overdue invoices: {str(e)}")
        db.rollback()
        raise
