"""
Job lifecycle automation
Totals, payment status derivation, and the side effects of status changes.

Every handler returns a JobAutomationResult instead of raising, so a failed
side effect never blocks the status change that triggered it.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ..models import BusinessSettings
from ..models_invoice import Invoice, InvoicePayment
from ..models_job import Job, JobNote
from ..shared.dates import utcnow
from .activity_service import create_post_job_workflow
from .automation_triggers import safely_schedule, schedule_invoice_followups

logger = logging.getLogger(__name__)


class JobAutomationResult:
    def __init__(self):
        self.actions: list[str] = []
        self.errors: list[str] = []
        self.invoice: Optional[Invoice] = None

    @property
    def success(self) -> bool:
        return not self.errors

    def merge(self, other: "JobAutomationResult") -> "JobAutomationResult":
        self.actions.extend(other.actions)
        self.errors.extend(other.errors)
        if other.invoice is not None:
            self.invoice = other.invoice
        return self

    def to_dict(self) -> dict:
        return {"success": self.success, "actions": self.actions, "errors": self.errors}


def round_money(value: float) -> float:
    return round(value or 0, 2)


def determine_payment_status(total: float, amount_paid: float) -> str:
    """unpaid when nothing is paid, paid once the total is covered, partial otherwise"""
    amount_paid = amount_paid or 0
    if amount_paid <= 0:
        return "unpaid"
    if amount_paid >= (total or 0):
        return "paid"
    return "partial"


def determine_invoice_status(total: float, amount_paid: float, baseline: str = "sent") -> str:
    """paid once the total is covered, partial for anything in between, baseline otherwise"""
    if amount_paid > 0 and amount_paid >= (total or 0):
        return "paid"
    if amount_paid > 0:
        return "partial"
    return baseline


def calculate_line_item_total(quantity: float, unit_price: float) -> float:
    return round_money((quantity or 0) * (unit_price or 0))


def calculate_totals(line_totals: list[float], tax_rate: float) -> dict:
    subtotal = round_money(sum(line_totals))
    tax_amount = round_money(subtotal * (tax_rate or 0))
    return {
        "subtotal": subtotal,
        "tax_amount": tax_amount,
        "total_amount": round_money(subtotal + tax_amount),
    }


def calculate_job_totals(db: Session, job: Job, tax_rate: Optional[float] = None) -> JobAutomationResult:
    result = JobAutomationResult()
    try:
        if tax_rate is not None:
            job.tax_rate = tax_rate

        for item in job.line_items:
            item.total = calculate_line_item_total(item.quantity, item.unit_price)

        totals = calculate_totals([item.total for item in job.line_items], job.tax_rate)
        job.subtotal = totals["subtotal"]
        job.tax_amount = totals["tax_amount"]
        job.total_amount = totals["total_amount"]
        db.commit()

        result.actions.append(
            f"Totals updated: subtotal ${job.subtotal:.2f}, tax ${job.tax_amount:.2f}, total ${job.total_amount:.2f}"
        )
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Failed to calculate totals for job {job.id}: {e}")
        result.errors.append(f"Failed to calculate totals: {e}")
    return result


def update_payment_status(db: Session, job: Job) -> JobAutomationResult:
    result = JobAutomationResult()
    try:
        new_status = determine_payment_status(job.total_amount, job.amount_paid)
        old_status = job.payment_status or "unpaid"

        if new_status == old_status:
            result.actions.append(f"Payment status unchanged ({old_status})")
            return result

        job.payment_status = new_status
        db.commit()
        result.actions.append(
            f"Payment status: {old_status} → {new_status} "
            f"(paid ${round_money(job.amount_paid):.2f} of ${round_money(job.total_amount):.2f})"
        )
        logger.info(f"💰 Job {job.id} payment status {old_status} → {new_status}")
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Failed to update payment status for job {job.id}: {e}")
        result.errors.append(f"Failed to update payment status: {e}")
    return result


def add_status_note(db: Session, job: Job, old_status: str, new_status: str, reason: str = "", user_id=None):
    note = f"Status changed from {old_status} to {new_status}"
    if reason:
        note = f"{note}: {reason}"
    db.add(JobNote(job_id=job.id, user_id=user_id, note=note, note_type="status_change"))


def convert_quote_to_scheduled(
    db: Session,
    job: Job,
    service_date: Optional[datetime] = None,
    scheduled_time: Optional[str] = None,
    user_id: Optional[int] = None,
) -> JobAutomationResult:
    result = JobAutomationResult()
    if job.status != "quote":
        result.errors.append(f"Only quotes can be converted to scheduled jobs (current status: {job.status})")
        return result

    try:
        job.status = "scheduled"
        if service_date:
            job.service_date = service_date
        if scheduled_time:
            job.scheduled_time = scheduled_time
        job.updated_at = utcnow()
        add_status_note(db, job, "quote", "scheduled", "Quote converted to scheduled job", user_id)
        db.commit()
        result.actions.append("Quote converted to scheduled job")
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Failed to convert quote {job.id}: {e}")
        result.errors.append(f"Failed to convert quote: {e}")
    return result


def next_invoice_number(db: Session, account_id: int) -> str:
    """INV-0001, INV-0002, ... per account"""
    numbers = db.query(Invoice.invoice_number).filter(Invoice.account_id == account_id).all()
    highest = 0
    for (number,) in numbers:
        try:
            highest = max(highest, int(str(number).rsplit("-", 1)[-1]))
        except ValueError:
            continue
    return f"INV-{highest + 1:04d}"


def carry_over_job_payments(job: Job) -> list[InvoicePayment]:
    """Copy what the job already collected onto its invoice as payment rows"""
    payments = [
        InvoicePayment(
            amount=round_money(payment.amount),
            method=payment.method or "other",
            reference=payment.reference,
            notes=f"Collected on job {job.job_number}",
            paid_at=payment.paid_at or utcnow(),
        )
        for payment in job.payments
        if payment.amount
    ]
    # amount_paid set without payment rows still counts
    unrecorded = round_money((job.amount_paid or 0) - sum(payment.amount for payment in payments))
    if unrecorded > 0:
        payments.append(
            InvoicePayment(amount=unrecorded, method="other", notes=f"Balance collected on job {job.job_number}")
        )
    return payments


def generate_invoice_for_job(
    db: Session, job: Job, user_id: Optional[int] = None, reason: str = ""
) -> JobAutomationResult:
    """Create an invoice from a completed job's line items and move the job to invoiced"""
    result = JobAutomationResult()
    if job.status != "completed":
        result.errors.append(f"Job must be completed before invoicing (current status: {job.status})")
        return result

    existing = db.query(Invoice).filter(Invoice.job_id == job.id).first()
    if existing:
        result.errors.append(f"Invoice {existing.invoice_number} already exists for this job")
        return result

    try:
        settings = db.query(BusinessSettings).filter(BusinessSettings.account_id == job.account_id).first()
        due_days = settings.invoice_due_days if settings and settings.invoice_due_days else 30
        now = utcnow()

        line_items = [
            {
                "description": item.description,
                "quantity": item.quantity,
                "unit_price": item.unit_price,
                "total": calculate_line_item_total(item.quantity, item.unit_price),
            }
            for item in job.line_items
        ]
        totals = calculate_totals([item["total"] for item in line_items], job.tax_rate)
        payments = carry_over_job_payments(job)
        amount_paid = round_money(sum(payment.amount for payment in payments))
        status = determine_invoice_status(totals["total_amount"], amount_paid, baseline="draft")

        invoice = Invoice(
            account_id=job.account_id,
            client_id=job.client_id,
            job_id=job.id,
            invoice_number=next_invoice_number(db, job.account_id),
            title=job.title,
            description=job.description,
            line_items=line_items,
            subtotal=totals["subtotal"],
            tax_rate=job.tax_rate or 0,
            tax_amount=totals["tax_amount"],
            total_amount=totals["total_amount"],
            amount_paid=amount_paid,
            status=status,
            paid_at=now if status == "paid" else None,
            issue_date=now,
            due_date=now + timedelta(days=due_days),
        )
        invoice.payments.extend(payments)
        db.add(invoice)

        job.status = "invoiced"
        job.ready_for_invoice = False
        job.updated_at = now
        db.flush()
        note = f"Invoice {invoice.invoice_number} generated"
        if reason:
            note = f"{reason} ({note})"
        add_status_note(db, job, "completed", "invoiced", note, user_id)
        db.commit()
        db.refresh(invoice)

        result.invoice = invoice
        result.actions.append(f"Invoice {invoice.invoice_number} generated")
        logger.info(f"🧾 Generated invoice {invoice.invoice_number} for job {job.id}")
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Failed to generate invoice for job {job.id}: {e}")
        result.errors.append(f"Failed to generate invoice: {e}")
        return result

    scheduled = safely_schedule(schedule_invoice_followups, db, result.invoice)
    if scheduled:
        result.actions.append(f"Scheduled {len(scheduled)} invoice follow-ups")
    return result


def handle_job_status_change(
    db: Session, job: Job, old_status: str, new_status: str, user_id: Optional[int] = None
) -> JobAutomationResult:
    result = JobAutomationResult()
    if new_status != "completed" or old_status == "completed":
        return result

    settings = db.query(BusinessSettings).filter(BusinessSettings.account_id == job.account_id).first()
    if settings and settings.auto_invoice_on_completion:
        result.merge(generate_invoice_for_job(db, job, user_id))

    try:
        activities = create_post_job_workflow(db, job)
        result.actions.append(f"Created {len(activities)} follow-up tasks")
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Failed to create post-job workflow for job {job.id}: {e}")
        result.errors.append(f"Failed to create follow-up tasks: {e}")

    return result


def handle_line_item_change(db: Session, job: Job, tax_rate: Optional[float] = None) -> JobAutomationResult:
    result = calculate_job_totals(db, job, tax_rate)
    return result.merge(update_payment_status(db, job))


def handle_payment_change(db: Session, job: Job) -> JobAutomationResult:
    job.amount_paid = round_money(sum(payment.amount or 0 for payment in job.payments))
    return update_payment_status(db, job)


def get_job_automation_suggestions(job: Job) -> list[str]:
    suggestions = []

    if job.status == "quote":
        suggestions.append("Convert this quote to a scheduled job")
    if job.status == "scheduled" and not job.service_date:
        suggestions.append("Set a service date for this scheduled job")
    if job.status == "in_progress":
        suggestions.append("Mark this job as completed when work is finished")
    if job.status == "completed":
        suggestions.append("Generate invoice for this completed job")
    if job.status == "invoiced" and job.payment_status == "unpaid":
        suggestions.append("Record payment when client pays")
    if job.payment_status == "partial":
        remaining = round_money((job.total_amount or 0) - (job.amount_paid or 0))
        suggestions.append(f"Follow up on remaining balance: ${remaining:.2f}")

    return suggestions
