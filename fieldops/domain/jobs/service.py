"""Job service - Business logic for the job lifecycle"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...auth import ROLE_TECH, AccountContext
from ...models_estimate import Estimate
from ...models_job import Job, JobNote, JobPayment
from ...services.activity_service import log_activity, log_job_status_activity
from ...services.automation_triggers import safely_schedule, schedule_job_completion_automations
from ...services.business_settings import get_default_tax_rate
from ...services.job_automation import (
    JobAutomationResult,
    add_status_note,
    convert_quote_to_scheduled,
    generate_invoice_for_job,
    get_job_automation_suggestions,
    handle_job_status_change,
    handle_line_item_change,
    handle_payment_change,
)
from ...services.status_automation import validate_status_transition
from ...shared.dates import utcnow
from ...utils.sanitization import clean_text_input
from .repository import JobRepository
from .schemas import ConvertQuoteRequest, JobCreate, JobUpdate, LineItemCreate, PaymentCreate, StatusChangeRequest

logger = logging.getLogger(__name__)

LOCKED_STATUSES = ("invoiced", "cancelled")
DELETABLE_STATUSES = ("draft", "quote", "cancelled")
# Technicians work the job; office staff handle everything else
TECH_ALLOWED_STATUSES = ("in_progress", "completed")


def _clean(value: Optional[str], max_length: int) -> str:
    try:
        return clean_text_input(value, max_length=max_length)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


class JobService:
    """Service layer for job business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = JobRepository()

    def list_jobs(
        self,
        context: AccountContext,
        status: Optional[str] = None,
        client_id: Optional[int] = None,
        assigned_to: Optional[int] = None,
    ) -> list[Job]:
        if context.role == ROLE_TECH:
            assigned_to = context.user_id
        return self.repo.list_jobs(self.db, context.account_id, status, client_id, assigned_to)

    def get_job(self, job_id: int, context: AccountContext) -> Job:
        job = self.repo.get_job(self.db, job_id, context.account_id)
        if not job:
            raise HTTPException(status_code=404, detail="Job not found")
        if context.role == ROLE_TECH and job.assigned_to != context.user_id:
            raise HTTPException(status_code=403, detail="Job is not assigned to you")
        return job

    def _ensure_editable(self, job: Job):
        if job.status in LOCKED_STATUSES:
            raise HTTPException(status_code=400, detail=f"Cannot modify a job that is {job.status}")

    def _ensure_assignee(self, user_id: Optional[int], account_id: int):
        if user_id is not None and not self.repo.is_account_member(self.db, user_id, account_id):
            raise HTTPException(status_code=400, detail="Assigned user is not a member of this account")

    def create_job(self, data: JobCreate, context: AccountContext) -> Job:
        client = self.repo.get_client(self.db, data.clientId, context.account_id)
        if not client:
            raise HTTPException(status_code=404, detail="Client not found")
        self._ensure_assignee(data.assignedTo, context.account_id)

        tax_rate = data.taxRate if data.taxRate is not None else get_default_tax_rate(self.db, context.account_id)

        try:
            job = self.repo.create_job(
                self.db,
                account_id=context.account_id,
                client_id=client.id,
                job_number=self.repo.next_job_number(self.db, context.account_id),
                title=_clean(data.title, 255),
                description=data.description,
                status=data.status,
                service_date=data.serviceDate,
                scheduled_time=data.scheduledTime,
                address=data.address or client.address,
                assigned_to=data.assignedTo,
                tax_rate=tax_rate,
            )
            for item in data.lineItems:
                self.repo.add_line_item(
                    self.db,
                    job,
                    description=_clean(item.description, 500),
                    quantity=item.quantity,
                    unit_price=item.unitPrice,
                    item_type=item.itemType,
                )
            self.db.commit()
        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to create job for account {context.account_id}: {e}")
            raise HTTPException(status_code=500, detail="Failed to create job") from e

        handle_line_item_change(self.db, job)
        self._log_activity_safely(job, "job_created", f"Job created: {job.job_number}", context.user_id)
        logger.info(f"✅ Created job {job.job_number} for account {context.account_id}")
        return job

    def create_job_from_estimate(self, estimate: Estimate) -> Job:
        """Approved estimates become quote jobs with the estimate's line items"""
        job = self.repo.create_job(
            self.db,
            account_id=estimate.account_id,
            client_id=estimate.client_id,
            estimate_id=estimate.id,
            job_number=self.repo.next_job_number(self.db, estimate.account_id),
            title=estimate.title,
            description=estimate.description,
            status="quote",
            address=estimate.client.address if estimate.client else None,
            tax_rate=estimate.tax_rate or 0,
        )
        for item in estimate.line_items or []:
            self.repo.add_line_item(
                self.db,
                job,
                description=item.get("description", ""),
                quantity=item.get("quantity") or 0,
                unit_price=item.get("unit_price") or 0,
                item_type=item.get("item_type", "service"),
            )
        self.db.commit()
        handle_line_item_change(self.db, job)
        logger.info(f"✅ Created quote job {job.job_number} from estimate {estimate.estimate_number}")
        return job

    def update_job(self, job_id: int, data: JobUpdate, context: AccountContext) -> Job:
        job = self.get_job(job_id, context)
        self._ensure_editable(job)
        self._ensure_assignee(data.assignedTo, context.account_id)

        if data.title is not None:
            job.title = _clean(data.title, 255)
        if data.description is not None:
            job.description = data.description
        if data.serviceDate is not None:
            job.service_date = data.serviceDate
        if data.scheduledTime is not None:
            job.scheduled_time = data.scheduledTime
        if data.address is not None:
            job.address = data.address
        if data.assignedTo is not None:
            job.assigned_to = data.assignedTo
        if data.readyForInvoice is not None:
            job.ready_for_invoice = data.readyForInvoice
        job.updated_at = utcnow()
        self.db.commit()

        if data.taxRate is not None:
            handle_line_item_change(self.db, job, data.taxRate)

        self.db.refresh(job)
        return job

    def delete_job(self, job_id: int, context: AccountContext) -> dict:
        job = self.get_job(job_id, context)
        if job.status not in DELETABLE_STATUSES:
            raise HTTPException(status_code=409, detail=f"Cannot delete a job that is {job.status}")

        self.db.delete(job)
        self.db.commit()
        logger.info(f"🗑️ Deleted job {job_id} from account {context.account_id}")
        return {"message": "Job deleted"}

    def change_status(self, job_id: int, data: StatusChangeRequest, context: AccountContext) -> tuple[Job, JobAutomationResult, int]:
        """
        Validate and apply a manual status change, then run its side effects.

        Returns:
            (job, automation result, number of automations scheduled)
        """
        job = self.get_job(job_id, context)
        old_status = job.status
        new_status = data.status

        if context.role == ROLE_TECH and new_status not in TECH_ALLOWED_STATUSES:
            raise HTTPException(status_code=403, detail=f"Technicians cannot move jobs to {new_status}")

        if not validate_status_transition(old_status, new_status):
            raise HTTPException(
                status_code=400, detail=f"Invalid status transition from {old_status} to {new_status}"
            )

        reason = _clean(data.reason, 500)

        # Invoicing goes through invoice generation so the job never ends up invoiced without an invoice
        if new_status == "invoiced":
            result = generate_invoice_for_job(self.db, job, context.user_id, reason)
            if not result.success:
                raise HTTPException(status_code=400, detail="; ".join(result.errors))
            self.db.refresh(job)
            return job, result, 0

        now = utcnow()
        job.status = new_status
        job.updated_at = now
        if new_status == "completed":
            job.completed_at = now
            job.ready_for_invoice = True
        add_status_note(self.db, job, old_status, new_status, reason, context.user_id)
        self.db.commit()
        logger.info(f"🔄 Job {job.job_number} status {old_status} → {new_status} by user {context.user_id}")

        try:
            log_job_status_activity(self.db, job, new_status, context.user_id)
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to log status activity for job {job.id}: {e}")

        scheduled = []
        result = JobAutomationResult()
        if new_status == "completed":
            # Schedule before auto-invoicing moves the job on to invoiced
            scheduled = safely_schedule(schedule_job_completion_automations, self.db, job)
            result = handle_job_status_change(self.db, job, old_status, new_status, context.user_id)

        self.db.refresh(job)
        return job, result, len(scheduled)

    def convert_quote(self, job_id: int, data: ConvertQuoteRequest, context: AccountContext) -> Job:
        job = self.get_job(job_id, context)
        result = convert_quote_to_scheduled(self.db, job, data.serviceDate, data.scheduledTime, context.user_id)
        if not result.success:
            raise HTTPException(status_code=400, detail="; ".join(result.errors))
        self._log_activity_safely(job, "job_scheduled", f"Job scheduled: {job.job_number}", context.user_id)
        self.db.refresh(job)
        return job

    def add_line_item(self, job_id: int, data: LineItemCreate, context: AccountContext) -> Job:
        job = self.get_job(job_id, context)
        self._ensure_editable(job)
        self.repo.add_line_item(
            self.db,
            job,
            description=_clean(data.description, 500),
            quantity=data.quantity,
            unit_price=data.unitPrice,
            item_type=data.itemType,
        )
        self.db.commit()
        self._recalculate(job)
        return job

    def remove_line_item(self, job_id: int, item_id: int, context: AccountContext) -> Job:
        job = self.get_job(job_id, context)
        self._ensure_editable(job)
        item = self.repo.get_line_item(self.db, job, item_id)
        if not item:
            raise HTTPException(status_code=404, detail="Line item not found")

        job.line_items.remove(item)
        self.db.commit()
        self._recalculate(job)
        return job

    def _recalculate(self, job: Job):
        result = handle_line_item_change(self.db, job)
        if not result.success:
            raise HTTPException(status_code=500, detail="; ".join(result.errors))
        self.db.refresh(job)

    def add_payment(self, job_id: int, data: PaymentCreate, context: AccountContext) -> Job:
        job = self.get_job(job_id, context)
        if job.status == "cancelled":
            raise HTTPException(status_code=400, detail="Cannot record payments on a cancelled job")

        payment = JobPayment(
            amount=round(data.amount, 2),
            method=data.method,
            reference=data.reference,
            paid_at=data.paidAt or utcnow(),
            recorded_by=context.user_id,
        )
        job.payments.append(payment)
        self.db.commit()

        result = handle_payment_change(self.db, job)
        if not result.success:
            raise HTTPException(status_code=500, detail="; ".join(result.errors))

        self._log_activity_safely(
            job, "payment_received", f"Payment received: ${payment.amount:.2f}", context.user_id
        )
        self.db.refresh(job)
        return job

    def delete_payment(self, job_id: int, payment_id: int, context: AccountContext) -> Job:
        job = self.get_job(job_id, context)
        payment = self.repo.get_payment(self.db, job, payment_id)
        if not payment:
            raise HTTPException(status_code=404, detail="Payment not found")

        job.payments.remove(payment)
        self.db.commit()
        handle_payment_change(self.db, job)
        self.db.refresh(job)
        return job

    def add_note(self, job_id: int, note: str, context: AccountContext) -> JobNote:
        job = self.get_job(job_id, context)
        text = _clean(note, 5000)
        if not text:
            raise HTTPException(status_code=400, detail="Note cannot be empty")
        return self.repo.add_note(self.db, job, text, context.user_id)

    def get_notes(self, job_id: int, context: AccountContext) -> list[JobNote]:
        return list(self.get_job(job_id, context).notes)

    def get_suggestions(self, job_id: int, context: AccountContext) -> list[str]:
        return get_job_automation_suggestions(self.get_job(job_id, context))

    def get_timeline(self, job_id: int, context: AccountContext) -> list[dict]:
        """Notes and client activities for the job, oldest first"""
        job = self.get_job(job_id, context)
        entries = [
            {
                "kind": "note",
                "id": note.id,
                "type": note.note_type,
                "title": note.note,
                "description": None,
                "created_at": note.created_at,
            }
            for note in job.notes
        ]
        entries.extend(
            {
                "kind": "activity",
                "id": activity.id,
                "type": activity.activity_type,
                "title": activity.title,
                "description": activity.description,
                "created_at": activity.created_at,
            }
            for activity in self.repo.get_job_activities(self.db, job)
        )
        entries.sort(key=lambda entry: (entry["created_at"] is None, entry["created_at"]))
        return entries

    def _log_activity_safely(self, job: Job, activity_type: str, title: str, user_id: Optional[int]):
        try:
            log_activity(
                self.db,
                job.account_id,
                job.client_id,
                activity_type,
                title,
                description=job.title,
                job_id=job.id,
                created_by=user_id,
            )
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to log {activity_type} activity for job {job.id}: {e}")
