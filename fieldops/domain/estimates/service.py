"""Estimate service - Business logic for estimates and public approval"""

import logging
from datetime import timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...auth import AccountContext
from ...email_service import send_estimate_approved_notification, send_estimate_email
from ...models_estimate import Estimate
from ...services.activity_service import log_activity
from ...services.automation_triggers import safely_schedule, schedule_estimate_followup
from ...services.business_settings import get_default_tax_rate
from ...services.job_automation import calculate_line_item_total, calculate_totals
from ...shared.dates import utcnow
from ...utils.sanitization import clean_text_input
from ..jobs.schemas import LineItemCreate
from ..jobs.service import JobService
from .repository import EstimateRepository
from .schemas import EstimateApproval, EstimateCreate, EstimateUpdate

logger = logging.getLogger(__name__)

DEFAULT_VALIDITY_DAYS = 30
EDITABLE_STATUSES = ("draft", "sent", "viewed")
APPROVABLE_STATUSES = ("sent", "viewed")


def build_line_items(items: list[LineItemCreate]) -> list[dict]:
    return [
        {
            "description": item.description.strip(),
            "quantity": item.quantity,
            "unit_price": item.unitPrice,
            "item_type": item.itemType,
            "total": calculate_line_item_total(item.quantity, item.unitPrice),
        }
        for item in items
    ]


class EstimateService:
    """Service layer for estimate business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = EstimateRepository()

    def list_estimates(
        self, context: AccountContext, status: Optional[str] = None, client_id: Optional[int] = None
    ) -> list[Estimate]:
        return self.repo.list_estimates(self.db, context.account_id, status, client_id)

    def get_estimate(self, estimate_id: int, context: AccountContext) -> Estimate:
        estimate = self.repo.get_estimate(self.db, estimate_id, context.account_id)
        if not estimate:
            raise HTTPException(status_code=404, detail="Estimate not found")
        return estimate

    def get_public_estimate(self, public_id: str) -> Estimate:
        estimate = self.repo.get_by_public_id(self.db, public_id)
        if not estimate or estimate.status == "draft":
            raise HTTPException(status_code=404, detail="Estimate not found")
        return estimate

    def _apply_totals(self, estimate: Estimate, line_items: list[dict]):
        totals = calculate_totals([item["total"] for item in line_items], estimate.tax_rate)
        estimate.line_items = line_items
        estimate.subtotal = totals["subtotal"]
        estimate.tax_amount = totals["tax_amount"]
        estimate.total_amount = totals["total_amount"]

    def create_estimate(self, data: EstimateCreate, context: AccountContext) -> Estimate:
        client = self.repo.get_client(self.db, data.clientId, context.account_id)
        if not client:
            raise HTTPException(status_code=404, detail="Client not found")

        tax_rate = data.taxRate if data.taxRate is not None else get_default_tax_rate(self.db, context.account_id)
        line_items = build_line_items(data.lineItems)
        totals = calculate_totals([item["total"] for item in line_items], tax_rate)

        estimate = self.repo.create_estimate(
            self.db,
            account_id=context.account_id,
            client_id=client.id,
            estimate_number=self.repo.next_estimate_number(self.db, context.account_id),
            title=data.title.strip(),
            description=data.description,
            line_items=line_items,
            tax_rate=tax_rate,
            status="draft",
            valid_until=data.validUntil or utcnow() + timedelta(days=DEFAULT_VALIDITY_DAYS),
            **totals,
        )
        logger.info(f"✅ Created estimate {estimate.estimate_number} for account {context.account_id}")
        return estimate

    def update_estimate(self, estimate_id: int, data: EstimateUpdate, context: AccountContext) -> Estimate:
        estimate = self.get_estimate(estimate_id, context)
        if estimate.status not in EDITABLE_STATUSES:
            raise HTTPException(status_code=400, detail=f"Cannot edit an estimate that is {estimate.status}")

        if data.title is not None:
            estimate.title = data.title.strip()
        if data.description is not None:
            estimate.description = data.description
        if data.validUntil is not None:
            estimate.valid_until = data.validUntil
        if data.taxRate is not None:
            estimate.tax_rate = data.taxRate

        line_items = build_line_items(data.lineItems) if data.lineItems is not None else list(estimate.line_items or [])
        self._apply_totals(estimate, line_items)
        estimate.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(estimate)
        return estimate

    def delete_estimate(self, estimate_id: int, context: AccountContext) -> dict:
        estimate = self.get_estimate(estimate_id, context)
        if estimate.status == "accepted":
            raise HTTPException(status_code=409, detail="Accepted estimates cannot be deleted")
        self.db.delete(estimate)
        self.db.commit()
        logger.info(f"🗑️ Deleted estimate {estimate_id} from account {context.account_id}")
        return {"message": "Estimate deleted"}

    async def send_estimate(self, estimate_id: int, context: AccountContext) -> dict:
        estimate = self.get_estimate(estimate_id, context)
        if estimate.status not in EDITABLE_STATUSES:
            raise HTTPException(status_code=400, detail=f"Cannot send an estimate that is {estimate.status}")
        if not estimate.client or not estimate.client.email:
            raise HTTPException(status_code=400, detail="Client has no email address")

        estimate.status = "sent"
        estimate.sent_date = utcnow()
        self.db.commit()
        self.db.refresh(estimate)
        logger.info(f"📤 Estimate {estimate.estimate_number} marked sent")

        email_sent = False
        email_error = None
        try:
            await send_estimate_email(estimate, self.repo.get_settings(self.db, estimate.account_id))
            email_sent = True
        except Exception as e:
            logger.error(f"❌ Failed to email estimate {estimate.estimate_number}: {e}")
            email_error = str(e)

        scheduled = safely_schedule(schedule_estimate_followup, self.db, estimate)

        try:
            log_activity(
                self.db,
                estimate.account_id,
                estimate.client_id,
                "estimate_sent",
                f"Estimate sent: {estimate.estimate_number}",
                description=estimate.title,
                details={"estimate_id": estimate.id, "total": estimate.total_amount},
                created_by=context.user_id,
            )
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to log estimate_sent activity: {e}")

        return {
            "estimate": estimate,
            "emailSent": email_sent,
            "emailError": email_error,
            "scheduledAutomations": len(scheduled),
        }

    def view_public_estimate(self, public_id: str) -> tuple[Estimate, str]:
        """Return the estimate and business name, marking a sent estimate as viewed"""
        estimate = self.get_public_estimate(public_id)
        if estimate.status == "sent":
            estimate.status = "viewed"
            estimate.viewed_at = utcnow()
            self.db.commit()
            self.db.refresh(estimate)
            logger.info(f"👀 Estimate {estimate.estimate_number} viewed by client")

        settings = self.repo.get_settings(self.db, estimate.account_id)
        business_name = (settings.business_name if settings else None) or "FieldOps Pro"
        return estimate, business_name

    async def approve_estimate(
        self,
        public_id: str,
        data: EstimateApproval,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> dict:
        estimate = self.get_public_estimate(public_id)
        if estimate.status not in APPROVABLE_STATUSES:
            raise HTTPException(status_code=400, detail=f"Estimate cannot be approved (status: {estimate.status})")

        now = utcnow()
        if estimate.valid_until and estimate.valid_until < now:
            estimate.status = "expired"
            self.db.commit()
            raise HTTPException(status_code=400, detail="This estimate has expired")

        estimate.status = "accepted"
        estimate.accepted_at = now
        estimate.approval_info = {
            "client_name": data.clientName,
            "signature": data.signature,
            "ip_address": ip_address,
            "user_agent": user_agent,
            "approved_at": now.isoformat(),
        }

        try:
            job = JobService(self.db).create_job_from_estimate(estimate)
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to create job from estimate {estimate.estimate_number}: {e}")
            raise HTTPException(status_code=500, detail="Failed to approve estimate") from e

        logger.info(f"✅ Estimate {estimate.estimate_number} approved by {data.clientName} from {ip_address}")

        try:
            log_activity(
                self.db,
                estimate.account_id,
                estimate.client_id,
                "estimate_accepted",
                f"Estimate accepted: {estimate.estimate_number}",
                description=f"Approved by {data.clientName}",
                job_id=job.id,
                details={"estimate_id": estimate.id},
            )
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to log estimate_accepted activity: {e}")

        try:
            await send_estimate_approved_notification(
                estimate, data.clientName, self.repo.get_settings(self.db, estimate.account_id)
            )
        except Exception as e:
            logger.error(f"❌ Failed to notify business of estimate approval: {e}")

        return {
            "message": "Estimate approved",
            "status": estimate.status,
            "jobId": job.public_id,
            "jobNumber": job.job_number,
        }

    def decline_estimate(self, public_id: str, reason: Optional[str] = None) -> dict:
        estimate = self.get_public_estimate(public_id)
        if estimate.status not in APPROVABLE_STATUSES:
            raise HTTPException(status_code=400, detail=f"Estimate cannot be declined (status: {estimate.status})")

        try:
            cleaned = clean_text_input(reason, max_length=1000)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e

        estimate.status = "declined"
        estimate.declined_at = utcnow()
        estimate.decline_reason = cleaned or None
        self.db.commit()
        logger.info(f"❌ Estimate {estimate.estimate_number} declined")
        return {"message": "Estimate declined", "status": estimate.status}

    def get_stats(self, context: AccountContext) -> dict:
        counts = self.repo.count_by_status(self.db, context.account_id)
        total = sum(counts.values())
        # Drafts never reached the client
        presented = total - counts.get("draft", 0)
        accepted = counts.get("accepted", 0)
        return {
            "total": total,
            "byStatus": {status: counts.get(status, 0) for status in ("draft", "sent", "viewed", "accepted", "declined", "expired")},
            "conversionRate": round(accepted / presented * 100, 1) if presented else 0.0,
        }
