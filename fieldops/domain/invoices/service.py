"""Invoice service - Business logic for invoicing and invoice payments"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...auth import AccountContext
from ...email_service import send_invoice_email
from ...models_invoice import Invoice, InvoicePayment
from ...services.activity_service import log_activity
from ...services.automation_triggers import safely_schedule, schedule_invoice_followups
from ...services.invoice_pdf import generate_invoice_pdf
from ...services.job_automation import determine_invoice_status, generate_invoice_for_job, round_money
from ...shared.dates import utcnow
from .repository import InvoiceRepository
from .schemas import InvoicePaymentCreate

logger = logging.getLogger(__name__)

SENDABLE_STATUSES = ("draft", "sent", "partial", "overdue")


class InvoiceService:
    """Service layer for invoice business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = InvoiceRepository()

    def list_invoices(
        self, context: AccountContext, status: Optional[str] = None, client_id: Optional[int] = None
    ) -> list[Invoice]:
        return self.repo.list_invoices(self.db, context.account_id, status, client_id)

    def get_invoice(self, invoice_id: int, context: AccountContext) -> Invoice:
        invoice = self.repo.get_invoice(self.db, invoice_id, context.account_id)
        if not invoice:
            raise HTTPException(status_code=404, detail="Invoice not found")
        return invoice

    def create_from_job(self, job_id: int, context: AccountContext) -> Invoice:
        job = self.repo.get_job(self.db, job_id, context.account_id)
        if not job:
            raise HTTPException(status_code=404, detail="Job not found")

        existing = self.repo.get_invoice_for_job(self.db, job.id)
        if existing:
            raise HTTPException(
                status_code=409, detail=f"Invoice {existing.invoice_number} already exists for this job"
            )
        if not job.ready_for_invoice:
            raise HTTPException(status_code=400, detail="Job is not ready for invoicing")

        result = generate_invoice_for_job(self.db, job, context.user_id)
        if not result.success:
            raise HTTPException(status_code=400, detail="; ".join(result.errors))
        return result.invoice

    async def send_invoice(self, invoice_id: int, context: AccountContext) -> dict:
        invoice = self.get_invoice(invoice_id, context)
        if invoice.status not in SENDABLE_STATUSES:
            raise HTTPException(status_code=400, detail=f"Cannot send an invoice that is {invoice.status}")
        if not invoice.client or not invoice.client.email:
            raise HTTPException(status_code=400, detail="Client has no email address")

        if invoice.status == "draft":
            invoice.status = "sent"
        invoice.sent_at = utcnow()
        self.db.commit()
        self.db.refresh(invoice)
        logger.info(f"📤 Invoice {invoice.invoice_number} marked {invoice.status}")

        email_sent = False
        email_error = None
        try:
            await send_invoice_email(invoice, self.repo.get_settings(self.db, invoice.account_id))
            email_sent = True
        except Exception as e:
            logger.error(f"❌ Failed to email invoice {invoice.invoice_number}: {e}")
            email_error = str(e)

        scheduled = safely_schedule(schedule_invoice_followups, self.db, invoice)

        try:
            log_activity(
                self.db,
                invoice.account_id,
                invoice.client_id,
                "invoice_sent",
                f"Invoice sent: {invoice.invoice_number}",
                job_id=invoice.job_id,
                details={"invoice_id": invoice.id, "total": invoice.total_amount},
                created_by=context.user_id,
            )
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to log invoice_sent activity: {e}")

        return {
            "invoice": invoice,
            "emailSent": email_sent,
            "emailError": email_error,
            "scheduledAutomations": len(scheduled),
        }

    def _recompute(self, invoice: Invoice):
        invoice.amount_paid = round_money(sum(p.amount or 0 for p in invoice.payments))
        old_status = invoice.status
        invoice.status = determine_invoice_status(invoice.total_amount, invoice.amount_paid)
        invoice.paid_at = utcnow() if invoice.status == "paid" else None
        invoice.updated_at = utcnow()
        if old_status != invoice.status:
            logger.info(f"💰 Invoice {invoice.invoice_number} status {old_status} → {invoice.status}")

    def add_payment(self, invoice_id: int, data: InvoicePaymentCreate, context: AccountContext) -> Invoice:
        invoice = self.get_invoice(invoice_id, context)
        if invoice.status == "void":
            raise HTTPException(status_code=400, detail="Cannot record payments on a void invoice")
        if invoice.status == "paid":
            raise HTTPException(status_code=400, detail="Invoice is already paid")

        payment = InvoicePayment(
            amount=round_money(data.amount),
            method=data.method,
            reference=data.reference,
            notes=data.notes,
            paid_at=data.paidAt or utcnow(),
        )
        invoice.payments.append(payment)
        self._recompute(invoice)
        self.db.commit()

        try:
            log_activity(
                self.db,
                invoice.account_id,
                invoice.client_id,
                "payment_received",
                f"Payment received: ${payment.amount:.2f}",
                description=f"Invoice {invoice.invoice_number}",
                job_id=invoice.job_id,
                details={"invoice_id": invoice.id, "method": payment.method},
                created_by=context.user_id,
            )
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to log payment activity: {e}")

        self.db.refresh(invoice)
        return invoice

    def delete_payment(self, invoice_id: int, payment_id: int, context: AccountContext) -> Invoice:
        invoice = self.get_invoice(invoice_id, context)
        if invoice.status == "void":
            raise HTTPException(status_code=400, detail="Cannot change payments on a void invoice")

        payment = self.repo.get_payment(self.db, invoice, payment_id)
        if not payment:
            raise HTTPException(status_code=404, detail="Payment not found")

        invoice.payments.remove(payment)
        self._recompute(invoice)
        self.db.commit()
        self.db.refresh(invoice)
        return invoice

    def void_invoice(self, invoice_id: int, context: AccountContext) -> Invoice:
        invoice = self.get_invoice(invoice_id, context)
        if invoice.status == "paid":
            raise HTTPException(status_code=400, detail="Paid invoices cannot be voided")
        if invoice.status == "void":
            return invoice

        invoice.status = "void"
        invoice.voided_at = utcnow()
        self.db.commit()
        self.db.refresh(invoice)
        logger.info(f"🚫 Invoice {invoice.invoice_number} voided by user {context.user_id}")
        return invoice

    def render_pdf(self, invoice_id: int, context: AccountContext) -> tuple[bytes, str]:
        invoice = self.get_invoice(invoice_id, context)
        try:
            pdf_bytes = generate_invoice_pdf(invoice, self.db)
        except Exception as e:
            logger.error(f"❌ Failed to render PDF for invoice {invoice.invoice_number}: {e}")
            raise HTTPException(status_code=500, detail="Failed to generate invoice PDF") from e
        return pdf_bytes, f"{invoice.invoice_number}.pdf"
