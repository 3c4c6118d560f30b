"""Invoice repository - Database operations for invoices"""

from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import BusinessSettings
from ...models_invoice import Invoice, InvoicePayment
from ...models_job import Job


class InvoiceRepository:
    """Repository for invoice database operations"""

    @staticmethod
    def list_invoices(
        db: Session, account_id: int, status: Optional[str] = None, client_id: Optional[int] = None
    ) -> list[Invoice]:
        query = db.query(Invoice).options(joinedload(Invoice.client)).filter(Invoice.account_id == account_id)
        if status:
            query = query.filter(Invoice.status == status)
        if client_id:
            query = query.filter(Invoice.client_id == client_id)
        return query.order_by(Invoice.issue_date.desc(), Invoice.id.desc()).all()

    @staticmethod
    def get_invoice(db: Session, invoice_id: int, account_id: int) -> Optional[Invoice]:
        return db.query(Invoice).filter(Invoice.id == invoice_id, Invoice.account_id == account_id).first()

    @staticmethod
    def get_job(db: Session, job_id: int, account_id: int) -> Optional[Job]:
        return db.query(Job).filter(Job.id == job_id, Job.account_id == account_id).first()

    @staticmethod
    def get_invoice_for_job(db: Session, job_id: int) -> Optional[Invoice]:
        return db.query(Invoice).filter(Invoice.job_id == job_id).first()

    @staticmethod
    def get_payment(db: Session, invoice: Invoice, payment_id: int) -> Optional[InvoicePayment]:
        return (
            db.query(InvoicePayment)
            .filter(InvoicePayment.id == payment_id, InvoicePayment.invoice_id == invoice.id)
            .first()
        )

    @staticmethod
    def get_settings(db: Session, account_id: int) -> Optional[BusinessSettings]:
        return db.query(BusinessSettings).filter(BusinessSettings.account_id == account_id).first()
