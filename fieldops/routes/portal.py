"""
Customer Portal API Routes

Customer-facing views of their own jobs, invoices and estimates,
online invoice payment through Square, and contact requests.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from ..auth import AccountContext, get_portal_context
from ..database import get_db
from ..domain.estimates.schemas import estimate_to_response
from ..domain.invoices.schemas import invoice_to_response
from ..email_service import send_contact_request_notification
from ..models import BusinessSettings, Client
from ..models_estimate import Estimate
from ..models_invoice import Invoice
from ..models_job import Job
from ..services.activity_service import log_activity
from ..services.square_service import create_payment_link

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/portal", tags=["Customer Portal"])

UPCOMING_JOB_STATUSES = ("quote", "scheduled", "in_progress")
PAST_JOB_STATUSES = ("completed", "invoiced", "cancelled")
PAYABLE_INVOICE_STATUSES = ("sent", "partial", "overdue")


class ContactRequest(BaseModel):
    subject: str
    message: str

    @field_validator("subject")
    @classmethod
    def validate_subject(cls, v):
        v = (v or "").strip()
        if not v or len(v) > 200:
            raise ValueError("Subject is required and must be 200 characters or less")
        return v

    @field_validator("message")
    @classmethod
    def validate_message(cls, v):
        v = (v or "").strip()
        if not v or len(v) > 5000:
            raise ValueError("Message is required and must be 5000 characters or less")
        return v


def _portal_job(job: Job) -> dict:
    # Customers never see internal notes or the technician assignment
    return {
        "id": job.public_id,
        "jobNumber": job.job_number,
        "title": job.title,
        "description": job.description,
        "status": job.status,
        "serviceDate": job.service_date.isoformat() if job.service_date else None,
        "scheduledTime": job.scheduled_time,
        "address": job.address,
        "totalAmount": job.total_amount or 0,
        "paymentStatus": job.payment_status or "unpaid",
    }


def _get_client(db: Session, context: AccountContext) -> Client:
    client = db.query(Client).filter(Client.id == context.client_id, Client.account_id == context.account_id).first()
    if not client:
        raise HTTPException(status_code=404, detail="Customer record not found")
    return client


@router.get("/me")
async def get_portal_profile(
    context: AccountContext = Depends(get_portal_context),
    db: Session = Depends(get_db),
):
    client = _get_client(db, context)
    settings = db.query(BusinessSettings).filter(BusinessSettings.account_id == context.account_id).first()
    return {
        "clientId": client.public_id,
        "name": client.display_name,
        "email": client.email,
        "phone": client.phone,
        "address": client.address,
        "businessName": (settings.business_name if settings else None) or context.account.name,
    }


@router.get("/jobs")
async def get_portal_jobs(
    context: AccountContext = Depends(get_portal_context),
    db: Session = Depends(get_db),
):
    """Own jobs split into upcoming and history. Drafts are hidden."""
    jobs = (
        db.query(Job)
        .filter(
            Job.account_id == context.account_id,
            Job.client_id == context.client_id,
            Job.status != "draft",
        )
        .order_by(Job.service_date.desc(), Job.id.desc())
        .all()
    )
    upcoming = [_portal_job(j) for j in jobs if j.status in UPCOMING_JOB_STATUSES]
    history = [_portal_job(j) for j in jobs if j.status in PAST_JOB_STATUSES]
    return {"upcoming": list(reversed(upcoming)), "history": history}


@router.get("/invoices")
async def get_portal_invoices(
    context: AccountContext = Depends(get_portal_context),
    db: Session = Depends(get_db),
):
    invoices = (
        db.query(Invoice)
        .filter(
            Invoice.account_id == context.account_id,
            Invoice.client_id == context.client_id,
            Invoice.status != "draft",
        )
        .order_by(Invoice.issue_date.desc(), Invoice.id.desc())
        .all()
    )
    return [invoice_to_response(i) for i in invoices]


@router.get("/estimates")
async def get_portal_estimates(
    context: AccountContext = Depends(get_portal_context),
    db: Session = Depends(get_db),
):
    estimates = (
        db.query(Estimate)
        .filter(
            Estimate.account_id == context.account_id,
            Estimate.client_id == context.client_id,
            Estimate.status != "draft",
        )
        .order_by(Estimate.created_at.desc(), Estimate.id.desc())
        .all()
    )
    return [estimate_to_response(e) for e in estimates]


@router.post("/invoices/{invoice_public_id}/pay")
async def pay_invoice(
    invoice_public_id: str,
    context: AccountContext = Depends(get_portal_context),
    db: Session = Depends(get_db),
):
    """Create (or reuse) a Square payment link for one of the customer's invoices"""
    invoice = db.query(Invoice).filter(Invoice.public_id == invoice_public_id).first()
    if not invoice:
        raise HTTPException(status_code=404, detail="Invoice not found")
    if invoice.account_id != context.account_id or invoice.client_id != context.client_id:
        logger.warning(f"🚫 Client {context.client_id} tried to pay invoice {invoice.id} they do not own")
        raise HTTPException(status_code=403, detail="Access denied")
    if invoice.status not in PAYABLE_INVOICE_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invoice cannot be paid (status: {invoice.status})")

    payment_url = await create_payment_link(db, invoice)
    return {"paymentUrl": payment_url, "amount": invoice.balance_due, "invoiceNumber": invoice.invoice_number}


@router.post("/contact", status_code=201)
async def contact_business(
    data: ContactRequest,
    context: AccountContext = Depends(get_portal_context),
    db: Session = Depends(get_db),
):
    client = _get_client(db, context)
    activity = log_activity(
        db,
        context.account_id,
        client.id,
        "contact_request",
        data.subject,
        description=data.message,
        status="pending",
        created_by=context.user_id,
    )
    logger.info(f"📨 Contact request from client {client.id} in account {context.account_id}")

    notified = False
    try:
        settings = db.query(BusinessSettings).filter(BusinessSettings.account_id == context.account_id).first()
        notified = await send_contact_request_notification(client, data.subject, data.message, settings) is not None
    except Exception as e:
        logger.error(f"❌ Failed to send contact request notification: {e}")

    return {"message": "Your request has been sent", "activityId": activity.id, "notified": notified}
