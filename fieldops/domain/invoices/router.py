"""Invoice router - FastAPI endpoints for invoices"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ...auth import AccountContext, require_staff
from ...database import get_db
from .schemas import InvoicePaymentCreate, InvoiceResponse, invoice_to_response
from .service import InvoiceService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invoices", tags=["Invoices"])


def get_invoice_service(db: Session = Depends(get_db)) -> InvoiceService:
    """Dependency injection for InvoiceService"""
    return InvoiceService(db)


@router.get("", response_model=list[InvoiceResponse])
async def list_invoices(
    status: Optional[str] = Query(None),
    client_id: Optional[int] = Query(None, alias="clientId"),
    context: AccountContext = Depends(require_staff),
    service: InvoiceService = Depends(get_invoice_service),
):
    return [invoice_to_response(i) for i in service.list_invoices(context, status, client_id)]


@router.post("/from-job/{job_id}", response_model=InvoiceResponse, status_code=201)
async def create_invoice_from_job(
    job_id: int,
    context: AccountContext = Depends(require_staff),
    service: InvoiceService = Depends(get_invoice_service),
):
    """Invoice a completed job. The job moves to invoiced."""
    return invoice_to_response(service.create_from_job(job_id, context))


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: int,
    context: AccountContext = Depends(require_staff),
    service: InvoiceService = Depends(get_invoice_service),
):
    return invoice_to_response(service.get_invoice(invoice_id, context))


@router.post("/{invoice_id}/send")
async def send_invoice(
    invoice_id: int,
    context: AccountContext = Depends(require_staff),
    service: InvoiceService = Depends(get_invoice_service),
):
    result = await service.send_invoice(invoice_id, context)
    result["invoice"] = invoice_to_response(result["invoice"])
    return result


@router.post("/{invoice_id}/payments", response_model=InvoiceResponse, status_code=201)
async def add_invoice_payment(
    invoice_id: int,
    data: InvoicePaymentCreate,
    context: AccountContext = Depends(require_staff),
    service: InvoiceService = Depends(get_invoice_service),
):
    return invoice_to_response(service.add_payment(invoice_id, data, context))


@router.delete("/{invoice_id}/payments/{payment_id}", response_model=InvoiceResponse)
async def delete_invoice_payment(
    invoice_id: int,
    payment_id: int,
    context: AccountContext = Depends(require_staff),
    service: InvoiceService = Depends(get_invoice_service),
):
    return invoice_to_response(service.delete_payment(invoice_id, payment_id, context))


@router.post("/{invoice_id}/void", response_model=InvoiceResponse)
async def void_invoice(
    invoice_id: int,
    context: AccountContext = Depends(require_staff),
    service: InvoiceService = Depends(get_invoice_service),
):
    return invoice_to_response(service.void_invoice(invoice_id, context))


@router.get("/{invoice_id}/pdf")
async def download_invoice_pdf(
    invoice_id: int,
    context: AccountContext = Depends(require_staff),
    service: InvoiceService = Depends(get_invoice_service),
):
    pdf_bytes, filename = service.render_pdf(invoice_id, context)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
