"""Job router - FastAPI endpoints for jobs and the technician view"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import AccountContext, require_staff, require_tech
from ...database import get_db
from .schemas import (
    ConvertQuoteRequest,
    JobCreate,
    JobResponse,
    JobUpdate,
    LineItemCreate,
    NoteCreate,
    NoteResponse,
    PaymentCreate,
    StatusChangeRequest,
    job_to_response,
    note_to_response,
)
from .service import JobService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["Jobs"])
tech_router = APIRouter(prefix="/tech/jobs", tags=["Technician"])


def get_job_service(db: Session = Depends(get_db)) -> JobService:
    """Dependency injection for JobService"""
    return JobService(db)


def _status_response(service: JobService, job_id: int, data: StatusChangeRequest, context: AccountContext) -> dict:
    job, result, scheduled = service.change_status(job_id, data, context)
    return {
        "job": job_to_response(job),
        "automation": result.to_dict(),
        "invoiceId": result.invoice.id if result.invoice else None,
        "scheduledAutomations": scheduled,
    }


@router.get("", response_model=list[JobResponse])
async def list_jobs(
    status: Optional[str] = Query(None),
    client_id: Optional[int] = Query(None, alias="clientId"),
    assigned_to: Optional[int] = Query(None, alias="assignedTo"),
    context: AccountContext = Depends(require_tech),
    service: JobService = Depends(get_job_service),
):
    """List jobs. Technicians only see jobs assigned to them."""
    return [job_to_response(j) for j in service.list_jobs(context, status, client_id, assigned_to)]


@router.post("", response_model=JobResponse, status_code=201)
async def create_job(
    data: JobCreate,
    context: AccountContext = Depends(require_staff),
    service: JobService = Depends(get_job_service),
):
    return job_to_response(service.create_job(data, context))


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: int,
    context: AccountContext = Depends(require_tech),
    service: JobService = Depends(get_job_service),
):
    return job_to_response(service.get_job(job_id, context))


@router.put("/{job_id}", response_model=JobResponse)
async def update_job(
    job_id: int,
    data: JobUpdate,
    context: AccountContext = Depends(require_staff),
    service: JobService = Depends(get_job_service),
):
    return job_to_response(service.update_job(job_id, data, context))


@router.delete("/{job_id}")
async def delete_job(
    job_id: int,
    context: AccountContext = Depends(require_staff),
    service: JobService = Depends(get_job_service),
):
    return service.delete_job(job_id, context)


@router.post("/{job_id}/status")
async def change_job_status(
    job_id: int,
    data: StatusChangeRequest,
    context: AccountContext = Depends(require_tech),
    service: JobService = Depends(get_job_service),
):
    """
    Move a job to a new status and run its side effects.

    Completing a job marks it ready for invoicing, creates the post-job
    follow-up tasks and schedules the closeout and review automations.
    """
    return _status_response(service, job_id, data, context)


@router.post("/{job_id}/convert", response_model=JobResponse)
async def convert_quote(
    job_id: int,
    data: ConvertQuoteRequest,
    context: AccountContext = Depends(require_staff),
    service: JobService = Depends(get_job_service),
):
    return job_to_response(service.convert_quote(job_id, data, context))


@router.post("/{job_id}/line-items", response_model=JobResponse, status_code=201)
async def add_line_item(
    job_id: int,
    data: LineItemCreate,
    context: AccountContext = Depends(require_staff),
    service: JobService = Depends(get_job_service),
):
    return job_to_response(service.add_line_item(job_id, data, context))


@router.delete("/{job_id}/line-items/{item_id}", response_model=JobResponse)
async def remove_line_item(
    job_id: int,
    item_id: int,
    context: AccountContext = Depends(require_staff),
    service: JobService = Depends(get_job_service),
):
    return job_to_response(service.remove_line_item(job_id, item_id, context))


@router.post("/{job_id}/payments", response_model=JobResponse, status_code=201)
async def add_payment(
    job_id: int,
    data: PaymentCreate,
    context: AccountContext = Depends(require_staff),
    service: JobService = Depends(get_job_service),
):
    return job_to_response(service.add_payment(job_id, data, context))


@router.delete("/{job_id}/payments/{payment_id}", response_model=JobResponse)
async def delete_payment(
    job_id: int,
    payment_id: int,
    context: AccountContext = Depends(require_staff),
    service: JobService = Depends(get_job_service),
):
    return job_to_response(service.delete_payment(job_id, payment_id, context))


@router.get("/{job_id}/notes", response_model=list[NoteResponse])
async def get_notes(
    job_id: int,
    context: AccountContext = Depends(require_tech),
    service: JobService = Depends(get_job_service),
):
    return [note_to_response(n) for n in service.get_notes(job_id, context)]


@router.post("/{job_id}/notes", response_model=NoteResponse, status_code=201)
async def add_note(
    job_id: int,
    data: NoteCreate,
    context: AccountContext = Depends(require_tech),
    service: JobService = Depends(get_job_service),
):
    return note_to_response(service.add_note(job_id, data.note, context))


@router.get("/{job_id}/suggestions")
async def get_suggestions(
    job_id: int,
    context: AccountContext = Depends(require_staff),
    service: JobService = Depends(get_job_service),
):
    return {"suggestions": service.get_suggestions(job_id, context)}


@router.get("/{job_id}/timeline")
async def get_timeline(
    job_id: int,
    context: AccountContext = Depends(require_tech),
    service: JobService = Depends(get_job_service),
):
    """Status notes, free-form notes and client activities for the job"""
    return service.get_timeline(job_id, context)


@tech_router.get("", response_model=list[JobResponse])
async def list_my_jobs(
    status: Optional[str] = Query(None),
    context: AccountContext = Depends(require_tech),
    service: JobService = Depends(get_job_service),
):
    return [job_to_response(j) for j in service.list_jobs(context, status, assigned_to=context.user_id)]


@tech_router.get("/{job_id}", response_model=JobResponse)
async def get_my_job(
    job_id: int,
    context: AccountContext = Depends(require_tech),
    service: JobService = Depends(get_job_service),
):
    return job_to_response(service.get_job(job_id, context))


@tech_router.post("/{job_id}/status")
async def change_my_job_status(
    job_id: int,
    data: StatusChangeRequest,
    context: AccountContext = Depends(require_tech),
    service: JobService = Depends(get_job_service),
):
    return _status_response(service, job_id, data, context)
