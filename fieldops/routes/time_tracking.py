"""
Time Tracking API Routes

Clock in/out, breaks, the staff approval queue and labor summaries.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import ROLE_TECH, AccountContext, require_staff, require_tech
from ..database import get_db
from ..models import AccountMembership
from ..models_job import Job
from ..models_time import TimeApproval, TimeBreak, TimeEntry
from ..services.time_tracking import calculate_break_hours, calculate_entry_hours, summarize_entries
from ..shared.dates import parse_iso_datetime, utcnow
from ..utils.sanitization import clean_text_input

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/time", tags=["Time Tracking"])

BREAK_TYPES = ["break", "lunch"]


class ClockInRequest(BaseModel):
    jobId: Optional[int] = None
    notes: Optional[str] = None


class ClockOutRequest(BaseModel):
    notes: Optional[str] = None


class BreakStartRequest(BaseModel):
    breakType: str = "break"


class ReviewRequest(BaseModel):
    notes: Optional[str] = None


def entry_to_dict(entry: TimeEntry) -> dict:
    return {
        "id": entry.id,
        "userId": entry.user_id,
        "jobId": entry.job_id,
        "startTime": entry.start_time.isoformat() if entry.start_time else None,
        "endTime": entry.end_time.isoformat() if entry.end_time else None,
        "status": entry.status,
        "hourlyRate": entry.hourly_rate or 0,
        "hours": calculate_entry_hours(entry),
        "breakHours": calculate_break_hours(entry),
        "onBreak": any(b.end_time is None for b in entry.breaks),
        "approvalStatus": entry.approval.status if entry.approval else None,
        "notes": entry.notes,
    }


def _clean_notes(value: Optional[str]) -> Optional[str]:
    try:
        return clean_text_input(value, max_length=1000) or None
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


def _active_entry(db: Session, context: AccountContext) -> Optional[TimeEntry]:
    return (
        db.query(TimeEntry)
        .filter(
            TimeEntry.account_id == context.account_id,
            TimeEntry.user_id == context.user_id,
            TimeEntry.status == "active",
        )
        .first()
    )


def _require_active_entry(db: Session, context: AccountContext) -> TimeEntry:
    entry = _active_entry(db, context)
    if not entry:
        raise HTTPException(status_code=400, detail="You are not clocked in")
    return entry


@router.post("/clock-in", status_code=201)
async def clock_in(
    data: ClockInRequest,
    context: AccountContext = Depends(require_tech),
    db: Session = Depends(get_db),
):
    if _active_entry(db, context):
        raise HTTPException(status_code=400, detail="Already clocked in")

    if data.jobId is not None:
        job = db.query(Job.id).filter(Job.id == data.jobId, Job.account_id == context.account_id).first()
        if not job:
            raise HTTPException(status_code=404, detail="Job not found")

    membership = (
        db.query(AccountMembership)
        .filter(AccountMembership.account_id == context.account_id, AccountMembership.user_id == context.user_id)
        .first()
    )
    entry = TimeEntry(
        account_id=context.account_id,
        user_id=context.user_id,
        job_id=data.jobId,
        start_time=utcnow(),
        status="active",
        hourly_rate=(membership.hourly_rate if membership else None) or 0,
        notes=_clean_notes(data.notes),
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    logger.info(f"⏱️ User {context.user_id} clocked in (entry {entry.id})")
    return entry_to_dict(entry)


@router.post("/clock-out")
async def clock_out(
    data: ClockOutRequest,
    context: AccountContext = Depends(require_tech),
    db: Session = Depends(get_db),
):
    """Close the active entry (and any open break) and queue it for approval"""
    entry = _require_active_entry(db, context)
    now = utcnow()

    for open_break in entry.breaks:
        if open_break.end_time is None:
            open_break.end_time = now

    entry.end_time = now
    entry.status = "completed"
    if data.notes:
        entry.notes = _clean_notes(data.notes)
    db.add(TimeApproval(account_id=context.account_id, entry_id=entry.id, status="pending"))
    db.commit()
    db.refresh(entry)
    logger.info(f"⏱️ User {context.user_id} clocked out (entry {entry.id}, {calculate_entry_hours(entry)}h)")
    return entry_to_dict(entry)


@router.post("/break/start")
async def start_break(
    data: BreakStartRequest,
    context: AccountContext = Depends(require_tech),
    db: Session = Depends(get_db),
):
    if data.breakType not in BREAK_TYPES:
        raise HTTPException(status_code=400, detail=f"Break type must be one of: {', '.join(BREAK_TYPES)}")

    entry = _require_active_entry(db, context)
    if any(b.end_time is None for b in entry.breaks):
        raise HTTPException(status_code=400, detail="Already on a break")

    entry.breaks.append(TimeBreak(start_time=utcnow(), break_type=data.breakType))
    db.commit()
    db.refresh(entry)
    return entry_to_dict(entry)


@router.post("/break/end")
async def end_break(
    context: AccountContext = Depends(require_tech),
    db: Session = Depends(get_db),
):
    entry = _require_active_entry(db, context)
    open_break = next((b for b in entry.breaks if b.end_time is None), None)
    if not open_break:
        raise HTTPException(status_code=400, detail="Not on a break")

    open_break.end_time = utcnow()
    db.commit()
    db.refresh(entry)
    return entry_to_dict(entry)


@router.get("/active")
async def get_active_entry(
    context: AccountContext = Depends(require_tech),
    db: Session = Depends(get_db),
):
    entry = _active_entry(db, context)
    return {"active": entry is not None, "entry": entry_to_dict(entry) if entry else None}


def _entries_query(
    db: Session,
    context: AccountContext,
    user_id: Optional[int],
    start_date: Optional[str],
    end_date: Optional[str],
):
    query = db.query(TimeEntry).filter(TimeEntry.account_id == context.account_id)
    # Technicians only ever see their own time
    if context.role == ROLE_TECH:
        query = query.filter(TimeEntry.user_id == context.user_id)
    elif user_id:
        query = query.filter(TimeEntry.user_id == user_id)

    start = parse_iso_datetime(start_date)
    end = parse_iso_datetime(end_date)
    if start:
        query = query.filter(TimeEntry.start_time >= start)
    if end:
        query = query.filter(TimeEntry.start_time <= end)
    return query


@router.get("/entries")
async def list_entries(
    user_id: Optional[int] = Query(None, alias="userId"),
    status: Optional[str] = Query(None),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    context: AccountContext = Depends(require_tech),
    db: Session = Depends(get_db),
):
    query = _entries_query(db, context, user_id, start_date, end_date)
    if status:
        query = query.filter(TimeEntry.status == status)
    return [entry_to_dict(e) for e in query.order_by(TimeEntry.start_time.desc()).all()]


@router.get("/approvals")
async def list_pending_approvals(
    context: AccountContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    approvals = (
        db.query(TimeApproval)
        .filter(TimeApproval.account_id == context.account_id, TimeApproval.status == "pending")
        .order_by(TimeApproval.created_at.asc(), TimeApproval.id.asc())
        .all()
    )
    return [{"approvalId": a.id, "entry": entry_to_dict(a.entry)} for a in approvals]


def _review(db: Session, entry_id: int, context: AccountContext, status: str, notes: Optional[str]) -> dict:
    approval = (
        db.query(TimeApproval)
        .filter(TimeApproval.entry_id == entry_id, TimeApproval.account_id == context.account_id)
        .first()
    )
    if not approval:
        raise HTTPException(status_code=404, detail="Time entry approval not found")
    if approval.status != "pending":
        raise HTTPException(status_code=400, detail=f"Time entry already {approval.status}")

    approval.status = status
    approval.reviewed_by = context.user_id
    approval.reviewed_at = utcnow()
    approval.notes = _clean_notes(notes)
    db.commit()
    logger.info(f"🕒 Time entry {entry_id} {status} by user {context.user_id}")
    return {"message": f"Time entry {status}", "entry": entry_to_dict(approval.entry)}


@router.post("/entries/{entry_id}/approve")
async def approve_entry(
    entry_id: int,
    data: ReviewRequest,
    context: AccountContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    return _review(db, entry_id, context, "approved", data.notes)


@router.post("/entries/{entry_id}/reject")
async def reject_entry(
    entry_id: int,
    data: ReviewRequest,
    context: AccountContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    return _review(db, entry_id, context, "rejected", data.notes)


@router.get("/summary")
async def time_summary(
    user_id: Optional[int] = Query(None, alias="userId"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    context: AccountContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    """Hours net of breaks and labor cost per technician"""
    return summarize_entries(_entries_query(db, context, user_id, start_date, end_date).all())
