"""
Client activity timeline
Logs what happened to a client and creates follow-up tasks after completed jobs
"""

import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ..models import Activity
from ..shared.dates import utcnow

logger = logging.getLogger(__name__)

ACTIVITY_TYPES = [
    "job_created",
    "job_scheduled",
    "job_started",
    "job_completed",
    "job_cancelled",
    "estimate_sent",
    "estimate_accepted",
    "invoice_sent",
    "payment_received",
    "note",
    "contact_request",
    "follow_up_call",
    "satisfaction_survey",
    "maintenance_reminder",
]

# Job status -> timeline activity
STATUS_ACTIVITY_MAP = {
    "scheduled": ("job_scheduled", "Job scheduled"),
    "in_progress": ("job_started", "Job started"),
    "completed": ("job_completed", "Job completed"),
    "cancelled": ("job_cancelled", "Job cancelled"),
}

POST_JOB_WORKFLOW = [
    ("follow_up_call", "Follow-up call", "Call the customer to confirm they are happy with the work", 3),
    ("satisfaction_survey", "Satisfaction survey", "Send a short satisfaction survey", 7),
    ("maintenance_reminder", "Maintenance reminder", "Reach out about recommended maintenance", 180),
]


def log_activity(
    db: Session,
    account_id: int,
    client_id: int,
    activity_type: str,
    title: str,
    description: Optional[str] = None,
    job_id: Optional[int] = None,
    status: str = "completed",
    due_date=None,
    details: Optional[dict] = None,
    created_by: Optional[int] = None,
) -> Activity:
    if activity_type not in ACTIVITY_TYPES:
        raise ValueError(f"Unknown activity type: {activity_type}")

    activity = Activity(
        account_id=account_id,
        client_id=client_id,
        job_id=job_id,
        activity_type=activity_type,
        title=title,
        description=description,
        status=status,
        due_date=due_date,
        completed_at=utcnow() if status == "completed" else None,
        details=details,
        created_by=created_by,
    )
    db.add(activity)
    db.commit()
    db.refresh(activity)
    return activity


def log_job_status_activity(db: Session, job, new_status: str, user_id: Optional[int] = None) -> Optional[Activity]:
    mapping = STATUS_ACTIVITY_MAP.get(new_status)
    if not mapping:
        return None

    activity_type, title = mapping
    return log_activity(
        db,
        job.account_id,
        job.client_id,
        activity_type,
        f"{title}: {job.job_number}",
        description=job.title,
        job_id=job.id,
        created_by=user_id,
    )


def create_post_job_workflow(db: Session, job) -> list[Activity]:
    """Follow-up call (+3d), satisfaction survey (+7d), maintenance reminder (+180d)"""
    base = job.completed_at or utcnow()
    activities = []
    for activity_type, title, description, days in POST_JOB_WORKFLOW:
        activity = Activity(
            account_id=job.account_id,
            client_id=job.client_id,
            job_id=job.id,
            activity_type=activity_type,
            title=f"{title}: {job.job_number}",
            description=description,
            status="pending",
            due_date=base + timedelta(days=days),
        )
        db.add(activity)
        activities.append(activity)

    db.commit()
    logger.info(f"📋 Created {len(activities)} post-job follow-up tasks for job {job.id}")
    return activities
