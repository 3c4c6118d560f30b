"""Job repository - Database operations for jobs"""

from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import Activity, AccountMembership, Client
from ...models_job import Job, JobLineItem, JobNote, JobPayment


class JobRepository:
    """Repository for job database operations"""

    @staticmethod
    def list_jobs(
        db: Session,
        account_id: int,
        status: Optional[str] = None,
        client_id: Optional[int] = None,
        assigned_to: Optional[int] = None,
    ) -> list[Job]:
        query = db.query(Job).options(joinedload(Job.client)).filter(Job.account_id == account_id)
        if status:
            query = query.filter(Job.status == status)
        if client_id:
            query = query.filter(Job.client_id == client_id)
        if assigned_to:
            query = query.filter(Job.assigned_to == assigned_to)
        return query.order_by(Job.service_date.desc(), Job.id.desc()).all()

    @staticmethod
    def get_job(db: Session, job_id: int, account_id: int) -> Optional[Job]:
        return db.query(Job).filter(Job.id == job_id, Job.account_id == account_id).first()

    @staticmethod
    def get_client(db: Session, client_id: int, account_id: int) -> Optional[Client]:
        return db.query(Client).filter(Client.id == client_id, Client.account_id == account_id).first()

    @staticmethod
    def is_account_member(db: Session, user_id: int, account_id: int) -> bool:
        return (
            db.query(AccountMembership.id)
            .filter(
                AccountMembership.user_id == user_id,
                AccountMembership.account_id == account_id,
                AccountMembership.is_active.is_(True),
            )
            .first()
            is not None
        )

    @staticmethod
    def next_job_number(db: Session, account_id: int) -> str:
        """JOB-00001, JOB-00002, ... per account"""
        numbers = db.query(Job.job_number).filter(Job.account_id == account_id).all()
        highest = 0
        for (number,) in numbers:
            try:
                highest = max(highest, int(str(number).rsplit("-", 1)[-1]))
            except ValueError:
                continue
        return f"JOB-{highest + 1:05d}"

    @staticmethod
    def create_job(db: Session, **job_data) -> Job:
        job = Job(**job_data)
        db.add(job)
        db.flush()
        return job

    @staticmethod
    def add_line_item(db: Session, job: Job, **item_data) -> JobLineItem:
        item = JobLineItem(**item_data)
        job.line_items.append(item)
        return item

    @staticmethod
    def get_line_item(db: Session, job: Job, item_id: int) -> Optional[JobLineItem]:
        return db.query(JobLineItem).filter(JobLineItem.id == item_id, JobLineItem.job_id == job.id).first()

    @staticmethod
    def get_payment(db: Session, job: Job, payment_id: int) -> Optional[JobPayment]:
        return db.query(JobPayment).filter(JobPayment.id == payment_id, JobPayment.job_id == job.id).first()

    @staticmethod
    def add_note(db: Session, job: Job, note: str, user_id: Optional[int], note_type: str = "note") -> JobNote:
        job_note = JobNote(job_id=job.id, user_id=user_id, note=note, note_type=note_type)
        db.add(job_note)
        db.commit()
        db.refresh(job_note)
        return job_note

    @staticmethod
    def get_job_activities(db: Session, job: Job) -> list[Activity]:
        return (
            db.query(Activity)
            .filter(Activity.job_id == job.id, Activity.account_id == job.account_id)
            .order_by(Activity.created_at.asc(), Activity.id.asc())
            .all()
        )
