"""Client repository - Database operations for clients"""

from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models import Activity, Client
from ...models_invoice import Invoice
from ...models_job import Job


class ClientRepository:
    """Repository for client database operations"""

    @staticmethod
    def search_clients(
        db: Session,
        account_id: int,
        status: Optional[str] = None,
        search: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> list[Client]:
        """Clients for an account, filtered by status, free text and creation date"""
        query = db.query(Client).filter(Client.account_id == account_id)

        if status:
            query = query.filter(Client.status == status)

        if search:
            pattern = f"%{search}%"
            query = query.filter(
                or_(
                    Client.first_name.ilike(pattern),
                    Client.last_name.ilike(pattern),
                    Client.company_name.ilike(pattern),
                    Client.email.ilike(pattern),
                    Client.phone.ilike(pattern),
                )
            )

        if start_date:
            query = query.filter(Client.created_at >= start_date)
        if end_date:
            query = query.filter(Client.created_at <= end_date)

        return query.order_by(Client.created_at.desc(), Client.id.desc()).all()

    @staticmethod
    def get_client_by_id(db: Session, client_id: int, account_id: int) -> Optional[Client]:
        return db.query(Client).filter(Client.id == client_id, Client.account_id == account_id).first()

    @staticmethod
    def create_client(db: Session, account_id: int, **client_data) -> Client:
        client = Client(account_id=account_id, **client_data)
        db.add(client)
        db.commit()
        db.refresh(client)
        return client

    @staticmethod
    def update_client(db: Session, client: Client, **updates) -> Client:
        """Update a client with provided fields"""
        for key, value in updates.items():
            if value is not None and hasattr(client, key):
                setattr(client, key, value)

        db.commit()
        db.refresh(client)
        return client

    @staticmethod
    def has_billing_history(db: Session, client: Client) -> bool:
        has_jobs = db.query(Job.id).filter(Job.client_id == client.id).first() is not None
        has_invoices = db.query(Invoice.id).filter(Invoice.client_id == client.id).first() is not None
        return has_jobs or has_invoices

    @staticmethod
    def delete_client(db: Session, client: Client) -> None:
        db.delete(client)
        db.commit()

    @staticmethod
    def get_activities(db: Session, client_id: int, account_id: int, limit: int = 100) -> list[Activity]:
        return (
            db.query(Activity)
            .filter(Activity.client_id == client_id, Activity.account_id == account_id)
            .order_by(Activity.created_at.desc(), Activity.id.desc())
            .limit(limit)
            .all()
        )
