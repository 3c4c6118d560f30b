"""Client service - Business logic for client operations"""

import csv
import logging
from io import StringIO
from typing import Optional

from fastapi import HTTPException
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from ...auth import AccountContext
from ...models import Activity, Client
from ...services.activity_service import ACTIVITY_TYPES, log_activity
from ...shared.dates import parse_iso_datetime, utcnow
from ...utils.sanitization import clean_text_input
from .repository import ClientRepository
from .schemas import ActivityCreate, ClientCreate, ClientUpdate

logger = logging.getLogger(__name__)

FIELD_MAP = {
    "firstName": "first_name",
    "lastName": "last_name",
    "companyName": "company_name",
    "email": "email",
    "phone": "phone",
    "address": "address",
    "city": "city",
    "state": "state",
    "zipCode": "zip_code",
    "notes": "notes",
    "source": "source",
    "status": "status",
}


class ClientService:
    """Service layer for client business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ClientRepository()

    def get_clients(self, context: AccountContext, search: Optional[str] = None, status: Optional[str] = None) -> list[Client]:
        return self.repo.search_clients(self.db, context.account_id, status=status, search=search)

    def get_client(self, client_id: int, context: AccountContext) -> Client:
        client = self.repo.get_client_by_id(self.db, client_id, context.account_id)
        if not client:
            raise HTTPException(status_code=404, detail="Client not found")
        return client

    def _mapped(self, data) -> dict:
        values = {}
        for field, column in FIELD_MAP.items():
            value = getattr(data, field, None)
            if value is not None:
                values[column] = value.strip() if isinstance(value, str) else value
        return values

    def create_client(self, data: ClientCreate, context: AccountContext) -> Client:
        if not (data.firstName or data.lastName or data.companyName):
            raise HTTPException(status_code=400, detail="A name or company name is required")

        logger.info(f"📥 Creating client for account {context.account_id}")
        client = self.repo.create_client(self.db, context.account_id, status="active", **self._mapped(data))
        return client

    def update_client(self, client_id: int, data: ClientUpdate, context: AccountContext) -> Client:
        client = self.get_client(client_id, context)
        return self.repo.update_client(self.db, client, **self._mapped(data))

    def delete_client(self, client_id: int, context: AccountContext) -> dict:
        client = self.get_client(client_id, context)
        if self.repo.has_billing_history(self.db, client):
            raise HTTPException(
                status_code=409,
                detail="Client has jobs or invoices. Mark the client inactive instead.",
            )
        self.repo.delete_client(self.db, client)
        logger.info(f"🗑️ Deleted client {client_id} from account {context.account_id}")
        return {"message": "Client deleted"}

    def get_timeline(self, client_id: int, context: AccountContext) -> list[Activity]:
        self.get_client(client_id, context)
        return self.repo.get_activities(self.db, client_id, context.account_id)

    def add_activity(self, client_id: int, data: ActivityCreate, context: AccountContext) -> Activity:
        client = self.get_client(client_id, context)
        if data.activityType not in ACTIVITY_TYPES:
            raise HTTPException(status_code=400, detail=f"Invalid activity type: {data.activityType}")

        is_task = data.dueDate is not None
        return log_activity(
            self.db,
            context.account_id,
            client.id,
            data.activityType,
            clean_text_input(data.title, max_length=255),
            description=clean_text_input(data.description, max_length=2000) or None,
            status="pending" if is_task else "completed",
            due_date=data.dueDate,
            created_by=context.user_id,
        )

    def complete_activity(self, client_id: int, activity_id: int, context: AccountContext) -> Activity:
        activity = (
            self.db.query(Activity)
            .filter(
                Activity.id == activity_id,
                Activity.client_id == client_id,
                Activity.account_id == context.account_id,
            )
            .first()
        )
        if not activity:
            raise HTTPException(status_code=404, detail="Activity not found")

        activity.status = "completed"
        activity.completed_at = utcnow()
        self.db.commit()
        self.db.refresh(activity)
        return activity

    def export_clients_csv(
        self,
        context: AccountContext,
        status: Optional[str] = None,
        search: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> StreamingResponse:
        """Export clients as CSV"""
        logger.info(f"📊 CSV Export requested by user {context.user_id} for account {context.account_id}")

        clients = self.repo.search_clients(
            self.db,
            context.account_id,
            status,
            search,
            parse_iso_datetime(start_date),
            parse_iso_datetime(end_date),
        )

        output = StringIO()
        writer = csv.writer(output)
        writer.writerow(
            [
                "ID",
                "First Name",
                "Last Name",
                "Company",
                "Email",
                "Phone",
                "Address",
                "City",
                "State",
                "ZIP",
                "Status",
                "Source",
                "Notes",
                "Created At",
            ]
        )
        for client in clients:
            writer.writerow(
                [
                    client.id,
                    client.first_name or "",
                    client.last_name or "",
                    client.company_name or "",
                    client.email or "",
                    client.phone or "",
                    client.address or "",
                    client.city or "",
                    client.state or "",
                    client.zip_code or "",
                    client.status or "",
                    client.source or "",
                    client.notes or "",
                    client.created_at.isoformat() if client.created_at else "",
                ]
            )

        output.seek(0)
        filename = f"clients_{utcnow().strftime('%Y%m%d')}.csv"
        logger.info(f"✅ Exported {len(clients)} clients")
        return StreamingResponse(
            iter([output.getvalue()]),
            media_type="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )
