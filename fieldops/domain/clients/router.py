"""Client router - FastAPI endpoints for client operations"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import AccountContext, require_permission, require_staff
from ...database import get_db
from .schemas import (
    ActivityCreate,
    ActivityResponse,
    ClientCreate,
    ClientResponse,
    ClientUpdate,
    activity_to_response,
    client_to_response,
)
from .service import ClientService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/clients", tags=["Clients"])


def get_client_service(db: Session = Depends(get_db)) -> ClientService:
    """Dependency injection for ClientService"""
    return ClientService(db)


@router.get("", response_model=list[ClientResponse])
async def get_clients(
    search: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    context: AccountContext = Depends(require_staff),
    service: ClientService = Depends(get_client_service),
):
    """List clients, searching over name, company, email and phone"""
    return [client_to_response(c) for c in service.get_clients(context, search, status)]


@router.get("/export")
async def export_clients_csv(
    context: AccountContext = Depends(require_permission("export_data")),
    service: ClientService = Depends(get_client_service),
    status: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
):
    """Export clients as CSV with optional filters"""
    return service.export_clients_csv(context, status, search, start_date, end_date)


@router.post("", response_model=ClientResponse, status_code=201)
async def create_client(
    data: ClientCreate,
    context: AccountContext = Depends(require_staff),
    service: ClientService = Depends(get_client_service),
):
    return client_to_response(service.create_client(data, context))


@router.get("/{client_id}", response_model=ClientResponse)
async def get_client(
    client_id: int,
    context: AccountContext = Depends(require_staff),
    service: ClientService = Depends(get_client_service),
):
    return client_to_response(service.get_client(client_id, context))


@router.put("/{client_id}", response_model=ClientResponse)
async def update_client(
    client_id: int,
    data: ClientUpdate,
    context: AccountContext = Depends(require_staff),
    service: ClientService = Depends(get_client_service),
):
    return client_to_response(service.update_client(client_id, data, context))


@router.delete("/{client_id}")
async def delete_client(
    client_id: int,
    context: AccountContext = Depends(require_staff),
    service: ClientService = Depends(get_client_service),
):
    return service.delete_client(client_id, context)


@router.get("/{client_id}/timeline", response_model=list[ActivityResponse])
async def get_client_timeline(
    client_id: int,
    context: AccountContext = Depends(require_staff),
    service: ClientService = Depends(get_client_service),
):
    """Activity timeline, newest first"""
    return [activity_to_response(a) for a in service.get_timeline(client_id, context)]


@router.post("/{client_id}/activities", response_model=ActivityResponse, status_code=201)
async def add_client_activity(
    client_id: int,
    data: ActivityCreate,
    context: AccountContext = Depends(require_staff),
    service: ClientService = Depends(get_client_service),
):
    """Log an activity. Activities with a due date are created as pending tasks."""
    return activity_to_response(service.add_activity(client_id, data, context))


@router.post("/{client_id}/activities/{activity_id}/complete", response_model=ActivityResponse)
async def complete_client_activity(
    client_id: int,
    activity_id: int,
    context: AccountContext = Depends(require_staff),
    service: ClientService = Depends(get_client_service),
):
    return activity_to_response(service.complete_activity(client_id, activity_id, context))
