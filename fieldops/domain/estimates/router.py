"""Estimate router - Staff endpoints plus the public view/approve/decline link"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from ...auth import AccountContext, require_staff
from ...database import get_db
from ...rate_limiter import create_rate_limiter, get_client_ip
from .schemas import (
    EstimateApproval,
    EstimateCreate,
    EstimateDecline,
    EstimateResponse,
    EstimateUpdate,
    PublicEstimateResponse,
    estimate_to_public_response,
    estimate_to_response,
)
from .service import EstimateService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/estimates", tags=["Estimates"])

rate_limit_approvals = create_rate_limiter(limit=10, window_seconds=3600, key_prefix="estimate_approval")


def get_estimate_service(db: Session = Depends(get_db)) -> EstimateService:
    """Dependency injection for EstimateService"""
    return EstimateService(db)


@router.get("", response_model=list[EstimateResponse])
async def list_estimates(
    status: Optional[str] = Query(None),
    client_id: Optional[int] = Query(None, alias="clientId"),
    context: AccountContext = Depends(require_staff),
    service: EstimateService = Depends(get_estimate_service),
):
    return [estimate_to_response(e) for e in service.list_estimates(context, status, client_id)]


@router.get("/stats")
async def get_estimate_stats(
    context: AccountContext = Depends(require_staff),
    service: EstimateService = Depends(get_estimate_service),
):
    """Counts by status and the sent-to-accepted conversion rate"""
    return service.get_stats(context)


@router.post("", response_model=EstimateResponse, status_code=201)
async def create_estimate(
    data: EstimateCreate,
    context: AccountContext = Depends(require_staff),
    service: EstimateService = Depends(get_estimate_service),
):
    return estimate_to_response(service.create_estimate(data, context))


@router.get("/public/{public_id}", response_model=PublicEstimateResponse)
async def view_public_estimate(public_id: str, service: EstimateService = Depends(get_estimate_service)):
    estimate, business_name = service.view_public_estimate(public_id)
    return estimate_to_public_response(estimate, business_name)


@router.post("/public/{public_id}/approve")
async def approve_public_estimate(
    public_id: str,
    data: EstimateApproval,
    request: Request,
    service: EstimateService = Depends(get_estimate_service),
    _: None = Depends(rate_limit_approvals),
):
    """Client approval with typed name and signature. Creates a quote job."""
    return await service.approve_estimate(
        public_id, data, ip_address=get_client_ip(request), user_agent=request.headers.get("user-agent")
    )


@router.post("/public/{public_id}/decline")
async def decline_public_estimate(
    public_id: str,
    data: EstimateDecline,
    service: EstimateService = Depends(get_estimate_service),
    _: None = Depends(rate_limit_approvals),
):
    return service.decline_estimate(public_id, data.reason)


@router.get("/{estimate_id}", response_model=EstimateResponse)
async def get_estimate(
    estimate_id: int,
    context: AccountContext = Depends(require_staff),
    service: EstimateService = Depends(get_estimate_service),
):
    return estimate_to_response(service.get_estimate(estimate_id, context))


@router.put("/{estimate_id}", response_model=EstimateResponse)
async def update_estimate(
    estimate_id: int,
    data: EstimateUpdate,
    context: AccountContext = Depends(require_staff),
    service: EstimateService = Depends(get_estimate_service),
):
    return estimate_to_response(service.update_estimate(estimate_id, data, context))


@router.delete("/{estimate_id}")
async def delete_estimate(
    estimate_id: int,
    context: AccountContext = Depends(require_staff),
    service: EstimateService = Depends(get_estimate_service),
):
    return service.delete_estimate(estimate_id, context)


@router.post("/{estimate_id}/send")
async def send_estimate(
    estimate_id: int,
    context: AccountContext = Depends(require_staff),
    service: EstimateService = Depends(get_estimate_service),
):
    """Mark sent, email the client and schedule the follow-up"""
    result = await service.send_estimate(estimate_id, context)
    result["estimate"] = estimate_to_response(result["estimate"])
    return result
