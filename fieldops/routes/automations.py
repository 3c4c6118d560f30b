"""
Automation API Routes

Queue inspection and cancellation for staff, plus the run trigger used by
an external cron (X-Cron-Secret) or a staff member.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from ..auth import AccountContext, get_current_user, require_permission, resolve_account_context, security
from ..config import AUTOMATION_CRON_SECRET
from ..database import get_db
from ..models_automation import Automation
from ..services.automation_queue import AUTOMATION_STATUSES, cancel_automation, list_automations_with_history
from ..services.automation_runner import run_due_automations
from ..webhook_security import verify_shared_secret

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Automations"])


def automation_to_dict(automation: Automation) -> dict:
    return {
        "id": automation.id,
        "type": automation.type,
        "relatedId": automation.related_id,
        "status": automation.status,
        "runAt": automation.run_at.isoformat() if automation.run_at else None,
        "payload": automation.payload,
        "result": automation.result,
        "attempts": automation.attempts or 0,
        "lastAttempt": automation.last_attempt.isoformat() if automation.last_attempt else None,
        "history": [
            {
                "status": entry.status,
                "message": entry.message,
                "createdAt": entry.created_at.isoformat() if entry.created_at else None,
            }
            for entry in automation.history
        ],
    }


async def authorize_automation_run(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> Optional[AccountContext]:
    """
    Cron callers present X-Cron-Secret and run every account's due rows.
    Staff callers run only their own account's rows.
    """
    if verify_shared_secret(request.headers.get("X-Cron-Secret"), AUTOMATION_CRON_SECRET):
        return None

    user = await get_current_user(request, credentials, db)
    context = resolve_account_context(db, user)
    if not context.is_staff:
        logger.warning(f"🚫 User {context.user_id} with role {context.role} tried to run automations")
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    return context


@router.get("/automations")
async def list_automations(
    status: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    context: AccountContext = Depends(require_permission("manage_automations")),
    db: Session = Depends(get_db),
):
    if status and status != "all" and status not in AUTOMATION_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status: {status}")
    automations = list_automations_with_history(db, context.account_id, status, limit)
    return [automation_to_dict(a) for a in automations]


@router.post("/automations/{automation_id}/cancel")
async def cancel_pending_automation(
    automation_id: int,
    context: AccountContext = Depends(require_permission("manage_automations")),
    db: Session = Depends(get_db),
):
    automation = cancel_automation(db, context.account_id, automation_id)
    if automation:
        logger.info(f"🛑 Automation {automation_id} cancelled by user {context.user_id}")
        return automation_to_dict(automation)

    exists = (
        db.query(Automation.id)
        .filter(Automation.id == automation_id, Automation.account_id == context.account_id)
        .first()
    )
    if not exists:
        raise HTTPException(status_code=404, detail="Automation not found")
    raise HTTPException(status_code=409, detail="Only pending automations can be cancelled")


async def _run(db: Session, context: Optional[AccountContext]) -> dict:
    account_id = context.account_id if context else None
    logger.info(f"⏰ Automation run triggered ({'cron' if context is None else f'user {context.user_id}'})")
    try:
        return await run_due_automations(db, account_id=account_id)
    except Exception as e:
        logger.error(f"❌ Automation run failed: {e}")
        raise HTTPException(status_code=500, detail="Automation run failed") from e


@router.post("/automation/run")
async def run_automations(
    context: Optional[AccountContext] = Depends(authorize_automation_run),
    db: Session = Depends(get_db),
):
    """Claim and process due automations. Returns {attempted, processed, results}."""
    return await _run(db, context)


@router.get("/automation/run")
async def run_automations_get(
    context: Optional[AccountContext] = Depends(authorize_automation_run),
    db: Session = Depends(get_db),
):
    return await _run(db, context)
