"""
Square OAuth and customer import
Connects an account's Square merchant for customer import and portal payments
"""

import logging
import secrets
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import AccountContext, require_permission, require_staff
from ..config import SQUARE_APPLICATION_ID, SQUARE_ENVIRONMENT, SQUARE_REDIRECT_URI
from ..database import get_db
from ..services.square_service import (
    SQUARE_OAUTH_URL,
    exchange_code_for_tokens,
    get_integration,
    import_customers,
    revoke_tokens,
    store_tokens,
)
from ..shared.dates import utcnow

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/square", tags=["square"])

OAUTH_SCOPES = "MERCHANT_PROFILE_READ PAYMENTS_WRITE ORDERS_WRITE CUSTOMERS_READ"


class SquareStatusResponse(BaseModel):
    connected: bool
    merchant_id: Optional[str] = None
    location_id: Optional[str] = None
    last_customer_sync_at: Optional[str] = None


@router.post("/oauth/initiate")
async def initiate_oauth(context: AccountContext = Depends(require_permission("manage_account"))):
    """
    Initiate Square OAuth 2.0 flow
    Returns the authorization URL the frontend redirects to
    """
    if not SQUARE_APPLICATION_ID:
        raise HTTPException(status_code=500, detail="Square not configured")

    state = secrets.token_urlsafe(32)
    # Square expects spaces in scope to be encoded as + signs
    oauth_url = (
        f"{SQUARE_OAUTH_URL}/oauth2/authorize"
        f"?client_id={SQUARE_APPLICATION_ID}"
        f"&response_type=code"
        f"&scope={OAUTH_SCOPES.replace(' ', '+')}"
        f"&state={state}"
        f"&redirect_uri={quote(SQUARE_REDIRECT_URI, safe='')}"
    )

    logger.info(f"🔗 Square OAuth initiated for account {context.account_id} ({SQUARE_ENVIRONMENT})")
    return {"oauth_url": oauth_url, "state": state}


@router.get("/callback-handler")
async def oauth_callback_handler(
    code: str,
    state: Optional[str] = None,
    context: AccountContext = Depends(require_permission("manage_account")),
    db: Session = Depends(get_db),
):
    """
    Complete Square OAuth 2.0 flow
    Called by the frontend after Square redirects with an authorization code
    """
    try:
        token_data = await exchange_code_for_tokens(code, SQUARE_REDIRECT_URI)
        integration = store_tokens(db, context.account_id, token_data)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"❌ Square OAuth callback error for account {context.account_id}: {e}")
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to complete Square connection") from e

    logger.info(f"✅ Square connected for account {context.account_id}")
    return {"success": True, "merchant_id": integration.merchant_id}


@router.get("/status", response_model=SquareStatusResponse)
async def get_status(
    context: AccountContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    integration = get_integration(db, context.account_id)
    if not integration:
        return SquareStatusResponse(connected=False)

    return SquareStatusResponse(
        connected=True,
        merchant_id=integration.merchant_id,
        location_id=integration.location_id,
        last_customer_sync_at=(
            integration.last_customer_sync_at.isoformat() if integration.last_customer_sync_at else None
        ),
    )


@router.post("/disconnect")
async def disconnect(
    context: AccountContext = Depends(require_permission("manage_account")),
    db: Session = Depends(get_db),
):
    integration = get_integration(db, context.account_id, active_only=False)
    if not integration or not integration.is_active:
        raise HTTPException(status_code=404, detail="Square not connected")

    try:
        await revoke_tokens(integration)
    except Exception as e:
        # The local connection is removed even when Square is unreachable
        logger.error(f"❌ Square revoke failed for account {context.account_id}: {e}")

    integration.is_active = False
    integration.updated_at = utcnow()
    db.commit()
    logger.info(f"🔌 Square disconnected for account {context.account_id}")
    return {"success": True}


@router.post("/import-customers")
async def import_square_customers(
    context: AccountContext = Depends(require_staff),
    db: Session = Depends(get_db),
):
    """Upsert clients from the merchant's Square customer directory"""
    return await import_customers(db, context.account_id)
