"""
Square Service
Token storage, refresh, customer import and payment links for an account's
Square connection. All Square calls go through httpx.
"""

import base64
import hashlib
import logging
import uuid
from datetime import timedelta
from typing import Optional

import httpx
from cryptography.fernet import Fernet
from fastapi import HTTPException
from sqlalchemy.orm import Session

from ..config import (
    SECRET_KEY,
    SQUARE_APPLICATION_ID,
    SQUARE_APPLICATION_SECRET,
    SQUARE_ENCRYPTION_KEY,
    SQUARE_ENVIRONMENT,
)
from ..models import Client
from ..models_invoice import Invoice
from ..models_square import SquareIntegration
from ..shared.dates import parse_iso_datetime, utcnow

logger = logging.getLogger(__name__)

# Sandbox and production use different hosts
if SQUARE_ENVIRONMENT == "production":
    SQUARE_OAUTH_URL = "https://connect.squareup.com"
    SQUARE_API_URL = "https://connect.squareup.com/v2"
else:
    SQUARE_OAUTH_URL = "https://connect.squareupsandbox.com"
    SQUARE_API_URL = "https://connect.squareupsandbox.com/v2"

SQUARE_VERSION = "2024-12-18"
TOKEN_REFRESH_WINDOW = timedelta(minutes=5)
CUSTOMER_PAGE_LIMIT = 100

_cipher: Optional[Fernet] = None


def get_cipher() -> Fernet:
    global _cipher
    if _cipher is None:
        if SQUARE_ENCRYPTION_KEY:
            key = SQUARE_ENCRYPTION_KEY.encode()
        else:
            key = base64.urlsafe_b64encode(hashlib.sha256(SECRET_KEY.encode()).digest())
        _cipher = Fernet(key)
    return _cipher


def encrypt_token(token: str) -> str:
    """Encrypt a token for storage"""
    return get_cipher().encrypt(token.encode()).decode()


def decrypt_token(encrypted_token: str) -> str:
    """Decrypt a stored token"""
    return get_cipher().decrypt(encrypted_token.encode()).decode()


def square_headers(access_token: Optional[str] = None) -> dict:
    headers = {"Square-Version": SQUARE_VERSION, "Content-Type": "application/json"}
    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"
    return headers


def get_integration(db: Session, account_id: int, active_only: bool = True) -> Optional[SquareIntegration]:
    query = db.query(SquareIntegration).filter(SquareIntegration.account_id == account_id)
    if active_only:
        query = query.filter(SquareIntegration.is_active.is_(True))
    return query.first()


def store_tokens(db: Session, account_id: int, token_data: dict) -> SquareIntegration:
    """Create or update the account's integration from an OAuth token response"""
    access_token = token_data.get("access_token")
    merchant_id = token_data.get("merchant_id")
    if not access_token or not merchant_id:
        raise HTTPException(status_code=400, detail="Invalid token response from Square")

    refresh_token = token_data.get("refresh_token")
    integration = get_integration(db, account_id, active_only=False)
    if not integration:
        integration = SquareIntegration(account_id=account_id)
        db.add(integration)

    integration.merchant_id = merchant_id
    integration.access_token = encrypt_token(access_token)
    integration.refresh_token = encrypt_token(refresh_token) if refresh_token else None
    integration.token_expires_at = parse_iso_datetime(token_data.get("expires_at"))
    integration.is_active = True
    integration.updated_at = utcnow()
    db.commit()
    db.refresh(integration)
    return integration


async def exchange_code_for_tokens(code: str, redirect_uri: str) -> dict:
    if not SQUARE_APPLICATION_ID or not SQUARE_APPLICATION_SECRET:
        raise HTTPException(status_code=500, detail="Square not configured")

    async with httpx.AsyncClient(timeout=30.0) as http_client:
        response = await http_client.post(
            f"{SQUARE_OAUTH_URL}/oauth2/token",
            json={
                "client_id": SQUARE_APPLICATION_ID,
                "client_secret": SQUARE_APPLICATION_SECRET,
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": redirect_uri,
            },
            headers=square_headers(),
        )

    if response.status_code != 200:
        logger.error(f"❌ Square token exchange failed: {response.text}")
        raise HTTPException(status_code=400, detail="Failed to exchange authorization code")
    return response.json()


async def refresh_access_token(db: Session, integration: SquareIntegration) -> str:
    if not integration.refresh_token:
        raise HTTPException(status_code=401, detail="Square token expired. Please reconnect Square.")

    async with httpx.AsyncClient(timeout=30.0) as http_client:
        response = await http_client.post(
            f"{SQUARE_OAUTH_URL}/oauth2/token",
            json={
                "client_id": SQUARE_APPLICATION_ID,
                "client_secret": SQUARE_APPLICATION_SECRET,
                "refresh_token": decrypt_token(integration.refresh_token),
                "grant_type": "refresh_token",
            },
            headers=square_headers(),
        )

    if response.status_code != 200:
        logger.error(f"❌ Square token refresh failed for account {integration.account_id}: {response.text}")
        raise HTTPException(status_code=401, detail="Square token refresh failed. Please reconnect Square.")

    token_data = response.json()
    token_data.setdefault("merchant_id", integration.merchant_id)
    store_tokens(db, integration.account_id, token_data)
    logger.info(f"🔄 Refreshed Square token for account {integration.account_id}")
    return token_data["access_token"]


async def get_valid_access_token(db: Session, integration: SquareIntegration) -> str:
    """Return a usable access token, refreshing when it expires within five minutes"""
    expires_at = integration.token_expires_at
    if expires_at and expires_at - utcnow() <= TOKEN_REFRESH_WINDOW:
        return await refresh_access_token(db, integration)
    return decrypt_token(integration.access_token)


async def get_location_id(db: Session, integration: SquareIntegration, access_token: str) -> str:
    """
    First active location for the merchant, cached on the integration.
    Square requires a location_id for orders and payment links.
    """
    if integration.location_id:
        return integration.location_id

    async with httpx.AsyncClient(timeout=30.0) as http_client:
        response = await http_client.get(f"{SQUARE_API_URL}/locations", headers=square_headers(access_token))

    if response.status_code != 200:
        logger.error(f"❌ Failed to fetch Square locations: {response.text}")
        raise HTTPException(status_code=502, detail="Failed to fetch Square locations")

    locations = response.json().get("locations", [])
    if not locations:
        raise HTTPException(status_code=400, detail="No Square locations found for this merchant")

    active = [location for location in locations if location.get("status") == "ACTIVE"]
    location_id = (active or locations)[0]["id"]
    integration.location_id = location_id
    db.commit()
    return location_id


def _client_fields_from_customer(customer: dict) -> dict:
    address = customer.get("address") or {}
    return {
        "first_name": customer.get("given_name"),
        "last_name": customer.get("family_name"),
        "company_name": customer.get("company_name"),
        "email": customer.get("email_address"),
        "phone": customer.get("phone_number"),
        "address": address.get("address_line_1"),
        "city": address.get("locality"),
        "state": address.get("administrative_district_level_1"),
        "zip_code": address.get("postal_code"),
    }


async def import_customers(db: Session, account_id: int) -> dict:
    """Page through Square customers and upsert clients by square_customer_id"""
    integration = get_integration(db, account_id)
    if not integration:
        raise HTTPException(status_code=404, detail="Square not connected")

    access_token = await get_valid_access_token(db, integration)
    created = 0
    updated = 0
    cursor = None

    async with httpx.AsyncClient(timeout=30.0) as http_client:
        while True:
            params = {"limit": CUSTOMER_PAGE_LIMIT}
            if cursor:
                params["cursor"] = cursor
            response = await http_client.get(
                f"{SQUARE_API_URL}/customers", params=params, headers=square_headers(access_token)
            )
            if response.status_code != 200:
                logger.error(f"❌ Square customer import failed for account {account_id}: {response.text}")
                db.rollback()
                raise HTTPException(status_code=502, detail="Failed to fetch Square customers")

            data = response.json()
            for customer in data.get("customers", []):
                fields = _client_fields_from_customer(customer)
                client = (
                    db.query(Client)
                    .filter(Client.account_id == account_id, Client.square_customer_id == customer["id"])
                    .first()
                )
                if client:
                    for key, value in fields.items():
                        if value:
                            setattr(client, key, value)
                    updated += 1
                else:
                    db.add(
                        Client(
                            account_id=account_id,
                            square_customer_id=customer["id"],
                            source="square",
                            status="active",
                            **fields,
                        )
                    )
                    created += 1

            cursor = data.get("cursor")
            if not cursor:
                break

    integration.last_customer_sync_at = utcnow()
    db.commit()
    logger.info(f"✅ Square import for account {account_id}: {created} created, {updated} updated")
    return {"created": created, "updated": updated, "total": created + updated}


async def create_payment_link(db: Session, invoice: Invoice) -> str:
    """Create (or reuse) a Square quick-pay link for the invoice's balance"""
    if invoice.square_payment_url:
        return invoice.square_payment_url

    integration = get_integration(db, invoice.account_id)
    if not integration:
        raise HTTPException(status_code=400, detail="Online payments are not available for this business")

    access_token = await get_valid_access_token(db, integration)
    location_id = await get_location_id(db, integration, access_token)
    amount_cents = int(round(invoice.balance_due * 100))
    if amount_cents <= 0:
        raise HTTPException(status_code=400, detail="Invoice has no balance due")

    payload = {
        "idempotency_key": str(uuid.uuid4()),
        "quick_pay": {
            "name": f"Invoice {invoice.invoice_number}",
            "price_money": {"amount": amount_cents, "currency": invoice.currency or "USD"},
            "location_id": location_id,
        },
        "payment_note": f"Invoice {invoice.invoice_number}",
    }

    async with httpx.AsyncClient(timeout=30.0) as http_client:
        response = await http_client.post(
            f"{SQUARE_API_URL}/online-checkout/payment-links", json=payload, headers=square_headers(access_token)
        )

    if response.status_code not in (200, 201):
        logger.error(f"❌ Square payment link failed for invoice {invoice.id}: {response.text}")
        raise HTTPException(status_code=502, detail="Failed to create payment link")

    link = response.json().get("payment_link", {})
    invoice.square_payment_link_id = link.get("id")
    invoice.square_payment_url = link.get("url")
    db.commit()
    logger.info(f"💳 Square payment link created for invoice {invoice.invoice_number}")
    return invoice.square_payment_url


async def revoke_tokens(integration: SquareIntegration) -> None:
    access_token = decrypt_token(integration.access_token)
    async with httpx.AsyncClient(timeout=30.0) as http_client:
        response = await http_client.post(
            f"{SQUARE_OAUTH_URL}/oauth2/revoke",
            json={"client_id": SQUARE_APPLICATION_ID, "access_token": access_token},
            headers={**square_headers(), "Authorization": f"Client {SQUARE_APPLICATION_SECRET}"},
        )
    if response.status_code != 200:
        logger.warning(f"⚠️ Square token revoke returned {response.status_code} for account {integration.account_id}")
