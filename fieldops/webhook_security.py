"""
Webhook Security Module

Shared-secret and HMAC verification for the inbound email webhook and the
automation cron trigger. All comparisons are constant-time.
"""

import hashlib
import hmac
import logging
from typing import Optional

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)


def constant_time_compare(a: Optional[str], b: Optional[str]) -> bool:
    """
    Compare two strings in constant time to prevent timing attacks.
    Empty values never match.
    """
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    """Compute HMAC-SHA256 signature of payload"""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_shared_secret(provided: Optional[str], secret: Optional[str]) -> bool:
    """True when a secret is configured and the provided header matches it"""
    return constant_time_compare(provided, secret)


async def verify_email_webhook(request: Request, secret: Optional[str], raise_on_failure: bool = True) -> bool:
    """
    Verify an inbound email webhook.

    Accepts either:
    - Header 'X-Webhook-Secret' equal to the shared secret
    - Header 'X-Webhook-Signature' of the form "sha256=<hex hmac of body>"

    Returns:
        True when verified
    """
    if not secret:
        logger.error("❌ EMAIL_WEBHOOK_SECRET not configured - rejecting email webhook")
        if raise_on_failure:
            raise HTTPException(status_code=503, detail="Email intake is not configured")
        return False

    if verify_shared_secret(request.headers.get("X-Webhook-Secret"), secret):
        return True

    signature_header = request.headers.get("X-Webhook-Signature", "")
    if signature_header:
        raw_body = await request.body()
        expected_header = f"sha256={compute_hmac_sha256(secret, raw_body)}"
        if constant_time_compare(expected_header, signature_header):
            return True
        logger.warning("🚫 Email webhook signature mismatch")
    else:
        logger.warning("🚫 Email webhook missing secret header")

    if raise_on_failure:
        raise HTTPException(status_code=401, detail="Invalid webhook credentials")
    return False
