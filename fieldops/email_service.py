"""
Email Service using Resend
Transactional emails to clients and staff
"""

import logging
from typing import Optional, Union

import resend

from .config import EMAIL_FROM_ADDRESS, FRONTEND_URL, RESEND_API_KEY
from .email_templates import (
    contact_request_template,
    estimate_approved_template,
    estimate_sent_template,
    invoice_sent_template,
)

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    html: str,
    from_address: Optional[str] = None,
    reply_to: Optional[str] = None,
) -> dict:
    """
    Send an email through Resend

    Args:
        to: Recipient email(s)
        subject: Email subject line
        html: Rendered HTML body
        from_address: Optional custom from address
        reply_to: Optional reply-to address (the business inbox)

    Returns:
        Send response dict
    """
    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise Exception("Email service not configured")

    recipients = [to] if isinstance(to, str) else to
    email_data = {
        "from": from_address or EMAIL_FROM_ADDRESS,
        "to": recipients,
        "subject": subject,
        "html": html,
    }
    if reply_to:
        email_data["reply_to"] = reply_to

    try:
        logger.info(f"📧 Sending email via Resend to: {recipients}")
        response = resend.Emails.send(email_data)
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return response
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise Exception(f"Failed to send email: {str(e)}") from e


def _business_name(settings) -> str:
    return (settings.business_name if settings else None) or "FieldOps Pro"


def _reply_to(settings) -> Optional[str]:
    return settings.reply_to_email if settings else None


async def send_estimate_email(estimate, settings=None) -> dict:
    client = estimate.client
    business_name = _business_name(settings)
    html = estimate_sent_template(
        client_name=client.display_name,
        business_name=business_name,
        estimate_number=estimate.estimate_number,
        amount=estimate.total_amount or 0,
        view_url=f"{FRONTEND_URL}/estimates/view/{estimate.public_id}",
        valid_until=estimate.valid_until.strftime("%B %d, %Y") if estimate.valid_until else "",
    )
    return await send_email(
        to=client.email,
        subject=f"Estimate {estimate.estimate_number} from {business_name}",
        html=html,
        reply_to=_reply_to(settings),
    )


async def send_invoice_email(invoice, settings=None) -> dict:
    client = invoice.client
    business_name = _business_name(settings)
    html = invoice_sent_template(
        client_name=client.display_name,
        business_name=business_name,
        invoice_number=invoice.invoice_number,
        amount=invoice.balance_due,
        due_date=invoice.due_date.strftime("%B %d, %Y") if invoice.due_date else "",
        portal_url=f"{FRONTEND_URL}/portal/invoices/{invoice.public_id}",
    )
    return await send_email(
        to=client.email,
        subject=f"Invoice {invoice.invoice_number} from {business_name}",
        html=html,
        reply_to=_reply_to(settings),
    )


async def send_estimate_approved_notification(estimate, signer_name: str, settings=None) -> Optional[dict]:
    to = _reply_to(settings)
    if not to:
        return None
    html = estimate_approved_template(
        business_name=_business_name(settings),
        client_name=estimate.client.display_name,
        estimate_number=estimate.estimate_number,
        signer_name=signer_name,
    )
    return await send_email(to=to, subject=f"Estimate {estimate.estimate_number} approved", html=html)


async def send_contact_request_notification(client, subject: str, message: str, settings=None) -> Optional[dict]:
    to = _reply_to(settings)
    if not to:
        return None
    html = contact_request_template(
        business_name=_business_name(settings),
        client_name=client.display_name,
        subject=subject,
        message=message,
    )
    return await send_email(to=to, subject=f"Portal message: {subject}", html=html, reply_to=client.email)
