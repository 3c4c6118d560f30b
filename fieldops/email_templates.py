"""
HTML Email Templates
Table-based layout with inline styles for cross-client compatibility
"""

from html import escape
from typing import Optional

# App theme colors - Teal/Slate color scheme
THEME = {
    "primary": "#14b8a6",
    "background": "#f8fafc",
    "card_bg": "#ffffff",
    "text_primary": "#0f172a",
    "text_secondary": "#334155",
    "text_muted": "#64748b",
    "border": "#e2e8f0",
}

FONT_STACK = "-apple-system, BlinkMacSystemFont, 'Segoe UI', 'Helvetica Neue', Arial, sans-serif"


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
    business_name: str = "FieldOps Pro",
) -> str:
    """Base HTML wrapper for all emails"""

    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <tr><td align="center" style="padding: 20px 0;">
          <a href="{escape(cta_url, quote=True)}"
             style="background-color: {THEME['primary']}; color: #ffffff; font-weight: 600;
                    border-radius: 8px; padding: 16px 36px; font-size: 16px; text-decoration: none;
                    display: inline-block;">
            {escape(cta_label)}
          </a>
        </td></tr>
        """

    return f"""<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>{escape(title)}</title>
  </head>
  <body style="margin: 0; padding: 0; background-color: {THEME['background']}; font-family: {FONT_STACK};">
    <span style="display: none; max-height: 0; overflow: hidden;">{escape(preview_text)}</span>
    <table role="presentation" width="100%" cellpadding="0" cellspacing="0">
      <tr><td align="center" style="padding: 32px 16px;">
        <table role="presentation" width="600" cellpadding="0" cellspacing="0"
               style="background-color: {THEME['card_bg']}; border: 1px solid {THEME['border']}; border-radius: 12px;">
          <tr><td style="padding: 28px 32px 0 32px; font-size: 20px; font-weight: 700; color: {THEME['text_primary']};">
            {escape(business_name)}
          </td></tr>
          <tr><td style="padding: 16px 32px; font-size: 16px; line-height: 1.6; color: {THEME['text_secondary']};">
            {content_sections}
          </td></tr>
          {cta_section}
          <tr><td align="center" style="padding: 16px 32px 28px 32px; font-size: 12px; color: {THEME['text_muted']};">
            Sent by {escape(business_name)} via FieldOps Pro
          </td></tr>
        </table>
      </td></tr>
    </table>
  </body>
</html>"""


def estimate_sent_template(
    client_name: str,
    business_name: str,
    estimate_number: str,
    amount: float,
    view_url: str,
    valid_until: str = "",
) -> str:
    valid_section = f"<br/>Valid until: {escape(valid_until)}" if valid_until else ""
    content = f"""
    <p>Hi {escape(client_name)},</p>
    <p>Thanks for considering <strong>{escape(business_name)}</strong>. Your estimate is ready to review.</p>
    <p style="text-align: center; font-size: 32px; font-weight: 700; color: {THEME['text_primary']};">
      ${amount:,.2f}
    </p>
    <p style="font-size: 14px; color: {THEME['text_muted']};">Estimate: {escape(estimate_number)}{valid_section}</p>
    <p>You can review the details and approve it online.</p>
    """
    return get_base_template(
        title="Your Estimate",
        preview_text=f"Estimate {estimate_number} from {business_name}",
        content_sections=content,
        cta_url=view_url,
        cta_label="Review Estimate",
        business_name=business_name,
    )


def invoice_sent_template(
    client_name: str,
    business_name: str,
    invoice_number: str,
    amount: float,
    due_date: str = "",
    portal_url: str = "",
) -> str:
    """Invoice ready notification for client"""
    due_date_section = f"<br/>Due Date: {escape(due_date)}" if due_date else ""
    content = f"""
    <p>Hi {escape(client_name)},</p>
    <p>Your invoice from <strong>{escape(business_name)}</strong> is ready for payment.</p>
    <p style="text-align: center; font-size: 32px; font-weight: 700; color: {THEME['text_primary']};">
      ${amount:,.2f}
    </p>
    <p style="font-size: 14px; color: {THEME['text_muted']};">Invoice: {escape(invoice_number)}{due_date_section}</p>
    """
    return get_base_template(
        title="Invoice Ready",
        preview_text=f"Invoice Ready - {invoice_number}",
        content_sections=content,
        cta_url=portal_url or None,
        cta_label="View & Pay Invoice" if portal_url else None,
        business_name=business_name,
    )


def estimate_approved_template(business_name: str, client_name: str, estimate_number: str, signer_name: str) -> str:
    content = f"""
    <p><strong>{escape(client_name)}</strong> approved estimate <strong>{escape(estimate_number)}</strong>.</p>
    <p style="font-size: 14px; color: {THEME['text_muted']};">Signed by {escape(signer_name)}</p>
    <p>A quote job has been created and is ready to schedule.</p>
    """
    return get_base_template(
        title="Estimate Approved",
        preview_text=f"{client_name} approved {estimate_number}",
        content_sections=content,
        business_name=business_name,
    )


def contact_request_template(business_name: str, client_name: str, subject: str, message: str) -> str:
    content = f"""
    <p>New message from <strong>{escape(client_name)}</strong> via the customer portal.</p>
    <p><strong>{escape(subject)}</strong></p>
    <p style="white-space: pre-line;">{escape(message)}</p>
    """
    return get_base_template(
        title="Customer Message",
        preview_text=f"{client_name}: {subject}",
        content_sections=content,
        business_name=business_name,
    )
