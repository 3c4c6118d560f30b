"""
Email intelligence
Structured analysis of one inbound email with OpenAI JSON mode over httpx, plus the
keyword fallback used when no AI provider is configured.
"""

import json
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..models_email import EmailInsight, EmailRaw
from ..shared.dates import utcnow
from .ai_messages import AIResponseError, create_chat_completion
from .email_categorization import categorize_email_with_keywords

logger = logging.getLogger(__name__)

EMAIL_CATEGORIES = [
    "LEAD_NEW",
    "LEAD_FOLLOWUP",
    "BILLING_INCOMING_INVOICE",
    "BILLING_OUTGOING_INVOICE",
    "BILLING_PAYMENT_RECEIVED",
    "BILLING_PAYMENT_ISSUE",
    "SCHEDULING_REQUEST",
    "SCHEDULING_CHANGE",
    "CUSTOMER_SUPPORT",
    "VENDOR_RECEIPT",
    "SYSTEM_SECURITY",
    "NEWSLETTER_PROMO",
    "SPAM_OTHER",
]

PRIORITIES = ["low", "medium", "high", "urgent"]

ACTION_TYPES = [
    "respond_to_lead",
    "send_invoice",
    "review_invoice",
    "record_payment",
    "confirm_schedule",
    "reschedule",
    "resolve_issue",
    "file_for_records",
    "none",
]

ANALYSIS_TEMPERATURE = 0.1
ANALYSIS_MAX_TOKENS = 1000

ANALYSIS_PROMPT = """You are the email intelligence engine for a small home services company
(handyman, home maintenance and interior painting work).

Read one email (subject + body + sender) and return a STRICT JSON object with
one primary category, actionability, priority, a short summary and structured details.

Valid categories are:
{categories}

Rules:
- ALWAYS pick exactly one category.
- ALWAYS return valid JSON. No comments, no extra text.
- If you are unsure, pick the closest reasonable category and explain uncertainty in "notes".
- Be conservative with "urgent". Save it for time-sensitive or high-risk items.

Output schema:
{{
  "category": one of the categories above,
  "priority": "low" | "medium" | "high" | "urgent",
  "is_action_required": boolean,
  "action_type": {action_types},
  "summary": string,
  "notes": string,
  "details": {{
    "lead": {{"customer_name", "customer_email", "customer_phone", "customer_address",
              "job_type", "job_description", "urgency", "preferred_time_window", "lead_source"}},
    "billing": {{"direction", "amount", "currency", "invoice_number", "vendor_or_client_name",
                 "due_date", "paid_date", "status"}},
    "scheduling": {{"job_reference", "requested_dates", "confirmed_date", "location_address"}},
    "vendor": {{"vendor_name", "order_number", "total_amount", "currency", "items"}},
    "security": {{"provider", "event_type", "severity"}},
    "sentiment": "positive" | "neutral" | "negative" | null
  }}
}}
Use ISO 8601 for dates where possible and null for unknown values.

EMAIL TO ANALYZE:
Subject: {subject}
From: {sender}
Body: {body}"""

# Keyword categories mapped onto the AI category set
KEYWORD_CATEGORY_MAP = {
    "junk": ("NEWSLETTER_PROMO", "low", False, "none"),
    "other": ("SPAM_OTHER", "low", False, "none"),
    "spending": ("VENDOR_RECEIPT", "low", False, "file_for_records"),
    "billing": ("BILLING_INCOMING_INVOICE", "medium", True, "review_invoice"),
    "leads": ("LEAD_NEW", "high", True, "respond_to_lead"),
}


def build_analysis_prompt(email: EmailRaw) -> str:
    return ANALYSIS_PROMPT.format(
        categories="\n".join(f"- {category}" for category in EMAIL_CATEGORIES),
        action_types=" | ".join(f'"{action}"' for action in ACTION_TYPES),
        subject=email.subject or "No subject",
        sender=email.from_address or "Unknown",
        body=(email.body_text or "No content")[:8000],
    )


def is_valid_analysis_result(result) -> bool:
    return (
        isinstance(result, dict)
        and result.get("category") in EMAIL_CATEGORIES
        and result.get("priority") in PRIORITIES
        and isinstance(result.get("is_action_required"), bool)
        and result.get("action_type") in ACTION_TYPES
        and isinstance(result.get("summary"), str)
        and isinstance(result.get("notes"), str)
        and isinstance(result.get("details"), dict)
    )


async def analyze_email(email: EmailRaw) -> dict:
    """Analyze one email with OpenAI. Raises AIResponseError on empty or invalid output."""
    content = await create_chat_completion(
        build_analysis_prompt(email),
        ANALYSIS_TEMPERATURE,
        ANALYSIS_MAX_TOKENS,
        response_format={"type": "json_object"},
    )

    try:
        result = json.loads(content)
    except json.JSONDecodeError as e:
        raise AIResponseError(f"OpenAI returned invalid JSON: {e}") from e

    if not is_valid_analysis_result(result):
        raise AIResponseError("Invalid analysis result structure from OpenAI")

    return result


def analyze_email_with_keywords(email: EmailRaw) -> dict:
    keyword_result = categorize_email_with_keywords(email.subject, email.body_text, email.from_address)
    category, priority, action_required, action_type = KEYWORD_CATEGORY_MAP[keyword_result["category"]]
    extracted = keyword_result["extracted_data"] or {}

    details = {}
    if "leads" in extracted:
        lead = extracted["leads"]
        details["lead"] = {
            "customer_name": lead.get("contact_name"),
            "customer_email": lead.get("contact_email") or email.from_address,
            "customer_phone": lead.get("contact_phone"),
        }
    if "billing" in extracted:
        details["billing"] = {"direction": "incoming", **extracted["billing"]}
    if "spending" in extracted:
        details["vendor"] = {"total_amount": extracted["spending"]["amount"]}

    return {
        "category": category,
        "priority": priority,
        "is_action_required": action_required,
        "action_type": action_type,
        "summary": email.subject or "No subject",
        "notes": f"Keyword fallback ({keyword_result['confidence']:.0%} confidence). {keyword_result['reasoning']}",
        "details": details,
    }


def store_email_insight(db: Session, email: EmailRaw, analysis: dict) -> EmailInsight:
    insight = EmailInsight(
        account_id=email.account_id,
        email_id=email.id,
        category=analysis["category"],
        priority=analysis["priority"],
        is_action_required=analysis["is_action_required"],
        action_type=analysis["action_type"],
        summary=analysis["summary"],
        notes=analysis["notes"],
        details=analysis["details"],
    )
    db.add(insight)
    db.commit()
    db.refresh(insight)
    return insight


def update_email_raw_status(db: Session, email: EmailRaw, status: str, error: Optional[str] = None) -> None:
    email.processing_status = status
    email.processing_error = error
    if status == "completed":
        email.processed_at = utcnow()
    db.commit()
