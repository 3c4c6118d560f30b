"""
Keyword email categorization
Used when no AI provider is configured. Cheap and deterministic, so junk
detection is conservative (two or more junk keywords).
"""

import re
from typing import Optional

SPENDING_KEYWORDS = [
    "receipt",
    "invoice",
    "payment",
    "paid",
    "charge",
    "cost",
    "expense",
    "purchase",
    "bought",
    "order",
]
BILLING_KEYWORDS = ["bill", "statement", "due", "owing", "balance", "outstanding", "reminder"]
LEAD_KEYWORDS = [
    "quote",
    "estimate",
    "interested",
    "need service",
    "looking for",
    "contact me",
    "call me",
    "schedule",
]
JUNK_KEYWORDS = [
    "unsubscribe",
    "newsletter",
    "promotional",
    "advertisement",
    "marketing",
    "special offer",
    "limited time",
    "free trial",
    "subscribe",
    "click here",
    "buy now",
    "sale",
    "discount",
    "deal",
    "spam",
    "no-reply",
    "noreply",
]
NON_BUSINESS_KEYWORDS = [
    "security alert",
    "sign-in",
    "verification code",
    "password reset",
    "account recovery",
    "login attempt",
    "confirm your email",
]

AMOUNT_PATTERNS = [
    re.compile(r"\$\s*(\d+(?:\.\d{2})?)"),
    re.compile(r"(\d+(?:\.\d{2})?)\s*dollars?", re.IGNORECASE),
    re.compile(r"(?:total|amount|balance|due|price):?\s*\$?(\d+(?:\.\d{2})?)", re.IGNORECASE),
]
INVOICE_NUMBER_PATTERN = re.compile(r"(?:invoice|bill|statement)\s*#\s*([A-Z0-9-]+)", re.IGNORECASE)
EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
PHONE_PATTERN = re.compile(r"\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}")
NAME_PATTERN = re.compile(r"(?:my name is|this is|i am)\s+([a-z]+(?:\s+[a-z]+)?)", re.IGNORECASE)


def _score(content: str, keywords: list[str]) -> int:
    return sum(1 for keyword in keywords if keyword in content)


def extract_amount(content: str) -> Optional[float]:
    for pattern in AMOUNT_PATTERNS:
        match = pattern.search(content)
        if match:
            amount = float(match.group(1))
            if 0 < amount < 1_000_000:
                return amount
    return None


def extract_lead_contact(content: str) -> dict:
    name_match = NAME_PATTERN.search(content)
    email_match = EMAIL_PATTERN.search(content)
    phone_match = PHONE_PATTERN.search(content)
    return {
        "contact_name": name_match.group(1).title() if name_match else None,
        "contact_email": email_match.group(0) if email_match else None,
        "contact_phone": phone_match.group(0) if phone_match else None,
    }


def categorize_email_with_keywords(subject: Optional[str], body_text: Optional[str], sender: Optional[str] = None) -> dict:
    """
    Returns {"category": spending|billing|leads|junk|other, "confidence": float,
    "reasoning": str, "extracted_data": dict | None}
    """
    content = f"{subject or ''} {body_text or ''} {sender or ''}".lower()

    spending_score = _score(content, SPENDING_KEYWORDS)
    billing_score = _score(content, BILLING_KEYWORDS)
    lead_score = _score(content, LEAD_KEYWORDS)
    junk_score = _score(content, JUNK_KEYWORDS)

    if junk_score >= 2:
        return {
            "category": "junk",
            "confidence": min(0.9, 0.6 + junk_score * 0.1),
            "reasoning": f"Detected {junk_score} junk/spam keywords. This appears to be promotional or marketing content.",
            "extracted_data": None,
        }

    if any(keyword in content for keyword in NON_BUSINESS_KEYWORDS):
        return {
            "category": "other",
            "confidence": 0.8,
            "reasoning": "Email appears to be a security/notification email, not business-related",
            "extracted_data": None,
        }

    category = "other"
    confidence = 0.4
    extracted = None
    amount = extract_amount(content)

    if spending_score >= 1 and amount:
        category = "spending"
        confidence = min(0.85, 0.5 + spending_score * 0.15)
        extracted = {"spending": {"amount": amount}}

    if billing_score >= 1 and amount and (extracted is None or confidence < 0.6):
        invoice_match = INVOICE_NUMBER_PATTERN.search(content)
        category = "billing"
        confidence = min(0.85, 0.5 + billing_score * 0.15)
        extracted = {
            "billing": {
                "amount": amount,
                "invoice_number": invoice_match.group(1).upper() if invoice_match else None,
            }
        }

    if lead_score >= 1 and (extracted is None or confidence < 0.6):
        contact = extract_lead_contact(f"{subject or ''} {body_text or ''}")
        if contact["contact_name"] or contact["contact_email"]:
            category = "leads"
            confidence = min(0.85, 0.5 + lead_score * 0.15)
            extracted = {"leads": contact}

    reasoning = (
        f"Found {spending_score} spending, {billing_score} billing, {lead_score} lead "
        f"and {junk_score} junk keywords."
    )
    return {"category": category, "confidence": confidence, "reasoning": reasoning, "extracted_data": extracted}
