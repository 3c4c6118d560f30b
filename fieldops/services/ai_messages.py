"""
AI message generation for automations
One short prompt per automation type; none of them may mention pricing.
Chat completions go straight to the OpenAI REST API through httpx.
"""

import logging
from typing import Optional

import httpx

from ..config import OPENAI_API_KEY, OPENAI_BASE_URL, OPENAI_MODEL

logger = logging.getLogger(__name__)

TEMPERATURE = 0.3
MAX_TOKENS = 220


class AIConfigurationError(Exception):
    pass


class AIResponseError(Exception):
    pass


async def create_chat_completion(
    prompt: str,
    temperature: float,
    max_tokens: int,
    response_format: Optional[dict] = None,
) -> str:
    """
    Send a single-message chat completion and return the reply text.

    Raises:
        AIConfigurationError: no API key configured
        AIResponseError: HTTP failure or an empty reply
    """
    if not OPENAI_API_KEY:
        raise AIConfigurationError("OpenAI API key not configured")

    payload = {
        "model": OPENAI_MODEL,
        "messages": [{"role": "user", "content": prompt}],
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    if response_format:
        payload["response_format"] = response_format

    try:
        async with httpx.AsyncClient(timeout=30.0) as http_client:
            response = await http_client.post(
                f"{OPENAI_BASE_URL}/chat/completions",
                json=payload,
                headers={"Authorization": f"Bearer {OPENAI_API_KEY}"},
            )
    except httpx.HTTPError as e:
        logger.error(f"❌ OpenAI request failed: {e}")
        raise AIResponseError(f"OpenAI request failed: {e}") from e

    if response.status_code != 200:
        logger.error(f"❌ OpenAI returned {response.status_code}: {response.text}")
        raise AIResponseError(f"OpenAI returned status {response.status_code}")

    choices = response.json().get("choices") or []
    content = choices[0].get("message", {}).get("content") if choices else None
    if not content:
        raise AIResponseError("No content received from OpenAI")
    return content.strip()


async def _generate_message(prompt: str) -> str:
    return await create_chat_completion(prompt, TEMPERATURE, MAX_TOKENS)


async def generate_estimate_follow_up(estimate) -> str:
    prompt = f"""You are following up on a home services estimate.

Context:
- Estimate #: {estimate.estimate_number}
- Title: {estimate.title}
- Status: {estimate.status}
- Summary: {estimate.description or 'Not provided'}

Write a friendly, concise follow-up (3-5 sentences) that:
- Invites questions and offers to adjust scope if needed
- Encourages moving forward without mentioning pricing or discounts
- Avoids promises about scheduling or availability beyond offering to help
- Stays professional and supportive

Return only the message."""
    return await _generate_message(prompt)


def invoice_tone(days_overdue: int) -> str:
    if days_overdue >= 14:
        return "firm, with clear next steps (e.g., offering help to complete payment)"
    if days_overdue >= 7:
        return "direct but respectful reminder"
    return "friendly check-in"


async def generate_invoice_follow_up(invoice, days_overdue: int) -> str:
    client_name = invoice.client.display_name if invoice.client else "the client"
    due_date = invoice.due_date.date().isoformat() if invoice.due_date else "not set"
    days_overdue = max(days_overdue, 0)

    prompt = f"""You are writing a polite invoice follow-up for a field service company.

Context:
- Invoice #: {invoice.invoice_number}
- Client: {client_name}
- Due date: {due_date}
- Days overdue: {days_overdue}
- Current status: {invoice.status}

Guidelines:
- Do NOT include pricing, amounts, or payment links.
- Tone: {invoice_tone(days_overdue)}
- Offer assistance and invite questions, avoid promises about availability.
- Keep to 3-5 sentences, professional and calm.

Return only the message."""
    return await _generate_message(prompt)


async def generate_job_closeout(job) -> str:
    service_date = job.service_date.date().isoformat() if job.service_date else "not recorded"
    prompt = f"""Create a concise job closeout summary for a completed service visit.

Job Info:
- Job #: {job.job_number}
- Title: {job.title}
- Description: {job.description or 'Not provided'}
- Service date: {service_date}

Include:
- What was completed (plain language, no pricing)
- Preventative tips for the homeowner
- Any safety notes or observations
- Recommended next service interval (without commitments)

Keep it short (under 150 words), factual, and avoid guarantees or pricing."""
    return await _generate_message(prompt)


async def generate_review_request(job) -> str:
    customer_name = job.client.display_name if job.client else "there"
    prompt = f"""Write a short, personalized review request to a customer after a completed job.

Details:
- Customer name: {customer_name}
- Job title: {job.title}
- Job #: {job.job_number}

Guidelines:
- Thank them for choosing the team
- Ask for a brief review on their preferred platform (e.g., Google) without providing a link
- Keep tone warm, professional, and concise (2-4 sentences)
- No promises about discounts, future work, or timing."""
    return await _generate_message(prompt)


async def generate_lead_response(lead) -> str:
    if lead.city and lead.state:
        location = f"{lead.city}, {lead.state}"
    else:
        location = lead.city or lead.state or "Not provided"

    prompt = f"""You are responding to a new lead for home services.

Lead Info:
- Name: {lead.first_name} {lead.last_name or ''}
- Service type: {lead.service_type or 'General service'}
- Description: {lead.service_description or 'No description provided'}
- City/State: {location}

Write a helpful reply that:
- Acknowledges their request and thanks them for reaching out
- Asks 2-3 clarifying questions about scope and timing
- Provides general guidance on next steps without quoting pricing or committing to specific dates
- Invites them to book an estimate or call to discuss
- Stays concise (3-5 sentences), professional, and safety-conscious.

Return only the message."""
    return await _generate_message(prompt)
