"""
Alerts derived from email insights
One insight produces at most one alert, and only when action is required.
"""

import logging
import math
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ..models_email import Alert, EmailInsight
from ..shared.dates import parse_iso_datetime, utcnow

logger = logging.getLogger(__name__)

ALERT_TYPES = ["lead", "billing", "scheduling", "support", "security"]
ALERT_SEVERITIES = ["low", "medium", "high", "urgent"]


def _days_until(value: Optional[datetime], now: datetime) -> Optional[int]:
    if value is None:
        return None
    return math.ceil((value - now).total_seconds() / 86400)


def _money(amount) -> str:
    return f"${amount}" if amount is not None else "$?"


def get_alert_data_for_category(insight: EmailInsight, now: Optional[datetime] = None) -> Optional[dict]:
    """
    Map an insight onto alert fields.

    Returns:
        {"type", "severity", "title", "message", "due_at"} or None when the
        category carries no alert
    """
    now = now or utcnow()
    details = insight.details or {}
    lead = details.get("lead") or {}
    billing = details.get("billing") or {}
    scheduling = details.get("scheduling") or {}
    summary = insight.summary or ""
    priority = insight.priority
    category = insight.category

    if category == "LEAD_NEW":
        severity = priority if priority in ("urgent", "high") else "medium"
        message = summary
        if lead.get("job_type"):
            message = f"{message}. Service: {lead['job_type']}."
        if lead.get("urgency") == "emergency":
            message = f"{message} URGENT: Emergency request!"
        return {
            "type": "lead",
            "severity": severity,
            "title": f"New Lead: {lead.get('customer_name') or 'Unknown Contact'}",
            "message": message,
            "due_at": None,
        }

    if category == "LEAD_FOLLOWUP":
        return {
            "type": "lead",
            "severity": "urgent" if priority == "urgent" else "medium",
            "title": f"Lead Follow-up: {lead.get('customer_name') or 'Existing Lead'}",
            "message": summary,
            "due_at": None,
        }

    if category == "BILLING_INCOMING_INVOICE":
        reference = f" ({billing['invoice_number']})" if billing.get("invoice_number") else ""
        vendor = billing.get("vendor_or_client_name") or "vendor"
        due_date = parse_iso_datetime(billing.get("due_date"))
        days_until_due = _days_until(due_date, now)

        if days_until_due is None:
            return {
                "type": "billing",
                "severity": "medium",
                "title": "New Vendor Invoice",
                "message": f"{_money(billing.get('amount'))}{reference} received from {vendor}.",
                "due_at": None,
            }

        if days_until_due <= 1:
            severity = "urgent"
        elif days_until_due <= 7:
            severity = "high"
        else:
            severity = "medium"
        overdue = days_until_due <= 0
        return {
            "type": "billing",
            "severity": severity,
            "title": "Invoice Due Overdue" if overdue else f"Invoice Due in {days_until_due} days",
            "message": f"{_money(billing.get('amount'))}{reference} from {vendor} is {'overdue' if overdue else 'due'}.",
            "due_at": due_date,
        }

    if category == "BILLING_OUTGOING_INVOICE":
        return {"type": "billing", "severity": "low", "title": "Customer Invoice Reply", "message": summary, "due_at": None}

    if category == "BILLING_PAYMENT_RECEIVED":
        message = f"{_money(billing.get('amount'))} payment received."
        if billing.get("invoice_number"):
            message = f"{message} Applied to {billing['invoice_number']}."
        return {"type": "billing", "severity": "low", "title": "Payment Received", "message": message, "due_at": None}

    if category == "BILLING_PAYMENT_ISSUE":
        return {
            "type": "billing",
            "severity": "high",
            "title": "Payment Issue Detected",
            "message": summary,
            "due_at": parse_iso_datetime(billing.get("due_date")),
        }

    if category == "SCHEDULING_REQUEST":
        message = summary
        requested = scheduling.get("requested_dates") or []
        if requested:
            message = f"{message}. Requested dates: {', '.join(str(d) for d in requested)}"
        return {
            "type": "scheduling",
            "severity": "urgent" if priority == "urgent" else "high",
            "title": "New Scheduling Request",
            "message": message,
            "due_at": None,
        }

    if category == "SCHEDULING_CHANGE":
        confirmed = parse_iso_datetime(scheduling.get("confirmed_date"))
        days_until = _days_until(confirmed, now)
        return {
            "type": "scheduling",
            "severity": "urgent" if days_until is not None and days_until <= 2 else "high",
            "title": "Schedule Change Request",
            "message": summary,
            "due_at": confirmed,
        }

    if category == "CUSTOMER_SUPPORT":
        sentiment = details.get("sentiment") or (details.get("support") or {}).get("sentiment")
        if priority == "urgent":
            severity = "urgent"
        elif sentiment == "negative":
            severity = "high"
        else:
            severity = "medium"
        return {"type": "support", "severity": severity, "title": "Customer Support Request", "message": summary, "due_at": None}

    if category == "SYSTEM_SECURITY":
        return {"type": "security", "severity": "urgent", "title": "Security Alert", "message": summary, "due_at": None}

    return None


def generate_alerts_from_insight(db: Session, insight: EmailInsight) -> list[Alert]:
    if not insight.is_action_required:
        return []

    alert_data = get_alert_data_for_category(insight)
    if not alert_data:
        return []

    alert = Alert(account_id=insight.account_id, email_insight_id=insight.id, resolved=False, **alert_data)
    db.add(alert)
    db.commit()
    db.refresh(alert)
    logger.info(f"🔔 {alert.severity} {alert.type} alert created for insight {insight.id}")
    return [alert]


def list_alerts(
    db: Session,
    account_id: int,
    alert_type: Optional[str] = None,
    severity: Optional[str] = None,
    resolved: Optional[bool] = None,
    limit: int = 50,
) -> list[Alert]:
    query = db.query(Alert).filter(Alert.account_id == account_id)
    if alert_type:
        query = query.filter(Alert.type == alert_type)
    if severity:
        query = query.filter(Alert.severity == severity)
    if resolved is not None:
        query = query.filter(Alert.resolved == resolved)
    return query.order_by(Alert.created_at.desc(), Alert.id.desc()).limit(limit).all()


def resolve_alert(db: Session, account_id: int, alert_id: int, resolution_notes: Optional[str] = None) -> Alert:
    alert = db.query(Alert).filter(Alert.id == alert_id, Alert.account_id == account_id).first()
    if not alert:
        raise HTTPException(status_code=404, detail="Alert not found")

    alert.resolved = True
    alert.resolved_at = utcnow()
    alert.resolution_notes = resolution_notes
    db.commit()
    db.refresh(alert)
    return alert
