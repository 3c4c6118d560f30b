"""Per-account business settings with automation defaults merged in"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..models import BusinessSettings

logger = logging.getLogger(__name__)

# Every AI automation is opt-in
DEFAULT_AUTOMATION_SETTINGS = {
    "estimate_followups": False,
    "invoice_followups": False,
    "job_closeout": False,
    "review_requests": False,
    "lead_response": False,
}


def get_or_create_settings(db: Session, account_id: int) -> BusinessSettings:
    settings = db.query(BusinessSettings).filter(BusinessSettings.account_id == account_id).first()
    if settings:
        return settings

    settings = BusinessSettings(account_id=account_id, ai_automation=dict(DEFAULT_AUTOMATION_SETTINGS))
    db.add(settings)
    db.commit()
    db.refresh(settings)
    logger.info(f"✅ Created default business settings for account {account_id}")
    return settings


def merge_automation_settings(stored: Optional[dict]) -> dict:
    merged = dict(DEFAULT_AUTOMATION_SETTINGS)
    for key, value in (stored or {}).items():
        if key in merged:
            merged[key] = bool(value)
    return merged


def get_automation_settings(db: Session, account_id: int) -> dict:
    settings = db.query(BusinessSettings).filter(BusinessSettings.account_id == account_id).first()
    return merge_automation_settings(settings.ai_automation if settings else None)


def update_automation_settings(db: Session, account_id: int, updates: dict) -> dict:
    settings = get_or_create_settings(db, account_id)
    merged = merge_automation_settings(settings.ai_automation)
    for key, value in updates.items():
        if key not in DEFAULT_AUTOMATION_SETTINGS:
            raise ValueError(f"Unknown automation setting: {key}")
        merged[key] = bool(value)

    # Reassign so SQLAlchemy sees the JSON change
    settings.ai_automation = merged
    db.commit()
    logger.info(f"⚙️ Automation settings updated for account {account_id}: {merged}")
    return merged


def get_default_tax_rate(db: Session, account_id: int) -> float:
    settings = db.query(BusinessSettings).filter(BusinessSettings.account_id == account_id).first()
    if settings and settings.default_tax_rate is not None:
        return settings.default_tax_rate
    return 0.08
