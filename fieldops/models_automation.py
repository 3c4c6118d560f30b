"""
Automation Queue Models
Rows are polled by the scheduler: pending rows whose run_at has passed are claimed and processed
"""

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class Automation(Base):
    __tablename__ = "automations"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    # estimate_followup, invoice_followup, job_closeout, review_request, lead_response
    type = Column(String(50), nullable=False, index=True)
    related_id = Column(Integer, nullable=True, index=True)  # estimate/invoice/job/lead id
    status = Column(String(20), default="pending", index=True)  # pending, processing, completed, failed, cancelled
    run_at = Column(DateTime, nullable=False, index=True)
    payload = Column(JSON, nullable=True)
    result = Column(JSON, nullable=True)
    attempts = Column(Integer, default=0)
    last_attempt = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    history = relationship(
        "AutomationHistory",
        back_populates="automation",
        cascade="all, delete-orphan",
        order_by="AutomationHistory.id",
    )


class AutomationHistory(Base):
    __tablename__ = "automation_history"

    id = Column(Integer, primary_key=True, index=True)
    automation_id = Column(Integer, ForeignKey("automations.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False)
    message = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    automation = relationship("Automation", back_populates="history")
