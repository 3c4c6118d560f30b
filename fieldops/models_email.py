"""
Email Intelligence Models
Inbound email → AI insight → staff alert
"""

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class EmailRaw(Base):
    __tablename__ = "emails_raw"
    __table_args__ = (UniqueConstraint("account_id", "message_id", name="uq_email_account_message"),)

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    message_id = Column(String(255), nullable=False)  # Provider message id (dedupe key)
    thread_id = Column(String(255), nullable=True)
    from_address = Column(String(255), nullable=True)
    to_address = Column(String(255), nullable=True)
    subject = Column(String(500), nullable=True)
    body_text = Column(Text, nullable=True)
    body_html = Column(Text, nullable=True)
    received_at = Column(DateTime, nullable=True)

    processing_status = Column(String(20), default="pending", index=True)  # pending, processing, completed, failed
    processing_error = Column(Text, nullable=True)
    processed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    insight = relationship("EmailInsight", back_populates="email", uselist=False)


class EmailInsight(Base):
    __tablename__ = "email_insights"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    email_id = Column(Integer, ForeignKey("emails_raw.id"), nullable=False, index=True)
    category = Column(String(50), nullable=False, index=True)
    priority = Column(String(20), nullable=False)
    is_action_required = Column(Boolean, default=False)
    action_type = Column(String(50), default="none")
    summary = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    details = Column(JSON, default=dict)
    created_at = Column(DateTime, server_default=func.now())

    email = relationship("EmailRaw", back_populates="insight")
    alerts = relationship("Alert", back_populates="insight")


class Alert(Base):
    __tablename__ = "alerts"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    email_insight_id = Column(Integer, ForeignKey("email_insights.id"), nullable=True, index=True)
    type = Column(String(20), nullable=False)  # lead, billing, scheduling, support, security
    severity = Column(String(20), nullable=False)  # low, medium, high, urgent
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=True)
    due_at = Column(DateTime, nullable=True)
    resolved = Column(Boolean, default=False, index=True)
    resolved_at = Column(DateTime, nullable=True)
    resolution_notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    insight = relationship("EmailInsight", back_populates="alerts")
