"""
Job Models for Field Work Scheduling
Jobs move draft → quote → scheduled → in_progress → completed → invoiced (or cancelled)
"""

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .models import generate_public_id


class Job(Base):
    __tablename__ = "jobs"

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(String(36), unique=True, index=True, default=generate_public_id)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    estimate_id = Column(Integer, ForeignKey("estimates.id"), nullable=True)
    assigned_to = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)  # TECH user

    job_number = Column(String(20), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), default="draft", index=True)

    service_date = Column(DateTime, nullable=True)
    scheduled_time = Column(String(20), nullable=True)  # "09:00"
    address = Column(String(255), nullable=True)

    # Totals (recomputed from line items)
    subtotal = Column(Float, default=0)
    tax_rate = Column(Float, default=0)
    tax_amount = Column(Float, default=0)
    total_amount = Column(Float, default=0)

    # Payments
    amount_paid = Column(Float, default=0)
    payment_status = Column(String(20), default="unpaid")  # unpaid, partial, paid

    ready_for_invoice = Column(Boolean, default=False)
    completed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    client = relationship("Client", back_populates="jobs")
    line_items = relationship(
        "JobLineItem", back_populates="job", cascade="all, delete-orphan", order_by="JobLineItem.id"
    )
    notes = relationship(
        "JobNote", back_populates="job", cascade="all, delete-orphan", order_by="JobNote.created_at"
    )
    payments = relationship(
        "JobPayment", back_populates="job", cascade="all, delete-orphan", order_by="JobPayment.id"
    )
    invoice = relationship("Invoice", back_populates="job", uselist=False)


class JobLineItem(Base):
    __tablename__ = "job_line_items"

    id = Column(Integer, primary_key=True, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=False, index=True)
    description = Column(String(500), nullable=False)
    quantity = Column(Float, default=1)
    unit_price = Column(Float, default=0)
    total = Column(Float, default=0)  # quantity * unit_price
    item_type = Column(String(20), default="service")  # service, material, labor
    created_at = Column(DateTime, server_default=func.now())

    job = relationship("Job", back_populates="line_items")


class JobNote(Base):
    """Free-form notes and the status-change audit trail"""

    __tablename__ = "job_notes"

    id = Column(Integer, primary_key=True, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    note = Column(Text, nullable=False)
    note_type = Column(String(20), default="note")  # note, status_change
    created_at = Column(DateTime, server_default=func.now())

    job = relationship("Job", back_populates="notes")


class JobPayment(Base):
    __tablename__ = "job_payments"

    id = Column(Integer, primary_key=True, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    method = Column(String(30), default="cash")  # cash, check, card, square, other
    reference = Column(String(255), nullable=True)
    paid_at = Column(DateTime, server_default=func.now())
    recorded_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    job = relationship("Job", back_populates="payments")
