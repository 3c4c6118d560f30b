"""
Invoice and Payment Models for Client Invoicing System
"""

from sqlalchemy import JSON, Column, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .models import generate_public_id


class Invoice(Base):
    """Invoice billed to a client, usually generated from a completed job"""

    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint("account_id", "invoice_number", name="uq_invoice_account_number"),
    )

    id = Column(Integer, primary_key=True, index=True)
    # Public UUID for portal and payment links (prevents enumeration)
    public_id = Column(String(36), unique=True, index=True, default=generate_public_id)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=True, unique=True)

    invoice_number = Column(String(50), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    # [{"description": str, "quantity": float, "unit_price": float, "total": float}]
    line_items = Column(JSON, default=list)

    subtotal = Column(Float, default=0)
    tax_rate = Column(Float, default=0)
    tax_amount = Column(Float, default=0)
    total_amount = Column(Float, nullable=False, default=0)
    amount_paid = Column(Float, default=0)
    currency = Column(String(10), default="USD")

    status = Column(String(20), default="draft")  # draft, sent, partial, paid, overdue, void

    # Square payment link (customer portal)
    square_payment_link_id = Column(String(255), nullable=True)
    square_payment_url = Column(String(500), nullable=True)

    issue_date = Column(DateTime, server_default=func.now())
    due_date = Column(DateTime, nullable=True)
    sent_at = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    voided_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    client = relationship("Client")
    job = relationship("Job", back_populates="invoice")
    payments = relationship(
        "InvoicePayment", back_populates="invoice", cascade="all, delete-orphan", order_by="InvoicePayment.id"
    )

    @property
    def balance_due(self) -> float:
        return round(max((self.total_amount or 0) - (self.amount_paid or 0), 0), 2)


class InvoicePayment(Base):
    __tablename__ = "invoice_payments"

    id = Column(Integer, primary_key=True, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    method = Column(String(30), default="card")  # cash, check, card, square, other
    reference = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    paid_at = Column(DateTime, server_default=func.now())
    created_at = Column(DateTime, server_default=func.now())

    invoice = relationship("Invoice", back_populates="payments")
