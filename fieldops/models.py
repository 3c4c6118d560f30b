import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_public_id():
    """Generate a unique public ID for secure public access"""
    return str(uuid.uuid4())


class Account(Base):
    """Tenant boundary - every business record hangs off an account"""

    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(String(36), unique=True, index=True, default=generate_public_id)
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    memberships = relationship(
        "AccountMembership", back_populates="account", cascade="all, delete-orphan"
    )
    settings = relationship(
        "BusinessSettings", back_populates="account", uselist=False, cascade="all, delete-orphan"
    )


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    auth_uid = Column(String(255), unique=True, index=True, nullable=False)  # JWT "sub"
    email = Column(String(255), unique=True, index=True, nullable=True)
    full_name = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    memberships = relationship("AccountMembership", back_populates="user")


class AccountMembership(Base):
    """Links a user to an account with a role (OWNER, ADMIN, TECH, CUSTOMER)"""

    __tablename__ = "account_memberships"
    __table_args__ = (UniqueConstraint("account_id", "user_id", name="uq_membership_account_user"),)

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    role = Column(String(20), nullable=False, default="TECH")
    is_active = Column(Boolean, default=True)
    hourly_rate = Column(Float, nullable=True)  # Used for labor cost in time tracking
    created_at = Column(DateTime, server_default=func.now())

    account = relationship("Account", back_populates="memberships")
    user = relationship("User", back_populates="memberships")


class BusinessSettings(Base):
    """Per-account business configuration (tax, invoicing, AI automation toggles)"""

    __tablename__ = "business_settings"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), unique=True, nullable=False)
    business_name = Column(String(255), nullable=True)
    reply_to_email = Column(String(255), nullable=True)
    default_tax_rate = Column(Float, default=0.08)
    auto_invoice_on_completion = Column(Boolean, default=False)
    invoice_due_days = Column(Integer, default=30)
    # {"estimate_followups": bool, "invoice_followups": bool, ...}
    ai_automation = Column(JSON, default=dict)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    account = relationship("Account", back_populates="settings")


class Client(Base):
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(String(36), unique=True, index=True, default=generate_public_id)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    # Portal login for this customer (CUSTOMER role)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    company_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True, index=True)
    phone = Column(String(50), nullable=True)
    address = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(50), nullable=True)
    zip_code = Column(String(20), nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(String(50), default="active")  # active, inactive
    source = Column(String(50), nullable=True)  # manual, lead, square

    square_customer_id = Column(String(255), nullable=True, index=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    jobs = relationship("Job", back_populates="client")
    activities = relationship(
        "Activity", back_populates="client", cascade="all, delete-orphan", order_by="Activity.created_at"
    )

    @property
    def display_name(self) -> str:
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or self.company_name or "Customer"


class Activity(Base):
    """Client timeline entry or follow-up task"""

    __tablename__ = "activities"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=True, index=True)
    activity_type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), default="completed")  # completed, pending, cancelled
    due_date = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    details = Column(JSON, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    client = relationship("Client", back_populates="activities")


class Lead(Base):
    __tablename__ = "leads"

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(String(36), unique=True, index=True, default=generate_public_id)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)

    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(50), nullable=True)
    service_type = Column(String(100), nullable=True)
    service_description = Column(Text, nullable=True)
    source = Column(String(50), default="website")  # website, referral, email, phone, other
    status = Column(String(20), default="new")  # new, contacted, qualified, converted, lost, unqualified
    notes = Column(Text, nullable=True)
    converted_client_id = Column(Integer, ForeignKey("clients.id"), nullable=True)
    converted_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
