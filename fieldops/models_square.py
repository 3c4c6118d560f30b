"""
Square Integration Models
Database models for storing Square OAuth tokens per account
"""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.sql import func

from .database import Base


class SquareIntegration(Base):
    """Store Square OAuth tokens and merchant information"""

    __tablename__ = "square_integrations"

    account_id = Column(Integer, ForeignKey("accounts.id"), primary_key=True, index=True)
    merchant_id = Column(String, nullable=False)
    location_id = Column(String, nullable=True)
    access_token = Column(Text, nullable=False)  # Encrypted
    refresh_token = Column(Text, nullable=True)  # Encrypted
    token_expires_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=True)
    last_customer_sync_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
