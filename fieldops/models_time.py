"""
Time Tracking Models
Technician clock in/out, breaks, and the approval queue
"""

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class TimeEntry(Base):
    __tablename__ = "time_entries"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=True)
    status = Column(String(20), default="active")  # active, completed
    hourly_rate = Column(Float, default=0)  # Captured at clock-in
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    breaks = relationship(
        "TimeBreak", back_populates="entry", cascade="all, delete-orphan", order_by="TimeBreak.id"
    )
    approval = relationship(
        "TimeApproval", back_populates="entry", uselist=False, cascade="all, delete-orphan"
    )


class TimeBreak(Base):
    __tablename__ = "time_breaks"

    id = Column(Integer, primary_key=True, index=True)
    entry_id = Column(Integer, ForeignKey("time_entries.id"), nullable=False, index=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=True)
    break_type = Column(String(20), default="break")  # break, lunch

    entry = relationship("TimeEntry", back_populates="breaks")


class TimeApproval(Base):
    __tablename__ = "time_approvals"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    entry_id = Column(Integer, ForeignKey("time_entries.id"), nullable=False, unique=True)
    status = Column(String(20), default="pending")  # pending, approved, rejected
    reviewed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    entry = relationship("TimeEntry", back_populates="approval")
