from sqlalchemy import Column, Integer, String, Float, DateTime, Boolean, Text, Index
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func
from datetime import datetime, timezone

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class UsageRecord(Base):
    """Append-only spend ledger; rows are never updated"""
    __tablename__ = "usage_records"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(255), nullable=False, index=True)
    feature = Column(String(100), nullable=False)

    # SIMPLE, MODERATE, COMPLEX, URGENT, WEB_RESEARCH, FALLBACK, ERROR
    tier = Column(String(50), nullable=False, index=True)

    estimated_cost = Column(Float, nullable=False, default=0.0)
    actual_cost = Column(Float, nullable=False, default=0.0)
    processing_time_ms = Column(Float, nullable=False, default=0.0)
    success = Column(Boolean, nullable=False, default=True)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    __table_args__ = (
        Index('ix_usage_user_created', 'user_id', 'created_at'),
        Index('ix_usage_user_tier', 'user_id', 'tier'),
    )


class UserBudget(Base):
    """Per-user spend ceilings; remaining budget is always derived from usage_records"""
    __tablename__ = "user_budgets"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(255), unique=True, nullable=False, index=True)
    daily_limit = Column(Float, nullable=False)
    monthly_limit = Column(Float, nullable=False)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=func.now())


class MemoryEntry(Base):
    """Conversational memory kept for non-trivial answers"""
    __tablename__ = "memory_entries"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(255), nullable=False, index=True)
    query = Column(Text, nullable=False)
    answer = Column(Text, nullable=False)
    classification = Column(String(50), nullable=False)  # tier used
    domain = Column(String(50), nullable=False, default="GENERAL")
    confidence = Column(Float, nullable=True)

    # Retention
    importance = Column(Integer, nullable=False, default=5)  # 1-10
    storage_type = Column(String(20), nullable=False, default="FULL")  # FULL, SUMMARY, KEYWORDS
    storage_cost = Column(Float, nullable=False, default=0.0)
    key_points = Column(Text, nullable=True)  # comma separated fiscal keywords
    expires_at = Column(DateTime, nullable=True, index=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    __table_args__ = (
        Index('ix_memory_user_created', 'user_id', 'created_at'),
        Index('ix_memory_user_expires', 'user_id', 'expires_at'),
    )
