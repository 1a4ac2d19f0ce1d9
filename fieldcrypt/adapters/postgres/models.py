"""SQLAlchemy Models for encryption bookkeeping."""
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, String
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class ActivityLog(Base):
    """Audit trail row written for each encrypt/decrypt operation."""
    __tablename__ = "activity_logs"
    id = Column(String(36), primary_key=True)
    user_id = Column(String(255), nullable=False)
    action = Column(String(255), nullable=False)
    entity_type = Column(String(255), nullable=False)
    # "metadata" is reserved on declarative classes
    details = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
