"""
Base model for all models.
"""
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime

from app.db.session import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, the representation stored in every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class BaseModel(Base):
    """
    Base class for all models.
    Provides audit timestamps; each table declares its own primary key.
    """
    __abstract__ = True

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
