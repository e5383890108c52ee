"""
Base schema module.
"""
from datetime import datetime, timezone
from typing import Any, Optional
from pydantic import BaseModel


class BaseSchema(BaseModel):
    """Base schema for rows read back from the database."""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        """Pydantic config."""
        from_attributes = True


def to_naive_utc(value: Any) -> Any:
    """
    Normalize Apple timestamps.

    Apple sends dates as UNIX time in milliseconds. The database stores naive
    UTC datetimes, so aware datetimes are converted as well.
    """
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc).replace(tzinfo=None)
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value
