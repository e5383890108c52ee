"""
Models package initialization.
"""

from app.models.base import BaseModel
from app.models.user import User, Family, FamilyMember
from app.models.transaction import (
    Transaction,
    AppStoreServerNotification,
    NotificationType,
)

__all__ = [
    "BaseModel",
    "User",
    "Family",
    "FamilyMember",
    "Transaction",
    "AppStoreServerNotification",
    "NotificationType",
]
