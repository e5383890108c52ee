"""
Schemas package initialization.
"""
from app.schemas.base import BaseSchema
from app.schemas.apple import (
    TransactionInfo,
    RenewalInfo,
    NotificationData,
    DecodedNotification,
    VerifiedNotification,
    SubscriptionRecord,
)
from app.schemas.transaction import (
    Transaction,
    Entitlement,
    AppStoreReceiptRequest,
    AppleNotificationPayload,
    ErrorResponse,
)

__all__ = [
    "BaseSchema",
    "TransactionInfo",
    "RenewalInfo",
    "NotificationData",
    "DecodedNotification",
    "VerifiedNotification",
    "SubscriptionRecord",
    "Transaction",
    "Entitlement",
    "AppStoreReceiptRequest",
    "AppleNotificationPayload",
    "ErrorResponse",
]
