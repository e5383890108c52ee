"""
Apple notification processor module.

Processes Apple App Store Server Notifications and merges the transactions
they carry into the ledger.
"""
import logging

from sqlalchemy.orm import Session

from app.core.apple_jws import AppleJWSVerifier
from app.models.transaction import AUTO_RENEWABLE_SUBSCRIPTION, NotificationType
from app.services.notification_log import record_notification
from app.services.transaction_service import TransactionService

logger = logging.getLogger(__name__)

# Notifications whose transaction changes the ledger
LEDGER_NOTIFICATION_TYPES = frozenset({
    NotificationType.DID_RENEW,
    NotificationType.OFFER_REDEEMED,
    NotificationType.SUBSCRIBED,
    NotificationType.REFUND,
    NotificationType.REVOKE,
    NotificationType.REFUND_DECLINED,
    NotificationType.REFUND_REVERSED,
    NotificationType.DID_CHANGE_RENEWAL_PREF,
    NotificationType.DID_CHANGE_RENEWAL_STATUS,
    NotificationType.DID_FAIL_TO_RENEW,
    NotificationType.EXPIRED,
})


class NotificationProcessor:
    """
    Service for processing Apple App Store Server Notifications.
    """

    def __init__(self, db: Session):
        """
        Initialize the notification processor.

        Args:
            db: Database session
        """
        self.db = db
        self.transaction_service = TransactionService(db)

    def process_signed_payload(self, signed_payload: str) -> None:
        """
        Process an Apple App Store Server Notification.

        Duplicates, notifications about other purchase types and transactions
        that can't be attributed to a user are ignored.

        Args:
            signed_payload: The raw signed JWS payload

        Raises:
            ValueError: If the payload signature is invalid
            AppError: If the payload is incomplete or the transaction fails validation
        """
        verified = AppleJWSVerifier.verify_signed_payload(signed_payload)
        notification = verified.notification
        transaction_info = verified.transaction_info

        if not record_notification(self.db, verified):
            return

        if transaction_info.type != AUTO_RENEWABLE_SUBSCRIPTION:
            logger.info(f"Ignoring {notification.notification_type} for {transaction_info.type}")
            return

        if notification.notification_type not in LEDGER_NOTIFICATION_TYPES:
            logger.info(f"Ignoring notification type {notification.notification_type}")
            return

        user_id = self.transaction_service.get_transaction_owner(
            app_account_token=transaction_info.app_account_token,
            transaction_id=transaction_info.transaction_id,
            original_transaction_id=transaction_info.original_transaction_id,
        )
        if user_id is None:
            logger.warning(
                f"No owner found for transaction {transaction_info.transaction_id}, "
                f"dropping {notification.notification_type}"
            )
            return

        self.transaction_service.upsert_transaction(user_id, verified.renewal_info, transaction_info)
        logger.info(
            f"Processed {notification.notification_type} notification: {notification.notification_uuid}"
        )
