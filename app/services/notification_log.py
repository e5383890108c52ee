"""
App Store Server Notification log.

Every notification is written once, keyed by its notificationUUID. The insert
doubles as the deduplication gate for Apple's redeliveries.
"""
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.transaction import AppStoreServerNotification
from app.schemas.apple import VerifiedNotification

logger = logging.getLogger(__name__)


def _build_record(verified: VerifiedNotification) -> AppStoreServerNotification:
    notification = verified.notification
    data = verified.data
    renewal_info = verified.renewal_info
    transaction_info = verified.transaction_info

    return AppStoreServerNotification(
        notification_uuid=notification.notification_uuid,
        notification_type=notification.notification_type,
        subtype=notification.subtype,
        version=notification.version,
        signed_date=notification.signed_date,
        data_app_apple_id=str(data.app_apple_id) if data.app_apple_id is not None else None,
        data_bundle_id=data.bundle_id,
        data_bundle_version=data.bundle_version,
        data_environment=data.environment,
        data_status=data.status,
        renewal_info_auto_renew_product_id=renewal_info.auto_renew_product_id,
        renewal_info_auto_renew_status=renewal_info.auto_renew_status,
        renewal_info_environment=renewal_info.environment,
        renewal_info_expiration_intent=renewal_info.expiration_intent,
        renewal_info_grace_period_expires_date=renewal_info.grace_period_expires_date,
        renewal_info_is_in_billing_retry_period=renewal_info.is_in_billing_retry_period,
        renewal_info_offer_identifier=renewal_info.offer_identifier,
        renewal_info_offer_type=renewal_info.offer_type,
        renewal_info_original_transaction_id=renewal_info.original_transaction_id,
        renewal_info_price_increase_status=renewal_info.price_increase_status,
        renewal_info_product_id=renewal_info.product_id,
        renewal_info_recent_subscription_start_date=renewal_info.recent_subscription_start_date,
        renewal_info_renewal_date=renewal_info.renewal_date,
        renewal_info_signed_date=renewal_info.signed_date,
        transaction_info_app_account_token=transaction_info.app_account_token,
        transaction_info_bundle_id=transaction_info.bundle_id,
        transaction_info_environment=transaction_info.environment,
        transaction_info_expires_date=transaction_info.expires_date,
        transaction_info_in_app_ownership_type=transaction_info.in_app_ownership_type,
        transaction_info_is_upgraded=transaction_info.is_upgraded,
        transaction_info_offer_identifier=transaction_info.offer_identifier,
        transaction_info_offer_type=transaction_info.offer_type,
        transaction_info_original_purchase_date=transaction_info.original_purchase_date,
        transaction_info_original_transaction_id=transaction_info.original_transaction_id,
        transaction_info_product_id=transaction_info.product_id,
        transaction_info_purchase_date=transaction_info.purchase_date,
        transaction_info_quantity=transaction_info.quantity,
        transaction_info_revocation_date=transaction_info.revocation_date,
        transaction_info_revocation_reason=transaction_info.revocation_reason,
        transaction_info_signed_date=transaction_info.signed_date,
        transaction_info_subscription_group_identifier=transaction_info.subscription_group_identifier,
        transaction_info_transaction_id=transaction_info.transaction_id,
        transaction_info_type=transaction_info.type,
        transaction_info_web_order_line_item_id=transaction_info.web_order_line_item_id,
    )


def record_notification(db: Session, verified: VerifiedNotification) -> bool:
    """
    Insert a notification into the log unless it is already there.

    Args:
        db: Database session
        verified: The decoded notification

    Returns:
        bool: True if the notification was inserted, False if it already existed
    """
    notification_uuid = verified.notification.notification_uuid

    existing = db.query(AppStoreServerNotification.id).filter(
        AppStoreServerNotification.notification_uuid == notification_uuid
    ).first()
    if existing is not None:
        logger.info(f"Duplicate notification received: {notification_uuid}")
        return False

    db.add(_build_record(verified))
    try:
        db.commit()
    except IntegrityError:
        # Another worker inserted the same notificationUUID first
        db.rollback()
        logger.info(f"Duplicate notification received concurrently: {notification_uuid}")
        return False

    return True
