"""
Transaction ledger models module.
Defines the transaction ledger and the App Store Server Notification log.
"""
import enum
from sqlalchemy import (
    Column, String, ForeignKey, DateTime, Integer, BigInteger, Boolean, Index,
)
from sqlalchemy.orm import relationship

from app.db.custom_types import CanonicalUUID
from app.models.base import BaseModel


class NotificationType(str, enum.Enum):
    """
    Apple App Store server notification types.
    Based on Apple's App Store Server Notifications v2.
    """
    CONSUMPTION_REQUEST = "CONSUMPTION_REQUEST"
    DID_CHANGE_RENEWAL_PREF = "DID_CHANGE_RENEWAL_PREF"
    DID_CHANGE_RENEWAL_STATUS = "DID_CHANGE_RENEWAL_STATUS"
    DID_FAIL_TO_RENEW = "DID_FAIL_TO_RENEW"
    DID_RENEW = "DID_RENEW"
    EXPIRED = "EXPIRED"
    EXTERNAL_PURCHASE_TOKEN = "EXTERNAL_PURCHASE_TOKEN"
    GRACE_PERIOD_EXPIRED = "GRACE_PERIOD_EXPIRED"
    OFFER_REDEEMED = "OFFER_REDEEMED"
    ONE_TIME_CHARGE = "ONE_TIME_CHARGE"
    PRICE_INCREASE = "PRICE_INCREASE"
    REFUND = "REFUND"
    REFUND_DECLINED = "REFUND_DECLINED"
    REFUND_REVERSED = "REFUND_REVERSED"
    RENEWAL_EXTENDED = "RENEWAL_EXTENDED"
    RENEWAL_EXTENSION = "RENEWAL_EXTENSION"
    REVOKE = "REVOKE"
    SUBSCRIBED = "SUBSCRIBED"
    TEST = "TEST"


AUTO_RENEWABLE_SUBSCRIPTION = "Auto-Renewable Subscription"
PURCHASED = "PURCHASED"


class Transaction(BaseModel):
    """
    One row per App Store transaction id.

    Commercial facts are written once. Renewal facts change as newer
    observations arrive, and revocation_reason is never cleared once set.
    Among a user's non-revoked rows only the most recently purchased one may
    have auto_renew_status = 1.
    """
    __tablename__ = "transactions"

    transaction_id = Column(BigInteger, primary_key=True, autoincrement=False)
    original_transaction_id = Column(BigInteger, index=True)
    user_id = Column(String(64), ForeignKey("users.user_id"), nullable=False, index=True)

    product_id = Column(String(100), nullable=False)
    purchase_date = Column(DateTime, nullable=False)
    expires_date = Column(DateTime)
    quantity = Column(Integer)
    subscription_group_identifier = Column(String(100))
    offer_identifier = Column(String(100))
    offer_type = Column(Integer)
    transaction_reason = Column(String(25))
    web_order_line_item_id = Column(String(100))
    environment = Column(String(10), nullable=False)
    in_app_ownership_type = Column(String(13), nullable=False)

    # Frozen copy of the catalog entitlement at the time of insert
    number_of_family_members = Column(Integer, nullable=False)
    number_of_dogs = Column(Integer, nullable=False)

    auto_renew_product_id = Column(String(100), nullable=False)
    auto_renew_status = Column(Integer, nullable=False, default=1)

    revocation_reason = Column(Integer)

    user = relationship("User", back_populates="transactions")

    __table_args__ = (
        Index("ix_transactions_user_purchase_date", "user_id", "purchase_date"),
    )

    def __repr__(self):
        return f"<Transaction {self.transaction_id} user={self.user_id}>"


class AppStoreServerNotification(BaseModel):
    """
    Append-only log of every App Store Server Notification received.
    Doubles as the idempotency gate: one row per notification_uuid.
    """
    __tablename__ = "app_store_server_notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    notification_uuid = Column(CanonicalUUID, unique=True, index=True, nullable=False)
    notification_type = Column(String(100), nullable=False)
    subtype = Column(String(100))
    version = Column(String(3))
    signed_date = Column(DateTime)

    data_app_apple_id = Column(String(100))
    data_bundle_id = Column(String(200))
    data_bundle_version = Column(String(100))
    data_environment = Column(String(10))
    data_status = Column(Integer)

    renewal_info_auto_renew_product_id = Column(String(100))
    renewal_info_auto_renew_status = Column(Integer)
    renewal_info_environment = Column(String(10))
    renewal_info_expiration_intent = Column(Integer)
    renewal_info_grace_period_expires_date = Column(DateTime)
    renewal_info_is_in_billing_retry_period = Column(Boolean)
    renewal_info_offer_identifier = Column(String(100))
    renewal_info_offer_type = Column(Integer)
    renewal_info_original_transaction_id = Column(BigInteger)
    renewal_info_price_increase_status = Column(Integer)
    renewal_info_product_id = Column(String(100))
    renewal_info_recent_subscription_start_date = Column(DateTime)
    renewal_info_renewal_date = Column(DateTime)
    renewal_info_signed_date = Column(DateTime)

    transaction_info_app_account_token = Column(String(36))
    transaction_info_bundle_id = Column(String(200))
    transaction_info_environment = Column(String(10))
    transaction_info_expires_date = Column(DateTime)
    transaction_info_in_app_ownership_type = Column(String(13))
    transaction_info_is_upgraded = Column(Boolean)
    transaction_info_offer_identifier = Column(String(100))
    transaction_info_offer_type = Column(Integer)
    transaction_info_original_purchase_date = Column(DateTime)
    transaction_info_original_transaction_id = Column(BigInteger)
    transaction_info_product_id = Column(String(100))
    transaction_info_purchase_date = Column(DateTime)
    transaction_info_quantity = Column(Integer)
    transaction_info_revocation_date = Column(DateTime)
    transaction_info_revocation_reason = Column(Integer)
    transaction_info_signed_date = Column(DateTime)
    transaction_info_subscription_group_identifier = Column(String(100))
    transaction_info_transaction_id = Column(BigInteger, index=True)
    transaction_info_type = Column(String(50))
    transaction_info_web_order_line_item_id = Column(String(100))

    def __repr__(self):
        return f"<AppStoreServerNotification {self.notification_uuid}>"
