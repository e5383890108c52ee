"""
Decoded App Store payload schemas.

Field names are the snake_case spelling of Apple's JSON keys:
https://developer.apple.com/documentation/appstoreservernotifications
"""
from datetime import datetime
from typing import Annotated, Optional
from pydantic import BaseModel, BeforeValidator

from app.schemas.base import to_naive_utc

# Apple dates are UNIX milliseconds; stored as naive UTC
AppleDate = Annotated[datetime, BeforeValidator(to_naive_utc)]


class TransactionInfo(BaseModel):
    """JWSTransactionDecodedPayload."""
    transaction_id: Optional[int] = None
    original_transaction_id: Optional[int] = None
    app_account_token: Optional[str] = None
    bundle_id: Optional[str] = None
    environment: Optional[str] = None
    product_id: Optional[str] = None
    type: Optional[str] = None
    in_app_ownership_type: Optional[str] = None
    purchase_date: Optional[AppleDate] = None
    original_purchase_date: Optional[AppleDate] = None
    expires_date: Optional[AppleDate] = None
    quantity: Optional[int] = None
    subscription_group_identifier: Optional[str] = None
    offer_identifier: Optional[str] = None
    offer_type: Optional[int] = None
    transaction_reason: Optional[str] = None
    web_order_line_item_id: Optional[str] = None
    is_upgraded: Optional[bool] = None
    revocation_date: Optional[AppleDate] = None
    revocation_reason: Optional[int] = None
    signed_date: Optional[AppleDate] = None


class RenewalInfo(BaseModel):
    """JWSRenewalInfoDecodedPayload."""
    original_transaction_id: Optional[int] = None
    auto_renew_product_id: Optional[str] = None
    auto_renew_status: Optional[int] = None
    environment: Optional[str] = None
    expiration_intent: Optional[int] = None
    grace_period_expires_date: Optional[AppleDate] = None
    is_in_billing_retry_period: Optional[bool] = None
    offer_identifier: Optional[str] = None
    offer_type: Optional[int] = None
    price_increase_status: Optional[int] = None
    product_id: Optional[str] = None
    recent_subscription_start_date: Optional[AppleDate] = None
    renewal_date: Optional[AppleDate] = None
    signed_date: Optional[AppleDate] = None


class NotificationData(BaseModel):
    """The data object of a version 2 notification."""
    app_apple_id: Optional[int] = None
    bundle_id: Optional[str] = None
    bundle_version: Optional[str] = None
    environment: Optional[str] = None
    status: Optional[int] = None
    signed_transaction_info: Optional[str] = None
    signed_renewal_info: Optional[str] = None


class DecodedNotification(BaseModel):
    """ResponseBodyV2DecodedPayload."""
    notification_type: str
    subtype: Optional[str] = None
    notification_uuid: str
    version: Optional[str] = None
    signed_date: Optional[AppleDate] = None
    data: Optional[NotificationData] = None


class VerifiedNotification(BaseModel):
    """A notification with its embedded transaction and renewal info decoded."""
    notification: DecodedNotification
    data: NotificationData
    renewal_info: RenewalInfo
    transaction_info: TransactionInfo


class SubscriptionRecord(BaseModel):
    """
    One transaction as reported by the App Store Server API.
    renewal_info is None when Apple's status endpoint didn't cover it.
    """
    transaction_info: TransactionInfo
    renewal_info: Optional[RenewalInfo] = None
