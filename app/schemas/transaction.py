"""
Transaction schemas module.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from app.schemas.base import BaseSchema


class Transaction(BaseSchema):
    """Schema for a ledger row returned to the app."""
    user_id: str
    transaction_id: int
    original_transaction_id: Optional[int] = None
    product_id: str
    purchase_date: datetime
    expires_date: Optional[datetime] = None
    number_of_family_members: int
    number_of_dogs: int
    auto_renew_status: int
    auto_renew_product_id: str
    revocation_reason: Optional[int] = None
    offer_identifier: Optional[str] = None
    # Set after the query; flags the row the entitlement resolver picked
    is_active: bool = False


class Entitlement(BaseModel):
    """Limits the family currently has access to."""
    product_id: str
    number_of_family_members: int
    number_of_dogs: int
    is_default: bool = False
    transaction_id: Optional[int] = None
    expires_date: Optional[datetime] = None


class AppStoreReceiptRequest(BaseModel):
    """Schema for submitting the app's receipt for reconciliation."""
    appStoreReceiptURL: str = Field(..., min_length=1)


class AppleNotificationPayload(BaseModel):
    """
    Schema for Apple App Store Server Notification payload.
    This represents the root object that Apple sends to the webhook.
    """
    signedPayload: str


class ErrorResponse(BaseModel):
    """Body returned with every AppError."""
    code: str
    message: str
