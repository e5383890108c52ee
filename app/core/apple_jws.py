"""
Apple JWS signature verification module.

Verifies and decodes the signed payloads the App Store sends (notifications,
transactions, renewal info). Signature and certificate chain checks are done
by Apple's app-store-server-library; this module loads the root certificates,
configures the verifier and turns its output into our schemas.
"""
import enum
import logging
import os
from typing import Any, Dict, List, Optional, Type, TypeVar

import requests
from appstoreserverlibrary.models.Environment import Environment
from appstoreserverlibrary.signed_data_verifier import SignedDataVerifier, VerificationException
from pydantic import BaseModel
from tenacity import retry, stop_after_attempt, wait_exponential

from app.core.config import settings
from app.core.errors import AppError, ErrorCode
from app.schemas.apple import (
    DecodedNotification,
    NotificationData,
    RenewalInfo,
    TransactionInfo,
    VerifiedNotification,
)

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)

# snake_case fields whose Apple spelling isn't plain camelCase
_APPLE_FIELD_NAMES = {
    "notification_uuid": "notificationUUID",
}


def _apple_field_name(name: str) -> str:
    if name in _APPLE_FIELD_NAMES:
        return _APPLE_FIELD_NAMES[name]
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _to_schema(schema: Type[SchemaT], payload: Any) -> SchemaT:
    """
    Copy the fields of a decoded library model into one of our schemas.

    The library exposes enum-typed fields alongside a raw* twin holding the
    value Apple actually sent; the raw value is preferred so that values newer
    than the installed library still come through.
    """
    values: Dict[str, Any] = {}
    for name in schema.model_fields:
        apple_name = _apple_field_name(name)
        value = getattr(payload, "raw" + apple_name[0].upper() + apple_name[1:], None)
        if value is None:
            value = getattr(payload, apple_name, None)
        if isinstance(value, enum.Enum):
            value = value.value
        if value is not None and not isinstance(value, (str, int, float, bool)):
            # Nested objects (notification data) are converted by the caller
            continue
        values[name] = value
    return schema.model_validate(values)


class AppleJWSVerifier:
    """
    Class for verifying Apple's JWS signatures.
    """
    # Cache for Apple's root certificates (DER encoded)
    _root_certificates: List[bytes] = []

    # Verifier built from the cached certificates
    _verifier: Optional[SignedDataVerifier] = None

    @classmethod
    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True
    )
    def get_apple_root_certificates(cls) -> List[bytes]:
        """
        Load and cache Apple's root certificates.

        Certificates are read from APPLE_ROOT_CERTIFICATES_DIR when configured,
        otherwise downloaded from Apple's certificate authority.

        Returns:
            List[bytes]: DER encoded root certificates
        """
        if cls._root_certificates:
            return cls._root_certificates

        certificates: List[bytes] = []
        directory = settings.APPLE_ROOT_CERTIFICATES_DIR
        if directory:
            for file_name in sorted(os.listdir(directory)):
                if file_name.endswith((".cer", ".der")):
                    with open(os.path.join(directory, file_name), "rb") as cert_file:
                        certificates.append(cert_file.read())
            logger.info(f"Loaded {len(certificates)} Apple root certificates from {directory}")
        else:
            for url in settings.APPLE_ROOT_CERTIFICATE_URLS:
                logger.info(f"Fetching Apple root certificate from {url}")
                response = requests.get(url, timeout=settings.APPLE_API_TIMEOUT_SECONDS)
                response.raise_for_status()
                certificates.append(response.content)

        if not certificates:
            raise ValueError("No Apple root certificates available")

        cls._root_certificates = certificates
        return cls._root_certificates

    @classmethod
    def get_verifier(cls) -> SignedDataVerifier:
        """Build, once per process, the verifier for the configured app and environment."""
        if cls._verifier is None:
            environment = Environment.PRODUCTION if settings.is_production else Environment.SANDBOX
            cls._verifier = SignedDataVerifier(
                cls.get_apple_root_certificates(),
                settings.APPLE_ENABLE_ONLINE_CHECKS,
                environment,
                settings.APPLE_BUNDLE_ID,
                settings.APPLE_APP_APPLE_ID,
            )
        return cls._verifier

    @classmethod
    def decode_notification(cls, signed_payload: str) -> DecodedNotification:
        """
        Verify and decode the signedPayload of an App Store Server Notification.

        Args:
            signed_payload: The JWS posted by Apple

        Returns:
            DecodedNotification: The decoded notification

        Raises:
            ValueError: If the signature or the payload is invalid
        """
        try:
            payload = cls.get_verifier().verify_and_decode_notification(signed_payload)
        except VerificationException as e:
            logger.error(f"Error verifying Apple JWS: {str(e)}")
            raise ValueError(f"Failed to verify Apple JWS signature: {str(e)}")

        notification = _to_schema(DecodedNotification, payload)
        if payload.data is not None:
            notification.data = _to_schema(NotificationData, payload.data)
        return notification

    @classmethod
    def decode_transaction_info(cls, signed_transaction_info: Optional[str]) -> Optional[TransactionInfo]:
        """
        Verify and decode a signedTransactionInfo.

        Returns:
            Optional[TransactionInfo]: The transaction, or None if it couldn't be verified
        """
        if not signed_transaction_info:
            return None
        try:
            payload = cls.get_verifier().verify_and_decode_signed_transaction(signed_transaction_info)
        except VerificationException as e:
            logger.error(f"Error verifying signedTransactionInfo: {str(e)}")
            return None

        transaction_info = _to_schema(TransactionInfo, payload)
        if transaction_info.bundle_id != settings.APPLE_BUNDLE_ID:
            logger.warning(f"Ignoring transaction for bundle {transaction_info.bundle_id}")
            return None
        return transaction_info

    @classmethod
    def decode_renewal_info(cls, signed_renewal_info: Optional[str]) -> Optional[RenewalInfo]:
        """
        Verify and decode a signedRenewalInfo. Renewal info carries no bundle id.

        Returns:
            Optional[RenewalInfo]: The renewal info, or None if it couldn't be verified
        """
        if not signed_renewal_info:
            return None
        try:
            payload = cls.get_verifier().verify_and_decode_renewal_info(signed_renewal_info)
        except VerificationException as e:
            logger.error(f"Error verifying signedRenewalInfo: {str(e)}")
            return None

        return _to_schema(RenewalInfo, payload)

    @classmethod
    def verify_signed_payload(cls, signed_payload: str) -> VerifiedNotification:
        """
        Verify a notification and the transaction and renewal info it embeds.

        Args:
            signed_payload: The JWS posted by Apple

        Returns:
            VerifiedNotification: The decoded components

        Raises:
            ValueError: If the notification signature is invalid
            AppError: If a component is missing or belongs to another app
        """
        notification = cls.decode_notification(signed_payload)

        data = notification.data
        if data is None:
            raise AppError("notification data missing", ErrorCode.VALUE_MISSING)
        if data.bundle_id != settings.APPLE_BUNDLE_ID:
            raise AppError(f"bundleId must be '{settings.APPLE_BUNDLE_ID}', not '{data.bundle_id}'", ErrorCode.VALUE_INVALID)

        transaction_info = cls.decode_transaction_info(data.signed_transaction_info)
        renewal_info = cls.decode_renewal_info(data.signed_renewal_info)

        if transaction_info is None:
            raise AppError("transactionInfo missing", ErrorCode.VALUE_MISSING)
        if renewal_info is None:
            raise AppError("renewalInfo missing", ErrorCode.VALUE_MISSING)

        return VerifiedNotification(
            notification=notification,
            data=data,
            renewal_info=renewal_info,
            transaction_info=transaction_info,
        )
