"""
Domain error module.

Every error surfaced to an API caller carries one of a closed set of codes.
"""
import enum
from typing import Any, Dict

from fastapi import status


class ErrorCode(str, enum.Enum):
    """Stable error codes returned to clients."""
    VALUE_MISSING = "ER_VALUE_MISSING"
    VALUE_INVALID = "ER_VALUE_INVALID"
    PRODUCT_UNKNOWN = "ER_VALUE_PRODUCT_UNKNOWN"
    RECEIPT_UNPARSABLE = "ER_VALUE_RECEIPT_UNPARSABLE"
    SUBSCRIPTIONS_NOT_FOUND = "ER_VALUE_SUBSCRIPTIONS_NOT_FOUND"
    ENVIRONMENT_INVALID = "ER_GENERAL_ENVIRONMENT_INVALID"
    APPLE_SERVER_FAILED = "ER_GENERAL_APPLE_SERVER_FAILED"
    PERMISSION_NO_USER = "ER_PERMISSION_NO_USER"
    PERMISSION_INVALID_FAMILY = "ER_PERMISSION_INVALID_FAMILY"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES.get(self, status.HTTP_400_BAD_REQUEST)


_STATUS_CODES = {
    ErrorCode.VALUE_MISSING: status.HTTP_404_NOT_FOUND,
    ErrorCode.APPLE_SERVER_FAILED: status.HTTP_502_BAD_GATEWAY,
    ErrorCode.PERMISSION_NO_USER: status.HTTP_403_FORBIDDEN,
    ErrorCode.PERMISSION_INVALID_FAMILY: status.HTTP_403_FORBIDDEN,
}


class AppError(Exception):
    """
    Typed domain error.

    Args:
        message: Human readable description, safe to return to the client
        code: The error code identifying the failure
    """

    def __init__(self, message: str, code: ErrorCode):
        super().__init__(message)
        self.message = message
        self.code = code

    @property
    def status_code(self) -> int:
        return self.code.status_code

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code.value, "message": self.message}

    def __repr__(self):
        return f"<AppError {self.code.value}: {self.message}>"
