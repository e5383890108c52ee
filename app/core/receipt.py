"""
App Store receipt parsing module.

Recovers a transaction id from the app's base64 encoded receipt (a PKCS#7
container) without any network or database access. Nothing in the receipt is
verified: the id is only good for querying the App Store Server API, which
returns signed data of its own.
"""
import logging
from typing import Optional

from appstoreserverlibrary.receipt_utility import ReceiptUtility

logger = logging.getLogger(__name__)


def extract_transaction_id_from_app_receipt(app_receipt: str) -> Optional[int]:
    """
    Extract a transaction id from an encoded App Receipt.

    Args:
        app_receipt: The unmodified, base64 encoded app receipt

    Returns:
        Optional[int]: The first transaction id or original transaction id of
        the receipt's in-app purchases, None if the receipt has none or can't
        be parsed
    """
    try:
        transaction_id = ReceiptUtility().extract_transaction_id_from_app_receipt(app_receipt)
    except ValueError as e:
        logger.warning(f"Unable to parse app receipt: {str(e)}")
        return None

    if transaction_id is None:
        return None

    try:
        return int(transaction_id)
    except ValueError:
        logger.warning(f"Receipt transaction id is not numeric: {transaction_id!r}")
        return None
