"""
App Store Server API client.

Pulls a customer's subscription transactions from Apple, the counterpart of
the notifications Apple pushes to the webhook.

Documentation:
https://developer.apple.com/documentation/appstoreserverapi
"""
import logging
from typing import Any, Dict, List, Optional, Union

import requests
from appstoreserverlibrary.api_client import (
    APIException,
    AppStoreServerAPIClient,
    GetTransactionHistoryVersion,
)
from appstoreserverlibrary.models.Environment import Environment
from appstoreserverlibrary.models.TransactionHistoryRequest import Order, TransactionHistoryRequest

from app.core.apple_jws import AppleJWSVerifier
from app.core.config import settings
from app.models.transaction import AUTO_RENEWABLE_SUBSCRIPTION
from app.schemas.apple import SubscriptionRecord, TransactionInfo

logger = logging.getLogger(__name__)


class AppStoreServerError(Exception):
    """Raised internally when a request to Apple fails or is rejected."""


class BoundedAppStoreServerAPIClient(AppStoreServerAPIClient):
    """AppStoreServerAPIClient whose requests use the configured timeout."""

    def _execute_request(
        self,
        method: str,
        url: str,
        params: Dict[str, Union[str, List[str]]],
        headers: Dict[str, str],
        json: Optional[Dict[str, Any]],
        data: Optional[bytes],
    ) -> requests.Response:
        return requests.request(
            method,
            url,
            params=params,
            headers=headers,
            json=json,
            data=data,
            timeout=settings.APPLE_API_TIMEOUT_SECONDS,
        )


class AppStoreServerClient:
    """
    Client for the App Store Server API.

    Every public method swallows transport and decoding failures and returns
    an empty list: the ledger simply learns nothing new this time.
    """

    def __init__(self, api_client: Optional[AppStoreServerAPIClient] = None, verifier=AppleJWSVerifier):
        """
        Initialize the client.

        Args:
            api_client: Library client, built from settings on first use when omitted
            verifier: Decoder for the signed payloads Apple returns
        """
        self._api_client = api_client
        self.verifier = verifier

    @property
    def api_client(self) -> AppStoreServerAPIClient:
        if self._api_client is None:
            if not settings.APPLE_PRIVATE_KEY_PATH:
                raise AppStoreServerError("APPLE_PRIVATE_KEY_PATH is not configured")
            try:
                with open(settings.APPLE_PRIVATE_KEY_PATH, "rb") as key_file:
                    signing_key = key_file.read()
                self._api_client = BoundedAppStoreServerAPIClient(
                    signing_key=signing_key,
                    key_id=settings.APPLE_PRIVATE_KEY_ID,
                    issuer_id=settings.APPLE_ISSUER_ID,
                    bundle_id=settings.APPLE_BUNDLE_ID,
                    environment=Environment.PRODUCTION if settings.is_production else Environment.SANDBOX,
                )
            except (OSError, ValueError) as e:
                raise AppStoreServerError(f"Unable to load the App Store Server API key: {str(e)}") from e
        return self._api_client

    def _is_our_app(self, response) -> bool:
        if response.bundleId != settings.APPLE_BUNDLE_ID:
            logger.warning(f"Response for bundle {response.bundleId} ignored")
            return False
        if response.rawEnvironment != settings.APPLE_ENVIRONMENT:
            logger.warning(f"Response for environment {response.rawEnvironment} ignored")
            return False
        return True

    def _decode_transaction(self, signed_transaction_info: Optional[str]) -> TransactionInfo:
        transaction_info = self.verifier.decode_transaction_info(signed_transaction_info)
        if transaction_info is None:
            raise AppStoreServerError("signedTransactionInfo couldn't be decoded")
        return transaction_info

    def get_transaction_history(self, transaction_id: int) -> List[TransactionInfo]:
        """
        Get every auto-renewable subscription transaction linked to a transaction id.

        Follows Apple's pagination until hasMore is false.

        Args:
            transaction_id: Any transaction id of the customer

        Returns:
            List[TransactionInfo]: Transactions from most to least recent, or []
        """
        transactions: List[TransactionInfo] = []
        revision: Optional[str] = None
        request = TransactionHistoryRequest(sort=Order.DESCENDING)

        try:
            while True:
                # The first page must be requested without a revision
                response = self.api_client.get_transaction_history(
                    str(transaction_id), revision, request, GetTransactionHistoryVersion.V2
                )
                if not self._is_our_app(response):
                    break

                for signed_transaction_info in response.signedTransactions or []:
                    transaction_info = self._decode_transaction(signed_transaction_info)
                    if transaction_info.type == AUTO_RENEWABLE_SUBSCRIPTION:
                        transactions.append(transaction_info)

                revision = response.revision
                if not response.hasMore or not revision:
                    break
        except (APIException, requests.RequestException, AppStoreServerError) as e:
            logger.error(f"Error fetching transaction history for {transaction_id}: {str(e)}")
            return []

        return transactions

    def get_subscription_statuses(self, transaction_id: int) -> List[SubscriptionRecord]:
        """
        Get Apple's current view of every subscription group linked to a transaction id.

        Only the latest transaction of each group is returned, with its renewal info.

        Args:
            transaction_id: Any transaction id of the customer

        Returns:
            List[SubscriptionRecord]: One record per last transaction, or []
        """
        try:
            response = self.api_client.get_all_subscription_statuses(str(transaction_id))
            if not self._is_our_app(response):
                return []

            records: List[SubscriptionRecord] = []
            for group in response.data or []:
                for last_transaction in group.lastTransactions or []:
                    transaction_info = self._decode_transaction(last_transaction.signedTransactionInfo)
                    renewal_info = self.verifier.decode_renewal_info(last_transaction.signedRenewalInfo)
                    if renewal_info is None:
                        raise AppStoreServerError("signedRenewalInfo couldn't be decoded")
                    records.append(SubscriptionRecord(transaction_info=transaction_info, renewal_info=renewal_info))
        except (APIException, requests.RequestException, AppStoreServerError) as e:
            logger.error(f"Error fetching subscription statuses for {transaction_id}: {str(e)}")
            return []

        return records

    def query_all_subscriptions_for_transaction_id(self, transaction_id: int) -> List[SubscriptionRecord]:
        """
        Get every subscription transaction linked to a transaction id, from most
        to least recent. Renewal info is attached to the transactions Apple's
        status endpoint reports on; the others keep renewal_info None.

        Args:
            transaction_id: Any transaction id of the customer

        Returns:
            List[SubscriptionRecord]: The merged records, or []
        """
        history = self.get_transaction_history(transaction_id)
        if not history:
            return []

        records = [SubscriptionRecord(transaction_info=transaction_info) for transaction_info in history]

        # The status endpoint only reports current standing, so ask about the newest transaction
        statuses = self.get_subscription_statuses(history[0].transaction_id)
        renewal_infos = {
            status.transaction_info.transaction_id: status.renewal_info
            for status in statuses
        }

        for record in records:
            renewal_info = renewal_infos.get(record.transaction_info.transaction_id)
            if renewal_info is not None:
                record.renewal_info = renewal_info

        logger.info(
            f"Found {len(records)} subscription transactions for {transaction_id}, "
            f"{len(renewal_infos)} with renewal info"
        )
        return records
