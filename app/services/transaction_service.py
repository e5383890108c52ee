"""
Transaction service module.

Maintains the transaction ledger: merges transactions observed through webhooks
and receipts, and resolves the entitlement a family currently holds.
"""
import logging
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import AppError, ErrorCode
from app.core.receipt import extract_transaction_id_from_app_receipt
from app.models.base import utcnow
from app.models.transaction import PURCHASED
from app.models.transaction import Transaction as TransactionModel
from app.models.user import User
from app.schemas.apple import RenewalInfo, TransactionInfo
from app.schemas.transaction import Entitlement, Transaction
from app.services import catalog
from app.services.app_store_client import AppStoreServerClient
from app.services.family_service import get_family_head_user_id

logger = logging.getLogger(__name__)


class TransactionService:
    """
    Service for transaction ledger operations.
    """

    def __init__(self, db: Session):
        """
        Initialize the transaction service.

        Args:
            db: Database session
        """
        self.db = db

    def _validate(self, user_id: str, transaction_info: TransactionInfo) -> catalog.Product:
        """
        Reject a transaction that must not enter the ledger.

        Returns:
            catalog.Product: The catalog entry for the transaction's product

        Raises:
            AppError: On the first failed check
        """
        if transaction_info.environment != settings.APPLE_ENVIRONMENT:
            raise AppError(
                f"Transaction environment {transaction_info.environment} doesn't match {settings.APPLE_ENVIRONMENT}",
                ErrorCode.ENVIRONMENT_INVALID,
            )

        if transaction_info.in_app_ownership_type != PURCHASED:
            raise AppError(
                f"inAppOwnershipType must be {PURCHASED}, got {transaction_info.in_app_ownership_type}",
                ErrorCode.VALUE_INVALID,
            )

        product = catalog.get_product(transaction_info.product_id)
        if product is None:
            raise AppError(
                f"Unknown productId {transaction_info.product_id}",
                ErrorCode.PRODUCT_UNKNOWN,
            )

        # Only the family head may hold a subscription
        if get_family_head_user_id(self.db, user_id) != user_id:
            raise AppError(
                f"User {user_id} is not the head of a family",
                ErrorCode.PERMISSION_INVALID_FAMILY,
            )

        if transaction_info.transaction_id is None:
            raise AppError("transactionId missing", ErrorCode.VALUE_MISSING)
        if transaction_info.purchase_date is None:
            raise AppError("purchaseDate missing", ErrorCode.VALUE_MISSING)

        return product

    def upsert_transaction(
        self,
        user_id: str,
        renewal_info: Optional[RenewalInfo],
        transaction_info: TransactionInfo,
    ) -> None:
        """
        Insert a transaction into the ledger or merge it into the existing row.

        Commercial facts of an existing row are never changed. Renewal facts
        are only overwritten by values that are present, and a revocation is
        never cleared. Afterwards only the user's most recently purchased,
        non-revoked transaction may keep auto_renew_status = 1.

        Args:
            user_id: userId of the family head owning the transaction
            renewal_info: Renewal info observed with the transaction, if any
            transaction_info: The transaction

        Raises:
            AppError: If the transaction fails validation
        """
        product = self._validate(user_id, transaction_info)
        transaction_id = transaction_info.transaction_id
        new_auto_renew_product_id = renewal_info.auto_renew_product_id if renewal_info else None
        new_auto_renew_status = renewal_info.auto_renew_status if renewal_info else None

        try:
            # Serializes concurrent upserts for the same user
            user = self.db.query(User).filter(User.user_id == user_id).with_for_update().one_or_none()
            if user is None:
                raise AppError(f"User {user_id} not found", ErrorCode.PERMISSION_NO_USER)

            transaction = self.db.query(TransactionModel).filter(
                TransactionModel.transaction_id == transaction_id
            ).with_for_update().one_or_none()

            if transaction is None:
                transaction = TransactionModel(
                    transaction_id=transaction_id,
                    original_transaction_id=transaction_info.original_transaction_id,
                    user_id=user_id,
                    product_id=transaction_info.product_id,
                    purchase_date=transaction_info.purchase_date,
                    expires_date=transaction_info.expires_date,
                    quantity=transaction_info.quantity,
                    subscription_group_identifier=transaction_info.subscription_group_identifier,
                    offer_identifier=transaction_info.offer_identifier,
                    offer_type=transaction_info.offer_type,
                    transaction_reason=transaction_info.transaction_reason,
                    web_order_line_item_id=transaction_info.web_order_line_item_id,
                    environment=transaction_info.environment,
                    in_app_ownership_type=transaction_info.in_app_ownership_type,
                    number_of_family_members=product.number_of_family_members,
                    number_of_dogs=product.number_of_dogs,
                    auto_renew_product_id=new_auto_renew_product_id or transaction_info.product_id,
                    auto_renew_status=new_auto_renew_status if new_auto_renew_status is not None else 1,
                    revocation_reason=transaction_info.revocation_reason,
                )
                self.db.add(transaction)
                logger.info(f"Inserted transaction {transaction_id} for user {user_id}")
            else:
                if new_auto_renew_product_id is not None:
                    transaction.auto_renew_product_id = new_auto_renew_product_id
                if new_auto_renew_status is not None:
                    transaction.auto_renew_status = new_auto_renew_status
                if transaction_info.revocation_reason is not None:
                    transaction.revocation_reason = transaction_info.revocation_reason
                logger.info(f"Updated transaction {transaction_id} for user {user_id}")

            self.db.flush()
            self._recompute_auto_renew_status(user_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def _recompute_auto_renew_status(self, user_id: str) -> None:
        """Turn off auto-renew on every row except the user's most recent non-revoked one."""
        latest = self._latest_non_revoked(user_id)
        if latest is None:
            return

        self.db.query(TransactionModel).filter(
            TransactionModel.user_id == user_id,
            TransactionModel.transaction_id != latest.transaction_id,
            TransactionModel.auto_renew_status != 0,
        ).update({TransactionModel.auto_renew_status: 0}, synchronize_session=False)

    def _latest_non_revoked(self, user_id: str) -> Optional[TransactionModel]:
        return self.db.query(TransactionModel).filter(
            TransactionModel.user_id == user_id,
            TransactionModel.revocation_reason.is_(None),
        ).order_by(
            TransactionModel.purchase_date.desc(),
            TransactionModel.transaction_id.desc(),
        ).first()

    def _resolve_family_head(self, user_id: str) -> str:
        # Users without a family can only own their own transactions
        return get_family_head_user_id(self.db, user_id) or user_id

    def get_transaction_owner(
        self,
        app_account_token: Optional[str],
        transaction_id: Optional[int],
        original_transaction_id: Optional[int],
    ) -> Optional[str]:
        """
        Find the user a transaction belongs to.

        Tries the appAccountToken first, then earlier transactions of the same
        subscription, then the transaction itself. Revoked rows count.

        Args:
            app_account_token: appAccountToken attached to the purchase
            transaction_id: The transaction's id
            original_transaction_id: The subscription's original transaction id

        Returns:
            Optional[str]: The owner's userId, None if the transaction can't be attributed
        """
        if app_account_token:
            user = self.db.query(User).filter(
                func.lower(User.user_app_account_token) == str(app_account_token).lower()
            ).first()
            if user is not None:
                return user.user_id

        if original_transaction_id is not None:
            transaction = self.db.query(TransactionModel).filter(
                TransactionModel.original_transaction_id == original_transaction_id
            ).order_by(TransactionModel.purchase_date.desc()).first()
            if transaction is not None:
                return transaction.user_id

        if transaction_id is not None:
            transaction = self.db.query(TransactionModel).filter(
                TransactionModel.transaction_id == transaction_id
            ).first()
            if transaction is not None:
                return transaction.user_id

        return None

    def get_active_transaction(self, user_id: str) -> Optional[TransactionModel]:
        """
        Get the transaction that currently defines a family's subscription.

        Family members share the subscription of their family head.

        Args:
            user_id: userId of any member of the family

        Returns:
            Optional[TransactionModel]: The most recently purchased non-revoked
            transaction of the family head, None if there is none
        """
        return self._latest_non_revoked(self._resolve_family_head(user_id))

    def get_all_transactions(self, user_id: str) -> List[Transaction]:
        """
        Get the non-revoked transaction history of a user's family.

        Args:
            user_id: userId of any member of the family

        Returns:
            List[Transaction]: Transactions from most to least recent, the active one flagged
        """
        family_head_user_id = self._resolve_family_head(user_id)
        active = self._latest_non_revoked(family_head_user_id)

        transactions = self.db.query(TransactionModel).filter(
            TransactionModel.user_id == family_head_user_id,
            TransactionModel.revocation_reason.is_(None),
        ).order_by(
            TransactionModel.purchase_date.desc(),
            TransactionModel.expires_date.desc(),
        ).all()

        results = []
        for transaction in transactions:
            result = Transaction.model_validate(transaction)
            result.is_active = active is not None and transaction.transaction_id == active.transaction_id
            results.append(result)
        return results

    def get_family_entitlement(self, user_id: str) -> Entitlement:
        """
        Get the limits a user's family is entitled to.

        Args:
            user_id: userId of any member of the family

        Returns:
            Entitlement: The active transaction's limits, or the free tier when
            there is no active transaction or it has expired
        """
        active = self.get_active_transaction(user_id)
        if active is not None and (active.expires_date is None or active.expires_date > utcnow()):
            return Entitlement(
                product_id=active.product_id,
                number_of_family_members=active.number_of_family_members,
                number_of_dogs=active.number_of_dogs,
                transaction_id=active.transaction_id,
                expires_date=active.expires_date,
            )

        default = catalog.get_default_product()
        return Entitlement(
            product_id=default.product_id,
            number_of_family_members=default.number_of_family_members,
            number_of_dogs=default.number_of_dogs,
            is_default=True,
        )

    def create_transactions_for_receipt(
        self,
        user_id: str,
        app_receipt: str,
        client: Optional[AppStoreServerClient] = None,
    ) -> TransactionModel:
        """
        Pull every subscription transaction behind a receipt into the ledger.

        Args:
            user_id: userId of the user submitting the receipt
            app_receipt: The base64 encoded app receipt
            client: App Store Server API client, a new one when omitted

        Returns:
            TransactionModel: The user's active transaction after the refresh

        Raises:
            AppError: If the receipt can't be parsed, Apple knows no subscriptions
            for it, or no active transaction remains
        """
        transaction_id = extract_transaction_id_from_app_receipt(app_receipt)
        if transaction_id is None:
            raise AppError("appStoreReceiptURL couldn't be parsed", ErrorCode.RECEIPT_UNPARSABLE)

        client = client or AppStoreServerClient()
        records = client.query_all_subscriptions_for_transaction_id(transaction_id)
        if not records:
            raise AppError(
                f"No subscriptions found for transaction {transaction_id}",
                ErrorCode.SUBSCRIPTIONS_NOT_FOUND,
            )

        for record in records:
            try:
                self.upsert_transaction(user_id, record.renewal_info, record.transaction_info)
            except Exception as e:
                logger.error(
                    f"Error storing transaction {record.transaction_info.transaction_id} "
                    f"for user {user_id}: {str(e)}"
                )

        active = self.get_active_transaction(user_id)
        if active is None:
            raise AppError(f"No active transaction for user {user_id}", ErrorCode.VALUE_MISSING)
        return active
