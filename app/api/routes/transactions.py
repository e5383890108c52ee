"""
Transaction ledger API endpoints.
"""
import logging
from typing import List
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.core.errors import AppError, ErrorCode
from app.core.security import require_user_access
from app.db.session import get_db
from app.schemas.transaction import AppStoreReceiptRequest, Entitlement, ErrorResponse, Transaction
from app.services.transaction_service import TransactionService

router = APIRouter()
logger = logging.getLogger(__name__)

ERROR_RESPONSES = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    status.HTTP_403_FORBIDDEN: {"model": ErrorResponse},
    status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
}


def _active(transaction) -> Transaction:
    result = Transaction.model_validate(transaction)
    result.is_active = True
    return result


@router.post(
    "/users/{user_id}/transactions",
    response_model=Transaction,
    status_code=status.HTTP_200_OK,
    summary="Refresh a user's transactions from their App Store receipt",
    responses=ERROR_RESPONSES,
)
def create_transactions_for_receipt(
    receipt: AppStoreReceiptRequest,
    user_id: str = Depends(require_user_access),
    db: Session = Depends(get_db)
):
    """
    Pull every subscription transaction behind the app's receipt into the ledger.

    Args:
        receipt: The base64 encoded app receipt
        user_id: The authenticated user's ID
        db: Database session

    Returns:
        Transaction: The user's active transaction after the refresh

    Raises:
        AppError: If the receipt yields no subscription for the user
    """
    logger.info(f"Receipt submitted by user {user_id}")
    transaction_service = TransactionService(db)
    return _active(transaction_service.create_transactions_for_receipt(user_id, receipt.appStoreReceiptURL))


@router.get(
    "/users/{user_id}/transactions",
    response_model=List[Transaction],
    status_code=status.HTTP_200_OK,
    summary="Get a user's transaction history",
    responses=ERROR_RESPONSES,
)
def get_transactions(
    user_id: str = Depends(require_user_access),
    db: Session = Depends(get_db)
):
    """
    Get the non-revoked transactions of the user's family, most recent first.

    Args:
        user_id: The authenticated user's ID
        db: Database session

    Returns:
        List[Transaction]: The transactions, the active one flagged
    """
    return TransactionService(db).get_all_transactions(user_id)


@router.get(
    "/users/{user_id}/transactions/active",
    response_model=Transaction,
    status_code=status.HTTP_200_OK,
    summary="Get a user's active transaction",
    responses=ERROR_RESPONSES,
)
def get_active_transaction(
    user_id: str = Depends(require_user_access),
    db: Session = Depends(get_db)
):
    """
    Get the transaction that currently defines the family's subscription.

    Args:
        user_id: The authenticated user's ID
        db: Database session

    Returns:
        Transaction: The active transaction

    Raises:
        AppError: If the family has no active transaction
    """
    transaction = TransactionService(db).get_active_transaction(user_id)
    if transaction is None:
        raise AppError(f"No active transaction for user {user_id}", ErrorCode.VALUE_MISSING)
    return _active(transaction)


@router.get(
    "/users/{user_id}/entitlement",
    response_model=Entitlement,
    status_code=status.HTTP_200_OK,
    summary="Get the limits of a user's family",
    responses=ERROR_RESPONSES,
)
def get_entitlement(
    user_id: str = Depends(require_user_access),
    db: Session = Depends(get_db)
):
    """Get the family member and dog limits the user's family is entitled to."""
    return TransactionService(db).get_family_entitlement(user_id)
