"""
Tests for the transaction ledger service.
"""
from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest

from app.core.errors import AppError, ErrorCode
from app.models.transaction import Transaction as TransactionModel
from app.schemas.apple import SubscriptionRecord
from app.services.catalog import DEFAULT_SUBSCRIPTION_PRODUCT_ID
from app.services.transaction_service import TransactionService

SIX_MEMBER_MONTHLY = "com.jonathanxakellis.hound.sixfamilymemberssixdogs.monthly"
TWO_MEMBER_MONTHLY = "com.jonathanxakellis.hound.twofamilymemberstwodogs.monthly"


@pytest.fixture
def service(db_session):
    return TransactionService(db_session)


@pytest.fixture
def head(create_user):
    return create_user("head-user", app_account_token="6b1c2bd7-3a71-4b4d-9f51-6a1d2f7b8c90")


def _row(db_session, transaction_id):
    return db_session.query(TransactionModel).filter(
        TransactionModel.transaction_id == transaction_id
    ).one()


def test_insert_without_renewal_info_uses_defaults(service, db_session, head, transaction_info):
    service.upsert_transaction("head-user", None, transaction_info(1))

    row = _row(db_session, 1)
    assert row.user_id == "head-user"
    assert row.auto_renew_product_id == SIX_MEMBER_MONTHLY
    assert row.auto_renew_status == 1
    assert row.number_of_family_members == 6
    assert row.number_of_dogs == 10
    assert row.revocation_reason is None


def test_renewal_turns_off_previous_period(service, db_session, head, transaction_info, renewal_info):
    service.upsert_transaction("head-user", renewal_info(), transaction_info(1, purchase_date=datetime(2030, 1, 1)))
    service.upsert_transaction("head-user", renewal_info(), transaction_info(2, purchase_date=datetime(2030, 2, 1)))

    assert _row(db_session, 1).auto_renew_status == 0
    assert _row(db_session, 2).auto_renew_status == 1
    assert service.get_active_transaction("head-user").transaction_id == 2


def test_out_of_order_delivery_converges(service, db_session, head, transaction_info, renewal_info):
    service.upsert_transaction("head-user", renewal_info(), transaction_info(2, purchase_date=datetime(2030, 2, 1)))
    service.upsert_transaction("head-user", renewal_info(), transaction_info(1, purchase_date=datetime(2030, 1, 1)))

    assert _row(db_session, 1).auto_renew_status == 0
    assert _row(db_session, 2).auto_renew_status == 1
    assert service.get_active_transaction("head-user").transaction_id == 2


def test_purchase_date_tie_broken_by_transaction_id(service, head, transaction_info):
    service.upsert_transaction("head-user", None, transaction_info(7))
    service.upsert_transaction("head-user", None, transaction_info(9))
    service.upsert_transaction("head-user", None, transaction_info(8))

    assert service.get_active_transaction("head-user").transaction_id == 9


def test_commercial_facts_are_not_overwritten(service, db_session, head, transaction_info):
    service.upsert_transaction("head-user", None, transaction_info(1, expires_date=datetime(2030, 2, 1)))
    service.upsert_transaction("head-user", None, transaction_info(1, expires_date=datetime(2031, 2, 1)))

    assert _row(db_session, 1).expires_date == datetime(2030, 2, 1)
    assert db_session.query(TransactionModel).count() == 1


def test_renewal_facts_only_overwritten_when_present(service, db_session, head, transaction_info, renewal_info):
    service.upsert_transaction("head-user", renewal_info(), transaction_info(1))

    service.upsert_transaction(
        "head-user",
        renewal_info(auto_renew_status=None, auto_renew_product_id=TWO_MEMBER_MONTHLY),
        transaction_info(1),
    )
    row = _row(db_session, 1)
    assert row.auto_renew_status == 1
    assert row.auto_renew_product_id == TWO_MEMBER_MONTHLY

    service.upsert_transaction("head-user", renewal_info(auto_renew_status=0, auto_renew_product_id=None), transaction_info(1))
    row = _row(db_session, 1)
    assert row.auto_renew_status == 0
    assert row.auto_renew_product_id == TWO_MEMBER_MONTHLY


def test_revocation_is_never_cleared(service, db_session, head, transaction_info):
    service.upsert_transaction("head-user", None, transaction_info(1))
    service.upsert_transaction("head-user", None, transaction_info(1, revocation_reason=1))
    # A later observation without a revocation, e.g. REFUND_REVERSED
    service.upsert_transaction("head-user", None, transaction_info(1, revocation_reason=None))

    assert _row(db_session, 1).revocation_reason == 1
    assert service.get_active_transaction("head-user") is None


def test_revoking_latest_falls_back_to_previous(service, db_session, head, transaction_info):
    service.upsert_transaction("head-user", None, transaction_info(1, purchase_date=datetime(2030, 1, 1)))
    service.upsert_transaction("head-user", None, transaction_info(2, purchase_date=datetime(2030, 2, 1)))
    service.upsert_transaction("head-user", None, transaction_info(2, purchase_date=datetime(2030, 2, 1), revocation_reason=0))

    assert service.get_active_transaction("head-user").transaction_id == 1
    assert _row(db_session, 2).auto_renew_status == 0
    # The fallback keeps whatever status it already had
    assert _row(db_session, 1).auto_renew_status == 0


def test_revoked_only_rows_are_left_alone(service, db_session, head, transaction_info):
    service.upsert_transaction("head-user", None, transaction_info(1, revocation_reason=1))

    assert _row(db_session, 1).auto_renew_status == 1
    assert service.get_active_transaction("head-user") is None


@pytest.mark.parametrize(
    "overrides, code",
    [
        ({"environment": "Production"}, ErrorCode.ENVIRONMENT_INVALID),
        ({"in_app_ownership_type": "FAMILY_SHARED"}, ErrorCode.VALUE_INVALID),
        ({"product_id": "com.jonathanxakellis.hound.unknown"}, ErrorCode.PRODUCT_UNKNOWN),
        ({"transaction_id": None}, ErrorCode.VALUE_MISSING),
        # Environment is checked before the product
        ({"environment": "Production", "product_id": "unknown"}, ErrorCode.ENVIRONMENT_INVALID),
    ],
)
def test_upsert_validation(service, db_session, head, transaction_info, overrides, code):
    with pytest.raises(AppError) as exc_info:
        service.upsert_transaction("head-user", None, transaction_info(1, **overrides))

    assert exc_info.value.code == code
    assert db_session.query(TransactionModel).count() == 0


def test_upsert_rejects_family_member(service, db_session, head, create_user, transaction_info):
    create_user("member-user", family_head_user_id="head-user")

    with pytest.raises(AppError) as exc_info:
        service.upsert_transaction("member-user", None, transaction_info(1))

    assert exc_info.value.code == ErrorCode.PERMISSION_INVALID_FAMILY
    assert db_session.query(TransactionModel).count() == 0


def test_family_member_sees_head_transaction(service, head, create_user, transaction_info):
    create_user("member-user", family_head_user_id="head-user")
    service.upsert_transaction("head-user", None, transaction_info(1))

    assert service.get_active_transaction("member-user").transaction_id == 1
    assert service.get_family_entitlement("member-user").number_of_family_members == 6


def test_get_transaction_owner(service, head, create_user, transaction_info):
    create_user("other-user")
    service.upsert_transaction("other-user", None, transaction_info(5, original_transaction_id=500))

    assert service.get_transaction_owner("6b1c2bd7-3a71-4b4d-9f51-6a1d2f7b8c90", 99, 999) == "head-user"
    assert service.get_transaction_owner(None, 6, 500) == "other-user"
    assert service.get_transaction_owner(None, 5, None) == "other-user"
    assert service.get_transaction_owner("unknown-token", 99, 999) is None


def test_get_transaction_owner_ignores_token_case(service, create_user):
    create_user("upper-user", app_account_token="0E0F3B6C-5A3C-4B0E-8C3E-2A7C4F1D9B11")

    assert service.get_transaction_owner("0e0f3b6c-5a3c-4b0e-8c3e-2a7c4f1d9b11", 99, 999) == "upper-user"
    assert service.get_transaction_owner("0E0F3B6C-5A3C-4B0E-8C3E-2A7C4F1D9B11", 99, 999) == "upper-user"
    assert service.get_transaction_owner("6B1C2BD7-3A71-4B4D-9F51-6A1D2F7B8C90", 99, 999) is None


def test_get_all_transactions_flags_active(service, head, transaction_info):
    service.upsert_transaction("head-user", None, transaction_info(1, purchase_date=datetime(2030, 1, 1)))
    service.upsert_transaction("head-user", None, transaction_info(2, purchase_date=datetime(2030, 2, 1)))
    service.upsert_transaction("head-user", None, transaction_info(3, purchase_date=datetime(2030, 3, 1), revocation_reason=1))

    transactions = service.get_all_transactions("head-user")

    assert [t.transaction_id for t in transactions] == [2, 1]
    assert [t.is_active for t in transactions] == [True, False]


def test_entitlement_falls_back_to_default(service, head, transaction_info):
    entitlement = service.get_family_entitlement("head-user")
    assert entitlement.is_default
    assert entitlement.product_id == DEFAULT_SUBSCRIPTION_PRODUCT_ID
    assert entitlement.number_of_family_members == 1

    service.upsert_transaction(
        "head-user",
        None,
        transaction_info(1, purchase_date=datetime(2020, 1, 1), expires_date=datetime(2020, 2, 1)),
    )
    assert service.get_family_entitlement("head-user").is_default


def test_entitlement_of_active_subscription(service, head, transaction_info):
    service.upsert_transaction("head-user", None, transaction_info(1))

    entitlement = service.get_family_entitlement("head-user")

    assert not entitlement.is_default
    assert entitlement.product_id == SIX_MEMBER_MONTHLY
    assert entitlement.number_of_family_members == 6
    assert entitlement.transaction_id == 1


@patch("app.services.transaction_service.extract_transaction_id_from_app_receipt", return_value=None)
def test_receipt_unparsable(mock_extract, service, head):
    with pytest.raises(AppError) as exc_info:
        service.create_transactions_for_receipt("head-user", "bm90IGEgcmVjZWlwdA==", client=MagicMock())

    assert exc_info.value.code == ErrorCode.RECEIPT_UNPARSABLE


@patch("app.services.transaction_service.extract_transaction_id_from_app_receipt", return_value=1)
def test_receipt_without_subscriptions(mock_extract, service, head):
    client = MagicMock()
    client.query_all_subscriptions_for_transaction_id.return_value = []

    with pytest.raises(AppError) as exc_info:
        service.create_transactions_for_receipt("head-user", "receipt", client=client)

    assert exc_info.value.code == ErrorCode.SUBSCRIPTIONS_NOT_FOUND
    client.query_all_subscriptions_for_transaction_id.assert_called_once_with(1)


@patch("app.services.transaction_service.extract_transaction_id_from_app_receipt", return_value=1)
def test_receipt_skips_failing_records(mock_extract, service, db_session, head, transaction_info, renewal_info):
    client = MagicMock()
    client.query_all_subscriptions_for_transaction_id.return_value = [
        SubscriptionRecord(
            transaction_info=transaction_info(3, product_id="unknown", purchase_date=datetime(2030, 3, 1)),
        ),
        SubscriptionRecord(
            transaction_info=transaction_info(2, purchase_date=datetime(2030, 2, 1)),
            renewal_info=renewal_info(auto_renew_status=0),
        ),
        SubscriptionRecord(transaction_info=transaction_info(1, purchase_date=datetime(2030, 1, 1))),
    ]

    active = service.create_transactions_for_receipt("head-user", "receipt", client=client)

    assert active.transaction_id == 2
    assert active.auto_renew_status == 0
    assert db_session.query(TransactionModel).count() == 2

    # Submitting the same receipt again changes nothing
    service.create_transactions_for_receipt("head-user", "receipt", client=client)
    assert db_session.query(TransactionModel).count() == 2


@patch("app.services.transaction_service.extract_transaction_id_from_app_receipt", return_value=1)
def test_receipt_with_no_usable_records(mock_extract, service, head, transaction_info):
    client = MagicMock()
    client.query_all_subscriptions_for_transaction_id.return_value = [
        SubscriptionRecord(transaction_info=transaction_info(1, environment="Production")),
    ]

    with pytest.raises(AppError) as exc_info:
        service.create_transactions_for_receipt("head-user", "receipt", client=client)

    assert exc_info.value.code == ErrorCode.VALUE_MISSING
