"""
Pytest configuration file.
"""
import os

# Settings are read at import time
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["APPLE_BUNDLE_ID"] = "com.jonathanxakellis.hound"
os.environ["APPLE_ENVIRONMENT"] = "Sandbox"

from datetime import datetime
from typing import Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

import app.models  # noqa: F401
from app.core.security import create_access_token
from app.db.session import Base, get_db
from app.models.user import Family, FamilyMember, User
from app.schemas.apple import RenewalInfo, TransactionInfo
from main import app


# Test database URL
TEST_DATABASE_URL = "sqlite:///:memory:"

SIX_MEMBER_MONTHLY = "com.jonathanxakellis.hound.sixfamilymemberssixdogs.monthly"
TWO_MEMBER_MONTHLY = "com.jonathanxakellis.hound.twofamilymemberstwodogs.monthly"


@pytest.fixture
def engine():
    """Create a fresh test database engine for each test."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """
    Create a new database session for a test.

    Services commit their own transactions, so each test gets its own database.
    """
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def client(db_session):
    """
    Create a test client with a test database session.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def create_user(db_session):
    """
    Factory creating a user, by default as the head of their own family.
    """
    def _create_user(
        user_id: str,
        app_account_token: Optional[str] = None,
        family_head_user_id: Optional[str] = None,
    ) -> User:
        user = User(
            user_id=user_id,
            user_email=f"{user_id}@example.com",
            user_app_account_token=app_account_token,
        )
        db_session.add(user)

        if family_head_user_id is None:
            db_session.add(Family(family_id=f"family-{user_id}", user_id=user_id))
            db_session.add(FamilyMember(user_id=user_id, family_id=f"family-{user_id}"))
        else:
            db_session.add(FamilyMember(user_id=user_id, family_id=f"family-{family_head_user_id}"))

        db_session.commit()
        return user

    return _create_user


@pytest.fixture
def auth_headers():
    """Factory for the Authorization header of a user."""
    def _auth_headers(user_id: str):
        token = create_access_token({"sub": user_id})
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers


def make_transaction_info(transaction_id: int, /, **overrides) -> TransactionInfo:
    """Build a valid sandbox subscription transaction."""
    values = {
        "transaction_id": transaction_id,
        "original_transaction_id": 1000,
        "bundle_id": "com.jonathanxakellis.hound",
        "environment": "Sandbox",
        "product_id": SIX_MEMBER_MONTHLY,
        "type": "Auto-Renewable Subscription",
        "in_app_ownership_type": "PURCHASED",
        "purchase_date": datetime(2030, 1, 1),
        "expires_date": datetime(2030, 2, 1),
    }
    values.update(overrides)
    return TransactionInfo(**values)


def make_renewal_info(**overrides) -> RenewalInfo:
    values = {
        "original_transaction_id": 1000,
        "auto_renew_product_id": SIX_MEMBER_MONTHLY,
        "auto_renew_status": 1,
        "environment": "Sandbox",
    }
    values.update(overrides)
    return RenewalInfo(**values)


@pytest.fixture
def transaction_info():
    """Factory for decoded transactions."""
    return make_transaction_info


@pytest.fixture
def renewal_info():
    """Factory for decoded renewal info."""
    return make_renewal_info
