"""Pytest configuration and fixtures."""

import itertools
import os
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from src.api.dependencies import get_mpesa_client
from src.config import Settings, get_settings
from src.database import Base, get_db
from src.main import app
from src.models.enums import UserRole
from src.models.user import User
from src.schemas.mpesa import StkPushResponse
from src.services.auth import create_password_hash
from src.services.mpesa import MpesaClient

TEST_PASSWORD = "TestPass123!"  # noqa: S105


class AuthHeaders(dict):
    """Dict subclass that also stores the registered user's details and tokens."""

    def __init__(
        self,
        *args,
        user_id: str | None = None,
        email: str | None = None,
        access_token: str | None = None,
        refresh_token: str | None = None,
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.user_id = user_id
        self.email = email
        self.access_token = access_token
        self.refresh_token = refresh_token


# Use test database - PostgreSQL in Docker, SQLite locally
if os.getenv("DATABASE_URL"):
    SQLALCHEMY_DATABASE_URL = os.getenv("DATABASE_URL").replace(
        "/mpesa_payments", "/mpesa_payments_test"
    )
else:
    SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"

connect_args = {"check_same_thread": False} if "sqlite" in SQLALCHEMY_DATABASE_URL else {}
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args=connect_args)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="session", autouse=True)
def setup_test_database():
    """Create test database schema once at the start of the test session."""
    if "postgresql" in SQLALCHEMY_DATABASE_URL:
        from sqlalchemy_utils import create_database, database_exists

        if not database_exists(SQLALCHEMY_DATABASE_URL):
            create_database(SQLALCHEMY_DATABASE_URL)

    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture(scope="function", autouse=True)
def db():
    """Create a fresh database session for each test with cleanup."""
    session = TestingSessionLocal()

    yield session

    session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    session.close()


@pytest.fixture
def settings() -> Settings:
    """Settings with M-Pesa credentials filled in."""
    return Settings(
        jwt_secret="test-secret-key",
        mpesa_consumer_key="consumer-key",
        mpesa_consumer_secret="consumer-secret",
        mpesa_shortcode="174379",
        mpesa_passkey="test-passkey",
        mpesa_callback_url="https://example.com/api/v1/mpesa/stk-push-callback",
    )


def stk_push_response(checkout_request_id: str) -> StkPushResponse:
    """Acknowledgement as returned by Daraja for an accepted STK push."""
    return StkPushResponse.model_validate(
        {
            "MerchantRequestID": "29115-34620561-1",
            "CheckoutRequestID": checkout_request_id,
            "ResponseCode": "0",
            "ResponseDescription": "Success. Request accepted for processing",
            "CustomerMessage": "Success. Request accepted for processing",
        }
    )


@pytest.fixture
def mpesa_gateway():
    """Fake M-Pesa client; every STK push gets a fresh checkout request id."""
    gateway = AsyncMock(spec=MpesaClient)
    counter = itertools.count(1)

    async def _initiate(**kwargs):
        return stk_push_response(f"ws_CO_1910202612000000{next(counter):04d}")

    gateway.initiate_stk_push.side_effect = _initiate
    return gateway


@pytest.fixture
def user(db) -> User:
    """A registered user with a local mobile number."""
    password_hash, password_salt = create_password_hash(TEST_PASSWORD)
    user = User(
        full_name="Jane Wanjiku",
        email="jane@example.com",
        password_hash=password_hash,
        password_salt=password_salt,
        mobile_number="0712345678",
        role=UserRole.INDIVIDUAL,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture(scope="function")
def client(db, mpesa_gateway):
    """Create a test client with database and gateway overrides."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mpesa_client] = lambda: mpesa_gateway
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def register(client, email: str = "test@example.com", mobile_number: str = "0712345678"):
    """Register a user through the API and return the response."""
    return client.post(
        "/api/v1/auth/register",
        json={
            "full_name": "Test User",
            "email": email,
            "password": TEST_PASSWORD,
            "confirm_password": TEST_PASSWORD,
            "mobile_number": mobile_number,
            "role": "Individual",
        },
    )


@pytest.fixture
def auth_headers(client):
    """Create a user and return auth headers with user info."""
    response = register(client)
    assert response.status_code == 201
    data = response.json()

    return AuthHeaders(
        {"Authorization": f"Bearer {data['access_token']}"},
        user_id=data["user_id"],
        email=data["email"],
        access_token=data["access_token"],
        refresh_token=data["refresh_token"],
    )


@pytest.fixture
def app_settings() -> Settings:
    """The settings instance the app itself is running with."""
    return get_settings()
