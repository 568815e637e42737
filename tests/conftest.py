"""
Shared test configuration and fixtures
"""
import pytest
import hashlib
import hmac
import itertools
import json
import os
from unittest.mock import MagicMock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

# Set test environment before importing app
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["JWT_SECRET"] = "test-secret-key-for-testing-only"
os.environ["SKIP_SCHEDULER"] = "true"  # Skip scheduler during tests
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["APP_ENV"] = "test"
for key in ("RAZORPAY_KEY_ID", "RAZORPAY_KEY_SECRET", "RAZORPAY_WEBHOOK_SECRET", "ADMIN_EMAIL", "ADMIN_PASSWORD"):
    os.environ.pop(key, None)

from main import app
from db.base import Base
from api.dependencies import get_db, get_payment_gateway
from api.services.payment_gateway import RazorpayGateway
from api.services.user_service import UserService
from db.repositories.user_repository import UserRepository

KEY_ID = "rzp_test_key"
KEY_SECRET = "test_key_secret"
WEBHOOK_SECRET = "test_webhook_secret"
PASSWORD = "strongpassword123"

# Create test database engine; StaticPool shares the one in-memory database across threads
TEST_DATABASE_URL = "sqlite:///:memory:"
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


def override_get_db():
    """Override database dependency for tests"""
    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="function")
def test_db():
    """Create a fresh database for each test"""
    Base.metadata.create_all(bind=test_engine)
    yield
    Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def db_session(test_db):
    session = TestSessionLocal()
    yield session
    session.close()


@pytest.fixture
def razorpay_client():
    """Stand-in for razorpay.Client: orders get sequential ids"""
    counter = itertools.count(1)
    client = MagicMock()
    client.order.create.side_effect = lambda data: {
        "id": f"order_test{next(counter)}",
        "amount": data["amount"],
        "currency": data["currency"],
        "status": "created",
    }
    return client


@pytest.fixture
def gateway(razorpay_client):
    return RazorpayGateway(KEY_ID, KEY_SECRET, WEBHOOK_SECRET, client=razorpay_client)


@pytest.fixture
def client(test_db, gateway):
    """Create a test client with overridden database and payment gateway"""
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session):
    """Create a user directly through the service and return (user, auth headers)"""

    def _make_user(email="user@example.com", name="Test User", is_admin=False):
        user_service = UserService(UserRepository(db_session))
        user = user_service.register(name, email, "9999999999", PASSWORD, is_admin=is_admin)
        token = user_service.create_access_token(str(user.id))
        return user, {"Authorization": f"Bearer {token}"}

    return _make_user


@pytest.fixture
def user_headers(make_user):
    return make_user()[1]


@pytest.fixture
def admin_headers(make_user):
    return make_user(email="admin@example.com", name="Admin", is_admin=True)[1]


def payment_signature(order_id, payment_id, secret=KEY_SECRET):
    return hmac.new(secret.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256).hexdigest()


def webhook_signature(body: bytes, secret=WEBHOOK_SECRET):
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def webhook_body(event, order_id, payment_id="pay_test1"):
    return json.dumps(
        {
            "event": event,
            "payload": {"payment": {"entity": {"id": payment_id, "order_id": order_id}}},
        }
    ).encode()


@pytest.fixture
def sign_payment():
    return payment_signature


@pytest.fixture
def signed_webhook():
    """Build a (body, headers) pair for a payment webhook"""

    def _signed_webhook(event, order_id, payment_id="pay_test1"):
        body = webhook_body(event, order_id, payment_id)
        return body, {"x-razorpay-signature": webhook_signature(body), "Content-Type": "application/json"}

    return _signed_webhook


@pytest.fixture
def sign_webhook():
    return webhook_signature


@pytest.fixture
def session_factory(test_db):
    """Session factory bound to the test database, for code that opens its own sessions"""
    return TestSessionLocal
