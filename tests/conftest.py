"""
Pytest fixtures for database, payment gateway, client and authentication.

Each test gets a fresh in-memory SQLite database. The Razorpay gateway is
replaced by a subclass that creates orders locally but still verifies
signatures through the real SDK with a test secret.
"""

import hashlib
import hmac
import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal

TEST_KEY_ID = "rzp_test_boxoffice"
TEST_KEY_SECRET = "rzp_test_secret_value"
TEST_JWT_SECRET = "boxoffice-test-signing-secret-0123456789abcdef"

# Must be set before boxoffice.config is imported anywhere.
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["RAZORPAY_KEY_ID"] = TEST_KEY_ID
os.environ["RAZORPAY_KEY_SECRET"] = TEST_KEY_SECRET
os.environ["AUTH_JWT_SECRET"] = TEST_JWT_SECRET
os.environ["AUTH_JWKS_URL"] = ""
os.environ["AUTH_AUDIENCE"] = ""
os.environ["AUTH_ISSUER"] = ""

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from boxoffice.api.dependencies import get_db, get_payment_gateway
from boxoffice.application.order_issuer import OrderIssuer
from boxoffice.application.payment_verifier import PaymentVerifier
from boxoffice.domain.pricing import PricingCalculator
from boxoffice.infrastructure.db.models import Base, Event, Show
from boxoffice.infrastructure.db.session import build_engine
from boxoffice.infrastructure.gateway.razorpay_gateway import RazorpayGateway
from boxoffice.main import app


class FakeRazorpayGateway(RazorpayGateway):
    """Creates orders in memory; signature checks go through the SDK."""

    def __init__(self, fail_with: Exception | None = None):
        super().__init__(TEST_KEY_ID, TEST_KEY_SECRET)
        self.fail_with = fail_with
        self.orders: list[dict] = []

    def create_order(self, amount_minor, currency, receipt, notes):
        if self.fail_with is not None:
            raise self.fail_with
        order_id = f"order_test{len(self.orders) + 1:04d}"
        self.orders.append(
            {
                "id": order_id,
                "amount": amount_minor,
                "currency": currency,
                "receipt": receipt,
                "notes": notes,
            }
        )
        return order_id


def sign_payment(order_id: str, payment_id: str, secret: str = TEST_KEY_SECRET) -> str:
    return hmac.new(
        secret.encode("utf-8"),
        f"{order_id}|{payment_id}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def make_token(user_id: str, secret: str = TEST_JWT_SECRET, expires_in: int = 300, **claims) -> str:
    payload = {
        "sub": user_id,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        **claims,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture()
def engine():
    engine = build_engine("sqlite+pysqlite://")
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def gateway():
    return FakeRazorpayGateway()


@pytest.fixture()
def signer():
    return sign_payment


@pytest.fixture()
def auth_headers():
    def _headers(user_id: str = "user_1") -> dict:
        return {"Authorization": f"Bearer {make_token(user_id)}"}

    return _headers


@pytest.fixture()
def token_factory():
    return make_token


@pytest.fixture()
def client(session_factory, gateway):
    """HTTP client with the database and gateway dependencies overridden."""

    def override_get_db():
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway

    # Not entered as a context manager, so startup hooks never touch a real database.
    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture()
def event(db):
    event = Event(
        title="Interstellar (Re-release)",
        category="movies",
        genre="Science Fiction",
        duration="169 min",
        image_url="https://img.example/interstellar.jpg",
        venue="PVR Select Citywalk",
        city="New Delhi",
    )
    db.add(event)
    db.commit()
    return event


@pytest.fixture()
def show(db, event):
    show = Show(
        event_id=event.id,
        show_date_time=datetime.now(timezone.utc) + timedelta(days=1),
        ticket_price=Decimal("200.00"),
        total_seats=96,
        occupied_seats={},
    )
    db.add(show)
    db.commit()
    return show


@pytest.fixture()
def make_show(db, event):
    def _make(ticket_price: str = "200.00", total_seats: int = 96) -> Show:
        show = Show(
            event_id=event.id,
            show_date_time=datetime.now(timezone.utc) + timedelta(days=2),
            ticket_price=Decimal(ticket_price),
            total_seats=total_seats,
            occupied_seats={},
        )
        db.add(show)
        db.commit()
        return show

    return _make


@pytest.fixture()
def pricing():
    return PricingCalculator(max_seats=10, fee_percent=Decimal("5"))


@pytest.fixture()
def issuer(db, gateway, pricing):
    return OrderIssuer(db, gateway=gateway, pricing=pricing, currency="INR")


@pytest.fixture()
def verifier(db, gateway):
    return PaymentVerifier(db, gateway=gateway, currency="INR")


@pytest.fixture()
def store_outage():
    """An OperationalError like the one raised when the database drops."""

    def _raise(*args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("connection lost"))

    return _raise
