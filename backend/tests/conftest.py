"""
Pytest configuration and fixtures for backend tests.
"""

import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from qrdine_api.main import app
from qrdine_api.models import Base, MenuItem, Restaurant, Table
from qrdine_api.routers.payments import get_payment_gateway
from qrdine_api.services.domain import OrderService
from qrdine_api.services.payments import stripe_breaker
from shared.infrastructure.events import events_breaker
from shared.config.constants import MenuItemStatus, Roles
from shared.infrastructure.db import get_db
from shared.security.auth import sign_jwt
from shared.security.rate_limit import limiter
from shared.utils.schemas import CreateOrderRequest


# SQLite in-memory database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

limiter.enabled = False


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    Uses SQLite in-memory for isolation.
    """
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def redis_client(monkeypatch):
    """Redis replaced by an AsyncMock; published events are recorded on .publish."""
    client = AsyncMock()
    client.publish.return_value = 1
    client.ping.return_value = True

    async def get_client():
        return client

    monkeypatch.setattr("qrdine_api.services.events.order_events.get_redis_client", get_client)
    monkeypatch.setattr("qrdine_api.routers.health.get_redis_client", get_client)
    return client


@pytest.fixture(autouse=True)
def reset_breaker():
    stripe_breaker.reset()
    events_breaker.reset()
    yield
    stripe_breaker.reset()
    events_breaker.reset()


# =============================================================================
# Fake payment provider
# =============================================================================


class FakeGateway:
    """In-memory stand-in for StripeGateway."""

    def __init__(self):
        self.intents: dict[str, dict] = {}
        self.refunds: list[dict] = []
        self.idempotency_keys: list[str | None] = []
        self.error: Exception | None = None

    async def create_payment_intent(self, amount_cents, currency, metadata, idempotency_key=None):
        if self.error is not None:
            raise self.error
        intent_id = f"pi_test_{len(self.intents) + 1}"
        intent = {
            "id": intent_id,
            "client_secret": f"{intent_id}_secret_abc",
            "amount": amount_cents,
            "currency": currency,
            "status": "requires_payment_method",
            "metadata": metadata,
        }
        self.intents[intent_id] = intent
        self.idempotency_keys.append(idempotency_key)
        return dict(intent)

    async def retrieve_payment_intent(self, payment_intent_id):
        if self.error is not None:
            raise self.error
        return dict(self.intents[payment_intent_id])

    async def create_refund(self, payment_intent_id, amount_cents=None, reason=None):
        if self.error is not None:
            raise self.error
        amount = amount_cents if amount_cents is not None else self.intents[payment_intent_id]["amount"]
        refund = {"id": f"re_test_{len(self.refunds) + 1}", "amount": amount, "status": "succeeded", "reason": reason}
        self.refunds.append(refund)
        return dict(refund)

    def set_status(self, payment_intent_id: str, status: str, error_message: str | None = None) -> None:
        intent = self.intents[payment_intent_id]
        intent["status"] = status
        if status == "succeeded":
            intent["amount_received"] = intent["amount"]
        if error_message:
            intent["last_payment_error"] = {"message": error_message}


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture(scope="function")
def client(db_session, gateway):
    """
    Create a test client with database session and payment provider overrides.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway

    test_client = TestClient(app)
    yield test_client

    app.dependency_overrides.clear()


# =============================================================================
# Seed data
# =============================================================================


@pytest.fixture
def seed_restaurant(db_session):
    restaurant = Restaurant(id=1, name="Test Bistro", currency="usd")
    db_session.add(restaurant)
    db_session.commit()
    return restaurant


@pytest.fixture
def other_restaurant(db_session):
    restaurant = Restaurant(id=2, name="Other Place", currency="usd")
    table = Table(id=9, restaurant_id=2, number=1)
    db_session.add_all([restaurant, table])
    db_session.commit()
    return restaurant


@pytest.fixture
def seed_tables(db_session, seed_restaurant):
    tables = [
        Table(id=1, restaurant_id=seed_restaurant.id, number=1, capacity=4),
        Table(id=2, restaurant_id=seed_restaurant.id, number=2, capacity=2),
    ]
    db_session.add_all(tables)
    db_session.commit()
    return tables


@pytest.fixture
def seed_menu(db_session, seed_restaurant):
    """
    burger 1200 (Size: Large +200; Extras: Cheese +100, Bacon +150)
    fries 450, soda 300, special (sold out)
    """
    items = {
        "burger": MenuItem(
            id=1,
            restaurant_id=seed_restaurant.id,
            name="Burger",
            price_cents=1200,
            modifiers=[
                {"name": "Size", "options": [
                    {"name": "Regular", "price_adjustment_cents": 0},
                    {"name": "Large", "price_adjustment_cents": 200},
                ]},
                {"name": "Extras", "options": [
                    {"name": "Cheese", "price_adjustment_cents": 100},
                    {"name": "Bacon", "price_adjustment_cents": 150},
                ]},
            ],
        ),
        "fries": MenuItem(id=2, restaurant_id=seed_restaurant.id, name="Fries", price_cents=450),
        "soda": MenuItem(id=3, restaurant_id=seed_restaurant.id, name="Soda", price_cents=300),
        "special": MenuItem(
            id=4,
            restaurant_id=seed_restaurant.id,
            name="Chef Special",
            price_cents=2500,
            status=MenuItemStatus.SOLD_OUT,
        ),
    }
    db_session.add_all(items.values())
    db_session.commit()
    return items


@pytest.fixture
def seeded(seed_tables, seed_menu):
    """Restaurant 1 with tables 1 and 2 and the menu."""
    return {"tables": seed_tables, "menu": seed_menu}


@pytest.fixture
def place_order(db_session, seeded):
    """
    Factory creating (or merging) an order through the order engine.

    Usage:
        order = place_order(table_id=1, items=[{"menu_item_id": 2, "quantity": 2}])
    """
    def _place(table_id: int = 1, items: list[dict] | None = None, **extra):
        request = CreateOrderRequest(
            restaurant_id=1,
            table_id=table_id,
            items=items or [{"menu_item_id": 2, "quantity": 1}],
            **extra,
        )
        return OrderService(db_session).create_order(request).order

    return _place


# =============================================================================
# Staff tokens
# =============================================================================


def staff_headers(role: str, user_id: int = 1, restaurant_id: int = 1) -> dict[str, str]:
    token = sign_jwt({"sub": str(user_id), "restaurant_id": restaurant_id, "roles": [role]})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers():
    return staff_headers(Roles.ADMIN, user_id=1)


@pytest.fixture
def waiter_headers():
    return staff_headers(Roles.WAITER, user_id=2)


@pytest.fixture
def kitchen_headers():
    return staff_headers(Roles.KITCHEN, user_id=3)


@pytest.fixture
def foreign_admin_headers():
    return staff_headers(Roles.ADMIN, user_id=10, restaurant_id=2)
