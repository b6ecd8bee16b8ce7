import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_app.db")
os.environ.setdefault("JWT_SECRET", "test-secret")

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from fulfillment.auth import Caller, verify_token
from fulfillment.database import Base, engine_options, init_db
from fulfillment.main import app as fastapi_app
from fulfillment.models import Order

# Setup test database
SQLALCHEMY_DATABASE_URL = "sqlite:///./test_temp.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, **engine_options(SQLALCHEMY_DATABASE_URL))
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine)

BUYER = Caller(user_id="buyer-1", role="buyer")
OTHER_BUYER = Caller(user_id="buyer-2", role="buyer")
SELLER = Caller(user_id="seller-1", role="seller")
ADMIN = Caller(user_id="admin-1", role="admin")

T0 = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def setup_db():
    init_db(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db():
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture
def make_order():
    """Insert an order straight into the test database, as checkout would."""
    def _make(**overrides):
        fields = dict(
            buyer_id=BUYER.user_id,
            shop_id="shop_seller-1",
            shop_name="Seller Shop",
            items=[{"product_id": "p1", "name": "Genshin Account", "price": 100, "quantity": 2}],
            total_amount=200,
            platform_fee=10,
            seller_amount=190,
            payment_intent_id="pi_123",
            payment_status="completed",
            status="processing",
            created_at=T0,
        )
        fields.update(overrides)
        session = TestingSessionLocal()
        order = Order(**fields)
        session.add(order)
        session.commit()
        order_id = order.id
        session.close()
        return order_id
    return _make


@pytest.fixture
def client(monkeypatch):
    # Mock SessionLocal in routes and main
    monkeypatch.setattr("fulfillment.routes.SessionLocal", TestingSessionLocal)
    monkeypatch.setattr("fulfillment.main.SessionLocal", TestingSessionLocal)
    fastapi_app.dependency_overrides[verify_token] = lambda: BUYER
    with TestClient(fastapi_app) as c:
        yield c
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def act_as():
    """Switch the authenticated caller for subsequent requests."""
    def _act_as(caller):
        fastapi_app.dependency_overrides[verify_token] = lambda: caller
    return _act_as


def at(minutes):
    return T0 + timedelta(minutes=minutes)
