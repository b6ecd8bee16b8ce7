import pytest
from fastapi import HTTPException
from jose import jwt
from sqlalchemy import create_engine, inspect
from conftest import TestingSessionLocal
from fulfillment.auth import verify_token
from fulfillment.database import engine_options, init_db
from fulfillment.errors import ConcurrentModification
from fulfillment.models import Order
from fulfillment.orders import commit_order


def test_stale_write_is_rejected(make_order):
    """Two requests read the same order; the second writer loses."""
    order_id = make_order()
    seller_session = TestingSessionLocal()
    buyer_session = TestingSessionLocal()

    delivered = seller_session.get(Order, order_id)
    cancelled = buyer_session.get(Order, order_id)

    delivered.status = "completed"
    commit_order(seller_session, delivered)

    cancelled.status = "cancelled"
    with pytest.raises(ConcurrentModification):
        commit_order(buyer_session, cancelled)

    seller_session.close()
    buyer_session.close()

    db = TestingSessionLocal()
    assert db.get(Order, order_id).status == "completed"
    db.close()


def test_set_delivery_keeps_legacy_fields_mirrored(db, make_order):
    order = db.get(Order, make_order())

    order.set_delivery([
        {"index": 1, "username": "second", "password": "b"},
        {"index": 0, "username": "first", "password": "a", "additional_info": "pin 1234"},
    ])

    assert order.username == "first"
    assert order.password == "a"
    assert order.additional_info == "pin 1234"
    assert order.email is None
    assert order.delivered_items[0]["username"] == "first"


def test_verify_token_returns_caller():
    token = jwt.encode({"sub": "seller-9", "role": "seller"}, "test-secret", algorithm="HS256")

    caller = verify_token(f"Bearer {token}")

    assert caller.user_id == "seller-9"
    assert caller.role == "seller"
    assert caller.is_admin is False


def test_verify_token_defaults_to_buyer_role():
    token = jwt.encode({"sub": "u1"}, "test-secret", algorithm="HS256")

    assert verify_token(f"Bearer {token}").role == "buyer"


@pytest.mark.parametrize("header", [
    "Token abc",
    "Bearer not-a-jwt",
    "Bearer " + jwt.encode({"sub": "u1"}, "wrong-secret", algorithm="HS256"),
    "Bearer " + jwt.encode({"sub": "u1", "role": "root"}, "test-secret", algorithm="HS256"),
])
def test_verify_token_rejects_bad_tokens(header):
    with pytest.raises(HTTPException) as exc:
        verify_token(header)

    assert exc.value.status_code == 401


def test_init_db_creates_every_table(tmp_path):
    url = f"sqlite:///{tmp_path / 'fresh.db'}"
    fresh = create_engine(url, **engine_options(url))

    init_db(bind=fresh)

    assert {"orders", "products", "notifications"} <= set(inspect(fresh).get_table_names())
    fresh.dispose()


def test_sqlite_writers_wait_for_the_lock(monkeypatch):
    monkeypatch.setenv("SQLITE_BUSY_TIMEOUT", "3")

    options = engine_options("sqlite:///./orders.db")

    assert options["connect_args"] == {"check_same_thread": False, "timeout": 3.0}
    assert engine_options("postgresql://db/orders")["pool_pre_ping"] is True
