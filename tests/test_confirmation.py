import pytest
from conftest import ADMIN, BUYER, OTHER_BUYER, SELLER, T0, TestingSessionLocal
from fulfillment.confirmation import confirm_receipt
from fulfillment.errors import NotDelivered, OrderClosed, Unauthorized
from fulfillment.models import Notification, Order


def test_confirm_requires_delivery(db, make_order):
    order_id = make_order()

    with pytest.raises(NotDelivered):
        confirm_receipt(db, order_id, BUYER)


def test_confirm_unlocks_payout(db, make_order):
    order_id = make_order(status="completed", game_code_delivered_at=T0)

    result = confirm_receipt(db, order_id, BUYER)

    assert result.already_confirmed is False
    assert result.order.buyer_confirmed is True
    assert result.order.buyer_confirmed_at is not None
    assert result.order.payout_eligible is True
    assert result.order.seller_amount == 190
    # confirmation does not touch the lifecycle status
    assert result.order.status == "completed"


def test_confirm_is_idempotent(db, make_order):
    order_id = make_order(status="completed", game_code_delivered_at=T0)
    first = confirm_receipt(db, order_id, BUYER).order.buyer_confirmed_at

    again = confirm_receipt(db, order_id, BUYER)

    assert again.already_confirmed is True
    assert again.order.buyer_confirmed is True
    assert again.order.buyer_confirmed_at == first


@pytest.mark.parametrize("caller", [OTHER_BUYER, SELLER, ADMIN])
def test_only_the_buyer_can_confirm(db, make_order, caller):
    order_id = make_order(status="completed", game_code_delivered_at=T0)

    with pytest.raises(Unauthorized):
        confirm_receipt(db, order_id, caller)


def test_cancelled_order_cannot_be_confirmed(db, make_order):
    order_id = make_order(status="cancelled")

    with pytest.raises(OrderClosed):
        confirm_receipt(db, order_id, BUYER)


def test_confirm_notifies_the_seller(db, make_order):
    order_id = make_order(status="completed", game_code_delivered_at=T0)

    confirm_receipt(db, order_id, BUYER)
    confirm_receipt(db, order_id, BUYER)

    notes = db.query(Notification).all()
    assert [(n.user_id, n.type) for n in notes] == [(SELLER.user_id, "order_confirmed")]


def test_failing_notification_keeps_the_confirmation(db, make_order, mocker):
    mocker.patch("fulfillment.confirmation.notify", side_effect=RuntimeError("mailer down"))
    order_id = make_order(status="completed", game_code_delivered_at=T0)

    result = confirm_receipt(db, order_id, BUYER)

    assert result.order.buyer_confirmed is True
    check = TestingSessionLocal()
    assert check.get(Order, order_id).buyer_confirmed is True
    check.close()
