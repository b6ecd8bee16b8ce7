"""
Confirmation Gate
The buyer's attestation that the delivered credentials work. One way:
once confirmed the seller amount becomes eligible for payout and there is
no path back to unconfirmed.
"""

import logging
from typing import NamedTuple
from fulfillment.collaborators import notify, run_after_commit
from fulfillment.errors import NotDelivered, OrderClosed, Unauthorized
from fulfillment.models import Order, owner_of, utcnow
from fulfillment.orders import commit_order, get_order, is_buyer

logger = logging.getLogger(__name__)


class ConfirmResult(NamedTuple):
    order: Order
    already_confirmed: bool


def confirm_receipt(db, order_id, caller):
    order = get_order(db, order_id)
    if not is_buyer(order, caller):
        raise Unauthorized("Unauthorized - not order owner")
    if order.status == "cancelled":
        raise OrderClosed("Cannot confirm a cancelled order")
    if order.buyer_confirmed:
        return ConfirmResult(order, already_confirmed=True)
    if not order.is_delivered:
        raise NotDelivered()

    order.buyer_confirmed = True
    order.buyer_confirmed_at = utcnow()
    commit_order(db, order)

    logger.info("order %s confirmed by buyer %s, seller amount %s released for payout",
                order.id, caller.user_id, order.seller_amount)
    run_after_commit(
        db, notify, owner_of(order.shop_id), "order_confirmed",
        "Buyer confirmed receipt",
        f"The buyer confirmed order #{order.id[-8:]}. You can now withdraw the payment.",
        link="/seller?tab=orders",
    )
    return ConfirmResult(order, already_confirmed=False)
