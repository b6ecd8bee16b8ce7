"""
Delivery Recorder
Sellers submit one credential slot per purchased unit. Any non-empty slot
is a delivery: the order is locked to "completed" and can no longer be
cancelled.
"""

import logging
from fulfillment.collaborators import notify, run_after_commit
from fulfillment.errors import (
    DeliveryPayloadInvalid,
    InvalidStatusTransition,
    OrderClosed,
    Unauthorized,
)
from fulfillment.models import slot_has_credentials, utcnow
from fulfillment.orders import commit_order, get_order, is_seller

logger = logging.getLogger(__name__)

# statuses a seller may request without delivering anything
UNDELIVERED_TRANSITIONS = {
    "pending": {"pending", "processing"},
    "processing": {"processing"},
}


def validate_slots(order, slots):
    expected = order.unit_count
    if len(slots) != expected:
        raise DeliveryPayloadInvalid(
            f"Expected {expected} delivered item(s), got {len(slots)}"
        )
    indexes = sorted(slot["index"] for slot in slots)
    if indexes != list(range(expected)):
        raise DeliveryPayloadInvalid(
            f"Delivered item indexes must be unique and cover 0..{expected - 1}"
        )


def record_delivery(db, order_id, caller, slots, notes=None, requested_status=None):
    """
    Overwrite the delivery payload of an order. Safe to repeat, so a seller
    can fix a typo in credentials already sent. slots=None keeps the stored
    payload and only applies notes or the requested status.
    """
    order = get_order(db, order_id)
    if not is_seller(order, caller):
        raise Unauthorized("Only the shop owner can deliver this order")
    if order.status == "cancelled":
        raise OrderClosed("Cannot deliver a cancelled order")

    if slots is not None:
        validate_slots(order, slots)
    delivering = any(slot_has_credentials(slot) for slot in slots or [])

    if slots is not None and order.is_delivered and not delivering:
        raise DeliveryPayloadInvalid("Delivered credentials cannot be cleared")
    if not delivering and not order.is_delivered and requested_status:
        allowed = UNDELIVERED_TRANSITIONS.get(order.status, set())
        if requested_status not in allowed:
            raise InvalidStatusTransition(
                f"Cannot transition from {order.status} to {requested_status} without delivering"
            )

    if slots is not None:
        order.set_delivery(slots)
    if notes is not None:
        order.seller_notes = notes

    if delivering:
        if requested_status and requested_status != "completed":
            logger.info("order %s: requested status %s overridden by delivery", order.id, requested_status)
        if not order.is_delivered:
            order.game_code_delivered_at = utcnow()
        order.status = "completed"
    elif requested_status and not order.is_delivered:
        order.status = requested_status

    commit_order(db, order)
    logger.info("delivery recorded order=%s delivered=%s", order.id, delivering)

    if delivering:
        run_after_commit(
            db, notify, order.buyer_id, "order_delivered",
            "Your game code has been delivered",
            f"Codes for order #{order.id[-8:]} are ready. Check them and confirm receipt.",
            link=f"/receipt?orderId={order.id}",
        )
    return order
