"""
Payment and refund status sync, fed by Stripe webhooks.
A pending refund record settles to succeeded or failed exactly once; later
events for a settled refund are ignored.
"""

import logging
from fulfillment.models import Order
from fulfillment.orders import commit_order
from fulfillment.stripe_service import refund_status_from_stripe

logger = logging.getLogger(__name__)

REFUND_EVENTS = {"refund.updated", "charge.refund.updated", "refund.failed"}
PAYMENT_EVENTS = {"payment_intent.succeeded", "payment_intent.payment_failed"}


def apply_refund_update(db, refund):
    """`refund` is a Stripe Refund object as delivered in a webhook event."""
    order = db.query(Order).filter_by(refund_id=refund["id"]).first()
    if not order:
        order_id = (refund.get("metadata") or {}).get("order_id")
        order = db.get(Order, order_id) if order_id else None
    if not order:
        logger.warning("refund %s does not match any order", refund["id"])
        return None
    if order.refund_status != "pending":
        return order

    status = refund_status_from_stripe(refund.get("status"))
    if status == "pending":
        return order

    order.refund_status = status
    order.refund_id = refund["id"]
    if status == "succeeded":
        order.refund_amount = order.total_amount
    else:
        order.refund_error = refund.get("failure_reason") or f"refund {refund.get('status')}"
    commit_order(db, order)
    logger.info("refund %s for order %s settled as %s", refund["id"], order.id, status)
    return order


def apply_payment_update(db, event_type, intent):
    orders = db.query(Order).filter_by(payment_intent_id=intent["id"]).all()
    for order in orders:
        if order.status == "cancelled" or order.payment_status == "completed":
            continue
        if event_type == "payment_intent.succeeded":
            order.payment_status = "completed"
            if order.status == "pending":
                order.status = "processing"
        else:
            order.payment_status = "failed"
        commit_order(db, order)
        logger.info("order %s payment %s", order.id, order.payment_status)
    return orders


def handle_event(db, event):
    event_type = event["type"]
    obj = event["data"]["object"]
    if event_type in REFUND_EVENTS:
        apply_refund_update(db, obj)
    elif event_type in PAYMENT_EVENTS:
        apply_payment_update(db, event_type, obj)
    else:
        logger.debug("ignoring stripe event %s", event_type)
