"""
Cancellation & Refund Orchestrator
Cancelling is committed before the gateway is called: a refund that fails
never leaves the order un-cancelled, it is recorded on the order for
support follow-up instead.
"""

import logging
from typing import NamedTuple
from fastapi import HTTPException
from fulfillment.collaborators import restore_stock, run_after_commit
from fulfillment.errors import ConcurrentModification, GatewayFailure, NotCancellable, Unauthorized
from fulfillment.models import Order, utcnow
from fulfillment.orders import commit_order, get_order, is_buyer
from fulfillment.stripe_service import refund_payment

logger = logging.getLogger(__name__)

CANCELLABLE = {"pending", "processing"}
BULK_CANCELLABLE = {"processing"}
MAX_REPORTED_ERRORS = 5
DEFAULT_REASON = "Customer requested cancellation"


class CancelResult(NamedTuple):
    order: Order
    payment_was_completed: bool

    @property
    def refund_degraded(self):
        return self.payment_was_completed and self.order.refund_status != "succeeded"

    @property
    def message(self):
        if not self.payment_was_completed:
            return "Order cancelled successfully"
        if self.order.refund_status == "succeeded":
            return f"Order cancelled and refund of {self.order.refund_amount:,.2f} has been processed"
        if self.order.refund_status == "pending":
            return f"Order cancelled, refund {self.order.refund_id} is pending at the payment provider"
        return "Order cancelled but refund processing encountered an issue. Please contact support."


def _check_can_cancel(order, caller, allowed_statuses):
    if not (is_buyer(order, caller) or caller.is_admin):
        raise Unauthorized("Unauthorized: This order does not belong to you")
    if order.status not in allowed_statuses or order.is_delivered:
        raise NotCancellable(f"Order {order.id} cannot be cancelled (status: {order.status})")


def _settle_refund(db, order):
    """
    Record the gateway outcome on an already cancelled order. Nothing raised
    here may reach the caller: the cancellation is committed either way.
    """
    order_id = order.id
    try:
        outcome = refund_payment(order.payment_intent_id, order.total_amount, order_id)
    except GatewayFailure as e:
        order.refund_status = "failed"
        order.refund_error = e.detail
    except Exception as e:
        logger.exception("refund call crashed for order %s", order_id)
        order.refund_status = "failed"
        order.refund_error = str(e) or e.__class__.__name__
    else:
        order.refund_status = outcome.status
        order.refund_id = outcome.refund_id

    try:
        commit_order(db, order)
    except ConcurrentModification:
        # the refund webhook settled the record first; its state wins
        db.refresh(order)
    logger.info("refund for order %s: %s %s", order_id, order.refund_status,
                order.refund_id or order.refund_error)


def cancel_order(db, order_id, caller, reason=None, allowed_statuses=CANCELLABLE):
    order = get_order(db, order_id)
    _check_can_cancel(order, caller, allowed_statuses)

    paid = order.payment_status == "completed"
    order.status = "cancelled"
    order.cancelled_at = utcnow()
    order.cancelled_by = caller.user_id
    order.cancel_reason = reason or DEFAULT_REASON
    if paid:
        order.refund_status = "pending"
        order.refund_amount = order.total_amount
    commit_order(db, order)
    logger.info("order %s cancelled by %s", order.id, caller.user_id)

    if paid:
        _settle_refund(db, order)
    run_after_commit(db, restore_stock, order.items)
    return CancelResult(order, payment_was_completed=paid)


def bulk_cancel(db, order_ids, caller, reason=None):
    """
    Cancel the selected orders one after the other. Only processing orders
    qualify. A failing order is counted and reported, never fatal to the batch.
    """
    success_count = 0
    fail_count = 0
    errors = []
    results = []

    for order_id in order_ids:
        try:
            result = cancel_order(db, order_id, caller, reason, allowed_statuses=BULK_CANCELLABLE)
        except HTTPException as e:
            error = e.detail
        except Exception as e:
            db.rollback()
            logger.exception("bulk cancel: unexpected failure on order %s", order_id)
            error = str(e) or e.__class__.__name__
        else:
            success_count += 1
            results.append({
                "order_id": order_id,
                "success": True,
                "refund_status": result.order.refund_status,
                "message": result.message,
            })
            continue

        fail_count += 1
        if len(errors) < MAX_REPORTED_ERRORS:
            errors.append(f"{order_id}: {error}")
        results.append({"order_id": order_id, "success": False, "error": error})

    logger.info("bulk cancel by %s: %d succeeded, %d failed", caller.user_id, success_count, fail_count)
    return {
        "success_count": success_count,
        "fail_count": fail_count,
        "errors": errors,
        "results": results,
    }
