import logging
import os
from pathlib import Path
from typing import NamedTuple
from dotenv import load_dotenv
import stripe

from fulfillment.errors import GatewayFailure

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

stripe.api_key = os.getenv("STRIPE_SECRET_KEY")

# THB and most currencies: 100 minor units per major unit
MINOR_UNITS = int(os.getenv("REFUND_CURRENCY_MINOR_UNITS", "100"))

logger = logging.getLogger(__name__)


class RefundOutcome(NamedTuple):
    status: str                         # succeeded | pending
    refund_id: str


def to_minor_units(amount) -> int:
    return int(round(float(amount) * MINOR_UNITS))


def refund_status_from_stripe(stripe_status: str) -> str:
    if stripe_status == "succeeded":
        return "succeeded"
    if stripe_status in ("failed", "canceled"):
        return "failed"
    # pending, requires_action
    return "pending"


def refund_payment(payment_intent_id: str, amount, order_id: str) -> RefundOutcome:
    """
    Refund `amount` (major units) of a captured PaymentIntent.
    Raises GatewayFailure when Stripe rejects the call or reports the refund failed.
    """
    if not payment_intent_id:
        raise GatewayFailure("Order has no payment intent to refund")
    try:
        refund = stripe.Refund.create(
            payment_intent=payment_intent_id,
            amount=to_minor_units(amount),
            reason="requested_by_customer",
            metadata={"order_id": order_id},
            idempotency_key=f"refund-{order_id}",
        )
    except stripe.StripeError as e:
        logger.error("refund failed order=%s intent=%s err=%s", order_id, payment_intent_id, e)
        raise GatewayFailure(e.user_message or str(e) or "Stripe refund failed")

    status = refund_status_from_stripe(refund.status)
    if status == "failed":
        reason = getattr(refund, "failure_reason", None) or refund.status
        logger.error("refund %s rejected order=%s reason=%s", refund.id, order_id, reason)
        raise GatewayFailure(f"Refund {refund.id} {refund.status}: {reason}")
    return RefundOutcome(status=status, refund_id=refund.id)
