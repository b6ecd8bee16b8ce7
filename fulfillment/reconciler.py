"""
Duplicate Reconciler
A failed checkout followed by a successful retry leaves two orders for one
purchase: a cancelled one and a live one. The buyer's list hides the
cancelled copy when it is almost certainly such a leftover.

Matching is deliberately strict (same product ids, created less than 30
minutes apart): showing a duplicate is preferred over hiding a real,
distinct cancelled order.
"""

from datetime import timedelta, timezone

DUPLICATE_WINDOW = timedelta(minutes=30)
SUCCESSFUL = {"processing", "completed"}


def _aware(value):
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def product_key(order):
    return sorted(item["product_id"] for item in order.items or [] if item.get("product_id"))


def is_retry_duplicate(cancelled, successful):
    key = product_key(cancelled)
    if not key or key != product_key(successful):
        return False
    gap = abs(_aware(cancelled.created_at) - _aware(successful.created_at))
    return gap < DUPLICATE_WINDOW


def reconcile_duplicates(orders):
    """Return `orders` without cancelled checkout-retry duplicates, order preserved."""
    successful = [o for o in orders if o.status in SUCCESSFUL]
    return [
        o for o in orders
        if o.status != "cancelled"
        or not any(is_retry_duplicate(o, s) for s in successful)
    ]
