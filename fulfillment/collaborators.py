"""
Side effects owned by other parts of the marketplace: catalog stock and
user notifications. They run after the order change is committed; a
failure is logged and never undoes the order change.
"""

import logging
from fulfillment.models import Notification, Product, unit_quantity

logger = logging.getLogger(__name__)

UNLIMITED_STOCK = -1


def restore_stock(db, items):
    """Give cancelled units back to their products: stock += qty, sold_count -= qty."""
    restored = 0
    for item in items or []:
        product_id = item.get("product_id")
        if not product_id:
            continue
        product = db.get(Product, product_id)
        if not product:
            logger.warning("restore stock: product %s not found", product_id)
            continue
        if product.stock is None or product.stock == UNLIMITED_STOCK:
            continue
        quantity = unit_quantity(item)
        product.stock += quantity
        product.sold_count = max(0, (product.sold_count or 0) - quantity)
        restored += 1
    db.commit()
    return restored


def notify(db, user_id, kind, title, message, link=None):
    if not user_id:
        return None
    notification = Notification(user_id=user_id, type=kind, title=title, message=message, link=link)
    db.add(notification)
    db.commit()
    return notification


def run_after_commit(db, hook, *args, **kwargs):
    try:
        return hook(db, *args, **kwargs)
    except Exception:
        db.rollback()
        logger.exception("%s failed after commit", getattr(hook, "__name__", hook))
        return None
