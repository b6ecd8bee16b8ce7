"""
Order Store
Reads are always served from the committed row; writes go through
commit_order, which compares the version token read with the one stored.
"""

import logging
from sqlalchemy.orm.exc import StaleDataError
from fulfillment.errors import ConcurrentModification, NotFound, Unauthorized
from fulfillment.models import Order, shop_id_for

logger = logging.getLogger(__name__)


def get_order(db, order_id):
    order = db.get(Order, order_id)
    if not order:
        raise NotFound()
    return order


def is_buyer(order, caller):
    return order.buyer_id == caller.user_id


def is_seller(order, caller):
    return order.shop_id == shop_id_for(caller.user_id)


def get_order_for_caller(db, order_id, caller):
    order = get_order(db, order_id)
    if not (is_buyer(order, caller) or is_seller(order, caller) or caller.is_admin):
        raise Unauthorized()
    return order


def list_buyer_orders(db, buyer_id):
    return (
        db.query(Order)
        .filter_by(buyer_id=buyer_id)
        .order_by(Order.created_at.desc())
        .all()
    )


def list_seller_orders(db, seller_id):
    return (
        db.query(Order)
        .filter_by(shop_id=shop_id_for(seller_id))
        .order_by(Order.created_at.desc())
        .all()
    )


def commit_order(db, order):
    """Compare-and-set commit; nothing is applied if another writer got there first."""
    order_id = order.id
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        logger.warning("concurrent update rejected order=%s", order_id)
        raise ConcurrentModification()
    db.refresh(order)
    return order
