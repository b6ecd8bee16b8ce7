"""
Order model
Status: pending | processing | completed | cancelled
Payment status: pending | completed | failed
Refund status: pending | succeeded | failed
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, Numeric, String, Text
from fulfillment.database import Base

CREDENTIAL_FIELDS = ("email", "username", "password", "additional_info")


def utcnow():
    return datetime.now(timezone.utc)


def shop_id_for(user_id):
    """Shops are keyed by their owner: shop_<ownerUserId>."""
    return f"shop_{user_id}"


def unit_quantity(item):
    """quantity defaults to 1 only when the key is absent; an explicit 0 stays 0."""
    quantity = item.get("quantity")
    return 1 if quantity is None else int(quantity)


def owner_of(shop_id):
    return shop_id[len("shop_"):] if shop_id and shop_id.startswith("shop_") else None


def slot_has_credentials(slot):
    return any((slot.get(field) or "").strip() for field in CREDENTIAL_FIELDS)


def _iso(value):
    return value.isoformat() if value else None


class Order(Base):
    __tablename__ = "orders"

    id = Column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    buyer_id = Column(String, nullable=False, index=True)
    shop_id = Column(String, nullable=False, index=True)
    shop_name = Column(String)

    items = Column(JSON, nullable=False, default=list)

    total_amount = Column(Numeric(12, 2, asdecimal=False), nullable=False, default=0)
    platform_fee = Column(Numeric(12, 2, asdecimal=False), nullable=False, default=0)
    seller_amount = Column(Numeric(12, 2, asdecimal=False), nullable=False, default=0)

    payment_intent_id = Column(String, index=True)             # Stripe PaymentIntent ID
    transfer_id = Column(String)                                # set by the payout collaborator
    payment_status = Column(String, nullable=False, default="pending")
    status = Column(String, nullable=False, default="pending")

    # legacy single-slot delivery, always mirrors delivered_items[0]
    email = Column(String)
    username = Column(String)
    password = Column(String)
    additional_info = Column(Text)
    delivered_items = Column(JSON, nullable=False, default=list)
    game_code_delivered_at = Column(DateTime(timezone=True))

    buyer_confirmed = Column(Boolean, nullable=False, default=False)
    buyer_confirmed_at = Column(DateTime(timezone=True))

    seller_notes = Column(Text)

    cancelled_at = Column(DateTime(timezone=True))
    cancelled_by = Column(String)
    cancel_reason = Column(Text)

    refund_status = Column(String)
    refund_amount = Column(Numeric(12, 2, asdecimal=False))
    refund_id = Column(String, index=True)
    refund_error = Column(Text)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    # optimistic concurrency token, bumped by SQLAlchemy on every UPDATE
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def unit_count(self):
        return sum(unit_quantity(item) for item in self.items or [])

    def unit_names(self):
        """One entry per purchased unit, in slot order."""
        names = []
        for item in self.items or []:
            names.extend([item.get("name") or ""] * unit_quantity(item))
        return names

    @property
    def is_delivered(self):
        return self.game_code_delivered_at is not None

    @property
    def payout_eligible(self):
        return bool(self.buyer_confirmed) and self.status != "cancelled"

    def set_delivery(self, slots):
        """
        Replace the delivery payload. The only write path for delivered_items
        and the legacy credential columns, which are kept equal to slot 0.
        """
        names = self.unit_names()
        stored = []
        for slot in sorted(slots, key=lambda s: s["index"]):
            index = slot["index"]
            stored.append({
                "index": index,
                "item_name": names[index] if index < len(names) else "",
                **{field: slot.get(field) or None for field in CREDENTIAL_FIELDS},
            })

        # JSON columns only detect reassignment, never in-place mutation
        self.delivered_items = stored
        first = stored[0] if stored else {}
        self.email = first.get("email")
        self.username = first.get("username")
        self.password = first.get("password")
        self.additional_info = first.get("additional_info")

    def has_delivered_credentials(self):
        return any(slot_has_credentials(slot) for slot in self.delivered_items or [])

    def to_dict(self):
        return {
            "id":                     self.id,
            "buyer_id":               self.buyer_id,
            "shop_id":                self.shop_id,
            "shop_name":              self.shop_name,
            "items":                  list(self.items or []),
            "total_amount":           self.total_amount,
            "platform_fee":           self.platform_fee,
            "seller_amount":          self.seller_amount,
            "payment_intent_id":      self.payment_intent_id,
            "transfer_id":            self.transfer_id,
            "payment_status":         self.payment_status,
            "status":                 self.status,
            "email":                  self.email,
            "username":               self.username,
            "password":               self.password,
            "additional_info":        self.additional_info,
            "delivered_items":        list(self.delivered_items or []),
            "game_code_delivered_at": _iso(self.game_code_delivered_at),
            "buyer_confirmed":        bool(self.buyer_confirmed),
            "buyer_confirmed_at":     _iso(self.buyer_confirmed_at),
            "payout_eligible":        self.payout_eligible,
            "seller_notes":           self.seller_notes,
            "cancelled_at":           _iso(self.cancelled_at),
            "cancelled_by":           self.cancelled_by,
            "cancel_reason":          self.cancel_reason,
            "refund_status":          self.refund_status,
            "refund_amount":          self.refund_amount,
            "refund_id":              self.refund_id,
            "refund_error":           self.refund_error,
            "created_at":             _iso(self.created_at),
            "updated_at":             _iso(self.updated_at),
        }


class Product(Base):
    __tablename__ = "products"

    id = Column(String, primary_key=True)
    name = Column(String)
    stock = Column(Integer)                     # NULL or -1: unlimited
    sold_count = Column(Integer, nullable=False, default=0)


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String, primary_key=True, default=lambda: uuid.uuid4().hex)
    user_id = Column(String, nullable=False, index=True)
    type = Column(String, nullable=False)       # order_delivered | order_confirmed
    title = Column(String, nullable=False)
    message = Column(Text)
    link = Column(String)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
