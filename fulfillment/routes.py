from typing import List, Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from fulfillment.auth import Caller, verify_token
from fulfillment.cancellation import bulk_cancel, cancel_order
from fulfillment.confirmation import confirm_receipt
from fulfillment.database import SessionLocal
from fulfillment.delivery import record_delivery
from fulfillment.errors import DeliveryPayloadInvalid
from fulfillment.orders import get_order_for_caller, list_buyer_orders, list_seller_orders
from fulfillment.reconciler import reconcile_duplicates

router = APIRouter()


class DeliverySlot(BaseModel):
    index: int
    email: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    additional_info: Optional[str] = None


class DeliveryRequest(BaseModel):
    delivered_items: Optional[List[DeliverySlot]] = None
    # legacy single-item payload, accepted when delivered_items is absent
    email: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    additional_info: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[str] = None

    def slots(self):
        if self.delivered_items is not None:
            return [slot.model_dump() for slot in self.delivered_items]
        if not any((self.email, self.username, self.password, self.additional_info)):
            return None
        legacy = DeliverySlot(
            index=0,
            email=self.email,
            username=self.username,
            password=self.password,
            additional_info=self.additional_info,
        )
        return [legacy.model_dump()]


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class BulkCancelRequest(BaseModel):
    order_ids: List[str]
    reason: Optional[str] = None


@router.get("/orders")
def buyer_orders(caller: Caller = Depends(verify_token)):
    with SessionLocal() as db:
        orders = reconcile_duplicates(list_buyer_orders(db, caller.user_id))
        return {"orders": [o.to_dict() for o in orders]}


@router.get("/orders/seller")
def seller_orders(caller: Caller = Depends(verify_token)):
    with SessionLocal() as db:
        orders = list_seller_orders(db, caller.user_id)
        return {"orders": [o.to_dict() for o in orders]}


@router.get("/orders/{order_id}")
def read_order(order_id: str, caller: Caller = Depends(verify_token)):
    with SessionLocal() as db:
        return get_order_for_caller(db, order_id, caller).to_dict()


@router.patch("/orders/{order_id}/delivery")
def deliver_order(
    order_id: str,
    request: DeliveryRequest,
    caller: Caller = Depends(verify_token)
):
    slots = request.slots()
    if slots is None and request.status is None and request.notes is None:
        raise DeliveryPayloadInvalid("Nothing to update")

    with SessionLocal() as db:
        order = record_delivery(
            db,
            order_id,
            caller,
            slots,
            notes=request.notes,
            requested_status=request.status,
        )
        return {"success": True, "order": order.to_dict()}


@router.post("/orders/{order_id}/confirm")
def confirm_order(order_id: str, caller: Caller = Depends(verify_token)):
    with SessionLocal() as db:
        result = confirm_receipt(db, order_id, caller)
        if result.already_confirmed:
            message = "Order already confirmed"
        else:
            message = "Order confirmed successfully. Seller can now withdraw payment."
        return {
            "success": True,
            "already_confirmed": result.already_confirmed,
            "message": message,
            "order": result.order.to_dict(),
        }


@router.post("/orders/bulk-cancel")
def bulk_cancel_orders(request: BulkCancelRequest, caller: Caller = Depends(verify_token)):
    with SessionLocal() as db:
        return bulk_cancel(db, request.order_ids, caller, request.reason)


@router.post("/orders/{order_id}/cancel")
def cancel(
    order_id: str,
    request: Optional[CancelRequest] = None,
    caller: Caller = Depends(verify_token)
):
    reason = request.reason if request else None
    with SessionLocal() as db:
        result = cancel_order(db, order_id, caller, reason)
        order = result.order
        return {
            "success": True,
            "message": result.message,
            "payment_was_completed": result.payment_was_completed,
            "refund_degraded": result.refund_degraded,
            "refund": {
                "status": order.refund_status,
                "refund_id": order.refund_id,
                "amount": order.refund_amount,
                "error": order.refund_error,
            } if result.payment_was_completed else None,
            "order": order.to_dict(),
        }
