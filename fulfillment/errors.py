from fastapi import HTTPException


class OrderError(HTTPException):
    status_code = 400
    default_detail = "Order operation failed"

    def __init__(self, detail=None):
        super().__init__(status_code=self.status_code, detail=detail or self.default_detail)


class NotFound(OrderError):
    status_code = 404
    default_detail = "Order not found"


class Unauthorized(OrderError):
    status_code = 403
    default_detail = "Not allowed to act on this order"


class NotCancellable(OrderError):
    status_code = 409
    default_detail = "Order cannot be cancelled"


class OrderClosed(OrderError):
    status_code = 409
    default_detail = "Order is cancelled"


class NotDelivered(OrderError):
    status_code = 409
    default_detail = "Cannot confirm - game code not delivered yet"


class InvalidStatusTransition(OrderError):
    status_code = 409
    default_detail = "Invalid status transition"


class ConcurrentModification(OrderError):
    status_code = 409
    default_detail = "Order was modified concurrently, reload and retry"


class DeliveryPayloadInvalid(OrderError):
    status_code = 422
    default_detail = "Delivered items do not match the purchased units"


class GatewayFailure(OrderError):
    status_code = 502
    default_detail = "Payment gateway call failed"
