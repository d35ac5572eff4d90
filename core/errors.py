"""Checkout and reconciliation error taxonomy.

Every error carries the HTTP status it maps to and the JSON body the client
sees. Gateway errors keep their detail in ``reason`` for server-side logs
only; the body stays generic.
"""
from typing import Any, Dict, List, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
import structlog

logger = structlog.get_logger(__name__)


class CheckoutError(Exception):
    status_code: int = 400
    message: str = "Checkout failed"

    def __init__(self, message: Optional[str] = None, **extra: Any):
        self.message = message or self.message
        self.extra = extra
        super().__init__(self.message)

    def to_body(self) -> Dict[str, Any]:
        return {"error": self.message, **self.extra}


class InvalidCart(CheckoutError):
    message = "Cart is empty"


class InvalidInput(CheckoutError):
    message = "Invalid input"

    def __init__(self, message: Optional[str] = None, details: Optional[List[Dict[str, str]]] = None):
        if details:
            super().__init__(message, details=details)
        else:
            super().__init__(message)


class CartValidationFailed(CheckoutError):
    message = "Cart validation failed"

    def __init__(self, details: List[Dict[str, Any]]):
        self.details = details
        super().__init__(details=details)


class DuplicateOrder(CheckoutError):
    status_code = 409
    message = "Duplicate payment detected"

    def __init__(self, order_id: int, order_number: str):
        self.order_id = order_id
        self.order_number = order_number
        super().__init__(orderId=order_id, orderNumber=order_number)


class PaymentInitFailed(CheckoutError):
    status_code = 500
    message = "Failed to initialize payment"

    def __init__(self, reason: Optional[str] = None):
        self.reason = reason
        super().__init__()


class GatewayUnavailable(PaymentInitFailed):
    pass


class GatewayRejected(PaymentInitFailed):
    pass


class SignatureInvalid(CheckoutError):
    message = "Invalid signature"


class NotFound(CheckoutError):
    status_code = 404
    message = "Order not found"


async def checkout_error_handler(request: Request, exc: CheckoutError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=type(exc).__name__, reason=getattr(exc, "reason", None))
    else:
        logger.info("request_rejected", path=request.url.path, error=type(exc).__name__, status_code=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())
