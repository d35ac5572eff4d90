"""Payment gateway port.

Both Paystack and Stripe clients implement this interface so the checkout
and reconciliation workflows never see provider specifics. Clients are
built once at process start and handed to the workflows.
"""
import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from fastapi import Request


class EventKind(str, enum.Enum):
    PAYMENT_COMPLETED = "payment_completed"
    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class InitRequest:
    email: str
    amount: int  # minor units
    currency: str
    reference: str
    callback_url: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class InitResult:
    authorization_url: str
    reference: str
    access_code: Optional[str] = None


@dataclass(frozen=True)
class WebhookEvent:
    kind: EventKind
    event_type: str
    reference: Optional[str] = None
    order_id: Optional[int] = None


class PaymentGateway(ABC):
    name: str

    @abstractmethod
    def initialize(self, request: InitRequest) -> InitResult:
        """Open a transaction; raises GatewayUnavailable or GatewayRejected."""

    @abstractmethod
    def verify(self, reference: str) -> Optional[str]:
        """Gateway's current status string for a transaction."""

    @abstractmethod
    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> WebhookEvent:
        """Authenticate a raw webhook body; raises SignatureInvalid."""


def metadata_order_id(metadata: Optional[Dict[str, Any]]) -> Optional[int]:
    value = (metadata or {}).get("orderId")
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def get_paystack_gateway(request: Request) -> PaymentGateway:
    return request.app.state.paystack_gateway


def get_stripe_gateway(request: Request) -> PaymentGateway:
    return request.app.state.stripe_gateway
