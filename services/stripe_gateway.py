import json
from typing import Optional

import stripe
import structlog

from core.errors import GatewayRejected, GatewayUnavailable, SignatureInvalid
from services.gateway import EventKind, InitRequest, InitResult, PaymentGateway, WebhookEvent, metadata_order_id

logger = structlog.get_logger(__name__)

EVENT_KINDS = {
    "checkout.session.completed": EventKind.PAYMENT_COMPLETED,
    "checkout.session.async_payment_succeeded": EventKind.PAYMENT_COMPLETED,
    "checkout.session.async_payment_failed": EventKind.PAYMENT_FAILED,
    "payment_intent.succeeded": EventKind.PAYMENT_SUCCEEDED,
    "payment_intent.payment_failed": EventKind.PAYMENT_FAILED,
}


class StripeGateway(PaymentGateway):
    """Stripe Checkout Sessions.

    The session id is the correlation reference stored on the order; failed
    payment intents are joined back through the order id carried in the
    payment intent metadata.
    """

    name = "stripe"

    def __init__(self, api_key: str, webhook_secret: str, cancel_url: Optional[str] = None):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.cancel_url = cancel_url

    def initialize(self, request: InitRequest) -> InitResult:
        if not self.api_key:
            raise GatewayUnavailable("STRIPE_SECRET_KEY is not configured")

        metadata = {k: str(v) for k, v in request.metadata.items() if k != "custom_fields"}
        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                mode="payment",
                customer_email=request.email,
                client_reference_id=request.reference,
                line_items=[
                    {
                        "price_data": {
                            "currency": request.currency.lower(),
                            "unit_amount": request.amount,
                            "product_data": {"name": f"Order {request.reference}"},
                        },
                        "quantity": 1,
                    }
                ],
                success_url=request.callback_url,
                cancel_url=self.cancel_url or request.callback_url,
                metadata=metadata,
                payment_intent_data={"metadata": metadata},
                idempotency_key=metadata.get("idempotencyKey"),
            )
        except stripe.APIConnectionError as exc:
            raise GatewayUnavailable(str(exc)) from exc
        except stripe.StripeError as exc:
            raise GatewayRejected(str(exc)) from exc

        if not session.url or not session.id:
            raise GatewayRejected("Missing checkout url or session id from provider")
        return InitResult(authorization_url=session.url, reference=session.id)

    def verify(self, reference: str) -> Optional[str]:
        try:
            session = stripe.checkout.Session.retrieve(reference, api_key=self.api_key)
        except stripe.StripeError as exc:
            raise GatewayUnavailable(str(exc)) from exc
        return session.payment_status

    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> WebhookEvent:
        if not signature or not self.webhook_secret:
            raise SignatureInvalid()
        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as exc:
            logger.warning("webhook_signature_invalid", gateway=self.name, error=str(exc))
            raise SignatureInvalid()
        except ValueError as exc:
            logger.warning("webhook_payload_invalid", gateway=self.name, error=str(exc))
            raise SignatureInvalid()

        event = json.loads(payload)
        if not isinstance(event, dict):
            raise SignatureInvalid()
        event_type = event.get("type")
        if not isinstance(event_type, str) or not event_type:
            event_type = "unknown"
        data = event.get("data") if isinstance(event.get("data"), dict) else {}
        obj = data.get("object") if isinstance(data.get("object"), dict) else {}

        kind = EVENT_KINDS.get(event_type, EventKind.UNKNOWN)
        # Delayed methods complete the session before the money arrives; the
        # async_payment_succeeded event follows once it does.
        if event_type == "checkout.session.completed" and obj.get("payment_status") != "paid":
            kind = EventKind.UNKNOWN
        return WebhookEvent(
            kind=kind,
            event_type=event_type,
            reference=obj.get("id") if isinstance(obj.get("id"), str) else None,
            order_id=metadata_order_id(obj.get("metadata") if isinstance(obj.get("metadata"), dict) else None),
        )
