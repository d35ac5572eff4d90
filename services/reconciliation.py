"""Payment reconciliation.

Webhooks are the authoritative write path; verification is a read of
whatever the webhooks have recorded so far. Both meet at the same
compare-and-swap transitions in the repository, so a replayed or
concurrent delivery of the same event changes nothing the second time.
"""
from typing import Callable, Dict, Iterable, Optional

import structlog

from core.errors import GatewayUnavailable, InvalidInput, NotFound
from models.order import Order, OrderStatus
from services.gateway import EventKind, PaymentGateway, WebhookEvent
from services.notifications import dispatch_order_confirmation
from services.order_repository import OrderRepository

logger = structlog.get_logger(__name__)


class ReconciliationService:
    def __init__(self, repository: OrderRepository, notify: Optional[Callable[[int], bool]] = None):
        self.repository = repository
        self.notify = notify

    def ingest(self, gateway: PaymentGateway, payload: bytes, signature: Optional[str]) -> bool:
        """Authenticate and apply one webhook delivery."""
        event = gateway.parse_webhook(payload, signature)
        logger.info("webhook_received", gateway=gateway.name, event_type=event.event_type, reference=event.reference)
        return self.apply(event)

    def apply(self, event: WebhookEvent) -> bool:
        """Apply a verified event. Returns True only when state changed."""
        log = logger.bind(event_type=event.event_type, reference=event.reference)
        if event.kind not in (EventKind.PAYMENT_COMPLETED, EventKind.PAYMENT_FAILED):
            log.info("webhook_ignored")
            return False

        order = self._find_order(event)
        if order is None:
            log.warning("webhook_order_not_found", order_id=event.order_id)
            return False
        log = log.bind(order_id=order.id, order_number=order.order_number)

        # Only orders that were still pending get a confirmation email
        order_was_pending = order.status == OrderStatus.PENDING.value
        if event.kind == EventKind.PAYMENT_COMPLETED:
            changed = self.repository.mark_payment_completed(order.id)
        else:
            changed = self.repository.mark_payment_failed(order.id)
        self.repository.commit()

        if not changed:
            log.info("webhook_already_applied", payment_status=order.payment_status)
            return False

        log.info("payment_status_updated", kind=event.kind.value)
        if event.kind == EventKind.PAYMENT_COMPLETED:
            if not order_was_pending:
                log.warning("payment_completed_on_inactive_order", order_status=order.status)
                return True
            (self.notify or dispatch_order_confirmation)(order.id)
        return True

    def _find_order(self, event: WebhookEvent) -> Optional[Order]:
        order = None
        if event.reference:
            order = self.repository.get_by_reference(event.reference)
        if order is None and event.order_id is not None:
            order = self.repository.get(event.order_id)
        return order

    def verify(self, order_id: Optional[int] = None, reference: Optional[str] = None, gateways: Iterable[PaymentGateway] = ()) -> Dict:
        """Report the persisted payment state. Never mutates the order."""
        if order_id is None and not reference:
            raise InvalidInput("Order ID or payment reference is required")

        order = self.repository.get(order_id) if order_id is not None else self.repository.get_by_reference(reference)
        if order is None:
            raise NotFound()

        result = {
            "order_id": order.id,
            "order_number": order.order_number,
            "payment_status": order.payment_status,
            "order_status": order.status,
            "total_amount": float(order.total_amount),
            "paid": order.is_paid,
            "gateway_status": None,
        }

        for gateway in gateways:
            gateway_reference = _reference_for(order, gateway)
            if not gateway_reference:
                continue
            try:
                result["gateway_status"] = gateway.verify(gateway_reference)
            except GatewayUnavailable as exc:
                logger.warning("gateway_verify_failed", order_id=order.id, gateway=gateway.name, reason=exc.reason)
            break
        return result


def _reference_for(order: Order, gateway: PaymentGateway) -> Optional[str]:
    if gateway.name == "stripe":
        return order.stripe_payment_intent_id
    return order.paystack_reference
