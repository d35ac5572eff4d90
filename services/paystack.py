import hashlib
import hmac
import json
from typing import Any, Dict, Optional

import requests
import structlog

from core.errors import GatewayRejected, GatewayUnavailable, SignatureInvalid
from services.gateway import EventKind, InitRequest, InitResult, PaymentGateway, WebhookEvent, metadata_order_id

logger = structlog.get_logger(__name__)

PAYSTACK_BASE_URL = "https://api.paystack.co"

EVENT_KINDS = {
    "charge.success": EventKind.PAYMENT_COMPLETED,
    "charge.failed": EventKind.PAYMENT_FAILED,
}


class PaystackGateway(PaymentGateway):
    name = "paystack"

    def __init__(self, secret_key: str, webhook_secret: Optional[str] = None, base_url: str = PAYSTACK_BASE_URL, timeout: int = 20):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret or secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    def initialize(self, request: InitRequest) -> InitResult:
        if not self.secret_key:
            raise GatewayUnavailable("Paystack is not configured")

        payload = {
            "email": request.email,
            "amount": request.amount,
            "currency": request.currency,
            "reference": request.reference,
            "callback_url": request.callback_url,
            "metadata": request.metadata,
        }
        try:
            resp = requests.post(f"{self.base_url}/transaction/initialize", json=payload, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as exc:
            raise GatewayUnavailable(str(exc)) from exc

        body = _json_or_empty(resp)
        if not resp.ok:
            raise GatewayRejected(body.get("message") or f"HTTP {resp.status_code}")
        if not body.get("status"):
            raise GatewayRejected(body.get("message") or "Paystack returned status false")

        data = body.get("data") or {}
        if not data.get("authorization_url") or not data.get("reference"):
            raise GatewayRejected("Missing authorization_url or reference from provider")

        return InitResult(
            authorization_url=data["authorization_url"],
            reference=data["reference"],
            access_code=data.get("access_code"),
        )

    def verify(self, reference: str) -> Optional[str]:
        try:
            resp = requests.get(f"{self.base_url}/transaction/verify/{reference}", headers=self._headers(), timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise GatewayUnavailable(str(exc)) from exc
        body = _json_or_empty(resp)
        return (body.get("data") or {}).get("status")

    def sign(self, payload: bytes) -> str:
        return hmac.new(self.webhook_secret.encode(), payload, hashlib.sha512).hexdigest()

    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> WebhookEvent:
        if not signature or not self.webhook_secret:
            raise SignatureInvalid()
        if not hmac.compare_digest(self.sign(payload), signature):
            raise SignatureInvalid()

        try:
            event = json.loads(payload)
        except ValueError:
            raise SignatureInvalid()
        if not isinstance(event, dict):
            raise SignatureInvalid()

        event_type = event.get("event")
        if not isinstance(event_type, str) or not event_type:
            event_type = "unknown"
        data = event.get("data")
        if not isinstance(data, dict):
            data = {}
        metadata = data.get("metadata")
        return WebhookEvent(
            kind=EVENT_KINDS.get(event_type, EventKind.UNKNOWN),
            event_type=event_type,
            reference=data.get("reference") if isinstance(data.get("reference"), str) else None,
            order_id=metadata_order_id(metadata if isinstance(metadata, dict) else None),
        )


def _json_or_empty(resp: requests.Response) -> Dict[str, Any]:
    try:
        body = resp.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
