from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool
import structlog

from schemas.payment import WebhookAck
from services.gateway import PaymentGateway, get_paystack_gateway, get_stripe_gateway
from services.order_repository import OrderRepository, get_order_repository
from services.reconciliation import ReconciliationService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def _ingest(repository: OrderRepository, gateway: PaymentGateway, payload: bytes, signature: Optional[str]):
    try:
        ReconciliationService(repository).ingest(gateway, payload, signature)
    except SQLAlchemyError as exc:
        # Non-2xx makes the gateway redeliver; applying an event is idempotent.
        repository.rollback()
        logger.error("webhook_handler_failed", gateway=gateway.name, error=str(exc))
        return JSONResponse(status_code=500, content={"error": "Webhook handler failed"})
    return {"received": True}


@router.post("/paystack", response_model=WebhookAck)
async def paystack_webhook(
    request: Request,
    signature: Optional[str] = Header(default=None, alias="x-paystack-signature"),
    repository: OrderRepository = Depends(get_order_repository),
    gateway: PaymentGateway = Depends(get_paystack_gateway),
):
    payload = await request.body()
    # Database work and the broker call stay off the event loop
    return await run_in_threadpool(_ingest, repository, gateway, payload, signature)


@router.post("/stripe", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    signature: Optional[str] = Header(default=None, alias="stripe-signature"),
    repository: OrderRepository = Depends(get_order_repository),
    gateway: PaymentGateway = Depends(get_stripe_gateway),
):
    payload = await request.body()
    return await run_in_threadpool(_ingest, repository, gateway, payload, signature)
