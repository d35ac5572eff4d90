import re
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query

from core.errors import InvalidInput
from core.session import get_optional_user
from models.user import User
from schemas.checkout import CheckoutRequest, CheckoutResponse
from schemas.payment import PaymentVerification
from services.catalog import Catalog
from services.checkout import CheckoutWorkflow
from services.gateway import PaymentGateway, get_paystack_gateway, get_stripe_gateway
from services.order_repository import OrderRepository, get_order_repository
from services.reconciliation import ReconciliationService

router = APIRouter(prefix="/checkout", tags=["checkout"])

# Keys are stored in a 64 character column
IDEMPOTENCY_KEY_PATTERN = re.compile(r"^[A-Za-z0-9._:-]{1,64}$")


def get_idempotency_key(idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key")) -> Optional[str]:
    """Optional client key for duplicate-submission detection; absent means the server makes one."""
    if idempotency_key is None or not idempotency_key.strip():
        return None
    key = idempotency_key.strip()
    if not IDEMPOTENCY_KEY_PATTERN.match(key):
        raise InvalidInput("Invalid Idempotency-Key header")
    return key


def _submit(data: CheckoutRequest, repository: OrderRepository, gateway: PaymentGateway, user: Optional[User], idempotency_key: Optional[str]) -> dict:
    workflow = CheckoutWorkflow(repository, Catalog(repository.db), gateway)
    return workflow.submit(data, user_id=user.id if user else None, idempotency_key=idempotency_key)


@router.post("/paystack", response_model=CheckoutResponse)
def checkout_paystack(
    data: CheckoutRequest,
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
    user: Optional[User] = Depends(get_optional_user),
    repository: OrderRepository = Depends(get_order_repository),
    gateway: PaymentGateway = Depends(get_paystack_gateway),
):
    """Create a pending order and hand back the Paystack payment page."""
    return _submit(data, repository, gateway, user, idempotency_key)


@router.post("/stripe", response_model=CheckoutResponse)
def checkout_stripe(
    data: CheckoutRequest,
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
    user: Optional[User] = Depends(get_optional_user),
    repository: OrderRepository = Depends(get_order_repository),
    gateway: PaymentGateway = Depends(get_stripe_gateway),
):
    """Create a pending order and hand back a Stripe Checkout session."""
    return _submit(data, repository, gateway, user, idempotency_key)


@router.get("/verify", response_model=PaymentVerification, response_model_exclude_none=True)
def verify_payment(
    order_id: Optional[int] = Query(default=None, alias="orderId"),
    reference: Optional[str] = Query(default=None),
    refresh: bool = Query(default=False),
    repository: OrderRepository = Depends(get_order_repository),
    paystack: PaymentGateway = Depends(get_paystack_gateway),
    stripe: PaymentGateway = Depends(get_stripe_gateway),
):
    """Read the recorded payment state after the gateway redirect.

    With ``refresh`` the gateway is also asked for its own view; the order
    itself is only ever updated by webhooks.
    """
    gateways = (paystack, stripe) if refresh else ()
    return ReconciliationService(repository).verify(order_id=order_id, reference=reference, gateways=gateways)
