"""Order creation workflow.

validate -> re-price cart -> idempotency guard -> sanitize amounts ->
persist address/order/items -> initialize payment -> (rollback | record
reference) -> redeem promo code.

Everything up to and including persistence happens before any money moves;
the only compensating step is deleting the order when the gateway refuses
or cannot be reached.
"""
import secrets
import string
import time
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
import structlog

from core.config import settings
from core.errors import CartValidationFailed, DuplicateOrder, PaymentInitFailed
from models.address import Address
from models.order import Order, OrderStatus, PaymentStatus
from models.order_item import OrderItem
from schemas.checkout import CheckoutRequest
from services.catalog import Catalog, CartValidation
from services.gateway import InitRequest, PaymentGateway
from services.order_repository import OrderRepository
from services.pricing import compute_total, delivery_cost, promo_discount, sanitize_amount, to_minor_units
from services.validation import format_mobile_phone, validate_checkout_request

logger = structlog.get_logger(__name__)

_BASE36 = string.digits + string.ascii_uppercase


def _base36(number: int) -> str:
    digits = ""
    while number:
        number, rem = divmod(number, 36)
        digits = _BASE36[rem] + digits
    return digits or "0"


def generate_order_number(prefix: Optional[str] = None) -> str:
    timestamp = _base36(int(time.time() * 1000))
    suffix = "".join(secrets.choice(_BASE36) for _ in range(4))
    return f"{prefix or settings.ORDER_NUMBER_PREFIX}-{timestamp}-{suffix}"


def generate_idempotency_key() -> str:
    return uuid.uuid4().hex


class CheckoutWorkflow:
    def __init__(self, repository: OrderRepository, catalog: Catalog, gateway: PaymentGateway, base_url: Optional[str] = None, currency: Optional[str] = None):
        self.repository = repository
        self.catalog = catalog
        self.gateway = gateway
        self.base_url = (base_url or settings.BASE_URL).rstrip("/")
        self.currency = currency or settings.CURRENCY

    def submit(self, data: CheckoutRequest, user_id: Optional[int] = None, idempotency_key: Optional[str] = None) -> Dict[str, Any]:
        validate_checkout_request(data)
        payment_method = (data.payment_method or "card").lower()
        log = logger.bind(gateway=self.gateway.name, payment_method=payment_method, user_id=user_id)

        cart = self.catalog.validate_cart(data.items)
        shipping_cost = delivery_cost(data.delivery_method)
        discount = promo_discount(self.catalog.get_promo_code(data.promo_code), cart.subtotal)
        self._check_client_figures(data, cart, shipping_cost, discount)
        if not cart.valid:
            raise CartValidationFailed(cart.errors)

        key = idempotency_key or generate_idempotency_key()
        existing = self.repository.get_by_idempotency_key(key)
        if existing:
            log.warning("duplicate_order", order_id=existing.id, order_number=existing.order_number)
            raise DuplicateOrder(existing.id, existing.order_number)

        subtotal = sanitize_amount(cart.subtotal)
        shipping_cost = sanitize_amount(shipping_cost)
        discount = sanitize_amount(discount)
        total = compute_total(subtotal, shipping_cost, discount)

        order = self._persist(data, cart, user_id, key, payment_method, subtotal, shipping_cost, discount, total)
        log = log.bind(order_id=order.id, order_number=order.order_number)
        log.info("order_created", total=str(total))

        try:
            result = self.gateway.initialize(self._init_request(order, data, payment_method))
        except PaymentInitFailed as exc:
            self._rollback(order, exc.reason, log)
            raise
        except Exception as exc:
            self._rollback(order, str(exc), log)
            raise PaymentInitFailed(str(exc)) from exc

        self.repository.set_gateway_reference(order, self.gateway.name, result.reference)
        self.repository.commit()
        log.info("payment_initialized", reference=result.reference)

        if order.promo_code:
            self._redeem_promo(order.promo_code, log)

        return {
            "success": True,
            "authorization_url": result.authorization_url,
            "access_code": result.access_code,
            "reference": result.reference,
            "order_id": order.id,
            "order_number": order.order_number,
        }

    def _check_client_figures(self, data: CheckoutRequest, cart: CartValidation, shipping_cost: Decimal, discount: Decimal) -> None:
        """Compare whatever totals the client sent against server values. Zero tolerance."""
        if not cart.valid:
            return

        expected = {
            "subtotal": cart.subtotal,
            "shippingCost": sanitize_amount(shipping_cost),
            "discount": sanitize_amount(discount),
            "total": compute_total(cart.subtotal, shipping_cost, discount),
        }
        submitted = {
            "subtotal": data.subtotal,
            "shippingCost": data.shipping_cost,
            "discount": data.discount,
            "total": data.total,
        }
        for name, received in submitted.items():
            if received is not None and received != expected[name]:
                cart.errors.append(_figure_diff(name, expected[name], received, f"Submitted {name} does not match server total"))

    def _persist(self, data, cart, user_id, key, payment_method, subtotal, shipping_cost, discount, total) -> Order:
        shipping = data.shipping
        mobile = payment_method == "mobile_money"
        try:
            address = self.repository.add_address(
                Address(
                    user_id=user_id,
                    full_name=shipping.full_name.strip(),
                    email=shipping.email.strip(),
                    phone=shipping.phone or None,
                    address_line1=shipping.address_line1,
                    address_line2=shipping.address_line2 or None,
                    city=shipping.city,
                    region=shipping.region or None,
                    postal_code=shipping.postal_code,
                    country=shipping.country or "Ghana",
                    is_default=False,
                )
            )
            order = self.repository.add_order(
                Order(
                    order_number=generate_order_number(),
                    idempotency_key=key,
                    user_id=user_id,
                    email=shipping.email.strip(),
                    phone=shipping.phone or None,
                    currency=self.currency,
                    status=OrderStatus.PENDING.value,
                    payment_status=PaymentStatus.PENDING.value,
                    payment_method=payment_method,
                    delivery_method=(data.delivery_method or "standard").lower(),
                    subtotal=subtotal,
                    shipping_cost=shipping_cost,
                    discount_amount=discount,
                    total_amount=total,
                    promo_code=data.promo_code.strip().upper() if data.promo_code and data.promo_code.strip() else None,
                    mobile_money_provider=data.mobile_money_provider.lower() if mobile else None,
                    mobile_money_phone=format_mobile_phone(data.mobile_money_phone) if mobile else None,
                    shipping_address_id=address.id,
                ),
                [
                    OrderItem(
                        product_id=line.product_id,
                        product_name=line.product_name,
                        product_image=line.product_image,
                        price=line.price,
                        quantity=line.quantity,
                        size=line.size,
                        color=line.color,
                    )
                    for line in cart.lines
                ],
            )
            self.repository.commit()
        except IntegrityError:
            self.repository.rollback()
            existing = self.repository.get_by_idempotency_key(key)
            if existing:
                raise DuplicateOrder(existing.id, existing.order_number)
            raise
        return order

    def _init_request(self, order: Order, data: CheckoutRequest, payment_method: str) -> InitRequest:
        custom_fields: List[Dict[str, str]] = []
        if payment_method == "mobile_money":
            custom_fields = [
                {
                    "display_name": "Mobile Money Provider",
                    "variable_name": "mobile_money_provider",
                    "value": order.mobile_money_provider,
                },
                {
                    "display_name": "Mobile Money Phone",
                    "variable_name": "mobile_money_phone",
                    "value": order.mobile_money_phone,
                },
            ]
        return InitRequest(
            email=order.email,
            amount=to_minor_units(order.total_amount),
            currency=order.currency,
            reference=order.order_number,
            callback_url=f"{self.base_url}/checkout/success?orderId={order.id}",
            metadata={
                "orderId": order.id,
                "orderNumber": order.order_number,
                "idempotencyKey": order.idempotency_key,
                "paymentMethod": payment_method,
                "custom_fields": custom_fields,
            },
        )

    def _rollback(self, order: Order, reason: Optional[str], log) -> None:
        # Only the order and its items are removed; the address row stays.
        log.error("payment_init_failed", reason=reason)
        self.repository.delete(order)
        self.repository.commit()
        log.info("order_rolled_back")

    def _redeem_promo(self, code: str, log) -> None:
        try:
            if not self.repository.increment_promo_usage(code):
                log.warning("promo_code_not_found", promo_code=code)
            self.repository.commit()
        except SQLAlchemyError as exc:
            self.repository.rollback()
            log.warning("promo_code_redeem_failed", promo_code=code, error=str(exc))


def _figure_diff(name: str, expected, received, message: str) -> Dict[str, Any]:
    return {
        "productId": None,
        "field": name,
        "expected": None if expected is None else str(expected),
        "received": None if received is None else str(received),
        "message": message,
    }
