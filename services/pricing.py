from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional

import structlog

from core.config import settings
from models.promo_code import PromoCode

logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def sanitize_amount(value) -> Decimal:
    """Coerce a currency figure to a non-negative two-decimal Decimal."""
    if value is None:
        return ZERO
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        return ZERO
    if not amount.is_finite() or amount < 0:
        return ZERO
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def compute_total(subtotal, shipping_cost, discount) -> Decimal:
    total = sanitize_amount(subtotal) + sanitize_amount(shipping_cost) - sanitize_amount(discount)
    return sanitize_amount(max(total, ZERO))


def to_minor_units(amount) -> int:
    """Amount in the gateway's minor unit (pesewas, kobo, cents)."""
    return int((sanitize_amount(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def delivery_cost(delivery_method: Optional[str]) -> Optional[Decimal]:
    return settings.DELIVERY_OPTIONS.get((delivery_method or "standard").lower())


def promo_discount(promo: Optional[PromoCode], subtotal: Decimal, now: Optional[datetime] = None) -> Decimal:
    """Discount a promo code grants on ``subtotal``; zero when it does not apply."""
    if promo is None or not promo.is_active:
        return ZERO
    now = now or datetime.utcnow()
    if promo.expires_at and promo.expires_at < now:
        logger.info("promo_code_expired", code=promo.code)
        return ZERO
    if promo.max_uses is not None and promo.used_count >= promo.max_uses:
        logger.info("promo_code_exhausted", code=promo.code)
        return ZERO
    if promo.min_order_amount is not None and subtotal < sanitize_amount(promo.min_order_amount):
        return ZERO

    value = sanitize_amount(promo.discount_value)
    if promo.discount_type == "fixed":
        discount = value
    else:
        discount = subtotal * min(value, Decimal("100")) / Decimal("100")
    return sanitize_amount(min(discount, subtotal))
