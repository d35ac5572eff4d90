import re
from typing import Optional

from email_validator import validate_email, EmailNotValidError

from core.config import settings
from core.errors import InvalidCart, InvalidInput
from schemas.checkout import CheckoutRequest
from services.pricing import delivery_cost

PAYMENT_METHODS = ("card", "mobile_money")


def is_valid_email(email: Optional[str]) -> bool:
    if not email:
        return False
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def _strip_phone(phone: str) -> str:
    return re.sub(r"[\s\-()]", "", phone)


def is_valid_mobile_phone(phone: Optional[str]) -> bool:
    if not phone:
        return False
    return re.match(settings.MOBILE_MONEY_PHONE_PATTERN, _strip_phone(phone)) is not None


def format_mobile_phone(phone: str) -> str:
    """Normalize a local or international number to +<country code><subscriber>."""
    digits = _strip_phone(phone).lstrip("+")
    code = settings.MOBILE_MONEY_COUNTRY_CODE
    if digits.startswith("0"):
        digits = code + digits[1:]
    elif not digits.startswith(code):
        digits = code + digits
    return f"+{digits}"


def validate_checkout_request(data: CheckoutRequest) -> None:
    """Reject malformed submissions before anything touches the database."""
    if not data.items:
        raise InvalidCart("Cart is empty")

    shipping = data.shipping
    if not shipping or not (shipping.email or "").strip() or not (shipping.full_name or "").strip():
        raise InvalidInput("Shipping information is required")

    if not is_valid_email(shipping.email.strip()):
        raise InvalidInput("Invalid email format")

    payment_method = (data.payment_method or "card").lower()
    if payment_method not in PAYMENT_METHODS:
        raise InvalidInput("Unsupported payment method")

    if delivery_cost(data.delivery_method) is None:
        raise InvalidInput("Unsupported delivery method")

    if payment_method == "mobile_money":
        if not data.mobile_money_phone or not data.mobile_money_provider:
            raise InvalidInput("Mobile money information is required")
        if not is_valid_mobile_phone(data.mobile_money_phone):
            raise InvalidInput("Invalid phone number format")
        if data.mobile_money_provider.lower() not in settings.MOBILE_MONEY_PROVIDERS:
            raise InvalidInput("Unsupported mobile money provider")
