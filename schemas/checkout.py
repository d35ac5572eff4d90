from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True


class CartItemIn(CamelModel):
    product_id: str
    name: Optional[str] = None
    image: Optional[str] = None
    price: Decimal
    quantity: int
    size: Optional[str] = None
    color: Optional[str] = None

    @field_validator("product_id", mode="before")
    @classmethod
    def _coerce_product_id(cls, value):
        return str(value) if isinstance(value, int) else value


class ShippingIn(CamelModel):
    # Presence and format are checked by the checkout workflow so that
    # failures come back as 400s with a readable message.
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None


class CheckoutRequest(CamelModel):
    items: Optional[List[CartItemIn]] = None
    shipping: Optional[ShippingIn] = None
    delivery_method: Optional[str] = "standard"
    payment_method: Optional[str] = "card"
    mobile_money_phone: Optional[str] = None
    mobile_money_provider: Optional[str] = None
    promo_code: Optional[str] = None

    # Client-side figures, only ever compared against server values
    subtotal: Optional[Decimal] = None
    shipping_cost: Optional[Decimal] = None
    discount: Optional[Decimal] = None
    total: Optional[Decimal] = None


class CheckoutResponse(CamelModel):
    success: bool = True
    authorization_url: str
    access_code: Optional[str] = None
    reference: str
    order_id: int
    order_number: str
