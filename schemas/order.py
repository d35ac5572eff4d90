from datetime import datetime
from typing import List, Optional

from schemas.checkout import CamelModel


class OrderItemOut(CamelModel):
    id: int
    product_id: str
    product_name: str
    product_image: Optional[str] = None
    price: float
    quantity: int
    size: Optional[str] = None
    color: Optional[str] = None

    class Config:
        from_attributes = True


class AddressOut(CamelModel):
    id: int
    full_name: str
    email: str
    phone: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None
    postal_code: Optional[str] = None
    country: str

    class Config:
        from_attributes = True


class OrderOut(CamelModel):
    id: int
    order_number: str
    email: str
    currency: str
    status: str
    payment_status: str
    payment_method: str
    delivery_method: Optional[str] = None
    subtotal: float
    shipping_cost: float
    discount_amount: float
    total_amount: float
    promo_code: Optional[str] = None
    paystack_reference: Optional[str] = None
    created_at: datetime
    items: List[OrderItemOut]
    shipping_address: Optional[AddressOut] = None

    class Config:
        from_attributes = True


class OrderPage(CamelModel):
    orders: List[OrderOut]
    total: int
    limit: int
    offset: int
    has_more: bool


class OrderStats(CamelModel):
    total: int
    pending: int
    processing: int
    completed: int
    cancelled: int
    revenue: float
