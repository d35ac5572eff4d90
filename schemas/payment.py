from typing import Optional

from schemas.checkout import CamelModel


class PaymentVerification(CamelModel):
    order_id: int
    order_number: str
    payment_status: str
    order_status: str
    total_amount: float
    paid: bool
    gateway_status: Optional[str] = None


class WebhookAck(CamelModel):
    received: bool = True
