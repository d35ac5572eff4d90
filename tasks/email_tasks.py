import structlog

from core.celery import celery_app
from core.config import settings
from core.db import db_session
from services.email import send_templated_email
from services.order_repository import OrderRepository

logger = structlog.get_logger(__name__)


@celery_app.task(bind=True, max_retries=3)
def send_order_confirmation_task(self, order_id: int):
    """
    Email the order confirmation once payment has been confirmed.
    Retries up to 3 times on failure.
    """
    with db_session() as db:
        order = OrderRepository(db).get(order_id)
        if order is None:
            logger.warning("confirmation_order_missing", order_id=order_id)
            return {"status": "missing", "order_id": order_id}

        context = {
            "order_number": order.order_number,
            "full_name": order.shipping_address.full_name if order.shipping_address else "",
            "items": [
                {"name": item.product_name, "quantity": item.quantity, "price": item.price, "size": item.size, "color": item.color}
                for item in order.items
            ],
            "subtotal": order.subtotal,
            "shipping_cost": order.shipping_cost,
            "discount_amount": order.discount_amount,
            "total_amount": order.total_amount,
            "currency": order.currency,
        }
        email = order.email

    try:
        sent = send_templated_email(email, f"Order confirmed: {context['order_number']}", "emails/order_confirmation.txt", context)
    except Exception as exc:
        if settings.DEBUG:
            logger.error("confirmation_email_failed", order_id=order_id, error=str(exc))
            return {"status": "failed", "error": str(exc), "debug": True}

        # Retry with exponential backoff
        countdown = min(2 ** self.request.retries, 60)  # Max 60 seconds
        raise self.retry(exc=exc, countdown=countdown)

    return {"status": "sent" if sent else "skipped", "order_id": order_id}
