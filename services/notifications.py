import structlog

from tasks.email_tasks import send_order_confirmation_task

logger = structlog.get_logger(__name__)


def dispatch_order_confirmation(order_id: int) -> bool:
    """Queue the confirmation email. Never raises; the order state stands either way."""
    try:
        send_order_confirmation_task.delay(order_id)
    except Exception as exc:
        logger.error("confirmation_dispatch_failed", order_id=order_id, error=str(exc))
        return False
    logger.info("confirmation_dispatched", order_id=order_id)
    return True
