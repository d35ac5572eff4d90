from celery import Celery
from core.config import settings

NOTIFICATIONS_QUEUE = "notifications"

# Redis is both broker and result backend
celery_app = Celery(
    "storefront_checkout",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["tasks.email_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    result_expires=60 * 60,
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=5 * 60,
    task_soft_time_limit=4 * 60,
    # A confirmation email is only acknowledged once it has been handed to SMTP
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
    task_routes={"tasks.email_tasks.*": {"queue": NOTIFICATIONS_QUEUE}},
    task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,
    task_eager_propagates=False,
)
