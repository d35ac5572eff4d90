#!/usr/bin/env python3
"""
Celery worker script for the storefront checkout service.
Run this script to start the worker that sends order confirmation emails.
"""

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

if __name__ == "__main__":
    from core.celery import NOTIFICATIONS_QUEUE, celery_app
    from core.logging import configure_logging

    configure_logging()

    # Start Celery worker
    celery_app.start([
        "worker",
        "--loglevel=info",
        "--concurrency=4",
        f"--queues={NOTIFICATIONS_QUEUE}",
        "--without-gossip",
        "--without-mingle",
        "--without-heartbeat",
    ])
