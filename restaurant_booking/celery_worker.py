"""
Celery Worker Configuration
Sets up Celery with Redis as message broker and result backend.
"""

from celery import Celery

from restaurant_booking.core.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery(
    'restaurant_booking_worker',
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=['restaurant_booking.tasks']  # Module containing our tasks
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,

    # Result settings
    result_expires=3600,  # Results expire after 1 hour

    # Notifications are at-most-once: ack on receipt, never requeue
    task_acks_late=False,
    task_reject_on_worker_lost=False,

    broker_connection_retry_on_startup=True,
)


if __name__ == '__main__':
    celery_app.start()
