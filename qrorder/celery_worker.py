"""
Celery Worker Configuration
Sets up Celery with Redis as message broker and result backend.

Only used when WEBHOOK_BACKEND=celery:

    celery -A qrorder.celery_worker worker --loglevel=info
"""

from celery import Celery

from qrorder.core.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery(
    'qrorder_worker',
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=['qrorder.tasks']  # Module containing our tasks
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

    # Deliveries are acknowledged after completion and requeued if the worker dies
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    broker_connection_retry_on_startup=True,

    # Publishing from the API gives up quickly when Redis is down
    broker_connection_timeout=5,
    task_publish_retry_policy={
        'max_retries': 2,
        'interval_start': 0,
        'interval_step': 0.5,
        'interval_max': 1,
    },
)


if __name__ == '__main__':
    celery_app.start()
