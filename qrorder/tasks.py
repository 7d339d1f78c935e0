"""
Celery Tasks
Background webhook deliveries for WEBHOOK_BACKEND=celery.

The API process signs each delivery before enqueueing it, so the job carries
the final body and headers but never the configuration secret.
"""

import logging
import time
from datetime import datetime, timezone

from qrorder.celery_worker import celery_app, settings
from qrorder.core.exceptions import DeliveryFailure
from qrorder.services.webhooks.base import DeliveryResult, WebhookDelivery
from qrorder.services.webhooks.sender import post_delivery_sync
from qrorder.services.webhooks.signing import compute_backoff

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name="qrorder.tasks.deliver_webhook")
def deliver_webhook(self, delivery_data: dict) -> dict:
    """
    Deliver one signed webhook.

    Failed attempts are retried through Celery with the same jittered
    exponential backoff as the inline sender, up to the configuration's
    ``max_retries``. The final outcome is logged and returned, never raised.

    Args:
        delivery_data: ``WebhookDelivery.to_dict()`` output

    Returns:
        dict: ``DeliveryResult.to_dict()``
    """
    delivery = WebhookDelivery.from_dict(delivery_data)
    task_id = self.request.id
    attempt = self.request.retries + 1

    logger.info(
        f"📨 Task {task_id}: webhook {delivery.config_id} ({delivery.event_type}) "
        f"attempt {attempt}/{delivery.max_attempts}"
    )
    start_time = time.monotonic()

    status_code, error = post_delivery_sync(delivery)
    elapsed_ms = round((time.monotonic() - start_time) * 1000, 1)

    if error is not None and delivery.retry_enabled and self.request.retries < delivery.max_retries:
        countdown = compute_backoff(
            self.request.retries,
            settings.webhook_backoff_base_seconds,
            settings.webhook_backoff_max_seconds,
        )
        logger.warning(
            f"⚠️ Task {task_id}: webhook {delivery.config_id} failed ({error}); "
            f"retrying in {countdown:.1f}s"
        )
        raise self.retry(countdown=countdown, max_retries=delivery.max_retries)

    result = DeliveryResult(
        success=error is None,
        config_id=delivery.config_id,
        event_type=delivery.event_type,
        attempts=attempt,
        status_code=status_code,
        error_message=error,
        response_time_ms=elapsed_ms,
    )

    if result.success:
        logger.info(
            f"✅ Task {task_id}: webhook {delivery.config_id} ({delivery.event_type}) "
            f"delivered with HTTP {status_code} after {attempt} attempt(s)"
        )
    else:
        failure = DeliveryFailure(delivery.config_id, delivery.event_type, attempt, error)
        logger.error(f"❌ Task {task_id}: {failure}")

    return result.to_dict()


@celery_app.task
def health_check() -> dict:
    """
    Simple health check task to verify Celery is working.
    """
    return {
        'status': 'healthy',
        'worker': 'celery',
        'timestamp': datetime.now(timezone.utc).isoformat()
    }
