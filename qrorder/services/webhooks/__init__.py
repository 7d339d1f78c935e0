"""
Webhook Service Factory

Returns the process-wide dispatcher configured from settings.

Usage:
    from qrorder.services.webhooks import get_webhook_dispatcher

    dispatcher = get_webhook_dispatcher()
    await dispatcher.start()           # application startup
    dispatcher.dispatch(org_id, "order.created", order_id, payload, context)

Backend Switching:
    - WEBHOOK_BACKEND=inline -> deliveries run in the API process (httpx)
    - WEBHOOK_BACKEND=celery -> deliveries run in the Celery worker

Author: Khalil Bannouri
Version: 4.0.0
"""

import logging
from functools import lru_cache

from qrorder.core.config import get_settings
from qrorder.services.webhooks.base import DeliveryResult, WebhookDelivery, WebhookJob
from qrorder.services.webhooks.dispatcher import WebhookDispatcher
from qrorder.services.webhooks.sender import WebhookSender
from qrorder.services.webhooks.signing import (
    build_delivery,
    build_payload,
    sign_payload,
    verify_signature,
)

logger = logging.getLogger(__name__)


@lru_cache()
def get_webhook_dispatcher() -> WebhookDispatcher:
    """Get the cached webhook dispatcher instance."""
    settings = get_settings()
    logger.info(f"Webhook Dispatcher: using {settings.webhook_backend.value} backend")
    return WebhookDispatcher(
        sender=get_webhook_sender(),
        backend=settings.webhook_backend,
        queue_size=settings.webhook_queue_size,
        user_agent=settings.webhook_user_agent,
    )


def get_webhook_sender() -> WebhookSender:
    settings = get_settings()
    return WebhookSender(
        backoff_base=settings.webhook_backoff_base_seconds,
        backoff_max=settings.webhook_backoff_max_seconds,
    )


def reset_webhook_dispatcher() -> None:
    """Clear the cached dispatcher instance."""
    get_webhook_dispatcher.cache_clear()


__all__ = [
    "get_webhook_dispatcher",
    "get_webhook_sender",
    "reset_webhook_dispatcher",
    "WebhookDispatcher",
    "WebhookSender",
    "WebhookDelivery",
    "WebhookJob",
    "DeliveryResult",
    "build_delivery",
    "build_payload",
    "sign_payload",
    "verify_signature",
]
