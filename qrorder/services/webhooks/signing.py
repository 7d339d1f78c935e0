"""
Webhook Payloads and Signatures

Wire format:

    POST <config.url>
    Content-Type: application/json
    X-Webhook-Event: order.created
    X-Webhook-Delivery: <uuid>
    X-Webhook-Timestamp: 1705343445
    X-Webhook-Signature: sha256=<hex>

    {"event": "order.created", "timestamp": "2024-01-15T18:30:45+00:00",
     "data": {"id": "...", ...order fields, ...context}}

The signature is HMAC-SHA256 over ``"<timestamp>.<body>"`` keyed with the
configuration's secret. Receivers recompute it with ``verify_signature``.
"""

import hashlib
import hmac
import json
import random
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from qrorder.models import WebhookConfig
from qrorder.services.webhooks.base import WebhookDelivery

HEADER_EVENT = "X-Webhook-Event"
HEADER_DELIVERY = "X-Webhook-Delivery"
HEADER_TIMESTAMP = "X-Webhook-Timestamp"
HEADER_SIGNATURE = "X-Webhook-Signature"
SIGNATURE_SCHEME = "sha256"

# Replay window accepted by verify_signature
DEFAULT_MAX_AGE = 300


def build_payload(
    event_type: str,
    resource_id: str,
    resource_payload: dict[str, Any],
    context: Optional[dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """Build the event envelope; context keys override resource keys."""
    now = now or datetime.now(timezone.utc)
    data = {"id": resource_id, **resource_payload}
    data.update({k: v for k, v in (context or {}).items() if v is not None})
    return {
        "event": event_type,
        "timestamp": now.isoformat(),
        "data": data,
    }


def sign_payload(secret: str, timestamp: int, body: str) -> str:
    message = f"{timestamp}.{body}".encode()
    digest = hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_SCHEME}={digest}"


def verify_signature(
    secret: str,
    timestamp: int,
    body: str,
    signature: str,
    max_age: int = DEFAULT_MAX_AGE,
    now: Optional[int] = None,
) -> bool:
    """
    Verify a received webhook.

    Args:
        secret: Shared configuration secret
        timestamp: Value of X-Webhook-Timestamp
        body: Raw request body
        signature: Value of X-Webhook-Signature
        max_age: Reject deliveries older than this many seconds (0 disables)

    Returns:
        bool: True if authentic and fresh
    """
    now = int(time.time()) if now is None else now
    if max_age and abs(now - timestamp) > max_age:
        return False
    expected = sign_payload(secret, timestamp, body)
    return hmac.compare_digest(expected, signature)


def build_delivery(
    config: WebhookConfig,
    event_type: str,
    payload: dict[str, Any],
    user_agent: str = "qrorder-webhooks",
) -> WebhookDelivery:
    """Serialize, sign and wrap a payload for one configuration."""
    body = json.dumps(payload, separators=(",", ":"), default=str)
    timestamp = int(time.time())
    delivery_id = str(uuid.uuid4())

    headers = {
        "Content-Type": "application/json",
        "User-Agent": user_agent,
        HEADER_EVENT: event_type,
        HEADER_DELIVERY: delivery_id,
        HEADER_TIMESTAMP: str(timestamp),
        HEADER_SIGNATURE: sign_payload(config.secret_key, timestamp, body),
    }

    return WebhookDelivery(
        delivery_id=delivery_id,
        config_id=config.id,
        event_type=event_type,
        url=config.url,
        body=body,
        headers=headers,
        timeout_seconds=float(config.timeout_seconds or 10.0),
        retry_enabled=bool(config.retry_enabled),
        max_retries=int(config.max_retries or 0),
    )


def compute_backoff(
    attempt: int,
    base_seconds: float,
    max_seconds: float,
) -> float:
    """
    Delay before retry number ``attempt`` (0-based).

    Exponential ``base * 2**attempt`` capped at ``max_seconds``, plus up to
    25% random jitter so failing receivers are not hit in lockstep.
    """
    delay = min(base_seconds * (2 ** attempt), max_seconds)
    return delay + random.uniform(0, delay * 0.25)
