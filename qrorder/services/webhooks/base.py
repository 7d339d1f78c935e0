"""
Webhook Data Structures

Value objects shared by the dispatcher, the inline sender and the Celery
task. ``WebhookDelivery`` is fully prepared (body serialized and signed) so
it can cross the Celery broker without carrying the tenant's secret.

Author: Khalil Bannouri
Version: 4.0.0
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Optional


@dataclass
class WebhookJob:
    """One order event waiting for configuration lookup."""
    organization_id: str
    event_type: str
    resource_id: str
    resource_payload: dict[str, Any]
    context: dict[str, Any] = field(default_factory=dict)


@dataclass
class WebhookDelivery:
    """
    A signed delivery to a single configuration.

    Attributes:
        delivery_id: Unique id, sent as X-Webhook-Delivery for receiver dedup
        config_id: Source configuration
        event_type: e.g. "order.created"
        url: Target endpoint
        body: Serialized JSON payload (signed as-is)
        headers: Content type, event, timestamp and signature headers
        timeout_seconds: Bound for a single attempt
        retry_enabled: Whether failed attempts are retried
        max_retries: Additional attempts after the first
    """
    delivery_id: str
    config_id: str
    event_type: str
    url: str
    body: str
    headers: dict[str, str]
    timeout_seconds: float = 10.0
    retry_enabled: bool = True
    max_retries: int = 3

    @property
    def max_attempts(self) -> int:
        if not self.retry_enabled:
            return 1
        return 1 + max(self.max_retries, 0)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization (Celery payloads)."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WebhookDelivery":
        return cls(**data)


@dataclass
class DeliveryResult:
    """Outcome of one delivery after all attempts."""
    success: bool
    config_id: str
    event_type: str
    attempts: int
    status_code: Optional[int] = None
    error_message: Optional[str] = None
    response_time_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
