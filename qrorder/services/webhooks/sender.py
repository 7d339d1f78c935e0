"""
Webhook HTTP Sender

Performs deliveries with httpx. ``WebhookSender`` is the asyncio sender used
by the inline backend and the test endpoint; ``post_delivery_sync`` is the
single-attempt primitive used by the Celery task, which retries through
Celery itself.

Author: Khalil Bannouri
Version: 4.0.0
"""

import asyncio
import logging
import time
from typing import Optional

import httpx

from qrorder.core.exceptions import DeliveryFailure
from qrorder.services.webhooks.base import DeliveryResult, WebhookDelivery
from qrorder.services.webhooks.signing import compute_backoff

logger = logging.getLogger(__name__)


def _attempt_error(response: Optional[httpx.Response], error: Optional[Exception]) -> str:
    if error is not None:
        return f"{type(error).__name__}: {error}" if str(error) else type(error).__name__
    return f"HTTP {response.status_code}"


def post_delivery_sync(
    delivery: WebhookDelivery,
    client: Optional[httpx.Client] = None,
) -> tuple[Optional[int], Optional[str]]:
    """
    One blocking delivery attempt.

    Returns:
        (status_code, error) where error is None on a 2xx response
    """
    owns_client = client is None
    client = client or httpx.Client()
    try:
        response = client.post(
            delivery.url,
            content=delivery.body.encode(),
            headers=delivery.headers,
            timeout=delivery.timeout_seconds,
        )
    except httpx.HTTPError as e:
        return None, _attempt_error(None, e)
    finally:
        if owns_client:
            client.close()

    if response.is_success:
        return response.status_code, None
    return response.status_code, _attempt_error(response, None)


class WebhookSender:
    """
    Async webhook sender with per-attempt timeout and backoff retries.

    Example:
        >>> sender = WebhookSender(backoff_base=2.0, backoff_max=300.0)
        >>> result = await sender.deliver(delivery)
        >>> result.success
        True
    """

    def __init__(
        self,
        backoff_base: float = 2.0,
        backoff_max: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                transport=self._transport,
                limits=httpx.Limits(max_connections=50, max_keepalive_connections=10),
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def send_once(
        self,
        delivery: WebhookDelivery,
    ) -> tuple[Optional[int], Optional[str]]:
        """One attempt, bounded by the delivery's timeout."""
        client = self._get_client()
        try:
            response = await asyncio.wait_for(
                client.post(
                    delivery.url,
                    content=delivery.body.encode(),
                    headers=delivery.headers,
                    timeout=delivery.timeout_seconds,
                ),
                timeout=delivery.timeout_seconds,
            )
        except asyncio.TimeoutError:
            return None, f"Timed out after {delivery.timeout_seconds}s"
        except httpx.HTTPError as e:
            return None, _attempt_error(None, e)

        if response.is_success:
            return response.status_code, None
        return response.status_code, _attempt_error(response, None)

    async def deliver(self, delivery: WebhookDelivery) -> DeliveryResult:
        """
        Deliver with retries.

        Retries network errors, timeouts and non-2xx responses up to
        ``delivery.max_retries`` extra times when retries are enabled,
        sleeping an exponential, jittered backoff between attempts.
        Never raises; the outcome is logged and returned.
        """
        start = time.monotonic()
        status_code: Optional[int] = None
        error: Optional[str] = None
        attempts = 0

        for attempt in range(delivery.max_attempts):
            if attempt > 0:
                delay = compute_backoff(attempt - 1, self.backoff_base, self.backoff_max)
                logger.info(
                    f"Retrying webhook {delivery.config_id} ({delivery.event_type}) "
                    f"in {delay:.1f}s - attempt {attempt + 1}/{delivery.max_attempts}"
                )
                await asyncio.sleep(delay)

            attempts += 1
            status_code, error = await self.send_once(delivery)
            if error is None:
                break

            logger.warning(
                f"Webhook {delivery.config_id} ({delivery.event_type}) "
                f"attempt {attempts} failed: {error}"
            )

        elapsed_ms = round((time.monotonic() - start) * 1000, 1)
        result = DeliveryResult(
            success=error is None,
            config_id=delivery.config_id,
            event_type=delivery.event_type,
            attempts=attempts,
            status_code=status_code,
            error_message=error,
            response_time_ms=elapsed_ms,
        )

        if result.success:
            logger.info(
                f"Webhook delivered: config={delivery.config_id} "
                f"event={delivery.event_type} status={status_code} "
                f"attempts={attempts} ({elapsed_ms}ms)"
            )
        else:
            failure = DeliveryFailure(delivery.config_id, delivery.event_type, attempts, error)
            logger.error(f"Webhook delivery failed: {failure}")

        return result
