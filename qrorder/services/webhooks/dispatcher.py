"""
Webhook Dispatcher

Detached notification of tenant webhooks. Request handlers call
``dispatch()``, which only places a job on an in-process queue and returns;
a single worker task drains the queue, looks up the subscribed
configurations and starts one isolated delivery per configuration.

    handler --dispatch()--> asyncio.Queue --> worker --> delivery task (config A)
                                                     +-> delivery task (config B)

Nothing that happens after ``dispatch()`` returns can reach the handler:
lookup errors, HTTP failures and exhausted retries are logged here.

Delivery runs in-process (``WebhookBackend.INLINE``) or is handed to the
``deliver_webhook`` Celery task (``WebhookBackend.CELERY``).

Author: Khalil Bannouri
Version: 4.0.0
"""

import asyncio
import logging
from typing import Any, Callable, Optional

from qrorder.core.config import WebhookBackend
from qrorder.services.webhooks.base import WebhookDelivery, WebhookJob
from qrorder.services.webhooks.sender import WebhookSender
from qrorder.services.webhooks.signing import build_delivery, build_payload
from qrorder.store import open_store

logger = logging.getLogger(__name__)


class WebhookDispatcher:
    """
    Queue-fed webhook dispatcher.

    Args:
        store_factory: Returns an async context manager yielding a store
        sender: Async sender used by the inline backend
        backend: Inline asyncio delivery or Celery hand-off
        queue_size: Jobs held before new events are dropped (and logged)
        max_concurrent_deliveries: Bound on in-flight deliveries and Celery publishes
    """

    def __init__(
        self,
        store_factory: Callable[[], Any] = open_store,
        sender: Optional[WebhookSender] = None,
        backend: WebhookBackend = WebhookBackend.INLINE,
        queue_size: int = 1000,
        max_concurrent_deliveries: int = 20,
        user_agent: str = "qrorder-webhooks",
    ):
        self.store_factory = store_factory
        self.sender = sender or WebhookSender()
        self.backend = backend
        self.user_agent = user_agent
        self._queue_size = queue_size
        self._max_concurrent = max_concurrent_deliveries
        self._queue: Optional[asyncio.Queue] = None
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._worker: Optional[asyncio.Task] = None
        self._inflight: set[asyncio.Task] = set()

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> None:
        """Start the worker task. Called from the application lifespan."""
        if self.is_running:
            return
        self._queue = asyncio.Queue(maxsize=self._queue_size)
        self._semaphore = asyncio.Semaphore(self._max_concurrent)
        self._worker = asyncio.create_task(self._run(), name="webhook-dispatcher")
        logger.info(f"WebhookDispatcher started (backend={self.backend.value})")

    async def stop(self, timeout: float = 10.0) -> None:
        """Drain pending work for up to ``timeout`` seconds, then cancel."""
        if self._worker is None:
            return
        try:
            await asyncio.wait_for(self.drain(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("WebhookDispatcher stop timed out; cancelling pending deliveries")

        self._worker.cancel()
        for task in list(self._inflight):
            task.cancel()
        await asyncio.gather(self._worker, *self._inflight, return_exceptions=True)
        self._worker = None
        self._inflight.clear()
        await self.sender.close()
        logger.info("WebhookDispatcher stopped")

    async def drain(self) -> None:
        """Wait until every queued job and in-flight delivery has finished."""
        if self._queue is not None:
            await self._queue.join()
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def dispatch(
        self,
        organization_id: str,
        event_type: str,
        resource_id: str,
        resource_payload: dict[str, Any],
        context: Optional[dict[str, Any]] = None,
    ) -> bool:
        """
        Enqueue an event for delivery. Never blocks, never raises.

        Returns:
            bool: True if the job was queued
        """
        job = WebhookJob(
            organization_id=organization_id,
            event_type=event_type,
            resource_id=resource_id,
            resource_payload=resource_payload,
            context=context or {},
        )

        if not self.is_running:
            logger.error(
                f"WebhookDispatcher not running; dropping {event_type} for {resource_id}"
            )
            return False

        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            logger.error(f"Webhook queue full; dropping {event_type} for {resource_id}")
            return False

        logger.debug(f"Webhook job queued: {event_type} for {resource_id}")
        return True

    # =========================================================================
    # WORKER
    # =========================================================================

    async def _run(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self._process(job)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(
                    f"Webhook job {job.event_type} for {job.resource_id} failed: {e}"
                )
            finally:
                self._queue.task_done()

    async def _process(self, job: WebhookJob) -> None:
        async with self.store_factory() as store:
            configs = await store.list_webhook_configs(job.organization_id, job.event_type)

        if not configs:
            logger.debug(
                f"No webhook subscribed to {job.event_type} "
                f"for organization {job.organization_id}"
            )
            return

        payload = build_payload(
            job.event_type,
            job.resource_id,
            job.resource_payload,
            job.context,
        )

        for config in configs:
            delivery = build_delivery(config, job.event_type, payload, self.user_agent)
            if self.backend == WebhookBackend.CELERY:
                task = asyncio.create_task(self._enqueue_celery(delivery))
            else:
                task = asyncio.create_task(self._deliver_inline(delivery))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)

    async def _deliver_inline(self, delivery: WebhookDelivery) -> None:
        async with self._semaphore:
            try:
                await self.sender.deliver(delivery)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(
                    f"Webhook delivery {delivery.delivery_id} "
                    f"(config {delivery.config_id}) crashed: {e}"
                )

    async def _enqueue_celery(self, delivery: WebhookDelivery) -> None:
        from qrorder.tasks import deliver_webhook

        # Publishing blocks while kombu connects to the broker
        async with self._semaphore:
            try:
                await asyncio.to_thread(deliver_webhook.delay, delivery.to_dict())
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    f"Could not enqueue webhook {delivery.config_id} "
                    f"({delivery.event_type}) on Celery: {e}"
                )
