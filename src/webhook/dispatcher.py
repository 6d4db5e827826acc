"""Downstream execution of change events: bounded queue + worker pool.

Each TriggerEvent is handled on its own; a failing handler call affects
only that event. Arrival order across workers is not preserved.
"""

import asyncio
from typing import Any, Awaitable, Callable

import httpx

from src.config import WEBHOOK_QUEUE_MAX, WEBHOOK_WORKER_COUNT
from src.utils.logger import bind_context, clear_context, get_logger
from src.webhook.models import TriggerEvent

logger = get_logger("teams_transcripts.webhook.dispatcher")

EventHandler = Callable[[TriggerEvent], Awaitable[Any]]


async def log_event(event: TriggerEvent) -> None:
    """Default handler: record the event."""
    logger.info(
        "webhook.event.received",
        subscription_id=event.subscription_id,
        change_type=event.change_type,
        resource=event.resource,
        tenant_id=event.tenant_id,
    )


def make_forward_handler(forward_url: str, http_client: httpx.AsyncClient) -> EventHandler:
    """Handler that POSTs each event's JSON to ``forward_url``."""

    async def _forward(event: TriggerEvent) -> None:
        response = await http_client.post(forward_url, json=event.to_json())
        response.raise_for_status()
        logger.info(
            "webhook.event.forwarded",
            subscription_id=event.subscription_id,
            resource=event.resource,
            status_code=response.status_code,
        )

    return _forward


class EventDispatcher:
    """Runs ``handler`` once per event on a fixed pool of workers."""

    def __init__(
        self,
        handler: EventHandler = log_event,
        *,
        queue_max: int = WEBHOOK_QUEUE_MAX,
        worker_count: int = WEBHOOK_WORKER_COUNT,
    ):
        self._handler = handler
        self._queue_max = queue_max
        self._worker_count = max(1, min(worker_count, 64))
        self._queue: asyncio.Queue[TriggerEvent] | None = None
        self._workers: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def start(self) -> None:
        """Create the queue and workers. Must be called inside the running event loop."""
        if self._workers:
            return
        self._queue = asyncio.Queue(maxsize=self._queue_max)
        self._workers = [
            asyncio.create_task(self._worker(i)) for i in range(self._worker_count)
        ]
        logger.info(
            "webhook.dispatcher.started",
            queue_max=self._queue_max,
            worker_count=self._worker_count,
        )

    async def submit(self, events: list[TriggerEvent]) -> int:
        """Enqueue events; waits when the queue is full (backpressure)."""
        if self._queue is None:
            raise RuntimeError("EventDispatcher.start() has not been called")
        for event in events:
            await self._queue.put(event)
        if events:
            logger.info(
                "webhook.dispatcher.enqueued",
                enqueued=len(events),
                queue_size=self._queue.qsize(),
                queue_max=self._queue_max,
            )
        return len(events)

    async def join(self) -> None:
        """Wait until every enqueued event has been handled."""
        if self._queue is not None:
            await self._queue.join()

    async def _worker(self, worker_id: int) -> None:
        assert self._queue is not None
        logger.debug("webhook.worker.started", worker_id=worker_id)
        try:
            while True:
                event = await self._queue.get()
                try:
                    await self._run(event, worker_id)
                finally:
                    self._queue.task_done()
        except asyncio.CancelledError:
            logger.debug("webhook.worker.stopped", worker_id=worker_id)
            raise

    async def _run(self, event: TriggerEvent, worker_id: int) -> None:
        bind_context(subscription_id=event.subscription_id, worker_id=worker_id)
        try:
            await self._handler(event)
        except Exception as e:
            logger.exception(
                "webhook.event.handler_error",
                resource=event.resource,
                error=str(e),
            )
        finally:
            clear_context()

    async def stop(self, timeout: float = 10.0) -> None:
        """Cancel workers and wait for them to finish."""
        workers, self._workers = self._workers, []
        for task in workers:
            task.cancel()
        if not workers:
            return
        try:
            await asyncio.wait_for(
                asyncio.gather(*workers, return_exceptions=True),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "webhook.dispatcher.shutdown_timeout",
                timeout=timeout,
                pending=sum(1 for t in workers if not t.done()),
            )
