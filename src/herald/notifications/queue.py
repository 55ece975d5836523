"""Queue services that trigger dispatch of individual notifications.

The engine only needs ``enqueue``. ``AsyncioQueueService`` is the
in-process implementation: a pool of worker tasks draining an
``asyncio.Queue``. A broker-backed service would implement the same
protocol.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

DispatchHandler = Callable[[str], Awaitable[Any]]


@runtime_checkable
class QueueService(Protocol):
    """Fire-and-forget trigger: "go dispatch this id".

    Delivery of the trigger is at-least-once; duplicates are absorbed by the
    dispatch claim.
    """

    async def enqueue(self, notification_id: str) -> None: ...


class AsyncioQueueService:
    """In-process queue backed by ``asyncio.Queue`` and worker tasks.

    Ids already waiting in the queue are not queued twice. A handler
    exception is logged and the worker moves on to the next id.
    """

    def __init__(self, workers: int = 2) -> None:
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self._worker_count = workers
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._queued: set[str] = set()
        self._tasks: list[asyncio.Task[None]] = []
        self._handler: DispatchHandler | None = None

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    @property
    def size(self) -> int:
        return self._queue.qsize()

    def start(self, handler: DispatchHandler) -> None:
        if self._tasks:
            return
        self._handler = handler
        self._tasks = [
            asyncio.create_task(self._worker(i), name=f"herald-queue-{i}")
            for i in range(self._worker_count)
        ]
        logger.info("Queue service started with %d workers", self._worker_count)

    async def enqueue(self, notification_id: str) -> None:
        if notification_id in self._queued:
            logger.debug("Notification %s already queued", notification_id)
            return
        self._queued.add(notification_id)
        await self._queue.put(notification_id)

    async def join(self) -> None:
        """Wait until every queued id has been handled."""
        await self._queue.join()

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Queue service stopped")

    async def _worker(self, index: int) -> None:
        while True:
            notification_id = await self._queue.get()
            self._queued.discard(notification_id)
            try:
                if self._handler is not None:
                    await self._handler(notification_id)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Queue worker %d failed on notification %s", index, notification_id)
            finally:
                self._queue.task_done()
