"""Periodic poller for eligible notifications.

Each run lists every PENDING_SEND notification whose ``send_after`` has
passed and dispatches them concurrently. One failure never aborts the
batch. Overlapping runs, or several poller processes, are safe because each
dispatch begins with an atomic claim.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime

from herald.core.types import utcnow
from herald.notifications.engine import NotificationEngine
from herald.notifications.models import DispatchOutcome, DispatchResult

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    """Outcome of one poll run."""

    results: list[DispatchResult] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    def _count(self, outcome: DispatchOutcome) -> int:
        return sum(1 for r in self.results if r.outcome == outcome)

    @property
    def sent(self) -> int:
        return self._count(DispatchOutcome.SENT)

    @property
    def failed(self) -> int:
        return self._count(DispatchOutcome.FAILED)

    @property
    def skipped(self) -> int:
        return self._count(DispatchOutcome.SKIPPED)

    @property
    def total(self) -> int:
        return len(self.results) + len(self.errors)


class PendingNotificationPoller:
    """Drives ``engine.delayed_send`` for everything that is due.

    Args:
        engine: The notification engine.
        interval: Seconds between runs for ``run_forever``.
        max_concurrency: Upper bound on simultaneous dispatch attempts.
        timeout: Per-dispatch timeout forwarded to the engine.
    """

    def __init__(
        self,
        engine: NotificationEngine,
        interval: float = 300.0,
        max_concurrency: int = 10,
        timeout: float | None = None,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._engine = engine
        self._interval = interval
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._timeout = timeout
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self, now: datetime | None = None) -> BatchResult:
        now = now or utcnow()
        pending = await self._engine.get_pending_notifications(now)
        batch = BatchResult()
        if not pending:
            logger.debug("No pending notifications")
            return batch

        logger.info("Dispatching %d pending notifications", len(pending))
        ids = [n.id for n in pending]
        outcomes = await asyncio.gather(
            *(self._dispatch_one(nid) for nid in ids), return_exceptions=True
        )
        for nid, outcome in zip(ids, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning("Dispatch of notification %s raised: %s", nid, outcome)
                batch.errors[nid] = f"{type(outcome).__name__}: {outcome}"
            else:
                batch.results.append(outcome)

        logger.info(
            "Poll run complete: %d sent, %d failed, %d skipped, %d errors",
            batch.sent, batch.failed, batch.skipped, len(batch.errors),
        )
        return batch

    async def _dispatch_one(self, notification_id: str) -> DispatchResult:
        async with self._semaphore:
            return await self._engine.delayed_send(notification_id, timeout=self._timeout)

    async def run_forever(self) -> None:
        self._stopping.clear()
        while not self._stopping.is_set():
            try:
                await self.run_once()
            except Exception:
                logger.exception("Poll run failed")
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self.run_forever(), name="herald-poller")
        logger.info("Poller started (interval=%ss)", self._interval)

    def stop(self) -> None:
        self._stopping.set()

    async def close(self) -> None:
        self.stop()
        if self._task is not None:
            await self._task
            self._task = None
        logger.info("Poller stopped")
