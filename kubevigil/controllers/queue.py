"""Per-kind reconcile work queue.

Semantics follow the usual controller work queue:

* a request that is already waiting is not queued twice (dirty set);
* a request that is being processed is not handed to a second worker; if
  it is added again meanwhile it is re-queued once processing finishes;
* ``add_after`` schedules a delayed add, keeping only the earliest timer;
* the worker honours ``ReconcileResult.requeue_after`` and bounds every
  reconcile with a timeout.
"""

from __future__ import annotations

import asyncio
import random
import time
from collections.abc import Awaitable, Callable
from datetime import timedelta

from kubevigil.models.requests import ReconcileRequest, ReconcileResult
from kubevigil.observability.logging import get_logger
from kubevigil.observability.metrics import reconcile_duration_seconds, reconcile_total

ReconcileFn = Callable[[ReconcileRequest], Awaitable[ReconcileResult]]

_logger = get_logger("controllers.queue")


def jittered_delay(min_seconds: int, max_seconds: int) -> timedelta:
    """Uniformly random whole-second delay in ``[min_seconds, max_seconds]``."""
    return timedelta(seconds=random.randint(min_seconds, max_seconds))


class WorkQueue:
    """Deduplicating asyncio work queue with a fixed worker pool.

    Args:
        kind:              Watched kind this queue serves (metrics label).
        reconcile_fn:      Coroutine function processing one request.
        workers:           Number of concurrent workers.
        timeout_seconds:   Per-reconcile deadline.
        retry_min_seconds: Lower bound of the retry delay after a failure.
        retry_max_seconds: Upper bound of the retry delay after a failure.
    """

    def __init__(
        self,
        kind: str,
        reconcile_fn: ReconcileFn,
        workers: int = 2,
        timeout_seconds: float = 60.0,
        retry_min_seconds: int = 10,
        retry_max_seconds: int = 30,
    ) -> None:
        self.kind = kind
        self._reconcile_fn = reconcile_fn
        self._workers = max(1, workers)
        self._timeout = timeout_seconds
        self._retry_min = retry_min_seconds
        self._retry_max = retry_max_seconds

        self._queue: asyncio.Queue[ReconcileRequest] = asyncio.Queue()
        self._dirty: set[ReconcileRequest] = set()
        self._processing: set[ReconcileRequest] = set()
        self._timers: dict[ReconcileRequest, tuple[float, asyncio.TimerHandle]] = {}
        self._tasks: list[asyncio.Task[None]] = []
        self._shutting_down = False

    # ------------------------------------------------------------------
    # Producer API
    # ------------------------------------------------------------------

    def add(self, request: ReconcileRequest) -> None:
        if self._shutting_down or request in self._dirty:
            return
        self._dirty.add(request)
        if request in self._processing:
            return
        self._queue.put_nowait(request)

    def add_after(self, request: ReconcileRequest, delay: timedelta) -> None:
        seconds = delay.total_seconds()
        if seconds <= 0:
            self.add(request)
            return
        if self._shutting_down:
            return
        loop = asyncio.get_running_loop()
        due = loop.time() + seconds
        existing = self._timers.get(request)
        if existing is not None:
            if existing[0] <= due:
                return
            existing[1].cancel()
        handle = loop.call_later(seconds, self._fire_timer, request)
        self._timers[request] = (due, handle)

    def _fire_timer(self, request: ReconcileRequest) -> None:
        self._timers.pop(request, None)
        self.add(request)

    def __len__(self) -> int:
        return self._queue.qsize()

    @property
    def pending_timers(self) -> int:
        return len(self._timers)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        self._shutting_down = False
        for i in range(self._workers):
            task = asyncio.create_task(self._worker(), name=f"queue-{self.kind}-{i}")
            self._tasks.append(task)
        _logger.info("work_queue_started", kind=self.kind, workers=self._workers)

    async def stop(self) -> None:
        self._shutting_down = True
        for _, handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        _logger.info("work_queue_stopped", kind=self.kind)

    async def join(self) -> None:
        """Wait until every queued request has been processed."""
        await self._queue.join()

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    async def _worker(self) -> None:
        while True:
            request = await self._queue.get()
            self._dirty.discard(request)
            self._processing.add(request)
            try:
                result = await self._process(request)
                if result.requeue_after is not None:
                    self.add_after(request, result.requeue_after)
            finally:
                self._processing.discard(request)
                if request in self._dirty:
                    self._queue.put_nowait(request)
                self._queue.task_done()

    async def _process(self, request: ReconcileRequest) -> ReconcileResult:
        started = time.monotonic()
        outcome = "success"
        try:
            async with asyncio.timeout(self._timeout):
                result = await self._reconcile_fn(request)
            if result.requeue_after is not None:
                outcome = "requeue"
            return result
        except TimeoutError:
            outcome = "timeout"
            _logger.warning("reconcile_timed_out", kind=self.kind, request=str(request), timeout=self._timeout)
            return ReconcileResult(requeue_after=jittered_delay(self._retry_min, self._retry_max))
        except Exception as exc:  # noqa: BLE001
            outcome = "error"
            _logger.error(
                "reconcile_unexpected_error",
                kind=self.kind,
                request=str(request),
                error=str(exc),
                exc_info=True,
            )
            return ReconcileResult(requeue_after=jittered_delay(self._retry_min, self._retry_max))
        finally:
            reconcile_total.labels(kind=self.kind, result=outcome).inc()
            reconcile_duration_seconds.labels(kind=self.kind).observe(time.monotonic() - started)
