"""Integration tests for the per-kind WorkQueue.

Tests cover: processing, deduplication of waiting and in-flight requests,
delayed adds keeping the earliest timer, requeue handling, timeouts and
unexpected errors turning into jittered retries.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta

from kubevigil.controllers.queue import WorkQueue, jittered_delay
from kubevigil.models.requests import DONE, ReconcileRequest, ReconcileResult

_REQ = ReconcileRequest("default", "db")

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _Recorder:
    """Reconcile function that records calls and returns a preset result."""

    def __init__(self, result: ReconcileResult = DONE, delay: float = 0.0) -> None:
        self.calls: list[ReconcileRequest] = []
        self.result = result
        self.delay = delay
        self.active = 0
        self.max_active = 0

    async def __call__(self, request: ReconcileRequest) -> ReconcileResult:
        self.calls.append(request)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            return self.result
        finally:
            self.active -= 1


# ---------------------------------------------------------------------------
# Processing and deduplication
# ---------------------------------------------------------------------------


class TestProcessing:
    async def test_added_request_is_reconciled(self) -> None:
        recorder = _Recorder()
        queue = WorkQueue("Secret", recorder)
        await queue.start()
        try:
            queue.add(_REQ)
            await asyncio.wait_for(queue.join(), timeout=5.0)
            assert recorder.calls == [_REQ]
        finally:
            await queue.stop()

    async def test_waiting_duplicate_is_collapsed(self) -> None:
        """Adding the same request twice before a worker picks it up reconciles it once."""
        recorder = _Recorder()
        queue = WorkQueue("Secret", recorder)
        queue.add(_REQ)
        queue.add(_REQ)
        assert len(queue) == 1
        await queue.start()
        try:
            await asyncio.wait_for(queue.join(), timeout=5.0)
            assert recorder.calls == [_REQ]
        finally:
            await queue.stop()

    async def test_in_flight_request_is_not_processed_concurrently(self) -> None:
        recorder = _Recorder(delay=0.05)
        queue = WorkQueue("Secret", recorder, workers=4)
        await queue.start()
        try:
            queue.add(_REQ)
            await asyncio.sleep(0.01)
            queue.add(_REQ)
            await asyncio.sleep(0.2)
            await asyncio.wait_for(queue.join(), timeout=5.0)
            assert recorder.max_active == 1
            assert recorder.calls == [_REQ, _REQ]
        finally:
            await queue.stop()

    async def test_distinct_requests_use_several_workers(self) -> None:
        recorder = _Recorder(delay=0.05)
        queue = WorkQueue("Secret", recorder, workers=3)
        await queue.start()
        try:
            for i in range(3):
                queue.add(ReconcileRequest("default", f"s{i}"))
            await asyncio.wait_for(queue.join(), timeout=5.0)
            assert recorder.max_active == 3
        finally:
            await queue.stop()


# ---------------------------------------------------------------------------
# Delayed adds and requeues
# ---------------------------------------------------------------------------


class TestDelayedAdds:
    async def test_earliest_timer_wins(self) -> None:
        queue = WorkQueue("Secret", _Recorder())
        queue.add_after(_REQ, timedelta(seconds=30))
        queue.add_after(_REQ, timedelta(seconds=0.05))
        queue.add_after(_REQ, timedelta(seconds=60))
        assert queue.pending_timers == 1

        await asyncio.sleep(0.1)
        assert len(queue) == 1
        assert queue.pending_timers == 0
        await queue.stop()

    async def test_non_positive_delay_adds_immediately(self) -> None:
        queue = WorkQueue("Secret", _Recorder())
        queue.add_after(_REQ, timedelta(0))
        assert len(queue) == 1
        await queue.stop()

    async def test_requeue_after_schedules_timer(self) -> None:
        queue = WorkQueue("Secret", _Recorder(result=ReconcileResult.after(60)))
        await queue.start()
        try:
            queue.add(_REQ)
            await asyncio.wait_for(queue.join(), timeout=5.0)
            assert queue.pending_timers == 1
        finally:
            await queue.stop()
        assert queue.pending_timers == 0

    async def test_adds_after_stop_are_ignored(self) -> None:
        queue = WorkQueue("Secret", _Recorder())
        await queue.start()
        await queue.stop()
        queue.add(_REQ)
        queue.add_after(_REQ, timedelta(seconds=5))
        assert len(queue) == 0
        assert queue.pending_timers == 0


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:
    async def test_timeout_becomes_jittered_retry(self) -> None:
        recorder = _Recorder(delay=1.0)
        queue = WorkQueue("Secret", recorder, timeout_seconds=0.05, retry_min_seconds=10, retry_max_seconds=30)
        result = await queue._process(_REQ)
        assert result.requeue_after is not None
        assert timedelta(seconds=10) <= result.requeue_after <= timedelta(seconds=30)

    async def test_unexpected_error_becomes_jittered_retry(self) -> None:
        async def _boom(request: ReconcileRequest) -> ReconcileResult:
            raise RuntimeError("boom")

        queue = WorkQueue("Secret", _boom, retry_min_seconds=1, retry_max_seconds=2)
        result = await queue._process(_REQ)
        assert result.requeue_after in (timedelta(seconds=1), timedelta(seconds=2))

    def test_jittered_delay_bounds(self) -> None:
        delays = {jittered_delay(10, 30) for _ in range(500)}
        assert all(timedelta(seconds=10) <= d <= timedelta(seconds=30) for d in delays)
        assert all(d.total_seconds() == int(d.total_seconds()) for d in delays)
