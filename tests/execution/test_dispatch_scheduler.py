"""
Unit tests for the priority dispatch scheduler.

Tests dispatch ordering, delayed admission, the concurrency cap, retry and
failure handling, re-admission, retention, and shutdown behaviour.
"""

import asyncio
from typing import Dict, List, Optional

import pytest

from order_engine.core.exceptions import (
    OrderNotFoundError,
    OrderValidationError,
    SchedulerClosedError,
    TargetPriceNotReachedError,
)
from order_engine.execution.dispatch_scheduler import (
    DispatchScheduler,
    DispatchState,
    IOrderProcessor,
    SchedulerConfig,
    create_dispatch_scheduler,
)
from order_engine.execution.rate_limiter import AdmissionRateLimiter
from order_engine.execution.retry_policies import create_retry_policy


class RecordingProcessor(IOrderProcessor):
    """Processor that records calls and raises scripted errors."""

    def __init__(self, work_time: float = 0.0) -> None:
        self.processed: List[str] = []
        self.failed: List[tuple] = []
        self.errors: Dict[str, List[Exception]] = {}
        self.work_time = work_time
        self.running = 0
        self.max_running = 0
        self.attempts_seen: List[int] = []
        self.scheduler: Optional[DispatchScheduler] = None

    async def process(self, order_id: str) -> None:
        self.processed.append(order_id)
        if self.scheduler is not None:
            self.attempts_seen.append(self.scheduler.get_record(order_id).attempts)

        self.running += 1
        self.max_running = max(self.max_running, self.running)
        try:
            if self.work_time:
                await asyncio.sleep(self.work_time)
            scripted = self.errors.get(order_id)
            if scripted:
                raise scripted.pop(0)
        finally:
            self.running -= 1

    async def fail(self, order_id: str, message: str) -> None:
        self.failed.append((order_id, message))


def make_scheduler(
    processor: IOrderProcessor,
    max_concurrent: int = 1,
    base_delay: float = 0.01,
    **config_overrides,
) -> DispatchScheduler:
    config = SchedulerConfig(max_concurrent=max_concurrent, **config_overrides)
    return DispatchScheduler(
        processor, config, retry_policy=create_retry_policy(3, base_delay)
    )


class TestSchedulerConfig:
    """Test cases for SchedulerConfig validation."""

    def test_defaults(self):
        config = SchedulerConfig()

        assert config.max_concurrent == 10
        assert config.max_starts_per_window == 100
        assert config.window_seconds == 60.0
        assert config.keep_completed == 100
        assert config.keep_failed == 50

    def test_invalid_values(self):
        with pytest.raises(ValueError):
            SchedulerConfig(max_concurrent=0)
        with pytest.raises(ValueError):
            SchedulerConfig(max_starts_per_window=0)
        with pytest.raises(ValueError):
            SchedulerConfig(keep_failed=-1)


class TestDispatchOrdering:
    """Dispatch order, delays and concurrency."""

    @pytest.mark.asyncio
    async def test_priority_then_fifo(self):
        processor = RecordingProcessor()
        scheduler = make_scheduler(processor)
        scheduler.pause()
        scheduler.start()
        try:
            for order_id, priority in [("a", 0), ("b", 10), ("c", 5), ("d", 10), ("e", 0)]:
                assert scheduler.enqueue(order_id, priority)
            await asyncio.sleep(0.02)
            assert processor.processed == []
            assert scheduler.stats()["waiting"] == 5

            scheduler.resume()
            await scheduler.wait_until_idle(timeout=2)

            assert processor.processed == ["b", "d", "c", "a", "e"]
        finally:
            await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_delayed_item_waits(self):
        processor = RecordingProcessor()
        scheduler = make_scheduler(processor)
        scheduler.start()
        try:
            scheduler.enqueue_delayed("late", delay_ms=80, priority=10)
            scheduler.enqueue("now")
            assert scheduler.stats()["delayed"] == 1

            await asyncio.sleep(0.03)
            assert processor.processed == ["now"]
            assert scheduler.get_record("late").state == DispatchState.DELAYED

            await scheduler.wait_until_idle(timeout=2)
            assert processor.processed == ["now", "late"]
        finally:
            await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_concurrency_cap(self):
        processor = RecordingProcessor(work_time=0.03)
        scheduler = make_scheduler(processor, max_concurrent=2)
        scheduler.start()
        try:
            for n in range(6):
                scheduler.enqueue(f"o-{n}")

            await asyncio.sleep(0.01)
            assert scheduler.stats()["active"] == 2

            await scheduler.wait_until_idle(timeout=2)
            assert processor.max_running == 2
            assert scheduler.stats()["completed"] == 6
        finally:
            await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_admission_window_limits_starts(self):
        processor = RecordingProcessor()
        scheduler = DispatchScheduler(
            processor,
            SchedulerConfig(max_concurrent=5),
            rate_limiter=AdmissionRateLimiter(max_starts=2, window_seconds=60.0),
        )
        scheduler.start()
        try:
            for n in range(3):
                scheduler.enqueue(f"o-{n}")
            await asyncio.sleep(0.05)

            assert processor.processed == ["o-0", "o-1"]
            assert scheduler.stats()["waiting"] == 1
        finally:
            await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_pause_stops_new_dispatches(self):
        processor = RecordingProcessor()
        scheduler = make_scheduler(processor)
        scheduler.start()
        try:
            scheduler.pause()
            assert scheduler.is_paused
            scheduler.enqueue("o-1")

            with pytest.raises(asyncio.TimeoutError):
                await scheduler.wait_until_idle(timeout=0.05)
            assert processor.processed == []

            scheduler.resume()
            await scheduler.wait_until_idle(timeout=2)
            assert processor.processed == ["o-1"]
        finally:
            await scheduler.shutdown()


class TestRetryHandling:
    """Retry, backoff and terminal failure handling."""

    @pytest.mark.asyncio
    async def test_transient_error_fails_after_three_attempts(self):
        processor = RecordingProcessor()
        processor.errors["o-1"] = [
            TargetPriceNotReachedError("o-1", 100.0, 105.0) for _ in range(5)
        ]
        scheduler = make_scheduler(processor)
        processor.scheduler = scheduler
        scheduler.start()
        try:
            scheduler.enqueue("o-1")
            await scheduler.wait_until_idle(timeout=2)

            assert processor.processed == ["o-1", "o-1", "o-1"]
            assert processor.attempts_seen == [1, 2, 3]
            assert processor.failed == [("o-1", "Maximum retry attempts exceeded")]

            record = scheduler.get_record("o-1")
            assert record.state == DispatchState.FAILED
            assert record.attempts == 3
            assert record.last_error == "Target price not reached yet"
            assert scheduler.stats()["failed"] == 1
        finally:
            await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_unexpected_error_retried_then_succeeds(self):
        processor = RecordingProcessor()
        processor.errors["o-1"] = [RuntimeError("socket reset")]
        scheduler = make_scheduler(processor)
        scheduler.start()
        try:
            scheduler.enqueue("o-1")
            await scheduler.wait_until_idle(timeout=2)

            assert processor.processed == ["o-1", "o-1"]
            assert processor.failed == []
            assert scheduler.get_record("o-1").state == DispatchState.COMPLETED
            assert scheduler.stats()["completed"] == 1
        finally:
            await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_retry_waits_for_backoff(self):
        processor = RecordingProcessor()
        processor.errors["o-1"] = [RuntimeError("busy")]
        scheduler = make_scheduler(processor, base_delay=0.1)
        scheduler.start()
        try:
            scheduler.enqueue("o-1")
            await asyncio.sleep(0.03)

            assert processor.processed == ["o-1"]
            assert scheduler.stats()["delayed"] == 1

            await scheduler.wait_until_idle(timeout=2)
            assert processor.processed == ["o-1", "o-1"]
        finally:
            await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_permanent_error_not_retried(self):
        processor = RecordingProcessor()
        processor.errors["o-1"] = [OrderValidationError("Target price is required")]
        scheduler = make_scheduler(processor)
        scheduler.start()
        try:
            scheduler.enqueue("o-1")
            await scheduler.wait_until_idle(timeout=2)

            assert processor.processed == ["o-1"]
            assert processor.failed == [("o-1", "Target price is required")]
            assert scheduler.get_record("o-1").state == DispatchState.FAILED
        finally:
            await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_unknown_order_fails_dispatch_only(self):
        processor = RecordingProcessor()
        processor.errors["ghost"] = [OrderNotFoundError("ghost")]
        scheduler = make_scheduler(processor)
        scheduler.start()
        try:
            scheduler.enqueue("ghost")
            await scheduler.wait_until_idle(timeout=2)

            assert processor.failed == []
            record = scheduler.get_record("ghost")
            assert record.state == DispatchState.FAILED
            assert record.last_error == "Order ghost not found"
        finally:
            await scheduler.shutdown()


class TestAdmission:
    """Re-admission, clearing, retention and shutdown."""

    @pytest.mark.asyncio
    async def test_readmission_ignored_while_pending(self):
        processor = RecordingProcessor()
        scheduler = make_scheduler(processor)
        scheduler.pause()
        scheduler.start()
        try:
            assert scheduler.enqueue("o-1")
            assert not scheduler.enqueue("o-1", priority=10)
            assert not scheduler.enqueue_delayed("o-1", delay_ms=10)
            assert scheduler.stats()["waiting"] == 1

            scheduler.resume()
            await scheduler.wait_until_idle(timeout=2)
            assert processor.processed == ["o-1"]
        finally:
            await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_finished_id_can_be_readmitted(self):
        processor = RecordingProcessor()
        scheduler = make_scheduler(processor)
        processor.scheduler = scheduler
        scheduler.start()
        try:
            scheduler.enqueue("o-1")
            await scheduler.wait_until_idle(timeout=2)

            assert scheduler.enqueue("o-1")
            await scheduler.wait_until_idle(timeout=2)

            assert processor.attempts_seen == [1, 1]
            assert scheduler.stats()["completed"] == 1
        finally:
            await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_clear_drops_waiting_and_delayed(self):
        processor = RecordingProcessor()
        scheduler = make_scheduler(processor)
        scheduler.pause()
        scheduler.start()
        try:
            scheduler.enqueue("a")
            scheduler.enqueue("b")
            scheduler.enqueue_delayed("c", delay_ms=10)

            assert scheduler.clear() == 3
            assert scheduler.stats() == {
                "waiting": 0,
                "active": 0,
                "completed": 0,
                "failed": 0,
                "delayed": 0,
            }
            await scheduler.wait_until_idle(timeout=0.1)

            scheduler.resume()
            await asyncio.sleep(0.05)
            assert processor.processed == []
        finally:
            await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_retention_limits(self):
        processor = RecordingProcessor()
        for order_id in ("f-0", "f-1", "f-2"):
            processor.errors[order_id] = [OrderValidationError("bad")]
        scheduler = make_scheduler(processor, keep_completed=2, keep_failed=1)
        scheduler.start()
        try:
            for n in range(4):
                scheduler.enqueue(f"c-{n}")
            for n in range(3):
                scheduler.enqueue(f"f-{n}")
            await scheduler.wait_until_idle(timeout=2)

            stats = scheduler.stats()
            assert stats["completed"] == 2
            assert stats["failed"] == 1
            assert scheduler.get_record("c-0") is None
            assert scheduler.get_record("c-3").state == DispatchState.COMPLETED
            assert scheduler.get_record("f-2").state == DispatchState.FAILED
        finally:
            await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_get_record_returns_copy(self):
        scheduler = make_scheduler(RecordingProcessor())
        scheduler.enqueue("o-1", priority=3)

        record = scheduler.get_record("o-1")
        record.priority = 99

        assert scheduler.get_record("o-1").priority == 3
        assert scheduler.get_record("missing") is None
        await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_shutdown_drains_active_and_is_idempotent(self):
        processor = RecordingProcessor(work_time=0.05)
        scheduler = make_scheduler(processor)
        scheduler.start()
        scheduler.enqueue("o-1")
        await asyncio.sleep(0.01)

        await scheduler.shutdown()
        await scheduler.shutdown()

        assert scheduler.is_closed
        assert not scheduler.is_running
        assert scheduler.get_record("o-1").state == DispatchState.COMPLETED

    @pytest.mark.asyncio
    async def test_enqueue_after_shutdown_raises(self):
        scheduler = make_scheduler(RecordingProcessor())
        scheduler.start()
        await scheduler.shutdown()

        with pytest.raises(SchedulerClosedError):
            scheduler.enqueue("o-1")
        with pytest.raises(SchedulerClosedError):
            scheduler.enqueue_delayed("o-1", delay_ms=5)
        with pytest.raises(SchedulerClosedError):
            scheduler.start()


class TestCreateDispatchScheduler:
    """Test cases for create_dispatch_scheduler factory function."""

    @pytest.mark.asyncio
    async def test_factory_settings(self):
        processor = RecordingProcessor(work_time=0.02)
        scheduler = create_dispatch_scheduler(
            processor, max_concurrent=3, orders_per_minute=50, base_delay=0.01
        )
        scheduler.start()
        try:
            assert scheduler.is_running
            for n in range(5):
                scheduler.enqueue(f"o-{n}")
            await scheduler.wait_until_idle(timeout=2)

            assert processor.max_running == 3
        finally:
            await scheduler.shutdown()
