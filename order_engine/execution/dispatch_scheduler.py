"""
Priority dispatch scheduler for order processing.

Order ids are admitted with a priority (higher first, FIFO among equals) or
with a delay, and a background dispatcher hands them to an ``IOrderProcessor``
from a bounded pool of worker tasks. A dispatch starts only when both the
concurrency cap and the rolling admission window allow it.

The scheduler owns the retry counter for every id through its
``DispatchRecord``. Transient and unexpected errors are retried with backoff
until the retry policy gives up, at which point the processor is asked to fail
the order. Permanent errors fail the order immediately.
"""

import asyncio
import heapq
import itertools
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Deque, Dict, List, Optional, Set, Tuple

from order_engine.core.exceptions import (
    OrderNotFoundError,
    PermanentOrderError,
    RetryBudgetExhaustedError,
    SchedulerClosedError,
)
from order_engine.core.logger import get_module_logger
from order_engine.execution.rate_limiter import AdmissionRateLimiter
from order_engine.execution.retry_policies import (
    IRetryPolicy,
    RetryPolicy,
    create_retry_policy,
)


class DispatchState(Enum):
    """Scheduler-side state of an admitted order id."""

    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


PENDING_STATES = (DispatchState.WAITING, DispatchState.DELAYED, DispatchState.ACTIVE)


@dataclass
class DispatchRecord:
    """
    Tracking entry for one admitted order id.

    Attributes:
        order_id: Identifier handed to the processor
        priority: Dequeue priority, higher first
        state: Current dispatch state
        attempts: Processing attempts started so far
        last_error: Message of the most recent failure
        enqueued_at: Wall-clock admission time
        eligible_at: Monotonic time at which a delayed record becomes ready
        finished_at: Wall-clock time of completion or failure
        sequence: Admission sequence, breaks priority ties FIFO
    """

    order_id: str
    priority: int = 0
    state: DispatchState = DispatchState.WAITING
    attempts: int = 0
    last_error: Optional[str] = None
    enqueued_at: float = field(default_factory=time.time)
    eligible_at: float = 0.0
    finished_at: Optional[float] = None
    sequence: int = 0


@dataclass
class SchedulerConfig:
    """
    Configuration for dispatch scheduling.

    Attributes:
        max_concurrent: Simultaneous dispatches allowed
        max_starts_per_window: Dispatch starts allowed per rolling window
        window_seconds: Length of the rolling admission window
        keep_completed: Completed records retained for inspection
        keep_failed: Failed records retained for inspection
    """

    max_concurrent: int = 10
    max_starts_per_window: int = 100
    window_seconds: float = 60.0
    keep_completed: int = 100
    keep_failed: int = 50

    def __post_init__(self) -> None:
        if self.max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        if self.max_starts_per_window < 1:
            raise ValueError("max_starts_per_window must be at least 1")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        if self.keep_completed < 0 or self.keep_failed < 0:
            raise ValueError("retention limits must be non-negative")


class IOrderProcessor(ABC):
    """Work performed for each dispatched order id."""

    @abstractmethod
    async def process(self, order_id: str) -> None:
        """Run one processing attempt; raise to signal failure."""

    @abstractmethod
    async def fail(self, order_id: str, message: str) -> None:
        """Move the order to its terminal failed state."""


class DispatchScheduler:
    """Bounded-concurrency priority scheduler with retry and backoff."""

    def __init__(
        self,
        processor: IOrderProcessor,
        config: Optional[SchedulerConfig] = None,
        retry_policy: Optional[IRetryPolicy] = None,
        rate_limiter: Optional[AdmissionRateLimiter] = None,
    ) -> None:
        """
        Initialize scheduler.

        Args:
            processor: Receives every dispatched order id
            config: Concurrency, admission and retention settings
            retry_policy: Decides retries and backoff delays
            rate_limiter: Admission limiter, built from ``config`` when omitted
        """
        self._processor = processor
        self._config = config or SchedulerConfig()
        self._retry_policy = retry_policy or RetryPolicy()
        self._rate_limiter = rate_limiter or AdmissionRateLimiter(
            self._config.max_starts_per_window, self._config.window_seconds
        )
        self._logger = get_module_logger("dispatch_scheduler")

        self._records: Dict[str, DispatchRecord] = {}
        self._ready: List[Tuple[int, int, str]] = []
        self._delayed: List[Tuple[float, int, str]] = []
        self._sequence = itertools.count()
        self._completed: Deque[str] = deque()
        self._failed: Deque[str] = deque()

        self._semaphore = asyncio.Semaphore(self._config.max_concurrent)
        self._wakeup = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()
        self._active_tasks: Set[asyncio.Task] = set()
        self._loop_task: Optional[asyncio.Task] = None

        self._paused = False
        self._closed = False

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def is_closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Start the background dispatcher loop."""
        if self._closed:
            raise SchedulerClosedError("Scheduler has been shut down")
        if self.is_running:
            self._logger.warning("Dispatch scheduler already running")
            return

        self._loop_task = asyncio.get_running_loop().create_task(self._run())
        self._logger.info(
            f"Started dispatch scheduler (concurrency {self._config.max_concurrent}, "
            f"{self._config.max_starts_per_window} starts per "
            f"{self._config.window_seconds:g}s)"
        )

    def enqueue(self, order_id: str, priority: int = 0) -> bool:
        """
        Admit an order id for immediate dispatch.

        Returns:
            bool: False if the id is already waiting, delayed or active

        Raises:
            SchedulerClosedError: After shutdown
        """
        record = self._admit(order_id, priority)
        if record is None:
            return False

        self._push_ready(record)
        self._logger.debug(f"Enqueued order {order_id} with priority {priority}")
        return True

    def enqueue_delayed(self, order_id: str, delay_ms: float, priority: int = 0) -> bool:
        """
        Admit an order id that becomes eligible after ``delay_ms`` milliseconds.

        Returns:
            bool: False if the id is already waiting, delayed or active

        Raises:
            SchedulerClosedError: After shutdown
        """
        record = self._admit(order_id, priority)
        if record is None:
            return False

        self._push_delayed(record, max(0.0, delay_ms) / 1000.0)
        self._logger.debug(
            f"Enqueued order {order_id} with priority {priority} delayed {delay_ms:.0f}ms"
        )
        return True

    def stats(self) -> Dict[str, int]:
        """Snapshot of record counts per dispatch state."""
        counts = {state: 0 for state in PENDING_STATES}
        for record in self._records.values():
            if record.state in counts:
                counts[record.state] += 1

        return {
            "waiting": counts[DispatchState.WAITING],
            "active": counts[DispatchState.ACTIVE],
            "completed": len(self._completed),
            "failed": len(self._failed),
            "delayed": counts[DispatchState.DELAYED],
        }

    def pause(self) -> None:
        """Stop starting new dispatches; active ones run to completion."""
        self._paused = True
        self._logger.info("Dispatch scheduler paused")

    def resume(self) -> None:
        self._paused = False
        self._wakeup.set()
        self._logger.info("Dispatch scheduler resumed")

    def clear(self) -> int:
        """
        Drop every waiting and delayed record.

        Returns:
            int: Number of records removed
        """
        removed = [
            order_id
            for order_id, record in self._records.items()
            if record.state in (DispatchState.WAITING, DispatchState.DELAYED)
        ]
        for order_id in removed:
            del self._records[order_id]

        self._ready.clear()
        self._delayed.clear()
        self._update_idle()

        if removed:
            self._logger.info(f"Cleared {len(removed)} queued orders")
        return len(removed)

    async def wait_until_idle(self, timeout: Optional[float] = None) -> None:
        """
        Wait until nothing is waiting, delayed or active.

        Raises:
            asyncio.TimeoutError: If ``timeout`` elapses first
        """
        await asyncio.wait_for(self._idle.wait(), timeout)

    def get_record(self, order_id: str) -> Optional[DispatchRecord]:
        """Return a copy of the dispatch record for ``order_id``."""
        record = self._records.get(order_id)
        return replace(record) if record else None

    async def shutdown(self) -> None:
        """Stop admitting, drain active dispatches and stop the loop."""
        if self._closed:
            return
        self._closed = True

        if self._loop_task and not self._loop_task.done():
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass

        if self._active_tasks:
            self._logger.info(
                f"Waiting for {len(self._active_tasks)} active dispatches to finish"
            )
            await asyncio.gather(*self._active_tasks, return_exceptions=True)

        self._logger.info("Dispatch scheduler shut down")

    def _admit(self, order_id: str, priority: int) -> Optional[DispatchRecord]:
        if self._closed:
            raise SchedulerClosedError("Scheduler has been shut down", order_id)

        existing = self._records.get(order_id)
        if existing is not None:
            if existing.state in PENDING_STATES:
                self._logger.debug(
                    f"Ignoring enqueue of order {order_id}: already {existing.state.value}"
                )
                return None
            self._forget_finished(existing)

        record = DispatchRecord(order_id=order_id, priority=priority)
        self._records[order_id] = record
        self._idle.clear()
        return record

    def _forget_finished(self, record: DispatchRecord) -> None:
        retained = (
            self._completed
            if record.state == DispatchState.COMPLETED
            else self._failed
        )
        if record.order_id in retained:
            retained.remove(record.order_id)

    def _push_ready(self, record: DispatchRecord) -> None:
        record.state = DispatchState.WAITING
        record.sequence = next(self._sequence)
        heapq.heappush(self._ready, (-record.priority, record.sequence, record.order_id))
        self._wakeup.set()

    def _push_delayed(self, record: DispatchRecord, delay: float) -> None:
        record.state = DispatchState.DELAYED
        record.sequence = next(self._sequence)
        record.eligible_at = time.monotonic() + delay
        heapq.heappush(self._delayed, (record.eligible_at, record.sequence, record.order_id))
        self._wakeup.set()

    def _is_current(self, order_id: str, sequence: int, state: DispatchState) -> bool:
        # Heap entries are invalidated lazily by clear() and re-admission.
        record = self._records.get(order_id)
        return record is not None and record.sequence == sequence and record.state == state

    def _promote_due(self) -> None:
        now = time.monotonic()
        while self._delayed and self._delayed[0][0] <= now:
            _, sequence, order_id = heapq.heappop(self._delayed)
            if self._is_current(order_id, sequence, DispatchState.DELAYED):
                self._push_ready(self._records[order_id])

    def _has_ready(self) -> bool:
        while self._ready:
            _, sequence, order_id = self._ready[0]
            if self._is_current(order_id, sequence, DispatchState.WAITING):
                return True
            heapq.heappop(self._ready)
        return False

    def _pop_ready(self) -> Optional[DispatchRecord]:
        if not self._has_ready():
            return None
        _, _, order_id = heapq.heappop(self._ready)
        return self._records[order_id]

    def _time_until_next_delayed(self) -> Optional[float]:
        while self._delayed:
            eligible_at, sequence, order_id = self._delayed[0]
            if self._is_current(order_id, sequence, DispatchState.DELAYED):
                return max(0.0, eligible_at - time.monotonic())
            heapq.heappop(self._delayed)
        return None

    async def _run(self) -> None:
        """Dispatcher loop: promote due items, then start the best ready one."""
        while not self._closed:
            try:
                self._wakeup.clear()
                self._promote_due()

                if self._paused or not self._has_ready():
                    await self._wait_for_wakeup(self._time_until_next_delayed())
                    continue

                await self._semaphore.acquire()
                try:
                    await self._rate_limiter.acquire()
                except asyncio.CancelledError:
                    self._semaphore.release()
                    raise

                self._promote_due()
                record = None if self._paused else self._pop_ready()
                if record is None:
                    self._semaphore.release()
                    continue

                self._start_dispatch(record)

            except asyncio.CancelledError:
                break
            except Exception as e:
                self._logger.error(f"Error in dispatch loop: {e}")
                await asyncio.sleep(1.0)

    async def _wait_for_wakeup(self, timeout: Optional[float]) -> None:
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout)
        except asyncio.TimeoutError:
            pass

    def _start_dispatch(self, record: DispatchRecord) -> None:
        record.state = DispatchState.ACTIVE
        record.attempts += 1
        self._logger.debug(
            f"Dispatching order {record.order_id} (attempt {record.attempts})"
        )

        task = asyncio.get_running_loop().create_task(self._dispatch(record))
        self._active_tasks.add(task)
        task.add_done_callback(self._active_tasks.discard)

    async def _dispatch(self, record: DispatchRecord) -> None:
        order_id = record.order_id
        try:
            await self._processor.process(order_id)
        except OrderNotFoundError as e:
            self._logger.error(f"Dispatch failed for order {order_id}: {e}")
            self._finish(record, DispatchState.FAILED, str(e))
        except PermanentOrderError as e:
            self._logger.error(f"Order {order_id} failed permanently: {e}")
            await self._fail_order(order_id, e.message)
            self._finish(record, DispatchState.FAILED, e.message)
        except Exception as e:
            await self._handle_retryable(record, e)
        else:
            self._finish(record, DispatchState.COMPLETED)
        finally:
            self._semaphore.release()
            self._wakeup.set()

    async def _handle_retryable(self, record: DispatchRecord, error: Exception) -> None:
        record.last_error = str(error)

        if self._retry_policy.should_retry(record.attempts, error):
            delay = self._retry_policy.calculate_delay(record.attempts)
            self._logger.warning(
                f"Order {record.order_id} attempt {record.attempts} failed: {error}; "
                f"retrying in {delay:.2f}s"
            )
            self._push_delayed(record, delay)
            return

        exhausted = RetryBudgetExhaustedError(record.order_id, record.attempts, error)
        self._logger.error(
            f"Order {record.order_id} failed after {record.attempts} attempts: {error}"
        )
        await self._fail_order(record.order_id, exhausted.message)
        self._finish(record, DispatchState.FAILED, str(error))

    async def _fail_order(self, order_id: str, message: str) -> None:
        try:
            await self._processor.fail(order_id, message)
        except Exception as e:
            self._logger.error(f"Failed to mark order {order_id} as failed: {e}")

    def _finish(
        self, record: DispatchRecord, state: DispatchState, error: Optional[str] = None
    ) -> None:
        record.state = state
        record.finished_at = time.time()
        if error is not None:
            record.last_error = error

        if state == DispatchState.COMPLETED:
            self._retain(self._completed, record.order_id, self._config.keep_completed)
        else:
            self._retain(self._failed, record.order_id, self._config.keep_failed)
        self._update_idle()

    def _retain(self, retained: Deque[str], order_id: str, limit: int) -> None:
        retained.append(order_id)
        while len(retained) > limit:
            evicted = retained.popleft()
            record = self._records.get(evicted)
            if record is not None and record.state not in PENDING_STATES:
                del self._records[evicted]

    def _update_idle(self) -> None:
        if any(record.state in PENDING_STATES for record in self._records.values()):
            self._idle.clear()
        else:
            self._idle.set()


def create_dispatch_scheduler(
    processor: IOrderProcessor,
    max_concurrent: int = 10,
    orders_per_minute: int = 100,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    strategy: str = "exponential",
) -> DispatchScheduler:
    """
    Factory function to create a dispatch scheduler.

    Args:
        processor: Order processor receiving dispatches
        max_concurrent: Simultaneous dispatches allowed
        orders_per_minute: Dispatch starts allowed per rolling minute
        max_attempts: Total processing attempts per order
        base_delay: Base backoff delay in seconds
        strategy: Backoff strategy name

    Returns:
        DispatchScheduler: Configured scheduler (not yet started)
    """
    config = SchedulerConfig(
        max_concurrent=max_concurrent, max_starts_per_window=orders_per_minute
    )
    policy = create_retry_policy(max_attempts, base_delay, strategy)
    return DispatchScheduler(processor, config, policy)
