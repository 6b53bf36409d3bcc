"""AdPulse — Request Scheduler for Meta API calls.

Every outbound Meta call runs through one process-wide scheduler which
enforces two limits at once:

  * at most `max_concurrent` calls in flight, and
  * once that limit has been reached, at least `min_interval_ms` between the
    start of one call and the next.

A fresh busy period may start up to `max_concurrent` calls back to back.
When the queue drains and nothing is running the burst allowance resets.
Tasks always start in submission order. Failures propagate to the caller
unchanged; the scheduler never retries.
"""

import asyncio
from collections import deque
from functools import lru_cache
from typing import Any, Awaitable, Callable, Deque, Optional, Set, Tuple, TypeVar

from adpulse.config import settings
from adpulse.core.logging import get_logger

logger = get_logger("meta.rate_limiter")

T = TypeVar("T")
Task = Callable[[], Awaitable[Any]]


class RequestScheduler:
    """FIFO concurrency + spacing governor for async tasks."""

    def __init__(self, max_concurrent: int = 2, min_interval_ms: int = 2000):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self.max_concurrent = max_concurrent
        self.min_interval = max(min_interval_ms, 0) / 1000.0
        self._queue: Deque[Tuple[Task, asyncio.Future]] = deque()
        self._running = 0
        self._last_start: Optional[float] = None
        self._saturated = False
        self._timer: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def running(self) -> int:
        return self._running

    @property
    def pending(self) -> int:
        return len(self._queue)

    def schedule(self, task: Callable[[], Awaitable[T]]) -> "asyncio.Future[T]":
        """Queue `task` and return a future resolving to its result."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        self._queue.append((task, future))
        self._dequeue()
        return future

    # ── Internals ──

    def _wait_remaining(self, now: float) -> float:
        """Seconds until the head task may start (0 when it may start now)."""
        if not self._saturated or self._last_start is None:
            return 0.0
        return max(self.min_interval - (now - self._last_start), 0.0)

    def _dequeue(self) -> None:
        loop = asyncio.get_running_loop()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        while self._queue and self._running < self.max_concurrent:
            wait = self._wait_remaining(loop.time())
            if wait > 0:
                self._timer = loop.call_later(wait, self._dequeue)
                return

            task, future = self._queue.popleft()
            if future.cancelled():
                continue
            self._running += 1
            self._last_start = loop.time()
            if self._running >= self.max_concurrent:
                self._saturated = True
            runner = loop.create_task(self._run(task, future))
            self._tasks.add(runner)
            runner.add_done_callback(self._tasks.discard)

    async def _run(self, task: Task, future: asyncio.Future) -> None:
        try:
            result = await task()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            if not future.cancelled():
                future.set_exception(exc)
        else:
            if not future.cancelled():
                future.set_result(result)
        finally:
            self._running -= 1
            if self._running == 0 and not self._queue:
                self._saturated = False
            self._dequeue()


@lru_cache
def get_request_scheduler() -> RequestScheduler:
    """The process-wide scheduler shared by every Meta caller."""
    logger.info(
        f"Request scheduler: max {settings.meta_max_concurrent} concurrent, "
        f"{settings.meta_min_interval_ms}ms between starts"
    )
    return RequestScheduler(
        max_concurrent=settings.meta_max_concurrent,
        min_interval_ms=settings.meta_min_interval_ms,
    )
