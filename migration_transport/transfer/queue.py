"""Bounded priority work queue with an idle barrier."""

import asyncio
import heapq
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Set, Tuple

from migration_transport.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[Any]]

DEFAULT_CONCURRENCY = 5


@dataclass(frozen=True)
class QueueState:
    """Snapshot of the queue counters."""
    pending: int
    active: int
    concurrency: int

    @property
    def is_idle(self) -> bool:
        return self.pending == 0 and self.active == 0


@dataclass(order=True)
class _QueuedJob:
    sort_key: Tuple[int, int]
    job: Job = field(compare=False)
    label: str = field(compare=False, default="")


class BoundedWorkQueue:
    """
    Run coroutine jobs with at most ``concurrency`` in flight.

    Jobs are started by descending priority and, within one priority, in
    submission order. A job that raises is logged and forgotten; the queue
    never propagates job failures and never retries.
    """

    def __init__(self, concurrency: int = DEFAULT_CONCURRENCY):
        if concurrency < 1:
            raise ConfigurationError(f"Queue concurrency must be at least 1, got {concurrency}")

        self.concurrency = concurrency
        self._heap: List[_QueuedJob] = []
        self._sequence = itertools.count()
        self._active = 0
        self._running: Set[asyncio.Task] = set()
        self._idle = asyncio.Event()
        self._idle.set()
        self._stats = {'submitted': 0, 'completed': 0, 'failed': 0}

    @property
    def pending(self) -> int:
        return len(self._heap)

    @property
    def active(self) -> int:
        return self._active

    @property
    def is_idle(self) -> bool:
        return not self._heap and self._active == 0

    @property
    def state(self) -> QueueState:
        return QueueState(pending=self.pending, active=self.active, concurrency=self.concurrency)

    def get_stats(self) -> dict:
        """Counters of submitted, completed and failed jobs."""
        return dict(self._stats)

    def submit(self, job: Job, priority: int = 0, label: Optional[str] = None) -> None:
        """
        Enqueue a zero-argument coroutine function.

        Must be called from inside the running event loop. Returns at once;
        use :meth:`wait_idle` to wait for the queue to drain.
        """
        entry = _QueuedJob(
            sort_key=(-priority, next(self._sequence)),
            job=job,
            label=label or getattr(job, '__name__', 'job'),
        )
        heapq.heappush(self._heap, entry)
        self._stats['submitted'] += 1
        self._idle.clear()
        self._dispatch()

    def _dispatch(self) -> None:
        while self._heap and self._active < self.concurrency:
            entry = heapq.heappop(self._heap)
            self._active += 1
            task = asyncio.create_task(self._run(entry), name=entry.label)
            self._running.add(task)
            task.add_done_callback(self._running.discard)

    async def _run(self, entry: _QueuedJob) -> None:
        try:
            await entry.job()
        except Exception as e:
            self._stats['failed'] += 1
            logger.error(f"Queued job {entry.label} failed: {e}")
        else:
            self._stats['completed'] += 1
            logger.debug(
                f"Queued job {entry.label} finished (pending={self.pending} active={self._active - 1})"
            )
        finally:
            self._active -= 1
            self._dispatch()
            if self.is_idle:
                self._idle.set()

    async def wait_idle(self) -> None:
        """Return once no job is pending or running."""
        # Jobs may submit more jobs while we wait, so re-check after each wake-up.
        while not self.is_idle:
            await self._idle.wait()
