"""
Bounded-concurrency task queue.

Runs coroutine units on the event loop with at most ``concurrency`` units
in flight. Waiting units are started in FIFO order and every unit is
bounded by a hard timeout.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from translate_repo_ai.config import Settings

logger = logging.getLogger(__name__)

UnitFactory = Callable[[], Awaitable[Any]]
TimeoutHook = Callable[[], Awaitable[Any]]


@dataclass
class QueueStatus:
    """Snapshot of the queue."""

    size: int  # waiting, not started
    pending: int  # running
    is_paused: bool
    completed: int = 0
    failed: int = 0
    timed_out: int = 0


@dataclass
class _QueuedUnit:
    factory: UnitFactory
    name: str
    on_timeout: TimeoutHook | None = None


class TaskQueue:
    """
    FIFO scheduler of async units with a concurrency limit.

    Units are zero-argument callables returning an awaitable, so that a
    unit that is cleared before it starts never creates a coroutine.
    A unit that raises or times out is counted as failed; it never stops
    the queue and is never retried automatically.
    """

    def __init__(self, concurrency: int = 5, timeout: float = 1800.0):
        """
        Initialize task queue.

        Args:
            concurrency: Maximum number of units running at once.
            timeout: Hard timeout per unit in seconds.
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.concurrency = concurrency
        self.timeout = timeout

        self._waiting: deque[_QueuedUnit] = deque()
        self._running: set[asyncio.Task[None]] = set()
        self._paused = False
        self._idle = asyncio.Event()
        self._idle.set()

        self._completed = 0
        self._failed = 0
        self._timed_out = 0

    def submit(
        self,
        unit: UnitFactory,
        *,
        name: str | None = None,
        on_timeout: TimeoutHook | None = None,
    ) -> None:
        """
        Add a unit to the queue and return immediately.

        Must be called from within the running event loop.

        Args:
            unit: Callable producing the awaitable to run.
            name: Label used in logs.
            on_timeout: Awaited after the unit is cancelled by the timeout.
        """
        queued = _QueuedUnit(
            factory=unit,
            name=name or getattr(unit, "__name__", "unit"),
            on_timeout=on_timeout,
        )
        self._waiting.append(queued)
        self._idle.clear()
        logger.debug("Queued %s (waiting: %d)", queued.name, len(self._waiting))
        self._dispatch()

    def pause(self) -> None:
        """Stop starting new units. Running units are not affected."""
        self._paused = True
        logger.info("Task queue paused")

    def resume(self) -> None:
        """Start waiting units again."""
        self._paused = False
        logger.info("Task queue resumed")
        self._dispatch()

    def clear(self) -> int:
        """
        Drop all waiting units. Running units are not affected.

        Returns:
            Number of units dropped.
        """
        dropped = len(self._waiting)
        self._waiting.clear()
        if dropped:
            logger.info("Dropped %d waiting unit(s)", dropped)
        self._check_idle()
        return dropped

    def status(self) -> QueueStatus:
        return QueueStatus(
            size=len(self._waiting),
            pending=len(self._running),
            is_paused=self._paused,
            completed=self._completed,
            failed=self._failed,
            timed_out=self._timed_out,
        )

    async def join(self) -> None:
        """
        Wait until no unit is running and none is waiting to start.

        Units left waiting in a paused queue do not block.
        """
        while self._running or (self._waiting and not self._paused):
            self._idle.clear()
            await self._idle.wait()

    async def shutdown(self) -> None:
        """Drop waiting units and cancel running ones."""
        self._waiting.clear()
        running = list(self._running)
        for task in running:
            task.cancel()
        if running:
            await asyncio.gather(*running, return_exceptions=True)
        self._check_idle()

    def _dispatch(self) -> None:
        while not self._paused and self._waiting and len(self._running) < self.concurrency:
            queued = self._waiting.popleft()
            task = asyncio.get_running_loop().create_task(self._run(queued), name=queued.name)
            self._running.add(task)
            task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task[None]) -> None:
        self._running.discard(task)
        self._dispatch()
        self._check_idle()

    def _check_idle(self) -> None:
        if not self._running and (not self._waiting or self._paused):
            self._idle.set()

    async def _run(self, queued: _QueuedUnit) -> None:
        try:
            await asyncio.wait_for(queued.factory(), timeout=self.timeout)
        except asyncio.TimeoutError:
            self._failed += 1
            self._timed_out += 1
            logger.error("%s timed out after %.0fs", queued.name, self.timeout)
            if queued.on_timeout is not None:
                try:
                    await queued.on_timeout()
                except Exception:
                    logger.exception("Timeout handler of %s failed", queued.name)
        except Exception:
            self._failed += 1
            logger.exception("%s failed", queued.name)
        else:
            self._completed += 1


_default_queue: TaskQueue | None = None


def get_task_queue(settings: Settings | None = None) -> TaskQueue:
    """
    Get the process-wide task queue, creating it on first use.

    Args:
        settings: Settings used for the concurrency and timeout of a new queue.
    """
    global _default_queue
    if _default_queue is None:
        settings = settings or Settings()
        _default_queue = TaskQueue(
            concurrency=settings.queue.concurrency,
            timeout=settings.queue.timeout_seconds,
        )
    return _default_queue
