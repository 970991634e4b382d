"""
Bounded task queue tests: concurrency limit, FIFO order, timeouts, pause/clear
"""

import asyncio

import pytest

from translate_repo_ai import queue as queue_module
from translate_repo_ai.config import Settings
from translate_repo_ai.queue import TaskQueue, get_task_queue


class Tracker:
    def __init__(self):
        self.running = 0
        self.max_running = 0
        self.started: list[int] = []

    def unit(self, index: int, duration: float = 0.01):
        async def run():
            self.started.append(index)
            self.running += 1
            self.max_running = max(self.max_running, self.running)
            try:
                await asyncio.sleep(duration)
            finally:
                self.running -= 1

        return run


@pytest.mark.asyncio
async def test_concurrency_is_bounded():
    queue = TaskQueue(concurrency=2, timeout=5.0)
    tracker = Tracker()

    for i in range(6):
        queue.submit(tracker.unit(i))
    assert queue.status().pending == 2
    assert queue.status().size == 4

    await queue.join()

    assert tracker.max_running == 2
    status = queue.status()
    assert (status.completed, status.failed, status.size, status.pending) == (6, 0, 0, 0)


@pytest.mark.asyncio
async def test_waiting_units_start_in_fifo_order():
    queue = TaskQueue(concurrency=1, timeout=5.0)
    tracker = Tracker()

    for i in range(5):
        queue.submit(tracker.unit(i, duration=0))
    await queue.join()

    assert tracker.started == [0, 1, 2, 3, 4]


@pytest.mark.asyncio
async def test_timeout_fails_unit_without_blocking_others():
    queue = TaskQueue(concurrency=1, timeout=0.05)
    tracker = Tracker()
    timed_out = []

    async def on_timeout():
        timed_out.append(True)

    queue.submit(tracker.unit(0, duration=5.0), name="slow", on_timeout=on_timeout)
    queue.submit(tracker.unit(1))
    await queue.join()

    status = queue.status()
    assert status.timed_out == 1
    assert status.failed == 1
    assert status.completed == 1
    assert timed_out == [True]
    assert tracker.started == [0, 1]


@pytest.mark.asyncio
async def test_failing_unit_does_not_stop_queue():
    queue = TaskQueue(concurrency=1, timeout=5.0)
    tracker = Tracker()

    async def boom():
        raise RuntimeError("boom")

    queue.submit(boom)
    queue.submit(tracker.unit(1))
    await queue.join()

    status = queue.status()
    assert status.failed == 1
    assert status.completed == 1
    assert status.timed_out == 0


@pytest.mark.asyncio
async def test_pause_and_resume():
    queue = TaskQueue(concurrency=2, timeout=5.0)
    tracker = Tracker()

    queue.pause()
    for i in range(3):
        queue.submit(tracker.unit(i))
    await asyncio.sleep(0.02)

    status = queue.status()
    assert status.is_paused
    assert (status.size, status.pending) == (3, 0)
    assert tracker.started == []

    # A paused queue with nothing running counts as idle
    await asyncio.wait_for(queue.join(), timeout=1.0)

    queue.resume()
    await queue.join()
    assert queue.status().completed == 3


@pytest.mark.asyncio
async def test_pause_does_not_affect_running_units():
    queue = TaskQueue(concurrency=1, timeout=5.0)
    tracker = Tracker()

    queue.submit(tracker.unit(0, duration=0.05))
    queue.submit(tracker.unit(1))
    await asyncio.sleep(0)
    queue.pause()
    await queue.join()

    assert tracker.started == [0]
    assert queue.status().completed == 1
    assert queue.status().size == 1


@pytest.mark.asyncio
async def test_clear_drops_only_waiting_units():
    queue = TaskQueue(concurrency=1, timeout=5.0)
    release = asyncio.Event()
    created = []

    async def blocker():
        await release.wait()

    def factory(index):
        async def run():
            created.append(index)

        return run

    queue.submit(blocker)
    queue.submit(factory(1))
    queue.submit(factory(2))
    await asyncio.sleep(0)

    assert queue.clear() == 2
    release.set()
    await queue.join()

    assert created == []
    assert queue.status().completed == 1


@pytest.mark.asyncio
async def test_shutdown_cancels_running_units():
    queue = TaskQueue(concurrency=1, timeout=5.0)
    tracker = Tracker()

    queue.submit(tracker.unit(0, duration=5.0))
    queue.submit(tracker.unit(1))
    await asyncio.sleep(0)
    await queue.shutdown()

    status = queue.status()
    assert (status.size, status.pending) == (0, 0)
    assert tracker.started == [0]


def test_concurrency_must_be_positive():
    with pytest.raises(ValueError):
        TaskQueue(concurrency=0)


def test_process_queue_is_created_once(monkeypatch):
    monkeypatch.setattr(queue_module, "_default_queue", None)
    settings = Settings(queue={"concurrency": 3, "timeout_seconds": 60})

    first = get_task_queue(settings)
    second = get_task_queue()

    assert first is second
    assert first.concurrency == 3
    assert first.timeout == 60
