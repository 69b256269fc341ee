"""
Concurrency helpers for the sink's background work.

This module contains:
- ErrorAction: CONTINUE or STOP after a failed write within a flush
- InFlightTracker: counter with wait-until-zero semantics
- spawn_tracked: fire-and-forget task creation with tracked completion

Design:
- Async-first using asyncio primitives
- The tracker is mutated only from the event loop thread; worker threads
  started with ``asyncio.to_thread`` never touch it directly
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Coroutine, TypeVar

T = TypeVar("T")


class ErrorAction(str, Enum):
    CONTINUE = "continue"  # Keep writing the remaining messages of the batch
    STOP = "stop"  # Abandon the rest of the batch; stay alive for later ones


class InFlightTracker:
    """Counts outstanding units of work and lets callers wait for zero.

    Usage:
        tracker = InFlightTracker()
        tracker.add()
        ...
        tracker.done()
        await tracker.wait_idle()
    """

    def __init__(self) -> None:
        self._count = 0
        # Set whenever nothing is in flight
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def count(self) -> int:
        return self._count

    def add(self) -> None:
        self._count += 1
        self._idle.clear()

    def done(self) -> None:
        if self._count <= 0:
            raise RuntimeError("done() called more times than add()")
        self._count -= 1
        if self._count == 0:
            self._idle.set()

    async def wait_idle(self, timeout: float | None = None) -> bool:
        """Wait until no work is in flight.

        Returns False if ``timeout`` elapsed first. ``None`` waits forever.
        """
        if self._count == 0:
            return True
        if timeout is None:
            await self._idle.wait()
            return True
        try:
            await asyncio.wait_for(self._idle.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True


_background_tasks: set[asyncio.Task[Any]] = set()


def spawn_tracked(
    coro: Coroutine[Any, Any, T],
    tracker: InFlightTracker,
    *,
    name: str | None = None,
) -> asyncio.Task[T]:
    """Schedule ``coro`` as a background task counted by ``tracker``.

    The count is incremented before the task is created and decremented once
    it finishes, however it finishes. A strong reference is held until then so
    the task cannot be garbage collected mid-flight.
    """
    tracker.add()
    try:
        task = asyncio.create_task(coro, name=name)
    except Exception:
        tracker.done()
        coro.close()
        raise
    _background_tasks.add(task)

    def _on_done(t: asyncio.Task[Any]) -> None:
        _background_tasks.discard(t)
        tracker.done()

    task.add_done_callback(_on_done)
    return task
