"""
Message batching for file sinks.

A :class:`MessageBatch` accumulates messages in memory and writes them to a
writer on :meth:`MessageBatch.flush`. The queued messages are swapped out
atomically at the start of a flush, so appends made while a flush is running
land in the next batch. Writes run in a worker thread; the per-failure
``on_error`` callback decides whether the rest of the batch is attempted.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Protocol, Sequence

from .concurrency import ErrorAction
from .serialization import Message, to_record

MessageFilter = Callable[[Message], bool]
ErrorHandler = Callable[[BaseException], ErrorAction]


class Writer(Protocol):
    def write(self, data: bytes) -> Any:  # pragma: no cover - structural protocol
        ...


@dataclass
class FlushResult:
    """Outcome of a single flush attempt."""

    written: int = 0
    bytes_written: int = 0
    filtered: int = 0
    dropped: int = 0
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _stop_on_error(_exc: BaseException) -> ErrorAction:
    return ErrorAction.STOP


class MessageBatch:
    """Bounded in-memory message buffer with asynchronous flushing."""

    def __init__(
        self,
        max_count: int,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_count <= 0:
            raise ValueError("max_count must be > 0")
        self._max_count = max_count
        self._clock = clock
        self._queued: list[Message] = []
        self._last_flush = clock()
        self._flush_lock = asyncio.Lock()
        self._in_flight = 0
        self._settled = asyncio.Event()
        self._settled.set()

    @property
    def max_count(self) -> int:
        return self._max_count

    @property
    def is_empty(self) -> bool:
        return not self._queued

    def __len__(self) -> int:
        return len(self._queued)

    def append(self, message: Message) -> bool:
        """Queue ``message``; returns False without queuing when full."""
        if len(self._queued) >= self._max_count:
            return False
        self._queued.append(message)
        return True

    def extend(self, messages: Iterable[Message]) -> int:
        """Queue as many of ``messages`` as fit; returns the number queued."""
        queued = 0
        for message in messages:
            if not self.append(message):
                break
            queued += 1
        return queued

    def reached_count(self, threshold: int) -> bool:
        return len(self._queued) >= threshold

    def reached_age(self, seconds: float) -> bool:
        """True when messages are queued and the last flush is ``seconds`` old."""
        if not self._queued:
            return False
        return (self._clock() - self._last_flush) >= seconds

    async def flush(
        self,
        writer: Writer,
        message_filter: MessageFilter | None = None,
        on_error: ErrorHandler | None = None,
    ) -> FlushResult:
        """Write all queued messages to ``writer``.

        ``message_filter`` returning False skips a message. ``on_error`` is
        called once per failing message (or failing final ``writer.flush()``)
        and defaults to stopping on the first error.
        """
        messages, self._queued = self._queued, []
        self._last_flush = self._clock()
        if not messages:
            return FlushResult()

        self._in_flight += 1
        self._settled.clear()
        try:
            async with self._flush_lock:
                return await asyncio.to_thread(
                    _write_all,
                    writer,
                    messages,
                    message_filter,
                    on_error or _stop_on_error,
                )
        finally:
            self._in_flight -= 1
            if self._in_flight == 0:
                self._settled.set()

    def flush_sync(
        self,
        writer: Writer,
        message_filter: MessageFilter | None = None,
        on_error: ErrorHandler | None = None,
    ) -> FlushResult:
        """Write queued messages on the calling thread, without an event loop.

        Only for last-chance draining at process exit. Messages already
        swapped out by a running :meth:`flush` are not touched.
        """
        messages, self._queued = self._queued, []
        self._last_flush = self._clock()
        if not messages:
            return FlushResult()
        return _write_all(writer, messages, message_filter, on_error or _stop_on_error)

    @property
    def flush_in_flight(self) -> bool:
        return self._in_flight > 0

    async def wait_for_flush(self, timeout: float | None = None) -> bool:
        """Wait for running flushes to settle; False if ``timeout`` elapsed."""
        if self._in_flight == 0:
            return True
        try:
            await asyncio.wait_for(self._settled.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True


def _write_all(
    writer: Writer,
    messages: Sequence[Message],
    message_filter: MessageFilter | None,
    on_error: ErrorHandler,
) -> FlushResult:
    result = FlushResult()
    total = len(messages)
    for index, message in enumerate(messages):
        if message_filter is not None and not message_filter(message):
            result.filtered += 1
            continue
        try:
            record = to_record(message)
            writer.write(record)
        except Exception as exc:  # noqa: BLE001
            if result.error is None:
                result.error = exc
            result.dropped += 1
            if on_error(exc) is ErrorAction.STOP:
                result.dropped += total - index - 1
                return result
            continue
        result.written += 1
        result.bytes_written += len(record)

    flush = getattr(writer, "flush", None)
    if callable(flush):
        try:
            flush()
        except Exception as exc:  # noqa: BLE001
            if result.error is None:
                result.error = exc
            on_error(exc)
    return result
