from __future__ import annotations

import asyncio
import os
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterable

from pydantic import ValidationError

from ...core import diagnostics
from ...core.batch import MessageBatch
from ...core.compression import (
    COMPRESSED_SUFFIX,
    CompressionOutcome,
    CompressionWorker,
    compressed_path_for,
)
from ...core.concurrency import ErrorAction, InFlightTracker, spawn_tracked
from ...core.errors import ConfigurationError, RotationCheckError, SinkWriteError
from ...core.files import ActiveFile, RetiredFile
from ...core.rotation import needs_rotation
from ...core.serialization import Message
from ...core.settings import FileSinkSettings, Settings
from ...core.shutdown import register_sink, unregister_sink
from ...metrics.metrics import SinkMetricsCollector

_COMPONENT = "rotating-file"


def _local_now() -> datetime:
    return datetime.now().astimezone()


class RotatingFileSink:
    """Async file sink with size, age and time-of-day rotation.

    - Buffers messages in a :class:`MessageBatch` and flushes them to the
      active file on a timer, on a count threshold, or when the batch is full
    - Rotation flushes the batch into the old file first, then hands the old
      handle to a background compression task (or closes it) and opens a new
      timestamped file
    - Write errors are contained: diagnosed, counted, never raised
    - ``shutdown()`` waits for the final flush (bounded) and for every
      in-flight compression (unbounded) before closing the active file
    - ``drain_sync()`` writes what is still queued without an event loop; the
      process-exit handlers use it for sinks that were never shut down
    """

    name = "rotating-file"

    def __init__(
        self,
        settings: FileSinkSettings | None = None,
        *,
        worker: CompressionWorker | None = None,
        metrics: SinkMetricsCollector | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._settings = settings or FileSinkSettings()
        self._rotation = self._settings.rotation.to_rotation_config()
        self._worker = worker or CompressionWorker()
        self._metrics = metrics or SinkMetricsCollector(enabled=False)
        self._clock = clock or _local_now
        self._batch = MessageBatch(self._settings.batch_max_count)
        self._active: ActiveFile | None = None
        self._compressions = InFlightTracker()
        # Retired files whose compression has not finished yet
        self._retiring: set[Path] = set()
        self._lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._flush_task: asyncio.Task[None] | None = None
        self._started = False
        self._closed = False
        # Set once the active file is closed for good; nothing may reopen one
        self._finalized = False
        self._last_error: BaseException | None = None

    @property
    def settings(self) -> FileSinkSettings:
        return self._settings

    @property
    def metrics(self) -> SinkMetricsCollector:
        return self._metrics

    @property
    def active_path(self) -> Path | None:
        return self._active.path if self._active is not None else None

    @property
    def outstanding_compressions(self) -> int:
        return self._compressions.count

    @property
    def pending_count(self) -> int:
        return len(self._batch)

    @property
    def last_error(self) -> BaseException | None:
        return self._last_error

    @property
    def current_link_path(self) -> Path:
        base = self._settings.path
        return base.with_name(f"{base.stem}_current{base.suffix}")

    async def start(self) -> None:
        if self._started:
            return
        await asyncio.to_thread(
            self._settings.path.parent.mkdir, parents=True, exist_ok=True
        )
        self._closed = False
        self._finalized = False
        self._started = True
        self._stop_event.clear()
        self._flush_task = asyncio.create_task(
            self._flush_loop(), name=f"logroll-flush:{self._settings.path.name}"
        )
        register_sink(self)

    async def stop(self) -> None:
        await self.shutdown()

    async def health_check(self) -> bool:
        """Return True if the sink is running and the last flush succeeded."""
        return self._started and not self._closed and self._last_error is None

    async def write(self, message: Message) -> None:
        if self._closed:
            diagnostics.warn(_COMPONENT, "write after shutdown dropped")
            return
        if not self._batch.append(message):
            # Batch is full: flush inline as back-pressure, then retry once
            await self.flush()
            if not self._batch.append(message):
                diagnostics.warn(
                    _COMPONENT,
                    "batch full, message dropped",
                    path=str(self._settings.path),
                )
                return
        if self._batch.reached_count(self._settings.batch_flush_count):
            await self.flush()

    async def write_batch(self, messages: Iterable[Message]) -> None:
        for message in messages:
            await self.write(message)

    async def flush(self) -> None:
        """Run a rotation check, then write the pending batch. Never raises."""
        async with self._lock:
            await self._rotate_contained()
            await self._flush_pending()

    async def check_and_rotate(self, force: bool = False) -> bool:
        """Rotate the active file if the policy says so.

        Returns True when a new file was opened. Raises
        :class:`RotationCheckError` when the active file cannot be inspected
        and :class:`SinkWriteError` when the new file cannot be opened.
        """
        async with self._lock:
            return await self._rotate_if_needed(force)

    async def roll(self) -> bool:
        """Explicit flush-and-roll to a new file."""
        return await self.check_and_rotate(force=True)

    async def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        unregister_sink(self)

        loop = asyncio.get_running_loop()
        timeout = self._settings.flush_timeout_seconds
        deadline = loop.time() + timeout

        if self._flush_task is not None:
            self._stop_event.set()
            await asyncio.wait({self._flush_task}, timeout=timeout)
            self._flush_task.cancel()
            self._flush_task = None

        final_flush = asyncio.create_task(self.flush())
        done, _ = await asyncio.wait(
            {final_flush}, timeout=max(0.0, deadline - loop.time())
        )
        settled = await self._batch.wait_for_flush(
            timeout=max(0.0, deadline - loop.time())
        )
        if final_flush not in done or not settled:
            diagnostics.warn(
                _COMPONENT,
                "flush did not finish before shutdown timeout",
                path=str(self._settings.path),
                timeout_seconds=timeout,
            )
            # The write thread may still finish; its task must not reopen a file
            final_flush.cancel()
            await asyncio.wait({final_flush})
        self._finalized = True

        await self._compressions.wait_idle()

        active, self._active = self._active, None
        if active is not None:
            try:
                await asyncio.to_thread(active.close)
            except OSError as e:
                diagnostics.error(
                    _COMPONENT, "file close error", path=str(active.path), error=str(e)
                )
        self._started = False

    def drain_sync(self) -> None:
        """Write pending messages and close the active file on this thread.

        Last-chance path for process exit and signal handlers, where the
        event loop that owns this sink is closed or blocked. Compressions
        that have not finished are abandoned; their originals stay on disk.
        Metrics are not updated.
        """
        if self._finalized:
            return
        self._closed = True
        self._finalized = True
        unregister_sink(self)

        task, self._flush_task = self._flush_task, None
        if task is not None and not task.get_loop().is_closed():
            task.cancel()

        active = self._active
        if active is None and not self._batch.is_empty:
            try:
                active = self._active = self._open_file_sync(self._clock())
            except SinkWriteError as e:
                diagnostics.error(
                    _COMPONENT,
                    "file open error at exit",
                    path=str(self._settings.path),
                    error=str(e),
                )
        if active is not None:
            result = self._batch.flush_sync(active, on_error=self._on_writer_error)
            if not result.ok:
                self._last_error = result.error
            # A worker thread still writing keeps the handle until exit
            if not self._batch.flush_in_flight:
                self._active = None
                try:
                    active.close()
                except OSError as e:
                    diagnostics.error(
                        _COMPONENT,
                        "file close error",
                        path=str(active.path),
                        error=str(e),
                    )
        self._started = False

    async def _flush_loop(self) -> None:
        interval = self._settings.batch_timeout_seconds
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
            else:
                return
            try:
                await self.flush()
            except Exception as e:  # noqa: BLE001
                diagnostics.warn(
                    _COMPONENT, "background flush failed", error=str(e)
                )

    def _on_writer_error(self, error: BaseException) -> ErrorAction:
        diagnostics.error(
            _COMPONENT,
            "file write error",
            path=str(self.active_path),
            error=str(error),
        )
        return ErrorAction.STOP

    async def _flush_pending(self) -> None:
        if self._finalized or self._batch.is_empty:
            return
        active = self._active
        if active is None:
            # Messages stay queued until a file can be opened
            return
        result = await self._batch.flush(active, on_error=self._on_writer_error)
        await self._metrics.record_messages_written(result.written)
        if result.ok:
            self._last_error = None
        else:
            self._last_error = result.error
            await self._metrics.record_write_error()

    async def _rotate_contained(self) -> None:
        try:
            await self._rotate_if_needed(False)
        except (RotationCheckError, SinkWriteError) as e:
            self._last_error = e
            diagnostics.error(
                _COMPONENT,
                "rotation check failed",
                path=str(self.active_path or self._settings.path),
                error=str(e),
            )

    async def _rotate_if_needed(self, force: bool) -> bool:
        if self._finalized:
            return False
        now = self._clock()
        if not needs_rotation(self._active, self._rotation, force=force, now=now):
            return False

        previous = self._active
        if previous is not None:
            await self._flush_pending()
            try:
                await asyncio.to_thread(previous.flush)
            except OSError as e:
                diagnostics.error(
                    _COMPONENT,
                    "file flush error",
                    path=str(previous.path),
                    error=str(e),
                )
            retired = previous.retire()
            self._active = None
            if self._rotation.compress:
                self._spawn_compression(retired)
            else:
                await asyncio.to_thread(self._discard, retired)

        await self._open_new_file(now)

        if previous is not None:
            await self._metrics.record_rotation()
            diagnostics.note(
                _COMPONENT,
                "rotated",
                retired=str(previous.path),
                active=str(self.active_path),
            )
            await self._prune()
        return True

    async def _open_new_file(self, now: datetime) -> None:
        self._active = await asyncio.to_thread(self._open_file_sync, now)

    def _open_file_sync(self, now: datetime) -> ActiveFile:
        try:
            path = self._next_file_path(now)
            active = ActiveFile.open(path, now)
        except OSError as e:
            raise SinkWriteError(
                "Cannot open log file", sink_name=self.name, cause=e
            ) from e
        if self._rotation.enabled and self._settings.symlink_current:
            self._update_current_link(path)
        return active

    def _next_file_path(self, now: datetime) -> Path:
        base = self._settings.path
        base.parent.mkdir(parents=True, exist_ok=True)
        if not self._rotation.enabled:
            return base
        stamp = now.strftime(self._settings.rotation.timestamp_format)
        padding = self._settings.rotation.zero_padding
        candidate = base.with_name(f"{base.stem}_{stamp}{base.suffix}")
        counter = 0
        while candidate.exists() or compressed_path_for(candidate).exists():
            counter += 1
            candidate = base.with_name(
                f"{base.stem}_{stamp}_{counter:0{padding}d}{base.suffix}"
            )
        return candidate

    def _update_current_link(self, target: Path) -> None:
        link = self.current_link_path
        try:
            if link.is_symlink() or link.exists():
                link.unlink()
            os.symlink(target.name, link)
        except OSError as e:
            diagnostics.warn(
                _COMPONENT, "symlink update failed", link=str(link), error=str(e)
            )

    @staticmethod
    def _discard(retired: RetiredFile) -> None:
        try:
            retired.close()
        except OSError as e:
            diagnostics.error(
                _COMPONENT, "file close error", path=str(retired.path), error=str(e)
            )

    def _spawn_compression(self, retired: RetiredFile) -> None:
        self._retiring.add(retired.path)
        spawn_tracked(
            self._compress(retired),
            self._compressions,
            name=f"logroll-compress:{retired.path.name}",
        )
        self._metrics.set_compressions_in_flight(self._compressions.count)

    async def _compress(self, retired: RetiredFile) -> CompressionOutcome:
        try:
            outcome = await self._worker.compress_and_retire(retired)
        except Exception as e:  # noqa: BLE001
            diagnostics.error(
                _COMPONENT,
                "compression task crashed",
                path=str(retired.path),
                error=str(e),
            )
            retired.close()
            outcome = CompressionOutcome.STREAM_FAILED
        finally:
            self._retiring.discard(retired.path)
            self._metrics.set_compressions_in_flight(self._compressions.count - 1)
        await self._metrics.record_compression(
            outcome=outcome.value, succeeded=outcome.succeeded
        )
        return outcome

    async def _prune(self) -> None:
        prune = self._settings.prune
        if not prune.enabled:
            return
        exclude = {self.current_link_path}
        if self._active is not None:
            exclude.add(self._active.path)
        for path in self._retiring:
            exclude.add(path)
            exclude.add(compressed_path_for(path))
        deleted = await asyncio.to_thread(self._prune_sync, exclude)
        await self._metrics.record_pruned(deleted)

    def _prune_candidates(self, exclude: set[Path]) -> list[tuple[Path, os.stat_result]]:
        base = self._settings.path
        prefix = f"{base.stem}_"
        suffixes = tuple(s for s in (base.suffix, COMPRESSED_SUFFIX) if s)
        candidates: list[tuple[Path, os.stat_result]] = []
        for entry in base.parent.iterdir():
            name = entry.name
            if not name.startswith(prefix) or not name.endswith(suffixes):
                continue
            if entry in exclude or entry.is_symlink():
                continue
            try:
                stat = entry.stat()
            except OSError:
                continue
            candidates.append((entry, stat))
        candidates.sort(key=lambda item: item[1].st_mtime)
        return candidates

    def _prune_sync(self, exclude: set[Path]) -> int:
        prune = self._settings.prune
        try:
            candidates = self._prune_candidates(exclude)
        except OSError as e:
            diagnostics.warn(_COMPONENT, "prune listing failed", error=str(e))
            return 0

        doomed: list[Path] = []
        if prune.after_hours:
            cutoff = time.time() - prune.after_hours * 3600
            doomed.extend(p for p, st in candidates if st.st_mtime < cutoff)
            candidates = [(p, st) for p, st in candidates if st.st_mtime >= cutoff]
        if prune.count:
            while len(candidates) > prune.count:
                doomed.append(candidates.pop(0)[0])
        if prune.total_size_bytes:
            total = sum(st.st_size for _, st in candidates)
            while candidates and total > prune.total_size_bytes:
                path, st = candidates.pop(0)
                total -= st.st_size
                doomed.append(path)

        deleted = 0
        for path in doomed:
            try:
                path.unlink()
                deleted += 1
            except OSError as e:
                diagnostics.warn(
                    _COMPONENT, "prune failed", path=str(path), error=str(e)
                )
        return deleted


def create_sink(**overrides: Any) -> RotatingFileSink:
    """Build a sink from environment settings with keyword overrides.

    Raises:
        ConfigurationError: If the merged settings do not validate
    """
    try:
        settings = Settings()
        file_settings = FileSinkSettings.model_validate(
            {**settings.file.model_dump(), **overrides}
        )
    except ValidationError as e:
        raise ConfigurationError("Invalid sink settings", cause=e) from e
    metrics = SinkMetricsCollector(enabled=settings.observability.metrics_enabled)
    return RotatingFileSink(file_settings, metrics=metrics)
