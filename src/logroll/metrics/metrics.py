"""
Async-first sink metrics for logroll.

Implements minimal Prometheus-compatible counters used by the rotating file
sink: messages written, write errors, rotations, compressions by outcome and
pruned archives, plus an in-flight compression gauge.

Design goals:
- Zero global state; instances are sink-scoped
- In-memory counters are always tracked so tests can assert on them
- Prometheus exporters only exist when metrics are enabled
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from typing import Any

from prometheus_client import CollectorRegistry, Counter, Gauge


@dataclass
class SinkMetrics:
    """Captured runtime metrics for quick assertions in tests."""

    messages_written: int = 0
    write_errors: int = 0
    rotations: int = 0
    compressions: int = 0
    compression_failures: int = 0
    pruned_files: int = 0


class SinkMetricsCollector:
    """Sink-scoped metrics collector.

    If metrics are disabled all exporter calls are skipped while the basic
    in-memory counters keep working.
    """

    def __init__(self, *, enabled: bool = False) -> None:
        self._enabled = bool(enabled)
        self._lock = asyncio.Lock()
        self._state = SinkMetrics()

        self._c_messages: Any | None = None
        self._c_write_errors: Any | None = None
        self._c_rotations: Any | None = None
        self._c_compressions: Any | None = None
        self._c_pruned: Any | None = None
        self._g_in_flight: Any | None = None
        self._registry: CollectorRegistry | None = None

        if self._enabled:
            # Isolated registry to avoid global duplication across sinks/tests
            self._registry = CollectorRegistry()
            self._c_messages = Counter(
                "logroll_messages_written_total",
                "Total number of messages written to log files",
                registry=self._registry,
            )
            self._c_write_errors = Counter(
                "logroll_write_errors_total",
                "Total number of failed flushes to the active file",
                registry=self._registry,
            )
            self._c_rotations = Counter(
                "logroll_rotations_total",
                "Total number of file rotations",
                registry=self._registry,
            )
            self._c_compressions = Counter(
                "logroll_compressions_total",
                "Total number of finished compression tasks",
                ["outcome"],
                registry=self._registry,
            )
            self._c_pruned = Counter(
                "logroll_pruned_files_total",
                "Total number of archived files removed by pruning",
                registry=self._registry,
            )
            self._g_in_flight = Gauge(
                "logroll_compressions_in_flight",
                "Number of compression tasks currently running",
                registry=self._registry,
            )

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    @property
    def registry(self) -> CollectorRegistry | None:
        """Expose the isolated Prometheus registry when enabled."""
        return self._registry

    async def record_messages_written(self, count: int) -> None:
        if count <= 0:
            return
        async with self._lock:
            self._state.messages_written += count
        if self._c_messages is not None:
            self._c_messages.inc(count)

    async def record_write_error(self) -> None:
        async with self._lock:
            self._state.write_errors += 1
        if self._c_write_errors is not None:
            self._c_write_errors.inc()

    async def record_rotation(self) -> None:
        async with self._lock:
            self._state.rotations += 1
        if self._c_rotations is not None:
            self._c_rotations.inc()

    async def record_compression(self, *, outcome: str, succeeded: bool) -> None:
        async with self._lock:
            if succeeded:
                self._state.compressions += 1
            else:
                self._state.compression_failures += 1
        if self._c_compressions is not None:
            self._c_compressions.labels(outcome=outcome).inc()

    async def record_pruned(self, count: int) -> None:
        if count <= 0:
            return
        async with self._lock:
            self._state.pruned_files += count
        if self._c_pruned is not None:
            self._c_pruned.inc(count)

    def set_compressions_in_flight(self, value: int) -> None:
        if self._g_in_flight is not None:
            self._g_in_flight.set(value)

    async def snapshot(self) -> SinkMetrics:
        async with self._lock:
            return replace(self._state)
