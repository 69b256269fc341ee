from __future__ import annotations

import asyncio
import gc
from datetime import datetime, timezone
from pathlib import Path

import pytest

from logroll.core import shutdown
from logroll.core.settings import FileSinkSettings, RotationSettings
from logroll.plugins.sinks.rotating_file import RotatingFileSink


class StubSink:
    def __init__(self, delay: float = 0.0, fail: bool = False) -> None:
        self.delay = delay
        self.fail = fail
        self.shutdown_calls = 0

    async def shutdown(self) -> None:
        self.shutdown_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("shutdown failed")


@pytest.fixture(autouse=True)
def _reset_shutdown_state(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(shutdown, "_shutdown_in_progress", False)
    # Never touch the real process signal handlers from tests
    monkeypatch.setattr(shutdown, "_signal_handlers_installed", True)


def test_register_and_unregister() -> None:
    sink = StubSink()
    shutdown.register_sink(sink)
    assert sink in shutdown.registered_sinks()

    shutdown.unregister_sink(sink)
    assert sink not in shutdown.registered_sinks()
    # Unregistering twice is harmless
    shutdown.unregister_sink(sink)


def test_registration_does_not_keep_sink_alive() -> None:
    shutdown.register_sink(StubSink())
    gc.collect()
    assert not any(isinstance(s, StubSink) for s in shutdown.registered_sinks())


def test_atexit_handler_drains_registered_sinks() -> None:
    sinks = [StubSink(), StubSink(fail=True), StubSink()]
    for sink in sinks:
        shutdown.register_sink(sink)

    shutdown._atexit_handler()

    # A failing sink does not stop the others from draining
    assert [s.shutdown_calls for s in sinks] == [1, 1, 1]


def test_atexit_handler_runs_once() -> None:
    sink = StubSink()
    shutdown.register_sink(sink)

    shutdown._atexit_handler()
    shutdown._atexit_handler()

    assert sink.shutdown_calls == 1


def test_atexit_drain_can_be_disabled(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOGROLL_SHUTDOWN__ATEXIT_DRAIN_ENABLED", "false")
    sink = StubSink()
    shutdown.register_sink(sink)

    shutdown._atexit_handler()

    assert sink.shutdown_calls == 0


def test_drain_is_bounded_by_timeout() -> None:
    slow = StubSink(delay=5.0)
    shutdown._drain_single_sink(slow, timeout=0.05)
    assert slow.shutdown_calls == 1


@pytest.mark.asyncio
async def test_drain_inside_running_loop_uses_worker_thread() -> None:
    sink = StubSink()
    shutdown._drain_single_sink(sink, timeout=1.0)
    assert sink.shutdown_calls == 1


def _file_settings(tmp_path: Path, **overrides: object) -> FileSinkSettings:
    data: dict[str, object] = {
        "path": tmp_path / "app.log",
        "batch_timeout_seconds": 60.0,
        "symlink_current": False,
    }
    data.update(overrides)
    return FileSinkSettings(**data)  # type: ignore[arg-type]


def test_atexit_writes_buffer_of_sink_left_running(tmp_path: Path) -> None:
    sink = RotatingFileSink(_file_settings(tmp_path))

    async def scenario() -> None:
        await sink.start()
        await sink.write(b"buffered before exit")

    # The loop owning the sink is gone before the exit handler runs
    asyncio.run(scenario())
    assert sink in shutdown.registered_sinks()

    shutdown._atexit_handler()

    assert (tmp_path / "app.log").read_bytes() == b"buffered before exit\n"
    assert sink not in shutdown.registered_sinks()
    assert sink.active_path is None


def test_atexit_appends_to_existing_rotated_file(tmp_path: Path) -> None:
    now = datetime(2026, 10, 19, 14, 5, tzinfo=timezone.utc)
    sink = RotatingFileSink(
        _file_settings(tmp_path, rotation=RotationSettings(enabled=True)),
        clock=lambda: now,
    )

    async def scenario() -> None:
        await sink.start()
        await sink.write(b"flushed")
        await sink.flush()
        await sink.write(b"pending")

    asyncio.run(scenario())
    shutdown._atexit_handler()

    active = tmp_path / "app_2026-10-19_14.log"
    assert active.read_bytes() == b"flushed\npending\n"
    assert sorted(p.name for p in tmp_path.iterdir()) == [active.name]


@pytest.mark.asyncio
async def test_exit_drain_from_running_loop_writes_buffer(tmp_path: Path) -> None:
    # What a signal handler sees: the sink's own loop is running but blocked
    sink = RotatingFileSink(_file_settings(tmp_path))
    await sink.start()
    await sink.write(b"interrupted")

    shutdown._atexit_handler()

    assert (tmp_path / "app.log").read_bytes() == b"interrupted\n"
    assert await sink.health_check() is False
    # A later explicit shutdown has nothing left to do
    await sink.shutdown()
    await sink.write(b"too late")
    assert (tmp_path / "app.log").read_bytes() == b"interrupted\n"
