"""Graceful process-exit handling for logroll sinks.

This module provides:
- Atexit handler that shuts down registered sinks on normal exit
- Optional signal handlers for SIGTERM/SIGINT graceful shutdown
- WeakSet-based sink registration to avoid memory leaks

Sinks register themselves in ``start()`` and unregister in ``shutdown()``, so
only sinks the application forgot to stop are drained here. The handlers are
best-effort: buffered messages are written and the active file is closed,
but compressions still running on a dead event loop are abandoned and their
uncompressed originals stay on disk.
"""

from __future__ import annotations

import asyncio
import atexit
import signal
import sys
import weakref
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from types import FrameType


# Module-level state
_shutdown_in_progress: bool = False
_registered_sinks: weakref.WeakSet[Any] = weakref.WeakSet()
_signal_handlers_installed: bool = False


def _get_shutdown_settings() -> dict[str, Any]:
    """Get shutdown settings from Settings, with fallback defaults."""
    try:
        from .settings import Settings

        settings = Settings()
        return {
            "atexit_drain_enabled": settings.shutdown.atexit_drain_enabled,
            "atexit_drain_timeout_seconds": (
                settings.shutdown.atexit_drain_timeout_seconds
            ),
            "signal_handler_enabled": settings.shutdown.signal_handler_enabled,
        }
    except Exception:  # pragma: no cover - invalid environment configuration
        return {
            "atexit_drain_enabled": True,
            "atexit_drain_timeout_seconds": 30.0,
            "signal_handler_enabled": False,
        }


def register_sink(sink: Any) -> None:
    """Register a sink for automatic shutdown at process exit."""
    _registered_sinks.add(sink)
    _install_signal_handlers()


def unregister_sink(sink: Any) -> None:
    """Unregister a sink, typically once it has been shut down explicitly."""
    _registered_sinks.discard(sink)


def registered_sinks() -> list[Any]:
    # Snapshot; WeakSet iteration can fail if GC runs mid-iteration
    return list(_registered_sinks)


def _drain_single_sink(sink: Any, timeout: float) -> None:
    """Drain a single sink with timeout.

    Sinks exposing ``drain_sync()`` are drained without an event loop: at
    exit the loop that owns their tasks is closed, and inside a signal
    handler it is blocked on this very call. Other sinks get ``shutdown()``
    on a fresh loop, or on a worker thread when a loop is already running.

    Args:
        sink: Registered sink to drain
        timeout: Maximum seconds to wait for an async shutdown
    """
    try:
        drain_sync = getattr(sink, "drain_sync", None)
        if callable(drain_sync):
            drain_sync()
            return

        coro = sink.shutdown()
        try:
            asyncio.run(asyncio.wait_for(coro, timeout=timeout))
        except asyncio.TimeoutError:
            pass  # Best effort - proceed with exit
        except RuntimeError:
            # Event loop already running - try thread approach
            try:
                import concurrent.futures

                def run_drain(c: Any = coro) -> None:
                    try:
                        asyncio.run(c)
                    except Exception:
                        pass

                with concurrent.futures.ThreadPoolExecutor(max_workers=1) as ex:
                    ex.submit(run_drain).result(timeout=timeout)
            except Exception:  # pragma: no cover - executor errors
                pass
    except Exception:
        pass  # Best effort - don't crash on exit


def _atexit_handler() -> None:
    """Best-effort shutdown of all registered sinks on normal exit.

    Called by atexit; should never raise.
    """
    global _shutdown_in_progress

    if _shutdown_in_progress:
        return

    settings = _get_shutdown_settings()
    if not settings["atexit_drain_enabled"]:
        return

    _shutdown_in_progress = True
    timeout = settings["atexit_drain_timeout_seconds"]

    try:
        sinks = registered_sinks()
    except Exception:  # pragma: no cover - rare GC race
        return

    for sink in sinks:
        _drain_single_sink(sink, timeout)


def _signal_handler(signum: int, _frame: FrameType | None) -> None:
    """Drain sinks, then re-raise the signal with the default handler."""
    if _shutdown_in_progress:
        return

    _atexit_handler()

    try:
        signal.signal(signum, signal.SIG_DFL)
        signal.raise_signal(signum)
    except Exception:  # pragma: no cover - rare signal error
        sys.exit(128 + signum)


def _install_signal_handlers() -> None:
    """Install SIGTERM/SIGINT handlers once, if enabled in settings."""
    global _signal_handlers_installed

    if _signal_handlers_installed:
        return
    _signal_handlers_installed = True

    if not _get_shutdown_settings()["signal_handler_enabled"]:
        return

    try:
        signal.signal(signal.SIGINT, _signal_handler)
    except Exception:  # pragma: no cover - not in main thread
        pass

    # SIGTERM is not available on Windows
    if hasattr(signal, "SIGTERM"):
        try:
            signal.signal(signal.SIGTERM, _signal_handler)
        except Exception:  # pragma: no cover - not in main thread
            pass


# Register atexit handler on module import
atexit.register(_atexit_handler)
