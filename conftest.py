"""
Root pytest configuration.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Generator
from typing import Any
from unittest.mock import patch

import pytest


def get_test_timeout(base: float, max_multiplier: float = 5.0) -> float:
    """Apply CI timeout multiplier to a base timeout value.

    Args:
        base: Base timeout in seconds
        max_multiplier: Maximum allowed multiplier (default 5x)

    Returns:
        Scaled timeout value

    Environment:
        CI_TIMEOUT_MULTIPLIER: Multiplier for CI environments (default: 1.0)
    """
    raw = os.getenv("CI_TIMEOUT_MULTIPLIER", "1.0")
    try:
        multiplier = float(raw) if raw else 1.0
        multiplier = min(multiplier, max_multiplier)
    except ValueError:
        multiplier = 1.0
    return base * multiplier


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for test categorization."""
    config.addinivalue_line(
        "markers",
        "critical: Tests that must never fail - core functionality",
    )
    config.addinivalue_line(
        "markers",
        "integration: End-to-end tests across sink, batch and compression",
    )
    config.addinivalue_line(
        "markers",
        "property: Property-based tests (may be slow)",
    )


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Drop LOGROLL_* variables so Settings() only sees what a test sets."""
    for key in list(os.environ):
        if key.upper().startswith("LOGROLL_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def _unregister_sinks() -> Generator[None, None, None]:
    """Keep sinks a test forgot to stop out of the atexit drain."""
    yield
    from logroll.core import shutdown

    for sink in shutdown.registered_sinks():
        shutdown.unregister_sink(sink)


@pytest.fixture
def diagnostics_calls() -> Generator[list[dict[str, Any]], None, None]:
    """Collect every note/warn/error diagnostic emitted during the test."""
    calls: list[dict[str, Any]] = []

    def _recorder(level: str) -> Any:
        def _record(component: str, message: str, **fields: Any) -> None:
            calls.append(
                {"level": level, "component": component, "message": message, **fields}
            )

        return _record

    with patch("logroll.core.diagnostics.note", side_effect=_recorder("note")), patch(
        "logroll.core.diagnostics.warn", side_effect=_recorder("warn")
    ), patch("logroll.core.diagnostics.error", side_effect=_recorder("error")):
        yield calls


@pytest.fixture
def scaled_timeout() -> Callable[[float], float]:
    """Timeout helper honoring CI_TIMEOUT_MULTIPLIER."""
    return get_test_timeout
