"""
Internal diagnostics for non-fatal problems inside the sink.

Components report outcomes (file write errors, compression failures, prune
problems) through :func:`note`, :func:`warn` and :func:`error`. Records go to
the ``logroll`` logger hierarchy; configuring handlers is left to the host
application. Structured fields are rendered as a compact JSON object so the
lines stay machine-readable.

Diagnostics must never break the caller: every failure while formatting or
emitting a record is swallowed here.
"""

from __future__ import annotations

import logging
from typing import Any

import orjson

_LOGGER_NAME = "logroll"


def _render_fields(fields: dict[str, Any]) -> str:
    if not fields:
        return ""
    try:
        return orjson.dumps(fields, default=str, option=orjson.OPT_SORT_KEYS).decode(
            "utf-8"
        )
    except Exception:
        return repr(fields)


def _emit(level: int, component: str, message: str, fields: dict[str, Any]) -> None:
    try:
        logger = logging.getLogger(f"{_LOGGER_NAME}.{component}")
        if not logger.isEnabledFor(level):
            return
        rendered = _render_fields(fields)
        if rendered:
            logger.log(level, "%s %s", message, rendered)
        else:
            logger.log(level, "%s", message)
    except Exception:
        # Diagnostics should never raise into the write path
        pass


def note(component: str, message: str, **fields: Any) -> None:
    """Informational record, e.g. a compression starting."""
    _emit(logging.INFO, component, message, fields)


def warn(component: str, message: str, **fields: Any) -> None:
    """Recoverable problem; the sink keeps running with reduced guarantees."""
    _emit(logging.WARNING, component, message, fields)


def error(component: str, message: str, **fields: Any) -> None:
    """A failed operation whose effect is visible on disk or in the stream."""
    _emit(logging.ERROR, component, message, fields)
