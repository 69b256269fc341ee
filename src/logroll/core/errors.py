"""
Error taxonomy for logroll.

Every failure raised by the library derives from :class:`LogrollError` and
carries an :class:`ErrorCategory` so callers can branch on the kind of
failure without matching on message text. The original exception, when
there is one, is kept on ``cause`` and chained via ``raise ... from``.
"""

from __future__ import annotations

from enum import Enum


class ErrorCategory(str, Enum):
    IO = "io"
    ROTATION = "rotation"
    CONFIGURATION = "configuration"
    SERIALIZATION = "serialization"


class LogrollError(Exception):
    """Base class for all logroll errors."""

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory = ErrorCategory.IO,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.category = category
        self.cause = cause

    def __str__(self) -> str:
        if self.cause is None:
            return self.message
        return f"{self.message}: {type(self.cause).__name__}: {self.cause}"


class SinkWriteError(LogrollError):
    """Writing to (or through) a file handle failed."""

    def __init__(
        self,
        message: str,
        *,
        sink_name: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, category=ErrorCategory.IO, cause=cause)
        self.sink_name = sink_name


class RotationCheckError(LogrollError):
    """The active file's metadata could not be read during a rotation check."""

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message, category=ErrorCategory.ROTATION, cause=cause)


class ConfigurationError(LogrollError):
    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message, category=ErrorCategory.CONFIGURATION, cause=cause)


class SerializationError(LogrollError):
    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(message, category=ErrorCategory.SERIALIZATION, cause=cause)
