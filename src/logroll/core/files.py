"""
Single-owner file handles for the active and retired log files.

An :class:`ActiveFile` is the only writer of its path. Retiring it moves the
open OS handle into a :class:`RetiredFile`; from then on the active wrapper
refuses all I/O, so the handle can never be written by the sink and read by a
compression task at the same time.
"""

from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path
from typing import BinaryIO

from .errors import SinkWriteError


class ActiveFile:
    """The currently writable log file."""

    def __init__(self, path: Path, handle: BinaryIO, created_at: datetime) -> None:
        self._path = path
        self._handle: BinaryIO | None = handle
        self._created_at = created_at

    @classmethod
    def open(cls, path: Path, created_at: datetime) -> ActiveFile:
        # Readable as well as appendable so the retired handle can be re-read
        handle = open(path, "a+b")  # noqa: SIM115
        return cls(path, handle, created_at)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def created_at(self) -> datetime:
        return self._created_at

    @property
    def is_open(self) -> bool:
        return self._handle is not None

    def _require_handle(self) -> BinaryIO:
        if self._handle is None:
            raise SinkWriteError(f"{self._path} is no longer the active file")
        return self._handle

    def write(self, data: bytes) -> int:
        return self._require_handle().write(data)

    def flush(self) -> None:
        self._require_handle().flush()

    def size(self) -> int:
        """Size on disk; OSError propagates."""
        return os.fstat(self._require_handle().fileno()).st_size

    def retire(self) -> RetiredFile:
        """Hand the open handle over to a :class:`RetiredFile`. Allowed once."""
        handle = self._require_handle()
        self._handle = None
        return RetiredFile(self._path, handle)

    def close(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.close()


class RetiredFile:
    """A rotated-out file, owned by whoever received it from ``retire()``."""

    def __init__(self, path: Path, handle: BinaryIO) -> None:
        self._path = path
        self._handle: BinaryIO | None = handle

    @property
    def path(self) -> Path:
        return self._path

    @property
    def closed(self) -> bool:
        return self._handle is None

    def rewind(self) -> None:
        if self._handle is None:
            raise ValueError("retired file is closed")
        self._handle.seek(0)

    def read(self, size: int) -> bytes:
        if self._handle is None:
            raise ValueError("retired file is closed")
        return self._handle.read(size)

    def close(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.close()
