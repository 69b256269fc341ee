"""
Background compression of retired log files.

:class:`CompressionWorker` takes ownership of a :class:`RetiredFile`, streams
it through gzip into a sibling ``.gz`` file and then deletes the original.
Every chunk is read and encoded in a worker thread, so a large archive never
blocks the event loop. The original is only removed after the compressed
copy has been fully written and closed; on any failure it stays on disk.

Outcomes are reported through diagnostics and the returned
:class:`CompressionOutcome`; the worker never raises to its caller.
"""

from __future__ import annotations

import asyncio
import gzip
from enum import Enum
from pathlib import Path
from typing import BinaryIO

from . import diagnostics
from .files import RetiredFile

COMPRESSED_SUFFIX = ".gz"
DEFAULT_CHUNK_SIZE = 1 << 20  # 1 MiB

_COMPONENT = "compression"


class CompressionOutcome(str, Enum):
    COMPRESSED = "compressed"  # archive written, original deleted
    SOURCE_KEPT = "source_kept"  # archive written, original could not be deleted
    OPEN_FAILED = "open_failed"  # archive could not be created, original kept
    STREAM_FAILED = "stream_failed"  # archive removed, original kept

    @property
    def succeeded(self) -> bool:
        return self in (CompressionOutcome.COMPRESSED, CompressionOutcome.SOURCE_KEPT)


def compressed_path_for(path: Path) -> Path:
    """``/dir/name.log`` -> ``/dir/name.gz``."""
    return path.with_suffix(COMPRESSED_SUFFIX)


def _close_quietly(resource: RetiredFile | BinaryIO | gzip.GzipFile | None) -> None:
    if resource is None:
        return
    try:
        resource.close()
    except Exception:
        # Already failing; the primary error is reported by the caller
        pass


class CompressionWorker:
    """Compresses retired files into gzip archives next to them."""

    def __init__(
        self,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        compresslevel: int = 9,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be > 0")
        if not 0 <= compresslevel <= 9:
            raise ValueError("compresslevel must be between 0 and 9")
        self._chunk_size = chunk_size
        self._compresslevel = compresslevel

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    def _copy_chunk(self, source: RetiredFile, encoder: gzip.GzipFile) -> int:
        chunk = source.read(self._chunk_size)
        if chunk:
            encoder.write(chunk)
        return len(chunk)

    async def compress_and_retire(self, retired: RetiredFile) -> CompressionOutcome:
        source_path = retired.path
        target_path = compressed_path_for(source_path)

        try:
            target: BinaryIO = await asyncio.to_thread(open, target_path, "wb")
        except OSError as e:
            diagnostics.error(
                _COMPONENT,
                "file compress error",
                path=str(target_path),
                error=str(e),
            )
            _close_quietly(retired)
            return CompressionOutcome.OPEN_FAILED

        diagnostics.note(_COMPONENT, "compressing", path=str(source_path))

        encoder: gzip.GzipFile | None = None
        try:
            encoder = gzip.GzipFile(
                filename=source_path.name,
                mode="wb",
                fileobj=target,
                compresslevel=self._compresslevel,
            )
            await asyncio.to_thread(retired.rewind)
            while await asyncio.to_thread(self._copy_chunk, retired, encoder):
                pass
            await asyncio.to_thread(encoder.close)
            await asyncio.to_thread(target.close)
        except Exception as e:  # noqa: BLE001
            diagnostics.warn(
                _COMPONENT,
                "compression failed",
                path=str(source_path),
                error=str(e),
            )
            _close_quietly(encoder)
            _close_quietly(target)
            _close_quietly(retired)
            try:
                await asyncio.to_thread(target_path.unlink)
            except FileNotFoundError:
                pass
            except OSError as rm_err:
                diagnostics.error(
                    _COMPONENT,
                    "compressed file remove failed",
                    path=str(target_path),
                    error=str(rm_err),
                )
            return CompressionOutcome.STREAM_FAILED

        _close_quietly(retired)
        try:
            await asyncio.to_thread(source_path.unlink)
        except OSError as e:
            diagnostics.error(
                _COMPONENT,
                "uncompressed file remove failed",
                path=str(source_path),
                error=str(e),
            )
            return CompressionOutcome.SOURCE_KEPT
        return CompressionOutcome.COMPRESSED
