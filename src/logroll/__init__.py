"""
logroll - async rotating, compressing log-file sink.

Messages are buffered, flushed to an active file, and the file is rotated on
size, age or a daily time of day. Rotated files are gzip-compressed in the
background and shutdown waits for every compression before returning.
"""

from ._version import __version__
from .core.batch import FlushResult, MessageBatch
from .core.compression import CompressionOutcome, CompressionWorker
from .core.concurrency import ErrorAction, InFlightTracker
from .core.errors import (
    ConfigurationError,
    ErrorCategory,
    LogrollError,
    RotationCheckError,
    SerializationError,
    SinkWriteError,
)
from .core.rotation import RotationConfig, needs_rotation
from .core.settings import FileSinkSettings, PruneSettings, RotationSettings, Settings
from .metrics.metrics import SinkMetrics, SinkMetricsCollector
from .plugins.sinks import BaseSink
from .plugins.sinks.rotating_file import RotatingFileSink, create_sink

__all__ = [
    "__version__",
    # Sink
    "BaseSink",
    "RotatingFileSink",
    "create_sink",
    # Configuration
    "Settings",
    "FileSinkSettings",
    "RotationSettings",
    "PruneSettings",
    "RotationConfig",
    # Building blocks
    "MessageBatch",
    "FlushResult",
    "CompressionWorker",
    "CompressionOutcome",
    "ErrorAction",
    "InFlightTracker",
    "needs_rotation",
    # Metrics
    "SinkMetrics",
    "SinkMetricsCollector",
    # Errors
    "LogrollError",
    "ErrorCategory",
    "SinkWriteError",
    "RotationCheckError",
    "ConfigurationError",
    "SerializationError",
]
