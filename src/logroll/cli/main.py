"""
Command-line entry point for logroll.

Reads lines from stdin and writes them through a rotating file sink until
EOF, then shuts the sink down (flushing and finishing compression). Settings
come from ``LOGROLL_*`` environment variables; flags override them.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Any, BinaryIO, Sequence

from pydantic import ValidationError

from ..core.errors import ConfigurationError
from ..core.settings import FileSinkSettings, Settings
from ..metrics.metrics import SinkMetricsCollector
from ..plugins.sinks.rotating_file import RotatingFileSink


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="logroll",
        description="Write stdin lines to a rotating, compressing log file.",
    )
    parser.add_argument("--path", help="Active log file path")
    parser.add_argument(
        "--rotate", action="store_true", default=None, help="Enable rotation"
    )
    parser.add_argument(
        "--compress",
        action="store_true",
        default=None,
        help="Gzip rotated files in the background",
    )
    parser.add_argument("--max-size", type=int, help="Rotate at this many bytes")
    parser.add_argument("--max-age", type=float, help="Rotate after this many seconds")
    parser.add_argument("--at", help="Daily rotation time as HH:MM")
    return parser


def _file_settings(settings: Settings, args: argparse.Namespace) -> FileSinkSettings:
    data: dict[str, Any] = settings.file.model_dump()
    rotation: dict[str, Any] = data["rotation"]
    if args.path:
        data["path"] = args.path
    if args.rotate is not None:
        rotation["enabled"] = args.rotate
    if args.compress is not None:
        rotation["compress"] = args.compress
    if args.max_size is not None:
        rotation["max_size_bytes"] = args.max_size
    if args.max_age is not None:
        rotation["max_age_seconds"] = args.max_age
    if args.at is not None:
        rotation["at"] = args.at
    return FileSinkSettings.model_validate(data)


def _load_settings(args: argparse.Namespace) -> tuple[Settings, FileSinkSettings]:
    try:
        settings = Settings()
        return settings, _file_settings(settings, args)
    except ValidationError as e:
        raise ConfigurationError("Invalid settings", cause=e) from e


async def main(
    argv: Sequence[str] | None = None,
    *,
    stdin: BinaryIO | None = None,
) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)
    try:
        settings, file_settings = _load_settings(args)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    stream = stdin if stdin is not None else sys.stdin.buffer
    sink = RotatingFileSink(
        file_settings,
        metrics=SinkMetricsCollector(enabled=settings.observability.metrics_enabled),
    )
    await sink.start()
    try:
        while True:
            line = await asyncio.to_thread(stream.readline)
            if not line:
                break
            await sink.write(line)
    finally:
        await sink.shutdown()
    return 0


def cli_main() -> int:
    """CLI main function for non-async entry."""
    try:
        return asyncio.run(main())
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(cli_main())
