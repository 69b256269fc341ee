"""
Rotation policy: decide whether the active file must be replaced.

The policy is a pure function of the active file's metadata, the immutable
:class:`RotationConfig` and the current time. Rules are evaluated in a fixed
order and the first match wins:

1. no active file yet                       -> rotate
2. metadata unreadable                      -> RotationCheckError
3. rotation disabled                        -> keep
4. forced by the caller                     -> rotate
5. size >= max_size_bytes                   -> rotate
6. age >= max_age_seconds                   -> rotate
7. created before today's HH:MM mark       -> rotate
8. otherwise                                -> keep
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from .errors import RotationCheckError

# at_hour / at_minute value that disables time-of-day rotation
DISABLED = -1


@dataclass(frozen=True)
class RotationConfig:
    enabled: bool = False
    max_age_seconds: float | None = None
    max_size_bytes: int | None = None
    at_hour: int = DISABLED
    at_minute: int = DISABLED
    compress: bool = False

    @property
    def daily_enabled(self) -> bool:
        return self.at_hour > DISABLED and self.at_minute > DISABLED


class FileMetadata(Protocol):
    @property
    def created_at(self) -> datetime:  # pragma: no cover - structural protocol
        ...

    def size(self) -> int:  # pragma: no cover - structural protocol
        ...


def scheduled_rotation_today(now: datetime, hour: int, minute: int) -> datetime:
    """``hour:minute:00`` on the calendar day of ``now``, in its timezone.

    The instant may still be ahead of ``now``. It never falls back to the
    previous day.
    """
    return now.replace(hour=hour, minute=minute, second=0, microsecond=0)


def needs_rotation(
    active: FileMetadata | None,
    config: RotationConfig,
    *,
    force: bool = False,
    now: datetime | None = None,
) -> bool:
    if active is None:
        return True

    try:
        size = active.size()
    except OSError as e:
        raise RotationCheckError("Cannot read active file metadata", cause=e) from e

    if not config.enabled:
        return False

    if force:
        return True

    if config.max_size_bytes and size >= config.max_size_bytes:
        return True

    current = now if now is not None else datetime.now().astimezone()

    if config.max_age_seconds is not None:
        age = (current - active.created_at).total_seconds()
        if age >= config.max_age_seconds:
            return True

    if config.daily_enabled:
        mark = scheduled_rotation_today(current, config.at_hour, config.at_minute)
        if active.created_at < mark:
            return True

    return False
