from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from logroll.core.rotation import DISABLED, RotationConfig, needs_rotation

pytestmark = pytest.mark.property

NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


@dataclass
class FakeFile:
    created_at: datetime
    bytes_on_disk: int

    def size(self) -> int:
        return self.bytes_on_disk


sizes = st.integers(min_value=0, max_value=2**40)
ages = st.floats(min_value=0, max_value=400 * 86_400, allow_nan=False)
hours = st.one_of(st.just(DISABLED), st.integers(min_value=0, max_value=23))
minutes = st.one_of(st.just(DISABLED), st.integers(min_value=0, max_value=59))


@given(
    size=sizes,
    age=ages,
    max_size=st.integers(min_value=1, max_value=2**40),
    max_age=st.floats(min_value=1, max_value=86_400, allow_nan=False),
    at_hour=hours,
    at_minute=minutes,
    force=st.booleans(),
)
@settings(max_examples=200)
def test_disabled_policy_never_rotates_open_file(
    size: int,
    age: float,
    max_size: int,
    max_age: float,
    at_hour: int,
    at_minute: int,
    force: bool,
) -> None:
    config = RotationConfig(
        enabled=False,
        max_size_bytes=max_size,
        max_age_seconds=max_age,
        at_hour=at_hour,
        at_minute=at_minute,
    )
    active = FakeFile(created_at=NOW - timedelta(seconds=age), bytes_on_disk=size)
    assert needs_rotation(active, config, force=force, now=NOW) is False


@given(
    max_size=st.integers(min_value=1, max_value=2**30),
    extra=st.integers(min_value=0, max_value=2**30),
    age=ages,
    at_hour=hours,
    at_minute=minutes,
)
@settings(max_examples=200)
def test_size_at_or_over_limit_always_rotates(
    max_size: int, extra: int, age: float, at_hour: int, at_minute: int
) -> None:
    config = RotationConfig(
        enabled=True,
        max_size_bytes=max_size,
        max_age_seconds=None,
        at_hour=at_hour,
        at_minute=at_minute,
    )
    active = FakeFile(
        created_at=NOW - timedelta(seconds=age), bytes_on_disk=max_size + extra
    )
    assert needs_rotation(active, config, now=NOW) is True


@given(
    age=ages,
    max_age=st.floats(min_value=1, max_value=86_400, allow_nan=False),
)
@settings(max_examples=200)
def test_age_rotation_matches_threshold(age: float, max_age: float) -> None:
    config = RotationConfig(enabled=True, max_size_bytes=None, max_age_seconds=max_age)
    created_at = NOW - timedelta(seconds=age)
    active = FakeFile(created_at=created_at, bytes_on_disk=0)

    expected = (NOW - created_at).total_seconds() >= max_age
    assert needs_rotation(active, config, now=NOW) is expected


@given(
    at_hour=st.integers(min_value=0, max_value=23),
    at_minute=st.integers(min_value=0, max_value=59),
    created_offset=st.integers(min_value=0, max_value=86_399),
    check_delay=st.integers(min_value=0, max_value=86_399),
)
@settings(max_examples=200)
def test_daily_mark_compares_against_same_day_instant(
    at_hour: int, at_minute: int, created_offset: int, check_delay: int
) -> None:
    midnight = NOW.replace(hour=0, minute=0, second=0, microsecond=0)
    created_at = midnight + timedelta(seconds=created_offset)
    end_of_day = midnight + timedelta(seconds=86_399)
    now = min(created_at + timedelta(seconds=check_delay), end_of_day)
    config = RotationConfig(
        enabled=True,
        max_size_bytes=None,
        max_age_seconds=None,
        at_hour=at_hour,
        at_minute=at_minute,
    )
    mark = midnight.replace(hour=at_hour, minute=at_minute)

    active = FakeFile(created_at=created_at, bytes_on_disk=0)
    assert needs_rotation(active, config, now=now) is (created_at < mark)


@given(
    at_hour=st.integers(min_value=0, max_value=23),
    at_minute=st.integers(min_value=0, max_value=59),
    days_old=st.integers(min_value=1, max_value=30),
)
@settings(max_examples=100)
def test_file_from_an_earlier_day_always_rotates(
    at_hour: int, at_minute: int, days_old: int
) -> None:
    config = RotationConfig(
        enabled=True,
        max_size_bytes=None,
        max_age_seconds=None,
        at_hour=at_hour,
        at_minute=at_minute,
    )
    same_time_earlier = NOW.replace(hour=at_hour, minute=at_minute, second=0)
    created_at = same_time_earlier - timedelta(days=days_old)
    active = FakeFile(created_at=created_at, bytes_on_disk=0)
    assert needs_rotation(active, config, now=NOW) is True
