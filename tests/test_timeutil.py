"""Tests for duration math and day boundaries."""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from streamwatch.errors import ConfigurationError
from streamwatch.timeutil import (
    DayBoundary,
    calc_seconds,
    format_duration,
    format_timestamp,
    parse_timestamp,
    resolve_zone,
)

UTC = timezone.utc


class TestCalcSeconds:
    def test_positive(self):
        start = datetime(2025, 1, 25, 10, 0, 0, tzinfo=UTC)
        assert calc_seconds(start, start + timedelta(seconds=370)) == 370

    def test_negative_clamps_to_zero(self):
        start = datetime(2025, 1, 25, 10, 0, 0, tzinfo=UTC)
        assert calc_seconds(start, start - timedelta(seconds=5)) == 0

    def test_rounds_down(self):
        start = datetime(2025, 1, 25, 10, 0, 0, tzinfo=UTC)
        assert calc_seconds(start, start + timedelta(milliseconds=59_999)) == 59


class TestTimestamps:
    def test_format_is_fixed_width_utc(self):
        dt = datetime(2025, 1, 25, 17, 5, 3, 120_000, tzinfo=timezone(timedelta(hours=7)))
        assert format_timestamp(dt) == "2025-01-25T10:05:03.120Z"

    def test_naive_is_utc(self):
        assert format_timestamp(datetime(2025, 1, 25, 10, 0, 0)) == "2025-01-25T10:00:00.000Z"

    def test_parse_z_suffix(self):
        assert parse_timestamp("2025-01-25T10:00:00Z") == datetime(2025, 1, 25, 10, tzinfo=UTC)

    def test_parse_naive_is_utc(self):
        assert parse_timestamp("2025-01-25T10:00:00").tzinfo is not None


class TestFormatDuration:
    def test_zero(self):
        assert format_duration(0) == "0h 0m 0s"

    def test_mixed(self):
        assert format_duration(370) == "0h 6m 10s"
        assert format_duration(3 * 3600 + 61) == "3h 1m 1s"


class TestResolveZone:
    @pytest.mark.parametrize("name", ["+07:00", "UTC+7", "+0700", "+7"])
    def test_positive_offsets(self, name):
        zone = resolve_zone(name)
        assert zone.utcoffset(None) == timedelta(hours=7)

    def test_negative_offset(self):
        assert resolve_zone("-07:00").utcoffset(None) == timedelta(hours=-7)

    def test_utc(self):
        assert resolve_zone("UTC") is UTC

    def test_named_zone(self):
        assert resolve_zone("Asia/Ho_Chi_Minh") == ZoneInfo("Asia/Ho_Chi_Minh")

    def test_unknown_zone(self):
        with pytest.raises(ConfigurationError):
            resolve_zone("Mars/Olympus_Mons")

    def test_offset_out_of_range(self):
        with pytest.raises(ConfigurationError):
            resolve_zone("+25:00")


class TestDayBoundary:
    """Midnight depends on the configured zone, not the host."""

    def test_day_range_fixed_offset(self):
        boundary = DayBoundary.from_name("+07:00")
        # 18:30 UTC is 01:30 the next day at UTC+7
        start, end = boundary.day_range(datetime(2025, 1, 25, 18, 30, tzinfo=UTC))
        assert start == datetime(2025, 1, 25, 17, 0, tzinfo=UTC)
        assert end == datetime(2025, 1, 26, 17, 0, tzinfo=UTC)

    def test_day_range_negative_offset(self):
        boundary = DayBoundary.from_name("-07:00")
        start, end = boundary.day_range(datetime(2025, 1, 25, 5, 0, tzinfo=UTC))
        assert start == datetime(2025, 1, 24, 7, 0, tzinfo=UTC)
        assert end - start == timedelta(days=1)

    def test_same_instant_different_days(self):
        instant = datetime(2025, 1, 25, 20, 0, tzinfo=UTC)
        east = DayBoundary.from_name("+07:00").start_of_day(instant).date()
        west = DayBoundary.from_name("-07:00").start_of_day(instant).date()
        assert east.isoformat() == "2025-01-26"
        assert west.isoformat() == "2025-01-25"

    def test_named_zone_matches_offset(self):
        instant = datetime(2025, 1, 25, 20, 0, tzinfo=UTC)
        named = DayBoundary.from_name("Asia/Ho_Chi_Minh").day_range(instant)
        fixed = DayBoundary.from_name("+07:00").day_range(instant)
        assert named == fixed

    def test_dst_day_is_23_hours(self):
        boundary = DayBoundary.from_name("America/New_York")
        start, end = boundary.day_range(datetime(2025, 3, 9, 12, 0, tzinfo=UTC))
        # Same-zone subtraction is wall-clock, so compare in UTC
        assert end.astimezone(UTC) - start.astimezone(UTC) == timedelta(hours=23)

    def test_days_back(self):
        boundary = DayBoundary.from_name("UTC")
        now = datetime(2025, 1, 25, 10, 0, tzinfo=UTC)
        assert boundary.days_back(now, 1) == datetime(2025, 1, 25, tzinfo=UTC)
        assert boundary.days_back(now, 7) == datetime(2025, 1, 19, tzinfo=UTC)
