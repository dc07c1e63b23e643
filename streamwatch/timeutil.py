"""Time helpers: clamped durations, timestamp strings, day boundaries."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from streamwatch.errors import ConfigurationError

_OFFSET_RE = re.compile(r"^(?:UTC)?([+-])(\d{1,2})(?::?(\d{2}))?$")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def calc_seconds(start: datetime, end: datetime) -> int:
    """Whole seconds from start to end, never negative."""
    return max(0, int((end - start).total_seconds()))


def format_timestamp(dt: datetime) -> str:
    """Format as fixed-width UTC ISO 8601 with milliseconds.

    Fixed width keeps lexicographic order equal to chronological order,
    which the store relies on for range queries.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    utc = dt.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def parse_timestamp(ts: str) -> datetime:
    """Parse ISO 8601 timestamp to an aware datetime (naive input is UTC)."""
    dt = datetime.fromisoformat(ts.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_duration(seconds: int) -> str:
    """Format seconds as 'Xh Ym Zs'."""
    hours, rest = divmod(max(0, seconds), 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours}h {minutes}m {secs}s"


def resolve_zone(name: str) -> tzinfo:
    """Resolve an IANA zone name or a fixed offset like '+07:00' / 'UTC-7'.

    Raises:
        ConfigurationError: If the name is neither.
    """
    name = name.strip()
    if name.upper() in ("UTC", "Z"):
        return timezone.utc
    match = _OFFSET_RE.match(name)
    if match:
        sign, hours, minutes = match.groups()
        delta = timedelta(hours=int(hours), minutes=int(minutes or 0))
        if delta >= timedelta(hours=24):
            raise ConfigurationError(f"UTC offset out of range: {name}")
        return timezone(-delta if sign == "-" else delta, name=f"UTC{sign}{hours.zfill(2)}:{minutes or '00'}")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigurationError(f"Unknown timezone: {name}") from e


class DayBoundary:
    """Where one reporting day ends and the next begins.

    All day ranges are half-open: [midnight, next midnight).
    """

    def __init__(self, zone: tzinfo) -> None:
        self.zone = zone

    @classmethod
    def from_name(cls, name: str) -> DayBoundary:
        return cls(resolve_zone(name))

    def start_of_day(self, at: datetime) -> datetime:
        local = at.astimezone(self.zone)
        return local.replace(hour=0, minute=0, second=0, microsecond=0)

    def day_range(self, at: datetime) -> tuple[datetime, datetime]:
        """Get start of the day containing `at` to start of the next day."""
        start = self.start_of_day(at)
        # Rebuild from the date so DST transitions land on real midnights
        next_day = (start + timedelta(days=1)).date()
        end = datetime(next_day.year, next_day.month, next_day.day, tzinfo=self.zone)
        return start, end

    def days_back(self, at: datetime, days: int) -> datetime:
        """Midnight of the day `days - 1` before the day containing `at`."""
        day = self.start_of_day(at).date() - timedelta(days=days - 1)
        return datetime(day.year, day.month, day.day, tzinfo=self.zone)
