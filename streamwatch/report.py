"""Duration totals, leaderboards and per-day breakdowns."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel

from streamwatch.db import Session, SessionStore
from streamwatch.notify import LeaderboardEntry
from streamwatch.timeutil import DayBoundary, utc_now

DEFAULT_TOP_N = 15


class DayReport(BaseModel):
    day: date
    sessions: list[Session]
    total_seconds: int


def sum_durations(sessions: list[Session], now: datetime) -> dict[str, int]:
    """Sum clamped durations per subject, in first-seen order.

    A session without an end is measured up to `now`. Stored sessions
    always have an end, so this only matters for degenerate rows.
    """
    totals: dict[str, int] = {}
    for session in sessions:
        totals[session.subject_id] = totals.get(session.subject_id, 0) + session.duration_seconds(now)
    return totals


def totals_for_range(
    store: SessionStore,
    start: datetime,
    end: datetime | None,
    *,
    subject_id: str | None = None,
    now: datetime | None = None,
) -> dict[str, int]:
    """Map subject ID to total seconds for sessions started in [start, end).

    Raises:
        PersistenceError: If the store read fails.
    """
    sessions = store.find_by_range(start, end, subject_id=subject_id)
    return sum_durations(sessions, now or utc_now())


def top_n(totals: dict[str, int], n: int = DEFAULT_TOP_N) -> list[LeaderboardEntry]:
    """Rank by descending total. Ties keep the mapping's insertion order."""
    # sorted() is stable, so equal totals stay in insertion order
    ranked = sorted(totals.items(), key=lambda item: -item[1])[:n]
    return [
        LeaderboardEntry(rank=i, subject_id=subject_id, total_seconds=seconds)
        for i, (subject_id, seconds) in enumerate(ranked, 1)
    ]


def leaderboard(
    store: SessionStore,
    days: int,
    boundary: DayBoundary,
    *,
    now: datetime | None = None,
    n: int = DEFAULT_TOP_N,
) -> list[LeaderboardEntry]:
    """Top subjects over the last `days` days, counting today as one."""
    now = now or utc_now()
    since = boundary.days_back(now, days)
    return top_n(totals_for_range(store, since, None, now=now), n)


def daily_leaderboard(
    store: SessionStore,
    day: datetime,
    boundary: DayBoundary,
    *,
    now: datetime | None = None,
    n: int = DEFAULT_TOP_N,
) -> list[LeaderboardEntry]:
    """Top subjects for the single day containing `day`, midnight to midnight."""
    start, end = boundary.day_range(day)
    return top_n(totals_for_range(store, start, end, now=now), n)


def daily_breakdown(
    store: SessionStore,
    subject_id: str,
    days: int,
    boundary: DayBoundary,
    *,
    now: datetime | None = None,
) -> list[DayReport]:
    """Per-day sessions and totals for one subject, oldest day first.

    Days without sessions are omitted.
    """
    now = now or utc_now()
    reports: list[DayReport] = []
    day_start = boundary.days_back(now, days)
    for _ in range(days):
        start, end = boundary.day_range(day_start)
        sessions = store.find_by_range(start, end, subject_id=subject_id)
        if sessions:
            total = sum(s.duration_seconds(now) for s in sessions)
            reports.append(DayReport(day=start.date(), sessions=sessions, total_seconds=total))
        day_start = end
    return reports


def today_total(
    store: SessionStore,
    subject_id: str,
    boundary: DayBoundary,
    now: datetime,
) -> int:
    """Seconds streamed by one subject since local midnight."""
    start, end = boundary.day_range(now)
    return totals_for_range(store, start, end, subject_id=subject_id, now=now).get(subject_id, 0)
