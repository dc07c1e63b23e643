"""Chat commands: per-subject daily breakdowns and leaderboards.

    !time, !time3, !time7    daily breakdown over 1/3/7 days for the first
                             mentioned subject, else the caller
    !top, !top7, !top15      leaderboard over 1/7/15 days
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from streamwatch.db import SessionStore
from streamwatch.errors import PersistenceError
from streamwatch.notify import (
    DailyBreakdown,
    Destination,
    Leaderboard,
    NoActivity,
    Notification,
    Notifier,
    SessionLine,
    dispatch,
)
from streamwatch.report import DEFAULT_TOP_N, daily_breakdown, leaderboard
from streamwatch.timeutil import DayBoundary, utc_now

logger = logging.getLogger(__name__)

TIME_COMMANDS = {"!time": 1, "!time3": 3, "!time7": 7}
TOP_COMMANDS = {"!top": 1, "!top7": 7, "!top15": 15}


class CommandMessage(BaseModel):
    """A text message posted in a chat channel."""

    kind: Literal["message"] = "message"
    author_id: str
    author_bot: bool = False
    channel_id: str
    content: str
    mention_ids: list[str] = Field(default_factory=list)


def parse_command(content: str) -> str | None:
    """Return the command token if the message starts with a known one."""
    tokens = content.split()
    if not tokens:
        return None
    token = tokens[0]
    if token in TIME_COMMANDS or token in TOP_COMMANDS:
        return token
    return None


class CommandHandler:
    """Answers commands posted in the command channel."""

    def __init__(
        self,
        store: SessionStore,
        notifier: Notifier,
        boundary: DayBoundary,
        *,
        command_channel_id: str | None = None,
        leaderboard_size: int = DEFAULT_TOP_N,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._boundary = boundary
        self._command_channel_id = command_channel_id
        self._leaderboard_size = leaderboard_size
        self._clock = clock

    def handle(self, message: CommandMessage) -> list[Notification]:
        """Handle a chat message. Messages from bots or other channels are ignored."""
        if message.author_bot:
            return []
        if self._command_channel_id is not None and message.channel_id != self._command_channel_id:
            return []
        token = parse_command(message.content)
        if token is None:
            return []
        target = message.mention_ids[0] if message.mention_ids else message.author_id
        return self.run(token, target)

    def run(self, token: str, target_id: str | None = None) -> list[Notification]:
        """Run a command token and dispatch its notifications.

        Returns the notifications produced; empty for unknown tokens or
        when the store could not be read.
        """
        now = self._clock()
        try:
            if token in TIME_COMMANDS:
                if target_id is None:
                    raise ValueError(f"{token} needs a target subject")
                notifications = self._time(target_id, TIME_COMMANDS[token], now)
            elif token in TOP_COMMANDS:
                notifications = self._top(TOP_COMMANDS[token], now)
            else:
                logger.debug("Ignoring unknown command %r", token)
                return []
        except PersistenceError as e:
            logger.error("Command %s failed for %s: %s", token, target_id, e)
            return []

        for notification in notifications:
            dispatch(self._notifier, notification)
        return notifications

    def _time(self, subject_id: str, days: int, now: datetime) -> list[Notification]:
        reports = daily_breakdown(self._store, subject_id, days, self._boundary, now=now)
        if not reports:
            return [NoActivity(subject_id=subject_id, days=days)]
        return [
            DailyBreakdown(
                subject_id=subject_id,
                day=report.day,
                total_seconds=report.total_seconds,
                sessions=[
                    SessionLine(start=s.start, end=s.end, duration_seconds=s.duration_seconds(now))
                    for s in report.sessions
                ],
            )
            for report in reports
        ]

    def _top(self, days: int, now: datetime) -> list[Notification]:
        entries = leaderboard(self._store, days, self._boundary, now=now, n=self._leaderboard_size)
        return [Leaderboard(destination=Destination.COMMAND, days=days, entries=entries)]
