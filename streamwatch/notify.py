"""Structured notifications and the notifier interface that delivers them.

The core never renders messages. It hands notifications to a `Notifier`,
which decides how they reach a destination. `JsonlNotifier` writes one
JSON object per line, tagged with the channel ID configured for the
destination, for a relay process to render and post.
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime
from enum import Enum
from typing import IO, Literal, Protocol

from pydantic import BaseModel

from streamwatch.errors import NotificationDeliveryError

logger = logging.getLogger(__name__)


class Destination(str, Enum):
    LOG = "log"
    ADMIN = "admin"
    DAILY = "daily"
    COMMAND = "command"
    DIRECT = "direct"


class Notification(BaseModel):
    kind: str
    destination: Destination


class BotStarted(Notification):
    kind: Literal["bot-started"] = "bot-started"
    destination: Destination = Destination.LOG
    started_at: datetime


class StreamStarted(Notification):
    kind: Literal["stream-started"] = "stream-started"
    destination: Destination = Destination.LOG
    subject_id: str
    channel_name: str
    start: datetime


class StreamEnded(Notification):
    kind: Literal["stream-ended"] = "stream-ended"
    destination: Destination = Destination.LOG
    subject_id: str
    start: datetime
    end: datetime
    duration_seconds: int
    today_total_seconds: int


class ShortSessionWarning(Notification):
    kind: Literal["short-session-warning"] = "short-session-warning"
    destination: Destination = Destination.ADMIN
    subject_id: str
    start: datetime
    end: datetime
    duration_seconds: int
    today_total_seconds: int


class ToggleAbuseWarning(Notification):
    kind: Literal["toggle-abuse-warning"] = "toggle-abuse-warning"
    destination: Destination = Destination.ADMIN
    subject_id: str
    count: int
    window_seconds: int


class DirectWarning(Notification):
    """Sent to the subject themselves."""

    kind: Literal["direct-warning"] = "direct-warning"
    destination: Destination = Destination.DIRECT
    subject_id: str
    count: int
    window_seconds: int


class LeaderboardEntry(BaseModel):
    rank: int
    subject_id: str
    total_seconds: int


class Leaderboard(Notification):
    """Ranked totals. `day` is set for a single-day report, `days` for a trailing range."""

    kind: Literal["leaderboard"] = "leaderboard"
    destination: Destination = Destination.DAILY
    days: int | None = None
    day: date | None = None
    entries: list[LeaderboardEntry]


class SessionLine(BaseModel):
    start: datetime
    end: datetime | None
    duration_seconds: int


class DailyBreakdown(Notification):
    kind: Literal["daily-breakdown"] = "daily-breakdown"
    destination: Destination = Destination.COMMAND
    subject_id: str
    day: date
    total_seconds: int
    sessions: list[SessionLine]


class NoActivity(Notification):
    kind: Literal["no-activity"] = "no-activity"
    destination: Destination = Destination.COMMAND
    subject_id: str
    days: int


class DeliveryResult(BaseModel):
    delivered: bool
    error: str | None = None


class Notifier(Protocol):
    def send(self, notification: Notification) -> None:
        """Deliver a notification.

        Raises:
            NotificationDeliveryError: If delivery failed.
        """
        ...


def dispatch(notifier: Notifier, notification: Notification) -> DeliveryResult:
    """Best-effort delivery. Failures are logged and reported, never raised."""
    try:
        notifier.send(notification)
    except NotificationDeliveryError as e:
        logger.error(
            "Failed to deliver %s to %s: %s",
            notification.kind,
            notification.destination.value,
            e,
        )
        return DeliveryResult(delivered=False, error=str(e))
    return DeliveryResult(delivered=True)


class JsonlNotifier:
    """Writes notifications as JSON lines to a text stream.

    Each line carries `channel_id`: the configured channel for the
    destination, or the subject ID for direct messages.
    """

    def __init__(self, stream: IO[str], channel_ids: dict[Destination, str]) -> None:
        self._stream = stream
        self._channel_ids = channel_ids

    def send(self, notification: Notification) -> None:
        payload = notification.model_dump(mode="json")
        if notification.destination is Destination.DIRECT:
            channel_id = getattr(notification, "subject_id", None)
        else:
            channel_id = self._channel_ids.get(notification.destination)
        if channel_id is None:
            raise NotificationDeliveryError(
                f"No channel configured for destination '{notification.destination.value}'"
            )
        payload["channel_id"] = channel_id
        try:
            self._stream.write(json.dumps(payload) + "\n")
            self._stream.flush()
        except (OSError, ValueError) as e:
            # ValueError: write to a closed stream
            raise NotificationDeliveryError(str(e)) from e
