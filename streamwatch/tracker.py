"""Stream session state machine.

Turns voice presence changes into closed session records:

    start:  streaming false -> true
    end:    streaming true -> false, or streaming true -> left voice
    no-op:  anything else (audio-only activity, channel moves while
            streaming, bot accounts)

An end with no open session in memory (e.g. the process restarted
mid-stream) is dropped silently; that session is lost.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, field_validator

from streamwatch.config import TrackerPolicy
from streamwatch.db import Session, SessionStore
from streamwatch.errors import PersistenceError
from streamwatch.notify import (
    DirectWarning,
    Notification,
    Notifier,
    ShortSessionWarning,
    StreamEnded,
    StreamStarted,
    ToggleAbuseWarning,
    dispatch,
)
from streamwatch.report import today_total
from streamwatch.timeutil import DayBoundary, calc_seconds, utc_now
from streamwatch.toggles import ToggleTracker

logger = logging.getLogger(__name__)

UNKNOWN_CHANNEL = "unknown"


class PresenceChange(BaseModel):
    """Voice state of one subject before and after a platform update."""

    kind: Literal["voice_state"] = "voice_state"
    subject_id: str
    bot: bool = False
    before_streaming: bool = False
    after_streaming: bool = False
    before_channel_id: str | None = None
    after_channel_id: str | None = None
    before_channel_name: str | None = None
    after_channel_name: str | None = None
    timestamp: datetime | None = None

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class Transition(str, Enum):
    START = "start"
    END = "end"
    NOOP = "noop"


def classify(event: PresenceChange) -> Transition:
    """Decide which transition an event represents. Exactly one applies."""
    if event.bot:
        return Transition.NOOP
    if not event.before_streaming and event.after_streaming:
        return Transition.START
    left_voice = event.after_channel_id is None
    if event.before_streaming and (not event.after_streaming or left_voice):
        return Transition.END
    return Transition.NOOP


class SessionTracker:
    """Holds open sessions and reacts to presence changes.

    Not thread-safe: events must be handled one at a time, in arrival order.
    """

    def __init__(
        self,
        store: SessionStore,
        notifier: Notifier,
        boundary: DayBoundary,
        *,
        policy: TrackerPolicy | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._boundary = boundary
        self._policy = policy or TrackerPolicy()
        self._clock = clock
        self._toggles = ToggleTracker(
            window=self._policy.toggle_window,
            abuse_min=self._policy.abuse_min,
            abuse_max=self._policy.abuse_max,
            repeat_warnings=self._policy.repeat_warnings,
        )
        # subject_id -> start instant of the open session
        self._active: dict[str, datetime] = {}

    @property
    def active(self) -> dict[str, datetime]:
        """Snapshot of open sessions."""
        return dict(self._active)

    @property
    def toggles(self) -> ToggleTracker:
        return self._toggles

    def handle(self, event: PresenceChange) -> Transition:
        """Apply one presence change. Never raises for store or delivery failures."""
        transition = classify(event)
        now = event.timestamp or self._clock()

        if transition is Transition.START:
            self._on_start(event, now)
        elif transition is Transition.END:
            self._on_end(event, now)
        else:
            logger.debug("Ignoring presence change for %s", event.subject_id)
        return transition

    def _send(self, notification: Notification) -> None:
        dispatch(self._notifier, notification)

    def _on_start(self, event: PresenceChange, now: datetime) -> None:
        subject_id = event.subject_id
        if subject_id in self._active:
            logger.info("Replacing stale open session for %s", subject_id)
        self._active[subject_id] = now
        logger.info("Stream started: %s", subject_id)

        count = self._toggles.record(subject_id, now)
        if self._toggles.should_warn(subject_id, count):
            window_seconds = int(self._policy.toggle_window.total_seconds())
            logger.warning("Toggle abuse: %s started %d times in %ds", subject_id, count, window_seconds)
            self._send(ToggleAbuseWarning(subject_id=subject_id, count=count, window_seconds=window_seconds))
            if self._policy.direct_warnings:
                self._send(DirectWarning(subject_id=subject_id, count=count, window_seconds=window_seconds))

        self._send(
            StreamStarted(
                subject_id=subject_id,
                channel_name=event.after_channel_name or UNKNOWN_CHANNEL,
                start=now,
            )
        )

    def _on_end(self, event: PresenceChange, now: datetime) -> None:
        subject_id = event.subject_id
        start = self._active.pop(subject_id, None)
        if start is None:
            logger.debug("No open session for %s; dropping end event", subject_id)
            return

        duration = calc_seconds(start, now)
        logger.info("Stream ended: %s after %ds", subject_id, duration)

        try:
            self._store.create(Session(subject_id=subject_id, start=start, end=now))
        except PersistenceError as e:
            logger.error("Could not save session for %s: %s", subject_id, e)

        try:
            total = today_total(self._store, subject_id, self._boundary, now)
        except PersistenceError as e:
            logger.error("Could not read today's sessions for %s: %s", subject_id, e)
            total = duration

        fields = dict(
            subject_id=subject_id,
            start=start,
            end=now,
            duration_seconds=duration,
            today_total_seconds=total,
        )
        self._send(StreamEnded(**fields))
        if duration < self._policy.short_session.total_seconds():
            self._send(ShortSessionWarning(**fields))
