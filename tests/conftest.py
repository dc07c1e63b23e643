"""Shared fixtures: a controllable clock, a recording notifier, in-memory stores."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from streamwatch.db import SessionStore
from streamwatch.errors import NotificationDeliveryError
from streamwatch.notify import Notification
from streamwatch.timeutil import DayBoundary

# 10:00 local time at UTC+07:00
T0 = datetime(2025, 1, 25, 3, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[Notification] = []

    def send(self, notification: Notification) -> None:
        self.sent.append(notification)

    def kinds(self) -> list[str]:
        return [n.kind for n in self.sent]

    def of_kind(self, kind: str) -> list[Notification]:
        return [n for n in self.sent if n.kind == kind]


class FailingNotifier:
    def __init__(self) -> None:
        self.attempts = 0

    def send(self, notification: Notification) -> None:
        self.attempts += 1
        raise NotificationDeliveryError("channel unavailable")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(T0)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def failing_notifier() -> FailingNotifier:
    return FailingNotifier()


@pytest.fixture
def boundary() -> DayBoundary:
    return DayBoundary.from_name("+07:00")


@pytest.fixture
def store(clock):
    store = SessionStore.open_in_memory(clock=clock)
    yield store
    store.close()
