"""Exceptions raised by streamwatch components."""

from __future__ import annotations


class StreamWatchError(Exception):
    """Base exception for streamwatch errors."""

    pass


class ConfigurationError(StreamWatchError):
    """Raised when a required setting is missing or invalid."""

    pass


class StoreConnectionError(StreamWatchError):
    """Raised when the session store cannot be opened."""

    pass


class PersistenceError(StreamWatchError):
    """Raised when a session store read or write fails."""

    def __init__(self, operation: str, cause: Exception) -> None:
        super().__init__(f"{operation} failed: {cause}")
        self.operation = operation


class NotificationDeliveryError(StreamWatchError):
    """Raised by a notifier when a notification could not be delivered."""

    pass
