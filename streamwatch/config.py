"""Runtime settings and tracker policy."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, model_validator

from streamwatch.errors import ConfigurationError
from streamwatch.notify import Destination
from streamwatch.timeutil import DayBoundary

DEFAULT_DB_PATH = Path.home() / ".local" / "share" / "streamwatch" / "sessions.db"
DEFAULT_TIMEZONE = "Asia/Ho_Chi_Minh"


class TrackerPolicy(BaseModel):
    """Tunable knobs of the session tracker."""

    abuse_min: int = 3
    abuse_max: int = 10
    direct_warnings: bool = False
    repeat_warnings: bool = False
    toggle_window: timedelta = timedelta(minutes=5)
    short_session: timedelta = timedelta(minutes=5)

    @model_validator(mode="after")
    def _check_range(self) -> "TrackerPolicy":
        if self.abuse_min < 1 or self.abuse_max < self.abuse_min:
            raise ValueError(
                f"abuse range must satisfy 1 <= min <= max (got {self.abuse_min}..{self.abuse_max})"
            )
        return self


class Settings(BaseModel):
    db_path: Path = DEFAULT_DB_PATH
    log_channel_id: str | None = None
    admin_channel_id: str | None = None
    daily_channel_id: str | None = None
    command_channel_id: str | None = None
    timezone: str = DEFAULT_TIMEZONE
    leaderboard_size: int = Field(default=15, ge=1)
    policy: TrackerPolicy = TrackerPolicy()

    @classmethod
    def load(cls, **values: Any) -> Settings:
        """Validate settings, dropping unset (None) values so defaults apply.

        Raises:
            ConfigurationError: If any value is invalid.
        """
        policy_keys = set(TrackerPolicy.model_fields)
        policy = {k: v for k, v in values.items() if k in policy_keys and v is not None}
        rest = {k: v for k, v in values.items() if k not in policy_keys and v is not None}
        try:
            return cls(policy=TrackerPolicy(**policy), **rest)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid settings: {e}") from e

    def require_channels(self, *destinations: Destination) -> None:
        """Raise ConfigurationError naming every missing channel setting."""
        missing = [
            f"STREAMWATCH_{d.value.upper()}_CHANNEL_ID"
            for d in destinations
            if not self.channel_ids().get(d)
        ]
        if missing:
            raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")

    def channel_ids(self) -> dict[Destination, str]:
        pairs = {
            Destination.LOG: self.log_channel_id,
            Destination.ADMIN: self.admin_channel_id,
            Destination.DAILY: self.daily_channel_id,
            Destination.COMMAND: self.command_channel_id,
        }
        return {d: cid for d, cid in pairs.items() if cid}

    def day_boundary(self) -> DayBoundary:
        """Raises ConfigurationError for an unknown zone."""
        return DayBoundary.from_name(self.timezone)
