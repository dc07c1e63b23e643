"""CLI entry point for streamwatch."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Annotated, Any, NoReturn, Union

import click
from pydantic import Field, TypeAdapter, ValidationError

from streamwatch.commands import TIME_COMMANDS, TOP_COMMANDS, CommandHandler, CommandMessage
from streamwatch.config import DEFAULT_DB_PATH, DEFAULT_TIMEZONE, Settings
from streamwatch.db import SessionStore
from streamwatch.errors import ConfigurationError, PersistenceError, StoreConnectionError
from streamwatch.notify import BotStarted, Destination, JsonlNotifier, Leaderboard, dispatch
from streamwatch.report import daily_leaderboard
from streamwatch.timeutil import format_timestamp, parse_timestamp, utc_now
from streamwatch.tracker import PresenceChange, SessionTracker

logger = logging.getLogger(__name__)

InputEvent = TypeAdapter(
    Annotated[Union[PresenceChange, CommandMessage], Field(discriminator="kind")]
)


def _fail(message: str) -> NoReturn:
    click.echo(message, err=True)
    sys.exit(1)


def _load_settings(ctx: click.Context, *required: Destination) -> Settings:
    """Build settings from the group options, exiting on configuration errors."""
    try:
        settings = Settings.load(**ctx.obj)
        settings.require_channels(*required)
        settings.day_boundary()
    except ConfigurationError as e:
        _fail(f"Configuration error: {e}")
    return settings


def _open_store(db: Path) -> SessionStore:
    db.parent.mkdir(parents=True, exist_ok=True)
    try:
        return SessionStore.open(db)
    except StoreConnectionError as e:
        _fail(str(e))


@click.group()
@click.option(
    "--db",
    "db_path",
    type=click.Path(path_type=Path),
    default=DEFAULT_DB_PATH,
    envvar="STREAMWATCH_DB",
    show_default=True,
    help="Path to SQLite database",
)
@click.option("--log-channel", "log_channel_id", envvar="STREAMWATCH_LOG_CHANNEL_ID", help="Channel for start/end events")
@click.option("--admin-channel", "admin_channel_id", envvar="STREAMWATCH_ADMIN_CHANNEL_ID", help="Channel for warnings")
@click.option("--daily-channel", "daily_channel_id", envvar="STREAMWATCH_DAILY_CHANNEL_ID", help="Channel for the daily leaderboard")
@click.option("--command-channel", "command_channel_id", envvar="STREAMWATCH_COMMAND_CHANNEL_ID", help="Channel commands are read from and answered in")
@click.option(
    "--timezone",
    envvar="STREAMWATCH_TIMEZONE",
    default=DEFAULT_TIMEZONE,
    show_default=True,
    help="IANA zone or UTC offset (e.g. +07:00) that defines midnight",
)
@click.option("--abuse-min", type=int, envvar="STREAMWATCH_ABUSE_MIN", help="Starts within 5 minutes that trigger a warning (default 3)")
@click.option("--abuse-max", type=int, envvar="STREAMWATCH_ABUSE_MAX", help="Upper bound of the warning range (default 10)")
@click.option(
    "--direct-warnings/--no-direct-warnings",
    default=None,
    envvar="STREAMWATCH_DIRECT_WARNINGS",
    help="Also warn the subject directly about toggling",
)
@click.option(
    "--repeat-warnings/--no-repeat-warnings",
    default=None,
    envvar="STREAMWATCH_REPEAT_WARNINGS",
    help="Warn on every start inside the range, not once per burst",
)
@click.option("--leaderboard-size", type=int, envvar="STREAMWATCH_LEADERBOARD_SIZE", help="Entries per leaderboard (default 15)")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    envvar="STREAMWATCH_LOG_LEVEL",
    show_default=True,
)
@click.pass_context
def main(ctx: click.Context, log_level: str, **settings: Any) -> None:
    """Stream session tracker."""
    logging.basicConfig(
        level=log_level.upper(),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = settings


@main.command("track")
@click.pass_context
def track_command(ctx: click.Context) -> None:
    """Track stream sessions from events on stdin (JSONL format).

    Each line is either a voice state change or a chat message:

    \b
        {"kind": "voice_state", "subject_id": "42", "before_streaming": false,
         "after_streaming": true, "after_channel_id": "7", "after_channel_name": "Lobby"}
        {"kind": "message", "author_id": "42", "channel_id": "9", "content": "!top7"}

    Notifications are written to stdout as JSON lines.
    """
    settings = _load_settings(ctx, Destination.LOG, Destination.ADMIN, Destination.COMMAND)
    boundary = settings.day_boundary()
    notifier = JsonlNotifier(sys.stdout, settings.channel_ids())

    valid_count = 0
    has_input = False

    with _open_store(settings.db_path) as store:
        tracker = SessionTracker(store, notifier, boundary, policy=settings.policy)
        commands = CommandHandler(
            store,
            notifier,
            boundary,
            command_channel_id=settings.command_channel_id,
            leaderboard_size=settings.leaderboard_size,
        )
        dispatch(notifier, BotStarted(started_at=utc_now()))

        for line_number, line in enumerate(sys.stdin, 1):
            stripped = line.strip()
            if not stripped:
                continue

            has_input = True

            try:
                event = InputEvent.validate_json(stripped)
            except ValidationError as e:
                click.echo(f"Warning: line {line_number}: invalid event: {e}", err=True)
                continue

            valid_count += 1
            if isinstance(event, PresenceChange):
                tracker.handle(event)
            else:
                commands.handle(event)

        if tracker.active:
            logger.info("Exiting with %d open sessions", len(tracker.active))

    # Exit code 1 if we had input but no valid events (all lines were errors)
    if has_input and valid_count == 0:
        sys.exit(1)


@main.command("report")
@click.option(
    "--day",
    "day_date",
    type=str,
    default=None,
    help="Day to report (YYYY-MM-DD, default: today)",
)
@click.pass_context
def report_command(ctx: click.Context, day_date: str | None) -> None:
    """Post the leaderboard for one day, midnight to midnight.

    Meant to be run by a scheduler just after local midnight with
    --day set to the day that ended. Does nothing if no sessions were
    recorded that day.
    """
    settings = _load_settings(ctx, Destination.DAILY)
    boundary = settings.day_boundary()

    if day_date is None:
        day = utc_now()
    else:
        try:
            day = datetime.strptime(day_date, "%Y-%m-%d").replace(hour=12, tzinfo=boundary.zone)
        except ValueError:
            _fail(f"Invalid date format: {day_date}. Use YYYY-MM-DD.")

    with _open_store(settings.db_path) as store:
        try:
            entries = daily_leaderboard(store, day, boundary, n=settings.leaderboard_size)
        except PersistenceError as e:
            _fail(f"Could not read sessions: {e}")

    day_start, _ = boundary.day_range(day)
    if not entries:
        click.echo(f"No sessions recorded for {day_start.date().isoformat()}", err=True)
        return

    notifier = JsonlNotifier(sys.stdout, settings.channel_ids())
    result = dispatch(notifier, Leaderboard(day=day_start.date(), entries=entries))
    if not result.delivered:
        _fail(f"Could not deliver leaderboard: {result.error}")


@main.command("command")
@click.argument("token", type=click.Choice(sorted(TIME_COMMANDS) + sorted(TOP_COMMANDS)))
@click.option("--caller", help="Subject running the command")
@click.option("--mention", help="Subject to report on instead of the caller")
@click.pass_context
def command_command(ctx: click.Context, token: str, caller: str | None, mention: str | None) -> None:
    """Run a chat command once and print its notifications.

    Example:
        streamwatch command '!time7' --caller 42
        streamwatch command '!top15'
    """
    settings = _load_settings(ctx, Destination.COMMAND)
    target = mention or caller
    if token in TIME_COMMANDS and target is None:
        _fail(f"{token} needs --caller or --mention")

    notifier = JsonlNotifier(sys.stdout, settings.channel_ids())
    with _open_store(settings.db_path) as store:
        handler = CommandHandler(
            store,
            notifier,
            settings.day_boundary(),
            command_channel_id=settings.command_channel_id,
            leaderboard_size=settings.leaderboard_size,
        )
        handler.run(token, target)


@main.command("sessions")
@click.option("--since", help="ISO 8601 timestamp (show sessions started at or after this time)")
@click.option("--subject", "subject_id", help="Only sessions of this subject")
@click.option("--limit", type=int, help="Maximum number of sessions to output")
@click.pass_context
def sessions_command(
    ctx: click.Context,
    since: str | None,
    subject_id: str | None,
    limit: int | None,
) -> None:
    """Dump stored sessions in JSONL format.

    Example:
        streamwatch sessions
        streamwatch sessions --since 2025-01-25T00:00:00+07:00 --subject 42
    """
    settings = _load_settings(ctx)
    if not settings.db_path.exists():
        _fail("No database found")

    start = None
    if since is not None:
        try:
            start = parse_timestamp(since)
        except ValueError:
            _fail(f"Invalid timestamp: {since}")

    with _open_store(settings.db_path) as store:
        try:
            sessions = store.find_by_range(start, subject_id=subject_id, limit=limit)
        except PersistenceError as e:
            _fail(f"Could not read sessions: {e}")

        for session in sessions:
            click.echo(
                json.dumps(
                    {
                        "id": session.id,
                        "subject_id": session.subject_id,
                        "start": format_timestamp(session.start),
                        "end": format_timestamp(session.end) if session.end else None,
                        "duration_seconds": session.duration_seconds(),
                    }
                )
            )


if __name__ == "__main__":
    main()
