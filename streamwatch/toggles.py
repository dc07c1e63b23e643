"""Sliding-window detection of rapid stream on/off toggling."""

from __future__ import annotations

from datetime import datetime, timedelta

TOGGLE_WINDOW = timedelta(minutes=5)


class ToggleTracker:
    """Per-subject list of recent stream starts, pruned to a trailing window.

    A start at exactly `window` ago is still counted.
    """

    def __init__(
        self,
        *,
        window: timedelta = TOGGLE_WINDOW,
        abuse_min: int = 3,
        abuse_max: int = 10,
        repeat_warnings: bool = False,
    ) -> None:
        self.window = window
        self.abuse_min = abuse_min
        self.abuse_max = abuse_max
        self.repeat_warnings = repeat_warnings
        self._starts: dict[str, list[datetime]] = {}
        # Subjects already warned during their current burst
        self._flagged: set[str] = set()

    def record(self, subject_id: str, now: datetime) -> int:
        """Append a start and prune the window. Returns the window size."""
        starts = self._starts.get(subject_id, [])
        starts.append(now)
        pruned = [t for t in starts if now - t <= self.window]
        self._starts[subject_id] = pruned
        if len(pruned) < self.abuse_min:
            self._flagged.discard(subject_id)
        return len(pruned)

    def should_warn(self, subject_id: str, count: int) -> bool:
        """Whether `count` starts in the window warrant an abuse warning.

        Marks the subject as warned, so without `repeat_warnings` the next
        warning waits until the window has dropped below `abuse_min`.
        """
        if not self.abuse_min <= count <= self.abuse_max:
            return False
        if subject_id in self._flagged and not self.repeat_warnings:
            return False
        self._flagged.add(subject_id)
        return True

    def count(self, subject_id: str) -> int:
        return len(self._starts.get(subject_id, []))
