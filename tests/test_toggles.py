"""Tests for the toggle window."""

from datetime import timedelta

from conftest import T0
from streamwatch.toggles import ToggleTracker


def at(seconds: float):
    return T0 + timedelta(seconds=seconds)


class TestWindow:
    def test_counts_starts_within_five_minutes(self):
        toggles = ToggleTracker()
        assert toggles.record("A", at(0)) == 1
        assert toggles.record("A", at(100)) == 2
        assert toggles.record("A", at(200)) == 3

    def test_start_exactly_at_window_edge_is_kept(self):
        toggles = ToggleTracker()
        toggles.record("A", at(0))
        assert toggles.record("A", at(300)) == 2

    def test_older_starts_are_pruned(self):
        toggles = ToggleTracker()
        toggles.record("A", at(0))
        toggles.record("A", at(10))
        assert toggles.record("A", at(305)) == 2
        assert toggles.count("A") == 2

    def test_custom_window(self):
        toggles = ToggleTracker(window=timedelta(seconds=30))
        toggles.record("A", at(0))
        assert toggles.record("A", at(31)) == 1

    def test_unknown_subject_has_zero_count(self):
        assert ToggleTracker().count("nobody") == 0


class TestShouldWarn:
    def test_below_range(self):
        toggles = ToggleTracker()
        assert toggles.should_warn("A", 2) is False

    def test_above_range(self):
        toggles = ToggleTracker(abuse_max=5)
        assert toggles.should_warn("A", 6) is False

    def test_once_per_burst(self):
        toggles = ToggleTracker()
        results = [toggles.should_warn("A", toggles.record("A", at(s))) for s in (0, 10, 20, 30, 40)]
        assert results == [False, False, True, False, False]

    def test_rearms_after_window_drains(self):
        toggles = ToggleTracker()
        for s in (0, 10, 20):
            toggles.should_warn("A", toggles.record("A", at(s)))

        # Twenty minutes later the window holds one start again
        results = [
            toggles.should_warn("A", toggles.record("A", at(s)))
            for s in (1200, 1210, 1220)
        ]
        assert results == [False, False, True]

    def test_repeat_warnings_within_bounds(self):
        toggles = ToggleTracker(abuse_min=3, abuse_max=4, repeat_warnings=True)
        results = [toggles.should_warn("A", toggles.record("A", at(s))) for s in (0, 10, 20, 30, 40)]
        assert results == [False, False, True, True, False]
