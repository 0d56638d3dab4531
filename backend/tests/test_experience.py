"""
Tests for the experience window and rate-limited action memory

Test IDs: EW-B01 through EW-B08
"""

import pytest
from conftest import make_state
from shaping.experience import ActionMemory, ExperienceWindow
from shaping.scheduling import ManualClock


class TestExperienceWindow:
    """EW-B01 to EW-B05: Bounded window."""

    def test_append_and_evict_oldest(self):
        """EW-B01: Oldest entries are evicted past max_size."""
        window = ExperienceWindow(max_size=3)
        for i in range(5):
            window.append(make_state(i))
        assert len(window) == 3
        assert [e.state.features[0] for e in window.snapshot()] == [2.0, 3.0, 4.0]
        assert window.total_evicted == 2

    def test_snapshot_does_not_mutate(self):
        window = ExperienceWindow()
        for i in range(4):
            window.append(make_state(i))
        newest = window.snapshot(2)
        assert [e.state.features[0] for e in newest] == [2.0, 3.0]
        assert len(window) == 4

    def test_drain_takes_newest(self):
        """EW-B02: drain(n) keeps older entries by default."""
        window = ExperienceWindow()
        for i in range(5):
            window.append(make_state(i))
        taken = window.drain(2)
        assert [e.state.features[0] for e in taken] == [3.0, 4.0]
        assert [e.state.features[0] for e in window.snapshot()] == [0.0, 1.0, 2.0]

    def test_drain_discard_rest(self):
        """EW-B03: Feedback drains clear the whole window."""
        window = ExperienceWindow()
        for i in range(5):
            window.append(make_state(i))
        taken = window.drain(1, discard_rest=True)
        assert len(taken) == 1
        assert len(window) == 0

    def test_drain_more_than_available(self):
        window = ExperienceWindow()
        window.append(make_state(1))
        assert len(window.drain(10)) == 1
        assert window.drain(10) == []

    def test_resize_keeps_newest(self):
        """EW-B04"""
        window = ExperienceWindow(max_size=10)
        for i in range(6):
            window.append(make_state(i))
        window.resize(2)
        assert window.max_size == 2
        assert [e.state.features[0] for e in window.snapshot()] == [4.0, 5.0]

    def test_invalid_size(self):
        """EW-B05"""
        with pytest.raises(ValueError):
            ExperienceWindow(max_size=0)

    def test_action_is_kept(self):
        window = ExperienceWindow()
        window.append(make_state(1), [0.1, 0.2, 0.3])
        assert window.snapshot()[0].action == (0.1, 0.2, 0.3)


class TestActionMemory:
    """EW-B06 to EW-B08: Rate limiting and retention."""

    def test_rate_limit_per_second(self):
        """EW-B06: At most max_per_second records in any trailing second."""
        clock = ManualClock()
        memory = ActionMemory(clock, max_per_second=5, retention=3.0)
        accepted = []
        for i in range(8):
            accepted.append(memory.record_action(make_state(i, clock.now()), [0.0, 0.0, 0.0]))
            clock.advance(0.01)
        assert accepted == [True] * 5 + [False] * 3
        assert memory.rejected == 3
        assert len(memory) == 5

    def test_rate_limit_window_slides(self):
        clock = ManualClock()
        memory = ActionMemory(clock, max_per_second=2, retention=10.0)
        assert memory.record_action(make_state(0), [0.0])
        assert memory.record_action(make_state(1), [0.0])
        assert not memory.record_action(make_state(2), [0.0])
        clock.advance(1.0)
        assert memory.record_action(make_state(3, clock.now()), [0.0])

    def test_retention_prunes_stale(self):
        """EW-B07: Records older than retention are dropped."""
        clock = ManualClock()
        memory = ActionMemory(clock, max_per_second=10, retention=3.0)
        memory.record_action(make_state(0, 0.0), [0.0])
        clock.advance(2.0)
        memory.record_action(make_state(1, 2.0), [0.0])
        clock.advance(1.5)
        records = memory.snapshot()
        assert [r.state.features[0] for r in records] == [1.0]

    def test_drain_empties(self):
        """EW-B08"""
        clock = ManualClock()
        memory = ActionMemory(clock)
        memory.record_action(make_state(0), [0.5, 0.5, 0.5])
        records = memory.drain()
        assert len(records) == 1
        assert records[0].action == (0.5, 0.5, 0.5)
        assert len(memory) == 0
