"""Unit tests for counters, header store, message tally and event info."""

import logging

import pytest

from partonsim.core import info as slots
from partonsim.core.errors import CounterError
from partonsim.core.info import Counters, EventInfo, HeaderStore, MessageTally


class TestCounters:
    """Tests for the counter bank."""

    def test_add(self):
        counters = Counters()
        counters.add(slots.NEXT_BEGUN)
        counters.add(slots.NEXT_BEGUN, 2)
        assert counters.get(slots.NEXT_BEGUN) == 3

    def test_never_decrease(self):
        counters = Counters()
        with pytest.raises(CounterError):
            counters.add(slots.MPI_ACCEPTED, -1)

    def test_engine_slots_not_settable(self):
        counters = Counters()
        with pytest.raises(CounterError):
            counters.set(slots.EVENTS_ACCEPTED, 10)

    def test_external_slots_settable(self):
        counters = Counters()
        counters.set(45, 7)
        assert counters.get(45) == 7

    @pytest.mark.parametrize("index", [-1, 50])
    def test_out_of_range(self, index):
        counters = Counters()
        with pytest.raises(CounterError):
            counters.get(index)

    def test_scope_resets(self):
        counters = Counters()
        for index in (slots.INIT_BEGUN, slots.PROCESS_BEGUN, slots.STEP_BEGUN, 41):
            counters.add(index)
        counters.reset_step()
        assert counters.get(slots.STEP_BEGUN) == 0
        assert counters.get(slots.PROCESS_BEGUN) == 1
        counters.reset_event()
        assert counters.get(slots.PROCESS_BEGUN) == 0
        assert counters.get(slots.INIT_BEGUN) == 1
        assert counters.get(41) == 1

    def test_as_array_detached(self):
        counters = Counters()
        values = counters.as_array()
        values[0] = 99
        assert counters.get(0) == 0


class TestHeaderStore:
    """Tests for the ordered header map."""

    def test_insertion_order(self):
        header = HeaderStore()
        header.set("b", "2")
        header.set("a", "1")
        header.set("b", "3")
        assert header.keys() == ["b", "a"]
        assert header.get("b") == "3"

    def test_missing_key(self):
        header = HeaderStore()
        assert header.get("nothing") == ""
        assert "nothing" not in header


class TestMessageTally:
    """Tests for the warning/error tally."""

    def test_counts(self):
        tally = MessageTally()
        tally.record("Warning in X: one")
        tally.record("Warning in X: one")
        tally.record("Error in Y: two")
        assert tally.count("Warning in X: one") == 2
        assert tally.total() == 3
        assert list(tally.statistics()) == ["Warning in X: one", "Error in Y: two"]

    def test_logs_first_occurrences_only(self, caplog):
        tally = MessageTally(times_to_show=1)
        with caplog.at_level(logging.WARNING, logger="partonsim.core.info"):
            for _ in range(3):
                tally.record("Warning in X: repeated")
        assert sum("repeated" in r.getMessage() for r in caplog.records) == 1
        assert tally.count("Warning in X: repeated") == 3

    def test_reset(self):
        tally = MessageTally()
        tally.record("Warning in X: one")
        tally.reset()
        assert tally.total() == 0


class TestEventInfo:
    """Tests for the per-event summary."""

    def test_clear_keeps_run_objects(self):
        info = EventInfo()
        info.counters.add(slots.INIT_BEGUN)
        info.header.set("key", "value")
        info.n_mpi = 4
        info.weight = 2.5
        info.clear()
        assert info.n_mpi == 0
        assert info.weight == 1.0
        assert info.counters.get(slots.INIT_BEGUN) == 1
        assert info.header.get("key") == "value"
