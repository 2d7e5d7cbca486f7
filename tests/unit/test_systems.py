"""Unit tests for the subsystem registry."""

import pytest

from partonsim.core.systems import PartonSystems


@pytest.fixture
def systems():
    reg = PartonSystems()
    i_sys = reg.add_system()
    reg.set_in_a(i_sys, 3)
    reg.set_in_b(i_sys, 4)
    reg.add_out(i_sys, 5)
    reg.add_out(i_sys, 6)
    return reg


class TestRegistry:
    """Tests for PartonSystems."""

    def test_creation_order(self, systems):
        assert systems.add_system() == 1
        assert len(systems) == 2

    def test_get_all(self, systems):
        assert systems.get_all(0) == [3, 4, 5, 6]
        assert systems.has_incoming(0)

    def test_decay_system_has_no_incoming(self, systems):
        i_sys = systems.add_system(resonance=7)
        systems.add_out(i_sys, 8)
        assert not systems.has_incoming(i_sys)
        assert systems.get_all(i_sys) == [8]
        assert systems.resonance_systems() == [i_sys]

    def test_replace_incoming(self, systems):
        systems.replace(0, 3, 9)
        assert systems.get_in_a(0) == 9

    def test_replace_outgoing_keeps_order(self, systems):
        systems.replace(0, 5, 9)
        assert systems.get_out(0) == [9, 6]

    def test_replace_unknown(self, systems):
        with pytest.raises(ValueError):
            systems.replace(0, 42, 43)

    def test_get_out_is_a_copy(self, systems):
        out = systems.get_out(0)
        out.append(99)
        assert systems.get_out(0) == [5, 6]

    def test_system_of(self, systems):
        assert systems.system_of(6) == 0
        assert systems.system_of(3) is None
        assert systems.system_of(3, outgoing_only=False) == 0

    def test_snapshot_restore(self, systems):
        saved = systems.snapshot()
        systems.add_out(0, 7)
        systems.add_system()
        systems.restore(saved)
        assert len(systems) == 1
        assert systems.get_out(0) == [5, 6]


class TestConsistency:
    """Tests for check() against an event record."""

    def test_flags_dead_and_missing(self, hard_state):
        event, systems = hard_state.event, hard_state.systems
        assert systems.check(event) == []
        systems.add_out(0, 3)     # incoming parton, negative status
        systems.add_out(0, 100)   # beyond the record
        problems = systems.check(event)
        assert any("not live" in p for p in problems)
        assert any("not in record" in p for p in problems)

    def test_flags_duplicates(self, hard_state):
        systems = hard_state.systems
        systems.add_out(0, systems.get_out(0)[0])
        assert any("duplicate" in p for p in systems.check(hard_state.event))
