"""Unit tests for the veto-hook capability set."""

import pytest

from partonsim.core.event import Event, EventView
from partonsim.core.info import EventInfo
from partonsim.evolution.hooks import Decision, HookContext, HookPoint, VetoHooks, sub_event


def context(point, **kwargs):
    return HookContext(point, **kwargs)


class TestRegistration:
    """Tests for on() / can_intervene()."""

    def test_empty_set(self):
        hooks = VetoHooks()
        for point in HookPoint:
            assert not hooks.can_intervene(point)

    def test_chained_registration(self):
        hooks = VetoHooks().on(HookPoint.STEP, lambda e, c: False).on(HookPoint.MPI_STEP, lambda e, c: False)
        assert hooks.can_intervene(HookPoint.STEP)
        assert hooks.can_intervene(HookPoint.MPI_STEP)
        assert not hooks.can_intervene(HookPoint.FSR_EMISSION)


class TestDecide:
    """Tests for decide()."""

    def test_unregistered_continues(self, hard_state):
        hooks = VetoHooks()
        decision = hooks.decide(HookPoint.STEP, hard_state.event, context(HookPoint.STEP))
        assert decision is Decision.CONTINUE

    def test_bool_results(self, hard_state):
        hooks = VetoHooks().on(HookPoint.STEP, lambda e, c: True)
        assert hooks.decide(HookPoint.STEP, hard_state.event, context(HookPoint.STEP)) is Decision.ABORT
        hooks.on(HookPoint.STEP, lambda e, c: False)
        assert hooks.decide(HookPoint.STEP, hard_state.event, context(HookPoint.STEP)) is Decision.CONTINUE

    def test_decision_results(self, hard_state):
        hooks = VetoHooks().on(HookPoint.ISR_EMISSION, lambda e, c: Decision.ABORT)
        decision = hooks.decide(HookPoint.ISR_EMISSION, hard_state.event, context(HookPoint.ISR_EMISSION))
        assert decision is Decision.ABORT

    def test_non_decision_point_rejected(self, hard_state):
        hooks = VetoHooks()
        with pytest.raises(ValueError):
            hooks.decide(HookPoint.SIGMA_REWEIGHT, hard_state.event, context(HookPoint.SIGMA_REWEIGHT))

    def test_process_level_gets_mutable_event(self, hard_state):
        seen = []
        hooks = VetoHooks().on(HookPoint.PROCESS_LEVEL, lambda e, c: seen.append(e) or False)
        hooks.decide(HookPoint.PROCESS_LEVEL, hard_state.event, context(HookPoint.PROCESS_LEVEL))
        assert isinstance(seen[0], Event)

    @pytest.mark.parametrize("point", [HookPoint.PARTON_LEVEL, HookPoint.STEP, HookPoint.FSR_EMISSION])
    def test_other_points_get_view(self, hard_state, point):
        seen = []
        hooks = VetoHooks().on(point, lambda e, c: seen.append(e) or False)
        hooks.decide(point, hard_state.event, context(point))
        assert isinstance(seen[0], EventView)

    def test_context_passed_through(self, hard_state):
        seen = []
        hooks = VetoHooks().on(HookPoint.STEP, lambda e, c: seen.append(c) or False)
        ctx = context(HookPoint.STEP, n_isr=2, scale=12.5)
        hooks.decide(HookPoint.STEP, hard_state.event, ctx)
        assert seen[0] is ctx


class TestReweightAndScale:
    """Tests for reweight() and resonance_scale()."""

    def test_default_weight(self):
        assert VetoHooks().reweight(EventInfo()) == 1.0

    def test_custom_weight(self):
        hooks = VetoHooks().on(HookPoint.SIGMA_REWEIGHT, lambda info: 0.5 if info.pt_hat > 10 else 2.0)
        info = EventInfo()
        info.pt_hat = 20.0
        assert hooks.reweight(info) == 0.5

    def test_negative_weight_rejected(self):
        hooks = VetoHooks().on(HookPoint.SIGMA_REWEIGHT, lambda info: -1.0)
        with pytest.raises(ValueError):
            hooks.reweight(EventInfo())

    def test_resonance_scale(self, hard_state):
        assert VetoHooks().resonance_scale(5, hard_state.event) is None
        hooks = VetoHooks().on(HookPoint.RESONANCE_SCALE, lambda i, e: e[i].scale / 2)
        assert hooks.resonance_scale(5, hard_state.event) == pytest.approx(25.0)


class TestSubEvent:
    """Tests for sub_event()."""

    def test_hardest_system(self, hard_state):
        work = sub_event(hard_state.event, hard_state.systems)
        assert [p.daughter1 for p in work] == [3, 4, 5, 6]
        assert all(p.mothers == (0, 0) for p in work)
        assert all(p.daughter1 == p.daughter2 for p in work)

    def test_all_final(self, hard_state):
        work = sub_event(hard_state.event, hard_state.systems, is_hardest=False)
        assert [p.daughter1 for p in work] == hard_state.event.final_state()

    def test_detached(self, hard_state):
        work = sub_event(hard_state.event.view(), hard_state.systems)
        work[2].p[0] = 0.0
        assert hard_state.event[5].p[0] == 50.0
