"""Unit tests for the final-state shower."""

import numpy as np
import pytest

from partonsim.core import vectors
from partonsim.evolution.final_state import FinalStateConfig, FinalStateShower
from partonsim.evolution.scheduler import EvolutionConfig, EvolutionOutcome, EvolutionScheduler
from partonsim.evolution.sources import CommitResult, StepKind


def fsr_only(rng, pt_min=1.0):
    shower = FinalStateShower(rng, FinalStateConfig(pt_min=pt_min))
    scheduler = EvolutionScheduler(
        fsr=shower, config=EvolutionConfig(pt_end=pt_min, do_isr=False, do_mpi=False)
    )
    return shower, scheduler


def run(scheduler, state, upper=50.0, lower=1.0):
    scheduler.setup(state.event, state.systems, state.beam_a, state.beam_b, state.info)
    return scheduler.advance(upper, lower)


class TestFinalStateConfig:
    """Tests for FinalStateConfig."""

    def test_defaults_valid(self):
        FinalStateConfig().validate()

    def test_bad_cutoff(self):
        with pytest.raises(ValueError):
            FinalStateConfig(pt_min=0.0).validate()

    def test_bad_coupling(self):
        with pytest.raises(ValueError):
            FinalStateConfig(alpha_s=1.5).validate()


class TestDipoleEnds:
    """Tests for prepare()."""

    def test_two_gluons_give_four_ends(self, rng, hard_state):
        shower = FinalStateShower(rng)
        shower.setup(hard_state)
        shower.prepare(0)
        ends = shower.dipole_ends
        assert len(ends) == 4
        for end in ends:
            assert {end.radiator, end.recoiler} == {5, 6}
            assert end.pt_max == pytest.approx(50.0)
            assert end.m2_dip == pytest.approx(1e4)

    def test_unscaled_partons_do_not_radiate(self, rng, hard_state):
        event = hard_state.event
        for i in hard_state.systems.get_out(0):
            event[i].scale = 0.0
        shower = FinalStateShower(rng)
        shower.setup(hard_state)
        shower.prepare(0)
        assert shower.dipole_ends == []

    def test_list_dipoles(self, rng, hard_state):
        shower = FinalStateShower(rng)
        shower.setup(hard_state)
        shower.prepare(0)
        assert len(shower.list_dipoles().splitlines()) == 5


class TestTrials:
    """Tests for next_candidate() and commit()."""

    def test_candidate_below_ceiling(self, rng, hard_state):
        shower = FinalStateShower(rng)
        shower.setup(hard_state)
        shower.prepare(0)
        for ceiling in (50.0, 20.0, 5.0):
            scale = shower.next_candidate(ceiling, 1.0)
            if scale is not None:
                assert 1.0 < scale <= ceiling
                assert shower.system == 0

    def test_commit_without_candidate_refused(self, rng, hard_state):
        shower = FinalStateShower(rng)
        shower.setup(hard_state)
        size = len(hard_state.event)
        assert shower.commit() is CommitResult.REFUSED
        assert len(hard_state.event) == size

    def test_single_commit_conserves_dipole(self, rng, hard_state):
        shower = FinalStateShower(rng)
        shower.setup(hard_state)
        shower.prepare(0)
        scale = None
        while scale is None:
            scale = shower.next_candidate(50.0, 1.0)
        assert shower.commit() is CommitResult.ACCEPTED
        event = hard_state.event
        out = hard_state.systems.get_out(0)
        assert len(out) == 3
        total = sum(event[i].p for i in out)
        np.testing.assert_allclose(total, [0.0, 0.0, 0.0, 100.0], atol=1e-9)
        emitted = [i for i in out if event[i].status == 51]
        assert len(emitted) == 2
        assert all(event[i].scale == pytest.approx(scale) for i in out)


class TestEvolution:
    """Tests for a full FSR-only evolution of the hard system."""

    def test_terminates(self, rng, hard_state):
        _, scheduler = fsr_only(rng)
        assert run(scheduler, hard_state) is EvolutionOutcome.TERMINATED
        assert len(scheduler.trace) > 0
        assert all(step.kind is StepKind.FSR for step in scheduler.trace)

    def test_momentum_conserved(self, rng, hard_state):
        _, scheduler = fsr_only(rng)
        run(scheduler, hard_state)
        np.testing.assert_allclose(hard_state.event.momentum_sum(), [0.0, 0.0, 0.0, 100.0], atol=1e-8)

    def test_partons_stay_massless(self, rng, hard_state):
        _, scheduler = fsr_only(rng)
        run(scheduler, hard_state)
        event = hard_state.event
        for i in event.final_state():
            assert abs(vectors.m2(event[i].p)) < 1e-6 * event[i].e ** 2 + 1e-9

    def test_registry_matches_final_state(self, rng, hard_state):
        _, scheduler = fsr_only(rng)
        run(scheduler, hard_state)
        assert sorted(hard_state.systems.get_out(0)) == hard_state.event.final_state()
        assert hard_state.systems.check(hard_state.event) == []

    def test_history_consistent(self, rng, hard_state):
        _, scheduler = fsr_only(rng)
        run(scheduler, hard_state)
        assert hard_state.event.check_history() == []

    def test_colours_balanced(self, rng, hard_state, check_colours):
        _, scheduler = fsr_only(rng)
        run(scheduler, hard_state)
        systems = hard_state.systems
        incoming = [systems.get_in_a(0), systems.get_in_b(0)]
        assert check_colours(hard_state.event, incoming, systems.get_out(0)) == {}

    def test_scales_decrease(self, rng, hard_state):
        _, scheduler = fsr_only(rng)
        run(scheduler, hard_state)
        scales = [step.scale for step in scheduler.trace]
        assert all(a >= b for a, b in zip(scales, scales[1:]))
        assert scales[-1] > 1.0
