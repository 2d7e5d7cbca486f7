"""
Pytest configuration and shared fixtures.
"""

import pytest
import numpy as np

from partonsim.core import vectors
from partonsim.core.beams import BeamParticle, ToyPDF
from partonsim.core.event import STATUS_BEAM, STATUS_HARD_IN, STATUS_HARD_OUT, Event
from partonsim.core.info import EventInfo
from partonsim.core.systems import PartonSystems
from partonsim.evolution.interactions import two_to_two_colours
from partonsim.evolution.sources import CommitResult, EventState, StepKind


def build_hard_event(pt: float = 50.0, ecm: float = 1000.0) -> EventState:
    """
    Beams plus a central gg -> gg scattering at the given pT as subsystem 0.

    Both outgoing gluons sit at y = 0, so x1 = x2 = 2 pT / ecm.
    """
    half = 0.5 * ecm
    pdf = ToyPDF()
    beam_a = BeamParticle(2212, vectors.four_vector(0.0, 0.0, half, half), pdf=pdf, event_index=1)
    beam_b = BeamParticle(2212, vectors.four_vector(0.0, 0.0, -half, half), pdf=pdf, event_index=2)
    event = Event()
    systems = PartonSystems()
    info = EventInfo()

    event.init_system(beam_a.p + beam_b.p)
    for beam in (beam_a, beam_b):
        event.append(beam.id, -STATUS_BEAM, p=beam.p)
    event.set_daughters(0, 1, 2)

    x = pt / half
    _, _, cols_a, cols_b, cols_3, cols_4 = two_to_two_colours(21, 21, event.next_colour_tag)
    i_a = event.append(21, -STATUS_HARD_IN, mothers=(1, 0), daughters=(5, 6), cols=cols_a,
                       p=beam_a.parton_momentum(x), scale=pt)
    i_b = event.append(21, -STATUS_HARD_IN, mothers=(2, 0), daughters=(5, 6), cols=cols_b,
                       p=beam_b.parton_momentum(x), scale=pt)
    event.set_daughters(1, i_a)
    event.set_daughters(2, i_b)
    i_3 = event.append(21, STATUS_HARD_OUT, mothers=(i_a, i_b), cols=cols_3,
                       p=vectors.four_vector(pt, 0.0, 0.0, pt), scale=pt)
    i_4 = event.append(21, STATUS_HARD_OUT, mothers=(i_a, i_b), cols=cols_4,
                       p=vectors.four_vector(-pt, 0.0, 0.0, pt), scale=pt)

    i_sys = systems.add_system()
    systems.set_in_a(i_sys, i_a)
    systems.set_in_b(i_sys, i_b)
    systems.add_out(i_sys, i_3)
    systems.add_out(i_sys, i_4)
    systems.set_s_hat(i_sys, vectors.m2(event[i_3].p + event[i_4].p))
    beam_a.append(i_a, 21, x)
    beam_b.append(i_b, 21, x)
    return EventState(event, systems, beam_a, beam_b, info)


class ScriptedSource:
    """
    Evolution source that offers a fixed list of scales.

    Each scale is consumed by the commit that uses it (accepted or
    refused). MPI commits open a back-to-back gluon subsystem; other
    kinds carbon-copy the first outgoing parton of `system_index`.
    """

    def __init__(self, kind, scales, refuse=(), system_index=0):
        self.kind = kind
        self.scales = sorted(scales, reverse=True)
        self.refuse = set(refuse)
        self.system_index = system_index
        self.state = None
        self.prepared = []
        self.updated = []
        self.resets = 0
        self.committed = []
        self._candidate = None
        self._system = system_index

    def setup(self, state):
        self.state = state
        self._candidate = None

    def reset(self):
        self.resets += 1
        self._candidate = None

    def prepare(self, i_sys):
        self.prepared.append(i_sys)

    def update(self, i_sys):
        self.updated.append(i_sys)

    @property
    def system(self):
        return self._system

    def next_candidate(self, ceiling, floor):
        self._candidate = None
        for scale in self.scales:
            if floor < scale <= ceiling:
                self._candidate = scale
                return scale
        return None

    def commit(self):
        scale = self._candidate
        self._candidate = None
        if scale is None:
            return CommitResult.REFUSED
        self.scales.remove(scale)
        if scale in self.refuse:
            return CommitResult.REFUSED
        self.committed.append(scale)
        if self.kind is StepKind.MPI:
            self._system = self._add_subcollision(scale)
        else:
            event, systems = self.state.event, self.state.systems
            first = systems.get_out(self.system_index)[0]
            status = 44 if self.kind is StepKind.ISR else 51
            systems.replace(self.system_index, first, event.copy(first, status, scale=scale))
            self._system = self.system_index
        return CommitResult.ACCEPTED

    def _add_subcollision(self, scale):
        state = self.state
        event, systems = state.event, state.systems
        x = scale / state.beam_a.energy
        _, _, cols_a, cols_b, cols_3, cols_4 = two_to_two_colours(21, 21, event.next_colour_tag)
        i_a = event.append(21, -31, mothers=(1, 0), daughters=(event.size + 2, event.size + 3),
                           cols=cols_a, p=state.beam_a.parton_momentum(x), scale=scale)
        i_b = event.append(21, -31, mothers=(2, 0), daughters=(event.size + 1, event.size + 2),
                           cols=cols_b, p=state.beam_b.parton_momentum(x), scale=scale)
        i_3 = event.append(21, 33, mothers=(i_a, i_b), cols=cols_3,
                           p=vectors.four_vector(scale, 0.0, 0.0, scale), scale=scale)
        i_4 = event.append(21, 33, mothers=(i_a, i_b), cols=cols_4,
                           p=vectors.four_vector(-scale, 0.0, 0.0, scale), scale=scale)
        i_sys = systems.add_system()
        systems.set_in_a(i_sys, i_a)
        systems.set_in_b(i_sys, i_b)
        systems.add_out(i_sys, i_3)
        systems.add_out(i_sys, i_4)
        state.beam_a.append(i_a, 21, x)
        state.beam_b.append(i_b, 21, x)
        return i_sys


def colour_balance(event, incoming, outgoing) -> dict:
    """
    Net count per colour tag: outgoing colours and incoming anticolours
    count +1, the opposite -1. A consistent colour flow nets to zero.
    """
    balance = {}
    for index in outgoing:
        particle = event[index]
        if particle.col:
            balance[particle.col] = balance.get(particle.col, 0) + 1
        if particle.acol:
            balance[particle.acol] = balance.get(particle.acol, 0) - 1
    for index in incoming:
        particle = event[index]
        if particle.col:
            balance[particle.col] = balance.get(particle.col, 0) - 1
        if particle.acol:
            balance[particle.acol] = balance.get(particle.acol, 0) + 1
    return {tag: net for tag, net in balance.items() if net != 0}


@pytest.fixture
def rng():
    """Reproducible random number generator."""
    return np.random.default_rng(seed=42)


@pytest.fixture
def hard_state():
    """Fresh event with a 50 GeV gg -> gg scattering at 1 TeV."""
    return build_hard_event()


@pytest.fixture
def scripted_source():
    """The ScriptedSource class, for building sources with given scales."""
    return ScriptedSource


@pytest.fixture
def check_colours():
    """Helper returning the unbalanced colour tags (empty when consistent)."""
    return colour_balance
