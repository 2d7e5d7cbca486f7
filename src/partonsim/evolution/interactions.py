"""
Multiple parton interactions: additional 2 -> 2 subcollisions.

The trial pT of the next subcollision follows the regularised QCD
spectrum

    dP/dpT² = f(b) · K / (pT² + pT0²)²

whose Sudakov factor can be inverted exactly. f(b) is the overlap
enhancement of the event, sampled once per event from an exponential
matter profile O(b) = exp(-b^power). Rapidities are flat; a trial whose
momentum fractions exceed what is left in either beam is vetoed and the
evolution continues below it.

Each commit opens a new subsystem. Optionally one incoming parton is an
already produced outgoing parton of an earlier subsystem (rescattering).
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Callable
import logging

import numpy as np
from scipy import integrate

from partonsim.core import vectors
from partonsim.core.beams import QUARK_FLAVOURS, BeamParticle
from partonsim.core.errors import InitializationError
from partonsim.core.event import (
    STATUS_MPI_IN,
    STATUS_MPI_OUT,
    STATUS_RESCATTERED,
    colour_type,
)
from partonsim.evolution.sources import CommitResult, EventState, StepKind

logger = logging.getLogger(__name__)


Colours = tuple[int, int]


def two_to_two_colours(
    id_a: int,
    id_b: int,
    next_tag: Callable[[], int],
    cols_a: Colours | None = None,
) -> tuple[int, int, Colours, Colours, Colours, Colours]:
    """
    Flavours and colours of a gg -> gg or qg -> qg scattering.

    Returns (id_3, id_4, cols_a, cols_b, cols_3, cols_4). Parton 3 takes
    the quark line when there is one. Incoming A may come with colours of
    its own (a rescattered parton); everything else gets fresh tags.
    """
    type_a, type_b = colour_type(id_a), colour_type(id_b)
    if type_a == 2 and type_b == 2:
        t1, t2 = cols_a if cols_a is not None else (next_tag(), next_tag())
        t3, t4 = next_tag(), next_tag()
        return 21, 21, (t1, t2), (t3, t1), (t3, t4), (t4, t2)

    if type_a == 2:
        # Quark on side B: solve with the sides swapped
        id_3, id_4, cb, ca, c3, c4 = _quark_gluon(id_b, next_tag, None, cols_a)
        return id_3, id_4, ca, cb, c3, c4
    if type_b != 2:
        raise ValueError(f"Unsupported 2 -> 2 flavours ({id_a}, {id_b})")
    return _quark_gluon(id_a, next_tag, cols_a, None)


def _quark_gluon(
    id_q: int,
    next_tag: Callable[[], int],
    cols_q: Colours | None,
    cols_g: Colours | None,
) -> tuple[int, int, Colours, Colours, Colours, Colours]:
    if id_q > 0:
        t1 = cols_q[0] if cols_q is not None else next_tag()
        t2, t3 = cols_g if cols_g is not None else (next_tag(), next_tag())
        return id_q, 21, (t1, 0), (t2, t3), (t2, 0), (t1, t3)
    t1 = cols_q[1] if cols_q is not None else next_tag()
    t3, t2 = cols_g if cols_g is not None else (next_tag(), next_tag())
    return id_q, 21, (0, t1), (t3, t2), (0, t2), (t3, t1)


@dataclass
class InteractionsConfig:
    """Configuration for additional interactions."""

    pt0: float = 2.0                    # Regularisation scale (GeV)
    pt_min: float = 1.0                 # Lowest subcollision pT
    strength: float = 15.0              # K in GeV², sets the mean number of interactions
    overlap_power: float = 1.0          # O(b) = exp(-b^power)
    quark_fraction: float = 0.3         # Share of qg -> qg among subcollisions
    rescatter_probability: float = 0.0  # Chance an incoming is an already produced parton
    b_max: float = 12.0                 # Profile is negligible beyond this
    max_trials: int = 10000

    def validate(self):
        if self.pt0 <= 0.0 or self.pt_min <= 0.0:
            raise ValueError("pt0 and pt_min must be positive")
        if self.strength <= 0.0:
            raise ValueError("Interaction strength must be positive")
        if self.overlap_power <= 0.0:
            raise ValueError("overlap_power must be positive")
        if not 0.0 <= self.quark_fraction <= 1.0:
            raise ValueError("quark_fraction must be in [0, 1]")
        if not 0.0 <= self.rescatter_probability <= 1.0:
            raise ValueError("rescatter_probability must be in [0, 1]")


@dataclass
class _MpiTrial:
    pt2: float
    y3: float
    y4: float
    x1: float
    x2: float
    phi: float


class MultipleInteractions:
    """
    Additional-collision source.

    init() once per run, prepare_event() once per event after the hard
    process, then next_candidate()/commit() from the scheduler.
    """

    kind = StepKind.MPI

    def __init__(self, rng: np.random.Generator, config: InteractionsConfig | None = None):
        self.rng = rng
        self.config = config or InteractionsConfig()
        self.ecm = 0.0
        self.enhancement = 1.0
        self.b = 0.0
        self.rescattered_systems: list[int] = []
        self._state: EventState | None = None
        self._candidate: _MpiTrial | None = None
        self._system = 0
        self._mean_overlap = 1.0
        self._b_grid: np.ndarray | None = None
        self._b_cdf: np.ndarray | None = None

    def _overlap(self, b):
        return np.exp(-np.power(b, self.config.overlap_power))

    def init(self, beam_a: BeamParticle, beam_b: BeamParticle, ecm: float):
        """Check phase space and normalise the impact-parameter profile."""
        cfg = self.config
        cfg.validate()
        if ecm <= 0.0:
            raise InitializationError(f"Collision energy must be positive, got {ecm}")
        if 2.0 * cfg.pt_min >= ecm:
            raise InitializationError(
                f"MPI pt_min={cfg.pt_min} leaves no phase space at ecm={ecm}"
            )
        if not (beam_a.is_hadron and beam_b.is_hadron):
            raise InitializationError("Additional interactions need two hadron beams")
        self.ecm = ecm

        norm_o, _ = integrate.quad(lambda b: 2.0 * np.pi * b * self._overlap(b), 0.0, np.inf)
        norm_o2, _ = integrate.quad(lambda b: 2.0 * np.pi * b * self._overlap(b) ** 2, 0.0, np.inf)
        if norm_o <= 0.0:
            raise InitializationError("Overlap profile cannot be normalised")
        self._mean_overlap = norm_o2 / norm_o

        # b distribution of events with a hard interaction follows the overlap
        self._b_grid = np.linspace(0.0, cfg.b_max, 400)
        density = 2.0 * np.pi * self._b_grid * self._overlap(self._b_grid)
        cdf = integrate.cumulative_trapezoid(density, self._b_grid, initial=0.0)
        self._b_cdf = cdf / cdf[-1]
        logger.info(
            "MPI initialised: ecm=%.1f, pt0=%.2f, pt_min=%.2f, <O>=%.4f",
            ecm, cfg.pt0, cfg.pt_min, self._mean_overlap,
        )

    # ───────────────────────────────────────────────────────────────
    # Per-event state
    # ───────────────────────────────────────────────────────────────

    def setup(self, state: EventState):
        self._state = state
        self.reset()

    def reset(self):
        self._candidate = None
        self.rescattered_systems = []

    def prepare_event(self, pt_hard: float = 0.0):
        """Sample the impact parameter and the resulting enhancement factor."""
        if self._b_cdf is None:
            raise InitializationError("MultipleInteractions.init() has not been called")
        self.b = float(np.interp(self.rng.random(), self._b_cdf, self._b_grid))
        self.enhancement = float(self._overlap(self.b) / self._mean_overlap)
        logger.debug("MPI event: b=%.3f, enhancement=%.3f (hard pT %.2f)", self.b, self.enhancement, pt_hard)

    def prepare(self, i_sys: int):
        self._candidate = None

    def update(self, i_sys: int):
        self._candidate = None

    @property
    def system(self) -> int:
        return self._system

    def expected_number(self, pt_max: float) -> float:
        """Mean number of subcollisions between pt_min and pt_max at the current b."""
        cfg = self.config
        pt02 = cfg.pt0 ** 2
        if pt_max <= cfg.pt_min:
            return 0.0
        return self.enhancement * cfg.strength * (
            1.0 / (cfg.pt_min ** 2 + pt02) - 1.0 / (pt_max ** 2 + pt02)
        )

    # ───────────────────────────────────────────────────────────────
    # Trial generation
    # ───────────────────────────────────────────────────────────────

    def next_scale(self, ceiling: float) -> float | None:
        return self.next_candidate(ceiling, self.config.pt_min)

    def next_candidate(self, ceiling: float, floor: float) -> float | None:
        self._candidate = None
        state = self._state
        cfg = self.config
        pt_stop = max(floor, cfg.pt_min)
        pt_start = min(ceiling, 0.5 * self.ecm)
        if pt_start <= pt_stop:
            return None
        pt02 = cfg.pt0 ** 2
        pt2 = pt_start * pt_start
        pt2_stop = pt_stop * pt_stop
        norm = cfg.strength * self.enhancement

        for _ in range(cfg.max_trials):
            inv = 1.0 / (pt2 + pt02) - np.log(self.rng.random()) / norm
            pt2 = 1.0 / inv - pt02
            if pt2 <= pt2_stop:
                return None
            x_t = 2.0 * np.sqrt(pt2) / self.ecm
            y_max = np.arccosh(1.0 / x_t)
            y3 = self.rng.uniform(-y_max, y_max)
            y4 = self.rng.uniform(-y_max, y_max)
            x1 = 0.5 * x_t * (np.exp(y3) + np.exp(y4))
            x2 = 0.5 * x_t * (np.exp(-y3) + np.exp(-y4))
            # Large-x suppression of the flat rapidity sampling
            if self.rng.random() > (1.0 - x1) * (1.0 - x2):
                continue
            if x1 >= state.beam_a.x_max() or x2 >= state.beam_b.x_max():
                continue
            self._candidate = _MpiTrial(pt2, y3, y4, x1, x2, 2.0 * np.pi * self.rng.random())
            self._system = len(state.systems)
            return float(np.sqrt(pt2))
        state.info.messages.record("Warning in MultipleInteractions: too many trials")
        return None

    # ───────────────────────────────────────────────────────────────
    # Commit
    # ───────────────────────────────────────────────────────────────

    def commit(self) -> CommitResult:
        trial = self._candidate
        self._candidate = None
        self.rescattered_systems = []
        if trial is None:
            return CommitResult.REFUSED
        if self.rng.random() < self.config.rescatter_probability:
            rescatter = self._pick_rescatter()
            if rescatter is not None:
                return self._commit_rescatter(trial, *rescatter)
        return self._commit_beams(trial)

    def _pick_flavours(self, x1: float, x2: float, q2: float) -> tuple[int, int]:
        state = self._state
        if self.rng.random() >= self.config.quark_fraction:
            return 21, 21
        side = int(self.rng.integers(0, 2))
        beam, x = (state.beam_a, x1) if side == 0 else (state.beam_b, x2)
        candidates = [q for f in QUARK_FLAVOURS for q in (f, -f)]
        weights = np.array([beam.xf(q, x, q2) for q in candidates])
        if weights.sum() <= 0.0:
            return 21, 21
        quark = candidates[int(self.rng.choice(len(candidates), p=weights / weights.sum()))]
        return (quark, 21) if side == 0 else (21, quark)

    def _commit_beams(self, trial: _MpiTrial) -> CommitResult:
        state = self._state
        event, systems = state.event, state.systems
        beam_a, beam_b = state.beam_a, state.beam_b
        if trial.x1 >= beam_a.x_max() or trial.x2 >= beam_b.x_max():
            return CommitResult.REFUSED

        pt_value = float(np.sqrt(trial.pt2))
        id_a, id_b = self._pick_flavours(trial.x1, trial.x2, trial.pt2)
        id_3, id_4, cols_a, cols_b, cols_3, cols_4 = two_to_two_colours(
            id_a, id_b, event.next_colour_tag
        )
        p3 = vectors.four_vector(pt_value * np.cos(trial.phi), pt_value * np.sin(trial.phi),
                                 pt_value * np.sinh(trial.y3), pt_value * np.cosh(trial.y3))
        p4 = vectors.four_vector(-p3[0], -p3[1],
                                 pt_value * np.sinh(trial.y4), pt_value * np.cosh(trial.y4))

        i_a = event.append(id_a, -STATUS_MPI_IN, mothers=(beam_a.event_index, 0),
                           daughters=(event.size + 2, event.size + 3), cols=cols_a,
                           p=beam_a.parton_momentum(trial.x1), scale=pt_value)
        i_b = event.append(id_b, -STATUS_MPI_IN, mothers=(beam_b.event_index, 0),
                           daughters=(event.size + 1, event.size + 2), cols=cols_b,
                           p=beam_b.parton_momentum(trial.x2), scale=pt_value)
        i_3 = event.append(id_3, STATUS_MPI_OUT, mothers=(i_a, i_b), cols=cols_3, p=p3, scale=pt_value)
        i_4 = event.append(id_4, STATUS_MPI_OUT, mothers=(i_a, i_b), cols=cols_4, p=p4, scale=pt_value)

        i_sys = systems.add_system()
        systems.set_in_a(i_sys, i_a)
        systems.set_in_b(i_sys, i_b)
        systems.add_out(i_sys, i_3)
        systems.add_out(i_sys, i_4)
        systems.set_s_hat(i_sys, vectors.m2(p3 + p4))
        beam_a.append(i_a, id_a, trial.x1)
        beam_b.append(i_b, id_b, trial.x2)

        self._system = i_sys
        logger.debug("MPI %d+%d -> %d+%d at pT=%.3f as system %d", id_a, id_b, id_3, id_4, pt_value, i_sys)
        return CommitResult.ACCEPTED

    def _pick_rescatter(self) -> tuple[int, int, int] | None:
        """Random live outgoing parton of an earlier beam-attached system: (index, system, side)."""
        state = self._state
        systems = state.systems
        candidates = [
            (i, i_sys)
            for i_sys in range(len(systems))
            if systems.get_resonance(i_sys) == 0
            for i in systems.get_out(i_sys)
            if colour_type(state.event[i].id) != 0
        ]
        if not candidates:
            return None
        index, i_sys = candidates[int(self.rng.integers(0, len(candidates)))]
        # The parton meets the beam it is heading into
        side = 1 if state.event[index].p[2] >= 0.0 else 0
        return index, i_sys, side

    def _commit_rescatter(self, trial: _MpiTrial, index: int, old_sys: int, side: int) -> CommitResult:
        state = self._state
        event, systems = state.event, state.systems
        beam = state.beam(side)
        x_beam = trial.x2 if side == 1 else trial.x1
        if x_beam >= beam.x_max():
            return CommitResult.REFUSED
        parton = event[index]
        p_beam = beam.parton_momentum(x_beam)
        p_total = parton.p + p_beam
        s_hat = vectors.m2(p_total)
        if s_hat < 4.0 * trial.pt2:
            return CommitResult.REFUSED

        pt_value = float(np.sqrt(trial.pt2))
        if colour_type(parton.id) == 2 and self.rng.random() < self.config.quark_fraction:
            flavour = int(self.rng.choice(QUARK_FLAVOURS))
            id_beam = flavour if self.rng.random() < 0.5 else -flavour
        else:
            id_beam = 21
        id_3, id_4, cols_r, cols_beam, cols_3, cols_4 = two_to_two_colours(
            parton.id, id_beam, event.next_colour_tag, cols_a=(parton.col, parton.acol)
        )

        # Outgoing pair at pT relative to the collision axis in the pair rest frame
        half = 0.5 * np.sqrt(s_hat)
        axis = vectors.boost_to_rest(parton.p, p_total)[:3]
        e1, e2 = vectors.perpendicular_basis(axis)
        sin_theta = pt_value / half
        cos_theta = np.sqrt(max(1.0 - sin_theta ** 2, 0.0)) * (1.0 if self.rng.random() < 0.5 else -1.0)
        direction = (cos_theta * axis / np.linalg.norm(axis)
                     + sin_theta * (np.cos(trial.phi) * e1 + np.sin(trial.phi) * e2))
        p3_rest = np.append(half * direction, half)
        p4_rest = np.append(-half * direction, half)
        p3 = vectors.boost_from_rest(p3_rest, p_total)
        p4 = vectors.boost_from_rest(p4_rest, p_total)

        i_beam = event.append(id_beam, -STATUS_MPI_IN, mothers=(beam.event_index, 0),
                              daughters=(event.size + 1, event.size + 2), cols=cols_beam,
                              p=p_beam, scale=pt_value)
        # (later, earlier) reads as two separate mothers rather than a range
        i_3 = event.append(id_3, STATUS_MPI_OUT, mothers=(i_beam, index), cols=cols_3, p=p3, scale=pt_value)
        i_4 = event.append(id_4, STATUS_MPI_OUT, mothers=(i_beam, index), cols=cols_4, p=p4, scale=pt_value)
        event.set_status(index, -STATUS_RESCATTERED)
        event.set_daughters(index, i_3, i_4)

        systems.remove_out(old_sys, index)
        i_sys = systems.add_system()
        if side == 1:
            systems.set_in_a(i_sys, index)
            systems.set_in_b(i_sys, i_beam)
        else:
            systems.set_in_a(i_sys, i_beam)
            systems.set_in_b(i_sys, index)
        systems.add_out(i_sys, i_3)
        systems.add_out(i_sys, i_4)
        systems.set_s_hat(i_sys, s_hat)
        beam.append(i_beam, id_beam, x_beam)

        self.rescattered_systems = [old_sys]
        self._system = i_sys
        logger.debug("MPI rescattering of %d (system %d) at pT=%.3f as system %d",
                     index, old_sys, pt_value, i_sys)
        return CommitResult.ACCEPTED
