"""
Initial-state shower: backwards evolution of the incoming partons.

Starting from an incoming parton D with momentum fraction x, the shower
asks which mother M with fraction x/z could have produced it by emitting
a sister S. The trial density is the splitting kernel times the parton
density ratio xf_M(x/z) / xf_D(x), so that the emissions line up with
what the beam could actually have supplied.

On commit the new mother becomes the incoming parton of the subsystem,
the sister joins the outgoing list, and every other outgoing parton is
boosted so the subsystem absorbs the recoil:

    p_M = p_D / z,         ŝ_new = ŝ_old / z
    p_S = a p_M + b p_R + k_T,    a + b = 1 - z,   a b = pT² / ŝ_new
"""

from __future__ import annotations
from dataclasses import dataclass, field
import logging

import numpy as np

from partonsim.core import vectors
from partonsim.core.event import (
    STATUS_ISR_MOTHER,
    STATUS_ISR_RECOILER,
    STATUS_ISR_SHIFTED,
    STATUS_ISR_SISTER,
    colour_type,
)
from partonsim.evolution.kernels import (
    ANTI,
    SAME,
    AlphaStrong,
    Splitting,
    initial_state_splittings,
    sample_shape,
)
from partonsim.evolution.sources import CommitResult, EventState, StepKind

logger = logging.getLogger(__name__)


@dataclass
class InitialStateConfig:
    """Configuration for the initial-state shower."""

    pt_min: float = 1.0            # Cutoff (GeV)
    alpha_s: float = 0.137
    alpha_s_running: bool = False
    n_flavours: int = 5
    pt_max_factor: float = 1.0     # Multiplies the incoming partons' production scale
    pdf_headroom: float = 1.5      # Safety factor on the sampled density-ratio maximum
    ratio_grid_points: int = 8     # z points used to estimate the ratio maximum
    max_trials: int = 10000

    def validate(self):
        if self.pt_min <= 0.0:
            raise ValueError("Initial-state cutoff must be positive")
        if self.pdf_headroom < 1.0:
            raise ValueError("pdf_headroom must be at least 1")
        if not 0.0 < self.alpha_s < 1.0:
            raise ValueError(f"alpha_s must be in (0, 1), got {self.alpha_s}")


@dataclass
class _IsrEnd:
    """One incoming parton that may be evolved backwards."""

    system: int
    side: int              # 0 beam A, 1 beam B
    index: int             # Event index of the incoming parton
    recoiler: int          # The other incoming parton
    position: int          # Entry in the beam's resolved list
    x: float
    s_hat: float
    pt_max: float
    z_min: float
    z_max: float
    splittings: list[Splitting] = field(default_factory=list)
    ratio_max: np.ndarray | None = None


@dataclass
class _IsrTrial:
    end: _IsrEnd
    pt2: float
    z: float
    splitting: Splitting
    mother_id: int
    sister_id: int
    phi: float


def _flavours(splitting: Splitting, daughter_id: int) -> tuple[int, int]:
    """Resolve the (mother, sister) sentinels of a backwards channel."""
    mother, sister = splitting.ids
    mother = daughter_id if mother == SAME else mother
    sister = -daughter_id if sister == ANTI else sister
    return mother, sister


class InitialStateShower:
    """
    Incoming-branching engine.

    Works on subsystems whose incoming pair are both resolved from the
    beams and whose outgoing momenta balance the incoming ones.
    """

    kind = StepKind.ISR

    def __init__(self, rng: np.random.Generator, config: InitialStateConfig | None = None):
        self.rng = rng
        self.config = config or InitialStateConfig()
        self.alpha_s = AlphaStrong(
            value=self.config.alpha_s,
            running=self.config.alpha_s_running,
            n_flavours=self.config.n_flavours,
        )
        self._state: EventState | None = None
        self._ends: dict[int, list[_IsrEnd]] = {}
        self._candidate: _IsrTrial | None = None
        self._system = 0

    def setup(self, state: EventState):
        self._state = state
        self.reset()

    def reset(self):
        self._ends.clear()
        self._candidate = None

    @property
    def system(self) -> int:
        return self._system

    @property
    def ends(self) -> list[_IsrEnd]:
        return [end for ends in self._ends.values() for end in ends]

    # ───────────────────────────────────────────────────────────────
    # Preparation
    # ───────────────────────────────────────────────────────────────

    def prepare(self, i_sys: int):
        self._ends[i_sys] = self._build_ends(i_sys)
        self._candidate = None

    def update(self, i_sys: int):
        self.prepare(i_sys)

    def _build_ends(self, i_sys: int) -> list[_IsrEnd]:
        state = self._state
        event, systems = state.event, state.systems
        if not systems.has_incoming(i_sys):
            return []
        in_a, in_b = systems.get_in_a(i_sys), systems.get_in_b(i_sys)
        pos_a, pos_b = state.beam_a.find(in_a), state.beam_b.find(in_b)
        if pos_a is None or pos_b is None:
            return []

        # Recoil is spread over the outgoing partons, so they must balance the incoming pair
        p_in = event[in_a].p + event[in_b].p
        p_out = np.zeros(4)
        for i in systems.get_out(i_sys):
            p_out += event[i].p
        if not np.allclose(p_in, p_out, rtol=1e-6, atol=1e-6 * p_in[3]):
            return []

        s_hat = vectors.m2(p_in)
        if s_hat <= 0.0:
            return []
        pt_min = self.config.pt_min
        ends = []
        for side, index, recoiler, position in ((0, in_a, in_b, pos_a), (1, in_b, in_a, pos_b)):
            beam = state.beam(side)
            if not beam.is_resolved:
                continue
            parton = event[index]
            x = beam[position].x
            pt_max = min(parton.scale * self.config.pt_max_factor, 0.5 * np.sqrt(s_hat))
            if pt_max <= pt_min:
                continue
            x_avail = beam.x_max(skip=position)
            if x_avail <= x:
                continue
            z_min = x / x_avail
            z_max = 1.0 - 2.0 * pt_min / np.sqrt(s_hat)
            if z_max <= z_min:
                continue
            splittings = initial_state_splittings(parton.id, self.config.n_flavours)
            if not splittings:
                continue
            end = _IsrEnd(i_sys, side, index, recoiler, position, x, s_hat, pt_max,
                          z_min, z_max, splittings)
            end.ratio_max = self._ratio_maxima(end, parton.id)
            if np.any(end.ratio_max > 0.0):
                ends.append(end)
        return ends

    def _ratio_maxima(self, end: _IsrEnd, daughter_id: int) -> np.ndarray:
        """Per-channel upper estimate of xf_mother(x/z) / xf_daughter(x) over the z range."""
        beam = self._state.beam(end.side)
        z_grid = np.geomspace(end.z_min, end.z_max, self.config.ratio_grid_points)
        q2_values = (self.config.pt_min ** 2, end.pt_max ** 2)
        maxima = np.zeros(len(end.splittings))
        for q2 in q2_values:
            xf_daughter = beam.xf(daughter_id, end.x, q2)
            if xf_daughter <= 0.0:
                continue
            for k, splitting in enumerate(end.splittings):
                mother_id, _ = _flavours(splitting, daughter_id)
                ratios = [beam.xf(mother_id, end.x / z, q2) / xf_daughter for z in z_grid]
                maxima[k] = max(maxima[k], max(ratios))
        return maxima * self.config.pdf_headroom

    # ───────────────────────────────────────────────────────────────
    # Trial generation
    # ───────────────────────────────────────────────────────────────

    def next_candidate(self, ceiling: float, floor: float) -> float | None:
        self._candidate = None
        best: _IsrTrial | None = None
        for end in self.ends:
            pt_start = min(ceiling, end.pt_max)
            pt_stop = max(floor, self.config.pt_min)
            if best is not None:
                pt_stop = max(pt_stop, np.sqrt(best.pt2))
            if pt_start <= pt_stop:
                continue
            trial = self._evolve_end(end, pt_start * pt_start, pt_stop * pt_stop)
            if trial is not None and (best is None or trial.pt2 > best.pt2):
                best = trial
        self._candidate = best
        if best is None:
            return None
        self._system = best.end.system
        return float(np.sqrt(best.pt2))

    def _evolve_end(self, end: _IsrEnd, pt2: float, pt2_stop: float) -> _IsrTrial | None:
        rng = self.rng
        state = self._state
        beam = state.beam(end.side)
        daughter_id = state.event[end.index].id

        weights = np.array([
            s.integral(end.z_min, end.z_max) * r for s, r in zip(end.splittings, end.ratio_max)
        ])
        total = weights.sum()
        if total <= 0.0:
            return None
        coupling_max = self.alpha_s.maximum(self.config.pt_min ** 2)
        a_over = coupling_max / (2.0 * np.pi) * total
        choice = weights / total

        for _ in range(self.config.max_trials):
            pt2 *= rng.random() ** (1.0 / a_over)
            if pt2 <= pt2_stop:
                return None
            k = int(rng.choice(len(choice), p=choice))
            splitting = end.splittings[k]
            z = sample_shape(splitting.shape, end.z_min, end.z_max, rng)
            # Sister must fit: (1-z)² >= 4 pT² / ŝ_new
            if (1.0 - z) ** 2 * end.s_hat < 4.0 * pt2 * z:
                continue
            mother_id, sister_id = _flavours(splitting, daughter_id)
            xf_daughter = beam.xf(daughter_id, end.x, pt2)
            if xf_daughter <= 0.0:
                return None
            ratio = beam.xf(mother_id, end.x / z, pt2) / xf_daughter
            weight = splitting.accept_weight(z) * ratio / end.ratio_max[k]
            weight *= self.alpha_s(pt2) / coupling_max
            if weight > 1.0:
                state.info.messages.record(
                    "Warning in InitialStateShower: weight above unity", f"({weight:.3f})"
                )
            if rng.random() < weight:
                return _IsrTrial(end, pt2, z, splitting, mother_id, sister_id,
                                 2.0 * np.pi * rng.random())
        state.info.messages.record("Warning in InitialStateShower: too many trials")
        return None

    # ───────────────────────────────────────────────────────────────
    # Commit
    # ───────────────────────────────────────────────────────────────

    def commit(self) -> CommitResult:
        trial = self._candidate
        self._candidate = None
        if trial is None:
            return CommitResult.REFUSED
        state = self._state
        event, systems = state.event, state.systems
        end = trial.end
        beam = state.beam(end.side)
        daughter = event[end.index]
        recoiler = event[end.recoiler]

        z, pt2 = trial.z, trial.pt2
        x_mother = end.x / z
        if x_mother > beam.x_max(skip=end.position):
            return CommitResult.REFUSED

        p_d, p_r = daughter.p.copy(), recoiler.p.copy()
        p_mother = p_d / z
        s_new = vectors.m2(p_mother + p_r)
        disc = (1.0 - z) ** 2 - 4.0 * pt2 / s_new
        if disc < 0.0:
            return CommitResult.REFUSED
        a = 0.5 * ((1.0 - z) + np.sqrt(disc))
        b = 0.5 * ((1.0 - z) - np.sqrt(disc))

        pt_value = float(np.sqrt(pt2))
        e1, e2 = vectors.perpendicular_basis(np.array([0.0, 0.0, 1.0]))
        k_t = np.zeros(4)
        k_t[:3] = pt_value * (np.cos(trial.phi) * e1 + np.sin(trial.phi) * e2)
        p_sister = a * p_mother + b * p_r + k_t
        p_d_new = p_mother - p_sister

        p_old = p_d + p_r
        p_new = p_d_new + p_r
        outgoing = systems.get_out(end.system)
        boosted = [
            vectors.boost_from_rest(vectors.boost_to_rest(event[i].p, p_old), p_new)
            for i in outgoing
        ]

        cols_mother, cols_sister = self._colours(trial, daughter.id, (daughter.col, daughter.acol))

        i_mother = event.append(
            trial.mother_id, -STATUS_ISR_MOTHER,
            mothers=(beam.event_index, 0),
            daughters=(event.size + 1, event.size + 2),
            cols=cols_mother, p=p_mother, scale=pt_value,
        )
        i_daughter = event.append(
            daughter.id, -STATUS_ISR_MOTHER,
            mothers=(i_mother, end.index),
            cols=(daughter.col, daughter.acol),
            p=p_d_new, m=vectors.mass(p_d_new), scale=pt_value,
        )
        i_sister = event.append(
            trial.sister_id, STATUS_ISR_SISTER, mothers=(i_mother, 0),
            cols=cols_sister, p=p_sister, scale=pt_value,
        )
        i_recoiler = event.copy(end.recoiler, -STATUS_ISR_RECOILER)
        copies = [event.copy(i, STATUS_ISR_SHIFTED, p=p) for i, p in zip(outgoing, boosted)]

        event.set_daughters(end.index, i_daughter, i_daughter)
        if copies:
            event.set_daughters(i_daughter, copies[0], copies[-1])
            event.set_daughters(i_recoiler, copies[0], copies[-1])
        else:
            event.set_daughters(i_daughter, i_sister, i_sister)
            event.set_daughters(i_recoiler, i_sister, i_sister)

        systems.replace(end.system, end.index, i_mother)
        systems.replace(end.system, end.recoiler, i_recoiler)
        systems.set_out(end.system, copies + [i_sister])
        systems.set_s_hat(end.system, s_new)

        beam.update(end.position, i_mother, trial.mother_id, x_mother)
        other = state.beam(1 - end.side)
        pos_r = other.find(end.recoiler)
        if pos_r is not None:
            resolved = other[pos_r]
            other.update(pos_r, i_recoiler, resolved.id, resolved.x)

        self._system = end.system
        logger.debug(
            "ISR %s at pT=%.3f in system %d, side %d, x %.4g -> %.4g",
            trial.splitting.name, pt_value, end.system, end.side, end.x, x_mother,
        )
        return CommitResult.ACCEPTED

    def _colours(
        self, trial: _IsrTrial, daughter_id: int, cols: tuple[int, int]
    ) -> tuple[tuple[int, int], tuple[int, int]]:
        """Colours of (mother, sister) given the daughter's colours."""
        event = self._state.event
        col, acol = cols
        new_tag = event.next_colour_tag()
        mother_type = colour_type(trial.mother_id)
        daughter_type = colour_type(daughter_id)

        if daughter_type == 2 and mother_type == 2:
            if self.rng.random() < 0.5:
                return (new_tag, acol), (new_tag, col)
            return (col, new_tag), (acol, new_tag)
        if daughter_type == 2:
            # Quark mother emits a quark sister and keeps one gluon colour line
            if mother_type == 1:
                return (col, 0), (acol, 0)
            return (0, acol), (0, col)
        if mother_type == 2:
            # Gluon mother; the sister is the antiparticle of the daughter
            if daughter_type == 1:
                return (col, new_tag), (0, new_tag)
            return (new_tag, acol), (new_tag, 0)
        # Quark mother radiating a gluon sister
        if daughter_type == 1:
            return (new_tag, 0), (new_tag, col)
        return (0, new_tag), (acol, new_tag)
