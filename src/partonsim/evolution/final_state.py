"""
Final-state shower: the outgoing-branching source.

Each subsystem is turned into a list of dipole ends, one per radiating
parton and colour (or charge) partner. The shower picks a trial pT for
every end with the veto algorithm and offers the largest one to the
scheduler. Only when the scheduler picks it is the branching carried
out, with massless dipole kinematics:

    p_i   = z p_rad + (1-z) y p_rec + k_T
    p_j   = (1-z) p_rad + z y p_rec - k_T
    p_rec'= (1-y) p_rec,          y = pT² / (z (1-z) m²_dip)

which conserves the dipole momentum and keeps all three on shell. A
trial with y >= 1 has no physical recoil and is refused at commit time.
"""

from __future__ import annotations
from dataclasses import dataclass, field
import logging

import numpy as np

from partonsim.core import vectors
from partonsim.core.event import (
    STATUS_FSR_DAUGHTER,
    STATUS_FSR_RECOILER,
    colour_type,
    charge,
)
from partonsim.evolution.kernels import (
    AlphaStrong,
    Splitting,
    SAME,
    final_state_splittings,
    photon_splittings,
    sample_shape,
)
from partonsim.evolution.sources import CommitResult, EventState, StepKind

logger = logging.getLogger(__name__)

ALPHA_EM = 1.0 / 137.036


@dataclass
class FinalStateConfig:
    """Configuration for the final-state shower."""

    pt_min: float = 0.5            # Cutoff for QCD emissions (GeV)
    pt_min_qed: float = 0.5        # Cutoff for photon emissions
    alpha_s: float = 0.137         # alpha_s (fixed) or alpha_s(M_Z) (running)
    alpha_s_running: bool = False
    n_flavours: int = 5            # Flavours open in g -> q qbar
    qed: bool = False              # Also radiate photons off charged partons
    max_trials: int = 10000        # Veto-algorithm iterations per dipole end

    def validate(self):
        if self.pt_min <= 0.0 or self.pt_min_qed <= 0.0:
            raise ValueError("Final-state cutoffs must be positive")
        if not 0.0 < self.alpha_s < 1.0:
            raise ValueError(f"alpha_s must be in (0, 1), got {self.alpha_s}")


@dataclass
class DipoleEnd:
    """Radiator/recoiler pair with its allowed pT range."""

    system: int
    radiator: int
    recoiler: int
    side: int              # +1 colour end, -1 anticolour end, 0 charge end
    pt_max: float
    m2_dip: float
    splittings: list[Splitting] = field(default_factory=list)
    qed: bool = False


@dataclass
class _FsrTrial:
    end: DipoleEnd
    pt2: float
    z: float
    splitting: Splitting
    phi: float


class FinalStateShower:
    """
    Outgoing-branching engine.

    Dipole ends are rebuilt per subsystem by prepare(); trials are cached
    between next_candidate() and commit() and nowhere else.
    """

    kind = StepKind.FSR

    def __init__(self, rng: np.random.Generator, config: FinalStateConfig | None = None):
        self.rng = rng
        self.config = config or FinalStateConfig()
        self.alpha_s = AlphaStrong(
            value=self.config.alpha_s,
            running=self.config.alpha_s_running,
            n_flavours=self.config.n_flavours,
        )
        self._state: EventState | None = None
        self._ends: dict[int, list[DipoleEnd]] = {}
        self._candidate: _FsrTrial | None = None
        self._system = 0

    # ───────────────────────────────────────────────────────────────
    # Bookkeeping
    # ───────────────────────────────────────────────────────────────

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
    def dipole_ends(self) -> list[DipoleEnd]:
        return [end for ends in self._ends.values() for end in ends]

    def prepare(self, i_sys: int):
        """Find every colour and charge dipole end among the system's outgoing partons."""
        event = self._state.event
        outgoing = self._state.systems.get_out(i_sys)
        ends: list[DipoleEnd] = []
        for i_rad in outgoing:
            rad = event[i_rad]
            if rad.scale <= 0.0:
                continue
            splittings = final_state_splittings(rad.id, self.config.n_flavours)
            if splittings:
                if rad.col > 0:
                    i_rec = self._colour_partner(i_rad, outgoing, "acol", rad.col)
                    self._add_end(ends, i_sys, i_rad, i_rec, +1, splittings)
                if rad.acol > 0:
                    i_rec = self._colour_partner(i_rad, outgoing, "col", rad.acol)
                    self._add_end(ends, i_sys, i_rad, i_rec, -1, splittings)
            if self.config.qed and charge(rad.id) != 0.0:
                i_rec = self._charge_partner(i_rad, outgoing)
                self._add_end(ends, i_sys, i_rad, i_rec, 0, photon_splittings(charge(rad.id)), qed=True)
        self._ends[i_sys] = ends
        self._candidate = None

    def update(self, i_sys: int):
        self.prepare(i_sys)

    def _colour_partner(self, i_rad: int, outgoing: list[int], attr: str, tag: int) -> int:
        event = self._state.event
        for i in outgoing:
            if i != i_rad and getattr(event[i], attr) == tag:
                return i
        # Colour connected outside the system (e.g. to a beam): any other parton recoils
        return self._any_other(i_rad, outgoing)

    def _charge_partner(self, i_rad: int, outgoing: list[int]) -> int:
        event = self._state.event
        q_rad = charge(event[i_rad].id)
        best = 0
        for i in outgoing:
            if i == i_rad:
                continue
            q = charge(event[i].id)
            if q * q_rad < 0.0:
                return i
            if q != 0.0 and best == 0:
                best = i
        return best or self._any_other(i_rad, outgoing)

    @staticmethod
    def _any_other(i_rad: int, outgoing: list[int]) -> int:
        for i in outgoing:
            if i != i_rad:
                return i
        return 0

    def _add_end(
        self,
        ends: list[DipoleEnd],
        i_sys: int,
        i_rad: int,
        i_rec: int,
        side: int,
        splittings: list[Splitting],
        qed: bool = False,
    ):
        if i_rec <= 0 or not splittings:
            return
        event = self._state.event
        m2_dip = vectors.m2(event[i_rad].p + event[i_rec].p)
        cutoff = self.config.pt_min_qed if qed else self.config.pt_min
        if m2_dip <= 4.0 * cutoff * cutoff:
            return
        # Massless dipole kinematics only
        for i in (i_rad, i_rec):
            if abs(vectors.m2(event[i].p)) > 1e-6 * m2_dip:
                return
        pt_max = min(event[i_rad].scale, 0.5 * np.sqrt(m2_dip))
        ends.append(DipoleEnd(i_sys, i_rad, i_rec, side, pt_max, m2_dip, splittings, qed))

    def list_dipoles(self) -> str:
        lines = ["  sys   rad   rec  side     pTmax      mDip"]
        for end in self.dipole_ends:
            lines.append(
                f"{end.system:5d} {end.radiator:5d} {end.recoiler:5d} {end.side:5d} "
                f"{end.pt_max:9.3f} {np.sqrt(end.m2_dip):9.3f}"
            )
        return "\n".join(lines)

    # ───────────────────────────────────────────────────────────────
    # Trial generation
    # ───────────────────────────────────────────────────────────────

    def next_candidate(self, ceiling: float, floor: float) -> float | None:
        """
        Evolve every dipole end down from min(ceiling, its pT_max) and keep
        the hardest trial. Once a trial is found, later ends need only be
        evolved down to it.
        """
        self._candidate = None
        best: _FsrTrial | None = None
        for end in self.dipole_ends:
            cutoff = self.config.pt_min_qed if end.qed else self.config.pt_min
            pt_start = min(ceiling, end.pt_max)
            pt_stop = max(floor, cutoff)
            if best is not None:
                pt_stop = max(pt_stop, np.sqrt(best.pt2))
            if pt_start <= pt_stop:
                continue
            trial = self._evolve_end(end, pt_start * pt_start, pt_stop * pt_stop, cutoff)
            if trial is not None and (best is None or trial.pt2 > best.pt2):
                best = trial
        self._candidate = best
        if best is None:
            return None
        self._system = best.end.system
        return float(np.sqrt(best.pt2))

    def _evolve_end(self, end: DipoleEnd, pt2: float, pt2_stop: float, cutoff: float) -> _FsrTrial | None:
        rng = self.rng
        # z range opened up at the cutoff; narrower at larger pT
        z_min = 0.5 - np.sqrt(max(0.25 - cutoff * cutoff / end.m2_dip, 0.0))
        z_max = 1.0 - z_min
        integrals = np.array([s.integral(z_min, z_max) for s in end.splittings])
        total = integrals.sum()
        if total <= 0.0:
            return None
        if end.qed:
            coupling_max = ALPHA_EM
        else:
            coupling_max = self.alpha_s.maximum(cutoff * cutoff)
        a_over = coupling_max / (2.0 * np.pi) * total
        choice = integrals / total

        for _ in range(self.config.max_trials):
            pt2 *= rng.random() ** (1.0 / a_over)
            if pt2 <= pt2_stop:
                return None
            splitting = end.splittings[int(rng.choice(len(choice), p=choice))]
            z = sample_shape(splitting.shape, z_min, z_max, rng)
            if pt2 >= z * (1.0 - z) * end.m2_dip:
                continue
            weight = splitting.accept_weight(z)
            if not end.qed:
                weight *= self.alpha_s(pt2) / coupling_max
            if weight > 1.0:
                self._state.info.messages.record(
                    "Warning in FinalStateShower: weight above unity", f"({weight:.3f})"
                )
            if rng.random() < weight:
                return _FsrTrial(end, pt2, z, splitting, 2.0 * np.pi * rng.random())
        self._state.info.messages.record("Warning in FinalStateShower: too many trials")
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
        event = state.event
        end = trial.end
        rad = event[end.radiator]
        rec = event[end.recoiler]
        if rad.status <= 0 or rec.status <= 0:
            state.info.messages.record("Error in FinalStateShower: dipole end is no longer live")
            return CommitResult.REFUSED

        p_rad, p_rec = rad.p, rec.p
        m2_dip = vectors.m2(p_rad + p_rec)
        if abs(vectors.m2(p_rad)) > 1e-6 * m2_dip or abs(vectors.m2(p_rec)) > 1e-6 * m2_dip:
            state.info.messages.record("Warning in FinalStateShower: massive dipole not supported")
            return CommitResult.REFUSED
        z, pt2 = trial.z, trial.pt2
        y = pt2 / (z * (1.0 - z) * m2_dip)
        if y >= 1.0:
            return CommitResult.REFUSED

        pt_value = float(np.sqrt(pt2))
        k_t = vectors.transverse_kick(p_rad, p_rec, pt_value, trial.phi)
        p_i = z * p_rad + (1.0 - z) * y * p_rec + k_t
        p_j = (1.0 - z) * p_rad + z * y * p_rec - k_t
        p_rec_new = (1.0 - y) * p_rec
        if p_i[3] <= 0.0 or p_j[3] <= 0.0:
            return CommitResult.REFUSED

        id_i, id_j, cols_i, cols_j = self._daughter_flavours(trial)

        i_new = event.append(id_i, STATUS_FSR_DAUGHTER, mothers=(end.radiator, 0),
                             cols=cols_i, p=p_i, scale=pt_value)
        j_new = event.append(id_j, STATUS_FSR_DAUGHTER, mothers=(end.radiator, 0),
                             cols=cols_j, p=p_j, scale=pt_value)
        event.set_status(end.radiator, -abs(rad.status))
        event.set_daughters(end.radiator, i_new, j_new)
        rec_new = event.copy(end.recoiler, STATUS_FSR_RECOILER, p=p_rec_new, scale=pt_value)

        systems = state.systems
        systems.replace(end.system, end.radiator, i_new)
        systems.add_out(end.system, j_new)
        systems.replace(end.system, end.recoiler, rec_new)

        self._system = end.system
        logger.debug(
            "FSR %s at pT=%.3f in system %d (rad %d, rec %d)",
            trial.splitting.name, pt_value, end.system, end.radiator, end.recoiler,
        )
        return CommitResult.ACCEPTED

    def _daughter_flavours(self, trial: _FsrTrial) -> tuple[int, int, tuple[int, int], tuple[int, int]]:
        """Flavours and colours of (radiator', emitted)."""
        event = self._state.event
        rad = event[trial.end.radiator]
        splitting = trial.splitting
        side = trial.end.side

        if trial.end.qed:
            return rad.id, 22, (rad.col, rad.acol), (0, 0)

        if splitting.name == "g->qqbar":
            flavour = int(self.rng.integers(1, self.config.n_flavours + 1))
            # The quark keeps the colour facing the recoiler on a colour end
            if side > 0:
                return flavour, -flavour, (rad.col, 0), (0, rad.acol)
            return -flavour, flavour, (0, rad.acol), (rad.col, 0)

        new_tag = event.next_colour_tag()
        id_i = rad.id if splitting.ids[0] == SAME else splitting.ids[0]
        if colour_type(rad.id) == 2:
            if side > 0:
                return id_i, 21, (new_tag, rad.acol), (rad.col, new_tag)
            return id_i, 21, (rad.col, new_tag), (new_tag, rad.acol)
        if rad.col > 0:
            return id_i, 21, (new_tag, 0), (rad.col, new_tag)
        return id_i, 21, (0, new_tag), (new_tag, rad.acol)
