"""
Beams: the incoming hadrons and the partons extracted from them.

The evolution engines never see a parton density directly. They ask a
BeamParticle, which knows how much momentum fraction is still left after
every parton already resolved from it, and which forwards the density
query to a PartonDensity collaborator.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Protocol

import numpy as np
from scipy.special import beta as beta_fn

from partonsim.core import vectors


class PartonDensity(Protocol):
    """Protocol for parton-density collaborators."""

    def xf(self, pdg_id: int, x: float, q2: float) -> float:
        """
        Momentum-weighted density x·f(x, Q²) of parton `pdg_id` in a proton.

        Must return 0 outside 0 < x < 1 and never a negative value.
        """
        ...


# Flavours searched for sea and ISR mother candidates
QUARK_FLAVOURS = (1, 2, 3, 4, 5)


@dataclass
class ToyPDF:
    """
    Simple analytic proton density with a momentum sum rule.

    Valence shapes x^a (1-x)^b normalised to 2 up and 1 down quark;
    gluon and sea rise as x^-λ with λ growing slowly with log Q². The
    momentum left over by the valence quarks is shared between gluon
    and sea in the ratio `gluon_share`.

    Not a fit to data. Good enough to drive the backwards evolution.
    """

    lambda0: float = 0.2
    lambda_slope: float = 0.02
    q0: float = 1.0
    gluon_share: float = 0.75
    n_sea_flavours: int = 3

    def __post_init__(self):
        # Valence: number sum rules fix the normalisation
        self._norm_uv = 2.0 / beta_fn(0.5, 4.0)
        self._norm_dv = 1.0 / beta_fn(0.5, 5.0)
        valence_momentum = (
            self._norm_uv * beta_fn(1.5, 4.0) + self._norm_dv * beta_fn(1.5, 5.0)
        )
        self._remaining = 1.0 - valence_momentum

    def _lambda(self, q2: float) -> float:
        q02 = self.q0 * self.q0
        return self.lambda0 + self.lambda_slope * np.log(max(q2, q02) / q02)

    def _xg(self, x: float, lam: float) -> float:
        norm = self.gluon_share * self._remaining / beta_fn(1.0 - lam, 6.0)
        return norm * x ** (-lam) * (1.0 - x) ** 5

    def _x_sea(self, x: float, lam: float) -> float:
        # Per sea (anti)quark; 2 * n_sea_flavours of them share the momentum
        share = (1.0 - self.gluon_share) * self._remaining / (2 * self.n_sea_flavours)
        norm = share / beta_fn(1.0 - lam, 8.0)
        return norm * x ** (-lam) * (1.0 - x) ** 7

    def xf(self, pdg_id: int, x: float, q2: float) -> float:
        if not 0.0 < x < 1.0:
            return 0.0
        lam = self._lambda(q2)
        if pdg_id == 21:
            return float(self._xg(x, lam))
        flavour = abs(pdg_id)
        value = 0.0
        if flavour <= self.n_sea_flavours:
            value += self._x_sea(x, lam)
        if pdg_id == 2:
            value += self._norm_uv * x ** 0.5 * (1.0 - x) ** 3
        elif pdg_id == 1:
            value += self._norm_dv * x ** 0.5 * (1.0 - x) ** 4
        return float(value)


@dataclass
class ResolvedParton:
    """A parton taken out of a beam: its event index, flavour and x."""

    index: int
    id: int
    x: float


@dataclass
class BeamParticle:
    """
    One incoming beam with its list of resolved partons.

    Hadron beams (|id| = 2212) are resolved through the density; anything
    else is treated as unresolved and gets no backwards evolution.
    """

    id: int
    p: np.ndarray
    pdf: PartonDensity | None = None
    event_index: int = 0  # Line of the beam in the event record
    resolved: list[ResolvedParton] = field(default_factory=list)

    @property
    def is_hadron(self) -> bool:
        return abs(self.id) == 2212

    @property
    def is_resolved(self) -> bool:
        return self.is_hadron and self.pdf is not None

    @property
    def energy(self) -> float:
        return float(self.p[3])

    @property
    def direction(self) -> float:
        """+1 for a beam moving along +z, -1 along -z."""
        return 1.0 if self.p[2] >= 0.0 else -1.0

    def clear(self):
        self.resolved.clear()

    def __len__(self) -> int:
        return len(self.resolved)

    def __getitem__(self, i: int) -> ResolvedParton:
        return self.resolved[i]

    def append(self, index: int, pdg_id: int, x: float) -> int:
        self.resolved.append(ResolvedParton(index, pdg_id, x))
        return len(self.resolved) - 1

    def find(self, index: int) -> int | None:
        """Position in the resolved list of the parton at event index `index`."""
        for i, parton in enumerate(self.resolved):
            if parton.index == index:
                return i
        return None

    def update(self, i: int, index: int, pdg_id: int, x: float):
        self.resolved[i] = ResolvedParton(index, pdg_id, x)

    def x_max(self, skip: int = -1) -> float:
        """Momentum fraction still available, ignoring resolved entry `skip`."""
        used = sum(p.x for i, p in enumerate(self.resolved) if i != skip)
        return max(0.0, 1.0 - used)

    def xf(self, pdg_id: int, x: float, q2: float) -> float:
        """Density of the beam, with antiproton beams flavour-conjugated."""
        if self.pdf is None:
            return 0.0
        if self.id < 0 and pdg_id != 21:
            pdg_id = -pdg_id
        return self.pdf.xf(pdg_id, x, q2)

    def parton_momentum(self, x: float) -> np.ndarray:
        """Massless collinear parton carrying fraction x of the beam."""
        return vectors.four_vector(0.0, 0.0, self.direction * x * self.energy, x * self.energy)

    def snapshot(self) -> list[ResolvedParton]:
        return [ResolvedParton(p.index, p.id, p.x) for p in self.resolved]

    def restore(self, snapshot: list[ResolvedParton]):
        self.resolved = [ResolvedParton(p.index, p.id, p.x) for p in snapshot]
