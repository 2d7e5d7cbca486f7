"""
Splitting kernels and the strong coupling used by the showers.

A kernel is a true splitting function P(z) paired with a simple
overestimate coeff · shape(z) that can be integrated and inverted
analytically. The showers sample from the overestimate and keep a trial
with probability P(z) / (coeff · shape(z)), the usual veto algorithm.

These are leading-order toy kernels. Alternative physics plugs in by
supplying other Splitting tables.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Literal

import numpy as np

CF = 4.0 / 3.0
CA = 3.0
TR = 0.5

Shape = Literal["soft", "collinear", "both", "flat"]


def shape_value(shape: Shape, z: float) -> float:
    """Overestimate shape: 2/(1-z), 2/z, 2/(z(1-z)) or 1."""
    if shape == "soft":
        return 2.0 / (1.0 - z)
    if shape == "collinear":
        return 2.0 / z
    if shape == "both":
        return 2.0 / (z * (1.0 - z))
    return 1.0


def shape_integral(shape: Shape, z_min: float, z_max: float) -> float:
    """Integral of the shape over [z_min, z_max]."""
    if z_max <= z_min:
        return 0.0
    if shape == "soft":
        return 2.0 * np.log((1.0 - z_min) / (1.0 - z_max))
    if shape == "collinear":
        return 2.0 * np.log(z_max / z_min)
    if shape == "both":
        return 2.0 * (np.log(z_max / z_min) + np.log((1.0 - z_min) / (1.0 - z_max)))
    return z_max - z_min


def sample_shape(shape: Shape, z_min: float, z_max: float, rng: np.random.Generator) -> float:
    """Draw z from the normalised shape on [z_min, z_max]."""
    r = rng.random()
    if shape == "soft":
        return 1.0 - (1.0 - z_min) * ((1.0 - z_max) / (1.0 - z_min)) ** r
    if shape == "collinear":
        return z_min * (z_max / z_min) ** r
    if shape == "both":
        low = np.log(z_max / z_min)
        high = np.log((1.0 - z_min) / (1.0 - z_max))
        if rng.random() * (low + high) < low:
            return z_min * (z_max / z_min) ** r
        return 1.0 - (1.0 - z_min) * ((1.0 - z_max) / (1.0 - z_min)) ** r
    return z_min + r * (z_max - z_min)


@dataclass(frozen=True)
class Splitting:
    """
    One branching channel.

    For final-state use `ids` are the two daughters (the first keeps the
    radiator role, the second is emitted); for initial-state use they are
    (mother, sister). A daughter id of 0 means "same as the radiator" and
    a negative sentinel -99 means "antiparticle of the radiator".
    """

    name: str
    coeff: float
    shape: Shape
    kernel: Callable[[float], float]
    ids: tuple[int, int]

    def overestimate(self, z: float) -> float:
        return self.coeff * shape_value(self.shape, z)

    def integral(self, z_min: float, z_max: float) -> float:
        return self.coeff * shape_integral(self.shape, z_min, z_max)

    def accept_weight(self, z: float) -> float:
        return self.kernel(z) / self.overestimate(z)


SAME = 0
ANTI = -99


def _p_qq(z: float) -> float:
    return CF * (1.0 + z * z) / (1.0 - z)


def _p_gg_end(z: float) -> float:
    # g -> g g shared between the two dipole ends of the gluon
    return 0.5 * CA * (1.0 + z ** 3) / (1.0 - z)


def _p_qg_split(n_flavours: int) -> Callable[[float], float]:
    def kernel(z: float) -> float:
        return 0.5 * n_flavours * TR * (z * z + (1.0 - z) ** 2)
    return kernel


def _p_isr_gg(z: float) -> float:
    return 2.0 * CA * (1.0 - z * (1.0 - z)) ** 2 / (z * (1.0 - z))


def _p_isr_gq(z: float) -> float:
    # q -> g (+ q): gluon takes fraction z
    return CF * (1.0 + (1.0 - z) ** 2) / z


def _p_isr_qg(z: float) -> float:
    # g -> q (+ qbar)
    return TR * (z * z + (1.0 - z) ** 2)


def _p_qed(charge2: float) -> Callable[[float], float]:
    def kernel(z: float) -> float:
        return charge2 * (1.0 + z * z) / (1.0 - z)
    return kernel


def final_state_splittings(pdg_id: int, n_flavours: int = 5) -> list[Splitting]:
    """QCD channels available to a final-state dipole end with radiator `pdg_id`."""
    if pdg_id == 21:
        return [
            Splitting("g->gg", 0.5 * CA, "soft", _p_gg_end, (21, 21)),
            Splitting("g->qqbar", 0.5 * n_flavours * TR, "flat", _p_qg_split(n_flavours), (1, -1)),
        ]
    if 1 <= abs(pdg_id) <= 6:
        return [Splitting("q->qg", CF, "soft", _p_qq, (SAME, 21))]
    return []


def photon_splittings(charge: float) -> list[Splitting]:
    """QED channel f -> f gamma for a charged radiator."""
    if charge == 0.0:
        return []
    c2 = charge * charge
    return [Splitting("f->fgamma", c2, "soft", _p_qed(c2), (SAME, 22))]


def initial_state_splittings(pdg_id: int, n_flavours: int = 5) -> list[Splitting]:
    """
    Backwards channels for an incoming parton `pdg_id`.

    ids are (mother, sister).
    """
    if pdg_id == 21:
        channels = [Splitting("g<-g", CA, "both", _p_isr_gg, (21, 21))]
        for flavour in range(1, n_flavours + 1):
            for sign in (1, -1):
                q = sign * flavour
                channels.append(Splitting(f"g<-{q}", CF, "collinear", _p_isr_gq, (q, q)))
        return channels
    if 1 <= abs(pdg_id) <= 6:
        return [
            Splitting("q<-q", CF, "soft", _p_qq, (SAME, 21)),
            Splitting("q<-g", TR, "flat", _p_isr_qg, (21, ANTI)),
        ]
    return []


@dataclass
class AlphaStrong:
    """
    Strong coupling, either fixed or one-loop running from alpha_s(M_Z).
    """

    value: float = 0.137
    running: bool = False
    n_flavours: int = 5
    mz: float = 91.188

    def __call__(self, q2: float) -> float:
        if not self.running:
            return self.value
        b0 = (33.0 - 2.0 * self.n_flavours) / (12.0 * np.pi)
        denom = 1.0 + b0 * self.value * np.log(q2 / (self.mz * self.mz))
        if denom <= 0.0:
            raise ValueError(f"alpha_s hits the Landau pole at Q2={q2:.4g}")
        return self.value / denom

    def maximum(self, q2_min: float) -> float:
        """Largest value on [q2_min, inf); the coupling is monotonic."""
        return self(q2_min)
