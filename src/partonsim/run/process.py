"""
Hard processes: the interaction that seeds subsystem 0.

Real cross-section sampling is someone else's job. These toy processes
exist so the evolution has something sensible to start from: a QCD
2 -> 2 scattering spread as 1/pT⁴, and quark-antiquark annihilation
into a Z whose decay is showered as a separate resonance system.

Both fill the event record in the same layout:
    1, 2    beams (written by the generator)
    3, 4    incoming partons (-21), mothers = beams
    5, ...  outgoing partons (23) or the resonance (22)
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Protocol
import logging

import numpy as np

from partonsim.core import vectors
from partonsim.core.beams import QUARK_FLAVOURS, BeamParticle
from partonsim.core.errors import InitializationError
from partonsim.core.event import (
    STATUS_HARD_IN,
    STATUS_HARD_OUT,
    STATUS_RESONANCE,
    Event,
)
from partonsim.core.info import EventInfo
from partonsim.core.systems import PartonSystems
from partonsim.evolution.interactions import two_to_two_colours

logger = logging.getLogger(__name__)


class HardProcess(Protocol):
    """
    Protocol for hard-process collaborators.

    sigma_max is the cross section of the trial distribution and n_tried
    the number of trials drawn so far; together with the accepted weights
    they give the cross-section estimate.
    """

    code: int
    name: str
    sigma_max: float
    n_tried: int

    def init(self, beam_a: BeamParticle, beam_b: BeamParticle, ecm: float) -> None:
        """Set up phase space; raise InitializationError if there is none."""
        ...

    def next(
        self,
        event: Event,
        systems: PartonSystems,
        beam_a: BeamParticle,
        beam_b: BeamParticle,
        info: EventInfo,
        rng: np.random.Generator,
    ) -> bool:
        """Write one hard interaction into the event; False if none was found."""
        ...

    def decay_resonances(self, event: Event, systems: PartonSystems, rng: np.random.Generator) -> None:
        """Decay live resonances into new resonance subsystems."""
        ...


@dataclass
class ProcessConfig:
    """Configuration shared by the toy hard processes."""

    pt_hat_min: float = 20.0      # Lower pT cut of the 2 -> 2 scattering
    pt_hat_max: float = 0.0       # 0 means kinematic limit
    quark_channels: bool = True   # Include qg -> qg next to gg -> gg
    max_trials: int = 10000       # Trials per next() call
    headroom: float = 1.5         # Safety factor on the grid maximum
    grid_points: int = 12
    mass: float = 91.1876         # Resonance mass
    width: float = 2.4952         # Resonance width
    width_cut: float = 10.0       # Breit-Wigner truncated at mass ± width_cut * width

    def validate(self):
        if self.pt_hat_min <= 0.0:
            raise ValueError("pt_hat_min must be positive")
        if self.pt_hat_max and self.pt_hat_max <= self.pt_hat_min:
            raise ValueError("pt_hat_max must exceed pt_hat_min")
        if self.mass <= 0.0 or self.width <= 0.0:
            raise ValueError("Resonance mass and width must be positive")


def _write_incoming(
    event: Event,
    beam_a: BeamParticle,
    beam_b: BeamParticle,
    partons: tuple[tuple[int, tuple[int, int], float], tuple[int, tuple[int, int], float]],
    n_out: int,
    scale: float,
) -> tuple[int, int]:
    """Append the two incoming partons with daughters pointing at the n_out that follow."""
    (id_a, cols_a, x1), (id_b, cols_b, x2) = partons
    first_out = event.size + 2
    daughters = (first_out, first_out + n_out - 1) if n_out > 1 else (first_out, 0)
    i_a = event.append(id_a, -STATUS_HARD_IN, mothers=(beam_a.event_index, 0), daughters=daughters,
                       cols=cols_a, p=beam_a.parton_momentum(x1), scale=scale)
    i_b = event.append(id_b, -STATUS_HARD_IN, mothers=(beam_b.event_index, 0), daughters=daughters,
                       cols=cols_b, p=beam_b.parton_momentum(x2), scale=scale)
    event.set_daughters(beam_a.event_index, i_a, 0)
    event.set_daughters(beam_b.event_index, i_b, 0)
    return i_a, i_b


class TwoToTwoProcess:
    """
    Toy QCD scattering gg -> gg and qg -> qg.

    pT² is drawn from 1/pT⁴ and both rapidities flat; the trial is kept
    with probability x1 f(x1) x2 f(x2) / W_max, with W_max found on a
    grid at init.
    """

    code = 111
    name = "toy 2 -> 2 QCD"

    def __init__(self, config: ProcessConfig | None = None):
        self.config = config or ProcessConfig()
        self.ecm = 0.0
        self.sigma_max = 0.0
        self.n_tried = 0
        self.n_selected = 0
        self.w_max = 0.0
        self._y_range = 0.0
        self._pt_max = 0.0

    def init(self, beam_a: BeamParticle, beam_b: BeamParticle, ecm: float):
        cfg = self.config
        try:
            cfg.validate()
        except ValueError as err:
            raise InitializationError(str(err)) from err
        if 2.0 * cfg.pt_hat_min >= ecm:
            raise InitializationError(f"pt_hat_min={cfg.pt_hat_min} leaves no phase space at ecm={ecm}")
        self.ecm = ecm
        self._pt_max = min(cfg.pt_hat_max or 0.5 * ecm, 0.5 * ecm)
        self._y_range = float(np.arccosh(ecm / (2.0 * cfg.pt_hat_min)))

        # Weight is largest at the smallest pT, scan the rapidity plane there
        ys = np.linspace(-self._y_range, self._y_range, cfg.grid_points)
        w_max = 0.0
        for y3 in ys:
            for y4 in ys:
                x1, x2 = self._fractions(cfg.pt_hat_min, y3, y4)
                w_max = max(w_max, self._channel_weights(beam_a, beam_b, x1, x2, cfg.pt_hat_min ** 2).sum())
        if w_max <= 0.0:
            raise InitializationError("Hard process has vanishing parton luminosity")
        self.w_max = w_max * cfg.headroom
        self.sigma_max = (
            (1.0 / cfg.pt_hat_min ** 2 - 1.0 / self._pt_max ** 2) * (2.0 * self._y_range) ** 2 * self.w_max
        )
        logger.info("%s initialised: pT in [%.1f, %.1f], W_max=%.4g", self.name, cfg.pt_hat_min,
                    self._pt_max, self.w_max)

    def _fractions(self, pt_value: float, y3: float, y4: float) -> tuple[float, float]:
        x_t = 2.0 * pt_value / self.ecm
        x1 = 0.5 * x_t * (np.exp(y3) + np.exp(y4))
        x2 = 0.5 * x_t * (np.exp(-y3) + np.exp(-y4))
        return x1, x2

    def _channel_weights(self, beam_a, beam_b, x1, x2, q2) -> np.ndarray:
        """Luminosities of gg, qg (quark from A) and gq (quark from B)."""
        if x1 >= 1.0 or x2 >= 1.0:
            return np.zeros(3)
        g1, g2 = beam_a.xf(21, x1, q2), beam_b.xf(21, x2, q2)
        if not self.config.quark_channels:
            return np.array([g1 * g2, 0.0, 0.0])
        q1 = sum(beam_a.xf(q, x1, q2) for f in QUARK_FLAVOURS for q in (f, -f))
        q2_sum = sum(beam_b.xf(q, x2, q2) for f in QUARK_FLAVOURS for q in (f, -f))
        return np.array([g1 * g2, q1 * g2, g1 * q2_sum])

    @staticmethod
    def _pick_quark(beam: BeamParticle, x: float, q2: float, rng: np.random.Generator) -> int:
        candidates = [q for f in QUARK_FLAVOURS for q in (f, -f)]
        weights = np.array([beam.xf(q, x, q2) for q in candidates])
        return candidates[int(rng.choice(len(candidates), p=weights / weights.sum()))]

    def next(self, event, systems, beam_a, beam_b, info, rng) -> bool:
        cfg = self.config
        inv_min, inv_max = 1.0 / cfg.pt_hat_min ** 2, 1.0 / self._pt_max ** 2
        for _ in range(cfg.max_trials):
            self.n_tried += 1
            pt2 = 1.0 / (inv_min - rng.random() * (inv_min - inv_max))
            pt_value = float(np.sqrt(pt2))
            y3 = rng.uniform(-self._y_range, self._y_range)
            y4 = rng.uniform(-self._y_range, self._y_range)
            x1, x2 = self._fractions(pt_value, y3, y4)
            weights = self._channel_weights(beam_a, beam_b, x1, x2, pt2)
            total = weights.sum()
            if total <= 0.0:
                continue
            ratio = total / self.w_max
            if ratio > 1.0:
                info.messages.record("Warning in TwoToTwoProcess: weight above maximum", f"({ratio:.3f})")
            if rng.random() >= ratio:
                continue
            self.n_selected += 1
            channel = int(rng.choice(3, p=weights / total))
            id_a = self._pick_quark(beam_a, x1, pt2, rng) if channel == 1 else 21
            id_b = self._pick_quark(beam_b, x2, pt2, rng) if channel == 2 else 21
            self._fill(event, systems, beam_a, beam_b, info, rng, (id_a, id_b), (x1, x2), pt_value, (y3, y4))
            return True
        info.messages.record("Error in TwoToTwoProcess: no trial accepted")
        return False

    def _fill(self, event, systems, beam_a, beam_b, info, rng, ids, xs, pt_value, ys):
        id_3, id_4, cols_a, cols_b, cols_3, cols_4 = two_to_two_colours(ids[0], ids[1], event.next_colour_tag)
        phi = 2.0 * np.pi * rng.random()
        p3 = vectors.four_vector(pt_value * np.cos(phi), pt_value * np.sin(phi),
                                 pt_value * np.sinh(ys[0]), pt_value * np.cosh(ys[0]))
        p4 = vectors.four_vector(-p3[0], -p3[1], pt_value * np.sinh(ys[1]), pt_value * np.cosh(ys[1]))

        i_a, i_b = _write_incoming(event, beam_a, beam_b,
                                   ((ids[0], cols_a, xs[0]), (ids[1], cols_b, xs[1])), 2, pt_value)
        i_3 = event.append(id_3, STATUS_HARD_OUT, mothers=(i_a, i_b), cols=cols_3, p=p3, scale=pt_value)
        i_4 = event.append(id_4, STATUS_HARD_OUT, mothers=(i_a, i_b), cols=cols_4, p=p4, scale=pt_value)

        i_sys = systems.add_system()
        systems.set_in_a(i_sys, i_a)
        systems.set_in_b(i_sys, i_b)
        systems.add_out(i_sys, i_3)
        systems.add_out(i_sys, i_4)
        systems.set_s_hat(i_sys, vectors.m2(p3 + p4))
        beam_a.append(i_a, ids[0], xs[0])
        beam_b.append(i_b, ids[1], xs[1])

        info.code = self.code
        info.name = self.name
        info.pt_hat = pt_value

    def decay_resonances(self, event, systems, rng):
        """No resonances in this process."""


class ResonanceProcess:
    """
    Toy q qbar -> Z -> q' qbar'.

    The Z is kept live (status 22) through the interleaved evolution, so
    initial-state recoil moves it, and is decayed afterwards into its own
    resonance subsystem.
    """

    code = 221
    name = "toy q qbar -> Z"

    def __init__(self, config: ProcessConfig | None = None):
        self.config = config or ProcessConfig()
        self.ecm = 0.0
        self.sigma_max = 0.0
        self.n_tried = 0
        self.n_selected = 0
        self.w_max = 0.0
        self._m_low = 0.0
        self._m_high = 0.0

    def init(self, beam_a: BeamParticle, beam_b: BeamParticle, ecm: float):
        cfg = self.config
        try:
            cfg.validate()
        except ValueError as err:
            raise InitializationError(str(err)) from err
        self._m_low = max(cfg.mass - cfg.width_cut * cfg.width, 0.5 * cfg.mass)
        self._m_high = cfg.mass + cfg.width_cut * cfg.width
        if self._m_high >= ecm:
            raise InitializationError(f"Resonance mass window reaches past ecm={ecm}")
        self.ecm = ecm

        y_max = np.log(ecm / self._m_low)
        w_max = 0.0
        for y in np.linspace(-y_max, y_max, 2 * self.config.grid_points + 1):
            w_max = max(w_max, self._weights(beam_a, beam_b, self._m_low, y)[1].sum())
        if w_max <= 0.0:
            raise InitializationError("Resonance process has vanishing quark luminosity")
        self.w_max = w_max * cfg.headroom
        self.sigma_max = 2.0 * y_max * self.w_max
        logger.info("%s initialised: m in [%.2f, %.2f]", self.name, self._m_low, self._m_high)

    def _weights(self, beam_a, beam_b, m, y) -> tuple[list[int], np.ndarray]:
        """q qbar luminosities per flavour with the quark from either side."""
        tau = m / self.ecm
        x1, x2 = tau * np.exp(y), tau * np.exp(-y)
        q2 = m * m
        channels, weights = [], []
        for f in QUARK_FLAVOURS:
            for q in (f, -f):
                channels.append(q)
                weights.append(beam_a.xf(q, x1, q2) * beam_b.xf(-q, x2, q2))
        return channels, np.array(weights)

    def _sample_mass(self, rng: np.random.Generator) -> float:
        """Breit-Wigner truncated to the mass window, by inversion."""
        cfg = self.config
        lo = np.arctan((self._m_low - cfg.mass) / (0.5 * cfg.width))
        hi = np.arctan((self._m_high - cfg.mass) / (0.5 * cfg.width))
        return float(cfg.mass + 0.5 * cfg.width * np.tan(lo + rng.random() * (hi - lo)))

    def next(self, event, systems, beam_a, beam_b, info, rng) -> bool:
        for _ in range(self.config.max_trials):
            self.n_tried += 1
            m = self._sample_mass(rng)
            y_max = np.log(self.ecm / m)
            y = rng.uniform(-y_max, y_max)
            channels, weights = self._weights(beam_a, beam_b, m, y)
            total = weights.sum()
            if total <= 0.0:
                continue
            # Rapidity range shrinks with mass; fold that into the acceptance
            ratio = total * y_max / (self.w_max * np.log(self.ecm / self._m_low))
            if ratio > 1.0:
                info.messages.record("Warning in ResonanceProcess: weight above maximum", f"({ratio:.3f})")
            if rng.random() >= ratio:
                continue
            self.n_selected += 1
            id_a = channels[int(rng.choice(len(channels), p=weights / total))]
            self._fill(event, systems, beam_a, beam_b, info, id_a, m, y)
            return True
        info.messages.record("Error in ResonanceProcess: no trial accepted")
        return False

    def _fill(self, event, systems, beam_a, beam_b, info, id_a, m, y):
        tau = m / self.ecm
        x1, x2 = tau * np.exp(y), tau * np.exp(-y)
        tag = event.next_colour_tag()
        cols_a = (tag, 0) if id_a > 0 else (0, tag)
        cols_b = (0, tag) if id_a > 0 else (tag, 0)
        i_a, i_b = _write_incoming(event, beam_a, beam_b, ((id_a, cols_a, x1), (-id_a, cols_b, x2)), 1, m)
        p_z = vectors.four_vector(0.0, 0.0, m * np.sinh(y), m * np.cosh(y))
        i_z = event.append(23, STATUS_RESONANCE, mothers=(i_a, i_b), p=p_z, m=m, scale=m)

        i_sys = systems.add_system()
        systems.set_in_a(i_sys, i_a)
        systems.set_in_b(i_sys, i_b)
        systems.add_out(i_sys, i_z)
        systems.set_s_hat(i_sys, m * m)
        beam_a.append(i_a, id_a, x1)
        beam_b.append(i_b, -id_a, x2)

        info.code = self.code
        info.name = self.name
        info.pt_hat = m

    def decay_resonances(self, event, systems, rng):
        """Isotropic Z -> q qbar in the rest frame of the current Z line."""
        for i_z in event.final_state():
            z_boson = event[i_z]
            if z_boson.id != 23:
                continue
            m = vectors.mass(z_boson.p)
            flavour = int(rng.choice(QUARK_FLAVOURS))
            cos_theta = 2.0 * rng.random() - 1.0
            pt_value = 0.5 * m * np.sqrt(1.0 - cos_theta ** 2)
            p1, p2 = vectors.massless_pair(m, pt_value, 2.0 * np.pi * rng.random())
            if cos_theta < 0.0:
                p1, p2 = p2, p1
            p_q = vectors.boost_from_rest(p1, z_boson.p)
            p_qbar = vectors.boost_from_rest(p2, z_boson.p)

            tag = event.next_colour_tag()
            i_q = event.append(flavour, STATUS_HARD_OUT, mothers=(i_z, 0), cols=(tag, 0), p=p_q, scale=m)
            i_qbar = event.append(-flavour, STATUS_HARD_OUT, mothers=(i_z, 0), cols=(0, tag), p=p_qbar, scale=m)
            event.set_status(i_z, -abs(z_boson.status))
            event.set_daughters(i_z, i_q, i_qbar)

            old_sys = systems.system_of(i_z)
            if old_sys is not None:
                systems.remove_out(old_sys, i_z)
            i_sys = systems.add_system(resonance=i_z)
            systems.add_out(i_sys, i_q)
            systems.add_out(i_sys, i_qbar)
            systems.set_s_hat(i_sys, m * m)
            logger.debug("Z at %d decayed to %d %d (system %d)", i_z, flavour, -flavour, i_sys)
