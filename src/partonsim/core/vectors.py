"""
Four-vector helpers on plain numpy arrays.

Momenta are stored as float64 arrays of shape (4,) ordered (px, py, pz, e),
metric (+, -, -, -) with the energy last. Nothing here knows about
particles or events; the event record and the engines call these
functions with whatever momenta they hold.
"""

from __future__ import annotations

import numpy as np


def four_vector(px: float = 0.0, py: float = 0.0, pz: float = 0.0, e: float = 0.0) -> np.ndarray:
    """Build a four-vector (px, py, pz, e)."""
    return np.array([px, py, pz, e], dtype=np.float64)


def dot4(a: np.ndarray, b: np.ndarray) -> float:
    """Minkowski product a·b."""
    return float(a[3] * b[3] - a[0] * b[0] - a[1] * b[1] - a[2] * b[2])


def m2(p: np.ndarray) -> float:
    """Invariant mass squared."""
    return dot4(p, p)


def mass(p: np.ndarray) -> float:
    """
    Signed invariant mass.

    Spacelike vectors (m2 < 0) return -sqrt(|m2|), which is how virtual
    incoming partons are recorded.
    """
    msq = m2(p)
    return float(np.sqrt(msq)) if msq >= 0.0 else -float(np.sqrt(-msq))


def pt2(p: np.ndarray) -> float:
    return float(p[0] ** 2 + p[1] ** 2)


def pt(p: np.ndarray) -> float:
    """Transverse momentum with respect to the beam (z) axis."""
    return float(np.hypot(p[0], p[1]))


def p_abs(p: np.ndarray) -> float:
    return float(np.linalg.norm(p[:3]))


def boost_vector(p: np.ndarray) -> np.ndarray:
    """Velocity (beta) of the frame in which p is at rest."""
    if p[3] <= 0.0:
        raise ValueError("Cannot boost to the rest frame of a vector with e <= 0")
    return p[:3] / p[3]


def boost(p: np.ndarray, beta: np.ndarray) -> np.ndarray:
    """
    Lorentz boost of p by velocity beta.

    A vector at rest in some frame is taken to the lab when beta is the
    velocity of that frame in the lab.
    """
    b2 = float(np.dot(beta, beta))
    if b2 <= 0.0:
        return p.copy()
    if b2 >= 1.0:
        raise ValueError(f"Boost velocity must satisfy |beta| < 1, got {np.sqrt(b2):.6f}")
    gamma = 1.0 / np.sqrt(1.0 - b2)
    bp = float(np.dot(beta, p[:3]))
    gamma2 = (gamma - 1.0) / b2
    out = np.empty(4, dtype=np.float64)
    out[:3] = p[:3] + gamma2 * bp * beta + gamma * beta * p[3]
    out[3] = gamma * (p[3] + bp)
    return out


def boost_to_rest(p: np.ndarray, frame: np.ndarray) -> np.ndarray:
    """Express p in the rest frame of the timelike vector `frame`."""
    return boost(p, -boost_vector(frame))


def boost_from_rest(p: np.ndarray, frame: np.ndarray) -> np.ndarray:
    """Inverse of boost_to_rest: take p from the rest frame of `frame` to the lab."""
    return boost(p, boost_vector(frame))


def perpendicular_basis(axis: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """
    Two unit 3-vectors orthogonal to `axis` and to each other.

    Used to build transverse momenta around a dipole or beam axis.
    """
    n = np.asarray(axis, dtype=np.float64)
    norm = np.linalg.norm(n)
    if norm == 0.0:
        raise ValueError("Cannot build a transverse basis around a null axis")
    n = n / norm
    # Seed with the coordinate axis least aligned with n.
    seed = np.zeros(3)
    seed[int(np.argmin(np.abs(n)))] = 1.0
    e1 = np.cross(n, seed)
    e1 /= np.linalg.norm(e1)
    e2 = np.cross(n, e1)
    return e1, e2


def transverse_kick(
    pa: np.ndarray,
    pb: np.ndarray,
    pt_value: float,
    phi: float,
) -> np.ndarray:
    """
    Spacelike four-vector with kT² = -pt_value² orthogonal to both pa and pb.

    Built in the rest frame of pa + pb, where the two are back to back, so
    a purely spatial vector perpendicular to their common axis is
    orthogonal to both; then boosted back.
    """
    total = pa + pb
    pa_rest = boost_to_rest(pa, total)
    e1, e2 = perpendicular_basis(pa_rest[:3])
    k_rest = np.zeros(4)
    k_rest[:3] = pt_value * (np.cos(phi) * e1 + np.sin(phi) * e2)
    return boost_from_rest(k_rest, total)


def massless_pair(ecm: float, pt_value: float, phi: float, rapidity: float = 0.0) -> tuple[np.ndarray, np.ndarray]:
    """
    Back-to-back massless pair in the frame of a system with mass `ecm`,
    then boosted longitudinally by `rapidity`.

    Callers guarantee pt_value <= ecm / 2.
    """
    half = 0.5 * ecm
    pz = np.sqrt(max(half * half - pt_value * pt_value, 0.0))
    p1 = four_vector(pt_value * np.cos(phi), pt_value * np.sin(phi), pz, half)
    p2 = four_vector(-p1[0], -p1[1], -pz, half)
    beta = np.array([0.0, 0.0, np.tanh(rapidity)])
    return boost(p1, beta), boost(p2, beta)
