"""
Shared contract of the three competing evolution sources.

The scheduler treats final-state branchings, initial-state branchings and
additional interactions uniformly: each is asked for the scale of its
next candidate below a ceiling, and the winner is told to commit. Which
dipole, parton or subcollision stands behind a scale stays private to
the source.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from partonsim.core.beams import BeamParticle
    from partonsim.core.event import Event
    from partonsim.core.info import EventInfo
    from partonsim.core.systems import PartonSystems


class StepKind(IntEnum):
    """
    What produced the latest step, numbered like the hook positions:

    0 nothing above the veto scale, 1 additional interaction, 2 ISR,
    3 FSR, 4 FSR evolved after the interleaved pass, 5 FSR in a
    resonance decay.
    """

    NONE = 0
    MPI = 1
    ISR = 2
    FSR = 3
    FSR_SEPARATE = 4
    RESONANCE = 5


class CommitResult(Enum):
    ACCEPTED = "accepted"
    REFUSED = "refused"  # Kinematics failed once the exact recoil was applied


@dataclass
class EventState:
    """Per-event objects every source reads and mutates."""

    event: "Event"
    systems: "PartonSystems"
    beam_a: "BeamParticle"
    beam_b: "BeamParticle"
    info: "EventInfo"

    def beam(self, side: int) -> "BeamParticle":
        return self.beam_a if side == 0 else self.beam_b


class EvolutionSource(Protocol):
    """Protocol for anything the scheduler can interleave."""

    kind: StepKind

    def setup(self, state: EventState) -> None:
        """Bind to a fresh event and drop all cached candidates."""
        ...

    def reset(self) -> None:
        """Forget every prepared subsystem and cached candidate."""
        ...

    def prepare(self, i_sys: int) -> None:
        """(Re)build the private state for a new or materially changed subsystem."""
        ...

    def update(self, i_sys: int) -> None:
        """Subsystem `i_sys` was changed by another source."""
        ...

    def next_candidate(self, ceiling: float, floor: float) -> float | None:
        """
        Scale of the next candidate at or below `ceiling`, or None when
        nothing is found above `floor`.
        """
        ...

    def commit(self) -> CommitResult:
        """Carry out the candidate found by the last next_candidate() call."""
        ...

    @property
    def system(self) -> int:
        """Subsystem of the latest candidate."""
        ...
