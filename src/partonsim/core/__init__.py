"""
Core event primitives.

This layer knows NOTHING about showers or hooks. It only knows:
- Four-vectors as numpy arrays
- The append-only event record and its history links
- Subsystems as lists of record indices
- Beams and the momentum fractions taken out of them
- Counters, headers and message statistics
"""

from partonsim.core.errors import CounterError, HistoryError, InitializationError, PartonSimError
from partonsim.core.event import Event, EventView, Particle
from partonsim.core.systems import PartonSystem, PartonSystems
from partonsim.core.beams import BeamParticle, PartonDensity, ResolvedParton, ToyPDF
from partonsim.core.info import Counters, EventInfo, HeaderStore, MessageTally

__all__ = [
    "CounterError",
    "HistoryError",
    "InitializationError",
    "PartonSimError",
    "Event",
    "EventView",
    "Particle",
    "PartonSystem",
    "PartonSystems",
    "BeamParticle",
    "PartonDensity",
    "ResolvedParton",
    "ToyPDF",
    "Counters",
    "EventInfo",
    "HeaderStore",
    "MessageTally",
]
