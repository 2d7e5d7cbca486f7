"""
Parton-level evolution.

Three sources compete for the next step on a common pT ladder:
- FinalStateShower: branchings of outgoing partons (dipole ends)
- InitialStateShower: backwards branchings of incoming partons
- MultipleInteractions: additional 2 -> 2 subcollisions

EvolutionScheduler interleaves them and visits the VetoHooks points.
"""

from partonsim.evolution.sources import CommitResult, EventState, EvolutionSource, StepKind
from partonsim.evolution.kernels import AlphaStrong, Splitting
from partonsim.evolution.final_state import FinalStateConfig, FinalStateShower
from partonsim.evolution.initial_state import InitialStateConfig, InitialStateShower
from partonsim.evolution.interactions import InteractionsConfig, MultipleInteractions, two_to_two_colours
from partonsim.evolution.hooks import Decision, HookContext, HookPoint, VetoHooks, sub_event
from partonsim.evolution.scheduler import (
    EvolutionConfig,
    EvolutionOutcome,
    EvolutionScheduler,
    EvolutionStep,
)

__all__ = [
    "CommitResult",
    "EventState",
    "EvolutionSource",
    "StepKind",
    "AlphaStrong",
    "Splitting",
    "FinalStateConfig",
    "FinalStateShower",
    "InitialStateConfig",
    "InitialStateShower",
    "InteractionsConfig",
    "MultipleInteractions",
    "two_to_two_colours",
    "Decision",
    "HookContext",
    "HookPoint",
    "VetoHooks",
    "sub_event",
    "EvolutionConfig",
    "EvolutionOutcome",
    "EvolutionScheduler",
    "EvolutionStep",
]
