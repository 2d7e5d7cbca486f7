"""
Veto hooks: synchronous interrupt points for external policy code.

A VetoHooks object is a capability set. Each HookPoint is enabled by
registering exactly one handler for it, so an enabled point can never
lack an action. The scheduler and the generator ask can_intervene()
before building any context, and only then call decide().

Handlers at veto points receive (event, context) and return a Decision
or a bool, True meaning veto. Only PROCESS_LEVEL handlers get the
mutable Event; all other points see a read-only EventView.

Example:
    hooks = VetoHooks(veto_scale=50.0).on(
        HookPoint.SCALE_THRESHOLD, lambda event, ctx: Decision.ABORT
    )
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable
import logging

from partonsim.core.event import Event, EventView, Particle
from partonsim.core.systems import PartonSystems
from partonsim.evolution.sources import StepKind

logger = logging.getLogger(__name__)


class HookPoint(Enum):
    PROCESS_LEVEL = "process_level"
    PARTON_LEVEL = "parton_level"
    SCALE_THRESHOLD = "scale_threshold"
    STEP = "step"
    MPI_STEP = "mpi_step"
    ISR_EMISSION = "isr_emission"
    FSR_EMISSION = "fsr_emission"
    SIGMA_REWEIGHT = "sigma_reweight"
    RESONANCE_SCALE = "resonance_scale"


# Points whose handler returns a veto decision
DECISION_POINTS = (
    HookPoint.PROCESS_LEVEL,
    HookPoint.PARTON_LEVEL,
    HookPoint.SCALE_THRESHOLD,
    HookPoint.STEP,
    HookPoint.MPI_STEP,
    HookPoint.ISR_EMISSION,
    HookPoint.FSR_EMISSION,
)


class Decision(Enum):
    CONTINUE = "continue"
    ABORT = "abort"


@dataclass(frozen=True)
class HookContext:
    """What a handler may know about the point it was called from."""

    point: HookPoint
    position: StepKind = StepKind.NONE
    n_isr: int = 0
    n_fsr: int = 0
    n_mpi: int = 0
    system: int = 0
    size_before: int = 0   # Record size before the step under inspection
    scale: float = 0.0


Handler = Callable[..., Any]


@dataclass
class VetoHooks:
    """
    Enabled intervention points with one handler each.

    veto_scale is where the scale-threshold point fires; n_veto_steps and
    n_veto_mpi_steps bound how many ISR/FSR and MPI steps the step points
    are asked about.
    """

    handlers: dict[HookPoint, Handler] = field(default_factory=dict)
    veto_scale: float = 0.0
    n_veto_steps: int = 1
    n_veto_mpi_steps: int = 1

    def on(self, point: HookPoint, handler: Handler) -> VetoHooks:
        """Register a handler; returns self so registrations chain."""
        self.handlers[point] = handler
        return self

    def can_intervene(self, point: HookPoint) -> bool:
        return point in self.handlers

    def decide(self, point: HookPoint, event: Event, context: HookContext) -> Decision:
        """Run the handler of a veto point. Unregistered points always continue."""
        if point not in DECISION_POINTS:
            raise ValueError(f"{point} does not take a veto decision")
        handler = self.handlers.get(point)
        if handler is None:
            return Decision.CONTINUE
        target = event if point is HookPoint.PROCESS_LEVEL else event.view()
        result = handler(target, context)
        if isinstance(result, Decision):
            decision = result
        else:
            decision = Decision.ABORT if result else Decision.CONTINUE
        if decision is Decision.ABORT:
            logger.debug("Hook %s vetoed at scale %.3f", point.value, context.scale)
        return decision

    def reweight(self, process_info: Any) -> float:
        """Multiplicative event-weight factor; 1 when no reweighting handler is set."""
        handler = self.handlers.get(HookPoint.SIGMA_REWEIGHT)
        if handler is None:
            return 1.0
        factor = float(handler(process_info))
        if factor < 0.0:
            raise ValueError(f"Reweighting factor must be non-negative, got {factor}")
        return factor

    def resonance_scale(self, i_res: int, event: Event) -> float | None:
        """Starting scale for the shower of resonance `i_res`, or None for the default."""
        handler = self.handlers.get(HookPoint.RESONANCE_SCALE)
        if handler is None:
            return None
        value = handler(i_res, event.view())
        return None if value is None else float(value)


def sub_event(event: Event | EventView, systems: PartonSystems, is_hardest: bool = True) -> list[Particle]:
    """
    Condensed list of the current partons.

    With is_hardest only the hardest subsystem is taken (incoming first,
    then outgoing); otherwise every live final-state entry. The returned
    particles are detached copies whose daughter fields both point back to
    the entry they were copied from.
    """
    if is_hardest and len(systems) > 0:
        indices = systems.get_all(0)
    else:
        indices = event.final_state()
    work = []
    for index in indices:
        particle = event[index].clone()
        particle.mother1 = 0
        particle.mother2 = 0
        particle.daughter1 = index
        particle.daughter2 = index
        work.append(particle)
    return work
