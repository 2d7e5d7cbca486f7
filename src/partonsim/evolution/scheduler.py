"""
Evolution Scheduler: interleaves the competing sources in one pT ladder.

Each step:
1. Ask every active source for its next candidate below the ceiling
2. Stop when none lies above the floor
3. Pick the strictly largest scale; ties go FSR, then ISR, then MPI
4. Commit it through its owner, update the other sources, and lower the
   ceiling to the committed scale

Every commit is journaled in the event record so a single emission can be
taken back when a per-emission hook vetoes it. A commit the owner refuses
(late kinematic failure) only drops that candidate; selection continues
among the others at the same ceiling.

Hook points visited here: SCALE_THRESHOLD, STEP, MPI_STEP,
ISR_EMISSION, FSR_EMISSION and RESONANCE_SCALE.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
import logging

from partonsim.core import info as slots
from partonsim.core.beams import BeamParticle
from partonsim.core.event import Event
from partonsim.core.info import EventInfo
from partonsim.core.systems import PartonSystems
from partonsim.evolution.hooks import Decision, HookContext, HookPoint, VetoHooks
from partonsim.evolution.sources import CommitResult, EventState, EvolutionSource, StepKind

logger = logging.getLogger(__name__)


@dataclass
class EvolutionConfig:
    """Configuration for the interleaved evolution."""

    pt_end: float = 0.5          # Floor of the evolution (GeV)
    do_mpi: bool = True
    do_isr: bool = True
    do_fsr: bool = True
    interleave_fsr: bool = True  # False: FSR runs after MPI + ISR have finished
    max_steps: int = 10000       # Loop iterations per pass before giving up


class EvolutionOutcome(Enum):
    TERMINATED = "terminated"  # Nothing left above the floor
    VETOED = "vetoed"          # A hook aborted the event
    STALLED = "stalled"        # max_steps exhausted


@dataclass(frozen=True)
class EvolutionStep:
    """One committed step that survived all hooks."""

    kind: StepKind
    scale: float
    system: int
    size_before: int


_SELECTED = {
    StepKind.MPI: slots.MPI_SELECTED,
    StepKind.ISR: slots.ISR_SELECTED,
    StepKind.FSR: slots.FSR_SELECTED,
    StepKind.FSR_SEPARATE: slots.FSR_SELECTED,
    StepKind.RESONANCE: slots.RESONANCE_FSR_SELECTED,
}
_ACCEPTED = {
    StepKind.MPI: slots.MPI_ACCEPTED,
    StepKind.ISR: slots.ISR_ACCEPTED,
    StepKind.FSR: slots.FSR_ACCEPTED,
    StepKind.FSR_SEPARATE: slots.FSR_ACCEPTED,
    StepKind.RESONANCE: slots.RESONANCE_FSR_ACCEPTED,
}


@dataclass
class EvolutionScheduler:
    """
    Drives the MPI, ISR and FSR sources down a common pT ladder.

    Any of the three sources may be None. Call setup() once per parton-level
    attempt, then advance() and shower_resonances().
    """

    fsr: EvolutionSource | None = None
    isr: EvolutionSource | None = None
    mpi: EvolutionSource | None = None
    hooks: VetoHooks = field(default_factory=VetoHooks)
    config: EvolutionConfig = field(default_factory=EvolutionConfig)

    # Per-attempt state
    state: EventState | None = field(default=None, init=False)
    trace: list[EvolutionStep] = field(default_factory=list, init=False)
    n_mpi: int = field(default=0, init=False)
    n_isr: int = field(default=0, init=False)
    n_fsr: int = field(default=0, init=False)
    n_isr_hard: int = field(default=0, init=False)
    n_fsr_hard: int = field(default=0, init=False)
    n_fsr_res: int = field(default=0, init=False)
    _threshold_pending: bool = field(default=False, init=False)

    @property
    def sources(self) -> list[EvolutionSource]:
        """Enabled sources in tie-break priority order."""
        chosen = []
        if self.fsr is not None and self.config.do_fsr:
            chosen.append(self.fsr)
        if self.isr is not None and self.config.do_isr:
            chosen.append(self.isr)
        if self.mpi is not None and self.config.do_mpi:
            chosen.append(self.mpi)
        return chosen

    def setup(
        self,
        event: Event,
        systems: PartonSystems,
        beam_a: BeamParticle,
        beam_b: BeamParticle,
        info: EventInfo,
    ):
        """Bind to the event and prepare every existing subsystem in every source."""
        self.state = EventState(event, systems, beam_a, beam_b, info)
        self.trace = []
        self.n_mpi = self.n_isr = self.n_fsr = 0
        self.n_isr_hard = self.n_fsr_hard = self.n_fsr_res = 0
        info.n_mpi = info.n_isr = info.n_fsr_in_proc = info.n_fsr_in_res = 0
        info.counters.reset_step()
        for source in self.sources:
            source.setup(self.state)
        self._prepare_all(self.sources, self._beam_systems())

    def _beam_systems(self) -> list[int]:
        systems = self.state.systems
        return [i for i in range(len(systems)) if systems.get_resonance(i) == 0]

    @staticmethod
    def _prepare_all(sources: list[EvolutionSource], systems: list[int]):
        for source in sources:
            source.reset()
            for i_sys in systems:
                source.prepare(i_sys)

    # ───────────────────────────────────────────────────────────────
    # Main entry points
    # ───────────────────────────────────────────────────────────────

    def advance(self, upper: float, lower: float) -> EvolutionOutcome:
        """Evolve all beam-attached subsystems from `upper` down to `lower`."""
        if self.state is None:
            raise RuntimeError("EvolutionScheduler.setup() must be called before advance()")
        if upper <= lower:
            return EvolutionOutcome.TERMINATED
        info = self.state.info
        info.counters.add(slots.CURRENT_SYSTEM)
        info.counters.add(slots.SYSTEM_BEGUN)
        info.pt_max_mpi = info.pt_max_isr = info.pt_max_fsr = upper
        self._threshold_pending = self.hooks.can_intervene(HookPoint.SCALE_THRESHOLD)

        fsr_active = self.fsr is not None and self.config.do_fsr
        if self.config.interleave_fsr or not fsr_active:
            outcome = self._evolve(self.sources, upper, lower, None, None, 0)
        else:
            interleaved = [s for s in self.sources if s is not self.fsr]
            outcome = self._evolve(interleaved, upper, lower, None, None, 0)
            if outcome is EvolutionOutcome.TERMINATED:
                # FSR restarts from the top once MPI and ISR are done
                self._prepare_all([self.fsr], self._beam_systems())
                outcome = self._evolve([self.fsr], upper, lower, StepKind.FSR_SEPARATE, None, 0)
        if outcome is not EvolutionOutcome.TERMINATED:
            return outcome
        return self._close_threshold(lower, 0)

    def shower_resonances(self) -> EvolutionOutcome:
        """Shower every resonance-decay subsystem on its own, FSR only."""
        if self.state is None:
            raise RuntimeError("EvolutionScheduler.setup() must be called before shower_resonances()")
        if self.fsr is None or not self.config.do_fsr:
            return EvolutionOutcome.TERMINATED
        state = self.state
        lower = self.config.pt_end
        for i_sys in state.systems.resonance_systems():
            state.info.counters.add(slots.CURRENT_SYSTEM)
            i_res = state.systems.get_resonance(i_sys)
            scale = self.hooks.resonance_scale(i_res, state.event)
            if scale is None:
                scale = state.event[i_res].m
            # Each decay gets its own threshold check
            self._threshold_pending = self.hooks.can_intervene(HookPoint.SCALE_THRESHOLD)
            self._prepare_all([self.fsr], [i_sys])
            outcome = self._evolve([self.fsr], scale, lower, StepKind.RESONANCE, [i_sys], i_sys)
            if outcome is EvolutionOutcome.TERMINATED:
                outcome = self._close_threshold(lower, i_sys)
            if outcome is not EvolutionOutcome.TERMINATED:
                return outcome
        return EvolutionOutcome.TERMINATED

    # ───────────────────────────────────────────────────────────────
    # The ladder
    # ───────────────────────────────────────────────────────────────

    def _evolve(
        self,
        sources: list[EvolutionSource],
        ceiling: float,
        lower: float,
        forced_kind: StepKind | None,
        scope: list[int] | None,
        watched: int,
    ) -> EvolutionOutcome:
        """
        One pass of the ladder.

        forced_kind relabels every step (separate and resonance FSR), scope
        is the set of systems re-prepared after a rollback (None: every
        beam-attached system at that moment) and watched the system the
        STEP hook follows. A threshold still pending at the end of the pass
        is left to the caller.
        """
        state = self.state
        counters = state.info.counters
        resonance = forced_kind is StepKind.RESONANCE

        for _ in range(self.config.max_steps):
            counters.add(slots.RESONANCE_STEP_BEGUN if resonance else slots.STEP_BEGUN)

            pending: list[tuple[EvolutionSource, float]] = []
            for source in sources:
                scale = source.next_candidate(ceiling, lower)
                if scale is not None and scale > lower:
                    pending.append((source, min(scale, ceiling)))

            if not pending:
                return EvolutionOutcome.TERMINATED

            refused_scale = None
            committed = False
            while pending:
                source, scale = pending[0]
                for candidate in pending[1:]:
                    if candidate[1] > scale:
                        source, scale = candidate
                pending = [c for c in pending if c[0] is not source]
                kind = forced_kind if forced_kind is not None else source.kind

                if self._threshold_pending and scale < self.hooks.veto_scale:
                    self._threshold_pending = False
                    if self._check_threshold(kind, scale, watched):
                        return EvolutionOutcome.VETOED

                result = self._commit(source, kind, scale, sources, scope, watched)
                if result is None:
                    if refused_scale is None:
                        refused_scale = scale
                    continue
                if result is Decision.ABORT:
                    return EvolutionOutcome.VETOED
                committed = True
                ceiling = scale
                break

            if not committed and refused_scale is not None:
                ceiling = refused_scale

        state.info.messages.record("Warning in EvolutionScheduler: too many steps, evolution stalled")
        return EvolutionOutcome.STALLED

    def _commit(
        self,
        source: EvolutionSource,
        kind: StepKind,
        scale: float,
        sources: list[EvolutionSource],
        scope: list[int] | None,
        watched: int,
    ) -> Decision | None:
        """
        Commit one candidate and run the step hooks.

        Returns None when the source refused the commit, ABORT when a hook
        vetoed the event and CONTINUE otherwise (also after a per-emission
        veto has rolled the step back).
        """
        state = self.state
        event, systems, info = state.event, state.systems, state.info
        counters = info.counters
        counters.add(_SELECTED[kind])

        size_before = len(event)
        n_systems_before = len(systems)
        systems_snapshot = systems.snapshot()
        beam_snapshots = (state.beam_a.snapshot(), state.beam_b.snapshot())
        event.begin_step()

        if source.commit() is CommitResult.REFUSED:
            self._restore(systems_snapshot, beam_snapshots)
            counters.add(slots.COMMIT_REFUSED)
            info.messages.record(
                "Warning in EvolutionScheduler: commit refused, candidate discarded",
                f"({kind.name} at pT={scale:.3f})",
            )
            return None

        i_sys = source.system
        self._count(kind, i_sys, +1)
        self._cross_update(sources, source, i_sys, n_systems_before)

        emission_point = {
            StepKind.ISR: HookPoint.ISR_EMISSION,
            StepKind.FSR: HookPoint.FSR_EMISSION,
            StepKind.FSR_SEPARATE: HookPoint.FSR_EMISSION,
            StepKind.RESONANCE: HookPoint.FSR_EMISSION,
        }.get(kind)
        if emission_point is not None and self.hooks.can_intervene(emission_point):
            context = self._context(emission_point, kind, i_sys, size_before, scale)
            decision = self.hooks.decide(emission_point, event, context)
            if decision is Decision.ABORT:
                # Take back this emission only and resume strictly below it
                self._restore(systems_snapshot, beam_snapshots)
                self._count(kind, i_sys, -1)
                self._prepare_all(sources, scope if scope is not None else self._beam_systems())
                logger.debug("%s emission at pT=%.3f vetoed and rolled back", kind.name, scale)
                return Decision.CONTINUE

        if self._step_hook_applies(kind, i_sys, watched):
            context = self._context(HookPoint.STEP, kind, i_sys, size_before, scale)
            decision = self.hooks.decide(HookPoint.STEP, event, context)
            if decision is Decision.ABORT:
                event.end_step()
                return Decision.ABORT
        if (kind is StepKind.MPI and self.hooks.can_intervene(HookPoint.MPI_STEP)
                and self.n_mpi <= self.hooks.n_veto_mpi_steps):
            context = self._context(HookPoint.MPI_STEP, kind, i_sys, size_before, scale)
            decision = self.hooks.decide(HookPoint.MPI_STEP, event, context)
            if decision is Decision.ABORT:
                event.end_step()
                return Decision.ABORT

        event.end_step()
        counters.add(_ACCEPTED[kind])
        self.trace.append(EvolutionStep(kind, scale, i_sys, size_before))
        info.pt_now = scale
        logger.debug("Step %d: %s at pT=%.3f in system %d", len(self.trace), kind.name, scale, i_sys)
        return Decision.CONTINUE

    def _restore(self, systems_snapshot, beam_snapshots):
        state = self.state
        state.event.rollback()
        state.systems.restore(systems_snapshot)
        state.beam_a.restore(beam_snapshots[0])
        state.beam_b.restore(beam_snapshots[1])

    def _cross_update(
        self,
        sources: list[EvolutionSource],
        source: EvolutionSource,
        i_sys: int,
        n_systems_before: int,
    ):
        """Tell every source of the pass about the subsystems the commit changed or created."""
        created = range(n_systems_before, len(self.state.systems))
        changed = [] if i_sys in created else [i_sys]
        changed += list(getattr(source, "rescattered_systems", []))
        for target in sources:
            for new_sys in created:
                target.prepare(new_sys)
            for old_sys in changed:
                target.update(old_sys)

    def _count(self, kind: StepKind, i_sys: int, delta: int):
        info = self.state.info
        if kind is StepKind.MPI:
            self.n_mpi += delta
            info.n_mpi = self.n_mpi
        elif kind is StepKind.ISR:
            self.n_isr += delta
            if i_sys == 0:
                self.n_isr_hard += delta
            info.n_isr = self.n_isr
        elif kind is StepKind.RESONANCE:
            self.n_fsr_res += delta
            info.n_fsr_in_res = self.n_fsr_res
        else:
            self.n_fsr += delta
            if i_sys == 0:
                self.n_fsr_hard += delta
            info.n_fsr_in_proc = self.n_fsr

    def _step_hook_applies(self, kind: StepKind, i_sys: int, watched: int) -> bool:
        if kind is StepKind.MPI or not self.hooks.can_intervene(HookPoint.STEP):
            return False
        if i_sys != watched:
            return False
        limit = self.hooks.n_veto_steps
        if kind is StepKind.ISR:
            return self.n_isr_hard <= limit
        if kind is StepKind.RESONANCE:
            return self.n_fsr_res <= limit
        return self.n_fsr_hard <= limit

    def _context(self, point: HookPoint, kind: StepKind, i_sys: int, size_before: int, scale: float) -> HookContext:
        # The step hook follows one system and sees only its counts
        if point is HookPoint.STEP:
            n_isr, n_fsr = self.n_isr_hard, self.n_fsr_hard
        else:
            n_isr, n_fsr = self.n_isr, self.n_fsr
        if kind is StepKind.RESONANCE:
            n_fsr = self.n_fsr_res
        return HookContext(
            point=point,
            position=kind,
            n_isr=n_isr,
            n_fsr=n_fsr,
            n_mpi=self.n_mpi,
            system=i_sys,
            size_before=size_before,
            scale=scale,
        )

    def _close_threshold(self, lower: float, watched: int) -> EvolutionOutcome:
        """Fire a threshold nothing crossed, with no position, once the last pass is over."""
        if not self._threshold_pending:
            return EvolutionOutcome.TERMINATED
        self._threshold_pending = False
        if self._check_threshold(StepKind.NONE, lower, watched):
            return EvolutionOutcome.VETOED
        return EvolutionOutcome.TERMINATED

    def _check_threshold(self, kind: StepKind, scale: float, watched: int) -> bool:
        """Ask the scale-threshold hook; True means the event is vetoed."""
        context = self._context(HookPoint.SCALE_THRESHOLD, kind, watched, len(self.state.event), scale)
        decision = self.hooks.decide(HookPoint.SCALE_THRESHOLD, self.state.event, context)
        return decision is Decision.ABORT
