"""
Generator: the event loop around the evolution.

next() runs one event through three levels:
1. Process level: the hard process fills subsystem 0, the reweighting
   hook scales the event weight, the process-level hook may veto
2. Parton level: interleaved evolution from the hard scale down to the
   cutoff, then resonance decays and their showers, then the
   parton-level hook
3. Checks: history, registry and momentum consistency

A veto at any level throws the whole event away and starts again from a
new hard process; vetoed events never enter the statistics. A stalled
evolution only retries the parton level.
"""

from __future__ import annotations
from dataclasses import dataclass, field
import logging

import numpy as np

from partonsim.core import info as slots
from partonsim.core import vectors
from partonsim.core.beams import BeamParticle, PartonDensity, ToyPDF
from partonsim.core.errors import InitializationError
from partonsim.core.event import STATUS_BEAM, STATUS_RESCATTERED, Event
from partonsim.core.info import EventInfo
from partonsim.core.systems import PartonSystems
from partonsim.evolution.final_state import FinalStateConfig, FinalStateShower
from partonsim.evolution.hooks import Decision, HookContext, HookPoint, VetoHooks
from partonsim.evolution.initial_state import InitialStateConfig, InitialStateShower
from partonsim.evolution.interactions import InteractionsConfig, MultipleInteractions
from partonsim.evolution.scheduler import EvolutionConfig, EvolutionOutcome, EvolutionScheduler
from partonsim.run.process import HardProcess

logger = logging.getLogger(__name__)


@dataclass
class GeneratorConfig:
    """Configuration for a run."""

    ecm: float = 13000.0          # Collision energy (GeV)
    beam_a_id: int = 2212
    beam_b_id: int = 2212
    seed: int | None = 12345
    n_tries: int = 10             # Parton-level attempts per hard process
    max_process_tries: int = 100  # Hard processes per next() call
    check_event: bool = True
    epsilon: float = 1e-6         # Relative momentum-conservation tolerance
    evolution: EvolutionConfig = field(default_factory=EvolutionConfig)
    fsr: FinalStateConfig = field(default_factory=FinalStateConfig)
    isr: InitialStateConfig = field(default_factory=InitialStateConfig)
    mpi: InteractionsConfig = field(default_factory=InteractionsConfig)

    def validate(self):
        if self.ecm <= 0.0:
            raise ValueError(f"ecm must be positive, got {self.ecm}")
        if self.n_tries < 1 or self.max_process_tries < 1:
            raise ValueError("n_tries and max_process_tries must be at least 1")
        if self.evolution.pt_end <= 0.0:
            raise ValueError("Evolution cutoff pt_end must be positive")
        self.fsr.validate()
        self.isr.validate()
        self.mpi.validate()


@dataclass
class RunStatistics:
    """
    Event counts and the cross-section estimate.

    sigma = sigma_max · Σ accepted weights / trials, in the units of the
    hard process's sigma_max.
    """

    n_tried: int = 0
    n_selected: int = 0
    n_accepted: int = 0
    sum_weights: float = 0.0
    sigma_max: float = 0.0

    def accumulate(self, weight: float):
        self.n_accepted += 1
        self.sum_weights += weight

    @property
    def sigma_estimate(self) -> float:
        if self.n_tried == 0:
            return 0.0
        return self.sigma_max * self.sum_weights / self.n_tried

    @property
    def sigma_error(self) -> float:
        if self.n_accepted == 0:
            return 0.0
        return self.sigma_estimate / np.sqrt(self.n_accepted)

    def summary(self) -> dict:
        return {
            "n_tried": self.n_tried,
            "n_selected": self.n_selected,
            "n_accepted": self.n_accepted,
            "sigma": self.sigma_estimate,
            "sigma_error": self.sigma_error,
        }


class Generator:
    """
    Owns one run: the random stream, beams, engines, scheduler and hooks.

    Example:
        gen = Generator(TwoToTwoProcess())
        gen.init()
        for _ in range(100):
            if gen.next():
                ...
    """

    def __init__(
        self,
        process: HardProcess,
        config: GeneratorConfig | None = None,
        hooks: VetoHooks | None = None,
        pdf: PartonDensity | None = None,
    ):
        self.process = process
        self.config = config or GeneratorConfig()
        self.hooks = hooks or VetoHooks()
        self.rng = np.random.default_rng(self.config.seed)

        self.info = EventInfo()
        self.event = Event()
        self.systems = PartonSystems()
        pdf = pdf or ToyPDF()
        half = 0.5 * self.config.ecm
        self.beam_a = BeamParticle(self.config.beam_a_id, vectors.four_vector(0.0, 0.0, half, half),
                                   pdf=pdf, event_index=1)
        self.beam_b = BeamParticle(self.config.beam_b_id, vectors.four_vector(0.0, 0.0, -half, half),
                                   pdf=pdf, event_index=2)

        self.fsr = FinalStateShower(self.rng, self.config.fsr)
        self.isr = InitialStateShower(self.rng, self.config.isr)
        self.mpi = MultipleInteractions(self.rng, self.config.mpi)
        self.scheduler = EvolutionScheduler(
            fsr=self.fsr, isr=self.isr, mpi=self.mpi, hooks=self.hooks, config=self.config.evolution
        )
        self._statistics = RunStatistics()
        self._initialized = False
        self.info.counters.add(slots.GENERATOR_CONSTRUCTED)

    # ───────────────────────────────────────────────────────────────
    # Initialisation
    # ───────────────────────────────────────────────────────────────

    def init(self):
        """Validate the setup; raises InitializationError before any event if it cannot work."""
        counters = self.info.counters
        counters.add(slots.INIT_BEGUN)
        cfg = self.config
        try:
            cfg.validate()
        except ValueError as err:
            raise InitializationError(str(err)) from err
        pt_floor = cfg.evolution.pt_end
        if 2.0 * pt_floor >= cfg.ecm:
            raise InitializationError(f"Evolution cutoff {pt_floor} leaves no phase space at ecm={cfg.ecm}")

        self.process.init(self.beam_a, self.beam_b, cfg.ecm)
        if cfg.evolution.do_mpi:
            self.mpi.init(self.beam_a, self.beam_b, cfg.ecm)
        self._initialized = True
        counters.add(slots.INIT_COMPLETED)
        logger.info(
            "Generator initialised: %s at ecm=%.1f (MPI %s, ISR %s, FSR %s)",
            self.process.name, cfg.ecm, cfg.evolution.do_mpi, cfg.evolution.do_isr, cfg.evolution.do_fsr,
        )

    # ───────────────────────────────────────────────────────────────
    # Event loop
    # ───────────────────────────────────────────────────────────────

    def _reset_event(self):
        self.info.clear()
        self.event.clear()
        self.systems.clear()
        self.beam_a.clear()
        self.beam_b.clear()
        self.event.init_system(self.beam_a.p + self.beam_b.p)
        for beam in (self.beam_a, self.beam_b):
            self.event.append(beam.id, -STATUS_BEAM, p=beam.p, m=vectors.mass(beam.p))
        self.event.set_daughters(0, self.beam_a.event_index, self.beam_b.event_index)

    def next(self) -> bool:
        """Generate one event. False when no event could be produced."""
        if not self._initialized:
            raise InitializationError("Generator.init() must succeed before next()")
        counters = self.info.counters
        counters.add(slots.NEXT_BEGUN)
        counters.reset_event()

        for _ in range(self.config.max_process_tries):
            self._reset_event()

            counters.add(slots.PROCESS_BEGUN)
            if not self.process.next(self.event, self.systems, self.beam_a, self.beam_b, self.info, self.rng):
                self.info.messages.record("Error in Generator: hard process failed")
                continue
            counters.add(slots.PROCESS_COMPLETED)

            factor = self.hooks.reweight(self.info)
            self.info.sigma_factor = factor
            self.info.weight *= factor

            if self.hooks.can_intervene(HookPoint.PROCESS_LEVEL):
                context = HookContext(HookPoint.PROCESS_LEVEL, size_before=len(self.event), scale=self.info.pt_hat)
                if self.hooks.decide(HookPoint.PROCESS_LEVEL, self.event, context) is Decision.ABORT:
                    continue
            counters.add(slots.PROCESS_SURVIVED_VETO)
            self._statistics.n_selected += 1

            outcome = self._parton_level()
            if outcome is EvolutionOutcome.VETOED:
                continue
            if outcome is EvolutionOutcome.STALLED:
                self.info.messages.record("Error in Generator: parton level failed")
                continue

            if self.config.check_event and not self.check_event():
                self.info.messages.record("Error in Generator: check of event failed")
                continue

            counters.add(slots.EVENT_SURVIVED_ALL)
            counters.add(slots.NEXT_COMPLETED)
            counters.add(slots.EVENTS_ACCEPTED)
            self._statistics.accumulate(self.info.weight)
            return True

        self.info.messages.record("Error in Generator: too many hard-process tries")
        return False

    def _parton_level(self) -> EvolutionOutcome:
        counters = self.info.counters
        evolution = self.config.evolution
        saved = (self.event.snapshot(), self.systems.snapshot(),
                 self.beam_a.snapshot(), self.beam_b.snapshot())

        for attempt in range(self.config.n_tries):
            if attempt > 0:
                self.event.restore(saved[0])
                self.systems.restore(saved[1])
                self.beam_a.restore(saved[2])
                self.beam_b.restore(saved[3])
            counters.add(slots.PARTON_LOOP_BEGUN)

            if evolution.do_mpi:
                self.mpi.prepare_event(self.info.pt_hat)
            self.scheduler.setup(self.event, self.systems, self.beam_a, self.beam_b, self.info)
            outcome = self.scheduler.advance(self.info.pt_hat, evolution.pt_end)
            if outcome is EvolutionOutcome.STALLED:
                continue
            if outcome is EvolutionOutcome.VETOED:
                return outcome

            self.process.decay_resonances(self.event, self.systems, self.rng)
            outcome = self.scheduler.shower_resonances()
            if outcome is EvolutionOutcome.STALLED:
                continue
            if outcome is EvolutionOutcome.VETOED:
                return outcome
            counters.add(slots.PARTON_LEVEL_COMPLETED)

            if self.hooks.can_intervene(HookPoint.PARTON_LEVEL):
                context = HookContext(
                    HookPoint.PARTON_LEVEL,
                    n_isr=self.info.n_isr,
                    n_fsr=self.info.n_fsr_in_proc,
                    n_mpi=self.info.n_mpi,
                    size_before=len(self.event),
                    scale=self.info.pt_now,
                )
                if self.hooks.decide(HookPoint.PARTON_LEVEL, self.event, context) is Decision.ABORT:
                    return EvolutionOutcome.VETOED
            counters.add(slots.PARTON_SURVIVED_VETO)
            return EvolutionOutcome.TERMINATED
        return EvolutionOutcome.STALLED

    # ───────────────────────────────────────────────────────────────
    # Checks and statistics
    # ───────────────────────────────────────────────────────────────

    def check_event(self) -> bool:
        """History, registry and momentum consistency; problems go to the message tally."""
        problems = self.event.check_history() + self.systems.check(self.event)

        p_in = np.zeros(4)
        for i_sys in range(len(self.systems)):
            if not self.systems.has_incoming(i_sys):
                continue
            for index in (self.systems.get_in_a(i_sys), self.systems.get_in_b(i_sys)):
                if abs(self.event[index].status) != STATUS_RESCATTERED:
                    p_in += self.event[index].p
        p_out = self.event.momentum_sum()
        tolerance = self.config.epsilon * self.config.ecm
        if np.max(np.abs(p_in - p_out)) > tolerance:
            problems.append(f"momentum not conserved: incoming {p_in} vs final {p_out}")

        for problem in problems:
            self.info.messages.record("Error in Generator::check_event:", problem)
        return not problems

    def statistics(self) -> RunStatistics:
        stats = self._statistics
        stats.n_tried = self.process.n_tried
        stats.sigma_max = self.process.sigma_max
        return stats

    def report(self):
        """Log the run summary and the message statistics."""
        summary = self.statistics().summary()
        logger.info(
            "Run summary: tried %d, selected %d, accepted %d, sigma = %.4g +- %.4g",
            summary["n_tried"], summary["n_selected"], summary["n_accepted"],
            summary["sigma"], summary["sigma_error"],
        )
        self.info.messages.report()
