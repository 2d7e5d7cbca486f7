#!/usr/bin/env python3
"""
Demo: One Interleaved Event

Generates a few QCD events and prints what happened on the pT ladder:
1. Initialise beams, hard process and the three evolution sources
2. Generate events with MPI, ISR and FSR competing for every step
3. Print the step sequence and the event record of the last event
4. Log the run summary

Every event starts at the hard scale and works its way down to the
cutoff; no step is ever harder than the one before it.
"""

import logging

from partonsim.evolution import EvolutionConfig, StepKind
from partonsim.run import Generator, GeneratorConfig, ProcessConfig, TwoToTwoProcess


def main():
    logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")

    print("=" * 60)
    print("  INTERLEAVED PARTON-LEVEL EVOLUTION")
    print("=" * 60)

    n_events = 5
    config = GeneratorConfig(
        ecm=7000.0,
        seed=2024,
        evolution=EvolutionConfig(pt_end=1.0),
    )
    process = TwoToTwoProcess(ProcessConfig(pt_hat_min=30.0))

    print(f"\n1. Setup:")
    print(f"   Beams: {config.beam_a_id} + {config.beam_b_id} at {config.ecm:.0f} GeV")
    print(f"   Hard process: 2 -> 2 with pT > {process.config.pt_hat_min:.0f} GeV")
    print(f"   Cutoff: {config.evolution.pt_end:.1f} GeV")

    gen = Generator(process, config)
    gen.init()

    print(f"\n2. Generating {n_events} events...")
    for i_event in range(n_events):
        if not gen.next():
            print(f"   Event {i_event}: failed")
            continue
        trace = gen.scheduler.trace
        counts = {kind.name: sum(1 for s in trace if s.kind is kind) for kind in StepKind if kind is not StepKind.NONE}
        print(f"   Event {i_event}: pT_hat = {gen.info.pt_hat:6.1f} GeV, "
              f"{len(trace)} steps, {counts['MPI']} MPI, {counts['ISR']} ISR, {counts['FSR']} FSR, "
              f"{len(gen.event.final_state())} final partons")

    print("\n3. Step sequence of the last event (first 15):")
    for step in gen.scheduler.trace[:15]:
        print(f"   {step.kind.name:>4}  pT = {step.scale:7.2f} GeV  system {step.system}")

    print("\n   Event record:")
    gen.event.list()

    print("\n4. Run summary:")
    gen.report()

    print("\n" + "=" * 60)
    print("  SUMMARY")
    print("=" * 60)
    print(f"  • Every step was picked as the hardest candidate of all sources")
    print(f"  • Additional interactions opened {len(gen.systems) - 1} extra subsystems in the last event")
    print(f"  • Event checks passed: {gen.check_event()}")
    print("=" * 60)


if __name__ == "__main__":
    main()
