#!/usr/bin/env python3
"""
Demo: The pT Ladder

Plots the evolution history of single events:
1. Generate one event with interleaved FSR
2. Generate one with FSR run as a separate pass afterwards
3. Plot the scale sequences and step counts side by side

With interleaving the three sources share one decreasing ladder; the
separate pass restarts FSR from the hard scale once MPI and ISR are done.
"""

import logging
from pathlib import Path

import matplotlib.pyplot as plt

from partonsim.evolution import EvolutionConfig
from partonsim.run import Generator, GeneratorConfig, ProcessConfig, TwoToTwoProcess
from partonsim.viz import plot_scale_sequence, plot_step_counts, save_figure


def one_event(interleave_fsr, seed=5):
    config = GeneratorConfig(
        ecm=13000.0,
        seed=seed,
        evolution=EvolutionConfig(pt_end=1.0, interleave_fsr=interleave_fsr),
    )
    gen = Generator(TwoToTwoProcess(ProcessConfig(pt_hat_min=50.0)), config)
    gen.init()
    gen.next()
    return gen


def main():
    logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")

    print("=" * 60)
    print("  THE pT LADDER")
    print("=" * 60)

    print("\n1. Interleaved FSR...")
    interleaved = one_event(interleave_fsr=True)
    print(f"   pT_hat = {interleaved.info.pt_hat:.1f} GeV, {len(interleaved.scheduler.trace)} steps")

    print("\n2. Separate FSR pass...")
    separate = one_event(interleave_fsr=False)
    print(f"   pT_hat = {separate.info.pt_hat:.1f} GeV, {len(separate.scheduler.trace)} steps")

    print("\n3. Creating visualization...")
    fig, axes = plt.subplots(2, 2, figsize=(14, 10))
    pt_end = interleaved.config.evolution.pt_end
    plot_scale_sequence(interleaved.scheduler.trace, title="Interleaved FSR", ax=axes[0, 0], pt_end=pt_end)
    plot_scale_sequence(separate.scheduler.trace, title="Separate FSR pass", ax=axes[0, 1], pt_end=pt_end)
    plot_step_counts(interleaved.scheduler.trace, title="Steps (interleaved)", ax=axes[1, 0])
    plot_step_counts(separate.scheduler.trace, title="Steps (separate)", ax=axes[1, 1])
    fig.suptitle("Parton-level evolution history", fontsize=14, fontweight="bold")
    fig.tight_layout()

    output_dir = Path("output/demo_scale_ladder")
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / "scale_ladder.png"
    save_figure(fig, output_path)
    plt.close(fig)
    print(f"   Saved: {output_path}")

    print("\n" + "=" * 60)
    print("  SUMMARY")
    print("=" * 60)
    print(f"  • Interleaved: one ladder shared by MPI, ISR and FSR")
    print(f"  • Separate: FSR restarts at the hard scale after the other two")
    print("=" * 60)


if __name__ == "__main__":
    main()
