"""
Evolution-history plots.

Draws the pT ladder of one event (scale against step number, one colour
per source) and how the steps split between the sources.
"""

from __future__ import annotations
from collections import Counter
from pathlib import Path
from typing import Sequence, TYPE_CHECKING

import numpy as np
import matplotlib.pyplot as plt
from matplotlib.figure import Figure
from matplotlib.axes import Axes

from partonsim.evolution.sources import StepKind

if TYPE_CHECKING:
    from partonsim.evolution.scheduler import EvolutionStep


KIND_COLOURS = {
    StepKind.MPI: "tab:red",
    StepKind.ISR: "tab:blue",
    StepKind.FSR: "tab:green",
    StepKind.FSR_SEPARATE: "tab:olive",
    StepKind.RESONANCE: "tab:purple",
}


def plot_scale_sequence(
    trace: Sequence["EvolutionStep"],
    title: str = "Evolution ladder",
    ax: Axes | None = None,
    figsize: tuple[float, float] = (8, 5),
    log_scale: bool = True,
    pt_end: float | None = None,
) -> tuple[Figure, Axes]:
    """
    Plot the committed scales in order.

    Args:
        trace: EvolutionStep list from EvolutionScheduler.trace
        title: Plot title
        ax: Existing axes (creates new if None)
        log_scale: Logarithmic pT axis
        pt_end: Draw the evolution cutoff as a horizontal line

    Returns:
        (fig, ax) tuple
    """
    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)
    else:
        fig = ax.figure

    steps = np.arange(1, len(trace) + 1)
    scales = np.array([step.scale for step in trace], dtype=np.float64)
    if len(trace) > 0:
        ax.plot(steps, scales, color="gray", linewidth=0.8, zorder=1)
    for kind, colour in KIND_COLOURS.items():
        mask = np.array([step.kind == kind for step in trace], dtype=bool)
        if np.any(mask):
            ax.scatter(steps[mask], scales[mask], color=colour, s=30, label=kind.name, zorder=2)

    if pt_end is not None:
        ax.axhline(pt_end, color="black", linestyle="--", linewidth=1.0, label="cutoff")
    if log_scale and len(trace) > 0 and np.all(scales > 0):
        ax.set_yscale("log")

    ax.set_xlabel("Step")
    ax.set_ylabel("pT (GeV)")
    ax.set_title(title)
    if ax.get_legend_handles_labels()[0]:
        ax.legend()
    return fig, ax


def plot_step_counts(
    trace: Sequence["EvolutionStep"],
    title: str = "Steps per source",
    ax: Axes | None = None,
    figsize: tuple[float, float] = (6, 4),
) -> tuple[Figure, Axes]:
    """Bar chart of how many committed steps each source produced."""
    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)
    else:
        fig = ax.figure

    counts = Counter(step.kind for step in trace)
    kinds = list(KIND_COLOURS)
    ax.bar(
        [kind.name for kind in kinds],
        [counts.get(kind, 0) for kind in kinds],
        color=[KIND_COLOURS[kind] for kind in kinds],
    )
    ax.set_ylabel("Steps")
    ax.set_title(title)
    return fig, ax


def save_figure(fig: Figure, path: str | Path, dpi: int = 150, **kwargs) -> None:
    """Save figure to file."""
    fig.savefig(path, dpi=dpi, bbox_inches="tight", **kwargs)
