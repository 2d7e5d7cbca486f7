"""Unit tests for the evolution-history plots."""

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import pytest

from partonsim.evolution.scheduler import EvolutionStep
from partonsim.evolution.sources import StepKind
from partonsim.viz import plot_scale_sequence, plot_step_counts, save_figure


@pytest.fixture
def trace():
    return [
        EvolutionStep(StepKind.MPI, 40.0, 1, 7),
        EvolutionStep(StepKind.FSR, 30.0, 0, 11),
        EvolutionStep(StepKind.ISR, 12.0, 0, 13),
        EvolutionStep(StepKind.FSR, 3.0, 1, 17),
    ]


class TestScaleSequence:
    """Tests for plot_scale_sequence."""

    def test_returns_figure(self, trace):
        fig, ax = plot_scale_sequence(trace, pt_end=1.0)
        assert ax.get_yscale() == "log"
        labels = ax.get_legend_handles_labels()[1]
        assert {"MPI", "ISR", "FSR", "cutoff"} <= set(labels)
        plt.close(fig)

    def test_existing_axes(self, trace):
        fig, ax = plt.subplots()
        fig2, ax2 = plot_scale_sequence(trace, ax=ax, log_scale=False)
        assert ax2 is ax
        assert fig2 is fig
        assert ax.get_yscale() == "linear"
        plt.close(fig)

    def test_empty_trace(self):
        fig, ax = plot_scale_sequence([])
        assert ax.get_title() == "Evolution ladder"
        plt.close(fig)


class TestStepCounts:
    """Tests for plot_step_counts."""

    def test_bar_heights(self, trace):
        fig, ax = plot_step_counts(trace)
        heights = [patch.get_height() for patch in ax.patches]
        # MPI, ISR, FSR, FSR_SEPARATE, RESONANCE
        assert heights == [1, 1, 2, 0, 0]
        plt.close(fig)


class TestSaveFigure:
    """Tests for save_figure."""

    def test_writes_file(self, trace, tmp_path):
        fig, _ = plot_scale_sequence(trace)
        path = tmp_path / "ladder.png"
        save_figure(fig, path)
        assert path.exists()
        assert path.stat().st_size > 0
        plt.close(fig)
