"""
Visualization utilities.

- Evolution ladder (pT against step, per source)
- Step counts per source
"""

from partonsim.viz.history import (
    plot_scale_sequence,
    plot_step_counts,
    save_figure,
)

__all__ = [
    "plot_scale_sequence",
    "plot_step_counts",
    "save_figure",
]
