"""
Run layer: hard processes and the event loop around the evolution.
"""

from partonsim.run.process import HardProcess, ProcessConfig, ResonanceProcess, TwoToTwoProcess
from partonsim.run.generator import Generator, GeneratorConfig, RunStatistics

__all__ = [
    "HardProcess",
    "ProcessConfig",
    "ResonanceProcess",
    "TwoToTwoProcess",
    "Generator",
    "GeneratorConfig",
    "RunStatistics",
]
