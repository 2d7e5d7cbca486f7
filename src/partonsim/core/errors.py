"""
Exception types.

Per-event conditions (a refused branching, a veto, running out of phase
space) are ordinary return values and never appear here. These exceptions
cover misuse of the API and run-level setup that cannot work.
"""


class PartonSimError(Exception):
    """Base class for all partonsim errors."""


class InitializationError(PartonSimError):
    """The run configuration cannot produce events; raised before the first event."""


class HistoryError(PartonSimError):
    """Invalid access to or mutation of the event record."""


class CounterError(PartonSimError):
    """Illegal counter index or update."""
