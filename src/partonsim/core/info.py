"""
Run and event bookkeeping: loop counters, header store, message tally,
and the per-event summary read by hooks and drivers.
"""

from __future__ import annotations
from collections import OrderedDict
from dataclasses import dataclass, field
import logging

import numpy as np

from partonsim.core.errors import CounterError

logger = logging.getLogger(__name__)


N_COUNTERS = 50
RUN_SCOPE = range(0, 10)
EVENT_SCOPE = range(10, 20)
STEP_SCOPE = range(20, 40)
EXTERNAL_SCOPE = range(40, 50)

# Assigned counter slots
GENERATOR_CONSTRUCTED = 0
INIT_BEGUN = 1
INIT_COMPLETED = 2
NEXT_BEGUN = 3
NEXT_COMPLETED = 4
EVENTS_ACCEPTED = 5

PROCESS_BEGUN = 10
PROCESS_COMPLETED = 11
PROCESS_SURVIVED_VETO = 12
EVENT_SURVIVED_ALL = 13
PARTON_LOOP_BEGUN = 14
PARTON_LEVEL_COMPLETED = 15
PARTON_SURVIVED_VETO = 16

CURRENT_SYSTEM = 20
SYSTEM_BEGUN = 21
STEP_BEGUN = 22
MPI_SELECTED = 23
ISR_SELECTED = 24
FSR_SELECTED = 25
MPI_ACCEPTED = 26
ISR_ACCEPTED = 27
FSR_ACCEPTED = 28
RESONANCE_STEP_BEGUN = 29
RESONANCE_FSR_SELECTED = 30
RESONANCE_FSR_ACCEPTED = 31
COMMIT_REFUSED = 32


class Counters:
    """
    Fixed bank of non-decreasing integer counters.

    Indices 0-9 span the run, 10-19 one event, 20-39 one evolution
    pass; 40-49 are free for external code. Counters only grow through
    add(); set() is reserved for the external slots. Scope resets are the
    only way engine-owned counters go back to zero.
    """

    def __init__(self):
        self._values = np.zeros(N_COUNTERS, dtype=np.int64)

    @staticmethod
    def _check_index(index: int):
        if not 0 <= index < N_COUNTERS:
            raise CounterError(f"Counter index {index} outside 0..{N_COUNTERS - 1}")

    def get(self, index: int) -> int:
        self._check_index(index)
        return int(self._values[index])

    def set(self, index: int, value: int = 0):
        self._check_index(index)
        if index not in EXTERNAL_SCOPE:
            raise CounterError(f"Counter {index} is engine-owned; only 40-49 may be set")
        self._values[index] = value

    def add(self, index: int, delta: int = 1):
        self._check_index(index)
        if delta < 0:
            raise CounterError(f"Counters never decrease (delta {delta} on counter {index})")
        self._values[index] += delta

    def reset_event(self):
        self._values[EVENT_SCOPE.start:EVENT_SCOPE.stop] = 0

    def reset_step(self):
        self._values[STEP_SCOPE.start:STEP_SCOPE.stop] = 0

    def as_array(self) -> np.ndarray:
        return self._values.copy()


class HeaderStore:
    """Ordered string-to-string map filled by external-input readers."""

    def __init__(self):
        self._items: OrderedDict[str, str] = OrderedDict()

    def get(self, key: str) -> str:
        return self._items.get(key, "")

    def set(self, key: str, value: str):
        self._items[key] = value

    def keys(self) -> list[str]:
        return list(self._items.keys())

    def __contains__(self, key: str) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)

    def clear(self):
        self._items.clear()


class MessageTally:
    """
    Counts warnings and errors by message text.

    The first `times_to_show` occurrences of each message are logged;
    further ones are only counted, and statistics() reports the totals.
    """

    def __init__(self, times_to_show: int = 1):
        self.times_to_show = times_to_show
        self._counts: OrderedDict[str, int] = OrderedDict()

    def record(self, message: str, extra: str = "", level: int = logging.WARNING):
        count = self._counts.get(message, 0) + 1
        self._counts[message] = count
        if count <= self.times_to_show:
            if extra:
                logger.log(level, "%s %s", message, extra)
            else:
                logger.log(level, "%s", message)

    def count(self, message: str) -> int:
        return self._counts.get(message, 0)

    def total(self) -> int:
        return sum(self._counts.values())

    def statistics(self) -> dict[str, int]:
        return dict(self._counts)

    def report(self):
        if not self._counts:
            logger.info("Message statistics: no warnings or errors")
            return
        for message, count in self._counts.items():
            logger.info("%6d times: %s", count, message)

    def reset(self):
        self._counts.clear()


@dataclass
class EventInfo:
    """
    Summary of the current event, readable by hooks and drivers.

    `counters`, `header` and `messages` are owned by the run and survive
    clear(); everything else describes the current event only.
    """

    counters: Counters = field(default_factory=Counters)
    header: HeaderStore = field(default_factory=HeaderStore)
    messages: MessageTally = field(default_factory=MessageTally)

    code: int = 0
    name: str = ""
    weight: float = 1.0
    sigma_factor: float = 1.0
    pt_hat: float = 0.0

    n_mpi: int = 0
    n_isr: int = 0
    n_fsr_in_proc: int = 0
    n_fsr_in_res: int = 0

    pt_max_mpi: float = 0.0
    pt_max_isr: float = 0.0
    pt_max_fsr: float = 0.0
    pt_now: float = 0.0

    def clear(self):
        self.code = 0
        self.name = ""
        self.weight = 1.0
        self.sigma_factor = 1.0
        self.pt_hat = 0.0
        self.n_mpi = 0
        self.n_isr = 0
        self.n_fsr_in_proc = 0
        self.n_fsr_in_res = 0
        self.pt_max_mpi = 0.0
        self.pt_max_isr = 0.0
        self.pt_max_fsr = 0.0
        self.pt_now = 0.0
