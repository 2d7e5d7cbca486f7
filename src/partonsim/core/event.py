"""
Event record: the append-only history of one generated event.

The record is an arena of Particle entries addressed by integer index.
Index 0 is the event-as-a-whole line, so a mother or daughter value of 0
means "none". Entries are only ever appended; on an existing entry the
only fields that may change are the status and the two daughter indices.

Sign convention for status:
- positive: currently part of the live final state
- negative: superseded (branched, copied, or an incoming/intermediate line)

Branchings are journaled between begin_step() and end_step() so that a
single step can be rolled back exactly when an emission is vetoed.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Iterator
import logging

import numpy as np

from partonsim.core import vectors
from partonsim.core.errors import HistoryError

logger = logging.getLogger(__name__)


# Status codes (absolute values). The sign carries live/superseded.
STATUS_SYSTEM = 11
STATUS_BEAM = 12
STATUS_HARD_IN = 21
STATUS_RESONANCE = 22
STATUS_HARD_OUT = 23
STATUS_MPI_IN = 31
STATUS_MPI_OUT = 33
STATUS_RESCATTERED = 34
STATUS_ISR_MOTHER = 41
STATUS_ISR_RECOILER = 42
STATUS_ISR_SISTER = 43
STATUS_ISR_SHIFTED = 44
STATUS_FSR_DAUGHTER = 51
STATUS_FSR_RECOILER = 52

# First colour tag handed out by next_colour_tag().
FIRST_COLOUR_TAG = 100

SYSTEM_ID = 90


def colour_type(pdg_id: int) -> int:
    """0 singlet, 1 triplet (quark), -1 antitriplet (antiquark), 2 octet (gluon)."""
    if pdg_id == 21:
        return 2
    if 1 <= pdg_id <= 6:
        return 1
    if -6 <= pdg_id <= -1:
        return -1
    return 0


def charge(pdg_id: int) -> float:
    """Electric charge for quarks and charged leptons; 0 otherwise."""
    a = abs(pdg_id)
    sign = 1.0 if pdg_id > 0 else -1.0
    if a in (2, 4, 6):
        return sign * 2.0 / 3.0
    if a in (1, 3, 5):
        return -sign / 3.0
    if a in (11, 13, 15):
        return -sign
    if a == 24:
        return sign
    if a == 2212:
        return sign
    return 0.0


def is_parton(pdg_id: int) -> bool:
    return colour_type(pdg_id) != 0


@dataclass
class Particle:
    """One entry of the event record."""

    id: int
    status: int
    mother1: int = 0
    mother2: int = 0
    daughter1: int = 0
    daughter2: int = 0
    col: int = 0
    acol: int = 0
    p: np.ndarray = field(default_factory=lambda: np.zeros(4, dtype=np.float64))
    m: float = 0.0
    scale: float = 0.0  # Production scale; 0 means it may not branch further

    @property
    def is_final(self) -> bool:
        return self.status > 0

    @property
    def mothers(self) -> tuple[int, int]:
        return self.mother1, self.mother2

    @property
    def daughters(self) -> tuple[int, int]:
        return self.daughter1, self.daughter2

    @property
    def pt(self) -> float:
        return vectors.pt(self.p)

    @property
    def e(self) -> float:
        return float(self.p[3])

    @property
    def colour_type(self) -> int:
        return colour_type(self.id)

    @property
    def charge(self) -> float:
        return charge(self.id)

    def clone(self) -> Particle:
        """Detached copy (momentum array included)."""
        return replace(self, p=self.p.copy())


def _expand(first: int, second: int) -> list[int]:
    """Expand a (first, second) index pair with the record's range convention."""
    if first == 0 and second == 0:
        return []
    if second == 0 or second == first:
        return [first]
    if first == 0:
        return [second]
    if second > first:
        return list(range(first, second + 1))
    return [first, second]


class Event:
    """
    Append-only event record.

    Entries are addressed by integer handles. Engines mutate only status and
    daughter fields of existing entries; everything else is an append.
    """

    def __init__(self):
        self._entries: list[Particle] = []
        self._next_colour = FIRST_COLOUR_TAG

        # Step journal: None when no step is open
        self._journal: list[tuple[int, str, int]] | None = None
        self._step_size = 0
        self._step_colour = FIRST_COLOUR_TAG

    # ───────────────────────────────────────────────────────────────
    # Basic access
    # ───────────────────────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def size(self) -> int:
        return len(self._entries)

    def __getitem__(self, index: int) -> Particle:
        if not 0 <= index < len(self._entries):
            raise HistoryError(f"Event index {index} out of range (size {len(self._entries)})")
        return self._entries[index]

    def __iter__(self) -> Iterator[Particle]:
        return iter(self._entries)

    def clear(self):
        """Drop every entry. Not allowed while a step is open."""
        if self._journal is not None:
            raise HistoryError("Cannot clear the event record inside an open step")
        self._entries.clear()
        self._next_colour = FIRST_COLOUR_TAG

    def init_system(self, p_total: np.ndarray | None = None) -> int:
        """Append the index-0 line representing the event as a whole."""
        if self._entries:
            raise HistoryError("The system line must be the first entry")
        p = np.zeros(4) if p_total is None else np.asarray(p_total, dtype=np.float64)
        return self.append(SYSTEM_ID, -STATUS_SYSTEM, p=p, m=vectors.mass(p) if p[3] > 0 else 0.0)

    # ───────────────────────────────────────────────────────────────
    # Appends
    # ───────────────────────────────────────────────────────────────

    def append(
        self,
        pdg_id: int,
        status: int,
        mothers: tuple[int, int] = (0, 0),
        daughters: tuple[int, int] = (0, 0),
        cols: tuple[int, int] = (0, 0),
        p: np.ndarray | None = None,
        m: float = 0.0,
        scale: float = 0.0,
    ) -> int:
        """Append a new entry and return its index."""
        size = len(self._entries)
        for ref in (*mothers, *daughters):
            if ref < 0:
                raise HistoryError(f"Negative history index {ref}")
        for ref in mothers:
            if ref >= size and size > 0:
                raise HistoryError(f"Mother index {ref} does not exist yet (size {size})")
        momentum = np.zeros(4) if p is None else np.array(p, dtype=np.float64)
        self._entries.append(Particle(
            id=pdg_id,
            status=status,
            mother1=mothers[0],
            mother2=mothers[1],
            daughter1=daughters[0],
            daughter2=daughters[1],
            col=cols[0],
            acol=cols[1],
            p=momentum,
            m=float(m),
            scale=float(scale),
        ))
        return size

    def copy(
        self,
        index: int,
        status: int,
        p: np.ndarray | None = None,
        scale: float | None = None,
    ) -> int:
        """
        Append a carbon copy of an entry.

        The original is marked superseded and both its daughter indices
        point to the copy; both mother indices of the copy point back to
        the original. A recoiling copy may be given a new momentum `p`
        (its mass is then recomputed) and a new production `scale`.
        """
        original = self[index]
        new = len(self._entries)
        clone = original.clone()
        clone.status = status
        clone.mother1 = index
        clone.mother2 = index
        clone.daughter1 = 0
        clone.daughter2 = 0
        if p is not None:
            clone.p = np.array(p, dtype=np.float64)
            clone.m = vectors.mass(clone.p)
        if scale is not None:
            clone.scale = float(scale)
        self._entries.append(clone)
        self.set_daughters(index, new, new)
        self.set_status(index, -abs(original.status))
        return new

    def next_colour_tag(self) -> int:
        tag = self._next_colour
        self._next_colour += 1
        return tag

    def note_colour_tag(self, tag: int):
        """Keep the colour counter above tags assigned by external code."""
        if tag >= self._next_colour:
            self._next_colour = tag + 1

    # ───────────────────────────────────────────────────────────────
    # Mutations of existing entries (journaled)
    # ───────────────────────────────────────────────────────────────

    def set_status(self, index: int, status: int):
        entry = self[index]
        self._log_change(index, "status", entry.status)
        entry.status = status

    def set_daughters(self, index: int, daughter1: int, daughter2: int = 0):
        entry = self[index]
        self._log_change(index, "daughter1", entry.daughter1)
        self._log_change(index, "daughter2", entry.daughter2)
        entry.daughter1 = daughter1
        entry.daughter2 = daughter2

    def _log_change(self, index: int, name: str, old: int):
        # Entries appended within the open step disappear on rollback anyway.
        if self._journal is not None and index < self._step_size:
            self._journal.append((index, name, old))

    # ───────────────────────────────────────────────────────────────
    # Step journal
    # ───────────────────────────────────────────────────────────────

    @property
    def in_step(self) -> bool:
        return self._journal is not None

    def begin_step(self):
        """Start journaling so the next branching can be undone."""
        self._journal = []
        self._step_size = len(self._entries)
        self._step_colour = self._next_colour

    def end_step(self):
        """Accept the journaled branching."""
        self._journal = None

    def rollback(self):
        """
        Undo everything since begin_step(): drop appended entries and
        restore status/daughter fields in reverse order.
        """
        if self._journal is None:
            raise HistoryError("rollback() without begin_step()")
        del self._entries[self._step_size:]
        for index, name, old in reversed(self._journal):
            setattr(self._entries[index], name, old)
        self._next_colour = self._step_colour
        self._journal = None

    def snapshot(self) -> tuple[list[Particle], int]:
        """Detached copy of the whole record, for retrying a later stage."""
        if self._journal is not None:
            raise HistoryError("Cannot snapshot the event record inside an open step")
        return [entry.clone() for entry in self._entries], self._next_colour

    def restore(self, snapshot: tuple[list[Particle], int]):
        if self._journal is not None:
            raise HistoryError("Cannot restore the event record inside an open step")
        entries, next_colour = snapshot
        self._entries = [entry.clone() for entry in entries]
        self._next_colour = next_colour

    # ───────────────────────────────────────────────────────────────
    # History queries
    # ───────────────────────────────────────────────────────────────

    def daughter_list(self, index: int) -> list[int]:
        entry = self[index]
        return _expand(entry.daughter1, entry.daughter2)

    def mother_list(self, index: int) -> list[int]:
        entry = self[index]
        mothers = _expand(entry.mother1, entry.mother2)
        return [m for m in mothers if m != index]

    def final_state(self) -> list[int]:
        """Indices of all live (positive status) entries."""
        return [i for i, entry in enumerate(self._entries) if entry.status > 0]

    def momentum_sum(self, final_only: bool = True) -> np.ndarray:
        total = np.zeros(4, dtype=np.float64)
        for entry in self._entries:
            if not final_only or entry.status > 0:
                total += entry.p
        return total

    def check_history(self) -> list[str]:
        """
        Verify the structural invariants of the record.

        Returns a list of human-readable problems; empty means consistent.
        """
        problems: list[str] = []
        size = len(self._entries)
        for i, entry in enumerate(self._entries):
            for ref in (entry.mother1, entry.mother2, entry.daughter1, entry.daughter2):
                if not 0 <= ref < size:
                    problems.append(f"entry {i}: history index {ref} out of range")
            initial = i == 0 or abs(entry.status) in (STATUS_SYSTEM, STATUS_BEAM)
            if not initial and entry.mother1 == 0 and entry.mother2 == 0:
                problems.append(f"entry {i}: no mother")
            if entry.status < 0:
                daughters = _expand(entry.daughter1, entry.daughter2)
                if not daughters:
                    problems.append(f"entry {i}: superseded without daughters")
                for d in daughters:
                    if d <= i:
                        problems.append(f"entry {i}: daughter {d} is not later in the record")
            # A carbon copy must link in both directions.
            if i > 0 and entry.mother1 == entry.mother2 and entry.mother1 > 0:
                original = self._entries[entry.mother1] if entry.mother1 < size else None
                if original is not None and original.daughters != (i, i):
                    problems.append(f"entry {i}: carbon copy of {entry.mother1} not linked back")
        return problems

    # ───────────────────────────────────────────────────────────────
    # Presentation
    # ───────────────────────────────────────────────────────────────

    def view(self) -> EventView:
        return EventView(self)

    def listing(self) -> str:
        """Fixed-width table of the record."""
        lines = [
            "   no      id  status   mothers   daughters    colours"
            "        px        py        pz         e         m     scale"
        ]
        for i, entry in enumerate(self._entries):
            px, py, pz, e = entry.p
            lines.append(
                f"{i:5d} {entry.id:7d} {entry.status:7d} {entry.mother1:4d} {entry.mother2:4d} "
                f"{entry.daughter1:5d} {entry.daughter2:5d} {entry.col:5d} {entry.acol:5d} "
                f"{px:9.3f} {py:9.3f} {pz:9.3f} {e:9.3f} {entry.m:9.3f} {entry.scale:9.3f}"
            )
        total = self.momentum_sum()
        lines.append(
            f"{'sum final':>56s} {total[0]:9.3f} {total[1]:9.3f} {total[2]:9.3f} {total[3]:9.3f}"
        )
        return "\n".join(lines)

    def list(self, level: int = logging.INFO):
        """Write the listing to this module's logger."""
        logger.log(level, "Event listing (size %d)\n%s", len(self._entries), self.listing())


class EventView:
    """
    Read-only window onto an Event.

    Item access returns detached copies, and every mutator raises
    HistoryError. Handed to veto hooks everywhere except the process-level
    point.
    """

    def __init__(self, event: Event):
        self._event = event

    def __len__(self) -> int:
        return len(self._event)

    @property
    def size(self) -> int:
        return len(self._event)

    def __getitem__(self, index: int) -> Particle:
        return self._event[index].clone()

    def __iter__(self) -> Iterator[Particle]:
        for entry in self._event:
            yield entry.clone()

    def daughter_list(self, index: int) -> list[int]:
        return self._event.daughter_list(index)

    def mother_list(self, index: int) -> list[int]:
        return self._event.mother_list(index)

    def final_state(self) -> list[int]:
        return self._event.final_state()

    def momentum_sum(self, final_only: bool = True) -> np.ndarray:
        return self._event.momentum_sum(final_only)

    def listing(self) -> str:
        return self._event.listing()

    def _read_only(self, *args, **kwargs):
        raise HistoryError("Event view is read-only")

    append = _read_only
    copy = _read_only
    set_status = _read_only
    set_daughters = _read_only
    clear = _read_only
    rollback = _read_only
