"""
PartonSystems: groups event-record entries into scattering subsystems.

Each subsystem is one hard interaction (the primary one, an additional
interaction, or a resonance decay) together with the partons its
evolution has produced so far. The registry stores only integer handles
into the Event record, never particles.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from partonsim.core.event import Event


@dataclass
class PartonSystem:
    """Incoming pair plus the ordered list of current outgoing partons."""

    in_a: int = 0  # 0 for systems unrelated to the beams
    in_b: int = 0
    out: list[int] = field(default_factory=list)
    resonance: int = 0  # Decaying entry for resonance-decay systems
    s_hat: float = 0.0

    def copy(self) -> PartonSystem:
        return PartonSystem(self.in_a, self.in_b, list(self.out), self.resonance, self.s_hat)


class PartonSystems:
    """
    Registry of subsystems, indexed in creation order.

    The outgoing list of every system holds only live (positive-status)
    entries; engines update it in the same commit that changes the record.
    """

    def __init__(self):
        self._systems: list[PartonSystem] = []

    def clear(self):
        self._systems.clear()

    def __len__(self) -> int:
        return len(self._systems)

    def size(self) -> int:
        return len(self._systems)

    def __getitem__(self, i_sys: int) -> PartonSystem:
        return self._systems[i_sys]

    def add_system(self, resonance: int = 0) -> int:
        self._systems.append(PartonSystem(resonance=resonance))
        return len(self._systems) - 1

    # ───────────────────────────────────────────────────────────────
    # Setters
    # ───────────────────────────────────────────────────────────────

    def set_in_a(self, i_sys: int, index: int):
        self._systems[i_sys].in_a = index

    def set_in_b(self, i_sys: int, index: int):
        self._systems[i_sys].in_b = index

    def set_s_hat(self, i_sys: int, s_hat: float):
        self._systems[i_sys].s_hat = s_hat

    def add_out(self, i_sys: int, index: int):
        self._systems[i_sys].out.append(index)

    def remove_out(self, i_sys: int, index: int):
        self._systems[i_sys].out.remove(index)

    def set_out(self, i_sys: int, indices: list[int]):
        self._systems[i_sys].out = list(indices)

    def replace(self, i_sys: int, old: int, new: int):
        """Replace an entry index (incoming or outgoing) by its successor."""
        system = self._systems[i_sys]
        if system.in_a == old:
            system.in_a = new
            return
        if system.in_b == old:
            system.in_b = new
            return
        try:
            pos = system.out.index(old)
        except ValueError:
            raise ValueError(f"Entry {old} is not part of system {i_sys}") from None
        system.out[pos] = new

    # ───────────────────────────────────────────────────────────────
    # Getters
    # ───────────────────────────────────────────────────────────────

    def get_in_a(self, i_sys: int) -> int:
        return self._systems[i_sys].in_a

    def get_in_b(self, i_sys: int) -> int:
        return self._systems[i_sys].in_b

    def get_out(self, i_sys: int) -> list[int]:
        return list(self._systems[i_sys].out)

    def get_s_hat(self, i_sys: int) -> float:
        return self._systems[i_sys].s_hat

    def get_resonance(self, i_sys: int) -> int:
        return self._systems[i_sys].resonance

    def has_incoming(self, i_sys: int) -> bool:
        system = self._systems[i_sys]
        return system.in_a > 0 and system.in_b > 0

    def get_all(self, i_sys: int) -> list[int]:
        """Incoming (when present) followed by outgoing indices."""
        system = self._systems[i_sys]
        incoming = [i for i in (system.in_a, system.in_b) if i > 0]
        return incoming + list(system.out)

    def system_of(self, index: int, outgoing_only: bool = True) -> int | None:
        """Subsystem holding `index`, or None."""
        for i_sys, system in enumerate(self._systems):
            if index in system.out:
                return i_sys
            if not outgoing_only and index in (system.in_a, system.in_b) and index > 0:
                return i_sys
        return None

    def resonance_systems(self) -> list[int]:
        return [i for i, s in enumerate(self._systems) if s.resonance > 0]

    # ───────────────────────────────────────────────────────────────
    # Snapshots and consistency
    # ───────────────────────────────────────────────────────────────

    def snapshot(self) -> list[PartonSystem]:
        return [s.copy() for s in self._systems]

    def restore(self, snapshot: list[PartonSystem]):
        self._systems = [s.copy() for s in snapshot]

    def check(self, event: "Event") -> list[str]:
        """Every outgoing index must be a live entry of the record."""
        problems = []
        for i_sys, system in enumerate(self._systems):
            for index in system.out:
                if index >= len(event):
                    problems.append(f"system {i_sys}: outgoing {index} not in record")
                elif event[index].status <= 0:
                    problems.append(f"system {i_sys}: outgoing {index} is not live")
            if len(set(system.out)) != len(system.out):
                problems.append(f"system {i_sys}: duplicate outgoing entries")
        return problems

    def listing(self) -> str:
        lines = [" sys   inA   inB  res  outgoing"]
        for i_sys, system in enumerate(self._systems):
            outs = " ".join(str(i) for i in system.out)
            lines.append(f"{i_sys:4d} {system.in_a:5d} {system.in_b:5d} {system.resonance:4d}  {outs}")
        return "\n".join(lines)
