# SPDX-License-Identifier: Apache-2.0
"""Rack unit placement rules and switch port/VLAN consistency.

Every function here is a pure predicate or transformation over a snapshot of a
rack; persisting the outcome is left to ``services.inventory``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from models import Equipment, Rack, SwitchPort
from services.exceptions import InvalidInputError, OutOfBoundsError, OverlapError


@dataclass(frozen=True)
class UnitRange:
    """Inclusive run of rack units starting at ``start`` and ``size`` units tall."""

    start: int
    size: int

    @property
    def end(self) -> int:
        return self.start + self.size - 1

    @classmethod
    def of(cls, equipment: Equipment) -> "UnitRange":
        return cls(equipment.position, equipment.size)

    def overlaps(self, other: "UnitRange") -> bool:
        # both endpoints are real units, so touching ranges share a unit
        return self.start <= other.end and self.end >= other.start

    def label(self) -> str:
        return f"U{self.start}" if self.size == 1 else f"U{self.start}-U{self.end}"

    def to_json_dict(self) -> dict[str, int]:
        return {"start": self.start, "end": self.end, "size": self.size}


def validate_placement(rack: Rack, candidate: UnitRange, exclude_id: str | None = None) -> None:
    """Check that ``candidate`` fits inside ``rack`` without sharing a unit.

    ``exclude_id`` names the equipment being moved so it is not compared with
    itself. Returns ``None`` when the placement is legal.

    Raises:
        InvalidInputError: size is not a positive unit count.
        OutOfBoundsError: the range starts below U1 or ends above the rack top.
        OverlapError: another item in the rack occupies one of the units.
    """
    if candidate.size < 1:
        raise InvalidInputError(f"size must be a positive unit count, got {candidate.size}")
    if candidate.start < 1 or candidate.end > rack.total_units:
        raise OutOfBoundsError(
            f"Invalid position: {candidate.label()} exceeds rack boundaries (U1-U{rack.total_units})"
        )
    conflicts = [
        item
        for item in rack.equipment
        if item.id != exclude_id and candidate.overlaps(UnitRange.of(item))
    ]
    if conflicts:
        taken = ", ".join(f"{item.name} ({UnitRange.of(item).label()})" for item in conflicts)
        raise OverlapError(
            f"{candidate.label()} overlaps existing equipment: {taken}",
            [item.id for item in conflicts],
        )


def validate_capacity(rack: Rack, total_units: int) -> None:
    """Reject shrinking ``rack`` below the top unit of any mounted equipment."""
    stranded = [item for item in rack.equipment if item.end > total_units]
    if stranded:
        names = ", ".join(f"{item.name} ({UnitRange.of(item).label()})" for item in stranded)
        raise OutOfBoundsError(
            f"Rack {rack.name} cannot shrink to {total_units}U; equipment would exceed it: {names}"
        )


def initialize_ports(equipment_id: str, port_count: int) -> list[SwitchPort]:
    """Fresh, unconnected, untagged copper ports numbered 1..port_count."""
    if port_count < 1:
        raise InvalidInputError(f"portCount must be positive, got {port_count}")
    return [
        SwitchPort(equipment_id=equipment_id, port_number=number)
        for number in range(1, port_count + 1)
    ]


def reconcile_port_vlans(ports: Iterable[SwitchPort], vlans: Iterable[str]) -> list[SwitchPort]:
    """Drop tags that reference VLANs no longer defined on the switch.

    Only ``tagged_vlans`` changes; port order and every other field is kept.
    """
    allowed = set(vlans)
    return [
        port.model_copy(update={"tagged_vlans": [t for t in port.tagged_vlans if t in allowed]})
        for port in ports
    ]


def unknown_tags(tags: Iterable[str], vlans: Iterable[str]) -> list[str]:
    allowed = set(vlans)
    return [tag for tag in tags if tag not in allowed]


def unit_map(rack: Rack) -> dict[int, str]:
    """Map every occupied unit number to the id of the equipment sitting there."""
    occupied: dict[int, str] = {}
    for item in rack.equipment:
        for unit in range(item.position, item.end + 1):
            occupied[unit] = item.id
    return occupied


def free_ranges(rack: Rack) -> list[UnitRange]:
    """Maximal runs of empty units, bottom of the rack first."""
    occupied = unit_map(rack)
    ranges: list[UnitRange] = []
    start: int | None = None
    for unit in range(1, rack.total_units + 1):
        if unit in occupied:
            if start is not None:
                ranges.append(UnitRange(start, unit - start))
                start = None
        elif start is None:
            start = unit
    if start is not None:
        ranges.append(UnitRange(start, rack.total_units - start + 1))
    return ranges


def used_units(rack: Rack) -> int:
    return sum(item.size for item in rack.equipment)
