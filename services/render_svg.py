# SPDX-License-Identifier: Apache-2.0
"""SVG rendering of a rack elevation (front view, top unit first)."""

from __future__ import annotations

from html import escape

from models import Equipment, Rack
from services.allocator import UnitRange, unit_map, used_units

EQUIPMENT_COLORS = {
    "empty": "#555555",
    "server": "#2563eb",
    "switch": "#16a34a",
}

EQUIPMENT_TEXT_COLORS = {
    "empty": "#fff",
    "server": "#fff",
    "switch": "#000",
}


def _equipment_label(item: Equipment) -> str:
    label = f"{item.name} [{UnitRange.of(item).label()}]"
    if item.brand:
        label = f"{label} {item.brand}"
    if item.type == "switch" and item.port_count:
        label = f"{label} · {item.port_count} ports"
    if item.type == "server" and item.virtual_machines:
        label = f"{label} · {len(item.virtual_machines)} VM"
    return label


def render_rack_elevation_svg(rack: Rack, unit_height: int = 20, width: int = 360) -> str:
    occupied = unit_map(rack)
    top = 48
    label_width = 44
    lines = [
        f'<text x="10" y="18" font-size="14">Rack {escape(rack.name)} ({escape(rack.location)})</text>',
        f'<text x="10" y="36" font-size="11">{used_units(rack)}/{rack.total_units}U used</text>',
    ]
    for unit in range(rack.total_units, 0, -1):
        y = top + (rack.total_units - unit) * unit_height
        lines.append(f'<text x="10" y="{y + unit_height - 6}" font-size="10">U{unit}</text>')
        if unit not in occupied:
            lines.append(
                f'<rect x="{label_width}" y="{y}" width="{width}" height="{unit_height}" '
                f'fill="{EQUIPMENT_COLORS["empty"]}" stroke="#225" data-unit="{unit}"><title>U{unit}: empty</title></rect>'
            )
    for item in rack.equipment:
        y = top + (rack.total_units - item.end) * unit_height
        height = item.size * unit_height
        label = escape(_equipment_label(item))
        lines.append(
            f'<rect x="{label_width}" y="{y}" width="{width}" height="{height}" '
            f'fill="{EQUIPMENT_COLORS[item.type]}" stroke="#225" data-equipment-id="{escape(item.id)}">'
            f"<title>{label}</title></rect>"
        )
        lines.append(
            f'<text x="{label_width + 6}" y="{y + height / 2 + 4:g}" font-size="11" '
            f'fill="{EQUIPMENT_TEXT_COLORS[item.type]}">{label}</text>'
        )
    total_height = top + rack.total_units * unit_height + 20
    total_width = label_width + width + 20
    return f'<svg xmlns="http://www.w3.org/2000/svg" width="{total_width}" height="{total_height}">{"".join(lines)}</svg>'
