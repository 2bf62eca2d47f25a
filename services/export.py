# SPDX-License-Identifier: Apache-2.0
"""Export helpers for equipment CSV, switch port CSV, and inventory JSON."""

from __future__ import annotations

import csv
import io
import json
from typing import Any

from models import Rack

EQUIPMENT_COLUMNS = [
    "rack_id",
    "rack_name",
    "rack_location",
    "equipment_id",
    "name",
    "type",
    "brand",
    "position",
    "end",
    "size",
    "port_count",
    "connected_ports",
    "ip_address",
    "vlans",
    "idrac_ip",
    "description",
    "vm_count",
]

PORT_COLUMNS = [
    "rack_name",
    "switch_name",
    "port_number",
    "description",
    "connected",
    "is_fibre",
    "tagged_vlans",
]


def equipment_rows(racks: list[Rack]) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for rack in racks:
        for item in sorted(rack.equipment, key=lambda e: e.position):
            rows.append(
                {
                    "rack_id": rack.id,
                    "rack_name": rack.name,
                    "rack_location": rack.location,
                    "equipment_id": item.id,
                    "name": item.name,
                    "type": item.type,
                    "brand": item.brand,
                    "position": item.position,
                    "end": item.end,
                    "size": item.size,
                    "port_count": item.port_count if item.type == "switch" else "",
                    "connected_ports": (
                        sum(1 for p in item.ports if p.connected) if item.type == "switch" else ""
                    ),
                    "ip_address": item.ip_address or "",
                    "vlans": ",".join(item.vlans),
                    "idrac_ip": item.idrac_ip or "",
                    "description": item.description or "",
                    "vm_count": len(item.virtual_machines) if item.type == "server" else "",
                }
            )
    return rows


def equipment_csv(racks: list[Rack]) -> str:
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=EQUIPMENT_COLUMNS)
    writer.writeheader()
    writer.writerows(equipment_rows(racks))
    return buf.getvalue()


def ports_csv(racks: list[Rack]) -> str:
    """One row per switch port, switches ordered by rack position."""
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=PORT_COLUMNS)
    writer.writeheader()
    for rack in racks:
        for item in sorted(rack.equipment, key=lambda e: e.position):
            for port in item.ports:
                writer.writerow(
                    {
                        "rack_name": rack.name,
                        "switch_name": item.name,
                        "port_number": port.port_number,
                        "description": port.description,
                        "connected": int(port.connected),
                        "is_fibre": int(port.is_fibre),
                        "tagged_vlans": ",".join(port.tagged_vlans),
                    }
                )
    return buf.getvalue()


def inventory_json(racks: list[Rack]) -> str:
    return json.dumps(
        {"racks": [rack.to_json_dict() for rack in racks]}, ensure_ascii=False, indent=2
    )
