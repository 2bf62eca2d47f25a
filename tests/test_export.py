# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

import csv
import io
import json
import xml.etree.ElementTree as ET

from conftest import make_equipment, make_rack
from models import SwitchPort, VirtualMachine
from services.export import (
    EQUIPMENT_COLUMNS,
    equipment_csv,
    equipment_rows,
    inventory_json,
    ports_csv,
)
from services.render_svg import render_rack_elevation_svg


def _rack():
    switch = make_equipment(
        10,
        1,
        name="sw <core>",
        type="switch",
        port_count=2,
        vlans=["V10", "V20"],
        ports=[
            SwitchPort(equipment_id="x", port_number=1, connected=True, tagged_vlans=["V10"]),
            SwitchPort(equipment_id="x", port_number=2),
        ],
    )
    server = make_equipment(
        1,
        2,
        name="hv",
        idrac_ip="10.0.1.1",
        virtual_machines=[VirtualMachine(equipment_id="y", name="vm-1")],
    )
    return make_rack(12, [switch, server])


def test_equipment_rows_are_sorted_by_position() -> None:
    rows = equipment_rows([_rack()])
    assert [r["name"] for r in rows] == ["hv", "sw <core>"]
    assert rows[0]["vm_count"] == 1
    assert rows[0]["port_count"] == ""
    assert rows[1]["connected_ports"] == 1
    assert rows[1]["vlans"] == "V10,V20"
    assert rows[1]["end"] == 10


def test_equipment_csv_header() -> None:
    reader = csv.DictReader(io.StringIO(equipment_csv([_rack()])))
    assert reader.fieldnames == EQUIPMENT_COLUMNS
    assert len(list(reader)) == 2


def test_ports_csv() -> None:
    rows = list(csv.DictReader(io.StringIO(ports_csv([_rack()]))))
    assert [(r["port_number"], r["connected"], r["tagged_vlans"]) for r in rows] == [
        ("1", "1", "V10"),
        ("2", "0", ""),
    ]


def test_inventory_json_uses_camel_case() -> None:
    data = json.loads(inventory_json([_rack()]))
    rack = data["racks"][0]
    assert rack["totalUnits"] == 12
    assert rack["equipment"][0]["portCount"] == 2
    assert rack["equipment"][1]["virtualMachines"][0]["name"] == "vm-1"


def test_elevation_svg_is_well_formed_and_escaped() -> None:
    svg = render_rack_elevation_svg(_rack())
    root = ET.fromstring(svg)
    assert root.tag.endswith("svg")
    assert "sw &lt;core&gt; [U10]" in svg
    assert "3/12U used" in svg
    empty_units = [el for el in root.iter() if el.get("data-unit")]
    assert len(empty_units) == 12 - 3
