# SPDX-License-Identifier: Apache-2.0
"""Service-level flows: validation runs against the stored rack, then writes."""

from __future__ import annotations

import pytest

from models import (
    EquipmentCreate,
    EquipmentUpdate,
    InventoryDocument,
    PortReset,
    RackCreate,
    RackUpdate,
    SwitchPortUpdate,
    VirtualMachineCreate,
    VirtualMachineUpdate,
)
from services.exceptions import InvalidInputError, NotFoundError, OutOfBoundsError, OverlapError
from services.inventory import Inventory


def _rack(inventory: Inventory, units: int = 42) -> str:
    return inventory.create_rack(RackCreate(name="R1", location="DC1", total_units=units)).id


def _switch(inventory: Inventory, rack_id: str, position: int = 2, **extra) -> str:
    payload = EquipmentCreate.model_validate(
        {"name": "sw", "type": "switch", "position": position, "size": 1, "portCount": 8, **extra}
    )
    return inventory.add_equipment(rack_id, payload).id


def _server(inventory: Inventory, rack_id: str, position: int, size: int = 2, name: str = "srv") -> str:
    payload = EquipmentCreate(name=name, type="server", position=position, size=size)
    return inventory.add_equipment(rack_id, payload).id


def test_scenario_switch_server_then_overlapping_server(inventory: Inventory) -> None:
    rack_id = _rack(inventory)
    _switch(inventory, rack_id, position=2)
    _server(inventory, rack_id, position=4)
    with pytest.raises(OverlapError):
        _server(inventory, rack_id, position=3, name="srv-2")
    rack = inventory.get_rack(rack_id)
    assert [(e.name, e.position, e.end) for e in rack.equipment] == [("sw", 2, 2), ("srv", 4, 5)]


def test_add_equipment_unknown_rack(inventory: Inventory) -> None:
    with pytest.raises(NotFoundError):
        _server(inventory, "missing", position=1)


def test_add_switch_initializes_ports(inventory: Inventory) -> None:
    rack_id = _rack(inventory)
    switch_id = _switch(inventory, rack_id)
    switch = inventory.get_rack(rack_id).equipment[0]
    assert switch.id == switch_id
    assert [p.port_number for p in switch.ports] == list(range(1, 9))


def test_update_position_excludes_itself(inventory: Inventory) -> None:
    rack_id = _rack(inventory)
    server_id = _server(inventory, rack_id, position=10, size=3)
    _server(inventory, rack_id, position=14, name="other")

    moved = inventory.update_equipment(server_id, EquipmentUpdate(position=11))
    assert (moved.position, moved.end) == (11, 13)

    with pytest.raises(OverlapError):
        inventory.update_equipment(server_id, EquipmentUpdate(size=4))
    with pytest.raises(OutOfBoundsError):
        inventory.update_equipment(server_id, EquipmentUpdate(position=41))
    assert inventory.get_rack(rack_id).equipment[0].position == 11


def test_update_rejects_fields_of_other_type(inventory: Inventory) -> None:
    rack_id = _rack(inventory)
    server_id = _server(inventory, rack_id, position=1)
    with pytest.raises(InvalidInputError, match="vlans"):
        inventory.update_equipment(server_id, EquipmentUpdate(vlans=["V10"]))


def test_vlan_edit_prunes_port_tags(inventory: Inventory) -> None:
    rack_id = _rack(inventory)
    switch_id = _switch(inventory, rack_id, vlans=["V10", "V20", "V30"])
    port = inventory.get_rack(rack_id).equipment[0].ports[0]
    inventory.update_port(port.id, SwitchPortUpdate(tagged_vlans=["V10", "V20", "V30"]))

    updated = inventory.update_equipment(switch_id, EquipmentUpdate(vlans=["V10"]))
    assert updated.vlans == ["V10"]
    assert updated.ports[0].tagged_vlans == ["V10"]
    assert updated.ports[0].port_number == 1


def test_port_count_change_reinitializes_ports(inventory: Inventory) -> None:
    rack_id = _rack(inventory)
    switch_id = _switch(inventory, rack_id, vlans=["V10"])
    port = inventory.get_rack(rack_id).equipment[0].ports[0]
    inventory.update_port(port.id, SwitchPortUpdate(connected=True, tagged_vlans=["V10"]))

    updated = inventory.update_equipment(switch_id, EquipmentUpdate(port_count=4))
    assert [p.port_number for p in updated.ports] == [1, 2, 3, 4]
    assert not any(p.connected or p.tagged_vlans for p in updated.ports)


def test_same_port_count_keeps_ports(inventory: Inventory) -> None:
    rack_id = _rack(inventory)
    switch_id = _switch(inventory, rack_id)
    before = [p.id for p in inventory.get_rack(rack_id).equipment[0].ports]
    updated = inventory.update_equipment(switch_id, EquipmentUpdate(port_count=8, name="sw-core"))
    assert [p.id for p in updated.ports] == before
    assert updated.name == "sw-core"


def test_reset_ports(inventory: Inventory) -> None:
    rack_id = _rack(inventory)
    switch_id = _switch(inventory, rack_id)
    server_id = _server(inventory, rack_id, position=5)

    reset = inventory.reset_ports(switch_id, PortReset(port_count=12, confirm=True))
    assert reset.port_count == 12
    assert len(reset.ports) == 12
    with pytest.raises(InvalidInputError, match="not a switch"):
        inventory.reset_ports(server_id, PortReset(confirm=True))


def test_port_update_rejects_undefined_vlan(inventory: Inventory) -> None:
    rack_id = _rack(inventory)
    _switch(inventory, rack_id, vlans=["V10"])
    port = inventory.get_rack(rack_id).equipment[0].ports[2]
    with pytest.raises(InvalidInputError, match="V99"):
        inventory.update_port(port.id, SwitchPortUpdate(tagged_vlans=["V10", "V99"]))
    updated = inventory.update_port(port.id, SwitchPortUpdate(description="uplink", is_fibre=True))
    assert (updated.description, updated.is_fibre, updated.tagged_vlans) == ("uplink", True, [])


def test_update_unknown_port(inventory: Inventory) -> None:
    with pytest.raises(NotFoundError):
        inventory.update_port("nope", SwitchPortUpdate(connected=True))


def test_remove_equipment_must_belong_to_rack(inventory: Inventory) -> None:
    rack_a = _rack(inventory)
    rack_b = inventory.create_rack(RackCreate(name="R2", location="DC1", total_units=10)).id
    server_id = _server(inventory, rack_a, position=1)
    with pytest.raises(NotFoundError):
        inventory.remove_equipment(rack_b, server_id)
    inventory.remove_equipment(rack_a, server_id)
    assert inventory.get_rack(rack_a).equipment == []


def test_shrinking_rack_below_equipment_is_rejected(inventory: Inventory) -> None:
    rack_id = _rack(inventory)
    _server(inventory, rack_id, position=30)
    with pytest.raises(OutOfBoundsError):
        inventory.update_rack(rack_id, RackUpdate(total_units=30))
    assert inventory.update_rack(rack_id, RackUpdate(total_units=31)).total_units == 31


def test_delete_rack(inventory: Inventory) -> None:
    rack_id = _rack(inventory)
    _switch(inventory, rack_id)
    inventory.delete_rack(rack_id)
    assert inventory.list_rack_summaries() == []
    with pytest.raises(NotFoundError):
        inventory.delete_rack(rack_id)


def test_virtual_machine_lifecycle(inventory: Inventory) -> None:
    rack_id = _rack(inventory)
    server_id = _server(inventory, rack_id, position=1)
    switch_id = _switch(inventory, rack_id, position=10)

    vm = inventory.add_virtual_machine(server_id, VirtualMachineCreate(name="web-01"))
    with pytest.raises(NotFoundError, match="Server"):
        inventory.add_virtual_machine(switch_id, VirtualMachineCreate(name="web-02"))

    updated = inventory.update_virtual_machine(vm.id, VirtualMachineUpdate(ip_address="10.0.0.5"))
    assert (updated.name, updated.ip_address) == ("web-01", "10.0.0.5")

    with pytest.raises(NotFoundError):
        inventory.remove_virtual_machine(switch_id, vm.id)
    inventory.remove_virtual_machine(server_id, vm.id)
    assert inventory.get_rack(rack_id).equipment[0].virtual_machines == []


def test_free_ranges(inventory: Inventory) -> None:
    rack_id = _rack(inventory, units=6)
    _server(inventory, rack_id, position=2, size=2)
    assert [(r.start, r.end) for r in inventory.free_ranges(rack_id)] == [(1, 1), (4, 6)]


def test_import_is_all_or_nothing(inventory: Inventory) -> None:
    document = InventoryDocument.model_validate(
        {
            "racks": [
                {"name": "ok", "location": "A", "totalUnits": 10},
                {
                    "name": "bad",
                    "location": "B",
                    "totalUnits": 10,
                    "equipment": [
                        {"name": "a", "type": "server", "position": 1, "size": 3},
                        {"name": "b", "type": "server", "position": 3, "size": 1},
                    ],
                },
            ]
        }
    )
    with pytest.raises(OverlapError, match="Rack bad, b"):
        inventory.import_inventory(document)
    assert inventory.list_rack_summaries() == []


def test_import_creates_ports_and_vms(inventory: Inventory) -> None:
    document = InventoryDocument.model_validate(
        {
            "racks": [
                {
                    "name": "R1",
                    "location": "A",
                    "totalUnits": 10,
                    "equipment": [
                        {"name": "sw", "type": "switch", "position": 10, "size": 1, "portCount": 4},
                        {
                            "name": "hv",
                            "type": "server",
                            "position": 1,
                            "size": 2,
                            "virtualMachines": [{"name": "vm-1"}, {"name": "vm-2"}],
                        },
                    ],
                }
            ]
        }
    )
    (rack,) = inventory.import_inventory(document)
    hv, sw = rack.equipment
    assert len(sw.ports) == 4
    assert [vm.name for vm in hv.virtual_machines] == ["vm-1", "vm-2"]


def test_import_overlap_keeps_conflicting_ids(inventory: Inventory) -> None:
    document = InventoryDocument.model_validate(
        {
            "racks": [
                {
                    "name": "R1",
                    "location": "A",
                    "totalUnits": 10,
                    "equipment": [
                        {"name": "a", "type": "server", "position": 1, "size": 2},
                        {"name": "b", "type": "server", "position": 2, "size": 2},
                    ],
                }
            ]
        }
    )
    with pytest.raises(OverlapError, match="Rack R1, b") as excinfo:
        inventory.import_inventory(document)
    assert len(excinfo.value.conflicting_ids) == 1
