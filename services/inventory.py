# SPDX-License-Identifier: Apache-2.0
"""Inventory operations: validate against the current rack snapshot, then write.

Each public method runs inside a single ``Database.transaction()`` so the
allocator always sees the same equipment list that the write is applied to.
"""

from __future__ import annotations

from loguru import logger

from db import Database, InventoryStore
from models import (
    Equipment,
    EquipmentCreate,
    EquipmentUpdate,
    InventoryDocument,
    PortReset,
    Rack,
    RackCreate,
    RackSummary,
    RackUpdate,
    SwitchPort,
    SwitchPortUpdate,
    VirtualMachine,
    VirtualMachineCreate,
    VirtualMachineUpdate,
    misplaced_fields,
)
from services.allocator import (
    UnitRange,
    free_ranges,
    initialize_ports,
    reconcile_port_vlans,
    unknown_tags,
    validate_capacity,
    validate_placement,
)
from services.exceptions import InvalidInputError, NotFoundError, OverlapError, PlacementError


class Inventory:
    def __init__(self, db: Database):
        self.db = db

    # -- lookups ------------------------------------------------------------

    @staticmethod
    def _require_rack(store: InventoryStore, rack_id: str, with_details: bool = False) -> Rack:
        rack = store.get_rack(rack_id, with_details)
        if rack is None:
            raise NotFoundError(f"Rack {rack_id} not found")
        return rack

    @staticmethod
    def _require_equipment(
        store: InventoryStore, equipment_id: str, with_details: bool = False
    ) -> Equipment:
        equipment = store.get_equipment(equipment_id, with_details)
        if equipment is None:
            raise NotFoundError(f"Equipment {equipment_id} not found")
        return equipment

    @staticmethod
    def _require_switch(store: InventoryStore, equipment_id: str) -> Equipment:
        equipment = Inventory._require_equipment(store, equipment_id)
        if equipment.type != "switch":
            raise InvalidInputError(f"Equipment {equipment.name} is a {equipment.type}, not a switch")
        return equipment

    # -- racks --------------------------------------------------------------

    def list_rack_summaries(self) -> list[RackSummary]:
        with self.db.read() as store:
            return store.rack_summaries()

    def list_racks(self) -> list[Rack]:
        with self.db.read() as store:
            return store.list_racks(with_details=True)

    def get_rack(self, rack_id: str) -> Rack:
        with self.db.read() as store:
            return self._require_rack(store, rack_id, with_details=True)

    def create_rack(self, payload: RackCreate) -> Rack:
        rack = Rack(**payload.model_dump())
        with self.db.transaction() as store:
            store.insert_rack(rack)
        logger.info(f"Rack {rack.name} ({rack.total_units}U) created as {rack.id}")
        return rack

    def update_rack(self, rack_id: str, payload: RackUpdate) -> Rack:
        changes = payload.changes()
        with self.db.transaction() as store:
            rack = self._require_rack(store, rack_id)
            if "total_units" in changes:
                validate_capacity(rack, changes["total_units"])
            store.update_rack(rack_id, changes)
            return self._require_rack(store, rack_id, with_details=True)

    def delete_rack(self, rack_id: str) -> None:
        with self.db.transaction() as store:
            rack = self._require_rack(store, rack_id)
            store.delete_rack(rack_id)
        logger.info(f"Rack {rack.name} deleted with {len(rack.equipment)} equipment item(s)")

    def free_ranges(self, rack_id: str) -> list[UnitRange]:
        with self.db.read() as store:
            return free_ranges(self._require_rack(store, rack_id))

    # -- equipment ----------------------------------------------------------

    def _place(self, store: InventoryStore, rack: Rack, payload: EquipmentCreate) -> Equipment:
        candidate = UnitRange(payload.position, payload.size)
        try:
            validate_placement(rack, candidate)
        except PlacementError as exc:
            logger.info(f"Rejected {payload.name} at {candidate.label()} in rack {rack.name}: {exc.kind}")
            raise
        fields = payload.model_dump(exclude_none=True, exclude={"virtual_machines"})
        equipment = Equipment(rack_id=rack.id, **fields)
        store.insert_equipment(equipment)
        if equipment.type == "switch" and equipment.port_count:
            equipment.ports = initialize_ports(equipment.id, equipment.port_count)
            store.replace_ports(equipment.id, equipment.ports)
        rack.equipment.append(equipment)
        logger.debug(f"Placed {equipment.type} {equipment.name} at {candidate.label()} in rack {rack.name}")
        return equipment

    def add_equipment(self, rack_id: str, payload: EquipmentCreate) -> Equipment:
        with self.db.transaction() as store:
            rack = self._require_rack(store, rack_id)
            return self._place(store, rack, payload)

    def update_equipment(self, equipment_id: str, payload: EquipmentUpdate) -> Equipment:
        changes = payload.changes()
        with self.db.transaction() as store:
            current = self._require_equipment(store, equipment_id)
            misplaced = misplaced_fields(current.type, changes)
            if misplaced:
                raise InvalidInputError(f"Fields not applicable to a {current.type}: {misplaced}")

            if "position" in changes or "size" in changes:
                rack = self._require_rack(store, current.rack_id)
                candidate = UnitRange(
                    changes.get("position", current.position), changes.get("size", current.size)
                )
                validate_placement(rack, candidate, exclude_id=current.id)

            store.update_equipment(equipment_id, changes)

            if current.type == "switch":
                port_count = changes.get("port_count")
                if port_count is not None and port_count != current.port_count:
                    store.replace_ports(equipment_id, initialize_ports(equipment_id, port_count))
                    logger.info(f"Switch {current.name} ports re-initialized to {port_count}")
                elif "vlans" in changes:
                    self._prune_port_tags(store, current, changes["vlans"])
            return self._require_equipment(store, equipment_id, with_details=True)

    @staticmethod
    def _prune_port_tags(store: InventoryStore, switch: Equipment, vlans: list[str]) -> None:
        ports = store.list_ports(switch.id)
        pruned = 0
        for before, after in zip(ports, reconcile_port_vlans(ports, vlans)):
            if before.tagged_vlans != after.tagged_vlans:
                store.update_port(after.id, {"tagged_vlans": after.tagged_vlans})
                pruned += 1
        if pruned:
            logger.info(f"Switch {switch.name}: removed stale VLAN tags from {pruned} port(s)")

    def remove_equipment(self, rack_id: str, equipment_id: str) -> None:
        with self.db.transaction() as store:
            equipment = store.get_equipment(equipment_id)
            if equipment is None or equipment.rack_id != rack_id:
                raise NotFoundError(f"Equipment {equipment_id} not found in rack {rack_id}")
            store.delete_equipment(equipment_id)
        logger.info(f"Equipment {equipment.name} removed from rack {rack_id}")

    def reset_ports(self, equipment_id: str, payload: PortReset) -> Equipment:
        with self.db.transaction() as store:
            switch = self._require_switch(store, equipment_id)
            port_count = payload.port_count or switch.port_count
            if not port_count:
                raise InvalidInputError(f"Switch {switch.name} has no portCount to initialize")
            if port_count != switch.port_count:
                store.update_equipment(equipment_id, {"port_count": port_count})
            store.replace_ports(equipment_id, initialize_ports(equipment_id, port_count))
            logger.warning(f"Switch {switch.name}: all {port_count} ports reset")
            return self._require_equipment(store, equipment_id, with_details=True)

    # -- switch ports -------------------------------------------------------

    def update_port(self, port_id: str, payload: SwitchPortUpdate) -> SwitchPort:
        changes = payload.changes()
        with self.db.transaction() as store:
            port = store.get_port(port_id)
            if port is None:
                raise NotFoundError(f"Port {port_id} not found")
            if "tagged_vlans" in changes:
                switch = self._require_equipment(store, port.equipment_id)
                unknown = unknown_tags(changes["tagged_vlans"], switch.vlans)
                if unknown:
                    raise InvalidInputError(
                        f"VLANs not defined on switch {switch.name}: {unknown}"
                    )
            store.update_port(port_id, changes)
            return store.get_port(port_id)

    # -- virtual machines ---------------------------------------------------

    def add_virtual_machine(self, equipment_id: str, payload: VirtualMachineCreate) -> VirtualMachine:
        with self.db.transaction() as store:
            server = store.get_equipment(equipment_id)
            if server is None or server.type != "server":
                raise NotFoundError(f"Server {equipment_id} not found")
            vm = VirtualMachine(equipment_id=equipment_id, **payload.model_dump())
            store.insert_virtual_machine(vm)
        return vm

    def update_virtual_machine(self, vm_id: str, payload: VirtualMachineUpdate) -> VirtualMachine:
        with self.db.transaction() as store:
            if store.get_virtual_machine(vm_id) is None:
                raise NotFoundError(f"Virtual machine {vm_id} not found")
            store.update_virtual_machine(vm_id, payload.changes())
            return store.get_virtual_machine(vm_id)

    def remove_virtual_machine(self, equipment_id: str, vm_id: str) -> None:
        with self.db.transaction() as store:
            vm = store.get_virtual_machine(vm_id)
            if vm is None or vm.equipment_id != equipment_id:
                raise NotFoundError(f"Virtual machine {vm_id} not found on server {equipment_id}")
            store.delete_virtual_machine(vm_id)

    # -- bulk import --------------------------------------------------------

    def import_inventory(self, document: InventoryDocument) -> list[Rack]:
        """Create every rack of ``document`` or none of them."""
        created: list[Rack] = []
        with self.db.transaction() as store:
            for rack_doc in document.racks:
                rack = Rack(
                    name=rack_doc.name,
                    location=rack_doc.location,
                    total_units=rack_doc.total_units,
                )
                store.insert_rack(rack)
                for item in rack_doc.equipment:
                    try:
                        equipment = self._place(store, rack, item)
                    except OverlapError as exc:
                        reason = f"Rack {rack.name}, {item.name}: {exc.reason}"
                        raise OverlapError(reason, exc.conflicting_ids) from exc
                    except PlacementError as exc:
                        raise type(exc)(f"Rack {rack.name}, {item.name}: {exc.reason}") from exc
                    for vm_doc in item.virtual_machines:
                        vm = VirtualMachine(equipment_id=equipment.id, **vm_doc.model_dump())
                        store.insert_virtual_machine(vm)
                created.append(self._require_rack(store, rack.id, with_details=True))
        logger.info(
            f"Imported {len(created)} rack(s) with {sum(len(r.equipment) for r in created)} equipment item(s)"
        )
        return created
