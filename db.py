# SPDX-License-Identifier: Apache-2.0
"""SQLite persistence layer for racks, equipment, switch ports and virtual machines."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from models import Equipment, Rack, RackSummary, SwitchPort, VirtualMachine
from services.vlans import parse_vlan_list

SCHEMA = """
CREATE TABLE IF NOT EXISTS rack (
  rack_id TEXT PRIMARY KEY,
  name TEXT NOT NULL,
  location TEXT NOT NULL,
  total_units INTEGER NOT NULL CHECK (total_units > 0),
  created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS equipment (
  equipment_id TEXT PRIMARY KEY,
  rack_id TEXT NOT NULL,
  name TEXT NOT NULL,
  brand TEXT NOT NULL DEFAULT '',
  type TEXT NOT NULL CHECK (type IN ('server', 'switch')),
  position INTEGER NOT NULL,
  size INTEGER NOT NULL CHECK (size > 0),
  port_count INTEGER,
  ip_address TEXT,
  vlans TEXT NOT NULL DEFAULT '[]',
  idrac_ip TEXT,
  description TEXT,
  created_at TEXT NOT NULL,
  FOREIGN KEY(rack_id) REFERENCES rack(rack_id) ON DELETE CASCADE
);
CREATE TABLE IF NOT EXISTS switch_port (
  port_id TEXT PRIMARY KEY,
  equipment_id TEXT NOT NULL,
  port_number INTEGER NOT NULL,
  description TEXT NOT NULL DEFAULT '',
  connected INTEGER NOT NULL DEFAULT 0,
  is_fibre INTEGER NOT NULL DEFAULT 0,
  tagged_vlans TEXT NOT NULL DEFAULT '[]',
  UNIQUE(equipment_id, port_number),
  FOREIGN KEY(equipment_id) REFERENCES equipment(equipment_id) ON DELETE CASCADE
);
CREATE TABLE IF NOT EXISTS virtual_machine (
  vm_id TEXT PRIMARY KEY,
  equipment_id TEXT NOT NULL,
  name TEXT NOT NULL,
  description TEXT NOT NULL DEFAULT '',
  anydesk_code TEXT NOT NULL DEFAULT '',
  ip_address TEXT NOT NULL DEFAULT '',
  FOREIGN KEY(equipment_id) REFERENCES equipment(equipment_id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_equipment_rack ON equipment(rack_id, position);
CREATE INDEX IF NOT EXISTS idx_switch_port_equipment ON switch_port(equipment_id, port_number);
CREATE INDEX IF NOT EXISTS idx_virtual_machine_equipment ON virtual_machine(equipment_id);
"""

RACK_COLUMNS = ("name", "location", "total_units")
EQUIPMENT_COLUMNS = (
    "name",
    "brand",
    "position",
    "size",
    "port_count",
    "ip_address",
    "vlans",
    "idrac_ip",
    "description",
)
PORT_COLUMNS = ("description", "connected", "is_fibre", "tagged_vlans")
VM_COLUMNS = ("name", "description", "anydesk_code", "ip_address")
LABEL_COLUMNS = {"vlans", "tagged_vlans"}


def encode_labels(labels: list[str]) -> str:
    return json.dumps(list(labels), ensure_ascii=False)


def decode_labels(raw: str | None) -> list[str]:
    """Read a stored VLAN list.

    Rows written by older clients hold NULL, a bare comma-separated string or a
    JSON scalar instead of a JSON array; all of them collapse to ``list[str]``.
    """
    if raw is None or not raw.strip():
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return parse_vlan_list(raw)
    if value is None:
        return []
    if isinstance(value, list):
        return [str(v).strip() for v in value if v is not None and str(v).strip()]
    return parse_vlan_list(str(value))


def _encode_value(column: str, value: Any) -> Any:
    if column in LABEL_COLUMNS:
        return encode_labels(value)
    if isinstance(value, bool):
        return int(value)
    return value


def _set_clause(allowed: tuple[str, ...], changes: dict[str, Any]) -> tuple[str, list[Any]]:
    unknown = sorted(set(changes) - set(allowed))
    if unknown:
        raise ValueError(f"cannot update columns: {unknown}")
    columns = [c for c in allowed if c in changes]
    clause = ",".join(f"{c}=?" for c in columns)
    return clause, [_encode_value(c, changes[c]) for c in columns]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class InventoryStore:
    """Rack-scoped reads and writes on one open connection.

    A store lives only as long as the transaction that created it; nothing is
    cached between calls.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    # -- racks --------------------------------------------------------------

    def rack_summaries(self) -> list[RackSummary]:
        rows = self.conn.execute(
            "SELECT r.rack_id, r.name, r.location, r.total_units,"
            " COALESCE(SUM(e.size), 0) AS used_units, COUNT(e.equipment_id) AS equipment_count"
            " FROM rack r LEFT JOIN equipment e ON e.rack_id = r.rack_id"
            " GROUP BY r.rack_id ORDER BY r.name, r.created_at"
        ).fetchall()
        return [
            RackSummary(
                id=row["rack_id"],
                name=row["name"],
                location=row["location"],
                total_units=row["total_units"],
                used_units=row["used_units"],
                equipment_count=row["equipment_count"],
            )
            for row in rows
        ]

    def list_racks(self, with_details: bool = False) -> list[Rack]:
        rows = self.conn.execute("SELECT * FROM rack ORDER BY name, created_at").fetchall()
        return [self._rack(row, with_details) for row in rows]

    def get_rack(self, rack_id: str, with_details: bool = False) -> Rack | None:
        row = self.conn.execute("SELECT * FROM rack WHERE rack_id=?", (rack_id,)).fetchone()
        return self._rack(row, with_details) if row else None

    def insert_rack(self, rack: Rack) -> None:
        self.conn.execute(
            "INSERT INTO rack(rack_id,name,location,total_units,created_at) VALUES(?,?,?,?,?)",
            (rack.id, rack.name, rack.location, rack.total_units, _now()),
        )

    def update_rack(self, rack_id: str, changes: dict[str, Any]) -> None:
        if not changes:
            return
        clause, params = _set_clause(RACK_COLUMNS, changes)
        self.conn.execute(f"UPDATE rack SET {clause} WHERE rack_id=?", (*params, rack_id))

    def delete_rack(self, rack_id: str) -> bool:
        cur = self.conn.execute("DELETE FROM rack WHERE rack_id=?", (rack_id,))
        return cur.rowcount > 0

    def _rack(self, row: sqlite3.Row, with_details: bool) -> Rack:
        return Rack(
            id=row["rack_id"],
            name=row["name"],
            location=row["location"],
            total_units=row["total_units"],
            equipment=self.list_equipment(row["rack_id"], with_details),
        )

    # -- equipment ----------------------------------------------------------

    def list_equipment(self, rack_id: str, with_details: bool = False) -> list[Equipment]:
        rows = self.conn.execute(
            "SELECT * FROM equipment WHERE rack_id=? ORDER BY position", (rack_id,)
        ).fetchall()
        return [self._equipment(row, with_details) for row in rows]

    def get_equipment(self, equipment_id: str, with_details: bool = False) -> Equipment | None:
        row = self.conn.execute(
            "SELECT * FROM equipment WHERE equipment_id=?", (equipment_id,)
        ).fetchone()
        return self._equipment(row, with_details) if row else None

    def insert_equipment(self, equipment: Equipment) -> None:
        self.conn.execute(
            "INSERT INTO equipment(equipment_id,rack_id,name,brand,type,position,size,port_count,ip_address,vlans,idrac_ip,description,created_at) VALUES(?,?,?,?,?,?,?,?,?,?,?,?,?)",
            (
                equipment.id,
                equipment.rack_id,
                equipment.name,
                equipment.brand,
                equipment.type,
                equipment.position,
                equipment.size,
                equipment.port_count,
                equipment.ip_address,
                encode_labels(equipment.vlans),
                equipment.idrac_ip,
                equipment.description,
                _now(),
            ),
        )

    def update_equipment(self, equipment_id: str, changes: dict[str, Any]) -> None:
        if not changes:
            return
        clause, params = _set_clause(EQUIPMENT_COLUMNS, changes)
        self.conn.execute(
            f"UPDATE equipment SET {clause} WHERE equipment_id=?", (*params, equipment_id)
        )

    def delete_equipment(self, equipment_id: str) -> bool:
        cur = self.conn.execute("DELETE FROM equipment WHERE equipment_id=?", (equipment_id,))
        return cur.rowcount > 0

    def _equipment(self, row: sqlite3.Row, with_details: bool) -> Equipment:
        equipment = Equipment(
            id=row["equipment_id"],
            rack_id=row["rack_id"],
            name=row["name"],
            brand=row["brand"],
            type=row["type"],
            position=row["position"],
            size=row["size"],
            port_count=row["port_count"],
            ip_address=row["ip_address"],
            vlans=decode_labels(row["vlans"]),
            idrac_ip=row["idrac_ip"],
            description=row["description"],
        )
        if with_details:
            if equipment.type == "switch":
                equipment.ports = self.list_ports(equipment.id)
            else:
                equipment.virtual_machines = self.list_virtual_machines(equipment.id)
        return equipment

    # -- switch ports -------------------------------------------------------

    def list_ports(self, equipment_id: str) -> list[SwitchPort]:
        rows = self.conn.execute(
            "SELECT * FROM switch_port WHERE equipment_id=? ORDER BY port_number", (equipment_id,)
        ).fetchall()
        return [self._port(row) for row in rows]

    def get_port(self, port_id: str) -> SwitchPort | None:
        row = self.conn.execute("SELECT * FROM switch_port WHERE port_id=?", (port_id,)).fetchone()
        return self._port(row) if row else None

    def replace_ports(self, equipment_id: str, ports: list[SwitchPort]) -> None:
        self.conn.execute("DELETE FROM switch_port WHERE equipment_id=?", (equipment_id,))
        self.conn.executemany(
            "INSERT INTO switch_port(port_id,equipment_id,port_number,description,connected,is_fibre,tagged_vlans) VALUES(?,?,?,?,?,?,?)",
            [
                (
                    port.id,
                    equipment_id,
                    port.port_number,
                    port.description,
                    int(port.connected),
                    int(port.is_fibre),
                    encode_labels(port.tagged_vlans),
                )
                for port in ports
            ],
        )

    def update_port(self, port_id: str, changes: dict[str, Any]) -> None:
        if not changes:
            return
        clause, params = _set_clause(PORT_COLUMNS, changes)
        self.conn.execute(f"UPDATE switch_port SET {clause} WHERE port_id=?", (*params, port_id))

    def _port(self, row: sqlite3.Row) -> SwitchPort:
        return SwitchPort(
            id=row["port_id"],
            equipment_id=row["equipment_id"],
            port_number=row["port_number"],
            description=row["description"],
            connected=bool(row["connected"]),
            is_fibre=bool(row["is_fibre"]),
            tagged_vlans=decode_labels(row["tagged_vlans"]),
        )

    # -- virtual machines ---------------------------------------------------

    def list_virtual_machines(self, equipment_id: str) -> list[VirtualMachine]:
        rows = self.conn.execute(
            "SELECT * FROM virtual_machine WHERE equipment_id=? ORDER BY name", (equipment_id,)
        ).fetchall()
        return [self._virtual_machine(row) for row in rows]

    def get_virtual_machine(self, vm_id: str) -> VirtualMachine | None:
        row = self.conn.execute("SELECT * FROM virtual_machine WHERE vm_id=?", (vm_id,)).fetchone()
        return self._virtual_machine(row) if row else None

    def insert_virtual_machine(self, vm: VirtualMachine) -> None:
        self.conn.execute(
            "INSERT INTO virtual_machine(vm_id,equipment_id,name,description,anydesk_code,ip_address) VALUES(?,?,?,?,?,?)",
            (vm.id, vm.equipment_id, vm.name, vm.description, vm.anydesk_code, vm.ip_address),
        )

    def update_virtual_machine(self, vm_id: str, changes: dict[str, Any]) -> None:
        if not changes:
            return
        clause, params = _set_clause(VM_COLUMNS, changes)
        self.conn.execute(f"UPDATE virtual_machine SET {clause} WHERE vm_id=?", (*params, vm_id))

    def delete_virtual_machine(self, vm_id: str) -> bool:
        cur = self.conn.execute("DELETE FROM virtual_machine WHERE vm_id=?", (vm_id,))
        return cur.rowcount > 0

    def _virtual_machine(self, row: sqlite3.Row) -> VirtualMachine:
        return VirtualMachine(
            id=row["vm_id"],
            equipment_id=row["equipment_id"],
            name=row["name"],
            description=row["description"],
            anydesk_code=row["anydesk_code"],
            ip_address=row["ip_address"],
        )


class Database:
    def __init__(self, path: str = "rackledger.db", timeout: float = 10.0):
        self.path = path
        self.timeout = timeout

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.path, timeout=self.timeout)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_db(self) -> None:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        with self.connect() as conn:
            conn.executescript(SCHEMA)

    @contextmanager
    def read(self) -> Iterator[InventoryStore]:
        with self.connect() as conn:
            yield InventoryStore(conn)

    @contextmanager
    def transaction(self) -> Iterator[InventoryStore]:
        """Open a write transaction that holds the database write lock.

        ``BEGIN IMMEDIATE`` makes the validate-then-write sequence of one
        request exclusive, so two placements cannot both pass against the same
        snapshot and then both commit.
        """
        with self.connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            yield InventoryStore(conn)
