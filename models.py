# SPDX-License-Identifier: Apache-2.0
"""Domain records and request payload models for the rack inventory."""

from __future__ import annotations

from typing import Any, Literal
from uuid import uuid4

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from services.vlans import distinct_labels, parse_vlan_list

MAX_RACK_UNITS = 60
SWITCH_ONLY_FIELDS = ("port_count", "ip_address", "vlans")
SERVER_ONLY_FIELDS = ("idrac_ip", "description")

EquipmentType = Literal["server", "switch"]


def new_id() -> str:
    return str(uuid4())


def misplaced_fields(equipment_type: str, values: dict[str, Any]) -> list[str]:
    """Return the camelCase names of set fields that do not apply to ``equipment_type``."""
    foreign = SERVER_ONLY_FIELDS if equipment_type == "switch" else SWITCH_ONLY_FIELDS
    return [to_camel(name) for name in foreign if values.get(name) not in (None, "", [])]


def _normalize_vlan_input(value: Any) -> Any:
    if isinstance(value, str):
        return distinct_labels(parse_vlan_list(value))
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        if any("," in v for v in value):
            raise ValueError("VLAN labels cannot contain commas")
        return distinct_labels(value)
    return value


class ApiModel(BaseModel):
    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    def changes(self) -> dict[str, Any]:
        """Fields present in the request, skipping explicit nulls."""
        return {k: v for k, v in self.model_dump(exclude_unset=True).items() if v is not None}


# ---------------------------------------------------------------------------
# Stored records
# ---------------------------------------------------------------------------


class VirtualMachine(ApiModel):
    id: str = Field(default_factory=new_id)
    equipment_id: str
    name: str
    description: str = ""
    anydesk_code: str = ""
    ip_address: str = ""


class SwitchPort(ApiModel):
    id: str = Field(default_factory=new_id)
    equipment_id: str
    port_number: int = Field(ge=1)
    description: str = ""
    connected: bool = False
    is_fibre: bool = False
    tagged_vlans: list[str] = Field(default_factory=list)


class Equipment(ApiModel):
    id: str = Field(default_factory=new_id)
    rack_id: str
    name: str
    brand: str = ""
    type: EquipmentType
    position: int
    size: int = Field(gt=0)
    # switch
    port_count: int | None = None
    ip_address: str | None = None
    vlans: list[str] = Field(default_factory=list)
    ports: list[SwitchPort] = Field(default_factory=list)
    # server
    idrac_ip: str | None = None
    description: str | None = None
    virtual_machines: list[VirtualMachine] = Field(default_factory=list)

    @property
    def end(self) -> int:
        return self.position + self.size - 1


class Rack(ApiModel):
    id: str = Field(default_factory=new_id)
    name: str
    location: str
    total_units: int = Field(gt=0)
    equipment: list[Equipment] = Field(default_factory=list)


class RackSummary(ApiModel):
    id: str
    name: str
    location: str
    total_units: int
    used_units: int
    equipment_count: int


# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------


class RackCreate(ApiModel):
    name: str = Field(min_length=1)
    location: str = Field(min_length=1)
    total_units: int = Field(strict=True, gt=0, le=MAX_RACK_UNITS)


class RackUpdate(ApiModel):
    name: str | None = Field(default=None, min_length=1)
    location: str | None = Field(default=None, min_length=1)
    total_units: int | None = Field(default=None, strict=True, gt=0, le=MAX_RACK_UNITS)


class EquipmentCreate(ApiModel):
    name: str = Field(min_length=1)
    brand: str = ""
    type: EquipmentType
    position: int = Field(strict=True)
    size: int = Field(strict=True, gt=0)
    port_count: int | None = Field(default=None, strict=True, gt=0)
    ip_address: str | None = None
    vlans: list[str] | None = None
    idrac_ip: str | None = None
    description: str | None = None

    @field_validator("vlans", mode="before")
    @classmethod
    def normalize_vlans(cls, value: Any) -> Any:
        return _normalize_vlan_input(value)

    @model_validator(mode="after")
    def validate_type_fields(self) -> "EquipmentCreate":
        misplaced = misplaced_fields(self.type, self.__dict__)
        if misplaced:
            raise ValueError(f"fields not applicable to a {self.type}: {misplaced}")
        return self


class EquipmentUpdate(ApiModel):
    """Partial equipment update; only fields present in the request are applied."""

    name: str | None = Field(default=None, min_length=1)
    brand: str | None = None
    position: int | None = Field(default=None, strict=True)
    size: int | None = Field(default=None, strict=True, gt=0)
    port_count: int | None = Field(default=None, strict=True, gt=0)
    ip_address: str | None = None
    vlans: list[str] | None = None
    idrac_ip: str | None = None
    description: str | None = None

    @field_validator("vlans", mode="before")
    @classmethod
    def normalize_vlans(cls, value: Any) -> Any:
        return _normalize_vlan_input(value)


class SwitchPortUpdate(ApiModel):
    description: str | None = None
    connected: bool | None = None
    tagged_vlans: list[str] | None = None
    is_fibre: bool | None = None

    @field_validator("tagged_vlans", mode="before")
    @classmethod
    def normalize_tags(cls, value: Any) -> Any:
        return _normalize_vlan_input(value)


class PortReset(ApiModel):
    port_count: int | None = Field(default=None, strict=True, gt=0)
    confirm: bool = False

    @model_validator(mode="after")
    def validate_confirmation(self) -> "PortReset":
        if not self.confirm:
            raise ValueError("port reset discards every configured port and must be confirmed")
        return self


class VirtualMachineCreate(ApiModel):
    name: str = Field(min_length=1)
    description: str = ""
    anydesk_code: str = ""
    ip_address: str = ""


class VirtualMachineUpdate(ApiModel):
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    anydesk_code: str | None = None
    ip_address: str | None = None


# ---------------------------------------------------------------------------
# YAML inventory import
# ---------------------------------------------------------------------------


class EquipmentImport(EquipmentCreate):
    virtual_machines: list[VirtualMachineCreate] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_vm_host(self) -> "EquipmentImport":
        if self.virtual_machines and self.type != "server":
            raise ValueError(f"equipment {self.name} is a {self.type} and cannot host VMs")
        return self


class RackImport(RackCreate):
    equipment: list[EquipmentImport] = Field(default_factory=list)


class InventoryDocument(ApiModel):
    version: int = 1
    racks: list[RackImport]

    @model_validator(mode="after")
    def validate_unique_names(self) -> "InventoryDocument":
        names = [rack.name for rack in self.racks]
        if len(set(names)) != len(names):
            raise ValueError("rack names must be unique")
        for rack in self.racks:
            equipment_names = [item.name for item in rack.equipment]
            if len(set(equipment_names)) != len(equipment_names):
                raise ValueError(f"equipment names must be unique within rack {rack.name}")
        return self

    @classmethod
    def model_validate_yaml(cls, raw: str) -> "InventoryDocument":
        return cls.model_validate(yaml.safe_load(raw))
