# SPDX-License-Identifier: Apache-2.0
"""Flask JSON API for the rackledger datacenter rack inventory."""

from __future__ import annotations

import os
import sys
from typing import Any

from flask import Flask, Response, jsonify, request
from loguru import logger
from pydantic import ValidationError
from yaml import YAMLError

from db import Database
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
from services.exceptions import InvalidInputError, InventoryError
from services.export import equipment_csv, inventory_json, ports_csv
from services.inventory import Inventory
from services.render_svg import render_rack_elevation_svg

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{module}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str | None = None) -> None:
    """Replace loguru's default sink with a single stderr sink."""
    logger.remove()
    logger.add(sys.stderr, level=level or os.environ.get("LOGURU_LEVEL", "INFO"), format=LOG_FORMAT)


def _json_body() -> dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidInputError("Request body must be a JSON object")
    return data


def _error(reason: str, kind: str, status: int) -> tuple[Response, int]:
    return jsonify({"error": reason, "kind": kind}), status


def create_app(db_path: str | None = None) -> Flask:
    configure_logging()
    app = Flask(__name__)
    app.secret_key = os.environ.get("SECRET_KEY", "dev-secret")
    app.config["MAX_CONTENT_LENGTH"] = 1024 * 1024

    db = Database(db_path or os.environ.get("RACKLEDGER_DB", "rackledger.db"))
    db.init_db()
    inventory = Inventory(db)
    logger.info(f"Using inventory database {db.path}")

    @app.errorhandler(InventoryError)
    def handle_inventory_error(exc: InventoryError) -> tuple[Response, int]:
        return _error(exc.reason, exc.kind, exc.status_code)

    @app.errorhandler(ValidationError)
    def handle_validation_error(exc: ValidationError) -> tuple[Response, int]:
        first = exc.errors()[0]
        where = ".".join(str(part) for part in first["loc"])
        detail = f"{where}: {first['msg']}" if where else first["msg"]
        return _error(f"Validation error: {exc.error_count()} error(s), {detail}", "InvalidInput", 400)

    @app.errorhandler(YAMLError)
    def handle_yaml_error(exc: YAMLError) -> tuple[Response, int]:
        return _error(f"YAML parse error: {exc}", "InvalidInput", 400)

    @app.get("/api/health")
    def health() -> Response:
        return jsonify({"status": "ok"})

    # -- racks --------------------------------------------------------------

    @app.get("/api/racks")
    def list_racks() -> Response:
        return jsonify([summary.to_json_dict() for summary in inventory.list_rack_summaries()])

    @app.post("/api/racks")
    def create_rack() -> tuple[Response, int]:
        rack = inventory.create_rack(RackCreate.model_validate(_json_body()))
        return jsonify(rack.to_json_dict()), 201

    @app.get("/api/racks/<rack_id>")
    def get_rack(rack_id: str) -> Response:
        return jsonify(inventory.get_rack(rack_id).to_json_dict())

    @app.put("/api/racks/<rack_id>")
    def update_rack(rack_id: str) -> Response:
        rack = inventory.update_rack(rack_id, RackUpdate.model_validate(_json_body()))
        return jsonify(rack.to_json_dict())

    @app.delete("/api/racks/<rack_id>")
    def delete_rack(rack_id: str) -> tuple[str, int]:
        inventory.delete_rack(rack_id)
        return "", 204

    @app.get("/api/racks/<rack_id>/free-units")
    def free_units(rack_id: str) -> Response:
        ranges = inventory.free_ranges(rack_id)
        return jsonify({"rackId": rack_id, "ranges": [r.to_json_dict() for r in ranges]})

    @app.get("/api/racks/<rack_id>/elevation.svg")
    def rack_elevation(rack_id: str) -> Response:
        svg = render_rack_elevation_svg(inventory.get_rack(rack_id))
        return Response(svg, mimetype="image/svg+xml")

    # -- equipment ----------------------------------------------------------

    @app.post("/api/equipment/<rack_id>")
    def add_equipment(rack_id: str) -> tuple[Response, int]:
        equipment = inventory.add_equipment(rack_id, EquipmentCreate.model_validate(_json_body()))
        return jsonify(equipment.to_json_dict()), 201

    @app.put("/api/equipment/<equipment_id>")
    def update_equipment(equipment_id: str) -> Response:
        payload = EquipmentUpdate.model_validate(_json_body())
        return jsonify(inventory.update_equipment(equipment_id, payload).to_json_dict())

    @app.delete("/api/equipment/<rack_id>/<equipment_id>")
    def remove_equipment(rack_id: str, equipment_id: str) -> tuple[str, int]:
        inventory.remove_equipment(rack_id, equipment_id)
        return "", 204

    @app.post("/api/equipment/<equipment_id>/ports/reset")
    def reset_ports(equipment_id: str) -> Response:
        payload = PortReset.model_validate(_json_body())
        return jsonify(inventory.reset_ports(equipment_id, payload).to_json_dict())

    @app.put("/api/switch-ports/<port_id>")
    def update_port(port_id: str) -> Response:
        port = inventory.update_port(port_id, SwitchPortUpdate.model_validate(_json_body()))
        return jsonify(port.to_json_dict())

    # -- virtual machines ---------------------------------------------------

    @app.post("/api/virtual-machines/<equipment_id>")
    def add_virtual_machine(equipment_id: str) -> tuple[Response, int]:
        payload = VirtualMachineCreate.model_validate(_json_body())
        return jsonify(inventory.add_virtual_machine(equipment_id, payload).to_json_dict()), 201

    @app.put("/api/virtual-machines/<vm_id>")
    def update_virtual_machine(vm_id: str) -> Response:
        payload = VirtualMachineUpdate.model_validate(_json_body())
        return jsonify(inventory.update_virtual_machine(vm_id, payload).to_json_dict())

    @app.delete("/api/virtual-machines/<equipment_id>/<vm_id>")
    def remove_virtual_machine(equipment_id: str, vm_id: str) -> tuple[str, int]:
        inventory.remove_virtual_machine(equipment_id, vm_id)
        return "", 204

    # -- import / export ----------------------------------------------------

    @app.post("/api/import")
    def import_inventory() -> tuple[Response, int]:
        file = request.files.get("inventory_yaml")
        try:
            raw = (
                file.read().decode("utf-8")
                if file and file.filename
                else request.get_data(as_text=True)
            )
        except UnicodeDecodeError as exc:
            raise InvalidInputError(f"Inventory YAML must be UTF-8: {exc}") from exc
        if not raw.strip():
            raise InvalidInputError("Please provide an inventory YAML document")
        racks = inventory.import_inventory(InventoryDocument.model_validate_yaml(raw))
        return jsonify({"racks": [rack.to_json_dict() for rack in racks]}), 201

    @app.get("/api/export/equipment.csv")
    def export_equipment() -> Response:
        return Response(
            equipment_csv(inventory.list_racks()),
            mimetype="text/csv",
            headers={"Content-Disposition": "attachment; filename=equipment.csv"},
        )

    @app.get("/api/export/ports.csv")
    def export_ports() -> Response:
        return Response(
            ports_csv(inventory.list_racks()),
            mimetype="text/csv",
            headers={"Content-Disposition": "attachment; filename=switch_ports.csv"},
        )

    @app.get("/api/export/inventory.json")
    def export_inventory() -> Response:
        return Response(inventory_json(inventory.list_racks()), mimetype="application/json")

    return app


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=5000, debug=True)
