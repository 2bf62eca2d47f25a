# SPDX-License-Identifier: Apache-2.0
from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from db import Database
from models import Equipment, Rack
from services.inventory import Inventory

ROOT = Path(__file__).resolve().parents[1]


def make_equipment(
    position: int, size: int = 1, name: str | None = None, type: str = "server", **extra: Any
) -> Equipment:
    return Equipment(
        rack_id="rack-test",
        name=name or f"{type}-U{position}",
        type=type,
        position=position,
        size=size,
        **extra,
    )


def make_rack(total_units: int = 42, equipment: list[Equipment] | None = None) -> Rack:
    return Rack(
        id="rack-test", name="R01", location="Lab", total_units=total_units, equipment=equipment or []
    )


@pytest.fixture
def db(tmp_path) -> Database:
    database = Database(str(tmp_path / "rackledger.db"))
    database.init_db()
    return database


@pytest.fixture
def inventory(db: Database) -> Inventory:
    return Inventory(db)


@pytest.fixture
def client(tmp_path):
    from app import create_app

    app = create_app(str(tmp_path / "api.db"))
    app.config["TESTING"] = True
    return app.test_client()
