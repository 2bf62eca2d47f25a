# SPDX-License-Identifier: Apache-2.0
"""Error kinds reported by the inventory service and the slot allocator."""

from __future__ import annotations


class InventoryError(Exception):
    """Base class for every rejection reported to the API caller."""

    kind = "InventoryError"
    status_code = 400

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class NotFoundError(InventoryError):
    """Referenced rack, equipment, port or virtual machine does not exist."""

    kind = "NotFound"
    status_code = 404


class InvalidInputError(InventoryError):
    """Missing field, wrong type or a field that does not apply to the equipment type."""

    kind = "InvalidInput"


class PlacementError(InventoryError):
    """Candidate unit range cannot be used in the rack."""


class OutOfBoundsError(PlacementError):
    kind = "OutOfBounds"


class OverlapError(PlacementError):
    kind = "Overlap"

    def __init__(self, reason: str, conflicting_ids: list[str] | None = None):
        super().__init__(reason)
        self.conflicting_ids = conflicting_ids or []
