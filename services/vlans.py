# SPDX-License-Identifier: Apache-2.0
"""VLAN label parsing shared by payload validation and the storage adapter."""

from __future__ import annotations

from typing import Iterable


def parse_vlan_list(raw: str | None) -> list[str]:
    """Split a comma-separated VLAN string into trimmed, non-empty labels.

    Order of first occurrence is kept and duplicates are left in place.
    """
    if not raw:
        return []
    return [label.strip() for label in raw.split(",") if label.strip()]


def distinct_labels(labels: Iterable[str]) -> list[str]:
    """Trim labels and drop empties and exact duplicates, keeping first occurrence."""
    seen: set[str] = set()
    result: list[str] = []
    for label in labels:
        cleaned = label.strip()
        if not cleaned or cleaned in seen:
            continue
        seen.add(cleaned)
        result.append(cleaned)
    return result
