"""Helpers for reading loosely shaped draft fields."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

ABILITY_FIELDS: tuple[str, ...] = (
    "properties",
    "abilities",
    "actions",
    "bonus_actions",
    "reactions",
    "legendary_actions",
    "traits",
    "features",
    "powers",
)
ROSTER_FIELDS: tuple[str, ...] = ("combatants", "participants", "key_npcs")


def as_records(value: Any) -> list[Mapping[str, Any]]:
    """The mapping entries of ``value`` if it is a list, else nothing."""
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, Mapping)]


def ability_records(draft: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    """Ability-like records on the draft and on every roster member."""
    holders: list[Mapping[str, Any]] = [draft]
    for roster_field in ROSTER_FIELDS:
        holders.extend(as_records(draft.get(roster_field)))

    records: list[Mapping[str, Any]] = []
    for holder in holders:
        for ability_field in ABILITY_FIELDS:
            records.extend(as_records(holder.get(ability_field)))
    return records


def record_name(record: Mapping[str, Any], default: str = "unnamed ability") -> str:
    for key in ("name", "title", "label"):
        value = record.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return default


def record_text(record: Mapping[str, Any]) -> str:
    """Lower-cased name, description and effect text of a record."""
    parts = [
        str(record.get(key, ""))
        for key in ("name", "description", "effect", "text")
        if record.get(key) is not None
    ]
    return " ".join(parts).lower()


def number(value: Any) -> float | None:
    """``value`` as a number, ignoring booleans and non-numeric input."""
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    return float(value)
