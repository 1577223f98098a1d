"""Structural operations over the closed JSON value type.

Values are restricted to null, bool, number, string, array and object.
Anything else is rejected with ``UnsupportedValueError`` instead of being
compared by reflection.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any, Literal, TypeAlias

from loreforge.models.artifacts import normalize_question

JsonValue: TypeAlias = (
    None | bool | int | float | str | list["JsonValue"] | dict[str, "JsonValue"]
)
ValueKind = Literal["null", "bool", "number", "string", "array", "object"]

IDENTITY_FIELDS: tuple[str, ...] = ("name", "id", "title", "label", "question")

_KEY_SEPARATORS = re.compile(r"[\s\-]+")


class UnsupportedValueError(TypeError):
    """Raised for values outside the JSON value type."""

    def __init__(self, value: Any) -> None:
        self.value = value
        super().__init__(f"Unsupported value type for merge: {type(value).__name__}")


def value_kind(value: Any) -> ValueKind:
    """Classify ``value`` within the JSON value type."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int | float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list | tuple):
        return "array"
    if isinstance(value, Mapping):
        return "object"
    raise UnsupportedValueError(value)


def structural_equal(left: Any, right: Any) -> bool:
    """Deep equality over JSON values.

    Booleans never equal numbers, and integers equal floats of the same value.
    Object key order is irrelevant; array order is significant.
    """
    left_kind = value_kind(left)
    if left_kind != value_kind(right):
        return False
    if left_kind == "array":
        return len(left) == len(right) and all(
            structural_equal(a, b) for a, b in zip(left, right, strict=True)
        )
    if left_kind == "object":
        return left.keys() == right.keys() and all(
            structural_equal(left[key], right[key]) for key in left
        )
    return bool(left == right)


def is_primitive(value: Any) -> bool:
    return value_kind(value) in ("null", "bool", "number", "string")


def is_primitive_array(value: Any) -> bool:
    return value_kind(value) == "array" and all(is_primitive(item) for item in value)


def is_record_array(value: Any) -> bool:
    return value_kind(value) == "array" and all(value_kind(item) == "object" for item in value)


def primitive_key(value: Any) -> tuple[str, Any]:
    """Hashable identity for a primitive, keeping ``True`` apart from ``1``."""
    return (value_kind(value), value)


def record_identity(record: Mapping[str, Any], fields: Sequence[str] = IDENTITY_FIELDS) -> str | None:
    """Identity key of a record from its first name-like string field."""
    for name in fields:
        candidate = record.get(name)
        if isinstance(candidate, str) and candidate.strip():
            return normalize_question(candidate)
    return None


def normalize_contributor(contributor: str) -> str:
    """Canonical contributor key: ``"Creator: Chunk 2"`` -> ``"creator:chunk_2"``."""
    text = contributor.strip().lower()
    text = re.sub(r"\s*:\s*", ":", text)
    return _KEY_SEPARATORS.sub("_", text)


def is_empty_contribution(data: Mapping[str, Any]) -> bool:
    """True when a contribution supplies no non-null field at all."""
    return all(value is None for value in data.values())
