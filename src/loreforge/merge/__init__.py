"""Merge engine: reconcile partial outputs with a full conflict audit."""

from loreforge.merge.engine import MergeConflict, MergeEngine, MergeResult
from loreforge.merge.review import format_conflicts_for_review
from loreforge.merge.values import (
    JsonValue,
    UnsupportedValueError,
    normalize_contributor,
    record_identity,
    structural_equal,
    value_kind,
)
from loreforge.merge.versions import DEFAULT_CANONICAL_VERSIONS, VersionPolicy

__all__ = [
    "DEFAULT_CANONICAL_VERSIONS",
    "JsonValue",
    "MergeConflict",
    "MergeEngine",
    "MergeResult",
    "UnsupportedValueError",
    "VersionPolicy",
    "format_conflicts_for_review",
    "normalize_contributor",
    "record_identity",
    "structural_equal",
    "value_kind",
]
