"""Field-level reconciliation of partial outputs.

Partial objects come from different stages or from different chunks of one
stage. Each top-level field is resolved by the first rule that matches:

1. one contributor supplied it: adopt, no conflict
2. every supplied value is structurally equal: adopt, no conflict
3. version field: most current known version via ``VersionPolicy``
4. proposal list: de-duplicate by normalized question, first seen wins
5. arrays of primitives: ordered union
6. arrays of records: later records win, earlier ones kept unless shadowed
7. anything else: last contributor wins

Rules 3-7 always record a ``MergeConflict``. ``None`` means "not supplied".
"""

from __future__ import annotations

import copy
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

from loreforge.merge.values import (
    IDENTITY_FIELDS,
    is_empty_contribution,
    is_primitive_array,
    is_record_array,
    normalize_contributor,
    primitive_key,
    record_identity,
    structural_equal,
    value_kind,
)
from loreforge.merge.versions import VersionPolicy
from loreforge.models.artifacts import normalize_question
from loreforge.observability.logging import get_logger

log = get_logger(__name__)

MergeStrategy = Literal["version-policy", "merged-array", "last-writer-wins"]
Contributions = Sequence[tuple[str, Mapping[str, Any]]]


@dataclass(frozen=True)
class MergeConflict:
    """A field on which contributors disagreed, and how it was settled.

    Attributes:
        field: Top-level field name.
        contributors: Every ``(contributor, value)`` pair that supplied the field.
        resolved_value: Value written to the merged object.
        strategy: Resolution strategy that fired.
        rule: Number of the resolution rule that fired (3-7).
    """

    field: str
    contributors: tuple[tuple[str, Any], ...]
    resolved_value: Any
    strategy: MergeStrategy
    rule: int

    @property
    def contributor_ids(self) -> list[str]:
        return [contributor for contributor, _ in self.contributors]

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "contributors": [
                {"contributor": contributor, "value": value}
                for contributor, value in self.contributors
            ],
            "resolved_value": self.resolved_value,
            "strategy": self.strategy,
            "rule": self.rule,
        }


@dataclass
class MergeResult:
    """Merged object plus the ordered conflict log and warnings."""

    merged: dict[str, Any]
    conflicts: list[MergeConflict] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    contributors: list[str] = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    def conflict_for(self, field_name: str) -> MergeConflict | None:
        return next((c for c in self.conflicts if c.field == field_name), None)

    def conflicts_as_dicts(self) -> list[dict[str, Any]]:
        return [conflict.to_dict() for conflict in self.conflicts]


class MergeEngine:
    """Reconciles contributions into one canonical object.

    Args:
        version_policy: Policy used for the version field.
        version_field: Name of the version-identifier field.
        proposals_field: Name of the open-question list field.
        ignored_fields: Metadata fields merged last-writer-wins without a
            conflict record.
        identity_fields: Name-like keys used as record identity, in order.
    """

    def __init__(
        self,
        version_policy: VersionPolicy | None = None,
        *,
        version_field: str = "schema_version",
        proposals_field: str = "proposals",
        ignored_fields: Iterable[str] = ("retrieval_hints",),
        identity_fields: Sequence[str] = IDENTITY_FIELDS,
    ) -> None:
        self.version_policy = version_policy or VersionPolicy()
        self.version_field = version_field
        self.proposals_field = proposals_field
        self.ignored_fields = frozenset(ignored_fields)
        self.identity_fields = tuple(identity_fields)

    def merge(
        self,
        contributions: Contributions,
        expected: Iterable[str] | None = None,
    ) -> MergeResult:
        """Merge contributions in order, oldest first.

        Args:
            contributions: ``(contributor_id, partial_object)`` pairs.
            expected: Contributors that should have supplied something; a
                warning is emitted for each that supplied nothing at all.

        Returns:
            MergeResult with the merged object, conflicts and warnings.
        """
        merged: dict[str, Any] = {}
        conflicts: list[MergeConflict] = []
        warnings = self._contributor_warnings(contributions, expected)

        for field_name in self._field_order(contributions):
            present = [(cid, data) for cid, data in contributions if field_name in data]
            supplied = [(cid, data[field_name]) for cid, data in present if data[field_name] is not None]
            if not supplied:
                merged[field_name] = None
                continue

            value, conflict = self._resolve_field(field_name, supplied)
            merged[field_name] = value
            if conflict is not None:
                conflicts.append(conflict)

        log.debug(
            "merge_complete",
            contributors=len(contributions),
            fields=len(merged),
            conflicts=len(conflicts),
            warnings=len(warnings),
        )
        return MergeResult(
            merged=merged,
            conflicts=conflicts,
            warnings=warnings,
            contributors=[cid for cid, _ in contributions],
        )

    # -- Field resolution -----------------------------------------------------

    def _resolve_field(
        self, field_name: str, supplied: list[tuple[str, Any]]
    ) -> tuple[Any, MergeConflict | None]:
        values = [value for _, value in supplied]

        if len(supplied) == 1:
            return copy.deepcopy(values[0]), None
        if all(structural_equal(values[0], other) for other in values[1:]):
            return copy.deepcopy(values[0]), None
        if field_name in self.ignored_fields:
            return copy.deepcopy(values[-1]), None

        if field_name == self.version_field:
            resolved = self.version_policy.resolve(values)
            return resolved, self._conflict(field_name, supplied, resolved, "version-policy", 3)

        if field_name == self.proposals_field and all(value_kind(v) == "array" for v in values):
            resolved = self._merge_proposals(values)
            return resolved, self._conflict(field_name, supplied, resolved, "merged-array", 4)

        if all(is_primitive_array(v) for v in values):
            resolved = self._union_primitives(values)
            return resolved, self._conflict(field_name, supplied, resolved, "merged-array", 5)

        if all(is_record_array(v) for v in values):
            resolved = self._merge_records(values)
            return resolved, self._conflict(field_name, supplied, resolved, "merged-array", 6)

        resolved = copy.deepcopy(values[-1])
        return resolved, self._conflict(field_name, supplied, resolved, "last-writer-wins", 7)

    def _merge_proposals(self, lists: list[Any]) -> list[Any]:
        seen: set[str] = set()
        result: list[Any] = []
        for proposals in lists:
            for proposal in proposals:
                key = _proposal_key(proposal)
                if key is not None:
                    if key in seen:
                        continue
                    seen.add(key)
                result.append(copy.deepcopy(proposal))
        return result

    def _union_primitives(self, lists: list[Any]) -> list[Any]:
        seen: set[tuple[str, Any]] = set()
        result: list[Any] = []
        for items in lists:
            for item in items:
                key = primitive_key(item)
                if key not in seen:
                    seen.add(key)
                    result.append(item)
        return result

    def _merge_records(self, lists: list[Any]) -> list[Any]:
        kept: list[Any] = []
        identities: set[str] = set()
        for records in reversed(lists):
            added: set[str] = set()
            for record in records:
                identity = record_identity(record, self.identity_fields)
                if identity is not None:
                    if identity in identities:
                        continue
                    added.add(identity)
                elif any(structural_equal(record, other) for other in kept):
                    continue
                kept.append(copy.deepcopy(record))
            identities |= added

        # kept holds the last contributor's records first, then earlier survivors
        return kept

    # -- Helpers --------------------------------------------------------------

    @staticmethod
    def _conflict(
        field_name: str,
        supplied: list[tuple[str, Any]],
        resolved: Any,
        strategy: MergeStrategy,
        rule: int,
    ) -> MergeConflict:
        return MergeConflict(
            field=field_name,
            contributors=tuple((cid, copy.deepcopy(value)) for cid, value in supplied),
            resolved_value=copy.deepcopy(resolved),
            strategy=strategy,
            rule=rule,
        )

    @staticmethod
    def _field_order(contributions: Contributions) -> list[str]:
        order: dict[str, None] = {}
        for _, data in contributions:
            for key in data:
                order.setdefault(key, None)
        return list(order)

    @staticmethod
    def _contributor_warnings(
        contributions: Contributions, expected: Iterable[str] | None
    ) -> list[str]:
        expected_names = list(expected or ())
        expected_keys = {normalize_contributor(name) for name in expected_names}
        warnings: list[str] = []
        supplied: set[str] = set()
        for cid, data in contributions:
            key = normalize_contributor(cid)
            if not is_empty_contribution(data):
                supplied.add(key)
            elif key not in expected_keys:
                warnings.append(f"Contributor '{cid}' supplied an empty object")

        for name in expected_names:
            if normalize_contributor(name) not in supplied:
                warnings.append(f"Expected contributor '{name}' supplied nothing")
        return warnings


def _proposal_key(proposal: Any) -> str | None:
    if isinstance(proposal, Mapping):
        question = proposal.get("question")
        return normalize_question(question) if isinstance(question, str) else None
    if isinstance(proposal, str):
        return normalize_question(proposal)
    return None
