"""Tests for the merge engine."""

from __future__ import annotations

import pytest

from loreforge.merge import MergeEngine, UnsupportedValueError, VersionPolicy


@pytest.fixture
def engine() -> MergeEngine:
    return MergeEngine()


class TestUncontestedFields:
    """Rules 1 and 2: a single or unanimous value is adopted silently."""

    def test_single_contributor_adopted(self, engine: MergeEngine) -> None:
        """A field only one contributor supplied is taken as-is."""
        result = engine.merge([("a", {"name": "Valen"}), ("b", {"tone": "grim"})])

        assert result.merged == {"name": "Valen", "tone": "grim"}
        assert result.conflicts == []

    def test_structurally_equal_values_are_not_conflicts(self, engine: MergeEngine) -> None:
        """Key order inside objects does not create a conflict."""
        result = engine.merge(
            [
                ("a", {"stats": {"ac": 15, "hp": 40}}),
                ("b", {"stats": {"hp": 40, "ac": 15.0}}),
            ]
        )

        assert result.merged["stats"] == {"ac": 15, "hp": 40}
        assert not result.has_conflicts

    def test_none_counts_as_not_supplied(self, engine: MergeEngine) -> None:
        """A null value does not compete with a real one."""
        result = engine.merge([("a", {"tone": "dark"}), ("b", {"tone": None})])

        assert result.merged["tone"] == "dark"
        assert result.conflicts == []

    def test_field_only_null_stays_null(self, engine: MergeEngine) -> None:
        """A field every contributor left null is present as None."""
        result = engine.merge([("a", {"motto": None})])

        assert result.merged == {"motto": None}

    def test_bool_and_number_differ(self, engine: MergeEngine) -> None:
        """True and 1 are different values."""
        result = engine.merge([("a", {"flag": True}), ("b", {"flag": 1})])

        assert result.merged["flag"] == 1
        conflict = result.conflict_for("flag")
        assert conflict is not None
        assert conflict.rule == 7


class TestConflictRules:
    """Rules 3-7 always record a conflict."""

    def test_tone_conflict_last_writer_wins(self, engine: MergeEngine) -> None:
        """Two tones resolve to the later contributor's value."""
        result = engine.merge([("creator:chunk_1", {"tone": "dark"}), ("creator:chunk_2", {"tone": "grim"})])

        assert result.merged["tone"] == "grim"
        assert len(result.conflicts) == 1
        conflict = result.conflicts[0]
        assert conflict.field == "tone"
        assert conflict.contributors == (("creator:chunk_1", "dark"), ("creator:chunk_2", "grim"))
        assert conflict.resolved_value == "grim"
        assert conflict.strategy == "last-writer-wins"
        assert conflict.rule == 7

    def test_schema_version_uses_policy(self, engine: MergeEngine) -> None:
        """The most current known version wins regardless of order."""
        result = engine.merge([("a", {"schema_version": "v1.1"}), ("b", {"schema_version": "1.0"})])

        assert result.merged["schema_version"] == "1.1"
        conflict = result.conflict_for("schema_version")
        assert conflict is not None
        assert conflict.strategy == "version-policy"
        assert conflict.rule == 3

    def test_proposals_deduplicated_by_normalized_question(self, engine: MergeEngine) -> None:
        """Questions differing only in case and whitespace merge into one."""
        result = engine.merge(
            [
                ("a", {"proposals": [{"question": "Is Valen a smuggler?"}]}),
                ("b", {"proposals": [{"question": "  is valen   a SMUGGLER? "}, {"question": "Who pays him?"}]}),
            ]
        )

        assert result.merged["proposals"] == [
            {"question": "Is Valen a smuggler?"},
            {"question": "Who pays him?"},
        ]
        conflict = result.conflict_for("proposals")
        assert conflict is not None
        assert conflict.rule == 4
        assert conflict.strategy == "merged-array"

    def test_primitive_arrays_ordered_union(self, engine: MergeEngine) -> None:
        """Primitive arrays union in first-seen order."""
        result = engine.merge(
            [("a", {"tags": ["sea", "relic"]}), ("b", {"tags": ["relic", "storm", "sea"]})]
        )

        assert result.merged["tags"] == ["sea", "relic", "storm"]
        conflict = result.conflict_for("tags")
        assert conflict is not None
        assert conflict.rule == 5

    def test_record_arrays_later_records_win(self, engine: MergeEngine) -> None:
        """A later record with the same name shadows the earlier one."""
        result = engine.merge(
            [
                ("a", {"npcs": [{"name": "Valen", "role": "keeper"}, {"name": "Ilse", "role": "guard"}]}),
                ("b", {"npcs": [{"name": "valen", "role": "smuggler"}]}),
            ]
        )

        assert result.merged["npcs"] == [
            {"name": "valen", "role": "smuggler"},
            {"name": "Ilse", "role": "guard"},
        ]
        conflict = result.conflict_for("npcs")
        assert conflict is not None
        assert conflict.rule == 6

    def test_ignored_fields_merge_without_conflict(self, engine: MergeEngine) -> None:
        """Metadata fields are last-writer-wins with no audit entry."""
        result = engine.merge(
            [("a", {"retrieval_hints": {"entities": ["x"]}}), ("b", {"retrieval_hints": {"entities": ["y"]}})]
        )

        assert result.merged["retrieval_hints"] == {"entities": ["y"]}
        assert result.conflicts == []

    def test_mixed_array_kinds_fall_back_to_last_writer(self, engine: MergeEngine) -> None:
        """An array against a string is not array-merged."""
        result = engine.merge([("a", {"hooks": ["one"]}), ("b", {"hooks": "two"})])

        assert result.merged["hooks"] == "two"
        assert result.conflict_for("hooks").rule == 7  # type: ignore[union-attr]


class TestMergeProperties:
    """Determinism and isolation of the merge."""

    def test_merging_twice_is_identical(self, engine: MergeEngine) -> None:
        """The same input yields the same merged object and conflict log."""
        contributions = [
            ("a", {"tone": "dark", "tags": ["x"], "proposals": [{"question": "Q?"}]}),
            ("b", {"tone": "grim", "tags": ["y"], "proposals": [{"question": "q?"}]}),
        ]

        first = engine.merge(contributions)
        second = engine.merge(contributions)

        assert first.merged == second.merged
        assert first.conflicts_as_dicts() == second.conflicts_as_dicts()

    def test_remerging_merged_result_adds_no_conflicts(self, engine: MergeEngine) -> None:
        """A merged object merged with itself is a fixed point."""
        contributions = [
            (
                "a",
                {
                    "tone": "dark",
                    "tags": ["x", "shared"],
                    "proposals": [{"question": "Who pays Valen?"}],
                    "npcs": [{"name": "Valen", "role": "keeper"}],
                },
            ),
            (
                "b",
                {
                    "tone": "grim",
                    "tags": ["shared", "y"],
                    "proposals": [{"question": "who pays  valen?"}, {"question": "Where is the hoard?"}],
                    "npcs": [{"name": "Mira", "role": "sailor"}, {"name": "Valen", "role": "smuggler"}],
                },
            ),
        ]
        first = engine.merge(contributions)
        assert {c.rule for c in first.conflicts} >= {4, 5, 6, 7}

        again = engine.merge([("a", first.merged), ("b", first.merged)])

        assert again.conflicts == []
        assert again.merged == first.merged

    def test_merge_does_not_alias_inputs(self, engine: MergeEngine) -> None:
        """Mutating the merged object leaves contributions untouched."""
        data = {"stats": {"hp": 10}}
        result = engine.merge([("a", data)])

        result.merged["stats"]["hp"] = 99

        assert data == {"stats": {"hp": 10}}

    def test_field_order_follows_first_appearance(self, engine: MergeEngine) -> None:
        """Merged keys appear in the order contributors introduced them."""
        result = engine.merge([("a", {"b": 1, "a": 2}), ("b", {"c": 3, "a": 2})])

        assert list(result.merged) == ["b", "a", "c"]

    def test_unsupported_values_rejected(self, engine: MergeEngine) -> None:
        """Non-JSON values raise instead of being compared loosely."""
        with pytest.raises(UnsupportedValueError):
            engine.merge([("a", {"when": {1, 2}}), ("b", {"when": {3}})])

    def test_custom_version_policy(self) -> None:
        """An engine uses the policy it was given."""
        engine = MergeEngine(VersionPolicy(canonical=("1.0", "2.0")))

        result = engine.merge([("a", {"schema_version": "2"}), ("b", {"schema_version": "1.0"})])

        assert result.merged["schema_version"] == "2.0"


class TestContributorWarnings:
    """Empty and missing contributions produce warnings, not errors."""

    def test_empty_contribution_warns(self, engine: MergeEngine) -> None:
        result = engine.merge([("a", {"tone": "dark"}), ("b", {})])

        assert result.warnings == ["Contributor 'b' supplied an empty object"]
        assert result.merged == {"tone": "dark"}

    def test_expected_contributor_missing_warns(self, engine: MergeEngine) -> None:
        """Expected ids match regardless of spelling."""
        result = engine.merge(
            [("creator:chunk_1", {"tone": "dark"})],
            expected=["Creator: Chunk 1", "creator:chunk_2"],
        )

        assert result.warnings == ["Expected contributor 'creator:chunk_2' supplied nothing"]

    def test_expected_and_empty_warns_once(self, engine: MergeEngine) -> None:
        result = engine.merge([("a", {"tone": None})], expected=["a"])

        assert result.warnings == ["Expected contributor 'a' supplied nothing"]

    def test_contributors_recorded_in_order(self, engine: MergeEngine) -> None:
        result = engine.merge([("b", {"x": 1}), ("a", {"y": 2})])

        assert result.contributors == ["b", "a"]
