"""Tests for the validation guards."""

from __future__ import annotations

from typing import Any

import pytest

from loreforge.guards import (
    BalanceGuard,
    CanonGuard,
    CoherenceGuard,
    Guard,
    GuardRegistry,
    GuardResult,
    PhysicsGuard,
    RulesGuard,
    run_guard,
)
from loreforge.models import (
    BriefPayload,
    Fact,
    FactCheckPayload,
    FactPackPayload,
    RetrievalHints,
)
from loreforge.tables import RuleTables


@pytest.fixture
def factpack(sample_facts: list[Fact]) -> FactPackPayload:
    return FactPackPayload(facts=sample_facts, entities=["npc.valen", "location.gull_point"])


@pytest.fixture
def fact_check() -> FactCheckPayload:
    return FactCheckPayload(ok=True, available_facts=3, resolved_sources=["npc.valen#c1"])


# --- Result and Registry Tests ---


class TestGuardResult:
    """Result construction helpers."""

    def test_from_findings_ok_without_errors(self) -> None:
        result = GuardResult.from_findings("physics", [], flags=["f"])

        assert result.ok
        assert result.has_advisories

    def test_from_findings_fails_with_errors(self) -> None:
        result = GuardResult.from_findings("physics", ["bad"])

        assert not result.ok
        payload = result.to_payload()
        assert payload.kind == "guard"
        assert payload.errors == ["bad"]

    def test_skip(self) -> None:
        result = GuardResult.skip("balance", "not applicable")

        assert result.ok
        assert result.skipped
        assert result.to_payload().reason == "not applicable"


class TestGuardRegistry:
    """Name lookup for guards."""

    def test_register_and_get(self, tables: RuleTables) -> None:
        guard = PhysicsGuard(tables)
        registry = GuardRegistry([guard])

        assert registry.get("physics") is guard
        assert "physics" in registry
        assert len(registry) == 1

    def test_duplicate_rejected(self, tables: RuleTables) -> None:
        registry = GuardRegistry([PhysicsGuard(tables)])

        with pytest.raises(ValueError, match="Duplicate guard name 'physics'"):
            registry.register(PhysicsGuard(tables))

    def test_unknown_lists_available(self, tables: RuleTables) -> None:
        registry = GuardRegistry([PhysicsGuard(tables), BalanceGuard(tables)])

        with pytest.raises(KeyError, match="available: balance, physics"):
            registry.get("stylist")

    def test_guards_satisfy_protocol(self, tables: RuleTables) -> None:
        for guard in (BalanceGuard(tables), CanonGuard(), CoherenceGuard(tables, "pre")):
            assert isinstance(guard, Guard)


def test_numeric_guards_skip_writing_domain(make_run, tables: RuleTables) -> None:
    """Mechanics guards return an explicit skip for prose projects."""
    run = make_run(domain="writing")

    for guard in (BalanceGuard(tables), PhysicsGuard(tables), RulesGuard(tables)):
        result = run_guard(guard, {"properties": []}, {}, run)
        assert result.skipped
        assert result.ok
        assert "writing" in (result.reason or "")


def test_coherence_runs_in_writing_domain(make_run, tables: RuleTables, factpack) -> None:
    run = make_run(domain="writing")

    result = run_guard(CoherenceGuard(tables, "pre"), None, {"retriever": factpack}, run)

    assert not result.skipped


# --- Balance Tests ---


class TestBalanceGuard:
    """Ungated power detection."""

    def test_always_active_ungated_damage_is_error(self, make_run, tables: RuleTables) -> None:
        """A passive damage aura with no limiter halts the run."""
        draft = {
            "properties": [
                {
                    "name": "Aura of Ruin",
                    "activation": "passive",
                    "effect": "Deals 2d6 necrotic damage to every creature within 10 feet.",
                }
            ]
        }

        result = BalanceGuard(tables).check(draft, {}, make_run(kind="item"))

        assert not result.ok
        assert result.errors == [
            "balance: 'Aura of Ruin' is an always-active, unlimited-use high-impact "
            "ability; gate it behind charges, uses or a recharge"
        ]

    def test_limiter_gates_ability(self, make_run, tables: RuleTables) -> None:
        draft = {
            "properties": [
                {"name": "Aura of Ruin", "activation": "passive", "effect": "2d6 damage", "charges": 3}
            ]
        }

        result = BalanceGuard(tables).check(draft, {}, make_run(kind="item"))

        assert result.ok
        assert result.flags == []

    def test_unlimited_marker_overrides_limiter(self, make_run, tables: RuleTables) -> None:
        draft = {
            "abilities": [
                {"name": "Gaze", "always_active": True, "usage": "at will", "uses": 1, "effect": "stun"}
            ]
        }

        result = BalanceGuard(tables).check(draft, {}, make_run())

        assert not result.ok

    def test_unlimited_limiter_value_is_not_a_gate(self, make_run, tables: RuleTables) -> None:
        """A limiter field that itself says unlimited does not gate the ability."""
        draft = {
            "abilities": [
                {
                    "name": "Soul Drain",
                    "always_active": True,
                    "uses": "unlimited",
                    "effect": "Deals 4d10 necrotic damage to every creature nearby.",
                }
            ]
        }

        result = BalanceGuard(tables).check(draft, {}, make_run())

        assert not result.ok
        assert "'Soul Drain'" in result.errors[0]

    def test_roster_abilities_checked(self, make_run, tables: RuleTables) -> None:
        """Abilities on encounter combatants are inspected too."""
        draft = {
            "combatants": [
                {"name": "Wraith", "traits": [{"name": "Dread", "frequency": "always", "effect": "charm"}]}
            ]
        }

        result = BalanceGuard(tables).check(draft, {}, make_run(kind="encounter"))

        assert not result.ok
        assert "'Dread'" in result.errors[0]

    def test_damage_rider_flagged(self, make_run, tables: RuleTables) -> None:
        draft = {"properties": [{"name": "Stinging Blade", "effect": "Add 1d4 poison damage on a hit."}]}

        result = BalanceGuard(tables).check(draft, {}, make_run(kind="item"))

        assert result.ok
        assert result.flags == [
            "balance: free damage rider on 'Stinging Blade'; gate it behind charges, "
            "attunement or a situational trigger"
        ]

    def test_high_save_dc_flagged(self, make_run, tables: RuleTables) -> None:
        draft = {"actions": [{"name": "Wail", "save_dc": 23, "uses": 1, "effect": "fear"}]}

        result = BalanceGuard(tables).check(draft, {}, make_run())

        assert any("save DC 23 on 'Wail'" in flag for flag in result.flags)

    def test_stacked_high_rarity_rewards_flagged(self, make_run, tables: RuleTables) -> None:
        draft = {
            "treasure": {"items": ["Legendary sword", {"rarity": "very rare"}, "artifact crown", "potion"]}
        }

        result = BalanceGuard(tables).check(draft, {}, make_run(kind="adventure"))

        assert result.flags == [
            "balance: 3 high-rarity rewards; ensure they suit the party tier"
        ]


# --- Physics Tests ---


class TestPhysicsGuard:
    """Movement and travel plausibility."""

    def test_fast_travel_is_error(self, make_run, tables: RuleTables) -> None:
        draft = {"travel": {"distance_miles": 30, "time_minutes": 60}}

        result = PhysicsGuard(tables).check(draft, {}, make_run(kind="scene"))

        assert result.errors == [
            "physics: implied speed 30.0 mph exceeds plausible non-magical travel"
        ]

    def test_magic_travel_allowed(self, make_run, tables: RuleTables) -> None:
        draft = {"environment": {"travel": {"distance_miles": 30, "time_minutes": 60, "magic": True}}}

        assert PhysicsGuard(tables).check(draft, {}, make_run(kind="scene")).ok

    def test_walking_pace_allowed(self, make_run, tables: RuleTables) -> None:
        draft = {"travel": {"distance_miles": 3, "time_minutes": 60}}

        assert PhysicsGuard(tables).check(draft, {}, make_run(kind="scene")).ok

    def test_round_movement_over_speed(self, make_run, tables: RuleTables) -> None:
        draft = {
            "tactics_rounds": [
                {"moves": [{"name": "Valen", "distance_ft": 25}]},
                {"moves": [{"name": "Valen", "distance_ft": 60}]},
            ]
        }

        result = PhysicsGuard(tables).check(draft, {}, make_run(kind="encounter"))

        assert result.errors == [
            "physics: round 2 movement of Valen (60ft) exceeds speed 30ft without Dash or magic"
        ]

    def test_dash_and_declared_speed_allowed(self, make_run, tables: RuleTables) -> None:
        draft = {
            "tactics_rounds": [
                {
                    "moves": [
                        {"name": "Valen", "distance_ft": 60, "dash": True},
                        {"name": "Horse", "distance_ft": 60, "speed_ft_per_round": 60},
                    ]
                }
            ]
        }

        assert PhysicsGuard(tables).check(draft, {}, make_run(kind="encounter")).ok

    def test_fall_without_damage_flagged(self, make_run, tables: RuleTables) -> None:
        draft = {"environment": {"hazards": [{"type": "fall", "height_ft": 40}]}}

        result = PhysicsGuard(tables).check(draft, {}, make_run(kind="scene"))

        assert result.ok
        assert result.flags == [
            "physics: 40ft fall listed without damage; add damage or a slow-fall effect"
        ]

    def test_long_range_flagged(self, make_run, tables: RuleTables) -> None:
        draft = {"attacks": [{"name": "Longbow", "range_ft": 1200}]}

        result = PhysicsGuard(tables).check(draft, {}, make_run())

        assert result.flags == [
            "physics: 'Longbow' range 1200ft seems high; verify magic or siege use"
        ]


# --- Rules Tests ---


class TestRulesGuard:
    """Numeric envelopes per kind."""

    def _draft(self, **fields: Any) -> dict[str, Any]:
        return {"rule_base": "2024RAW", "sources_used": ["npc.valen#c1"], **fields}

    def test_requires_fact_check(self, make_run, tables: RuleTables) -> None:
        result = RulesGuard(tables).check(self._draft(), {}, make_run())

        assert result.errors == ["rules: fact-check findings are required before rules checks"]

    def test_valid_npc(self, make_run, tables: RuleTables, fact_check) -> None:
        draft = self._draft(name="Valen", ac=14, hp=45, level=5, proficiency_bonus=3)

        result = RulesGuard(tables).check(draft, {"fact_check": fact_check}, make_run())

        assert result.ok, result.errors

    def test_npc_out_of_bounds(self, make_run, tables: RuleTables, fact_check) -> None:
        draft = self._draft(name="Valen", ac=30, hp=4, level=5, proficiency_bonus=2)

        result = RulesGuard(tables).check(draft, {"fact_check": fact_check}, make_run())

        assert result.errors == [
            "rules: proficiency_bonus 2 does not match level 5 (expected 3)",
            "rules: AC 30 outside expected NPC bounds (10-22)",
            "rules: HP 4 outside expected NPC bounds (8-350)",
        ]

    def test_class_levels_summed(self, make_run, tables: RuleTables, fact_check) -> None:
        draft = self._draft(
            name="Valen",
            class_levels=[{"class": "rogue", "level": 4}, {"class": "cleric", "level": 5}],
            proficiency_bonus=4,
        )

        assert RulesGuard(tables).check(draft, {"fact_check": fact_check}, make_run()).ok

    def test_missing_rule_base_and_sources(self, make_run, tables: RuleTables, fact_check) -> None:
        draft = {"name": "Valen", "sources_used": []}

        result = RulesGuard(tables).check(draft, {"fact_check": fact_check}, make_run())

        assert "rules: sources_used must cite at least one fact" in result.errors
        assert "rules: rule_base missing" in result.errors

    def test_fact_check_warnings_become_flags(self, make_run, tables: RuleTables) -> None:
        fact_check = FactCheckPayload(ok=True, warnings=["No sources cited; content may be invented"])

        result = RulesGuard(tables).check(self._draft(name="Valen"), {"fact_check": fact_check}, make_run())

        assert result.flags == ["rules: fact check: No sources cited; content may be invented"]

    def test_encounter_without_combatants(self, make_run, tables: RuleTables, fact_check) -> None:
        result = RulesGuard(tables).check(
            self._draft(title="Ambush"), {"fact_check": fact_check}, make_run(kind="encounter")
        )

        assert result.errors == ["rules: encounter has no combatants"]

    def test_scene_dc_envelope(self, make_run, tables: RuleTables, fact_check) -> None:
        draft = self._draft(title="Storm", skill_challenges=[{"dc": 15}, {"dc": 30}])

        result = RulesGuard(tables).check(draft, {"fact_check": fact_check}, make_run(kind="scene"))

        assert result.errors == ["rules: DC 30 outside 10-25 envelope"]

    def test_high_rarity_item_without_attunement(self, make_run, tables: RuleTables, fact_check) -> None:
        draft = self._draft(name="Tidecaller", rarity="Legendary", requires_attunement=False)

        result = RulesGuard(tables).check(draft, {"fact_check": fact_check}, make_run(kind="item"))

        assert result.ok
        assert result.flags == ["rules: high-rarity item without attunement; review"]

    def test_forbidden_combination(self, make_run, tables: RuleTables, fact_check) -> None:
        draft = self._draft(name="Ring of Spell Storing", properties=[{"name": "Necrotic Touch"}])

        result = RulesGuard(tables).check(draft, {"fact_check": fact_check}, make_run(kind="item"))

        assert not result.ok
        assert "ring of spell storing cannot add damage riders" in result.errors[0]


# --- Coherence Tests ---


class TestCoherenceGuard:
    """Grounding checks before and after drafting."""

    def test_requires_fact_pack(self, make_run, tables: RuleTables) -> None:
        result = CoherenceGuard(tables, "pre").check(None, {}, make_run())

        assert result.errors == ["coherence(pre): fact pack is required"]

    def test_pre_no_facts_without_invention_is_error(self, make_run, tables: RuleTables) -> None:
        run = make_run(allow_invention="none")

        result = CoherenceGuard(tables, "pre").check(None, {"retriever": FactPackPayload()}, run)

        assert not result.ok

    def test_pre_no_facts_with_invention_is_suggestion(self, make_run, tables: RuleTables) -> None:
        factpack = FactPackPayload(gaps=["Entities not found: npc.ghost"])

        result = CoherenceGuard(tables, "pre").check(None, {"retriever": factpack}, make_run())

        assert result.ok
        assert len(result.suggestions) == 2
        assert "gaps identified: Entities not found: npc.ghost" in result.suggestions[1]

    def test_pre_malformed_fact_id(self, make_run, tables: RuleTables) -> None:
        factpack = FactPackPayload(facts=[Fact(id="valen", text="Keeps the light.")])

        result = CoherenceGuard(tables, "pre").check(None, {"retriever": factpack}, make_run())

        assert result.errors == ["coherence(pre): malformed fact id 'valen'"]

    def test_post_requires_sources(self, make_run, tables: RuleTables, factpack) -> None:
        result = CoherenceGuard(tables, "post").check(
            {"name": "Valen", "sources_used": []}, {"retriever": factpack}, make_run()
        )

        assert result.errors == ["coherence(post): no sources_used cited"]

    def test_post_without_facts_needs_no_sources(self, make_run, tables: RuleTables) -> None:
        result = CoherenceGuard(tables, "post").check(
            {"name": "Valen", "sources_used": []}, {"retriever": FactPackPayload()}, make_run()
        )

        assert result.ok

    def test_post_region_and_era_suggestions(self, make_run, tables: RuleTables, factpack) -> None:
        brief = BriefPayload(
            run_kind="scene",
            deliverable="scene",
            summary="Storm",
            retrieval_hints=RetrievalHints(regions=["Shattered Reef"], eras=["age-of-tides"]),
        )
        draft = {"title": "Storm", "sources_used": ["npc.valen#c1"], "location": "Gull Point"}

        result = CoherenceGuard(tables, "post").check(
            draft, {"retriever": factpack, "planner": brief}, make_run(kind="scene")
        )

        assert result.ok
        assert result.suggestions == [
            "coherence(post): expected region 'Shattered Reef' not clearly referenced in location",
            "coherence(post): era 'age-of-tides' not explicitly referenced; consider adding "
            "temporal context",
        ]


# --- Canon Tests ---


class TestCanonGuard:
    """Source resolution and invention policy."""

    def test_resolved_sources(self, make_run, factpack) -> None:
        draft = {"sources_used": ["npc.valen#c1", "location.gull_point#c1"], "proposals": []}

        report = CanonGuard().report(draft, {"retriever": factpack}, make_run())

        assert report.ok
        assert report.available_facts == 3
        assert report.resolved_sources == ["npc.valen#c1", "location.gull_point#c1"]

    def test_unresolved_sources_error(self, make_run, factpack) -> None:
        draft = {"sources_used": ["npc.valen#c1", "npc.ghost#c9"]}

        result = CanonGuard().check(draft, {"retriever": factpack}, make_run())

        assert result.errors == ["Sources not found in fact pack: npc.ghost#c9"]

    def test_no_sources_warns(self, make_run, factpack) -> None:
        report = CanonGuard().report({"sources_used": []}, {"retriever": factpack}, make_run())

        assert report.ok
        assert report.warnings == ["No sources cited; content may be invented"]

    def test_forbidden_invention_category(self, make_run, factpack) -> None:
        run = make_run(params={"forbidden_inventions": ["deity"]})
        draft = {
            "sources_used": ["npc.valen#c1"],
            "proposals": [{"question": "Does Valen worship a new Deity of storms?"}],
        }

        report = CanonGuard().report(draft, {"retriever": factpack}, run)

        assert not report.ok
        assert "touches forbidden category 'deity'" in report.errors[0]

    def test_no_invention_policy_warns_on_proposals(self, make_run, factpack) -> None:
        run = make_run(allow_invention="none")
        draft = {"sources_used": ["npc.valen#c1"], "proposals": [{"question": "Who pays Valen?"}]}

        report = CanonGuard().report(draft, {"retriever": factpack}, run)

        assert report.ok
        assert report.warnings == [
            "Invention policy 'none': proposal 'Who pays Valen?' would introduce new canon"
        ]

    def test_missing_fact_pack(self, make_run) -> None:
        report = CanonGuard().report({}, {}, make_run())

        assert not report.ok
