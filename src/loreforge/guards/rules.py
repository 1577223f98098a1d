"""Rules guard: numeric envelopes per content kind.

Depends on the fact-check findings: it refuses to run without them and
carries their warnings forward as advisory flags.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from loreforge.guards.base import GuardResult, NumericDomainMixin
from loreforge.guards.records import as_records, number
from loreforge.models.artifacts import FactCheckPayload

if TYPE_CHECKING:
    from loreforge.models.artifacts import StagePayload
    from loreforge.models.run import Run
    from loreforge.tables import RuleTables


class RulesGuard(NumericDomainMixin):
    name = "rules"

    def __init__(self, tables: RuleTables, fact_check_stage: str = "fact_check") -> None:
        self.tables = tables
        self.fact_check_stage = fact_check_stage

    def check(
        self,
        draft: Mapping[str, Any] | None,
        supporting: Mapping[str, StagePayload],
        run: Run,
    ) -> GuardResult:
        draft = draft or {}
        errors: list[str] = []
        flags: list[str] = []

        fact_check = supporting.get(self.fact_check_stage)
        if not isinstance(fact_check, FactCheckPayload):
            return GuardResult.from_findings(
                self.name, ["rules: fact-check findings are required before rules checks"]
            )
        flags.extend(f"rules: fact check: {warning}" for warning in fact_check.warnings)

        sources = draft.get("sources_used")
        if fact_check.available_facts and not (isinstance(sources, list) and sources):
            errors.append("rules: sources_used must cite at least one fact")
        if not draft.get("rule_base"):
            errors.append("rules: rule_base missing")

        checks = {
            "npc": self._check_npc,
            "item": self._check_item,
            "encounter": self._check_encounter,
            "scene": self._check_scene,
        }
        if run.kind in checks:
            kind_errors, kind_flags = checks[run.kind](draft)
            errors.extend(kind_errors)
            flags.extend(kind_flags)

        errors.extend(self._forbidden_combinations(draft))
        return GuardResult.from_findings(self.name, errors, flags)

    def _check_npc(self, draft: Mapping[str, Any]) -> tuple[list[str], list[str]]:
        errors: list[str] = []
        level = sum(
            int(number(entry.get("level")) or 0) for entry in as_records(draft.get("class_levels"))
        ) or int(number(draft.get("level")) or 0)
        expected = self.tables.expected_proficiency(level)
        if expected is not None and "proficiency_bonus" in draft:
            bonus = draft.get("proficiency_bonus")
            if bonus != expected:
                errors.append(
                    f"rules: proficiency_bonus {bonus} does not match level {level} "
                    f"(expected {expected})"
                )

        for field_name, label, (low, high) in (
            ("ac", "AC", self.tables.npc_ac_range),
            ("hp", "HP", self.tables.npc_hp_range),
        ):
            value = number(draft.get(field_name))
            if value is not None and not low <= value <= high:
                errors.append(
                    f"rules: {label} {int(value)} outside expected NPC bounds ({low}-{high})"
                )
        return errors, []

    def _check_item(self, draft: Mapping[str, Any]) -> tuple[list[str], list[str]]:
        rarity = str(draft.get("rarity", "")).strip().lower()
        if rarity in self.tables.high_rarities and draft.get("requires_attunement") is False:
            return [], ["rules: high-rarity item without attunement; review"]
        return [], []

    def _check_encounter(self, draft: Mapping[str, Any]) -> tuple[list[str], list[str]]:
        if not as_records(draft.get("combatants")):
            return ["rules: encounter has no combatants"], []
        return [], []

    def _check_scene(self, draft: Mapping[str, Any]) -> tuple[list[str], list[str]]:
        low, high = self.tables.scene_dc_range
        errors = []
        for challenge in as_records(draft.get("skill_challenges")):
            dc = number(challenge.get("dc"))
            if dc is not None and not low <= dc <= high:
                errors.append(f"rules: DC {int(dc)} outside {low}-{high} envelope")
        return errors, []

    def _forbidden_combinations(self, draft: Mapping[str, Any]) -> list[str]:
        name = str(draft.get("name", "")).lower()
        property_names = [
            str(prop.get("name", "")).lower() for prop in as_records(draft.get("properties"))
        ]
        return [
            combo.message
            for combo in self.tables.forbidden_combinations
            if combo.subject in name
            and any(combo.property_keyword in prop for prop in property_names)
        ]
