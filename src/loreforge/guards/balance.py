"""Balance guard: rewards and capabilities must be gated."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from loreforge.guards.base import GuardResult, NumericDomainMixin
from loreforge.guards.records import ability_records, number, record_name, record_text

if TYPE_CHECKING:
    from loreforge.models.artifacts import StagePayload
    from loreforge.models.run import Run
    from loreforge.tables import RuleTables

_ACTIVATION_FIELDS = ("activation", "action_type", "activation_type", "frequency", "usage")


class BalanceGuard(NumericDomainMixin):
    """Flags ungated power.

    An ability that is always active, has no usage limiter, and has a
    high-impact effect is an error. Ungated damage riders, very high save DCs
    and stacked high-rarity rewards are advisory flags.
    """

    name = "balance"

    def __init__(self, tables: RuleTables) -> None:
        self.tables = tables

    def check(
        self,
        draft: Mapping[str, Any] | None,
        supporting: Mapping[str, StagePayload],
        run: Run,
    ) -> GuardResult:
        draft = draft or {}
        errors: list[str] = []
        flags: list[str] = []

        for ability in ability_records(draft):
            ability_name = record_name(ability)
            text = record_text(ability)
            gated = self.is_gated(ability)
            if self.is_always_active(ability) and not gated and self.is_high_impact(text):
                errors.append(
                    f"balance: '{ability_name}' is an always-active, unlimited-use "
                    "high-impact ability; gate it behind charges, uses or a recharge"
                )
            elif "add" in text and "damage" in text and not gated:
                flags.append(
                    f"balance: free damage rider on '{ability_name}'; gate it behind "
                    "charges, attunement or a situational trigger"
                )

            save_dc = number(ability.get("save_dc"))
            if save_dc is not None and save_dc > self.tables.max_save_dc:
                flags.append(
                    f"balance: save DC {int(save_dc)} on '{ability_name}' is very high; "
                    "review for party level"
                )

        high_rarity = self._high_rarity_rewards(draft)
        if high_rarity > self.tables.max_high_rarity_rewards:
            flags.append(
                f"balance: {high_rarity} high-rarity rewards; ensure they suit the party tier"
            )

        return GuardResult.from_findings(self.name, errors, flags)

    def is_always_active(self, ability: Mapping[str, Any]) -> bool:
        if ability.get("always_active") is True:
            return True
        markers = self.tables.always_active_markers
        return any(
            isinstance(ability.get(key), str) and ability[key].strip().lower() in markers
            for key in _ACTIVATION_FIELDS
        )

    def is_gated(self, ability: Mapping[str, Any]) -> bool:
        """True when a usage limiter is present and not declared unlimited."""
        for key in (*_ACTIVATION_FIELDS, *self.tables.limiter_fields):
            value = ability.get(key)
            if isinstance(value, str) and value.strip().lower() in self.tables.unlimited_markers:
                return False
        return any(ability.get(key) not in (None, "", 0, False) for key in self.tables.limiter_fields)

    def is_high_impact(self, text: str) -> bool:
        return any(keyword in text for keyword in self.tables.high_impact_keywords)

    def _high_rarity_rewards(self, draft: Mapping[str, Any]) -> int:
        treasure = draft.get("treasure")
        items: list[Any] = []
        if isinstance(treasure, Mapping) and isinstance(treasure.get("items"), list):
            items = treasure["items"]
        elif isinstance(treasure, list):
            items = treasure

        count = 0
        for item in items:
            if isinstance(item, str):
                label = item.lower()
            elif isinstance(item, Mapping):
                label = str(item.get("rarity", "")).lower()
            else:
                continue
            if any(rarity in label for rarity in self.tables.high_rarities):
                count += 1
        return count
