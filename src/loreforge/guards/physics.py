"""Physics guard: movement and travel must stay within declared capability."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from loreforge.guards.base import GuardResult, NumericDomainMixin
from loreforge.guards.records import ability_records, as_records, number, record_name

if TYPE_CHECKING:
    from loreforge.models.artifacts import StagePayload
    from loreforge.models.run import Run
    from loreforge.tables import RuleTables


def _overridden(record: Mapping[str, Any], *keys: str) -> bool:
    return any(bool(record.get(key)) for key in keys)


class PhysicsGuard(NumericDomainMixin):
    """Checks travel speed, per-round movement, falls and projectile ranges.

    ``magic`` (and ``dash`` for movement) are explicit overrides that lift the
    bounds for a single record.
    """

    name = "physics"

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
        environment = draft.get("environment")
        environment = environment if isinstance(environment, Mapping) else {}

        travel = draft.get("travel") or environment.get("travel")
        if isinstance(travel, Mapping):
            errors.extend(self._check_travel(travel))

        for index, round_ in enumerate(as_records(draft.get("tactics_rounds")), start=1):
            errors.extend(self._check_round(index, round_))

        for hazard in as_records(environment.get("hazards")):
            height = number(hazard.get("height_ft"))
            if (
                hazard.get("type") == "fall"
                and height is not None
                and height > self.tables.fall_damage_threshold_ft
                and hazard.get("damage_dice") is None
                and not _overridden(hazard, "magic")
            ):
                flags.append(
                    f"physics: {int(height)}ft fall listed without damage; add damage "
                    "or a slow-fall effect"
                )

        attacks = as_records(draft.get("attacks")) + ability_records(draft)
        for attack in attacks:
            range_ft = number(attack.get("range_ft"))
            trait = str(attack.get("trait", "")).lower()
            if (
                range_ft is not None
                and range_ft > self.tables.max_projectile_range_ft
                and "artillery" not in trait
                and not _overridden(attack, "magic")
            ):
                flags.append(
                    f"physics: '{record_name(attack, 'attack')}' range {int(range_ft)}ft "
                    "seems high; verify magic or siege use"
                )

        return GuardResult.from_findings(self.name, errors, flags)

    def _check_travel(self, travel: Mapping[str, Any]) -> list[str]:
        distance = number(travel.get("distance_miles"))
        minutes = number(travel.get("time_minutes"))
        if distance is None or minutes is None or minutes <= 0 or _overridden(travel, "magic"):
            return []
        mph = distance / (minutes / 60)
        if mph > self.tables.max_travel_mph:
            return [f"physics: implied speed {mph:.1f} mph exceeds plausible non-magical travel"]
        return []

    def _check_round(self, index: int, round_: Mapping[str, Any]) -> list[str]:
        errors: list[str] = []
        for move in as_records(round_.get("moves")):
            distance = number(move.get("distance_ft"))
            if distance is None:
                continue
            speed = number(move.get("speed_ft_per_round"))
            speed = speed if speed is not None else float(self.tables.default_speed_ft)
            if distance > speed and not _overridden(move, "dash", "magic"):
                who = record_name(move, "a creature")
                errors.append(
                    f"physics: round {index} movement of {who} ({int(distance)}ft) exceeds "
                    f"speed {int(speed)}ft without Dash or magic"
                )
        return errors
