"""Rule tables consulted by the validation guards.

Tables are plain frozen values carried on the ``Runtime``; guards never read
module-level state. ``default_rule_tables()`` builds the 5e-flavoured defaults.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ForbiddenCombination:
    """A pairing of a named thing and a property that must never co-occur."""

    subject: str
    property_keyword: str
    message: str


@dataclass(frozen=True)
class RuleTables:
    """Numeric envelopes and keyword vocabularies for plausibility checks.

    Attributes:
        proficiency_by_level: Expected proficiency bonus for levels 1-20.
        npc_ac_range: Inclusive armor class bounds for NPCs.
        npc_hp_range: Inclusive hit point bounds for NPCs.
        scene_dc_range: Inclusive DC bounds for scene skill challenges.
        max_save_dc: Save DCs above this are flagged.
        high_rarities: Rarity labels treated as high rarity.
        max_high_rarity_rewards: More high-rarity rewards than this are flagged.
        max_travel_mph: Non-magical overland speed ceiling.
        default_speed_ft: Assumed movement per round when none is declared.
        fall_damage_threshold_ft: Falls above this height must list damage.
        max_projectile_range_ft: Ranged attacks beyond this are flagged.
        always_active_markers: Activation words meaning "always on".
        limiter_fields: Keys whose presence gates an ability.
        unlimited_markers: Usage words meaning "no limit".
        high_impact_keywords: Effects considered high impact.
        forbidden_combinations: Cross-pillar pairings rejected outright.
        id_pattern: Regex a grounding fact id must match.
    """

    proficiency_by_level: tuple[int, ...] = (
        2, 2, 2, 2, 3, 3, 3, 3, 4, 4, 4, 4, 5, 5, 5, 5, 6, 6, 6, 6,
    )  # fmt: skip
    npc_ac_range: tuple[int, int] = (10, 22)
    npc_hp_range: tuple[int, int] = (8, 350)
    scene_dc_range: tuple[int, int] = (10, 25)
    max_save_dc: int = 20
    high_rarities: frozenset[str] = frozenset({"very rare", "very-rare", "legendary", "artifact"})
    max_high_rarity_rewards: int = 2
    max_travel_mph: float = 5.0
    default_speed_ft: int = 30
    fall_damage_threshold_ft: int = 10
    max_projectile_range_ft: int = 600
    always_active_markers: frozenset[str] = frozenset(
        {"passive", "always", "always-on", "always_active", "constant", "permanent", "continuous"}
    )
    limiter_fields: tuple[str, ...] = (
        "charges",
        "uses",
        "uses_per_day",
        "per_day",
        "recharge",
        "cooldown",
        "limit",
    )
    unlimited_markers: frozenset[str] = frozenset(
        {"at will", "at-will", "unlimited", "infinite", "no limit"}
    )
    high_impact_keywords: tuple[str, ...] = (
        "damage",
        "detect thoughts",
        "dominate",
        "charm",
        "stun",
        "paralyz",
        "petrif",
        "banish",
        "teleport",
        "invisib",
        "resurrect",
        "instant death",
        "immunity",
        "regenerat",
        "heal",
        "truesight",
        "disintegrat",
    )
    forbidden_combinations: tuple[ForbiddenCombination, ...] = field(
        default_factory=lambda: (
            ForbiddenCombination(
                subject="ring of spell storing",
                property_keyword="necrotic",
                message=(
                    "rules: ring of spell storing cannot add damage riders to "
                    "natural attacks (cross-pillar stacking)"
                ),
            ),
        )
    )
    id_pattern: str = r"^[\w.\-]+#c\d+"

    def expected_proficiency(self, level: int) -> int | None:
        """Proficiency bonus for ``level``, None outside the table."""
        if 1 <= level <= len(self.proficiency_by_level):
            return self.proficiency_by_level[level - 1]
        return None


def default_rule_tables() -> RuleTables:
    return RuleTables()
