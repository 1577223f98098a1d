"""Planner stage: turns the run request into a brief.

Deterministic. Retrieval hints come from ``params["retrieval_hints"]`` when
given; otherwise entities, regions and eras come from the matching params and
keywords are taken from the prompt.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

from loreforge.models.artifacts import BriefPayload, RetrievalHints
from loreforge.pipeline.stages.base import StageOutput

if TYPE_CHECKING:
    from loreforge.models.artifacts import Artifact
    from loreforge.models.run import Run
    from loreforge.pipeline.stages.base import StageContext

MAX_KEYWORDS = 12
SUMMARY_CHARS = 280

_WORD = re.compile(r"[a-z][a-z0-9'-]{3,}")
_STOPWORDS = frozenset(
    {
        "about", "after", "also", "been", "before", "from", "have", "into", "like",
        "make", "more", "must", "need", "over", "should", "some", "that", "their",
        "them", "then", "there", "these", "they", "this", "very", "what", "when",
        "where", "which", "while", "with", "would", "your",
    }
)

DELIVERABLES = {
    "npc": "NPC stat block with personality, abilities and hooks",
    "item": "magic item with rarity, attunement and properties",
    "encounter": "encounter with combatants, terrain and tactics",
    "scene": "scene with location, participants and checks",
    "adventure": "adventure outline with key NPCs, locations and acts",
}


def prompt_keywords(prompt: str, limit: int = MAX_KEYWORDS) -> list[str]:
    """Distinct content words of ``prompt`` in order of appearance."""
    words = (w.strip("'-") for w in _WORD.findall(prompt.lower()))
    unique = dict.fromkeys(w for w in words if len(w) >= 4 and w not in _STOPWORDS)
    return list(unique)[:limit]


def _str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    return [str(v) for v in value if str(v).strip()]


def build_hints(run: Run) -> RetrievalHints:
    explicit = run.params.get("retrieval_hints")
    if isinstance(explicit, dict):
        return RetrievalHints.model_validate(explicit)
    return RetrievalHints(
        entities=_str_list(run.params.get("entities")),
        regions=_str_list(run.params.get("region")),
        eras=_str_list(run.params.get("era")),
        keywords=prompt_keywords(run.prompt),
    )


def build_constraints(run: Run) -> list[str]:
    constraints = _str_list(run.params.get("constraints"))
    policy = run.flags.allow_invention
    if policy == "none":
        constraints.append("Do not invent canon; raise a proposal for anything the facts omit.")
    elif policy == "limited":
        constraints.append("Invent only minor details; raise a proposal for major new canon.")
    if run.flags.domain == "rpg":
        constraints.append(f"Use {run.flags.rule_base} rules for all mechanics.")
    return constraints


async def run_planner(ctx: StageContext, inputs: dict[str, Artifact]) -> StageOutput:
    run = ctx.run
    prompt = run.prompt.strip()
    if not prompt:
        return StageOutput.fail("Prompt is empty; nothing to plan")

    hints = build_hints(run)
    summary = prompt if len(prompt) <= SUMMARY_CHARS else prompt[: SUMMARY_CHARS - 3] + "..."
    brief = BriefPayload(
        run_kind=run.kind,
        deliverable=DELIVERABLES[run.kind],
        summary=summary,
        flags=run.flags,
        retrieval_hints=hints,
        constraints=build_constraints(run),
    )
    notes = []
    if hints.is_empty():
        notes.append("No retrieval hints derived; retrieval will return nothing")
    return StageOutput.ok(brief, notes)
