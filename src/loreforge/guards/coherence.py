"""World coherence guard, run before and after drafting."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Literal

from loreforge.guards.base import GuardResult
from loreforge.models.artifacts import BriefPayload, FactPackPayload

if TYPE_CHECKING:
    from loreforge.models.artifacts import StagePayload
    from loreforge.models.run import Run
    from loreforge.tables import RuleTables

CoherencePhase = Literal["pre", "post"]


class CoherenceGuard:
    """Checks grounding before drafting and canon consistency after.

    ``pre`` inspects the fact pack: facts present, fact ids well formed, gaps
    surfaced. ``post`` inspects the draft: sources cited, the brief's region
    and era referenced, roster names matched against canon.

    Runs in every domain; prose needs coherent canon as much as mechanics.
    """

    def __init__(
        self,
        tables: RuleTables,
        phase: CoherencePhase,
        *,
        planner_stage: str = "planner",
        retriever_stage: str = "retriever",
    ) -> None:
        self.tables = tables
        self.phase = phase
        self.name = f"coherence_{phase}"
        self.planner_stage = planner_stage
        self.retriever_stage = retriever_stage
        self._id_pattern = re.compile(tables.id_pattern)

    def applies_to(self, run: Run) -> str | None:
        return None

    def check(
        self,
        draft: Mapping[str, Any] | None,
        supporting: Mapping[str, StagePayload],
        run: Run,
    ) -> GuardResult:
        factpack = supporting.get(self.retriever_stage)
        if not isinstance(factpack, FactPackPayload):
            return GuardResult.from_findings(
                self.name, [f"coherence({self.phase}): fact pack is required"]
            )
        brief = supporting.get(self.planner_stage)
        brief = brief if isinstance(brief, BriefPayload) else None

        if self.phase == "pre":
            return self._pre(factpack, run)
        return self._post(draft or {}, factpack, brief)

    def _pre(self, factpack: FactPackPayload, run: Run) -> GuardResult:
        errors: list[str] = []
        suggestions: list[str] = []

        if not factpack.facts:
            message = "coherence(pre): no facts retrieved; add canon entities or loosen the query"
            if run.flags.allow_invention == "none":
                errors.append(message)
            else:
                suggestions.append(message)

        for fact in factpack.facts:
            if not self._id_pattern.match(fact.id):
                errors.append(f"coherence(pre): malformed fact id '{fact.id}'")

        if factpack.gaps:
            suggestions.append(f"coherence(pre): gaps identified: {'; '.join(factpack.gaps)}")
        return GuardResult.from_findings(self.name, errors, suggestions=suggestions)

    def _post(
        self,
        draft: Mapping[str, Any],
        factpack: FactPackPayload,
        brief: BriefPayload | None,
    ) -> GuardResult:
        errors: list[str] = []
        suggestions: list[str] = []

        sources = draft.get("sources_used") or []
        if factpack.facts and not sources:
            errors.append("coherence(post): no sources_used cited")

        hints = brief.retrieval_hints if brief is not None else None
        if hints and hints.regions:
            region = hints.regions[0]
            location = draft.get("location") or draft.get("environment") or ""
            if region.lower() not in json.dumps(location, default=str).lower():
                suggestions.append(
                    f"coherence(post): expected region '{region}' not clearly referenced in location"
                )
        if hints and hints.eras:
            era = hints.eras[0]
            content = json.dumps(dict(draft), default=str).lower()
            if era.lower().replace("-", " ") not in content and era.lower() not in content:
                suggestions.append(
                    f"coherence(post): era '{era}' not explicitly referenced; consider adding "
                    "temporal context"
                )

        if any(draft.get(key) for key in ("participants", "combatants", "key_npcs")):
            suggestions.append(
                f"coherence(post): {len(factpack.entities)} canon entities referenced; verify "
                "names match their canonical form"
            )
        return GuardResult.from_findings(self.name, errors, suggestions=suggestions)
