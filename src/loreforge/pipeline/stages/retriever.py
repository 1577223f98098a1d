"""Retriever stage: fetch grounding facts for the brief's hints."""

from __future__ import annotations

from typing import TYPE_CHECKING

from loreforge.models.artifacts import BriefPayload, FactPackPayload
from loreforge.pipeline.stages.base import StageOutput, require_payload

if TYPE_CHECKING:
    from loreforge.models.artifacts import Artifact
    from loreforge.pipeline.stages.base import StageContext

NO_RETRIEVER_GAP = "No fact retriever configured; drafting without canon grounding"


async def run_retriever(ctx: StageContext, inputs: dict[str, Artifact]) -> StageOutput:
    brief = require_payload(ctx, inputs, "planner", BriefPayload)
    if ctx.retriever is None:
        return StageOutput.ok(FactPackPayload(gaps=[NO_RETRIEVER_GAP]), [NO_RETRIEVER_GAP])

    result = ctx.retriever.retrieve(brief.retrieval_hints)
    factpack = FactPackPayload(
        facts=list(result.facts),
        entities=list(result.entities),
        gaps=list(result.gaps),
    )
    notes = [f"Retrieved {len(factpack.facts)} fact(s) for {len(factpack.entities)} entities"]
    return StageOutput.ok(factpack, notes)
