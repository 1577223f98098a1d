"""Creator stage: chunked drafting grounded in the fact pack."""

from __future__ import annotations

from typing import TYPE_CHECKING

from loreforge.chunking.session import ChunkSession
from loreforge.guards.schema import DraftValidationError, validate_draft
from loreforge.models.artifacts import BriefPayload, DraftPayload, FactPackPayload
from loreforge.observability.logging import get_logger
from loreforge.pipeline.stages.base import StageOutput, require_payload
from loreforge.pipeline.stages.chunked import ExchangeRetriesExhausted, drive_session

if TYPE_CHECKING:
    from loreforge.merge.engine import MergeResult
    from loreforge.models.artifacts import Artifact
    from loreforge.pipeline.stages.base import StageContext

log = get_logger(__name__)

TEMPLATE_NAME = "creator"


def render_base(ctx: StageContext, brief: BriefPayload) -> str:
    """Base request payload for the creator exchanges."""
    template = ctx.runtime.prompts.load(TEMPLATE_NAME)
    flags = brief.flags
    constraints = "\n".join(f"- {c}" for c in brief.constraints) or "- none"
    return template.render(
        deliverable=brief.deliverable,
        summary=brief.summary,
        rule_base=flags.rule_base,
        mode=flags.mode,
        tone=flags.tone,
        difficulty=flags.difficulty,
        realism=flags.realism,
        allow_invention=flags.allow_invention,
        constraints=constraints,
    )


def merge_notes(result: MergeResult, session: ChunkSession) -> list[str]:
    notes = [f"Merged {len(result.contributors)} chunk(s)"]
    notes.extend(
        f"Conflict on '{c.field}' resolved by {c.strategy} between {', '.join(c.contributor_ids)}"
        for c in result.conflicts
    )
    notes.extend(result.warnings)
    if session.state.dropped_decisions:
        notes.append(
            f"{session.state.dropped_decisions} older decision(s) did not fit the carried budget"
        )
    return notes


async def run_creator(ctx: StageContext, inputs: dict[str, Artifact]) -> StageOutput:
    brief = require_payload(ctx, inputs, "planner", BriefPayload)
    factpack = require_payload(ctx, inputs, "retriever", FactPackPayload)
    if ctx.exchange is None:
        return StageOutput.fail("No generation exchange configured for the creator stage")

    runtime = ctx.runtime
    session = ChunkSession(
        ctx.stage,
        runtime.prompts.load(TEMPLATE_NAME).system,
        render_base(ctx, brief),
        factpack.facts,
        runtime.limits,
        run_id=ctx.run.id,
    )
    log.info(
        "creator_chunking",
        facts=len(factpack.facts),
        estimated_chunks=session.state.total_chunks,
    )

    try:
        await drive_session(ctx, session, ctx.exchange, runtime.max_parse_retries)
    except ExchangeRetriesExhausted as e:
        return StageOutput.fail(str(e), [e.failure.hint])

    expected = [session.contributor_id(i) for i in range(session.state.chunk_index)]
    result = session.finish(runtime.merge_engine(), expected=expected)
    merged = dict(result.merged)
    if not merged.get("rule_base") and brief.flags.domain == "rpg":
        merged["rule_base"] = brief.flags.rule_base

    notes = merge_notes(result, session)
    try:
        draft = validate_draft(ctx.run.kind, merged)
    except DraftValidationError as e:
        return StageOutput.fail(str(e), notes)

    payload = DraftPayload(
        draft=draft,
        conflicts=result.conflicts_as_dicts(),
        warnings=result.warnings,
        contributors=result.contributors,
        chunks=session.state.chunk_index,
    )
    if session.state.outstanding:
        notes.append(f"{len(session.state.outstanding)} proposal(s) await an answer")
    return StageOutput.ok(payload, notes)
