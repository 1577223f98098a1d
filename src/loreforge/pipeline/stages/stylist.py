"""Stylist stage: polishes the prose fields of the validated draft.

Each non-empty top-level text field of the creator draft is offered to the
generation process as one line of grounding material, so long drafts are
split across chunks by the planner like any fact pack. Rewrites are merged
over the creator draft; structural and mechanical fields are never touched.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from loreforge.chunking.session import ChunkSession
from loreforge.guards.schema import DraftValidationError, validate_draft
from loreforge.models.artifacts import DraftPayload, Fact, FactCheckPayload
from loreforge.pipeline.stages.base import StageOutput, require_payload
from loreforge.pipeline.stages.chunked import ExchangeRetriesExhausted, drive_session

if TYPE_CHECKING:
    from loreforge.models.artifacts import Artifact
    from loreforge.pipeline.stages.base import StageContext

TEMPLATE_NAME = "stylist"

PROTECTED_FIELDS = frozenset(
    {
        "name",
        "title",
        "rule_base",
        "schema_version",
        "canon_update",
        "sources_used",
        "assumptions",
        "proposals",
        "rarity",
    }
)


def stylable_fields(draft: dict[str, Any]) -> dict[str, str]:
    return {
        key: value.strip()
        for key, value in draft.items()
        if key not in PROTECTED_FIELDS and isinstance(value, str) and value.strip()
    }


def _restricted(data: dict[str, Any], allowed: set[str]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if key in allowed and isinstance(value, str)}


async def run_stylist(ctx: StageContext, inputs: dict[str, Artifact]) -> StageOutput:
    creator = require_payload(ctx, inputs, "creator", DraftPayload)
    require_payload(ctx, inputs, "fact_check", FactCheckPayload)

    draft = creator.draft.model_dump()
    fields = stylable_fields(draft)
    if ctx.exchange is None or not fields:
        reason = "no generation exchange configured" if ctx.exchange is None else "no prose fields"
        passthrough = creator.model_copy(update={"contributors": ["creator"], "conflicts": []})
        return StageOutput.ok(passthrough, [f"Draft passed through unstyled: {reason}"])

    runtime = ctx.runtime
    template = runtime.prompts.load(TEMPLATE_NAME)
    flags = ctx.run.flags
    base = template.render(kind=ctx.run.kind, tone=flags.tone, mode=flags.mode, realism=flags.realism)
    session = ChunkSession(
        ctx.stage,
        template.system,
        base,
        [Fact(id=key, text=text) for key, text in fields.items()],
        runtime.limits,
        run_id=ctx.run.id,
    )

    try:
        await drive_session(ctx, session, ctx.exchange, runtime.max_parse_retries)
    except ExchangeRetriesExhausted as e:
        return StageOutput.fail(str(e), [e.failure.hint])

    allowed = set(fields)
    contributions = [("creator", draft)]
    contributions.extend(
        (c.contributor, _restricted(c.data, allowed)) for c in session.state.contributions
    )
    result = runtime.merge_engine().merge(contributions)

    rewritten = sorted({c.field for c in result.conflicts})
    notes = [f"Rewrote {len(rewritten)} field(s): {', '.join(rewritten) or 'none'}"]
    try:
        styled = validate_draft(ctx.run.kind, result.merged)
    except DraftValidationError as e:
        return StageOutput.fail(str(e), notes)

    payload = DraftPayload(
        draft=styled,
        conflicts=result.conflicts_as_dicts(),
        warnings=[*creator.warnings, *result.warnings],
        contributors=result.contributors,
        chunks=session.state.chunk_index,
    )
    return StageOutput.ok(payload, notes)
