"""Guard stages: run one registered guard over the creator draft."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from loreforge.guards.base import run_guard
from loreforge.guards.canon import CanonGuard
from loreforge.models.artifacts import DraftPayload
from loreforge.pipeline.stages.base import StageOutput

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from loreforge.models.artifacts import Artifact
    from loreforge.pipeline.stages.base import StageContext

    StageFn = Callable[[StageContext, dict[str, Artifact]], Awaitable[StageOutput]]

DRAFT_STAGE = "creator"


def _draft_of(inputs: dict[str, Artifact]) -> dict[str, Any] | None:
    artifact = inputs.get(DRAFT_STAGE)
    if artifact is None or not isinstance(artifact.data, DraftPayload):
        return None
    return artifact.data.draft.model_dump()


def guard_stage(guard_name: str) -> StageFn:
    """Stage function running the guard registered as ``guard_name``.

    The guard's findings become a ``guard`` payload. Errors halt the run with
    every error listed; flags and suggestions are kept as notes.
    """

    async def run_guard_stage(ctx: StageContext, inputs: dict[str, Artifact]) -> StageOutput:
        guard = ctx.runtime.guards.get(guard_name)
        supporting = {name: artifact.data for name, artifact in inputs.items()}
        result = run_guard(guard, _draft_of(inputs), supporting, ctx.run)

        notes = [*result.flags, *result.suggestions]
        if result.skipped and result.reason:
            notes.append(f"Skipped: {result.reason}")
        if not result.ok:
            return StageOutput.fail("; ".join(result.errors), notes)
        return StageOutput.ok(result.to_payload(), notes)

    run_guard_stage.__qualname__ = f"guard_stage.<{guard_name}>"
    return run_guard_stage


async def run_fact_check(ctx: StageContext, inputs: dict[str, Artifact]) -> StageOutput:
    """Fact check produces a full report rather than a plain guard payload."""
    guard = ctx.runtime.guards.get("fact_check")
    if not isinstance(guard, CanonGuard):
        raise TypeError(f"Guard 'fact_check' must be a CanonGuard, got {type(guard).__name__}")
    supporting = {name: artifact.data for name, artifact in inputs.items()}
    report = guard.report(_draft_of(inputs), supporting, ctx.run)

    notes = list(report.warnings)
    notes.append(
        f"{len(report.resolved_sources)} of "
        f"{len(report.resolved_sources) + len(report.unresolved_sources)} cited source(s) resolved"
    )
    if not report.ok:
        return StageOutput.fail("; ".join(report.errors), notes)
    return StageOutput.ok(report, notes)
