"""Stage payloads and persisted artifacts.

Every stage output is one variant of the closed ``StagePayload`` union,
discriminated by ``kind``. The orchestrator validates a stage's output against
its declared variant before anything is persisted.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, TypeAdapter

from loreforge.models.run import RunFlags, RunKind, utc_now

NonEmptyStr = Annotated[str, StringConstraints(min_length=1)]
PayloadKind = Literal["brief", "factpack", "draft", "guard", "fact_check", "final"]

_WHITESPACE = re.compile(r"\s+")


def normalize_question(question: str) -> str:
    """Identity key of a proposal: case-folded, whitespace-collapsed."""
    return _WHITESPACE.sub(" ", question).strip().casefold()


class RetrievalHints(BaseModel):
    """What the retriever should look for."""

    entities: list[str] = Field(default_factory=list)
    regions: list[str] = Field(default_factory=list)
    eras: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.entities or self.regions or self.eras or self.keywords)


class Fact(BaseModel):
    """One grounding fact.

    ``rank`` orders facts for budgeting: lower ranks are placed first and ties
    keep retrieval order.
    """

    model_config = ConfigDict(frozen=True)

    id: NonEmptyStr
    text: NonEmptyStr
    source_entity: str | None = None
    rank: int = 0


class Proposal(BaseModel):
    """An open question the generation process could not resolve."""

    question: NonEmptyStr
    options: list[str] = Field(default_factory=list, max_length=6)
    rule_impact: str | None = None
    recommendation: str | None = None

    @property
    def key(self) -> str:
        return normalize_question(self.question)


class Draft(BaseModel):
    """Content draft. Kind-specific fields ride along as extras."""

    model_config = ConfigDict(extra="allow")

    rule_base: str | None = None
    sources_used: list[str]
    assumptions: list[str]
    proposals: list[Proposal]
    canon_update: NonEmptyStr


class BriefPayload(BaseModel):
    """Planner output: what to build and what to retrieve."""

    kind: Literal["brief"] = "brief"
    run_kind: RunKind
    deliverable: NonEmptyStr
    summary: NonEmptyStr
    flags: RunFlags = Field(default_factory=RunFlags)
    retrieval_hints: RetrievalHints = Field(default_factory=RetrievalHints)
    constraints: list[str] = Field(default_factory=list)


class FactPackPayload(BaseModel):
    """Retriever output: ranked facts, entities found, and known gaps."""

    kind: Literal["factpack"] = "factpack"
    facts: list[Fact] = Field(default_factory=list)
    entities: list[str] = Field(default_factory=list)
    gaps: list[str] = Field(default_factory=list)

    def fact_ids(self) -> set[str]:
        return {fact.id for fact in self.facts}


class DraftPayload(BaseModel):
    """Creator or stylist output: the merged draft plus its merge audit."""

    kind: Literal["draft"] = "draft"
    draft: Draft
    conflicts: list[dict[str, Any]] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    contributors: list[str] = Field(default_factory=list)
    chunks: int = Field(default=1, ge=0)


class GuardPayload(BaseModel):
    """Outcome of one guard stage."""

    kind: Literal["guard"] = "guard"
    guard: NonEmptyStr
    ok: bool
    skipped: bool = False
    reason: str | None = None
    errors: list[str] = Field(default_factory=list)
    flags: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


class FactCheckPayload(BaseModel):
    """Canon grounding report for a draft."""

    kind: Literal["fact_check"] = "fact_check"
    ok: bool
    available_facts: int = Field(default=0, ge=0)
    resolved_sources: list[str] = Field(default_factory=list)
    unresolved_sources: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class ContinuityLedger(BaseModel):
    facts_relied_on: list[str] = Field(default_factory=list)
    assumptions: list[str] = Field(default_factory=list)
    proposals: list[Proposal] = Field(default_factory=list)


class CanonDelta(BaseModel):
    summary: str
    new_entities: list[str] = Field(default_factory=list)
    updated_entities: list[str] = Field(default_factory=list)
    new_chunks: int = Field(default=0, ge=0)


class FinalPayload(BaseModel):
    """Finalizer output: styled draft, continuity ledger and canon delta."""

    kind: Literal["final"] = "final"
    draft: Draft
    ledger: ContinuityLedger
    canon_delta: CanonDelta
    advisories: list[str] = Field(default_factory=list)


StagePayload = Annotated[
    BriefPayload
    | FactPackPayload
    | DraftPayload
    | GuardPayload
    | FactCheckPayload
    | FinalPayload,
    Field(discriminator="kind"),
]

_PAYLOAD_ADAPTER: TypeAdapter[StagePayload] = TypeAdapter(StagePayload)


class PayloadKindMismatchError(ValueError):
    """Raised when a stage returns a payload variant it did not declare."""

    def __init__(self, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(f"Expected a '{expected}' payload, got '{actual}'")


def validate_payload(data: Any, expected_kind: PayloadKind | None = None) -> StagePayload:
    """Validate raw or model data as a stage payload.

    Args:
        data: A payload model or a plain mapping with a ``kind`` key.
        expected_kind: Variant the producing stage declared, if any.

    Returns:
        The validated payload variant.

    Raises:
        pydantic.ValidationError: If the data does not fit any variant.
        PayloadKindMismatchError: If the variant differs from ``expected_kind``.
    """
    raw = data.model_dump(mode="json") if isinstance(data, BaseModel) else data
    payload = _PAYLOAD_ADAPTER.validate_python(raw)
    if expected_kind is not None and payload.kind != expected_kind:
        raise PayloadKindMismatchError(expected_kind, payload.kind)
    return payload


class Artifact(BaseModel):
    """Persisted output of one stage for one run."""

    id: NonEmptyStr
    run_id: NonEmptyStr
    stage: NonEmptyStr
    data: StagePayload
    created_at: datetime = Field(default_factory=utc_now)
