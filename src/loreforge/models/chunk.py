"""Bookkeeping for one stage's multi-exchange execution."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from loreforge.models.artifacts import NonEmptyStr, Proposal, normalize_question


class Decision(BaseModel):
    """A resolved proposal carried forward to later chunks."""

    question: NonEmptyStr
    answer: str

    @property
    def key(self) -> str:
        return normalize_question(self.question)


class Contribution(BaseModel):
    """Partial output received from one chunk."""

    contributor: NonEmptyStr
    data: dict[str, Any]


class ChunkState(BaseModel):
    """Progress of a chunked stage.

    Serializable so a stalled stage can be resumed later without re-deriving
    decisions. ``decisions`` is ordered oldest first.
    """

    stage: NonEmptyStr
    run_id: str | None = None
    chunk_index: int = Field(default=0, ge=0)
    total_chunks: int = Field(default=0, ge=0)
    decisions: list[Decision] = Field(default_factory=list)
    outstanding: list[Proposal] = Field(default_factory=list)
    pending_fact_ids: list[str] = Field(default_factory=list)
    contributions: list[Contribution] = Field(default_factory=list)
    awaiting_result: bool = False
    dropped_decisions: int = Field(default=0, ge=0)

    def decided_keys(self) -> set[str]:
        return {decision.key for decision in self.decisions}

    def outstanding_keys(self) -> set[str]:
        return {proposal.key for proposal in self.outstanding}

    def record_decision(self, question: str, answer: str) -> None:
        """Record (or refresh) a decision and clear the matching proposal.

        A re-answered question moves to the most-recent end.
        """
        key = normalize_question(question)
        self.decisions = [d for d in self.decisions if d.key != key]
        self.decisions.append(Decision(question=question, answer=answer))
        self.outstanding = [p for p in self.outstanding if p.key != key]
