"""Caller-driven execution of a chunked stage.

A ``ChunkSession`` never calls the generation process itself. The caller asks
for the next exchange, performs it, and hands the raw result back::

    session = ChunkSession("creator", system, base, facts, limits)
    while (plan := session.next_exchange()) is not None:
        text = await exchange.exchange(plan.payload)
        session.submit_result(text)      # ParseFailure -> retry same plan
    result = session.finish(engine)

All progress lives in ``session.state`` (a ``ChunkState``) which can be
persisted and handed to ``ChunkSession.resume`` later.

Only undelivered facts schedule exchanges. Decisions and outstanding proposals
that do not fit the carried sub-budget stay in state (dropped decisions are
counted in ``ExchangePlan.dropped_decisions``) but never cause an extra
exchange. Unanswered proposals reach the caller through the merged
``proposals`` field.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from loreforge.chunking.planner import (
    ExchangePlan,
    estimate_chunk_count,
    oversized_fact_error,
    plan_exchange,
    rank_facts,
)
from loreforge.exchange.parsing import parse_structured_output
from loreforge.models.artifacts import Proposal, normalize_question
from loreforge.models.chunk import ChunkState, Contribution
from loreforge.observability.logging import get_logger

if TYPE_CHECKING:
    from loreforge.chunking.limits import PromptLimits
    from loreforge.merge.engine import MergeEngine, MergeResult
    from loreforge.models.artifacts import Fact

log = get_logger(__name__)

PROPOSALS_FIELD = "proposals"
RESOLVED_FIELD = "resolved"


class ChunkSessionError(RuntimeError):
    """Raised when a session is driven out of order."""


class ChunkSession:
    """Drives one stage's exchanges through the chunk planner.

    Args:
        stage: Stage name, used in contributor ids (``creator:chunk_1``).
        system: Fixed system instructions.
        base: Base request payload.
        facts: Grounding facts for the stage.
        limits: Character budget for every exchange.
        run_id: Run the session belongs to.
        state: Existing state to continue from (see ``resume``).
    """

    def __init__(
        self,
        stage: str,
        system: str,
        base: str,
        facts: Sequence[Fact],
        limits: PromptLimits,
        *,
        run_id: str | None = None,
        state: ChunkState | None = None,
    ) -> None:
        self.system = system
        self.base = base
        self.limits = limits
        self._facts = {fact.id: fact for fact in facts}
        self._current: ExchangePlan | None = None

        if state is None:
            ordered = rank_facts(facts)
            state = ChunkState(
                stage=stage,
                run_id=run_id,
                pending_fact_ids=[fact.id for fact in ordered],
                total_chunks=estimate_chunk_count(system, base, ordered, limits),
            )
        else:
            missing = [fid for fid in state.pending_fact_ids if fid not in self._facts]
            if missing:
                raise ChunkSessionError(
                    f"Cannot resume '{state.stage}': unknown pending facts {', '.join(missing)}"
                )
        self.state = state

    @classmethod
    def resume(
        cls,
        state: ChunkState,
        system: str,
        base: str,
        facts: Sequence[Fact],
        limits: PromptLimits,
    ) -> ChunkSession:
        """Continue a persisted session without re-deriving its decisions."""
        return cls(state.stage, system, base, facts, limits, run_id=state.run_id, state=state)

    @property
    def is_complete(self) -> bool:
        """True once every fact was delivered and the last result accepted."""
        state = self.state
        return state.chunk_index > 0 and not state.awaiting_result and not state.pending_fact_ids

    @property
    def current_plan(self) -> ExchangePlan | None:
        return self._current

    def contributor_id(self, chunk_index: int) -> str:
        return f"{self.state.stage}:chunk_{chunk_index + 1}"

    def next_exchange(self) -> ExchangePlan | None:
        """Plan the next exchange, or return None once every fact is delivered.

        While a result is outstanding the same plan is returned again, so a
        failed exchange can be retried.

        Raises:
            BudgetExceeded: If overhead or a single pending fact cannot fit.
        """
        if self.state.awaiting_result:
            if self._current is None:
                self._current = self._plan()
            return self._current
        if self.is_complete:
            return None

        plan = self._plan()
        if plan.residual.facts and not plan.included_facts:
            raise oversized_fact_error(plan, plan.residual.facts[0], self.limits)

        self._current = plan
        self.state.awaiting_result = True
        log.debug(
            "chunk_planned",
            stage=self.state.stage,
            chunk=plan.chunk_index + 1,
            total_chunks=self.state.total_chunks,
            facts=len(plan.included_facts),
            deferred=len(plan.residual.facts),
            payload_chars=plan.size,
            dropped_decisions=plan.dropped_decisions,
        )
        return plan

    def submit_result(self, text: str) -> dict[str, Any]:
        """Accept the raw result of the current exchange.

        Raises:
            ParseFailure: If the text is not a JSON object. State is left
                untouched so the same exchange can be retried.
            ChunkSessionError: If no exchange is awaiting a result.
        """
        if not self.state.awaiting_result:
            raise ChunkSessionError("No exchange is awaiting a result")
        return self.accept(parse_structured_output(text))

    def accept(self, data: Mapping[str, Any]) -> dict[str, Any]:
        """Accept an already-decoded result of the current exchange."""
        if not self.state.awaiting_result:
            raise ChunkSessionError("No exchange is awaiting a result")
        plan = self._current or self._plan()
        state = self.state

        contribution = dict(data)
        for question, answer in _resolved_pairs(contribution.pop(RESOLVED_FIELD, None)):
            state.record_decision(question, answer)

        incoming = _coerce_proposals(contribution.get(PROPOSALS_FIELD))
        decided = state.decided_keys()
        known = state.outstanding_keys()
        kept: list[Proposal] = []
        seen: set[str] = set()
        for proposal in incoming:
            if proposal.key in decided or proposal.key in seen:
                continue
            seen.add(proposal.key)
            kept.append(proposal)
            if proposal.key not in known:
                state.outstanding.append(proposal)
        if PROPOSALS_FIELD in contribution:
            contribution[PROPOSALS_FIELD] = [p.model_dump(exclude_none=True) for p in kept]

        state.contributions.append(
            Contribution(contributor=self.contributor_id(plan.chunk_index), data=contribution)
        )
        state.pending_fact_ids = [fact.id for fact in plan.residual.facts]
        state.dropped_decisions = plan.dropped_decisions
        state.chunk_index += 1
        state.total_chunks = max(state.total_chunks, state.chunk_index + (1 if state.pending_fact_ids else 0))
        state.awaiting_result = False
        self._current = None
        return contribution

    def answer(self, question: str, answer: str) -> None:
        """Resolve a proposal between exchanges; later chunks see it as decided."""
        self.state.record_decision(question, answer)

    def finish(self, engine: MergeEngine, expected: Iterable[str] | None = None) -> MergeResult:
        """Merge every chunk's contribution into one object.

        Proposals answered after they were raised are removed from the merge.

        Raises:
            ChunkSessionError: If exchanges are still pending.
        """
        if not self.is_complete:
            raise ChunkSessionError(f"Stage '{self.state.stage}' still has pending exchanges")

        contributions = [(c.contributor, c.data) for c in self.state.contributions]
        result = engine.merge(contributions, expected=expected)

        decided = self.state.decided_keys()
        proposals = result.merged.get(PROPOSALS_FIELD)
        if decided and isinstance(proposals, list):
            result.merged[PROPOSALS_FIELD] = [
                p
                for p in proposals
                if not (isinstance(p, Mapping) and normalize_question(str(p.get("question", ""))) in decided)
            ]
        log.info(
            "chunked_stage_merged",
            stage=self.state.stage,
            chunks=self.state.chunk_index,
            conflicts=len(result.conflicts),
            decisions=len(self.state.decisions),
            outstanding=len(self.state.outstanding),
        )
        return result

    def _plan(self) -> ExchangePlan:
        pending = [self._facts[fid] for fid in self.state.pending_fact_ids]
        return plan_exchange(
            self.system,
            self.base,
            pending,
            self.limits,
            decisions=self.state.decisions,
            outstanding=self.state.outstanding,
            chunk_index=self.state.chunk_index,
            total_chunks=self.state.total_chunks or None,
        )


def _coerce_proposals(raw: Any) -> list[Proposal]:
    if not isinstance(raw, list):
        return []
    proposals: list[Proposal] = []
    for item in raw:
        if isinstance(item, str):
            item = {"question": item}
        if not isinstance(item, Mapping):
            continue
        try:
            proposals.append(Proposal.model_validate(item))
        except ValidationError:
            log.warning("proposal_discarded", proposal=item)
    return proposals


def _resolved_pairs(raw: Any) -> list[tuple[str, str]]:
    """Decisions reported by the generation process itself."""
    if isinstance(raw, Mapping):
        return [(str(q), str(a)) for q, a in raw.items() if str(q).strip()]
    if isinstance(raw, list):
        return [
            (str(item["question"]), str(item.get("answer", "")))
            for item in raw
            if isinstance(item, Mapping) and str(item.get("question", "")).strip()
        ]
    return []
