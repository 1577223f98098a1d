"""Canon guard: cited sources must resolve to grounding facts."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from loreforge.guards.base import GuardResult
from loreforge.models.artifacts import FactCheckPayload, FactPackPayload

if TYPE_CHECKING:
    from loreforge.models.artifacts import StagePayload
    from loreforge.models.run import Run


class CanonGuard:
    """Fact check over a draft.

    Every id in ``sources_used`` must name a fact in the fact pack. Proposals
    are checked against the run's invention policy: categories listed in
    ``params["forbidden_inventions"]`` are errors, and with policy ``none``
    any proposal is flagged.
    """

    name = "fact_check"

    def __init__(self, retriever_stage: str = "retriever") -> None:
        self.retriever_stage = retriever_stage

    def applies_to(self, run: Run) -> str | None:
        return None

    def check(
        self,
        draft: Mapping[str, Any] | None,
        supporting: Mapping[str, StagePayload],
        run: Run,
    ) -> GuardResult:
        report = self.report(draft, supporting, run)
        return GuardResult.from_findings(self.name, list(report.errors), flags=list(report.warnings))

    def report(
        self,
        draft: Mapping[str, Any] | None,
        supporting: Mapping[str, StagePayload],
        run: Run,
    ) -> FactCheckPayload:
        """Full fact-check report, persisted as the fact-check artifact."""
        draft = draft or {}
        factpack = supporting.get(self.retriever_stage)
        if not isinstance(factpack, FactPackPayload):
            return FactCheckPayload(ok=False, errors=["fact_check: fact pack is required"])

        errors: list[str] = []
        warnings: list[str] = []
        available = factpack.fact_ids()

        sources = [str(s) for s in draft.get("sources_used") or []]
        resolved = [s for s in sources if s in available]
        unresolved = [s for s in sources if s not in available]
        if unresolved:
            errors.append(f"Sources not found in fact pack: {', '.join(unresolved)}")
        if not sources:
            warnings.append("No sources cited; content may be invented")

        errors.extend(self._invention_errors(draft, run))
        if run.flags.allow_invention == "none":
            warnings.extend(
                f"Invention policy 'none': proposal '{question}' would introduce new canon"
                for question in _questions(draft)
            )

        return FactCheckPayload(
            ok=not errors,
            available_facts=len(available),
            resolved_sources=resolved,
            unresolved_sources=unresolved,
            errors=errors,
            warnings=warnings,
        )

    @staticmethod
    def _invention_errors(draft: Mapping[str, Any], run: Run) -> list[str]:
        forbidden = [str(c) for c in run.params.get("forbidden_inventions") or []]
        return [
            f"Proposal violates invention policy: '{question}' touches forbidden category '{category}'"
            for question in _questions(draft)
            for category in forbidden
            if category.lower() in question.lower()
        ]


def _questions(draft: Mapping[str, Any]) -> list[str]:
    questions: list[str] = []
    for proposal in draft.get("proposals") or []:
        if isinstance(proposal, Mapping) and isinstance(proposal.get("question"), str):
            questions.append(proposal["question"])
    return questions
