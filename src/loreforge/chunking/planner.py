"""Budgeted composition of one exchange payload.

``plan_exchange`` fits as much grounding material as possible under the hard
limit and returns whatever did not fit as a residual plan for the next chunk:

1. Fixed overhead is the system instructions, the base request, and the
   formatting reserve. Overhead above the hard limit raises ``BudgetExceeded``.
2. Carried-forward decisions are kept most recent first inside the decisions
   sub-budget; older ones are dropped and counted. Outstanding proposals use
   what is left of that sub-budget.
3. Facts are placed greedily in rank order (ties keep retrieval order) into
   the budget left after overhead and the carried section, stopping at the
   first fact that would overflow.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from loreforge.chunking.errors import BudgetExceeded
from loreforge.chunking.limits import PromptAnalysis, PromptLimits, analyze_prompt
from loreforge.models.artifacts import Fact, Proposal
from loreforge.models.chunk import Decision

DECISIONS_HEADER = "## Decisions already made (do NOT re-ask these)"
OUTSTANDING_HEADER = "## Outstanding questions (resolve these before raising new ones)"
CARRY_INSTRUCTION = (
    "Resolve the outstanding questions first. Do not raise proposals on any "
    "topic already listed under decisions."
)
FACTS_HEADER = "## Canon facts"
NO_FACTS_LINE = "(no grounding facts for this exchange)"
SECTION_SEPARATOR = "\n\n"


def render_fact(fact: Fact) -> str:
    return f"- [{fact.id}] {fact.text}"


def render_decision(decision: Decision) -> str:
    return f"- {decision.question} -> {decision.answer}"


def render_proposal(proposal: Proposal) -> str:
    line = f"- {proposal.question}"
    if proposal.options:
        line += f" (options: {' | '.join(proposal.options)})"
    return line


def fact_cost(fact: Fact) -> int:
    """Characters a fact occupies in the payload, newline included."""
    return len(render_fact(fact)) + 1


def rank_facts(facts: Sequence[Fact]) -> list[Fact]:
    """Facts in placement order; ``sorted`` is stable so ties keep input order."""
    return sorted(facts, key=lambda fact: fact.rank)


@dataclass
class ResidualPlan:
    """Material left for later chunks."""

    facts: list[Fact] = field(default_factory=list)
    decisions: list[Decision] = field(default_factory=list)
    proposals: list[Proposal] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.facts or self.proposals)


@dataclass
class ExchangePlan:
    """One composed exchange and what it left out."""

    payload: str
    chunk_index: int
    included_facts: list[Fact]
    decisions: list[Decision]
    proposals: list[Proposal]
    residual: ResidualPlan
    analysis: PromptAnalysis

    @property
    def size(self) -> int:
        return len(self.payload)

    @property
    def dropped_decisions(self) -> int:
        return len(self.residual.decisions)


def _carried_section(
    decisions: Sequence[Decision],
    outstanding: Sequence[Proposal],
    budget: int,
) -> tuple[list[Decision], list[Proposal], str]:
    if not decisions and not outstanding:
        return [], [], ""

    used = len(CARRY_INSTRUCTION)
    if used > budget:
        return [], [], ""

    kept_decisions: list[Decision] = []
    for decision in reversed(decisions):
        cost = len(render_decision(decision)) + 1
        if not kept_decisions:
            cost += len(DECISIONS_HEADER) + 1
        if used + cost > budget:
            break
        kept_decisions.append(decision)
        used += cost
    kept_decisions.reverse()

    kept_proposals: list[Proposal] = []
    for proposal in outstanding:
        cost = len(render_proposal(proposal)) + 1
        if not kept_proposals:
            cost += len(OUTSTANDING_HEADER) + 1
        if used + cost > budget:
            break
        kept_proposals.append(proposal)
        used += cost

    lines: list[str] = []
    if kept_decisions:
        lines.append(DECISIONS_HEADER)
        lines.extend(render_decision(d) for d in kept_decisions)
    if kept_proposals:
        lines.append(OUTSTANDING_HEADER)
        lines.extend(render_proposal(p) for p in kept_proposals)
    lines.append(CARRY_INSTRUCTION)
    return kept_decisions, kept_proposals, "\n".join(lines)


def _facts_section(facts: Sequence[Fact], chunk_index: int, total_chunks: int | None) -> str:
    label = f"chunk {chunk_index + 1}"
    if total_chunks:
        label += f" of {total_chunks}"
    header = f"{FACTS_HEADER} ({label})"
    if not facts:
        return f"{header}\n{NO_FACTS_LINE}"
    return header + "\n" + "\n".join(render_fact(fact) for fact in facts)


def compose_payload(
    system: str,
    base: str,
    carried: str,
    facts: Sequence[Fact],
    chunk_index: int = 0,
    total_chunks: int | None = None,
) -> str:
    """Join the payload sections in their fixed order."""
    parts = [system, base, carried, _facts_section(facts, chunk_index, total_chunks)]
    return SECTION_SEPARATOR.join(part for part in parts if part)


def plan_exchange(
    system: str,
    base: str,
    facts: Sequence[Fact],
    limits: PromptLimits,
    *,
    decisions: Sequence[Decision] | None = None,
    outstanding: Sequence[Proposal] | None = None,
    chunk_index: int = 0,
    total_chunks: int | None = None,
) -> ExchangePlan:
    """Compose one exchange payload that fits under ``limits.hard_limit``.

    Args:
        system: Fixed system instructions.
        base: Base request payload.
        facts: Grounding facts in retrieval order.
        limits: Character budget.
        decisions: Resolved decisions, oldest first.
        outstanding: Proposals still awaiting an answer.
        chunk_index: Zero-based index of this chunk.
        total_chunks: Expected chunk count, shown in the payload when known.

    Returns:
        ExchangePlan with the payload and the residual for the next chunk.

    Raises:
        BudgetExceeded: If system + base + formatting alone exceed the limit.
    """
    decisions = list(decisions or [])
    outstanding = list(outstanding or [])

    breakdown = {
        "system": len(system),
        "base": len(base),
        "formatting": limits.formatting_reserve,
    }
    overhead = sum(breakdown.values())
    if overhead > limits.hard_limit:
        largest = max(("system", "base"), key=lambda name: breakdown[name])
        raise BudgetExceeded(
            total=overhead,
            limit=limits.hard_limit,
            breakdown=breakdown,
            recommendation=(
                f"Shorten the {largest} section by at least "
                f"{overhead - limits.hard_limit} chars; no grounding material can be added."
            ),
        )

    carried_budget = min(limits.decisions_budget, limits.hard_limit - overhead)
    kept_decisions, kept_proposals, carried = _carried_section(
        decisions, outstanding, carried_budget
    )

    remaining = limits.hard_limit - overhead - len(carried)
    ordered = rank_facts(facts)
    included: list[Fact] = []
    used = 0
    for fact in ordered:
        cost = fact_cost(fact)
        if used + cost > remaining:
            break
        included.append(fact)
        used += cost

    payload = compose_payload(system, base, carried, included, chunk_index, total_chunks)
    while len(payload) > limits.hard_limit and included:
        included.pop()
        payload = compose_payload(system, base, carried, included, chunk_index, total_chunks)
    if len(payload) > limits.hard_limit:
        raise BudgetExceeded(
            total=len(payload),
            limit=limits.hard_limit,
            breakdown={**breakdown, "carried": len(carried)},
            recommendation="Increase the formatting reserve or shorten the carried decisions.",
        )

    kept_decision_keys = {d.key for d in kept_decisions}
    kept_proposal_keys = {p.key for p in kept_proposals}
    residual = ResidualPlan(
        facts=ordered[len(included) :],
        decisions=[d for d in decisions if d.key not in kept_decision_keys],
        proposals=[p for p in outstanding if p.key not in kept_proposal_keys],
    )

    fact_chars = sum(fact_cost(fact) for fact in included)
    sections = {
        "system": len(system),
        "base": len(base),
        "carried": len(carried),
        "facts": fact_chars,
    }
    sections["formatting"] = len(payload) - sum(sections.values())
    return ExchangePlan(
        payload=payload,
        chunk_index=chunk_index,
        included_facts=included,
        decisions=kept_decisions,
        proposals=kept_proposals,
        residual=residual,
        analysis=analyze_prompt(sections, limits),
    )


def oversized_fact_error(plan: ExchangePlan, fact: Fact, limits: PromptLimits) -> BudgetExceeded:
    """Error for a fact that cannot fit even into an otherwise empty chunk."""
    cost = fact_cost(fact)
    breakdown = dict(plan.analysis.breakdown)
    breakdown[f"fact:{fact.id}"] = cost
    return BudgetExceeded(
        total=plan.size + cost,
        limit=limits.hard_limit,
        breakdown=breakdown,
        recommendation=f"Split or shorten fact '{fact.id}' ({cost} chars).",
    )


def estimate_chunk_count(
    system: str,
    base: str,
    facts: Sequence[Fact],
    limits: PromptLimits,
    *,
    decisions: Sequence[Decision] | None = None,
    outstanding: Sequence[Proposal] | None = None,
) -> int:
    """Number of exchanges needed to deliver every fact.

    Carried-forward content is assumed constant across chunks. An empty fact
    list still needs one exchange.

    Raises:
        BudgetExceeded: If the overhead or a single fact cannot fit.
    """
    pending = rank_facts(facts)
    chunks = 0
    while True:
        plan = plan_exchange(
            system, base, pending, limits, decisions=decisions, outstanding=outstanding,
            chunk_index=chunks,
        )
        chunks += 1
        if not plan.residual.facts:
            return chunks
        if not plan.included_facts:
            raise oversized_fact_error(plan, plan.residual.facts[0], limits)
        pending = plan.residual.facts
