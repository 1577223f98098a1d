"""Character budgets for exchanges and prompt size analysis."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal

Recommendation = Literal["ok", "warning", "error"]

AI_HARD_LIMIT = 8000
WARNING_THRESHOLD = 7200
DECISIONS_BUDGET = 1500
FORMATTING_RESERVE = 200


@dataclass(frozen=True)
class PromptLimits:
    """Budget for one exchange.

    Attributes:
        hard_limit: Characters beyond this are silently dropped by the
            generation process, so no payload may exceed it.
        warning_threshold: Payloads above this are reported as ``warning``.
        decisions_budget: Sub-budget for carried-forward decisions and
            outstanding proposals.
        formatting_reserve: Constant reserved for section headers and
            separators.
    """

    hard_limit: int = AI_HARD_LIMIT
    warning_threshold: int = WARNING_THRESHOLD
    decisions_budget: int = DECISIONS_BUDGET
    formatting_reserve: int = FORMATTING_RESERVE

    def __post_init__(self) -> None:
        if self.hard_limit <= 0:
            raise ValueError("hard_limit must be positive")
        if not 0 < self.warning_threshold <= self.hard_limit:
            raise ValueError("warning_threshold must be within (0, hard_limit]")
        if self.decisions_budget < 0 or self.formatting_reserve < 0:
            raise ValueError("budgets must not be negative")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PromptLimits:
        return cls(
            hard_limit=int(data.get("hard_limit", AI_HARD_LIMIT)),
            warning_threshold=int(data.get("warning_threshold", WARNING_THRESHOLD)),
            decisions_budget=int(data.get("decisions_budget", DECISIONS_BUDGET)),
            formatting_reserve=int(data.get("formatting_reserve", FORMATTING_RESERVE)),
        )


@dataclass(frozen=True)
class PromptAnalysis:
    """Size report for a composed or planned prompt."""

    total: int
    limit: int
    breakdown: dict[str, int]
    recommendation: Recommendation
    message: str

    @property
    def percent_of_limit(self) -> float:
        return self.total / self.limit * 100

    @property
    def exceeds_limit(self) -> bool:
        return self.total > self.limit


def analyze_prompt(sections: Mapping[str, str | int], limits: PromptLimits) -> PromptAnalysis:
    """Measure prompt sections against the limits.

    Args:
        sections: Section name to text (or already-measured size).
        limits: Budget to compare against.

    Returns:
        PromptAnalysis with an ``ok``/``warning``/``error`` recommendation.
    """
    breakdown = {
        name: value if isinstance(value, int) else len(value) for name, value in sections.items()
    }
    total = sum(breakdown.values())
    percent = total / limits.hard_limit * 100

    recommendation: Recommendation
    if total > limits.hard_limit:
        recommendation = "error"
        message = (
            f"Prompt is {total:,} chars, over the limit by {total - limits.hard_limit:,}; "
            "content must be trimmed or chunked"
        )
    elif total > limits.warning_threshold:
        recommendation = "warning"
        message = (
            f"Prompt is {percent:.1f}% of the limit "
            f"({limits.hard_limit - total:,} chars remaining)"
        )
    else:
        recommendation = "ok"
        message = f"Prompt is {total:,} chars ({percent:.1f}% of limit)"

    return PromptAnalysis(
        total=total,
        limit=limits.hard_limit,
        breakdown=breakdown,
        recommendation=recommendation,
        message=message,
    )


def format_prompt_analysis(analysis: PromptAnalysis) -> str:
    """Multi-line text rendering of an analysis, largest section first."""
    lines = [analysis.message]
    for name, size in sorted(analysis.breakdown.items(), key=lambda item: -item[1]):
        lines.append(f"  {name}: {size:,}")
    return "\n".join(lines)
