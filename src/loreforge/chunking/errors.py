"""Budget errors raised by the chunk planner."""

from __future__ import annotations

from collections.abc import Mapping


class BudgetExceeded(Exception):
    """Fixed content cannot fit under the hard limit even with nothing optional.

    Attributes:
        total: Size of the content that has to fit.
        limit: The hard character limit.
        breakdown: Size of each section contributing to ``total``.
        recommendation: What to shrink to make the exchange fit.
    """

    def __init__(
        self,
        total: int,
        limit: int,
        breakdown: Mapping[str, int],
        recommendation: str,
    ) -> None:
        self.total = total
        self.limit = limit
        self.breakdown = dict(breakdown)
        self.recommendation = recommendation
        sections = ", ".join(f"{name}={size}" for name, size in self.breakdown.items())
        super().__init__(
            f"Exchange needs {total} chars but the hard limit is {limit} "
            f"(over by {total - limit}; {sections}). {recommendation}"
        )

    @property
    def overflow(self) -> int:
        return self.total - self.limit

    def to_dict(self) -> dict[str, object]:
        return {
            "total": self.total,
            "limit": self.limit,
            "overflow": self.overflow,
            "breakdown": dict(self.breakdown),
            "recommendation": self.recommendation,
        }
