"""Chunk planning and budget enforcement for generation exchanges."""

from loreforge.chunking.errors import BudgetExceeded
from loreforge.chunking.limits import (
    PromptAnalysis,
    PromptLimits,
    analyze_prompt,
    format_prompt_analysis,
)
from loreforge.chunking.planner import (
    ExchangePlan,
    ResidualPlan,
    estimate_chunk_count,
    fact_cost,
    plan_exchange,
    rank_facts,
    render_fact,
)
from loreforge.chunking.session import ChunkSession, ChunkSessionError

__all__ = [
    "BudgetExceeded",
    "ChunkSession",
    "ChunkSessionError",
    "ExchangePlan",
    "PromptAnalysis",
    "PromptLimits",
    "ResidualPlan",
    "analyze_prompt",
    "estimate_chunk_count",
    "fact_cost",
    "format_prompt_analysis",
    "plan_exchange",
    "rank_facts",
    "render_fact",
]
