"""Default pipeline stages and their dependency DAG."""

from loreforge.pipeline.registry import StageRegistry
from loreforge.pipeline.stages.base import StageContext, StageOutput, require_payload
from loreforge.pipeline.stages.creator import run_creator
from loreforge.pipeline.stages.finalizer import run_finalizer
from loreforge.pipeline.stages.guards import guard_stage, run_fact_check
from loreforge.pipeline.stages.planner import run_planner
from loreforge.pipeline.stages.retriever import run_retriever
from loreforge.pipeline.stages.stylist import run_stylist

DEFAULT_STAGE_ORDER: tuple[str, ...] = (
    "planner",
    "retriever",
    "coherence_pre",
    "creator",
    "fact_check",
    "rules",
    "physics",
    "balance",
    "coherence_post",
    "stylist",
    "finalizer",
)


def build_default_registry() -> StageRegistry:
    """The full content pipeline, from planning to canon delta."""
    registry = StageRegistry()
    registry.register("planner", run_planner, payload_kind="brief")
    registry.register("retriever", run_retriever, depends_on=["planner"], payload_kind="factpack")
    registry.register(
        "coherence_pre",
        guard_stage("coherence_pre"),
        depends_on=["planner", "retriever"],
        payload_kind="guard",
    )
    registry.register(
        "creator", run_creator, depends_on=["planner", "retriever"], payload_kind="draft"
    )
    registry.register(
        "fact_check", run_fact_check, depends_on=["creator", "retriever"], payload_kind="fact_check"
    )
    registry.register(
        "rules", guard_stage("rules"), depends_on=["creator", "fact_check"], payload_kind="guard"
    )
    registry.register("physics", guard_stage("physics"), depends_on=["creator"], payload_kind="guard")
    registry.register("balance", guard_stage("balance"), depends_on=["creator"], payload_kind="guard")
    registry.register(
        "coherence_post",
        guard_stage("coherence_post"),
        depends_on=["planner", "retriever", "creator"],
        payload_kind="guard",
    )
    registry.register(
        "stylist",
        run_stylist,
        depends_on=["creator", "fact_check", "rules", "physics", "balance"],
        payload_kind="draft",
    )
    registry.register(
        "finalizer",
        run_finalizer,
        depends_on=["stylist", "creator", "retriever"],
        payload_kind="final",
    )
    return registry


__all__ = [
    "DEFAULT_STAGE_ORDER",
    "StageContext",
    "StageOutput",
    "build_default_registry",
    "guard_stage",
    "require_payload",
    "run_creator",
    "run_fact_check",
    "run_finalizer",
    "run_planner",
    "run_retriever",
    "run_stylist",
]
