"""The explicit registry value shared by the pipeline.

``Runtime`` bundles the stage registry, the guard registry, the rule tables
and the budget and merge settings. It is built once at process start (see
``build_runtime``) and passed to the orchestrator; nothing here is module
level state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from loreforge.chunking.limits import PromptLimits
from loreforge.guards import (
    BalanceGuard,
    CanonGuard,
    CoherenceGuard,
    GuardRegistry,
    PhysicsGuard,
    RulesGuard,
)
from loreforge.merge.engine import MergeEngine
from loreforge.merge.versions import VersionPolicy
from loreforge.pipeline.config import DEFAULT_MAX_PARSE_RETRIES
from loreforge.pipeline.stages import build_default_registry
from loreforge.prompts.loader import PromptLoader
from loreforge.tables import RuleTables, default_rule_tables

if TYPE_CHECKING:
    from loreforge.pipeline.config import ProjectConfig
    from loreforge.pipeline.registry import StageRegistry


def build_default_guards(tables: RuleTables) -> GuardRegistry:
    """One instance of every built-in guard, keyed by stage name."""
    return GuardRegistry(
        [
            CoherenceGuard(tables, "pre"),
            CanonGuard(),
            RulesGuard(tables),
            PhysicsGuard(tables),
            BalanceGuard(tables),
            CoherenceGuard(tables, "post"),
        ]
    )


@dataclass
class Runtime:
    """Everything a run needs besides its store and collaborators."""

    stages: StageRegistry
    guards: GuardRegistry
    tables: RuleTables = field(default_factory=default_rule_tables)
    version_policy: VersionPolicy = field(default_factory=VersionPolicy)
    limits: PromptLimits = field(default_factory=PromptLimits)
    prompts: PromptLoader = field(default_factory=PromptLoader)
    max_parse_retries: int = DEFAULT_MAX_PARSE_RETRIES

    def merge_engine(self) -> MergeEngine:
        """A merge engine configured with this runtime's version policy."""
        return MergeEngine(self.version_policy)

    @property
    def stage_names(self) -> list[str]:
        """Stage names in execution order."""
        return self.stages.execution_order()


def build_runtime(
    config: ProjectConfig | None = None,
    *,
    tables: RuleTables | None = None,
    prompts: PromptLoader | None = None,
) -> Runtime:
    """Build the runtime for ``config`` (defaults when omitted).

    Raises:
        StageRegistryError: If ``config`` selects stages that do not form a
            valid DAG.
    """
    tables = tables or default_rule_tables()
    stages = build_default_registry()
    if config is not None and config.stages is not None:
        stages = stages.subset(config.stages)
    else:
        stages.check()

    if config is None:
        return Runtime(
            stages=stages,
            guards=build_default_guards(tables),
            tables=tables,
            prompts=prompts or PromptLoader(),
        )
    return Runtime(
        stages=stages,
        guards=build_default_guards(tables),
        tables=tables,
        version_policy=config.merge.version_policy(),
        limits=config.limits,
        prompts=prompts or PromptLoader(),
        max_parse_retries=config.max_parse_retries,
    )
