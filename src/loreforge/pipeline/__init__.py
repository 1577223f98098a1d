"""Pipeline orchestration: stage registry, configuration and the orchestrator."""

from loreforge.pipeline.config import (
    ProjectConfig,
    ProjectConfigError,
    create_default_config,
    load_project_config,
    save_project_config,
)
from loreforge.pipeline.errors import (
    StageException,
    StageFailure,
    StageInputError,
    StageRegistryError,
)
from loreforge.pipeline.orchestrator import Orchestrator, RunReport, StageResult
from loreforge.pipeline.registry import StageRegistry, StageSpec

__all__ = [
    "Orchestrator",
    "ProjectConfig",
    "ProjectConfigError",
    "RunReport",
    "StageException",
    "StageFailure",
    "StageInputError",
    "StageRegistry",
    "StageRegistryError",
    "StageResult",
    "StageSpec",
    "create_default_config",
    "load_project_config",
    "save_project_config",
]
