"""Project configuration loading."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path  # noqa: TC003 - used at runtime
from typing import Any

from ruamel.yaml import YAML

from loreforge.chunking.limits import PromptLimits
from loreforge.merge.versions import DEFAULT_CANONICAL_VERSIONS, VersionPolicy

# Default configuration values
DEFAULT_PROVIDER = "ollama"
DEFAULT_MODEL = "qwen3:8b"
DEFAULT_STORAGE_PATH = "runs.db"
DEFAULT_MAX_PARSE_RETRIES = 2
PROVIDER_ENV_VAR = "LF_PROVIDER"


@dataclass
class ProvidersConfig:
    """Chat model provider settings.

    Resolution order: ``LF_PROVIDER`` environment variable, then
    ``providers.default`` from project.yaml.
    """

    default: str = f"{DEFAULT_PROVIDER}/{DEFAULT_MODEL}"

    def get_default_provider(self) -> str:
        return os.getenv(PROVIDER_ENV_VAR) or self.default

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProvidersConfig:
        return cls(default=data.get("default", f"{DEFAULT_PROVIDER}/{DEFAULT_MODEL}"))


@dataclass
class MergeConfig:
    """Version policy inputs for the merge engine."""

    canonical_versions: list[str] = field(default_factory=lambda: list(DEFAULT_CANONICAL_VERSIONS))
    version_aliases: dict[str, str] = field(default_factory=dict)

    def version_policy(self) -> VersionPolicy:
        return VersionPolicy(
            canonical=tuple(self.canonical_versions),
            aliases={str(k).strip().lower(): str(v) for k, v in self.version_aliases.items()},
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MergeConfig:
        return cls(
            canonical_versions=[
                str(v) for v in data.get("canonical_versions", DEFAULT_CANONICAL_VERSIONS)
            ],
            version_aliases={str(k): str(v) for k, v in dict(data.get("version_aliases", {})).items()},
        )


@dataclass
class RetrievalConfig:
    """Canon index settings.

    Attributes:
        canon_file: Canon YAML file, relative to the project directory.
        max_facts: Facts kept after de-duplication.
        fetch_limit: Candidates considered before de-duplication.
    """

    canon_file: str | None = None
    max_facts: int = 10
    fetch_limit: int = 25

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RetrievalConfig:
        return cls(
            canon_file=data.get("canon_file"),
            max_facts=int(data.get("max_facts", 10)),
            fetch_limit=int(data.get("fetch_limit", 25)),
        )


@dataclass
class ProjectConfig:
    """Configuration for a LoreForge project."""

    name: str
    version: int = 1
    providers: ProvidersConfig = field(default_factory=ProvidersConfig)
    stages: list[str] | None = None
    limits: PromptLimits = field(default_factory=PromptLimits)
    merge: MergeConfig = field(default_factory=MergeConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    max_parse_retries: int = DEFAULT_MAX_PARSE_RETRIES
    storage_path: str = DEFAULT_STORAGE_PATH

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProjectConfig:
        """Create config from dictionary.

        Args:
            data: Dictionary containing config fields.

        Returns:
            ProjectConfig instance.

        Raises:
            ValueError: If a value is out of range.
        """
        pipeline_data = data.get("pipeline", {}) or {}
        stages = pipeline_data.get("stages")
        creator_data = data.get("creator", {}) or {}
        storage_data = data.get("storage", {}) or {}

        max_parse_retries = int(creator_data.get("max_parse_retries", DEFAULT_MAX_PARSE_RETRIES))
        if max_parse_retries < 0:
            raise ValueError("creator.max_parse_retries must not be negative")

        return cls(
            name=data.get("name", "unnamed"),
            version=data.get("version", 1),
            providers=ProvidersConfig.from_dict(data.get("providers", {}) or {}),
            stages=[str(s) for s in stages] if stages is not None else None,
            limits=PromptLimits.from_dict(data.get("limits", {}) or {}),
            merge=MergeConfig.from_dict(data.get("merge", {}) or {}),
            retrieval=RetrievalConfig.from_dict(data.get("retrieval", {}) or {}),
            max_parse_retries=max_parse_retries,
            storage_path=str(storage_data.get("path", DEFAULT_STORAGE_PATH)),
        )

    def to_dict(self) -> dict[str, Any]:
        """Minimal project.yaml content; defaults are left implicit."""
        data: dict[str, Any] = {
            "name": self.name,
            "version": self.version,
            "providers": {"default": self.providers.default},
            "storage": {"path": self.storage_path},
        }
        if self.stages is not None:
            data["pipeline"] = {"stages": list(self.stages)}
        if self.retrieval.canon_file:
            data["retrieval"] = {"canon_file": self.retrieval.canon_file}
        return data

    def resolve_path(self, project_path: Path, value: str) -> Path:
        """Resolve a configured path relative to the project directory."""
        path = Path(value)
        return path if path.is_absolute() else project_path / path


class ProjectConfigError(Exception):
    """Raised when project configuration cannot be loaded."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to load project config at {path}: {reason}")


def load_project_config(project_path: Path) -> ProjectConfig:
    """Load project configuration from project.yaml.

    Args:
        project_path: Path to the project root directory.

    Returns:
        ProjectConfig instance.

    Raises:
        ProjectConfigError: If config cannot be loaded.
    """
    config_path = project_path / "project.yaml"

    if not config_path.exists():
        raise ProjectConfigError(config_path, "File not found")

    yaml = YAML()
    try:
        with config_path.open("r", encoding="utf-8") as f:
            data = yaml.load(f)

        if data is None:
            raise ProjectConfigError(config_path, "Empty file")

        return ProjectConfig.from_dict(dict(data))
    except Exception as e:
        if isinstance(e, ProjectConfigError):
            raise
        raise ProjectConfigError(config_path, str(e)) from e


def save_project_config(config: ProjectConfig, project_path: Path) -> Path:
    """Write ``config`` to ``project_path/project.yaml``."""
    config_file = project_path / "project.yaml"
    yaml_writer = YAML()
    yaml_writer.default_flow_style = False
    with config_file.open("w", encoding="utf-8") as f:
        yaml_writer.dump(config.to_dict(), f)
    return config_file


def create_default_config(name: str, provider: str | None = None) -> ProjectConfig:
    """Create a default project configuration.

    Args:
        name: Project name.
        provider: Optional default provider string (e.g., "ollama/qwen3:8b").

    Returns:
        ProjectConfig with default values.
    """
    return ProjectConfig(
        name=name,
        providers=ProvidersConfig(default=provider or f"{DEFAULT_PROVIDER}/{DEFAULT_MODEL}"),
    )
