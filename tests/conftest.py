"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from loreforge.models import Fact, Run, create_run
from loreforge.pipeline.stages import DEFAULT_STAGE_ORDER
from loreforge.runtime import Runtime, build_runtime
from loreforge.storage import MemoryRunStore
from loreforge.tables import RuleTables, default_rule_tables


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def tables() -> RuleTables:
    return default_rule_tables()


@pytest.fixture
def runtime() -> Runtime:
    return build_runtime()


@pytest.fixture
def store() -> MemoryRunStore:
    return MemoryRunStore()


@pytest.fixture
def make_run():
    """Factory for runs with every default stage idle."""

    def _make(
        kind: str = "npc",
        prompt: str = "A lighthouse keeper who smuggles relics",
        **flags: Any,
    ) -> Run:
        params = flags.pop("params", None)
        return create_run(kind, prompt, DEFAULT_STAGE_ORDER, flags=flags, params=params)  # type: ignore[arg-type]

    return _make


@pytest.fixture
def sample_facts() -> list[Fact]:
    return [
        Fact(id="npc.valen#c1", text="Valen keeps the lighthouse on Gull Point.", source_entity="npc.valen"),
        Fact(id="npc.valen#c2", text="Valen owes the Tide Court a debt.", source_entity="npc.valen"),
        Fact(id="location.gull_point#c1", text="Gull Point overlooks the Shattered Reef.", rank=1),
    ]


CANON_YAML = """\
chunks:
  - id: npc.valen#c1
    entity: npc.valen
    text: Valen keeps the lighthouse on Gull Point.
    tags: [lighthouse]
  - id: npc.valen#c2
    entity: npc.valen
    text: Valen owes the Tide Court a debt.
  - id: npc.mira#c1
    entity: npc.mira
    text: Mira sails the reef at dawn.
"""


@pytest.fixture
def canon_file(tmp_path: Path) -> Path:
    """A small canon YAML file grounding the lighthouse keeper."""
    path = tmp_path / "canon.yaml"
    path.write_text(CANON_YAML, encoding="utf-8")
    return path


@pytest.fixture
def pipeline_responses() -> list[str]:
    """Creator then stylist responses for one full lighthouse keeper run."""
    creator = {
        "name": "Valen",
        "personality": "Gruff but kind.",
        "ac": 14,
        "hp": 45,
        "level": 5,
        "proficiency_bonus": 3,
        "sources_used": ["npc.valen#c1"],
        "assumptions": ["The smuggling happens at night"],
        "proposals": [{"question": "Who pays Valen?"}],
        "canon_update": "Adds Valen's smuggling ring.",
    }
    stylist = {"personality": "Gruff, weathered, quietly kind."}
    return [json.dumps(creator), json.dumps(stylist)]
