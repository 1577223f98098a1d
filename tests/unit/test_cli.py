"""Test CLI commands."""

from __future__ import annotations

import json
import shutil
from typing import TYPE_CHECKING

from langchain_core.language_models import FakeListChatModel
from ruamel.yaml import YAML
from typer.testing import CliRunner

from loreforge import __version__
from loreforge.cli import _resolve_project_path, app
from loreforge.storage import SqliteRunStore

if TYPE_CHECKING:
    from pathlib import Path

    import pytest

runner = CliRunner()


def _init(tmp_path: Path, name: str = "coast") -> Path:
    result = runner.invoke(app, ["init", name, "--path", str(tmp_path)])
    assert result.exit_code == 0, result.stdout
    return tmp_path / name


def _runs(project_path: Path) -> list:
    with SqliteRunStore(project_path / "runs.db") as store:
        return store.list_runs()


def test_version_command() -> None:
    """Test lf version command."""
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert f"LoreForge v{__version__}" in result.stdout


def test_no_args_shows_help() -> None:
    """Test that no arguments shows help."""
    result = runner.invoke(app, [])
    # no_args_is_help=True returns exit code 2 (not 0 like --help)
    assert result.exit_code == 2
    assert "LoreForge" in result.stdout


# --- Init Command Tests ---


def test_init_creates_project(tmp_path: Path) -> None:
    """Test lf init creates project structure."""
    result = runner.invoke(app, ["init", "coast", "--path", str(tmp_path)])

    assert result.exit_code == 0
    assert "Created project" in result.stdout
    project_path = tmp_path / "coast"
    assert (project_path / "project.yaml").exists()
    assert (project_path / "canon.yaml").exists()


def test_init_project_yaml_content(tmp_path: Path) -> None:
    """Test lf init writes a loadable config pointing at the canon file."""
    project_path = _init(tmp_path)

    with (project_path / "project.yaml").open() as f:
        config = YAML(typ="safe").load(f)

    assert config["name"] == "coast"
    assert config["retrieval"]["canon_file"] == "canon.yaml"
    assert "default" in config["providers"]


def test_init_existing_directory_fails(tmp_path: Path) -> None:
    """Test lf init refuses to overwrite a directory."""
    _init(tmp_path)

    result = runner.invoke(app, ["init", "coast", "--path", str(tmp_path)])

    assert result.exit_code == 1
    assert "Error" in result.stdout


# --- Project Resolution Tests ---


def test_resolve_project_path_none_is_cwd() -> None:
    assert str(_resolve_project_path(None)) == "."


def test_resolve_project_path_existing(tmp_path: Path) -> None:
    assert _resolve_project_path(tmp_path) == tmp_path


# --- Submit Command Tests ---


def test_submit_queues_run(tmp_path: Path) -> None:
    """Test lf submit stores a queued run with its hints."""
    project_path = _init(tmp_path)

    result = runner.invoke(
        app,
        [
            "submit",
            "A lighthouse keeper who smuggles relics",
            "--project",
            str(project_path),
            "--entity",
            "npc.valen",
            "--region",
            "sword-coast",
        ],
    )

    assert result.exit_code == 0, result.stdout
    assert "Queued run" in result.stdout
    runs = _runs(project_path)
    assert len(runs) == 1
    assert runs[0].kind == "npc"
    assert runs[0].status == "queued"
    assert runs[0].params == {"entities": ["npc.valen"], "region": "sword-coast"}
    assert list(runs[0].stages)[0] == "planner"


def test_submit_without_project(tmp_path: Path) -> None:
    """Test lf submit fails without a project.yaml."""
    result = runner.invoke(app, ["submit", "A keeper", "--project", str(tmp_path / "missing")])

    assert result.exit_code == 1
    assert "lf init" in result.stdout


def test_submit_unknown_kind(tmp_path: Path) -> None:
    project_path = _init(tmp_path)

    result = runner.invoke(app, ["submit", "A dragon", "-p", str(project_path), "--kind", "dragon"])

    assert result.exit_code == 1
    assert "Unknown kind 'dragon'" in result.stdout
    assert _runs(project_path) == []


def test_submit_invalid_flags(tmp_path: Path) -> None:
    project_path = _init(tmp_path)

    result = runner.invoke(app, ["submit", "A poem", "-p", str(project_path), "--domain", "poetry"])

    assert result.exit_code == 1
    assert "Invalid run flags" in result.stdout


# --- Status Command Tests ---


def test_status_lists_runs(tmp_path: Path) -> None:
    project_path = _init(tmp_path)
    runner.invoke(app, ["submit", "A keeper", "-p", str(project_path)])

    result = runner.invoke(app, ["status", "-p", str(project_path)])

    assert result.exit_code == 0
    assert "npc" in result.stdout
    assert "queued" in result.stdout


def test_status_of_run_shows_stages(tmp_path: Path) -> None:
    project_path = _init(tmp_path)
    runner.invoke(app, ["submit", "A keeper", "-p", str(project_path)])
    run_id = _runs(project_path)[0].id

    result = runner.invoke(app, ["status", run_id, "-p", str(project_path)])

    assert result.exit_code == 0
    assert "planner" in result.stdout
    assert "finalizer" in result.stdout


def test_status_unknown_run(tmp_path: Path) -> None:
    project_path = _init(tmp_path)

    result = runner.invoke(app, ["status", "ghost", "-p", str(project_path)])

    assert result.exit_code == 1
    assert "Run not found: ghost" in result.stdout


# --- Stages Command Tests ---


def test_stages_lists_default_pipeline(tmp_path: Path) -> None:
    result = runner.invoke(app, ["stages", "-p", str(tmp_path)])

    assert result.exit_code == 0
    for name in ("planner", "retriever", "creator", "stylist", "finalizer"):
        assert name in result.stdout


# --- Run Command Tests ---


def test_run_executes_pipeline(
    tmp_path: Path,
    canon_file: Path,
    pipeline_responses: list[str],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Test lf run drives a queued run to completion with a stubbed model."""
    project_path = _init(tmp_path)
    shutil.copy(canon_file, project_path / "canon.yaml")
    monkeypatch.setattr(
        "loreforge.providers.create_chat_model",
        lambda provider: FakeListChatModel(responses=pipeline_responses),
    )
    runner.invoke(
        app, ["submit", "A lighthouse keeper", "-p", str(project_path), "-e", "npc.valen"]
    )
    run_id = _runs(project_path)[0].id

    result = runner.invoke(app, ["run", run_id, "-p", str(project_path)])

    assert result.exit_code == 0, result.stdout
    assert "completed" in result.stdout
    assert _runs(project_path)[0].status == "completed"


def test_run_unknown_run(
    tmp_path: Path, pipeline_responses: list[str], monkeypatch: pytest.MonkeyPatch
) -> None:
    project_path = _init(tmp_path)
    monkeypatch.setattr(
        "loreforge.providers.create_chat_model",
        lambda provider: FakeListChatModel(responses=pipeline_responses),
    )

    result = runner.invoke(app, ["run", "ghost", "-p", str(project_path)])

    assert result.exit_code == 1
    assert "Run not found: ghost" in result.stdout


def test_run_bad_canon_file(tmp_path: Path) -> None:
    project_path = _init(tmp_path)
    (project_path / "canon.yaml").write_text("chunks: [", encoding="utf-8")

    result = runner.invoke(app, ["run", "ghost", "-p", str(project_path)])

    assert result.exit_code == 1
    assert "Failed to load canon file" in result.stdout


# --- Merge Command Tests ---


def test_merge_writes_output(tmp_path: Path) -> None:
    first = tmp_path / "chunk_1.json"
    second = tmp_path / "chunk_2.json"
    first.write_text(json.dumps({"name": "Valen", "tags": ["keeper"]}), encoding="utf-8")
    second.write_text(json.dumps({"name": "Valen the Grey", "tags": ["smuggler"]}), encoding="utf-8")
    output = tmp_path / "merged.json"

    result = runner.invoke(app, ["merge", str(first), str(second), "-o", str(output)])

    assert result.exit_code == 0, result.stdout
    assert "Wrote merged object" in result.stdout
    merged = json.loads(output.read_text(encoding="utf-8"))
    assert merged == {"name": "Valen the Grey", "tags": ["keeper", "smuggler"]}
    assert "name" in result.stdout


def test_merge_rejects_non_object(tmp_path: Path) -> None:
    listing = tmp_path / "list.json"
    listing.write_text("[1, 2]", encoding="utf-8")

    result = runner.invoke(app, ["merge", str(listing)])

    assert result.exit_code == 1
    assert "Error" in result.stdout


# --- Analyze Command Tests ---


def test_analyze_reports_chunks(tmp_path: Path) -> None:
    system = tmp_path / "system.txt"
    base = tmp_path / "base.txt"
    facts = tmp_path / "facts.json"
    system.write_text("You write NPCs.", encoding="utf-8")
    base.write_text("Draft a lighthouse keeper.", encoding="utf-8")
    facts.write_text(
        json.dumps([{"id": "npc.valen#c1", "text": "Valen keeps the light."}]), encoding="utf-8"
    )

    result = runner.invoke(
        app, ["analyze", str(system), str(base), "--facts", str(facts), "-p", str(tmp_path)]
    )

    assert result.exit_code == 0, result.stdout
    assert "remaining" in result.stdout
    assert "1 fact(s) need 1 exchange(s)" in result.stdout


def test_analyze_invalid_facts(tmp_path: Path) -> None:
    system = tmp_path / "system.txt"
    base = tmp_path / "base.txt"
    facts = tmp_path / "facts.json"
    system.write_text("S", encoding="utf-8")
    base.write_text("B", encoding="utf-8")
    facts.write_text(json.dumps([{"id": "x"}]), encoding="utf-8")

    result = runner.invoke(app, ["analyze", str(system), str(base), "--facts", str(facts)])

    assert result.exit_code == 1
    assert "Cannot read facts" in result.stdout
