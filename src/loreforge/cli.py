"""LoreForge CLI - typer application entry point."""

from __future__ import annotations

import asyncio
import atexit
import json
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from loreforge.observability import close_file_logging, configure_logging, get_logger

# Load environment variables from .env file
load_dotenv()

if TYPE_CHECKING:
    from loreforge.pipeline import ProjectConfig, RunReport
    from loreforge.runtime import Runtime
    from loreforge.storage import SqliteRunStore

app = typer.Typer(
    name="lf",
    help="LoreForge: staged, canon-grounded generation of tabletop game content.",
    no_args_is_help=True,
)
console = Console()
log = get_logger(__name__)

# Default directory for projects
DEFAULT_PROJECTS_DIR = Path("projects")
CANON_FILE = "canon.yaml"

# Global state for logging flags (set by callback, used by commands)
_verbose: int = 0
_log_enabled: bool = False
_projects_dir: Path = DEFAULT_PROJECTS_DIR

STATUS_ICONS = {
    "ok": "[green]✓[/green] ok",
    "skipped": "[dim]↷[/dim] skipped",
    "idle": "[dim]○[/dim] idle",
    "running": "[yellow]…[/yellow] running",
    "fail": "[red]✗[/red] fail",
    "queued": "[dim]○[/dim] queued",
    "completed": "[green]✓[/green] completed",
    "failed": "[red]✗[/red] failed",
}

ProjectOption = Annotated[
    Path | None,
    typer.Option(
        "--project",
        "-p",
        help="Project directory. Can be a path or name (looks in --projects-dir).",
    ),
]


@app.callback()
def main(
    verbose: Annotated[
        int,
        typer.Option(
            "-v",
            "--verbose",
            count=True,
            help="Increase verbosity: -v for INFO, -vv for DEBUG.",
        ),
    ] = 0,
    log: Annotated[
        bool,
        typer.Option(
            "--log",
            help="Enable file logging to {project}/logs/ (debug.jsonl, exchanges.jsonl).",
        ),
    ] = False,
    projects_dir: Annotated[
        Path,
        typer.Option(
            "--projects-dir",
            "-d",
            help="Base directory for projects (default: ./projects).",
            envvar="LF_PROJECTS_DIR",
        ),
    ] = DEFAULT_PROJECTS_DIR,
) -> None:
    """LoreForge: staged, canon-grounded generation of tabletop game content."""
    global _verbose, _log_enabled, _projects_dir
    _verbose = verbose
    _log_enabled = log
    _projects_dir = projects_dir

    # Console logging now; file logging once the project is known
    configure_logging(verbosity=verbose)


def _configure_project_logging(project_path: Path) -> None:
    if _log_enabled:
        configure_logging(verbosity=_verbose, log_to_file=True, project_path=project_path)
        atexit.register(close_file_logging)


def _resolve_project_path(project: Path | None) -> Path:
    """Resolve project path from argument.

    Resolution order:
    1. If project is None, use current directory
    2. If project exists as given, use it
    3. If project is a name (no path separators), look in _projects_dir
    """
    if project is None:
        return Path()

    if project.exists():
        return project

    if len(project.parts) == 1:
        projects_path = _projects_dir / project
        if projects_path.exists():
            return projects_path

    # Return as-is (will fail in _require_project with helpful error)
    return project


def _require_project(project_path: Path) -> ProjectConfig:
    """Load project.yaml, exit with error if it is missing or invalid."""
    from loreforge.pipeline import ProjectConfigError, load_project_config

    try:
        return load_project_config(project_path)
    except ProjectConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        console.print("Run 'lf init <name>' first or pass --project.")
        raise typer.Exit(1) from None


def _build_runtime(config: ProjectConfig) -> Runtime:
    from loreforge.pipeline import StageRegistryError
    from loreforge.runtime import build_runtime

    try:
        return build_runtime(config)
    except StageRegistryError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None


def _open_store(project_path: Path, config: ProjectConfig) -> SqliteRunStore:
    from loreforge.storage import SqliteRunStore

    return SqliteRunStore(config.resolve_path(project_path, config.storage_path))


# =============================================================================
# Commands
# =============================================================================


@app.command()
def version() -> None:
    """Show version information."""
    from loreforge import __version__

    console.print(f"LoreForge v{__version__}")


def _init_project(name: str, parent_dir: Path, provider: str | None = None) -> Path:
    """Create a new project directory with config and an empty canon file.

    Raises:
        typer.Exit: If the directory already exists.
    """
    from ruamel.yaml import YAML

    from loreforge.pipeline import create_default_config, save_project_config

    parent_dir.mkdir(parents=True, exist_ok=True)

    project_path = parent_dir / name
    if project_path.exists():
        console.print(f"[red]Error:[/red] Directory '{project_path}' already exists")
        raise typer.Exit(1)

    project_path.mkdir(parents=True)

    config = create_default_config(name, provider=provider)
    config.retrieval.canon_file = CANON_FILE
    save_project_config(config, project_path)

    yaml_writer = YAML()
    yaml_writer.default_flow_style = False
    with (project_path / CANON_FILE).open("w", encoding="utf-8") as f:
        yaml_writer.dump({"chunks": []}, f)

    return project_path


@app.command()
def init(
    name: Annotated[str, typer.Argument(help="Project name")],
    path: Annotated[
        Path | None,
        typer.Option(
            "--path",
            help="Parent directory for the project (default: --projects-dir).",
        ),
    ] = None,
    provider: Annotated[
        str | None,
        typer.Option("--provider", help="Default chat model (e.g., ollama/qwen3:8b)."),
    ] = None,
) -> None:
    """Initialize a new project.

    Creates a project directory with:
    - project.yaml: Project configuration
    - canon.yaml: Canon chunks used for retrieval
    """
    parent_dir = path if path is not None else _projects_dir
    project_path = _init_project(name, parent_dir, provider=provider)

    console.print(f"[green]✓[/green] Created project: [bold]{name}[/bold]")
    console.print(f"  Location: {project_path.absolute()}")
    console.print()
    console.print("Next steps:")
    console.print(f"  add canon chunks to {project_path / CANON_FILE}")
    console.print(f'  lf submit -p {name} --kind npc "A lighthouse keeper who smuggles relics"')


@app.command()
def submit(
    prompt: Annotated[str, typer.Argument(help="What to generate")],
    kind: Annotated[
        str, typer.Option("--kind", "-k", help="Content kind: npc, item, encounter, scene, adventure.")
    ] = "npc",
    project: ProjectOption = None,
    domain: Annotated[str, typer.Option("--domain", help="rpg or writing.")] = "rpg",
    invention: Annotated[
        str, typer.Option("--invention", help="Invention policy: none, limited, full.")
    ] = "limited",
    tone: Annotated[str, typer.Option("--tone", help="Tone of the content.")] = "epic",
    entity: Annotated[
        list[str] | None,
        typer.Option("--entity", "-e", help="Canon entity id to ground on (repeatable)."),
    ] = None,
    region: Annotated[str | None, typer.Option("--region", help="Region hint.")] = None,
    era: Annotated[str | None, typer.Option("--era", help="Era hint.")] = None,
) -> None:
    """Queue a new run."""
    from pydantic import ValidationError

    from loreforge.models import RUN_KINDS, create_run

    project_path = _resolve_project_path(project)
    config = _require_project(project_path)
    _configure_project_logging(project_path)

    if kind not in RUN_KINDS:
        console.print(f"[red]Error:[/red] Unknown kind '{kind}' ({', '.join(RUN_KINDS)})")
        raise typer.Exit(1)

    runtime = _build_runtime(config)
    params: dict[str, Any] = {}
    if entity:
        params["entities"] = list(entity)
    if region:
        params["region"] = region
    if era:
        params["era"] = era

    try:
        run = create_run(
            kind,  # type: ignore[arg-type]
            prompt,
            runtime.stage_names,
            flags={"domain": domain, "allow_invention": invention, "tone": tone},
            params=params,
        )
    except ValidationError as e:
        console.print(f"[red]Error:[/red] Invalid run flags:\n{e}")
        raise typer.Exit(1) from None

    with _open_store(project_path, config) as store:
        store.create_run(run)

    log.info("run_submitted", run_id=run.id, kind=run.kind)
    console.print(f"[green]✓[/green] Queued run [bold]{run.id}[/bold] ({run.kind})")
    console.print(f"  Start it with: lf run {run.id}")


def _print_report(report: RunReport) -> None:
    table = Table(title=f"Run {report.run_id}")
    table.add_column("Stage", style="cyan")
    table.add_column("Status", style="bold")
    table.add_column("Time", justify="right", style="dim")
    table.add_column("Notes")

    for result in report.stages:
        detail = result.error or "; ".join(result.notes)
        elapsed = f"{result.duration_seconds:.1f}s" if result.status != "skipped" else "-"
        table.add_row(result.stage, STATUS_ICONS.get(result.status, result.status), elapsed, detail)

    console.print()
    console.print(table)
    console.print(f"Run status: {STATUS_ICONS.get(report.status, report.status)}")
    if report.error:
        console.print(f"[red]{report.error}[/red]")


@app.command()
def run(
    run_id: Annotated[str, typer.Argument(help="Run to execute")],
    project: ProjectOption = None,
    restart_from: Annotated[
        str | None,
        typer.Option("--restart-from", help="Re-run this stage and every later stage."),
    ] = None,
    provider: Annotated[
        str | None,
        typer.Option("--provider", help="Chat model override (e.g., openai/gpt-4o-mini)."),
    ] = None,
) -> None:
    """Execute a queued (or resume a failed) run."""
    from loreforge.exchange import ChatModelExchange
    from loreforge.observability import ExchangeLogger
    from loreforge.pipeline import Orchestrator
    from loreforge.providers import ProviderError, create_chat_model
    from loreforge.retrieval import CanonFileError, CanonIndex
    from loreforge.storage import RunNotFoundError

    project_path = _resolve_project_path(project)
    config = _require_project(project_path)
    _configure_project_logging(project_path)
    runtime = _build_runtime(config)

    retriever = None
    if config.retrieval.canon_file:
        try:
            retriever = CanonIndex.from_yaml(
                config.resolve_path(project_path, config.retrieval.canon_file),
                fetch_limit=config.retrieval.fetch_limit,
                max_facts=config.retrieval.max_facts,
            )
        except CanonFileError as e:
            console.print(f"[red]Error:[/red] {e}")
            raise typer.Exit(1) from None

    provider_string = provider or config.providers.get_default_provider()
    try:
        exchange = ChatModelExchange(create_chat_model(provider_string))
    except ProviderError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None

    exchange_logger = ExchangeLogger(project_path) if _log_enabled else None

    with _open_store(project_path, config) as store:
        orchestrator = Orchestrator(
            runtime,
            store,
            exchange=exchange,
            retriever=retriever,
            exchange_logger=exchange_logger,
        )
        try:
            report = asyncio.run(orchestrator.start_run(run_id, restart_from=restart_from))
        except (RunNotFoundError, ValueError) as e:
            console.print(f"[red]Error:[/red] {e}")
            raise typer.Exit(1) from None

    _print_report(report)
    if report.status != "completed":
        raise typer.Exit(1)


@app.command()
def status(
    run_id: Annotated[str | None, typer.Argument(help="Run to inspect (omit to list runs)")] = None,
    project: ProjectOption = None,
) -> None:
    """Show run status, or list every run in the project."""
    project_path = _resolve_project_path(project)
    config = _require_project(project_path)

    with _open_store(project_path, config) as store:
        if run_id is None:
            runs = store.list_runs()
            table = Table(title=f"Runs: {config.name}")
            table.add_column("Run", style="cyan")
            table.add_column("Kind")
            table.add_column("Status", style="bold")
            table.add_column("Stage", style="dim")
            table.add_column("Created", style="dim")
            for item in runs:
                table.add_row(
                    item.id,
                    item.kind,
                    STATUS_ICONS.get(item.status, item.status),
                    item.current_stage or "-",
                    item.created_at.strftime("%Y-%m-%d %H:%M"),
                )
            console.print()
            console.print(table)
            console.print()
            return

        found = store.get_run(run_id)

    if found is None:
        console.print(f"[red]Error:[/red] Run not found: {run_id}")
        raise typer.Exit(1)

    table = Table(title=f"Run {found.id} ({found.kind}): {found.status}")
    table.add_column("Stage", style="cyan")
    table.add_column("Status", style="bold")
    table.add_column("Completed", style="dim")
    table.add_column("Detail")
    for name, state in found.stages.items():
        completed = state.completed_at.strftime("%Y-%m-%d %H:%M") if state.completed_at else "-"
        detail = state.error or "; ".join(state.notes)
        if state.cause:
            detail = f"{detail} ({state.cause})"
        table.add_row(name, STATUS_ICONS.get(state.status, state.status), completed, detail)

    console.print()
    console.print(table)
    if found.error:
        console.print(f"[red]{found.error}[/red]")
    console.print()


@app.command()
def stages(project: ProjectOption = None) -> None:
    """List pipeline stages in execution order."""
    from loreforge.pipeline import create_default_config

    project_path = _resolve_project_path(project)
    if (project_path / "project.yaml").exists():
        config = _require_project(project_path)
    else:
        config = create_default_config("default")
    runtime = _build_runtime(config)

    table = Table(title="Pipeline Stages")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Stage", style="cyan")
    table.add_column("Produces")
    table.add_column("Depends On", style="dim")
    for index, name in enumerate(runtime.stage_names, start=1):
        spec = runtime.stages.get(name)
        table.add_row(str(index), name, spec.payload_kind, ", ".join(spec.depends_on) or "-")
    console.print(table)


@app.command()
def merge(
    files: Annotated[list[Path], typer.Argument(help="JSON partial outputs, oldest first")],
    output: Annotated[
        Path | None, typer.Option("--output", "-o", help="Write the merged object here.")
    ] = None,
) -> None:
    """Merge partial JSON outputs and show the conflict review."""
    from loreforge.merge import MergeEngine, format_conflicts_for_review

    contributions: list[tuple[str, dict[str, Any]]] = []
    for file in files:
        try:
            data = json.loads(file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            console.print(f"[red]Error:[/red] Cannot read {file}: {e}")
            raise typer.Exit(1) from None
        if not isinstance(data, dict):
            console.print(f"[red]Error:[/red] {file} must contain a JSON object")
            raise typer.Exit(1)
        contributions.append((file.stem, data))

    result = MergeEngine().merge(contributions)
    merged_json = json.dumps(result.merged, indent=2, ensure_ascii=False)
    if output is not None:
        output.write_text(merged_json + "\n", encoding="utf-8")
        console.print(f"[green]✓[/green] Wrote merged object to {output}")
    else:
        console.print_json(merged_json)

    console.print()
    console.print(Markdown(format_conflicts_for_review(result)))


@app.command()
def analyze(
    system_file: Annotated[Path, typer.Argument(help="System instructions file")],
    base_file: Annotated[Path, typer.Argument(help="Base request file")],
    facts_file: Annotated[
        Path | None,
        typer.Option("--facts", help="JSON list of facts ({id, text}) to plan chunks for."),
    ] = None,
    project: ProjectOption = None,
) -> None:
    """Analyze a prompt against the exchange budget."""
    from pydantic import TypeAdapter, ValidationError

    from loreforge.chunking import (
        BudgetExceeded,
        PromptLimits,
        analyze_prompt,
        estimate_chunk_count,
        format_prompt_analysis,
    )
    from loreforge.models import Fact

    limits = PromptLimits()
    project_path = _resolve_project_path(project)
    if (project_path / "project.yaml").exists():
        limits = _require_project(project_path).limits

    system = system_file.read_text(encoding="utf-8")
    base = base_file.read_text(encoding="utf-8")
    analysis = analyze_prompt(
        {"system": system, "base": base, "formatting": limits.formatting_reserve}, limits
    )
    style = {"ok": "green", "warning": "yellow", "error": "red"}[analysis.recommendation]
    console.print(f"[{style}]{format_prompt_analysis(analysis)}[/{style}]")

    if facts_file is None:
        return
    try:
        facts = TypeAdapter(list[Fact]).validate_json(facts_file.read_text(encoding="utf-8"))
    except (OSError, ValidationError) as e:
        console.print(f"[red]Error:[/red] Cannot read facts from {facts_file}: {e}")
        raise typer.Exit(1) from None
    try:
        chunks = estimate_chunk_count(system, base, facts, limits)
    except BudgetExceeded as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None
    console.print(f"{len(facts)} fact(s) need {chunks} exchange(s)")


if __name__ == "__main__":
    app()
