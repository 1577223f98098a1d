"""Run and stage state models.

A Run is one end-to-end generation request. Only the orchestrator mutates it
after creation; it is terminal once ``failed`` or ``completed``.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from collections.abc import Iterable

RunKind = Literal["scene", "encounter", "npc", "item", "adventure"]
RunStatus = Literal["queued", "running", "failed", "completed"]
StageStatus = Literal["idle", "running", "ok", "fail"]
Domain = Literal["rpg", "writing"]
InventionPolicy = Literal["none", "limited", "full"]

RUN_KINDS: tuple[str, ...] = ("scene", "encounter", "npc", "item", "adventure")
TERMINAL_RUN_STATUSES = frozenset({"failed", "completed"})


def utc_now() -> datetime:
    """Current time in UTC."""
    return datetime.now(UTC)


class RunFlags(BaseModel):
    """Generation switches supplied with a request.

    ``domain`` decides which guards apply: numeric guards skip ``writing``.
    """

    domain: Domain = "rpg"
    rule_base: str = Field(default="2024RAW", min_length=1)
    allow_invention: InventionPolicy = "limited"
    mode: Literal["GM", "player"] = "GM"
    tone: str = "epic"
    difficulty: str = "standard"
    realism: str = "cinematic"


class StageState(BaseModel):
    """Status of one stage within one run."""

    status: StageStatus = "idle"
    error: str | None = None
    cause: str | None = None
    artifact_id: str | None = None
    notes: list[str] = Field(default_factory=list)
    started_at: datetime | None = None
    completed_at: datetime | None = None


class Run(BaseModel):
    """One generation request tracked through all stages."""

    id: str = Field(min_length=1)
    kind: RunKind
    prompt: str
    flags: RunFlags = Field(default_factory=RunFlags)
    params: dict[str, Any] = Field(default_factory=dict)
    stages: dict[str, StageState] = Field(default_factory=dict)
    status: RunStatus = "queued"
    current_stage: str | None = None
    error: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_RUN_STATUSES

    def stage(self, name: str) -> StageState:
        """State of ``name``, idle if the stage has never been touched."""
        return self.stages.get(name, StageState())


def create_run(
    kind: RunKind,
    prompt: str,
    stage_names: Iterable[str],
    *,
    flags: RunFlags | dict[str, Any] | None = None,
    params: dict[str, Any] | None = None,
    run_id: str | None = None,
) -> Run:
    """Create a queued run with every stage idle.

    Args:
        kind: Declared content kind.
        prompt: Free-text request.
        stage_names: Stage names in execution order.
        flags: Generation flags; missing values fall back to defaults.
        params: Extra input parameters (e.g. explicit retrieval hints).
        run_id: Identifier to use; a random hex id when omitted.

    Returns:
        New Run in ``queued`` status pointing at the first stage.
    """
    names = list(stage_names)
    resolved_flags = flags if isinstance(flags, RunFlags) else RunFlags(**(flags or {}))
    now = utc_now()
    return Run(
        id=run_id or uuid.uuid4().hex,
        kind=kind,
        prompt=prompt,
        flags=resolved_flags,
        params=dict(params or {}),
        stages={name: StageState() for name in names},
        status="queued",
        current_stage=names[0] if names else None,
        created_at=now,
        updated_at=now,
    )
