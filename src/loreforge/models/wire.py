"""Mapping between domain models and the persisted document shape.

The store keeps runs and artifacts as JSON documents using the legacy field
names (``_id``, ``type``, ``createdAt`` ...). ``*_to_wire`` and ``*_from_wire``
are pure, cover every field, and are mutual inverses.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from loreforge.models.artifacts import Artifact, validate_payload
from loreforge.models.run import Run, RunFlags, StageState


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def stage_to_wire(state: StageState) -> dict[str, Any]:
    return {
        "status": state.status,
        "error": state.error,
        "cause": state.cause,
        "artifact_id": state.artifact_id,
        "notes": list(state.notes),
        "started_at": _ts(state.started_at),
        "completed_at": _ts(state.completed_at),
    }


def stage_from_wire(doc: dict[str, Any]) -> StageState:
    return StageState(
        status=doc.get("status", "idle"),
        error=doc.get("error"),
        cause=doc.get("cause"),
        artifact_id=doc.get("artifact_id"),
        notes=list(doc.get("notes") or []),
        started_at=_parse_ts(doc.get("started_at")),
        completed_at=_parse_ts(doc.get("completed_at")),
    )


def run_to_wire(run: Run) -> dict[str, Any]:
    """Serialize a Run to its stored document."""
    return {
        "_id": run.id,
        "type": run.kind,
        "prompt": run.prompt,
        "flags": run.flags.model_dump(mode="json"),
        "params": dict(run.params),
        "status": run.status,
        "stages": {name: stage_to_wire(state) for name, state in run.stages.items()},
        "current_stage": run.current_stage,
        "error": run.error,
        "createdAt": _ts(run.created_at),
        "updatedAt": _ts(run.updated_at),
    }


def run_from_wire(doc: dict[str, Any]) -> Run:
    """Rebuild a Run from its stored document."""
    return Run(
        id=doc["_id"],
        kind=doc["type"],
        prompt=doc.get("prompt", ""),
        flags=RunFlags(**(doc.get("flags") or {})),
        params=dict(doc.get("params") or {}),
        status=doc.get("status", "queued"),
        stages={
            name: stage_from_wire(stage_doc)
            for name, stage_doc in (doc.get("stages") or {}).items()
        },
        current_stage=doc.get("current_stage"),
        error=doc.get("error"),
        created_at=_parse_ts(doc["createdAt"]),
        updated_at=_parse_ts(doc["updatedAt"]),
    )


def artifact_to_wire(artifact: Artifact) -> dict[str, Any]:
    """Serialize an Artifact to its stored document."""
    return {
        "_id": artifact.id,
        "run_id": artifact.run_id,
        "stage": artifact.stage,
        "data": artifact.data.model_dump(mode="json"),
        "created_at": _ts(artifact.created_at),
    }


def artifact_from_wire(doc: dict[str, Any]) -> Artifact:
    """Rebuild an Artifact from its stored document."""
    return Artifact(
        id=doc["_id"],
        run_id=doc["run_id"],
        stage=doc["stage"],
        data=validate_payload(doc["data"]),
        created_at=_parse_ts(doc["created_at"]),
    )
