"""In-process run store."""

from __future__ import annotations

import copy
import threading
import uuid
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from loreforge.models.artifacts import Artifact
from loreforge.models.run import utc_now
from loreforge.models.wire import artifact_from_wire, artifact_to_wire, run_from_wire, run_to_wire
from loreforge.storage.base import RunNotFoundError, apply_update

if TYPE_CHECKING:
    from loreforge.models.artifacts import StagePayload
    from loreforge.models.run import Run


class MemoryRunStore:
    """Dict-backed store; every operation holds one lock, so updates are atomic."""

    def __init__(self) -> None:
        self._runs: dict[str, dict[str, Any]] = {}
        self._artifacts: dict[tuple[str, str], dict[str, Any]] = {}
        self._lock = threading.Lock()

    def create_run(self, run: Run) -> None:
        with self._lock:
            if run.id in self._runs:
                raise ValueError(f"Run already exists: {run.id}")
            self._runs[run.id] = run_to_wire(run)

    def get_run(self, run_id: str) -> Run | None:
        with self._lock:
            doc = self._runs.get(run_id)
            return run_from_wire(copy.deepcopy(doc)) if doc is not None else None

    def list_runs(self) -> list[Run]:
        with self._lock:
            docs = [copy.deepcopy(doc) for doc in self._runs.values()]
        return sorted((run_from_wire(doc) for doc in docs), key=lambda run: run.created_at)

    def upsert_run_status(
        self,
        run_id: str,
        fields: Mapping[str, Any],
        *,
        expected: Mapping[str, Any] | None = None,
    ) -> Run:
        with self._lock:
            current = self._runs.get(run_id)
            if current is None:
                raise RunNotFoundError(run_id)
            doc = apply_update(run_id, copy.deepcopy(current), fields, expected)
            doc["updatedAt"] = utc_now().isoformat()
            run = run_from_wire(doc)
            self._runs[run_id] = doc
            return run

    def insert_artifact(self, run_id: str, stage: str, data: StagePayload) -> str:
        artifact = Artifact(id=uuid.uuid4().hex, run_id=run_id, stage=stage, data=data)
        with self._lock:
            if run_id not in self._runs:
                raise RunNotFoundError(run_id)
            self._artifacts[(run_id, stage)] = artifact_to_wire(artifact)
        return artifact.id

    def find_artifact(self, run_id: str, stage: str) -> Artifact | None:
        with self._lock:
            doc = self._artifacts.get((run_id, stage))
            return artifact_from_wire(copy.deepcopy(doc)) if doc is not None else None

    def delete_artifact(self, run_id: str, stage: str) -> bool:
        with self._lock:
            return self._artifacts.pop((run_id, stage), None) is not None
