"""SQLite-backed run store.

Runs and artifacts are stored as JSON documents in wire shape. Status updates
run inside ``BEGIN IMMEDIATE`` transactions so the compare-and-set is atomic
across processes sharing the database file, not only across threads.
"""

from __future__ import annotations

import json
import sqlite3
import threading
import uuid
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loreforge.models.artifacts import Artifact
from loreforge.models.run import utc_now
from loreforge.models.wire import artifact_from_wire, artifact_to_wire, run_from_wire, run_to_wire
from loreforge.storage.base import RunNotFoundError, apply_update

if TYPE_CHECKING:
    from loreforge.models.artifacts import StagePayload
    from loreforge.models.run import Run

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS runs (
    run_id     TEXT PRIMARY KEY,
    doc        JSON NOT NULL,
    status     TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_runs_status ON runs(status);

CREATE TABLE IF NOT EXISTS artifacts (
    artifact_id TEXT PRIMARY KEY,
    run_id      TEXT NOT NULL REFERENCES runs(run_id) ON DELETE CASCADE,
    stage       TEXT NOT NULL,
    doc         JSON NOT NULL,
    created_at  TEXT NOT NULL,
    UNIQUE (run_id, stage)
);
"""


class SqliteRunStore:
    """Run store on a SQLite file (or ``":memory:"``)."""

    def __init__(self, db_path: str | Path = ":memory:") -> None:
        self._db_path = str(db_path)
        if isinstance(db_path, Path):
            db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(
            self._db_path,
            isolation_level=None,  # autocommit; transactions are explicit
            check_same_thread=False,
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.executescript(_SCHEMA)
        self._lock = threading.Lock()

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def __enter__(self) -> SqliteRunStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -- Runs -----------------------------------------------------------------

    def create_run(self, run: Run) -> None:
        doc = run_to_wire(run)
        with self._lock:
            try:
                self._conn.execute(
                    "INSERT INTO runs (run_id, doc, status, created_at, updated_at) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (run.id, json.dumps(doc), run.status, doc["createdAt"], doc["updatedAt"]),
                )
            except sqlite3.IntegrityError as e:
                raise ValueError(f"Run already exists: {run.id}") from e

    def get_run(self, run_id: str) -> Run | None:
        with self._lock:
            row = self._conn.execute("SELECT doc FROM runs WHERE run_id = ?", (run_id,)).fetchone()
        return run_from_wire(json.loads(row["doc"])) if row is not None else None

    def list_runs(self) -> list[Run]:
        with self._lock:
            rows = self._conn.execute("SELECT doc FROM runs ORDER BY created_at").fetchall()
        return [run_from_wire(json.loads(row["doc"])) for row in rows]

    def upsert_run_status(
        self,
        run_id: str,
        fields: Mapping[str, Any],
        *,
        expected: Mapping[str, Any] | None = None,
    ) -> Run:
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                row = self._conn.execute(
                    "SELECT doc FROM runs WHERE run_id = ?", (run_id,)
                ).fetchone()
                if row is None:
                    raise RunNotFoundError(run_id)
                doc = apply_update(run_id, json.loads(row["doc"]), fields, expected)
                doc["updatedAt"] = utc_now().isoformat()
                run = run_from_wire(doc)
                self._conn.execute(
                    "UPDATE runs SET doc = ?, status = ?, updated_at = ? WHERE run_id = ?",
                    (json.dumps(doc), run.status, doc["updatedAt"], run_id),
                )
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            self._conn.execute("COMMIT")
        return run

    # -- Artifacts ------------------------------------------------------------

    def insert_artifact(self, run_id: str, stage: str, data: StagePayload) -> str:
        artifact = Artifact(id=uuid.uuid4().hex, run_id=run_id, stage=stage, data=data)
        doc = artifact_to_wire(artifact)
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                exists = self._conn.execute(
                    "SELECT 1 FROM runs WHERE run_id = ?", (run_id,)
                ).fetchone()
                if exists is None:
                    raise RunNotFoundError(run_id)
                self._conn.execute(
                    "DELETE FROM artifacts WHERE run_id = ? AND stage = ?", (run_id, stage)
                )
                self._conn.execute(
                    "INSERT INTO artifacts (artifact_id, run_id, stage, doc, created_at) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (artifact.id, run_id, stage, json.dumps(doc), doc["created_at"]),
                )
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            self._conn.execute("COMMIT")
        return artifact.id

    def find_artifact(self, run_id: str, stage: str) -> Artifact | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT doc FROM artifacts WHERE run_id = ? AND stage = ?", (run_id, stage)
            ).fetchone()
        return artifact_from_wire(json.loads(row["doc"])) if row is not None else None

    def delete_artifact(self, run_id: str, stage: str) -> bool:
        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM artifacts WHERE run_id = ? AND stage = ?", (run_id, stage)
            )
        return cursor.rowcount > 0
