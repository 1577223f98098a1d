"""Persistence protocol for runs and artifacts.

Stores keep documents in wire shape (see ``loreforge.models.wire``). Status
updates address fields by dotted path (``"stages.creator.status"``) and may
carry an ``expected`` map: the update is applied only if every expected path
still holds the expected value, otherwise ``StaleRunStateError`` is raised.
That compare-and-set keeps two concurrent advances of one run from corrupting
its status.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from loreforge.models.artifacts import Artifact, StagePayload
    from loreforge.models.run import Run

_MISSING = object()


class RunNotFoundError(KeyError):
    """Raised when a run id is unknown to the store."""

    def __init__(self, run_id: str) -> None:
        self.run_id = run_id
        super().__init__(f"Run not found: {run_id}")

    def __str__(self) -> str:
        return str(self.args[0])


class StaleRunStateError(RuntimeError):
    """Raised when a compare-and-set finds state that changed underneath it.

    Attributes:
        run_id: Run being updated.
        path: First dotted path whose value did not match.
        expected: Value the caller expected.
        actual: Value found in the store.
    """

    def __init__(self, run_id: str, path: str, expected: Any, actual: Any) -> None:
        self.run_id = run_id
        self.path = path
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Run {run_id} changed concurrently: {path} is {actual!r}, expected {expected!r}"
        )


def get_path(doc: Mapping[str, Any], path: str) -> Any:
    """Value at a dotted path, or None when any segment is absent."""
    node: Any = doc
    for part in path.split("."):
        if not isinstance(node, Mapping) or part not in node:
            return None
        node = node[part]
    return node


def set_path(doc: dict[str, Any], path: str, value: Any) -> None:
    """Set a dotted path, creating intermediate objects as needed."""
    parts = path.split(".")
    node = doc
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    node[parts[-1]] = value


def apply_update(
    run_id: str,
    doc: dict[str, Any],
    fields: Mapping[str, Any],
    expected: Mapping[str, Any] | None,
) -> dict[str, Any]:
    """Check ``expected`` against ``doc`` and apply ``fields`` in place.

    Raises:
        StaleRunStateError: If an expected value does not match.
    """
    for path, value in (expected or {}).items():
        actual = get_path(doc, path)
        if actual != value:
            raise StaleRunStateError(run_id, path, value, actual)
    for path, value in fields.items():
        set_path(doc, path, value)
    return doc


@runtime_checkable
class RunStore(Protocol):
    """What the orchestrator needs from a persistence backend."""

    def create_run(self, run: Run) -> None:
        """Persist a new run. Raises ValueError if the id is taken."""
        ...

    def get_run(self, run_id: str) -> Run | None: ...

    def list_runs(self) -> list[Run]: ...

    def upsert_run_status(
        self,
        run_id: str,
        fields: Mapping[str, Any],
        *,
        expected: Mapping[str, Any] | None = None,
    ) -> Run:
        """Atomically check ``expected`` and apply ``fields`` (dotted wire paths).

        Raises:
            RunNotFoundError: If the run does not exist.
            StaleRunStateError: If an expected value no longer matches.
        """
        ...

    def insert_artifact(self, run_id: str, stage: str, data: StagePayload) -> str:
        """Store the artifact for (run, stage), replacing any earlier one."""
        ...

    def find_artifact(self, run_id: str, stage: str) -> Artifact | None: ...

    def delete_artifact(self, run_id: str, stage: str) -> bool:
        """Remove the artifact for (run, stage). Returns whether one existed."""
        ...
