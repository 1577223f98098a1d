"""Run and artifact persistence."""

from loreforge.storage.base import RunNotFoundError, RunStore, StaleRunStateError
from loreforge.storage.memory import MemoryRunStore
from loreforge.storage.sqlite import SqliteRunStore

__all__ = [
    "MemoryRunStore",
    "RunNotFoundError",
    "RunStore",
    "SqliteRunStore",
    "StaleRunStateError",
]
