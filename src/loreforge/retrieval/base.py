"""Fact retrieval collaborator interface."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from loreforge.models.artifacts import Fact, RetrievalHints


@dataclass(frozen=True)
class RetrievalResult:
    """Ranked, immutable bundle of grounding facts."""

    facts: tuple[Fact, ...] = ()
    entities: tuple[str, ...] = ()
    gaps: tuple[str, ...] = field(default=())


@runtime_checkable
class FactRetriever(Protocol):
    def retrieve(self, hints: RetrievalHints) -> RetrievalResult:
        """Return facts matching ``hints``, best matches ranked first."""
        ...
