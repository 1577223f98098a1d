"""In-memory canon index loaded from a YAML canon file.

Canon file layout::

    chunks:
      - id: npc.valen#c1
        entity: npc.valen
        text: Valen keeps the lighthouse on Gull Point.
        region: sword-coast
        era: dalereckoning-1492
        tags: [lighthouse, smuggling]
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path  # noqa: TC003 - used at runtime
from typing import TYPE_CHECKING, Any

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from loreforge.models.artifacts import Fact
from loreforge.observability.logging import get_logger
from loreforge.retrieval.base import RetrievalResult

if TYPE_CHECKING:
    from collections.abc import Iterable

    from loreforge.models.artifacts import RetrievalHints

log = get_logger(__name__)

# Match strength, lower is better
RANK_ENTITY = 0
RANK_SETTING = 1
RANK_KEYWORD = 2

NO_MATCH_GAP = (
    "No canon chunks matched retrieval hints. Consider adding seed data or broadening search."
)


class CanonFileError(Exception):
    """Raised when a canon file cannot be loaded."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to load canon file at {path}: {reason}")


@dataclass(frozen=True)
class CanonChunk:
    """One stored piece of canon."""

    id: str
    text: str
    entity: str | None = None
    region: str | None = None
    era: str | None = None
    tags: tuple[str, ...] = field(default=())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CanonChunk:
        return cls(
            id=str(data["id"]),
            text=str(data.get("text", "")),
            entity=data.get("entity"),
            region=data.get("region"),
            era=data.get("era"),
            tags=tuple(str(tag) for tag in data.get("tags") or ()),
        )


def _folded(values: Iterable[str]) -> set[str]:
    return {value.strip().lower() for value in values if value.strip()}


class CanonIndex:
    """Matches canon chunks against retrieval hints.

    Args:
        chunks: Canon chunks in storage order.
        fetch_limit: Candidates considered before de-duplication.
        max_facts: Facts returned after de-duplication.
    """

    def __init__(
        self,
        chunks: Iterable[CanonChunk] = (),
        *,
        fetch_limit: int = 25,
        max_facts: int = 10,
    ) -> None:
        self.chunks = list(chunks)
        self.fetch_limit = fetch_limit
        self.max_facts = max_facts

    @classmethod
    def from_yaml(cls, path: Path, **kwargs: Any) -> CanonIndex:
        """Load an index from a canon YAML file.

        Raises:
            CanonFileError: If the file is missing or malformed.
        """
        if not path.exists():
            raise CanonFileError(path, "File not found")
        yaml = YAML(typ="safe")
        try:
            with path.open(encoding="utf-8") as f:
                data = yaml.load(f) or {}
            chunks = [CanonChunk.from_dict(dict(item)) for item in data.get("chunks") or []]
        except (YAMLError, KeyError, TypeError, ValueError, AttributeError) as e:
            raise CanonFileError(path, str(e)) from e
        log.debug("canon_loaded", path=str(path), chunks=len(chunks))
        return cls(chunks, **kwargs)

    def retrieve(self, hints: RetrievalHints) -> RetrievalResult:
        entities = _folded(hints.entities)
        settings = _folded([*hints.regions, *hints.eras])
        keywords = _folded(hints.keywords)

        candidates: list[tuple[CanonChunk, int]] = []
        for chunk in self.chunks:
            rank = self._match_rank(chunk, entities, settings, keywords)
            if rank is not None:
                candidates.append((chunk, rank))
            if len(candidates) >= self.fetch_limit:
                break

        seen_ids: set[str] = set()
        seen_texts: set[str] = set()
        facts: list[Fact] = []
        for chunk, rank in candidates:
            text = chunk.text.strip()
            normalized = text.lower()
            if not text or chunk.id in seen_ids or normalized in seen_texts:
                continue
            seen_ids.add(chunk.id)
            seen_texts.add(normalized)
            facts.append(Fact(id=chunk.id, text=text, source_entity=chunk.entity, rank=rank))
            if len(facts) >= self.max_facts:
                break

        found = list(dict.fromkeys(f.source_entity for f in facts if f.source_entity))
        gaps: list[str] = []
        if not facts:
            gaps.append(NO_MATCH_GAP)
        missing = [e for e in hints.entities if e.strip().lower() not in _folded(found)]
        if missing:
            gaps.append(f"Entities not found: {', '.join(missing)}")

        log.debug("canon_retrieved", facts=len(facts), entities=len(found), gaps=len(gaps))
        return RetrievalResult(facts=tuple(facts), entities=tuple(found), gaps=tuple(gaps))

    @staticmethod
    def _match_rank(
        chunk: CanonChunk, entities: set[str], settings: set[str], keywords: set[str]
    ) -> int | None:
        if chunk.entity and chunk.entity.lower() in entities:
            return RANK_ENTITY
        if any(value and value.lower() in settings for value in (chunk.region, chunk.era)):
            return RANK_SETTING
        if keywords & _folded(chunk.tags):
            return RANK_KEYWORD
        return None
