"""Version compatibility policy for schema-version fields.

Contributors sometimes disagree on the schema version they declare, or spell
the same version loosely (``v1.1``, ``1.1.0``, the number ``1.1``). The policy
lists the known canonical versions from oldest to most current and maps
loose spellings onto them. During a merge the most current known version wins.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

DEFAULT_CANONICAL_VERSIONS: tuple[str, ...] = ("1.0", "1.1")

_PREFIX = re.compile(r"^(?:version|ver|v)\s*", re.IGNORECASE)


@dataclass(frozen=True)
class VersionPolicy:
    """Canonical versions in ascending order plus explicit aliases.

    Attributes:
        canonical: Known versions, oldest first.
        aliases: Extra loose spellings mapped to a canonical version.
    """

    canonical: tuple[str, ...] = DEFAULT_CANONICAL_VERSIONS
    aliases: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.canonical:
            raise ValueError("VersionPolicy requires at least one canonical version")
        unknown = [target for target in self.aliases.values() if target not in self.canonical]
        if unknown:
            raise ValueError(f"Version aliases point at unknown versions: {', '.join(unknown)}")

    def normalize(self, value: Any) -> str | None:
        """Canonical form of ``value``, or None if it is not a known version."""
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, int):
            text = f"{value}.0"
        elif isinstance(value, float):
            text = repr(value)
        elif isinstance(value, str):
            text = value
        else:
            return None

        text = text.strip().lower()
        if text in self.aliases:
            return self.aliases[text]
        text = _PREFIX.sub("", text)
        if text in self.canonical:
            return text
        if text.isdigit():
            text = f"{text}.0"
        while text not in self.canonical and text.count(".") > 1 and text.endswith(".0"):
            text = text[:-2]
        return text if text in self.canonical else None

    def rank(self, value: Any) -> int:
        """Position of ``value`` in the canonical order, -1 if unknown."""
        canonical = self.normalize(value)
        return self.canonical.index(canonical) if canonical is not None else -1

    def resolve(self, values: Sequence[Any]) -> Any:
        """Pick the most current known version among ``values``.

        Known versions are returned in canonical spelling. When none of the
        values is known, the last one is kept unchanged.
        """
        best: str | None = None
        best_rank = -1
        for value in values:
            rank = self.rank(value)
            if rank > best_rank:
                best_rank = rank
                best = self.canonical[rank]
        if best is None:
            return values[-1] if values else None
        return best

    @property
    def current(self) -> str:
        return self.canonical[-1]
