"""Guard protocol, results, and the guard registry.

A guard is an independent post-hoc checker over a produced draft. It returns
``ok=False`` with errors to halt the run, or ``ok=True`` with advisory flags
and suggestions. A guard that does not apply to the run's content domain
returns an explicit skip result instead of running its checks.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from loreforge.models.artifacts import GuardPayload
from loreforge.observability.logging import get_logger

if TYPE_CHECKING:
    from loreforge.models.artifacts import StagePayload
    from loreforge.models.run import Run

log = get_logger(__name__)


@dataclass
class GuardResult:
    """Outcome of one guard invocation."""

    guard: str
    ok: bool = True
    errors: list[str] = field(default_factory=list)
    flags: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    skipped: bool = False
    reason: str | None = None

    @classmethod
    def skip(cls, guard: str, reason: str) -> GuardResult:
        return cls(guard=guard, ok=True, skipped=True, reason=reason)

    @classmethod
    def from_findings(
        cls,
        guard: str,
        errors: list[str],
        flags: list[str] | None = None,
        suggestions: list[str] | None = None,
    ) -> GuardResult:
        return cls(
            guard=guard,
            ok=not errors,
            errors=errors,
            flags=flags or [],
            suggestions=suggestions or [],
        )

    @property
    def has_advisories(self) -> bool:
        return bool(self.flags or self.suggestions)

    def to_payload(self) -> GuardPayload:
        return GuardPayload(
            guard=self.guard,
            ok=self.ok,
            skipped=self.skipped,
            reason=self.reason,
            errors=list(self.errors),
            flags=list(self.flags),
            suggestions=list(self.suggestions),
        )


@runtime_checkable
class Guard(Protocol):
    """A pluggable plausibility checker."""

    name: str

    def applies_to(self, run: Run) -> str | None:
        """Return a skip reason when the guard does not apply to ``run``."""
        ...

    def check(
        self,
        draft: Mapping[str, Any] | None,
        supporting: Mapping[str, StagePayload],
        run: Run,
    ) -> GuardResult:
        """Run the checks.

        Args:
            draft: The draft under test, as a plain mapping.
            supporting: Other artifacts the guard declared as inputs.
            run: The run being validated.
        """
        ...


class NumericDomainMixin:
    """Skips guards whose checks only make sense for game mechanics."""

    name: str

    def applies_to(self, run: Run) -> str | None:
        if run.flags.domain == "writing":
            return f"{self.name} checks game mechanics and does not apply to the writing domain"
        return None


def run_guard(
    guard: Guard,
    draft: Mapping[str, Any] | None,
    supporting: Mapping[str, StagePayload],
    run: Run,
) -> GuardResult:
    """Invoke ``guard``, honoring its applicability check."""
    reason = guard.applies_to(run)
    if reason is not None:
        log.info("guard_skipped", guard=guard.name, reason=reason)
        return GuardResult.skip(guard.name, reason)

    result = guard.check(draft, supporting, run)
    log.info(
        "guard_checked",
        guard=guard.name,
        ok=result.ok,
        errors=len(result.errors),
        flags=len(result.flags),
        suggestions=len(result.suggestions),
    )
    return result


class GuardRegistry:
    """Guards by name. One instance is built per process and passed around."""

    def __init__(self, guards: list[Guard] | None = None) -> None:
        self._guards: dict[str, Guard] = {}
        for guard in guards or []:
            self.register(guard)

    def register(self, guard: Guard) -> None:
        """Add a guard.

        Raises:
            ValueError: If a guard with the same name is already registered.
        """
        if guard.name in self._guards:
            raise ValueError(f"Duplicate guard name {guard.name!r}")
        self._guards[guard.name] = guard

    def get(self, name: str) -> Guard:
        """Look up a guard.

        Raises:
            KeyError: If no guard has that name.
        """
        try:
            return self._guards[name]
        except KeyError:
            available = ", ".join(sorted(self._guards)) or "none"
            raise KeyError(f"Unknown guard {name!r} (available: {available})") from None

    @property
    def names(self) -> list[str]:
        return list(self._guards)

    def __contains__(self, name: object) -> bool:
        return name in self._guards

    def __iter__(self) -> Iterator[Guard]:
        return iter(self._guards.values())

    def __len__(self) -> int:
        return len(self._guards)
