"""Stage registry: the dependency DAG of pipeline stages.

Stages are registered with their dependencies and the payload variant they
produce. ``validate()`` reports missing dependencies and cycles;
``execution_order()`` linearizes the DAG with Kahn's algorithm, breaking ties
by priority so unrelated stages keep registration order.

Usage::

    registry = StageRegistry()

    @registry.stage("retriever", depends_on=["planner"], payload_kind="factpack")
    async def retrieve(ctx, inputs):
        ...
"""

from __future__ import annotations

import heapq
from collections import defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from loreforge.pipeline.errors import StageRegistryError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from loreforge.models.artifacts import PayloadKind


@dataclass(frozen=True)
class StageSpec:
    """A registered stage."""

    name: str
    depends_on: tuple[str, ...]
    payload_kind: PayloadKind
    fn: Callable[..., Any]
    priority: int


class StageRegistry:
    """Stage specs keyed by name, in registration order."""

    def __init__(self) -> None:
        self._stages: dict[str, StageSpec] = {}

    # -- Registration ----------------------------------------------------------

    def register(
        self,
        name: str,
        fn: Callable[..., Any],
        *,
        depends_on: Iterable[str] = (),
        payload_kind: PayloadKind,
        priority: int | None = None,
    ) -> StageSpec:
        """Register a stage function.

        Raises:
            ValueError: If a stage with the same name is already registered.
        """
        if name in self._stages:
            msg = (
                f"Duplicate stage name {name!r}: "
                f"already registered by {self._stages[name].fn.__qualname__}"
            )
            raise ValueError(msg)
        spec = StageSpec(
            name=name,
            depends_on=tuple(depends_on),
            payload_kind=payload_kind,
            fn=fn,
            priority=priority if priority is not None else len(self._stages),
        )
        self._stages[name] = spec
        return spec

    def stage(
        self,
        name: str,
        *,
        depends_on: Iterable[str] = (),
        payload_kind: PayloadKind,
        priority: int | None = None,
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Decorator form of ``register``."""

        def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
            self.register(
                name, fn, depends_on=depends_on, payload_kind=payload_kind, priority=priority
            )
            return fn

        return decorator

    # -- Validation ------------------------------------------------------------

    def validate(self) -> list[str]:
        """Validate the dependency DAG.

        Returns:
            List of error strings. Empty means valid.
        """
        errors: list[str] = []

        for spec in self._stages.values():
            for dep in spec.depends_on:
                if dep not in self._stages:
                    errors.append(f"Stage {spec.name!r} depends on {dep!r}, which is not registered")

        if not errors:
            in_degree = self._in_degrees()
            adj = self._adjacency()
            queue = [name for name, deg in in_degree.items() if deg == 0]
            visited = 0
            while queue:
                node = queue.pop()
                visited += 1
                for neighbor in adj[node]:
                    in_degree[neighbor] -= 1
                    if in_degree[neighbor] == 0:
                        queue.append(neighbor)

            if visited != len(self._stages):
                cycle_members = [name for name, deg in in_degree.items() if deg > 0]
                errors.append(
                    f"Dependency cycle detected among: {', '.join(sorted(cycle_members))}"
                )

        return errors

    def check(self) -> None:
        """Raise ``StageRegistryError`` if the DAG is invalid."""
        errors = self.validate()
        if errors:
            raise StageRegistryError(errors)

    # -- Execution order -------------------------------------------------------

    def execution_order(self) -> list[str]:
        """Return stage names in stable topological order.

        Raises:
            StageRegistryError: If the DAG is invalid.
        """
        self.check()
        in_degree = self._in_degrees()
        adj = self._adjacency()

        heap: list[tuple[int, str]] = []
        for name, deg in in_degree.items():
            if deg == 0:
                heapq.heappush(heap, (self._stages[name].priority, name))

        result: list[str] = []
        while heap:
            _priority, name = heapq.heappop(heap)
            result.append(name)
            for neighbor in adj[name]:
                in_degree[neighbor] -= 1
                if in_degree[neighbor] == 0:
                    heapq.heappush(heap, (self._stages[neighbor].priority, neighbor))
        return result

    def subset(self, names: Iterable[str]) -> StageRegistry:
        """Registry restricted to ``names``, keeping the original priorities.

        Raises:
            StageRegistryError: If a name is unknown or a kept stage depends on
                a dropped one.
        """
        wanted = list(names)
        unknown = [name for name in wanted if name not in self._stages]
        if unknown:
            raise StageRegistryError([f"Unknown stage {name!r}" for name in unknown])
        restricted = StageRegistry()
        for name in wanted:
            restricted._stages[name] = self._stages[name]
        restricted.check()
        return restricted

    def _in_degrees(self) -> dict[str, int]:
        in_degree: dict[str, int] = dict.fromkeys(self._stages, 0)
        for spec in self._stages.values():
            in_degree[spec.name] += len(spec.depends_on)
        return in_degree

    def _adjacency(self) -> dict[str, list[str]]:
        adj: dict[str, list[str]] = defaultdict(list)
        for spec in self._stages.values():
            for dep in spec.depends_on:
                adj[dep].append(spec.name)
        return adj

    # -- Lookup ----------------------------------------------------------------

    def get(self, name: str) -> StageSpec:
        """Look up a stage.

        Raises:
            KeyError: If no stage has that name.
        """
        try:
            return self._stages[name]
        except KeyError:
            raise KeyError(f"Unknown stage {name!r}") from None

    @property
    def stage_names(self) -> list[str]:
        """All registered stage names (insertion order)."""
        return list(self._stages)

    def __len__(self) -> int:
        return len(self._stages)

    def __contains__(self, name: object) -> bool:
        return name in self._stages

    def stage_table(self) -> str:
        """Markdown table of stages in execution order."""
        lines = ["| Priority | Name | Produces | Depends On |"]
        lines.append("|----------|------|----------|------------|")
        for name in self.execution_order():
            spec = self._stages[name]
            deps = ", ".join(spec.depends_on) if spec.depends_on else "-"
            lines.append(f"| {spec.priority} | {name} | {spec.payload_kind} | {deps} |")
        return "\n".join(lines)
