"""Stage function contract.

A stage is ``async fn(ctx, inputs) -> StageOutput``. ``inputs`` holds the
artifacts of the stage's declared dependencies, keyed by stage name. Stages
never persist anything; the orchestrator validates and stores the artifact.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel

from loreforge.pipeline.errors import StageInputError

if TYPE_CHECKING:
    from loreforge.exchange.base import GenerationExchange
    from loreforge.models.artifacts import Artifact
    from loreforge.models.run import Run
    from loreforge.observability.exchange_logger import ExchangeLogger
    from loreforge.retrieval.base import FactRetriever
    from loreforge.runtime import Runtime

PayloadT = TypeVar("PayloadT", bound=BaseModel)


@dataclass
class StageContext:
    """What a stage function can see besides its inputs."""

    stage: str
    run: Run
    runtime: Runtime
    exchange: GenerationExchange | None = None
    retriever: FactRetriever | None = None
    exchange_logger: ExchangeLogger | None = None


@dataclass
class StageOutput:
    """Result of a stage function: an artifact, or an error, plus notes."""

    artifact: Any = None
    error: str | None = None
    notes: list[str] = field(default_factory=list)

    @classmethod
    def ok(cls, artifact: Any, notes: list[str] | None = None) -> StageOutput:
        return cls(artifact=artifact, notes=notes or [])

    @classmethod
    def fail(cls, error: str, notes: list[str] | None = None) -> StageOutput:
        return cls(error=error, notes=notes or [])


def require_payload(
    ctx: StageContext, inputs: dict[str, Artifact], name: str, payload_type: type[PayloadT]
) -> PayloadT:
    """The payload of dependency ``name``, checked against ``payload_type``.

    Raises:
        StageInputError: If the dependency is missing or of another variant.
    """
    artifact = inputs.get(name)
    if artifact is None:
        raise StageInputError(ctx.stage, name, "artifact not available")
    if not isinstance(artifact.data, payload_type):
        raise StageInputError(
            ctx.stage, name, f"expected {payload_type.__name__}, got {type(artifact.data).__name__}"
        )
    return artifact.data
