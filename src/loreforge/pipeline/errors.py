"""Stage failure records and pipeline errors."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class StageFailure:
    """Why a stage did not produce an artifact.

    Recorded on the stage state; the orchestrator never raises it.

    Attributes:
        stage: Failing stage name.
        message: Human-readable reason.
        cause: Exception type name when the failure came from an exception.
        notes: Diagnostics gathered before the failure.
    """

    stage: str
    message: str
    cause: str | None = None
    notes: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        if self.cause:
            return f"{self.stage}: {self.message} ({self.cause})"
        return f"{self.stage}: {self.message}"


class StageException(Exception):
    """Wraps an unexpected exception raised inside a stage function."""

    def __init__(self, stage: str, error: BaseException) -> None:
        self.stage = stage
        self.error = error
        super().__init__(f"Stage '{stage}' raised {type(error).__name__}: {error}")

    def to_failure(self) -> StageFailure:
        return StageFailure(
            stage=self.stage,
            message=str(self.error) or type(self.error).__name__,
            cause=type(self.error).__name__,
        )


class StageInputError(Exception):
    """Raised when a dependency artifact is missing or not ``ok``."""

    def __init__(self, stage: str, dependency: str, reason: str) -> None:
        self.stage = stage
        self.dependency = dependency
        self.reason = reason
        super().__init__(f"Stage '{stage}' cannot read input '{dependency}': {reason}")


class StageRegistryError(ValueError):
    """Raised when the stage DAG is invalid."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__("Invalid stage registry:\n  - " + "\n  - ".join(errors))
