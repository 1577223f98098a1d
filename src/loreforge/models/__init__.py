"""Domain models: runs, stage payloads, chunk state, and wire mapping."""

from loreforge.models.artifacts import (
    Artifact,
    BriefPayload,
    CanonDelta,
    ContinuityLedger,
    Draft,
    DraftPayload,
    Fact,
    FactCheckPayload,
    FactPackPayload,
    FinalPayload,
    GuardPayload,
    PayloadKind,
    PayloadKindMismatchError,
    Proposal,
    RetrievalHints,
    StagePayload,
    normalize_question,
    validate_payload,
)
from loreforge.models.chunk import ChunkState, Contribution, Decision
from loreforge.models.run import (
    RUN_KINDS,
    Run,
    RunFlags,
    RunKind,
    RunStatus,
    StageState,
    StageStatus,
    create_run,
    utc_now,
)
from loreforge.models.wire import (
    artifact_from_wire,
    artifact_to_wire,
    run_from_wire,
    run_to_wire,
)

__all__ = [
    "RUN_KINDS",
    "Artifact",
    "BriefPayload",
    "CanonDelta",
    "ChunkState",
    "ContinuityLedger",
    "Contribution",
    "Decision",
    "Draft",
    "DraftPayload",
    "Fact",
    "FactCheckPayload",
    "FactPackPayload",
    "FinalPayload",
    "GuardPayload",
    "PayloadKind",
    "PayloadKindMismatchError",
    "Proposal",
    "RetrievalHints",
    "Run",
    "RunFlags",
    "RunKind",
    "RunStatus",
    "StagePayload",
    "StageState",
    "StageStatus",
    "artifact_from_wire",
    "artifact_to_wire",
    "create_run",
    "normalize_question",
    "run_from_wire",
    "run_to_wire",
    "utc_now",
    "validate_payload",
]
