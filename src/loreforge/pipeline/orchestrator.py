"""Run orchestrator: drives a run's stages in dependency order.

For each stage the orchestrator marks it ``running`` (compare-and-set on the
stored status), hands it the artifacts of its dependencies, validates the
payload it returns against the declared variant, and persists it. The first
stage that fails stops the run. Stages that are already ``ok`` with a stored
artifact are not re-run unless ``restart_from`` names them or an earlier stage.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from pydantic import ValidationError

from loreforge.models.artifacts import Artifact, PayloadKindMismatchError, validate_payload
from loreforge.models.run import StageState, utc_now
from loreforge.models.wire import stage_to_wire
from loreforge.observability.logging import bind_run_context, clear_run_context, get_logger
from loreforge.pipeline.errors import StageException, StageFailure, StageInputError
from loreforge.pipeline.stages.base import StageContext, StageOutput
from loreforge.storage.base import RunNotFoundError

if TYPE_CHECKING:
    from loreforge.exchange.base import GenerationExchange
    from loreforge.models.artifacts import StagePayload
    from loreforge.models.run import Run, RunStatus
    from loreforge.observability.exchange_logger import ExchangeLogger
    from loreforge.pipeline.registry import StageSpec
    from loreforge.retrieval.base import FactRetriever
    from loreforge.runtime import Runtime
    from loreforge.storage.base import RunStore

log = get_logger(__name__)


@dataclass
class StageResult:
    """Outcome of one stage within a ``start_run`` call."""

    stage: str
    status: Literal["ok", "fail", "skipped"]
    artifact_id: str | None = None
    notes: list[str] = field(default_factory=list)
    error: str | None = None
    cause: str | None = None
    duration_seconds: float = 0.0


@dataclass
class RunReport:
    """What happened to a run during one ``start_run`` call."""

    run_id: str
    status: RunStatus
    stages: list[StageResult] = field(default_factory=list)
    error: str | None = None

    @property
    def failed_stage(self) -> str | None:
        return next((r.stage for r in self.stages if r.status == "fail"), None)

    def result_for(self, stage: str) -> StageResult | None:
        return next((r for r in self.stages if r.stage == stage), None)


def failed_at(stage: str) -> str:
    return f"Failed at stage: {stage}"


class Orchestrator:
    """Executes runs against a store.

    Args:
        runtime: Stage and guard registries plus shared settings.
        store: Persistence for runs and artifacts.
        exchange: Generation exchange used by drafting stages.
        retriever: Fact retriever used by the retriever stage.
        exchange_logger: Optional JSONL recorder of every exchange.
    """

    def __init__(
        self,
        runtime: Runtime,
        store: RunStore,
        *,
        exchange: GenerationExchange | None = None,
        retriever: FactRetriever | None = None,
        exchange_logger: ExchangeLogger | None = None,
    ) -> None:
        self.runtime = runtime
        self.store = store
        self.exchange = exchange
        self.retriever = retriever
        self.exchange_logger = exchange_logger

    async def start_run(self, run_id: str, *, restart_from: str | None = None) -> RunReport:
        """Execute the run's remaining stages.

        Args:
            run_id: Run to execute.
            restart_from: Re-execute this stage and every later one even if
                they already succeeded.

        Returns:
            RunReport with one StageResult per stage touched.

        Raises:
            RunNotFoundError: If the run does not exist.
            ValueError: If ``restart_from`` is not a registered stage.
            StaleRunStateError: If the run changed concurrently.
        """
        run = self.store.get_run(run_id)
        if run is None:
            raise RunNotFoundError(run_id)

        order = self.runtime.stages.execution_order()
        if restart_from is not None and restart_from not in order:
            raise ValueError(f"Unknown stage {restart_from!r} (stages: {', '.join(order)})")

        bind_run_context(run_id)
        try:
            return await self._execute(run, order, restart_from)
        finally:
            clear_run_context()

    async def _execute(self, run: Run, order: list[str], restart_from: str | None) -> RunReport:
        fields: dict[str, Any] = {"status": "running", "error": None}
        reset = order[order.index(restart_from) :] if restart_from is not None else []
        for name in reset:
            fields[f"stages.{name}"] = stage_to_wire(StageState())
        for name in order:
            if name not in run.stages:
                fields[f"stages.{name}"] = stage_to_wire(StageState())
        run = self.store.upsert_run_status(run.id, fields, expected={"status": run.status})
        # Only a run this call owns loses its artifacts.
        for name in reset:
            self.store.delete_artifact(run.id, name)
        log.info("run_start", kind=run.kind, stages=len(order), restart_from=restart_from)

        report = RunReport(run_id=run.id, status="running")
        artifacts: dict[str, Artifact] = {}
        for name in order:
            state = run.stage(name)
            if state.status == "ok":
                existing = self.store.find_artifact(run.id, name)
                if existing is not None:
                    artifacts[name] = existing
                    report.stages.append(
                        StageResult(
                            stage=name,
                            status="skipped",
                            artifact_id=existing.id,
                            notes=list(state.notes),
                        )
                    )
                    log.debug("stage_skipped", stage=name, artifact_id=existing.id)
                    continue

            spec = self.runtime.stages.get(name)
            run, result = await self._run_stage(run, spec, artifacts)
            report.stages.append(result)
            bind_run_context(run.id)
            if result.status == "fail":
                report.status = "failed"
                report.error = run.error
                log.error("run_failed", stage=name, error=result.error)
                return report

        run = self.store.upsert_run_status(
            run.id, {"status": "completed", "current_stage": None, "error": None}
        )
        report.status = "completed"
        log.info("run_complete", stages=len(report.stages))
        return report

    async def _run_stage(
        self, run: Run, spec: StageSpec, artifacts: dict[str, Artifact]
    ) -> tuple[Run, StageResult]:
        name = spec.name
        prefix = f"stages.{name}"
        bind_run_context(run.id, name)
        run = self.store.upsert_run_status(
            run.id,
            {
                f"{prefix}.status": "running",
                f"{prefix}.error": None,
                f"{prefix}.cause": None,
                f"{prefix}.notes": [],
                f"{prefix}.started_at": utc_now().isoformat(),
                f"{prefix}.completed_at": None,
                "current_stage": name,
            },
            expected={f"{prefix}.status": run.stage(name).status},
        )
        log.info("stage_start", depends_on=list(spec.depends_on))
        started = time.perf_counter()

        output = StageOutput()
        payload: StagePayload | None = None
        failure: StageFailure | None = None
        try:
            inputs = self._resolve_inputs(run, spec, artifacts)
            ctx = StageContext(
                stage=name,
                run=run,
                runtime=self.runtime,
                exchange=self.exchange,
                retriever=self.retriever,
                exchange_logger=self.exchange_logger,
            )
            output = await spec.fn(ctx, inputs)
        except StageInputError as e:
            failure = StageFailure(name, str(e), cause=type(e).__name__)
        except Exception as e:
            log.debug("stage_exception", exc_info=True)
            failure = StageException(name, e).to_failure()

        if failure is None:
            failure, payload = self._interpret(spec, output)
        duration = time.perf_counter() - started

        if failure is not None:
            return self._record_failure(run, failure, duration)

        assert payload is not None
        artifact_id = self.store.insert_artifact(run.id, name, payload)
        run = self.store.upsert_run_status(
            run.id,
            {
                f"{prefix}.status": "ok",
                f"{prefix}.artifact_id": artifact_id,
                f"{prefix}.notes": list(output.notes),
                f"{prefix}.completed_at": utc_now().isoformat(),
            },
        )
        artifacts[name] = Artifact(id=artifact_id, run_id=run.id, stage=name, data=payload)
        log.info(
            "stage_complete",
            artifact_id=artifact_id,
            notes=len(output.notes),
            duration_seconds=round(duration, 3),
        )
        result = StageResult(
            stage=name,
            status="ok",
            artifact_id=artifact_id,
            notes=list(output.notes),
            duration_seconds=duration,
        )
        return run, result

    @staticmethod
    def _interpret(
        spec: StageSpec, output: StageOutput
    ) -> tuple[StageFailure | None, StagePayload | None]:
        if output.error:
            return StageFailure(spec.name, output.error, notes=list(output.notes)), None
        if output.artifact is None:
            return StageFailure(spec.name, "Stage produced no artifact", notes=list(output.notes)), None
        try:
            return None, validate_payload(output.artifact, spec.payload_kind)
        except (ValidationError, PayloadKindMismatchError) as e:
            failure = StageFailure(
                spec.name,
                f"Invalid '{spec.payload_kind}' payload: {e}",
                cause=type(e).__name__,
                notes=list(output.notes),
            )
            return failure, None

    def _resolve_inputs(
        self, run: Run, spec: StageSpec, artifacts: dict[str, Artifact]
    ) -> dict[str, Artifact]:
        inputs: dict[str, Artifact] = {}
        for dep in spec.depends_on:
            if dep in artifacts:
                inputs[dep] = artifacts[dep]
                continue
            state = run.stage(dep)
            if state.status != "ok":
                raise StageInputError(spec.name, dep, f"dependency status is '{state.status}'")
            artifact = self.store.find_artifact(run.id, dep)
            if artifact is None:
                raise StageInputError(spec.name, dep, "no stored artifact")
            inputs[dep] = artifact
        return inputs

    def _record_failure(
        self, run: Run, failure: StageFailure, duration: float
    ) -> tuple[Run, StageResult]:
        name = failure.stage
        prefix = f"stages.{name}"
        self.store.delete_artifact(run.id, name)
        run = self.store.upsert_run_status(
            run.id,
            {
                f"{prefix}.status": "fail",
                f"{prefix}.error": failure.message,
                f"{prefix}.cause": failure.cause,
                f"{prefix}.artifact_id": None,
                f"{prefix}.notes": list(failure.notes),
                f"{prefix}.completed_at": utc_now().isoformat(),
                "status": "failed",
                "current_stage": name,
                "error": failed_at(name),
            },
        )
        log.error(
            "stage_failed",
            error=failure.message,
            cause=failure.cause,
            duration_seconds=round(duration, 3),
        )
        result = StageResult(
            stage=name,
            status="fail",
            notes=list(failure.notes),
            error=failure.message,
            cause=failure.cause,
            duration_seconds=duration,
        )
        return run, result
