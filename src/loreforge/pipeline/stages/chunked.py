"""Drives a ``ChunkSession`` against the generation exchange."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from loreforge.exchange.parsing import ParseFailure
from loreforge.observability.logging import get_logger

if TYPE_CHECKING:
    from loreforge.chunking.session import ChunkSession
    from loreforge.exchange.base import GenerationExchange
    from loreforge.pipeline.stages.base import StageContext

log = get_logger(__name__)


class ExchangeRetriesExhausted(Exception):
    """Raised when every attempt at one chunk returned unparseable output."""

    def __init__(self, stage: str, chunk_index: int, attempts: int, failure: ParseFailure) -> None:
        self.stage = stage
        self.chunk_index = chunk_index
        self.attempts = attempts
        self.failure = failure
        super().__init__(
            f"Chunk {chunk_index + 1} of '{stage}' returned unparseable output "
            f"after {attempts} attempt(s): {failure}"
        )


async def drive_session(
    ctx: StageContext,
    session: ChunkSession,
    exchange: GenerationExchange,
    max_parse_retries: int,
) -> None:
    """Perform every exchange the session plans.

    A ``ParseFailure`` retries the same planned payload up to
    ``max_parse_retries`` more times; chunk state is not touched between tries.

    Raises:
        ExchangeRetriesExhausted: If a chunk never yields a parseable result.
        BudgetExceeded: If the planner cannot fit a chunk.
    """
    while (plan := session.next_exchange()) is not None:
        attempts = max_parse_retries + 1
        for attempt in range(1, attempts + 1):
            started = time.perf_counter()
            response = await exchange.exchange(plan.payload)
            duration = time.perf_counter() - started

            parse_error: ParseFailure | None = None
            try:
                session.submit_result(response)
            except ParseFailure as e:
                parse_error = e

            if ctx.exchange_logger is not None:
                ctx.exchange_logger.log(
                    ctx.exchange_logger.create_entry(
                        run_id=ctx.run.id,
                        stage=ctx.stage,
                        chunk_index=plan.chunk_index,
                        total_chunks=session.state.total_chunks,
                        payload=plan.payload,
                        response=response,
                        duration_seconds=duration,
                        attempt=attempt,
                        parse_error=str(parse_error) if parse_error else None,
                        facts=len(plan.included_facts),
                        deferred_facts=len(plan.residual.facts),
                    )
                )

            if parse_error is None:
                log.debug(
                    "chunk_exchanged",
                    stage=ctx.stage,
                    chunk=plan.chunk_index + 1,
                    attempt=attempt,
                    payload_chars=plan.size,
                    duration_seconds=round(duration, 3),
                )
                break
            log.warning(
                "chunk_parse_failed",
                stage=ctx.stage,
                chunk=plan.chunk_index + 1,
                attempt=attempt,
                category=parse_error.category,
                hint=parse_error.hint,
            )
            if attempt == attempts:
                raise ExchangeRetriesExhausted(ctx.stage, plan.chunk_index, attempts, parse_error)
