"""JSONL capture of exchanges with the external generation process.

Each exchange (one chunk of one stage) is written to ``logs/exchanges.jsonl``
with the full outbound payload and the raw response. Content is never
truncated. Only active when ``--log`` is passed to the CLI.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pathlib import Path


@dataclass
class ExchangeLogEntry:
    """One recorded exchange."""

    timestamp: str
    run_id: str
    stage: str
    chunk_index: int
    total_chunks: int
    payload: str
    response: str
    payload_chars: int
    duration_seconds: float
    attempt: int = 1
    parse_error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class ExchangeLogger:
    """Append-only JSONL logger for generation exchanges.

    Attributes:
        log_path: Path to the JSONL log file.
        enabled: Whether entries are actually written.
    """

    def __init__(self, project_path: Path, enabled: bool = True) -> None:
        self.enabled = enabled
        self.log_path = project_path / "logs" / "exchanges.jsonl"
        if enabled:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)

    def log(self, entry: ExchangeLogEntry) -> None:
        """Append an entry to the log."""
        if not self.enabled:
            return

        with self.log_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(asdict(entry)) + "\n")

    @staticmethod
    def create_entry(
        run_id: str,
        stage: str,
        chunk_index: int,
        total_chunks: int,
        payload: str,
        response: str,
        duration_seconds: float,
        attempt: int = 1,
        parse_error: str | None = None,
        **metadata: Any,
    ) -> ExchangeLogEntry:
        """Build an entry stamped with the current time.

        Args:
            run_id: Run the exchange belongs to.
            stage: Stage driving the exchange.
            chunk_index: Zero-based chunk index.
            total_chunks: Estimated number of chunks for the stage.
            payload: Outbound payload text.
            response: Raw response text.
            duration_seconds: Wall time of the exchange.
            attempt: 1 for the first try, incremented on parse retries.
            parse_error: Parse failure message when the response was rejected.
            **metadata: Additional fields to record.

        Returns:
            ExchangeLogEntry ready for ``log``.
        """
        return ExchangeLogEntry(
            timestamp=datetime.now(UTC).isoformat(),
            run_id=run_id,
            stage=stage,
            chunk_index=chunk_index,
            total_chunks=total_chunks,
            payload=payload,
            response=response,
            payload_chars=len(payload),
            duration_seconds=duration_seconds,
            attempt=attempt,
            parse_error=parse_error,
            metadata=dict(metadata),
        )

    def read_entries(self) -> list[ExchangeLogEntry]:
        """Read all entries back from the log file."""
        if not self.log_path.exists():
            return []

        entries: list[ExchangeLogEntry] = []
        with self.log_path.open(encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line:
                    entries.append(ExchangeLogEntry(**json.loads(line)))
        return entries
