"""The boundary to the external generation process."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class GenerationExchange(Protocol):
    """One bounded request/response round trip.

    Outbound is a single composed text payload. Inbound is the raw response
    text; decoding it is the caller's job (see ``parse_structured_output``).
    """

    async def exchange(self, payload: str) -> str:
        """Send ``payload`` and return the raw response text."""
        ...


class ScriptedExchange:
    """Replays canned responses in order and records every payload sent.

    Used for dry runs and tests where no model is configured.
    """

    def __init__(self, responses: list[str]) -> None:
        self._responses = list(responses)
        self.payloads: list[str] = []

    async def exchange(self, payload: str) -> str:
        self.payloads.append(payload)
        if not self._responses:
            raise RuntimeError("ScriptedExchange has no responses left")
        return self._responses.pop(0)
