"""Generation exchange backed by a LangChain chat model."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from langchain_core.messages import HumanMessage, SystemMessage

from loreforge.observability.logging import get_logger
from loreforge.providers.content import extract_text

if TYPE_CHECKING:
    from langchain_core.language_models import BaseChatModel

log = get_logger(__name__)


class ChatModelExchange:
    """Sends each payload as one human message to a chat model.

    Args:
        model: Any LangChain ``BaseChatModel``.
        system_prompt: Optional system message prepended to every exchange.
            Payloads produced by the chunk planner already embed their
            instructions, so this is normally left empty.
    """

    def __init__(self, model: BaseChatModel, system_prompt: str | None = None) -> None:
        self.model = model
        self.system_prompt = system_prompt

    async def exchange(self, payload: str) -> str:
        messages = [HumanMessage(content=payload)]
        if self.system_prompt:
            messages.insert(0, SystemMessage(content=self.system_prompt))

        start = time.perf_counter()
        response = await self.model.ainvoke(messages)
        text = extract_text(response.content)
        log.debug(
            "exchange_complete",
            payload_chars=len(payload),
            response_chars=len(text),
            duration_seconds=round(time.perf_counter() - start, 3),
        )
        return text
