"""External generation exchange: protocol, adapters, and response parsing."""

from loreforge.exchange.base import GenerationExchange, ScriptedExchange
from loreforge.exchange.chat_model import ChatModelExchange
from loreforge.exchange.parsing import (
    ParseFailure,
    clean_response,
    parse_structured_output,
    repair_json,
)

__all__ = [
    "ChatModelExchange",
    "GenerationExchange",
    "ParseFailure",
    "ScriptedExchange",
    "clean_response",
    "parse_structured_output",
    "repair_json",
]
