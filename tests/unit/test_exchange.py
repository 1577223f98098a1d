"""Tests for the generation exchange adapters and response parsing."""

from __future__ import annotations

import pytest
from langchain_core.language_models import FakeListChatModel

from loreforge.exchange import (
    ChatModelExchange,
    GenerationExchange,
    ParseFailure,
    ScriptedExchange,
    clean_response,
    parse_structured_output,
)
from loreforge.providers import extract_text

# --- Parsing Tests ---


class TestParseStructuredOutput:
    """Decoding raw responses into objects."""

    def test_plain_object(self) -> None:
        assert parse_structured_output('{"name": "Valen"}') == {"name": "Valen"}

    def test_fenced_object(self) -> None:
        text = '```json\n{"name": "Valen"}\n```'

        assert parse_structured_output(text) == {"name": "Valen"}

    def test_chatty_prefix_and_trailing_comma(self) -> None:
        text = 'Here is the JSON: {"tags": ["a", "b",], "name": "Valen",}'

        assert parse_structured_output(text) == {"tags": ["a", "b"], "name": "Valen"}

    def test_surrounding_prose(self) -> None:
        text = 'Sure! {"name": "Valen"} Let me know if you need more.'

        assert parse_structured_output(text) == {"name": "Valen"}

    def test_empty(self) -> None:
        with pytest.raises(ParseFailure) as exc_info:
            parse_structured_output("   ")

        assert exc_info.value.category == "empty"
        assert "empty" in exc_info.value.hint

    def test_truncated(self) -> None:
        with pytest.raises(ParseFailure) as exc_info:
            parse_structured_output('{"name": "Valen", "text": "The light')

        assert exc_info.value.category == "truncated"

    def test_not_object(self) -> None:
        with pytest.raises(ParseFailure) as exc_info:
            parse_structured_output("[1, 2, 3]")

        assert exc_info.value.category == "not_object"
        assert exc_info.value.raw == "[1, 2, 3]"

    def test_syntax(self) -> None:
        with pytest.raises(ParseFailure) as exc_info:
            parse_structured_output("no json here at all")

        assert exc_info.value.category == "syntax"


def test_clean_response_strips_citations() -> None:
    assert clean_response('[cite_start]{"a": 1}[cite_end]') == '{"a": 1}'


def test_extract_text_from_blocks() -> None:
    content = [{"type": "text", "text": "one"}, {"type": "image"}, {"type": "text", "text": "two"}]

    assert extract_text(content) == "one\ntwo"
    assert extract_text("plain") == "plain"
    assert extract_text(["a", "b"]) == "ab"


# --- Exchange Tests ---


class TestScriptedExchange:
    """Canned responses for dry runs."""

    @pytest.mark.asyncio
    async def test_replays_in_order(self) -> None:
        exchange = ScriptedExchange(["first", "second"])

        assert await exchange.exchange("p1") == "first"
        assert await exchange.exchange("p2") == "second"
        assert exchange.payloads == ["p1", "p2"]

    @pytest.mark.asyncio
    async def test_exhausted(self) -> None:
        exchange = ScriptedExchange([])

        with pytest.raises(RuntimeError, match="no responses left"):
            await exchange.exchange("p")

    def test_satisfies_protocol(self) -> None:
        assert isinstance(ScriptedExchange([]), GenerationExchange)


class TestChatModelExchange:
    """LangChain-backed exchange."""

    @pytest.mark.asyncio
    async def test_returns_model_text(self) -> None:
        model = FakeListChatModel(responses=['{"name": "Valen"}'])
        exchange = ChatModelExchange(model)

        text = await exchange.exchange("Draft an NPC")

        assert parse_structured_output(text) == {"name": "Valen"}

    @pytest.mark.asyncio
    async def test_with_system_prompt(self) -> None:
        model = FakeListChatModel(responses=["ok"])
        exchange = ChatModelExchange(model, system_prompt="Be terse.")

        assert await exchange.exchange("Hello") == "ok"
        assert isinstance(exchange, GenerationExchange)
