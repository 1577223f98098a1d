"""Parsing structured output returned by the generation exchange.

Responses are expected to be a single JSON object, but often arrive wrapped
in code fences, prefixed with chatter, or carrying trailing commas. The parser
cleans and repairs those before decoding. Anything still undecodable becomes a
``ParseFailure`` so the caller can retry the same exchange.
"""

from __future__ import annotations

import json
import re
from typing import Any, Literal

ParseCategory = Literal["empty", "truncated", "markdown", "syntax", "not_object"]

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\s*```\s*$")
_CITATIONS = re.compile(r"\[cite_(?:start|end)\]|【\d+†source】", re.IGNORECASE)
_PREFIXES = re.compile(
    r"^(?:here(?:'s| is) the json:|json:|response:|output:|result:)\s*", re.IGNORECASE
)
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_LINE_COMMENT = re.compile(r"^\s*//.*$", re.MULTILINE)

_HINTS: dict[str, str] = {
    "empty": "The response was empty; regenerate it.",
    "truncated": "The response appears cut off; regenerate it or reduce the requested output.",
    "markdown": "Return only the JSON object without code fences.",
    "syntax": "Return a single valid JSON object starting with { and ending with }.",
    "not_object": "Return a JSON object, not an array or scalar.",
}


class ParseFailure(Exception):
    """Raised when an exchange response cannot be decoded.

    Attributes:
        category: Failure category.
        detail: Decoder message, if any.
        raw: The raw response text.
    """

    def __init__(self, category: ParseCategory, detail: str, raw: str) -> None:
        self.category = category
        self.detail = detail
        self.raw = raw
        super().__init__(f"Could not parse exchange response ({category}): {detail}")

    @property
    def hint(self) -> str:
        return _HINTS[self.category]


def clean_response(text: str) -> str:
    """Strip fences, citation markers and chatty prefixes."""
    cleaned = text.strip()
    cleaned = _FENCE_OPEN.sub("", cleaned)
    cleaned = _FENCE_CLOSE.sub("", cleaned)
    cleaned = _CITATIONS.sub("", cleaned)
    cleaned = _PREFIXES.sub("", cleaned.strip())
    return cleaned.strip()


def repair_json(text: str) -> str:
    """Isolate the outermost object and drop trailing commas and line comments."""
    repaired = text
    start = repaired.find("{")
    if start > 0:
        repaired = repaired[start:]
    end = repaired.rfind("}")
    if end != -1:
        repaired = repaired[: end + 1]
    repaired = _LINE_COMMENT.sub("", repaired)
    return _TRAILING_COMMA.sub(r"\1", repaired)


def parse_structured_output(text: str) -> dict[str, Any]:
    """Decode an exchange response into a JSON object.

    Args:
        text: Raw response text.

    Returns:
        The decoded object.

    Raises:
        ParseFailure: If the response is empty, malformed or not an object.
    """
    if not text or not text.strip():
        raise ParseFailure("empty", "response contained no text", text)

    cleaned = clean_response(text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        repaired = repair_json(cleaned)
        try:
            data = json.loads(repaired)
        except json.JSONDecodeError as e:
            raise ParseFailure(_categorize(e, text, repaired), e.msg, text) from e

    if not isinstance(data, dict):
        raise ParseFailure("not_object", f"decoded a {type(data).__name__}", text)
    return data


def _categorize(error: json.JSONDecodeError, raw: str, candidate: str) -> ParseCategory:
    if error.msg.startswith("Unterminated") or error.pos >= len(candidate.rstrip()) - 1:
        return "truncated"
    if "```" in raw:
        return "markdown"
    return "syntax"
