"""Normalizing chat model message content to plain text."""

from __future__ import annotations

from typing import Any


def extract_text(content: str | list[Any]) -> str:
    """Plain text from an ``AIMessage.content`` value.

    Some providers return a list of content blocks instead of a string; text
    blocks are joined with newlines. Plain strings pass through unchanged.
    """
    if isinstance(content, str):
        return content

    parts = [
        block["text"]
        for block in content
        if isinstance(block, dict) and block.get("type") == "text" and isinstance(block.get("text"), str)
    ]
    if parts:
        return "\n".join(parts)
    return "".join(block for block in content if isinstance(block, str))
