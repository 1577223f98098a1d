"""Integration test configuration and fixtures.

Provides fixtures for running the pipeline against real chat model providers.
Tests are automatically skipped if the required provider is not configured.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from dotenv import load_dotenv

# Load .env file at import time so provider availability checks work
load_dotenv()

if TYPE_CHECKING:
    from collections.abc import Generator

    from langchain_core.language_models import BaseChatModel


def _ollama_available() -> bool:
    """Check if an Ollama host is configured."""
    return bool(os.getenv("OLLAMA_HOST"))


def _openai_available() -> bool:
    """Check if OpenAI API key is configured."""
    return bool(os.getenv("OPENAI_API_KEY"))


@pytest.fixture(params=["ollama", "openai"])
def any_model(request: pytest.FixtureRequest) -> Generator[BaseChatModel, None, None]:
    """Parametrized fixture that provides both Ollama and OpenAI models.

    Tests using this fixture run twice - once per provider (if available).
    Skips providers that are not configured.
    """
    from loreforge.providers import create_chat_model

    provider = request.param
    if provider == "ollama":
        if not _ollama_available():
            pytest.skip("OLLAMA_HOST not set")
        yield create_chat_model("ollama/qwen3:8b")
    elif provider == "openai":
        if not _openai_available():
            pytest.skip("OPENAI_API_KEY not set")
        yield create_chat_model("openai/gpt-4o-mini")
