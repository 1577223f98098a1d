"""Chat model construction from ``provider/model`` strings.

Uses LangChain's ``init_chat_model`` so any installed integration works; the
provider-specific part is resolving connection settings from the environment.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any

from loreforge.observability.logging import get_logger

if TYPE_CHECKING:
    from langchain_core.language_models import BaseChatModel

log = get_logger(__name__)

PROVIDER_DEFAULTS: dict[str, str | None] = {
    "ollama": "qwen3:8b",
    "openai": "gpt-4o-mini",
}

_PACKAGES: dict[str, str] = {
    "ollama": "langchain-ollama",
    "openai": "langchain-openai",
}


class ProviderError(Exception):
    """Raised when a chat model cannot be created."""

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(f"[{provider}] {message}")


def parse_provider_string(value: str) -> tuple[str, str]:
    """Split ``"provider/model"``; a bare provider gets its default model.

    Raises:
        ProviderError: If the provider is unknown or has no default model.
    """
    provider, _, model = value.strip().partition("/")
    provider = provider.lower()
    if provider not in PROVIDER_DEFAULTS:
        raise ProviderError(provider, f"Unknown provider: {provider}")
    resolved = model or PROVIDER_DEFAULTS[provider]
    if not resolved:
        raise ProviderError(provider, "A model name is required (provider/model)")
    return provider, resolved


def create_chat_model(provider_string: str, **kwargs: Any) -> BaseChatModel:
    """Create a chat model for ``provider/model``.

    Args:
        provider_string: e.g. ``"ollama/qwen3:8b"`` or ``"openai/gpt-4o-mini"``.
        **kwargs: Extra model options (temperature, ...).

    Returns:
        Configured chat model.

    Raises:
        ProviderError: If the provider is unknown, misconfigured, or its
            integration package is not installed.
    """
    provider, model = parse_provider_string(provider_string)
    kwargs = dict(kwargs)

    if provider == "ollama":
        host = kwargs.pop("host", None) or os.getenv("OLLAMA_HOST")
        if not host:
            log.error("provider_config_error", provider=provider, missing="OLLAMA_HOST")
            raise ProviderError(provider, "OLLAMA_HOST not configured.")
        kwargs["base_url"] = host
    elif provider == "openai":
        api_key = kwargs.get("api_key") or os.getenv("OPENAI_API_KEY")
        if not api_key:
            log.error("provider_config_error", provider=provider, missing="OPENAI_API_KEY")
            raise ProviderError(provider, "API key required. Set OPENAI_API_KEY.")
        kwargs["api_key"] = api_key

    from langchain.chat_models import init_chat_model

    try:
        chat_model: BaseChatModel = init_chat_model(model=model, model_provider=provider, **kwargs)
    except ImportError as e:
        package = _PACKAGES[provider]
        log.error("provider_import_error", provider=provider, package=package)
        raise ProviderError(provider, f"{package} not installed. Run: pip install {package}") from e

    log.info("chat_model_created", provider=provider, model=model)
    return chat_model
