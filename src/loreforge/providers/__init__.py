"""Chat model providers."""

from loreforge.providers.content import extract_text
from loreforge.providers.factory import (
    PROVIDER_DEFAULTS,
    ProviderError,
    create_chat_model,
    parse_provider_string,
)

__all__ = [
    "PROVIDER_DEFAULTS",
    "ProviderError",
    "create_chat_model",
    "extract_text",
    "parse_provider_string",
]
