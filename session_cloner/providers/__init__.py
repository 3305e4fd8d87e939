"""Compression providers.

One provider is chosen from ``Config.llm_provider`` and cached; callers
dispatch through the CompressionProvider protocol and never branch on the
backend.
"""

from session_cloner.config import PROVIDER_TYPES, Config
from session_cloner.errors import ConfigMissingError
from session_cloner.log_config import get_logger
from session_cloner.providers.base import (
    CompressionProvider,
    CompressionResponse,
    build_prompt,
    parse_compression_response,
)
from session_cloner.providers.cli import ClaudeCliProvider
from session_cloner.providers.litellm_provider import LiteLLMProvider
from session_cloner.providers.openrouter import OpenRouterProvider

log = get_logger("providers")

_cached_provider: CompressionProvider | None = None
_cached_provider_type: str | None = None


def get_provider(config: Config | None = None) -> CompressionProvider:
    """Return the configured provider, creating it on first use.

    Raises:
        ConfigMissingError: If the provider name is unknown or its settings
            are incomplete
    """
    global _cached_provider, _cached_provider_type

    config = config or Config()
    provider_type = config.llm_provider

    if _cached_provider is not None and _cached_provider_type == provider_type:
        return _cached_provider

    if provider_type == "openrouter":
        provider = OpenRouterProvider(config)
    elif provider_type == "cc-cli":
        provider = ClaudeCliProvider(config)
    elif provider_type == "litellm":
        provider = LiteLLMProvider(config)
    else:
        raise ConfigMissingError(
            f"LLM_PROVIDER (got {provider_type!r}, expected one of {', '.join(PROVIDER_TYPES)})"
        )

    log.info(f"Using compression provider: {provider_type}")
    _cached_provider = provider
    _cached_provider_type = provider_type
    return provider


def reset_provider() -> None:
    """Drop the cached provider."""
    global _cached_provider, _cached_provider_type
    _cached_provider = None
    _cached_provider_type = None


__all__ = [
    "ClaudeCliProvider",
    "CompressionProvider",
    "CompressionResponse",
    "LiteLLMProvider",
    "OpenRouterProvider",
    "build_prompt",
    "get_provider",
    "parse_compression_response",
    "reset_provider",
]
