"""Provider factory and registry for hot-swappable LLM backends."""

from __future__ import annotations

import logging

from ...config import LoggingConfig, ProviderConfig, require_api_key
from .base import CompletionProvider
from .gemini import GeminiProvider
from .openai_compatible import OpenAICompatibleProvider


ProviderBuilder = type[CompletionProvider]

_PROVIDER_REGISTRY: dict[str, ProviderBuilder] = {
    "openrouter": OpenAICompatibleProvider,
    "openai": OpenAICompatibleProvider,
    "openai_compatible": OpenAICompatibleProvider,
    "openai-compatible": OpenAICompatibleProvider,
    "gemini": GeminiProvider,
}


def available_providers() -> list[str]:
    """Return the set of registered provider names."""
    return sorted(_PROVIDER_REGISTRY.keys())


def create_provider(
    provider_cfg: ProviderConfig,
    log_cfg: LoggingConfig | None = None,
    llm_logger: logging.Logger | None = None,
) -> CompletionProvider:
    """Build a provider instance from runtime config.

    Raises:
        ValueError: If the provider name is not registered
        ConfigurationError: If the API key is missing
    """
    name = provider_cfg.name.lower().strip()
    builder = _PROVIDER_REGISTRY.get(name)
    if builder is None:
        supported = ", ".join(available_providers())
        raise ValueError(f"Unsupported provider: {provider_cfg.name}. Supported: {supported}")
    api_key = require_api_key(provider_cfg)
    return builder(provider_cfg, api_key, log_cfg, llm_logger)
