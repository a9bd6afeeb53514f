"""LLM completion providers, prompts and response parsing."""

from .providers.base import CompletionProvider
from .providers.factory import available_providers, create_provider

__all__ = ["CompletionProvider", "available_providers", "create_provider"]
