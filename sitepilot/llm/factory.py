"""Factory for creating LLM provider instances."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sitepilot.exceptions import LLMProviderError
from sitepilot.llm.anthropic import AnthropicProvider
from sitepilot.llm.gemini_provider import GeminiProvider
from sitepilot.llm.ollama_provider import OllamaProvider
from sitepilot.llm.openai_provider import OpenAIProvider
from sitepilot.llm.provider import LLMProviderBase
from sitepilot.types import LLMProvider

if TYPE_CHECKING:
    from sitepilot.config.settings import Settings


def create_llm_provider(
    provider: LLMProvider | str,
    api_key: str | None = None,
    model: str | None = None,
    base_url: str | None = None,
) -> LLMProviderBase:
    """Create an LLM provider instance."""
    provider_str = str(provider)

    if provider_str == LLMProvider.ANTHROPIC:
        if not api_key:
            raise LLMProviderError("API key required for Anthropic provider")
        return AnthropicProvider(api_key=api_key, **({"model": model} if model else {}))
    elif provider_str == LLMProvider.OPENAI:
        if not api_key:
            raise LLMProviderError("API key required for OpenAI provider")
        return OpenAIProvider(api_key=api_key, **({"model": model} if model else {}))
    elif provider_str == LLMProvider.GEMINI:
        if not api_key:
            raise LLMProviderError("API key required for Gemini provider")
        return GeminiProvider(api_key=api_key, **({"model": model} if model else {}))
    elif provider_str == LLMProvider.OLLAMA:
        kwargs: dict[str, str] = {}
        if model:
            kwargs["model"] = model
        if base_url:
            kwargs["base_url"] = base_url
        return OllamaProvider(**kwargs)
    else:
        raise LLMProviderError(f"Unsupported LLM provider: {provider}")


def provider_from_settings(settings: Settings) -> LLMProviderBase | None:
    """Build the configured provider, or None when it has no credentials.

    Without a provider the pipeline uses deterministic fallbacks only.
    """
    keys = {
        LLMProvider.OPENAI: settings.openai_api_key,
        LLMProvider.ANTHROPIC: settings.anthropic_api_key,
        LLMProvider.GEMINI: settings.gemini_api_key,
    }
    provider = settings.llm_provider
    if provider == LLMProvider.OLLAMA:
        return create_llm_provider(
            provider, model=settings.llm_model, base_url=settings.ollama_base_url
        )
    if not keys.get(provider):
        return None
    return create_llm_provider(provider, api_key=keys[provider], model=settings.llm_model)
