"""OpenAI LLM provider implementation."""

from __future__ import annotations

from typing import Any

from openai import AsyncOpenAI, OpenAIError

from sitepilot.exceptions import LLMProviderError
from sitepilot.llm.provider import LLMProviderBase, LLMResponse


class OpenAIProvider(LLMProviderBase):
    """OpenAI GPT provider."""

    def __init__(self, api_key: str, model: str = "gpt-4o", timeout: float = 60.0) -> None:
        self._client = AsyncOpenAI(api_key=api_key, timeout=timeout)
        self._model = model

    async def generate(
        self,
        prompt: str,
        system: str | None = None,
        max_tokens: int = 4096,
        temperature: float | None = None,
    ) -> LLMResponse:
        """Generate a text response from OpenAI."""
        messages: list[dict[str, Any]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": messages,
            "max_tokens": max_tokens,
        }
        if temperature is not None:
            kwargs["temperature"] = temperature

        try:
            response = await self._client.chat.completions.create(**kwargs)
        except OpenAIError as e:
            raise LLMProviderError(f"OpenAI API error: {e}") from e

        if not response.choices:
            raise LLMProviderError("OpenAI returned no choices")
        choice = response.choices[0]
        usage = response.usage
        return LLMResponse(
            content=choice.message.content or "",
            model=response.model,
            tokens_used=(usage.prompt_tokens + usage.completion_tokens) if usage else 0,
        )
