"""Anthropic (Claude) LLM provider implementation."""

from typing import Any

from anthropic import AnthropicError, AsyncAnthropic

from sitepilot.exceptions import LLMProviderError
from sitepilot.llm.provider import LLMProviderBase, LLMResponse


class AnthropicProvider(LLMProviderBase):
    def __init__(
        self, api_key: str, model: str = "claude-sonnet-4-20250514", timeout: float = 60.0
    ):
        self._client = AsyncAnthropic(api_key=api_key, timeout=timeout)
        self._model = model

    async def generate(
        self,
        prompt: str,
        system: str | None = None,
        max_tokens: int = 4096,
        temperature: float | None = None,
    ) -> LLMResponse:
        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            kwargs["system"] = system
        if temperature is not None:
            kwargs["temperature"] = temperature

        try:
            message = await self._client.messages.create(**kwargs)
        except AnthropicError as e:
            raise LLMProviderError(f"Anthropic API error: {e}") from e

        text = "".join(getattr(block, "text", "") for block in message.content)
        return LLMResponse(
            content=text,
            model=message.model,
            tokens_used=message.usage.input_tokens + message.usage.output_tokens,
        )
