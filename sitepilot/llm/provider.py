"""Abstract LLM provider interface."""

from abc import ABC, abstractmethod

from pydantic import BaseModel

JSON_ONLY_INSTRUCTION = "Respond ONLY with valid JSON. No markdown, no explanation."


class LLMResponse(BaseModel):
    content: str
    model: str
    tokens_used: int


class LLMProviderBase(ABC):
    """Abstract base for all LLM providers."""

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        system: str | None = None,
        max_tokens: int = 4096,
        temperature: float | None = None,
    ) -> LLMResponse:
        """Generate a text response from the LLM."""

    async def generate_structured(
        self,
        prompt: str,
        system: str | None = None,
        max_tokens: int = 4096,
        temperature: float | None = None,
    ) -> LLMResponse:
        """Generate a response constrained to JSON output."""
        system_with_json = f"{system or ''}\n{JSON_ONLY_INSTRUCTION}".strip()
        return await self.generate(
            prompt, system=system_with_json, max_tokens=max_tokens, temperature=temperature
        )

    async def complete(
        self, system_prompt: str, user_prompt: str, temperature: float | None = None
    ) -> str:
        """Return only the text of a JSON-constrained completion."""
        response = await self.generate_structured(
            user_prompt, system=system_prompt, temperature=temperature
        )
        return response.content
