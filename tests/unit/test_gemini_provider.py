"""Unit tests for GeminiProvider in sitepilot/llm/gemini_provider.py."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from sitepilot.exceptions import LLMProviderError
from sitepilot.llm.gemini_provider import GeminiProvider
from sitepilot.llm.provider import LLMResponse


def _make_mock_response(
    text: str | None = "Hello from Gemini",
    prompt_tokens: int = 10,
    candidates_tokens: int = 5,
) -> MagicMock:
    """Build a MagicMock that mimics a Gemini GenerateContentResponse."""
    usage = MagicMock()
    usage.prompt_token_count = prompt_tokens
    usage.candidates_token_count = candidates_tokens

    response = MagicMock()
    response.text = text
    response.usage_metadata = usage
    return response


@pytest.mark.unit
class TestGeminiProviderGenerate:
    @pytest.mark.asyncio
    async def test_generate_returns_llm_response(self) -> None:
        with patch("sitepilot.llm.gemini_provider.genai") as mock_genai:
            mock_client = MagicMock()
            mock_client.aio.models.generate_content = AsyncMock(return_value=_make_mock_response())
            mock_genai.Client.return_value = mock_client

            provider = GeminiProvider(api_key="test-key")
            result = await provider.generate("Hi", system="Be brief")

        assert isinstance(result, LLMResponse)
        assert result.content == "Hello from Gemini"
        assert result.tokens_used == 15
        assert result.model == "gemini-2.0-flash"

    @pytest.mark.asyncio
    async def test_missing_usage_counts_zero(self) -> None:
        response = _make_mock_response(text=None)
        response.usage_metadata = None
        with patch("sitepilot.llm.gemini_provider.genai") as mock_genai:
            mock_client = MagicMock()
            mock_client.aio.models.generate_content = AsyncMock(return_value=response)
            mock_genai.Client.return_value = mock_client

            result = await GeminiProvider(api_key="test-key").generate("Hi")

        assert result.content == ""
        assert result.tokens_used == 0

    @pytest.mark.asyncio
    async def test_error_wrapped(self) -> None:
        with patch("sitepilot.llm.gemini_provider.genai") as mock_genai:
            mock_client = MagicMock()
            mock_client.aio.models.generate_content = AsyncMock(side_effect=RuntimeError("quota"))
            mock_genai.Client.return_value = mock_client

            with pytest.raises(LLMProviderError, match="quota"):
                await GeminiProvider(api_key="test-key").generate("Hi")


@pytest.mark.unit
class TestGeminiProviderClient:
    def test_client_has_request_timeout(self) -> None:
        with patch("sitepilot.llm.gemini_provider.genai") as mock_genai:
            GeminiProvider(api_key="test-key")

            kwargs = mock_genai.Client.call_args.kwargs
            assert kwargs["api_key"] == "test-key"
            assert kwargs["http_options"].timeout == 60_000

    def test_custom_timeout_in_milliseconds(self) -> None:
        with patch("sitepilot.llm.gemini_provider.genai") as mock_genai:
            GeminiProvider(api_key="test-key", timeout=2.5)

            assert mock_genai.Client.call_args.kwargs["http_options"].timeout == 2500
