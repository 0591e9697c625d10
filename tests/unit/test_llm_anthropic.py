from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from anthropic import AnthropicError

from sitepilot.exceptions import LLMProviderError
from sitepilot.llm.anthropic import AnthropicProvider
from sitepilot.llm.provider import LLMResponse


def _mock_message(text: str = "Test response") -> MagicMock:
    mock_message = MagicMock()
    mock_message.content = [MagicMock(text=text)]
    mock_message.model = "claude-sonnet-4-20250514"
    mock_message.usage.input_tokens = 10
    mock_message.usage.output_tokens = 5
    return mock_message


@pytest.mark.unit
class TestAnthropicProvider:
    @pytest.mark.asyncio
    async def test_generate_calls_api(self) -> None:
        with patch("sitepilot.llm.anthropic.AsyncAnthropic") as mock_cls:
            mock_client = AsyncMock()
            mock_client.messages.create = AsyncMock(return_value=_mock_message())
            mock_cls.return_value = mock_client

            provider = AnthropicProvider(api_key="test-key")
            result = await provider.generate("Hello")

            assert isinstance(result, LLMResponse)
            assert result.content == "Test response"
            assert result.tokens_used == 15
            assert "system" not in mock_client.messages.create.call_args.kwargs

    @pytest.mark.asyncio
    async def test_generate_passes_system_and_temperature(self) -> None:
        with patch("sitepilot.llm.anthropic.AsyncAnthropic") as mock_cls:
            mock_client = AsyncMock()
            mock_client.messages.create = AsyncMock(return_value=_mock_message())
            mock_cls.return_value = mock_client

            provider = AnthropicProvider(api_key="test-key")
            await provider.generate("Hello", system="Be terse", temperature=0.2)

            kwargs = mock_client.messages.create.call_args.kwargs
            assert kwargs["system"] == "Be terse"
            assert kwargs["temperature"] == 0.2

    @pytest.mark.asyncio
    async def test_sdk_error_wrapped(self) -> None:
        with patch("sitepilot.llm.anthropic.AsyncAnthropic") as mock_cls:
            mock_client = AsyncMock()
            mock_client.messages.create = AsyncMock(side_effect=AnthropicError("overloaded"))
            mock_cls.return_value = mock_client

            provider = AnthropicProvider(api_key="test-key")
            with pytest.raises(LLMProviderError, match="overloaded"):
                await provider.generate("Hello")
