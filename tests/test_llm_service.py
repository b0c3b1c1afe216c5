"""
Tests for the LLM service.

Provider clients are mocked; no network calls are made.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, Mock

import pytest

from config.settings import LLMConfig
from chatbot_knowledge.exceptions import ConfigurationError, UpstreamError
from chatbot_knowledge.llm_service import (
    GeminiProvider,
    LLMResponse,
    LLMService,
    OllamaProvider,
    OpenAIProvider,
    create_llm_provider,
    extract_text,
)
from chatbot_knowledge.memory import Message

MESSAGES = [
    Message("system", "You are helpful."),
    Message("user", "Hi"),
    Message("assistant", "Hello!"),
    Message("user", "How do I post a job?"),
]


class TestExtractText:
    """Tests for extract_text."""

    def test_string(self):
        assert extract_text("plain") == "plain"

    def test_none(self):
        assert extract_text(None) == ""

    def test_parts(self):
        parts = [
            "Hello ",
            {"type": "text", "text": "from "},
            SimpleNamespace(text="parts"),
            {"type": "image_url", "image_url": "x"},
            SimpleNamespace(text=None),
        ]
        assert extract_text(parts) == "Hello from parts"

    def test_response_text(self):
        response = LLMResponse(content=["a", {"text": "b"}], model="m")
        assert response.text == "ab"
        assert str(response) == "ab"


class TestLLMService:
    """Tests for LLMService."""

    @pytest.mark.asyncio
    async def test_invoke_delegates(self, llm_service, llm_provider):
        response = await llm_service.invoke(MESSAGES)

        assert response.text == "Here is what I know."
        assert llm_provider.calls == [MESSAGES]
        assert llm_service.model_name == "fake-llm"

    @pytest.mark.asyncio
    async def test_invoke_requires_messages(self, llm_service):
        with pytest.raises(ValueError):
            await llm_service.invoke([])

    def test_unknown_provider(self):
        with pytest.raises(ConfigurationError):
            create_llm_provider(LLMConfig(provider="mistral"))


class TestGeminiProvider:
    """Tests for GeminiProvider."""

    def test_requires_api_key(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        with pytest.raises(ConfigurationError):
            GeminiProvider(api_key=None)

    def test_request_shape(self):
        provider = GeminiProvider(api_key="test-key", temperature=0.3, max_output_tokens=1024)

        contents, config = provider._build_request(MESSAGES)

        assert [c.role for c in contents] == ["user", "model", "user"]
        assert contents[2].parts[0].text == "How do I post a job?"
        assert config.system_instruction == "You are helpful."
        assert config.temperature == 0.3
        assert config.max_output_tokens == 1024

    @pytest.mark.asyncio
    async def test_invoke_returns_parts(self):
        provider = GeminiProvider(api_key="test-key")
        candidate = Mock(
            finish_reason="STOP",
            content=Mock(parts=[SimpleNamespace(text="Go to "), SimpleNamespace(text="Jobs.")]),
        )
        client = MagicMock()
        client.aio.models.generate_content = AsyncMock(
            return_value=Mock(candidates=[candidate], usage_metadata=None)
        )
        provider._client = client

        response = await provider.invoke(MESSAGES)

        assert response.text == "Go to Jobs."
        assert response.model == "gemini-2.5-flash-lite"

    @pytest.mark.asyncio
    async def test_errors_are_wrapped(self):
        provider = GeminiProvider(api_key="test-key")
        client = MagicMock()
        client.aio.models.generate_content = AsyncMock(side_effect=RuntimeError("503"))
        provider._client = client

        with pytest.raises(UpstreamError) as exc_info:
            await provider.invoke(MESSAGES)
        assert exc_info.value.provider == "gemini"


class TestOpenAIProvider:
    """Tests for OpenAIProvider."""

    def test_requires_api_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(ConfigurationError):
            OpenAIProvider(api_key=None)

    @pytest.mark.asyncio
    async def test_invoke(self):
        provider = OpenAIProvider(api_key="test-key")
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=Mock(
            choices=[Mock(message=Mock(content="Answer"), finish_reason="stop")],
            usage=Mock(prompt_tokens=10, completion_tokens=5, total_tokens=15),
        ))
        provider._client = client

        response = await provider.invoke(MESSAGES)

        assert response.text == "Answer"
        assert response.usage["total_tokens"] == 15
        sent = client.chat.completions.create.call_args.kwargs["messages"]
        assert sent[0] == {"role": "system", "content": "You are helpful."}

    @pytest.mark.asyncio
    async def test_errors_are_wrapped(self):
        provider = OpenAIProvider(api_key="test-key")
        client = MagicMock()
        client.chat.completions.create = AsyncMock(side_effect=RuntimeError("rate limited"))
        provider._client = client

        with pytest.raises(UpstreamError):
            await provider.invoke(MESSAGES)


class TestOllamaProvider:
    """Tests for OllamaProvider."""

    @pytest.mark.asyncio
    async def test_invoke(self):
        provider = OllamaProvider(model="llama3")
        provider._client = Mock(chat=AsyncMock(return_value={
            "message": {"role": "assistant", "content": "Local answer"},
            "prompt_eval_count": 12,
            "eval_count": 4,
        }))

        response = await provider.invoke(MESSAGES)

        assert response.text == "Local answer"
        assert response.usage == {"prompt_tokens": 12, "completion_tokens": 4}
        options = provider._client.chat.call_args.kwargs["options"]
        assert options["num_predict"] == 1024

    @pytest.mark.asyncio
    async def test_errors_are_wrapped(self):
        provider = OllamaProvider()
        provider._client = Mock(chat=AsyncMock(side_effect=ConnectionError("refused")))

        with pytest.raises(UpstreamError) as exc_info:
            await provider.invoke(MESSAGES)
        assert exc_info.value.provider == "ollama"
