"""
LLM Service Module

Provides an abstraction layer for generative model providers:
- Cloud: Google Gemini (gemini-2.5-flash-lite) - Requires API key (default)
- Cloud: OpenAI (gpt-4o-mini) - Requires API key
- Local: Ollama (Llama 3, Mistral, etc.) - Free, runs locally

Every provider takes the same chat-style message list (system, user and
assistant turns) and returns an LLMResponse. Credentials are checked when a
provider is constructed; call failures are wrapped in UpstreamError.

Usage:
    llm = LLMService()
    response = await llm.invoke([
        Message("system", "You are a helpful assistant."),
        Message("user", "How do I post a job?"),
    ])
    print(response.text)
"""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from google import genai
from google.genai import types

from config.settings import get_settings, LLMConfig
from chatbot_knowledge.exceptions import ConfigurationError, UpstreamError
from chatbot_knowledge.memory import Message, ASSISTANT, SYSTEM

logger = logging.getLogger(__name__)


def extract_text(content: Any) -> str:
    """
    Flatten model output to a string.

    Providers return either plain text or a list of parts; parts may be
    strings, dicts with a "text" key or objects with a .text attribute.
    Parts without text (function calls, images) contribute nothing.
    """
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, (list, tuple)):
        pieces = []
        for part in content:
            if isinstance(part, str):
                pieces.append(part)
            elif isinstance(part, dict):
                text = part.get("text")
                pieces.append(text if isinstance(text, str) else "")
            else:
                text = getattr(part, "text", None)
                pieces.append(text if isinstance(text, str) else "")
        return "".join(pieces)
    return str(content)


@dataclass
class LLMResponse:
    """
    Standardized response from LLM providers.

    Attributes:
        content: Generated output, a string or a list of parts
        model: Model name used for generation
        usage: Token usage statistics (if available)
        finish_reason: Why generation stopped
    """
    content: Union[str, List[Any]]
    model: str
    usage: Optional[Dict[str, int]] = None
    finish_reason: Optional[str] = None

    @property
    def text(self) -> str:
        return extract_text(self.content)

    def __str__(self) -> str:
        return self.text


class BaseLLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    All providers must implement:
    - invoke: Generate a reply to a list of chat messages
    - model_name: Name of the underlying model
    """

    @abstractmethod
    async def invoke(self, messages: List[Message]) -> LLMResponse:
        """
        Generate a reply to a conversation.

        Args:
            messages: System, user and assistant messages in order

        Returns:
            LLMResponse object

        Raises:
            UpstreamError: If the provider call fails
        """

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the model name."""


class GeminiProvider(BaseLLMProvider):
    """
    Google Gemini provider using the google-genai package.

    System messages are sent as the system instruction; assistant turns use
    Gemini's "model" role.
    """

    def __init__(
        self,
        model: str = "gemini-2.5-flash-lite",
        api_key: Optional[str] = None,
        temperature: float = 0.3,
        max_output_tokens: Optional[int] = 1024,
    ):
        """
        Initialize Gemini provider.

        Args:
            model: Gemini model name
            api_key: API key (or from environment)
            temperature: Sampling temperature
            max_output_tokens: Reply length cap

        Raises:
            ConfigurationError: If no API key is available
        """
        api_key = api_key or os.getenv("GEMINI_API_KEY")
        if not api_key:
            raise ConfigurationError(
                "Gemini API key not found. Set GEMINI_API_KEY environment variable."
            )

        self._model = model
        self._client = genai.Client(api_key=api_key)
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

        logger.info(f"Initializing GeminiProvider: model={model}")

    def _build_request(self, messages: List[Message]):
        system_parts = [m.content for m in messages if m.role == SYSTEM]
        contents = [
            types.Content(
                role="model" if m.role == ASSISTANT else "user",
                parts=[types.Part(text=m.content)],
            )
            for m in messages
            if m.role != SYSTEM
        ]
        config = types.GenerateContentConfig(
            temperature=self.temperature,
            max_output_tokens=self.max_output_tokens,
            system_instruction="\n\n".join(system_parts) if system_parts else None,
        )
        return contents, config

    async def invoke(self, messages: List[Message]) -> LLMResponse:
        contents, config = self._build_request(messages)

        try:
            response = await self._client.aio.models.generate_content(
                model=self._model,
                contents=contents,
                config=config,
            )
        except Exception as e:
            logger.error(f"Gemini generation error: {e}")
            raise UpstreamError("gemini", str(e)) from e

        content: Union[str, List[Any]] = ""
        finish_reason = None
        if response.candidates:
            candidate = response.candidates[0]
            finish_reason = str(candidate.finish_reason) if candidate.finish_reason else None
            if candidate.content and candidate.content.parts:
                content = list(candidate.content.parts)

        usage = None
        if response.usage_metadata:
            usage = {
                "prompt_tokens": response.usage_metadata.prompt_token_count or 0,
                "completion_tokens": response.usage_metadata.candidates_token_count or 0,
            }

        return LLMResponse(
            content=content,
            model=self._model,
            usage=usage,
            finish_reason=finish_reason,
        )

    @property
    def model_name(self) -> str:
        return self._model


class OpenAIProvider(BaseLLMProvider):
    """
    OpenAI provider for cloud LLM inference.

    Models:
    - gpt-4o-mini: Fast and cheap (recommended)
    - gpt-4o: More capable
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: Optional[str] = None,
        temperature: float = 0.3,
        max_output_tokens: Optional[int] = 1024,
    ):
        """
        Initialize OpenAI provider.

        Raises:
            ConfigurationError: If no API key is available
        """
        from openai import AsyncOpenAI

        api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ConfigurationError(
                "OpenAI API key not found. Set OPENAI_API_KEY environment variable."
            )

        self._model = model
        self._client = AsyncOpenAI(api_key=api_key)
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

        logger.info(f"Initializing OpenAIProvider: model={model}")

    async def invoke(self, messages: List[Message]) -> LLMResponse:
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[m.to_dict() for m in messages],
                temperature=self.temperature,
                max_tokens=self.max_output_tokens,
            )
        except Exception as e:
            logger.error(f"OpenAI generation error: {e}")
            raise UpstreamError("openai", str(e)) from e

        choice = response.choices[0]
        usage = None
        if response.usage:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        return LLMResponse(
            content=choice.message.content or "",
            model=self._model,
            usage=usage,
            finish_reason=choice.finish_reason,
        )

    @property
    def model_name(self) -> str:
        return self._model


class OllamaProvider(BaseLLMProvider):
    """
    Ollama provider for local LLM inference.

    Benefits:
    - Free to use (runs locally)
    - No API key required
    - Works offline

    Requirements:
    - Ollama installed: https://ollama.ai
    - Model pulled: ollama pull llama3
    """

    def __init__(
        self,
        model: str = "llama3",
        base_url: str = "http://localhost:11434",
        temperature: float = 0.3,
        max_output_tokens: Optional[int] = 1024,
    ):
        import ollama

        self._model = model
        self._base_url = base_url.rstrip("/")
        self._client = ollama.AsyncClient(host=self._base_url)
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

        logger.info(f"Initializing OllamaProvider: model={model}, url={base_url}")

    async def invoke(self, messages: List[Message]) -> LLMResponse:
        options: Dict[str, Any] = {"temperature": self.temperature}
        if self.max_output_tokens:
            options["num_predict"] = self.max_output_tokens

        try:
            response = await self._client.chat(
                model=self._model,
                messages=[m.to_dict() for m in messages],
                options=options,
            )
        except Exception as e:
            logger.error(f"Ollama generation error: {e}")
            raise UpstreamError("ollama", str(e)) from e

        return LLMResponse(
            content=response["message"]["content"],
            model=self._model,
            usage={
                "prompt_tokens": response.get("prompt_eval_count") or 0,
                "completion_tokens": response.get("eval_count") or 0,
            },
            finish_reason=response.get("done_reason") or "stop",
        )

    @property
    def model_name(self) -> str:
        return self._model


def create_llm_provider(config: LLMConfig) -> BaseLLMProvider:
    """Build the provider selected by configuration."""
    if config.provider == "gemini":
        return GeminiProvider(
            model=config.gemini_model,
            api_key=config.gemini_api_key,
            temperature=config.temperature,
            max_output_tokens=config.max_output_tokens,
        )
    if config.provider == "openai":
        return OpenAIProvider(
            model=config.openai_model,
            api_key=config.openai_api_key,
            temperature=config.temperature,
            max_output_tokens=config.max_output_tokens,
        )
    if config.provider == "ollama":
        return OllamaProvider(
            model=config.ollama_model,
            base_url=config.ollama_base_url,
            temperature=config.temperature,
            max_output_tokens=config.max_output_tokens,
        )
    raise ConfigurationError(f"Unknown LLM provider: {config.provider}")


class LLMService:
    """
    Main LLM Service with unified interface.

    This is the class that other components should use.

    Example:
        # Using default provider from config
        llm = LLMService()

        # Or inject a provider explicitly
        llm = LLMService(provider=OllamaProvider(model="mistral"))

        response = await llm.invoke(messages)
    """

    def __init__(
        self,
        provider: Optional[BaseLLMProvider] = None,
        config: Optional[LLMConfig] = None,
    ):
        """
        Initialize the LLM service.

        Args:
            provider: Provider instance (default built from config)
            config: Optional LLMConfig instance

        Raises:
            ConfigurationError: If the configured provider lacks credentials
        """
        self.config = config or get_settings().llm
        self._provider = provider or create_llm_provider(self.config)

        logger.info(f"LLMService initialized with model {self._provider.model_name}")

    async def invoke(self, messages: List[Message]) -> LLMResponse:
        """
        Generate a reply to a list of chat messages.

        Raises:
            UpstreamError: If the provider call fails
        """
        if not messages:
            raise ValueError("Cannot invoke the model without messages")
        return await self._provider.invoke(messages)

    @property
    def model_name(self) -> str:
        """Return the model name."""
        return self._provider.model_name
