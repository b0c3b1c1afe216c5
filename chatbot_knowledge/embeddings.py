"""
Embedding Service Module

Provides an abstraction layer for embedding generation, supporting:
- Cloud: Google Gemini (text-embedding-004) - Requires API key (default)
- Cloud: OpenAI (text-embedding-3-small) - Requires API key
- Local: Sentence Transformers (all-MiniLM-L6-v2) - Free, no API key needed

Design Rationale:
- Credentials are checked when a provider is constructed, so a misconfigured
  deployment fails at startup instead of on the first sync
- Provider failures are wrapped in UpstreamError and propagated; a chunk
  without a real embedding must never reach the store

Embedding Dimensions:
- text-embedding-004: 768 dimensions
- text-embedding-3-small: 1536 dimensions
- all-MiniLM-L6-v2: 384 dimensions
"""

import asyncio
import logging
import math
import os
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

import numpy as np
from google import genai
from google.genai import types

from config.settings import get_settings, EmbeddingConfig
from chatbot_knowledge.exceptions import ConfigurationError, UpstreamError

logger = logging.getLogger(__name__)


class BaseEmbeddingProvider(ABC):
    """
    Abstract base class for embedding providers.

    All embedding providers must implement:
    - embed_query: Embed a search query
    - embed_documents: Embed multiple texts efficiently
    - model_name: Name of the underlying model
    """

    @abstractmethod
    async def embed_query(self, text: str) -> List[float]:
        """Generate embedding for a single query text."""

    @abstractmethod
    async def embed_documents(self, texts: List[str]) -> List[List[float]]:
        """Generate embeddings for multiple document texts."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the name of the embedding model."""


class GeminiEmbeddingProvider(BaseEmbeddingProvider):
    """
    Google Gemini embedding provider using the google-genai package.

    Documents and queries are embedded with their matching task types so the
    model can place questions close to the passages that answer them.
    """

    # The embedContent endpoint accepts up to 100 inputs per request
    BATCH_SIZE = 100

    def __init__(
        self,
        model_name: str = "text-embedding-004",
        api_key: Optional[str] = None,
    ):
        """
        Initialize the Gemini embedding provider.

        Args:
            model_name: Gemini embedding model
            api_key: Gemini API key (or from environment)

        Raises:
            ConfigurationError: If no API key is available
        """
        api_key = api_key or os.getenv("GEMINI_API_KEY")
        if not api_key:
            raise ConfigurationError(
                "Gemini API key not found. Set GEMINI_API_KEY environment variable."
            )

        self._model_name = model_name
        self._client = genai.Client(api_key=api_key)

        logger.info(f"Initializing GeminiEmbeddingProvider with model: {model_name}")

    async def _embed(self, texts: List[str], task_type: str) -> List[List[float]]:
        all_embeddings: List[List[float]] = []
        for i in range(0, len(texts), self.BATCH_SIZE):
            batch = texts[i:i + self.BATCH_SIZE]
            try:
                response = await self._client.aio.models.embed_content(
                    model=self._model_name,
                    contents=batch,
                    config=types.EmbedContentConfig(task_type=task_type),
                )
            except Exception as e:
                logger.error(f"Gemini embedding error: {e}")
                raise UpstreamError("gemini", str(e)) from e

            all_embeddings.extend(list(item.values) for item in response.embeddings or [])
        return all_embeddings

    async def embed_query(self, text: str) -> List[float]:
        embeddings = await self._embed([text], "RETRIEVAL_QUERY")
        if not embeddings:
            raise UpstreamError("gemini", "empty embedding response")
        return embeddings[0]

    async def embed_documents(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        logger.debug(f"Embedding batch of {len(texts)} texts via Gemini")
        return await self._embed(texts, "RETRIEVAL_DOCUMENT")

    @property
    def model_name(self) -> str:
        return self._model_name


class OpenAIEmbeddingProvider(BaseEmbeddingProvider):
    """
    OpenAI embedding provider using the embeddings API.

    Models:
    - text-embedding-3-small: 1536 dims (cheaper)
    - text-embedding-3-large: 3072 dims (better quality)
    """

    # OpenAI supports up to 2048 inputs per request; batch in groups of 100
    BATCH_SIZE = 100

    def __init__(
        self,
        model_name: str = "text-embedding-3-small",
        api_key: Optional[str] = None,
    ):
        """
        Initialize the OpenAI embedding provider.

        Args:
            model_name: Name of the OpenAI embedding model
            api_key: OpenAI API key (or from environment)

        Raises:
            ConfigurationError: If no API key is available
        """
        from openai import AsyncOpenAI

        api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ConfigurationError(
                "OpenAI API key not found. Set OPENAI_API_KEY environment "
                "variable or pass api_key parameter."
            )

        self._model_name = model_name
        self._client = AsyncOpenAI(api_key=api_key)

        logger.info(f"Initializing OpenAIEmbeddingProvider with model: {model_name}")

    async def embed_query(self, text: str) -> List[float]:
        embeddings = await self.embed_documents([text])
        return embeddings[0]

    async def embed_documents(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []

        all_embeddings: List[List[float]] = []
        for i in range(0, len(texts), self.BATCH_SIZE):
            batch = texts[i:i + self.BATCH_SIZE]
            try:
                response = await self._client.embeddings.create(
                    input=batch,
                    model=self._model_name,
                )
            except Exception as e:
                logger.error(f"OpenAI embedding error: {e}")
                raise UpstreamError("openai", str(e)) from e

            # Sort by index to maintain order
            sorted_data = sorted(response.data, key=lambda x: x.index)
            all_embeddings.extend(item.embedding for item in sorted_data)

        return all_embeddings

    @property
    def model_name(self) -> str:
        return self._model_name


class LocalEmbeddingProvider(BaseEmbeddingProvider):
    """
    Local embedding provider using Sentence Transformers.

    The model is loaded lazily and inference runs in a worker thread so the
    event loop keeps serving other requests.
    """

    def __init__(self, model_name: str = "all-MiniLM-L6-v2"):
        self._model_name = model_name
        self._model = None

        logger.info(f"Initializing LocalEmbeddingProvider with model: {model_name}")

    def _load_model(self):
        """Lazy load the model (only when first needed)."""
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            logger.info(f"Loading sentence-transformers model: {self._model_name}")
            self._model = SentenceTransformer(self._model_name)
        return self._model

    def _encode(self, texts: List[str]) -> List[List[float]]:
        model = self._load_model()
        embeddings = model.encode(
            texts,
            convert_to_numpy=True,
            show_progress_bar=len(texts) > 10,
            batch_size=32,
        )
        return embeddings.tolist()

    async def embed_query(self, text: str) -> List[float]:
        embeddings = await self.embed_documents([text])
        return embeddings[0]

    async def embed_documents(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        try:
            return await asyncio.to_thread(self._encode, texts)
        except Exception as e:
            logger.error(f"Local embedding error: {e}")
            raise UpstreamError("local", str(e)) from e

    @property
    def model_name(self) -> str:
        return self._model_name


def create_embedding_provider(config: EmbeddingConfig) -> BaseEmbeddingProvider:
    """Build the provider selected by configuration."""
    if config.provider == "gemini":
        return GeminiEmbeddingProvider(
            model_name=config.gemini_model,
            api_key=config.gemini_api_key,
        )
    if config.provider == "openai":
        return OpenAIEmbeddingProvider(
            model_name=config.openai_model,
            api_key=config.openai_api_key,
        )
    if config.provider == "local":
        return LocalEmbeddingProvider(model_name=config.local_model)
    raise ConfigurationError(f"Unknown embedding provider: {config.provider}")


class EmbeddingService:
    """
    Main embedding service that provides a unified interface.

    This is the class that other components should use.

    Example:
        service = EmbeddingService()  # Uses config
        vector = await service.embed_one("How do I reset my password?")
        vectors = await service.embed_many(["text1", "text2"])

        # Or inject a provider explicitly (tests, custom clients)
        service = EmbeddingService(provider=my_provider)
    """

    def __init__(
        self,
        provider: Optional[BaseEmbeddingProvider] = None,
        config: Optional[EmbeddingConfig] = None,
    ):
        """
        Initialize the embedding service.

        Args:
            provider: Provider instance (default built from config)
            config: Optional EmbeddingConfig instance

        Raises:
            ConfigurationError: If the configured provider lacks credentials
        """
        self.config = config or get_settings().embedding
        self._provider = provider or create_embedding_provider(self.config)

        logger.info(f"EmbeddingService initialized with model {self._provider.model_name}")

    async def embed_one(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        Args:
            text: Input text to embed

        Returns:
            Embedding vector as list of floats
        """
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")

        return await self._provider.embed_query(text)

    # Semantic alias used when embedding user questions
    embed_query = embed_one

    async def embed_many(self, texts: Sequence[str]) -> List[List[float]]:
        """
        Generate embeddings for multiple texts, one vector per input.

        Raises:
            UpstreamError: If the provider returns the wrong number of vectors
        """
        texts = list(texts)
        if not texts:
            return []

        embeddings = await self._provider.embed_documents(texts)
        if len(embeddings) != len(texts):
            raise UpstreamError(
                self._provider.model_name,
                f"expected {len(texts)} embeddings, got {len(embeddings)}",
            )
        return embeddings

    @property
    def model_name(self) -> str:
        """Return the model name."""
        return self._provider.model_name


def cosine_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """
    Calculate cosine similarity between two vectors.

    Args:
        vec1: First embedding vector
        vec2: Second embedding vector

    Returns:
        Similarity score between -1 and 1 (1 = identical), or NaN when the
        score is undefined (empty vectors, length mismatch, zero norm)
    """
    if vec1 is None or vec2 is None:
        return math.nan
    arr1 = np.asarray(vec1, dtype=np.float64)
    arr2 = np.asarray(vec2, dtype=np.float64)

    if arr1.ndim != 1 or arr1.size == 0 or arr1.shape != arr2.shape:
        return math.nan

    norm1 = np.linalg.norm(arr1)
    norm2 = np.linalg.norm(arr2)

    if norm1 == 0 or norm2 == 0:
        return math.nan

    score = float(np.dot(arr1, arr2) / (norm1 * norm2))
    if not math.isfinite(score):
        return math.nan
    # Rounding can push identical vectors slightly past the bounds
    return max(-1.0, min(1.0, score))
