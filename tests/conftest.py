"""
Shared fixtures: fake providers, an in-memory store and source repositories.

No test touches the network or a real database.
"""

import hashlib
import re
from typing import List

import pytest

from config.settings import (
    AssistantConfig,
    ChunkingConfig,
    HistoryConfig,
    RetrievalConfig,
    Settings,
)
from chatbot_knowledge.chunker import KnowledgeChunker, SourceType
from chatbot_knowledge.embeddings import BaseEmbeddingProvider, EmbeddingService
from chatbot_knowledge.knowledge_store import LocalKnowledgeStore
from chatbot_knowledge.llm_service import BaseLLMProvider, LLMResponse, LLMService
from chatbot_knowledge.sources import InMemorySourceRepository
from chatbot_knowledge.synchronizer import SourceSynchronizer

DIMENSION = 256
_WORD = re.compile(r"[a-z0-9]+")


def bag_of_words(text: str, dimension: int = DIMENSION) -> List[float]:
    """Deterministic embedding: word counts hashed into buckets."""
    vector = [0.0] * dimension
    for word in _WORD.findall(text.lower()):
        bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % dimension
        vector[bucket] += 1.0
    return vector


class FakeEmbeddingProvider(BaseEmbeddingProvider):
    """Embeds text as hashed word counts and records every call."""

    def __init__(self, dimension: int = DIMENSION):
        self.dimension = dimension
        self.query_calls: List[str] = []
        self.document_calls: List[List[str]] = []

    async def embed_query(self, text: str) -> List[float]:
        self.query_calls.append(text)
        return bag_of_words(text, self.dimension)

    async def embed_documents(self, texts: List[str]) -> List[List[float]]:
        self.document_calls.append(list(texts))
        return [bag_of_words(text, self.dimension) for text in texts]

    @property
    def model_name(self) -> str:
        return "fake-embedding"


class FakeLLMProvider(BaseLLMProvider):
    """Returns a canned reply (or raises) and records the prompts it saw."""

    def __init__(self, content="Here is what I know.", error: Exception = None):
        self.content = content
        self.error = error
        self.calls = []

    async def invoke(self, messages) -> LLMResponse:
        self.calls.append(list(messages))
        if self.error is not None:
            raise self.error
        return LLMResponse(content=self.content, model=self.model_name)

    @property
    def model_name(self) -> str:
        return "fake-llm"


@pytest.fixture
def settings():
    """Settings with defaults, independent of the environment."""
    return Settings(
        chunking=ChunkingConfig(chunk_size=800, chunk_overlap=120),
        retrieval=RetrievalConfig(),
        history=HistoryConfig(),
        assistant=AssistantConfig(),
        request_timeout=5.0,
    )


@pytest.fixture
def embedding_provider():
    return FakeEmbeddingProvider()


@pytest.fixture
def embedding_service(embedding_provider):
    return EmbeddingService(provider=embedding_provider)


@pytest.fixture
def llm_provider():
    return FakeLLMProvider()


@pytest.fixture
def llm_service(llm_provider):
    return LLMService(provider=llm_provider)


@pytest.fixture
def store():
    return LocalKnowledgeStore()


@pytest.fixture
def chunker(settings):
    return KnowledgeChunker(config=settings.chunking)


@pytest.fixture
def repositories():
    return {
        SourceType.FAQ: InMemorySourceRepository(),
        SourceType.CONTENT_PAGE: InMemorySourceRepository(),
        SourceType.BLOG: InMemorySourceRepository(),
        SourceType.CUSTOM_QA: InMemorySourceRepository(active_only=True),
    }


@pytest.fixture
def synchronizer(repositories, store, embedding_service, chunker):
    return SourceSynchronizer(
        repositories=repositories,
        store=store,
        embedding_service=embedding_service,
        chunker=chunker,
    )
