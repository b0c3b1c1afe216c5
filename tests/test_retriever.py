"""
Tests for the retriever.

Run with: pytest tests/test_retriever.py -v
"""

from unittest.mock import AsyncMock

import pytest

from config.settings import RetrievalConfig
from chatbot_knowledge.chunker import KnowledgeChunk, SourceType
from chatbot_knowledge.knowledge_store import LocalKnowledgeStore
from chatbot_knowledge.retriever import KnowledgeRetriever

TEXTS = [
    "Pricing plans for employers start at 49 dollars per month",
    "Candidates record a short video pitch for every application",
    "Reset your password from the login page",
    "Pricing for candidates is free",
    "Contact support by email for billing questions",
    "Employers can browse pitches by job category",
    "Blog: five tips for a better video pitch",
]


async def fill(store, provider, texts=TEXTS):
    for i, text in enumerate(texts):
        embedding = await provider.embed_query(text)
        chunk = KnowledgeChunk(SourceType.FAQ, f"f{i}", 0, text, embedding=embedding)
        await store.replace_source(SourceType.FAQ, f"f{i}", [chunk], sync_epoch=f"e{i}")


class TestKnowledgeRetriever:
    """Tests for KnowledgeRetriever."""

    @pytest.fixture
    def fallback_store(self):
        return LocalKnowledgeStore(use_vector_index=False)

    def test_num_candidates(self, embedding_service, store):
        retriever = KnowledgeRetriever(embedding_service, store, RetrievalConfig())
        assert retriever.num_candidates(5) == 200
        assert retriever.num_candidates(20) == 300

    @pytest.mark.asyncio
    async def test_approximate_search(self, embedding_service, store):
        await fill(store, embedding_service)
        retriever = KnowledgeRetriever(embedding_service, store, RetrievalConfig())

        results = await retriever.retrieve("password reset", top_k=3)

        assert len(results) == 3
        assert results[0].chunk.text == "Reset your password from the login page"
        assert retriever.fallback_count == 0

    @pytest.mark.asyncio
    async def test_vector_search_failure_falls_back(self, embedding_service, fallback_store):
        await fill(fallback_store, embedding_service)
        retriever = KnowledgeRetriever(embedding_service, fallback_store, RetrievalConfig())

        results = await retriever.retrieve("pricing", 5)

        assert 0 < len(results) <= 5
        assert "Pricing" in results[0].chunk.text
        assert retriever.fallback_count == 1
        assert "no vector index" in retriever.stats()["last_fallback_error"]

    @pytest.mark.asyncio
    async def test_fallback_orders_by_descending_score(self, embedding_service, fallback_store):
        await fill(fallback_store, embedding_service)
        retriever = KnowledgeRetriever(embedding_service, fallback_store, RetrievalConfig())

        for k in (1, 3, 10):
            results = await retriever.retrieve("video pitch for employers", k)
            scores = [r.score for r in results]
            assert len(results) <= k
            assert scores == sorted(scores, reverse=True)
            assert [r.rank for r in results] == list(range(1, len(results) + 1))
            assert all(-1.0 <= s <= 1.0 for s in scores)

    @pytest.mark.asyncio
    async def test_invalid_embeddings_are_excluded(self, embedding_service, fallback_store):
        await fill(fallback_store, embedding_service, TEXTS[:2])
        broken = [
            KnowledgeChunk(SourceType.BLOG, "b1", 0, "wrong size", embedding=[1.0, 2.0]),
            KnowledgeChunk(SourceType.BLOG, "b2", 0, "zero", embedding=[0.0] * 256),
        ]
        await fallback_store.replace_source(SourceType.BLOG, "b1", broken[:1], "x1")
        await fallback_store.replace_source(SourceType.BLOG, "b2", broken[1:], "x2")
        retriever = KnowledgeRetriever(embedding_service, fallback_store, RetrievalConfig())

        results = await retriever.retrieve("pricing video", 10)

        assert {r.chunk.source_type for r in results} == {SourceType.FAQ}

    @pytest.mark.asyncio
    async def test_any_exception_falls_back(self, embedding_service, store):
        await fill(store, embedding_service)
        store.vector_search = AsyncMock(side_effect=RuntimeError("$vectorSearch stage not supported"))
        retriever = KnowledgeRetriever(embedding_service, store, RetrievalConfig())

        results = await retriever.retrieve("password", 2)

        assert len(results) == 2
        assert retriever.fallback_count == 1

    @pytest.mark.asyncio
    async def test_empty_approximate_result_scans(self, embedding_service, store):
        await fill(store, embedding_service)
        store.vector_search = AsyncMock(return_value=[])
        retriever = KnowledgeRetriever(embedding_service, store, RetrievalConfig())

        results = await retriever.retrieve("password", 2)

        assert len(results) == 2
        assert retriever.fallback_count == 0

    @pytest.mark.asyncio
    async def test_passes_candidate_pool(self, embedding_service, store):
        store.vector_search = AsyncMock(return_value=[])
        retriever = KnowledgeRetriever(embedding_service, store, RetrievalConfig())

        await retriever.retrieve("anything", 4)

        kwargs = store.vector_search.call_args.kwargs
        assert kwargs["top_k"] == 4
        assert kwargs["num_candidates"] == 200

    @pytest.mark.asyncio
    async def test_empty_store(self, embedding_service, fallback_store):
        retriever = KnowledgeRetriever(embedding_service, fallback_store, RetrievalConfig())
        assert await retriever.retrieve("anything", 5) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("top_k", [0, -1])
    async def test_rejects_non_positive_top_k(self, embedding_service, store, top_k):
        retriever = KnowledgeRetriever(embedding_service, store, RetrievalConfig())
        with pytest.raises(ValueError):
            await retriever.retrieve("anything", top_k)

    @pytest.mark.asyncio
    async def test_default_top_k(self, embedding_service, store):
        await fill(store, embedding_service)
        retriever = KnowledgeRetriever(embedding_service, store, RetrievalConfig(top_k=2))

        assert len(await retriever.retrieve("pricing")) == 2
