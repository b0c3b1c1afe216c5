"""
Retriever Module

Finds the chunks most similar to a question.

Retrieval Flow:
    Question → Query Embedding → Approximate search (vector index)
        ↘ on failure or no hits → Exact cosine scan over every chunk

The exact scan keeps the chatbot answering when the deployment has no vector
index (local MongoDB, index still building). Each failure of the approximate
stage is logged and counted so operators can see the degradation.
"""

import logging
import math
from typing import Any, Dict, List, Optional

from config.settings import get_settings, RetrievalConfig
from chatbot_knowledge.embeddings import EmbeddingService, cosine_similarity
from chatbot_knowledge.knowledge_store import BaseKnowledgeStore, SearchResult

logger = logging.getLogger(__name__)


class KnowledgeRetriever:
    """
    Read-only similarity search over the knowledge store.

    Example:
        retriever = KnowledgeRetriever(embedding_service, store)
        results = await retriever.retrieve("How do I post a job?", top_k=5)
        for result in results:
            print(result.score, result.chunk.text[:80])
    """

    def __init__(
        self,
        embedding_service: EmbeddingService,
        store: BaseKnowledgeStore,
        config: Optional[RetrievalConfig] = None,
    ):
        """
        Initialize the retriever.

        Args:
            embedding_service: Embeds the question
            store: Knowledge store to search
            config: Optional RetrievalConfig instance
        """
        self.embedding_service = embedding_service
        self.store = store
        self.config = config or get_settings().retrieval

        # Times the approximate stage failed and the exact scan took over
        self.fallback_count = 0
        self.last_fallback_error: Optional[str] = None

    def num_candidates(self, top_k: int) -> int:
        """Candidate pool size handed to the approximate search."""
        return max(top_k * self.config.candidate_multiplier, self.config.min_candidates)

    async def retrieve(self, query: str, top_k: Optional[int] = None) -> List[SearchResult]:
        """
        Retrieve the chunks most similar to a query.

        Args:
            query: User question
            top_k: Number of results (default from config)

        Returns:
            Up to top_k SearchResults, best first
        """
        if top_k is None:
            top_k = self.config.top_k
        if top_k < 1:
            raise ValueError(f"top_k must be positive, got {top_k}")

        query_embedding = await self.embedding_service.embed_query(query)

        try:
            results = await self.store.vector_search(
                query_embedding,
                top_k=top_k,
                num_candidates=self.num_candidates(top_k),
            )
        except Exception as e:
            self.fallback_count += 1
            self.last_fallback_error = str(e)
            logger.warning(f"Falling back to exact similarity search: {e}")
            return await self.exact_search(query_embedding, top_k)

        if results:
            logger.debug(f"Approximate search returned {len(results)} results")
            return results[:top_k]

        logger.debug("Approximate search returned no results, scanning all chunks")
        return await self.exact_search(query_embedding, top_k)

    async def exact_search(self, query_embedding: List[float], top_k: int) -> List[SearchResult]:
        """
        Score every stored chunk by cosine similarity.

        Chunks whose score is undefined (missing or mismatched embedding) are
        skipped. Ties keep store order.
        """
        chunks = await self.store.find_all()

        scored = []
        for chunk in chunks:
            score = cosine_similarity(query_embedding, chunk.embedding)
            if math.isfinite(score):
                scored.append((score, chunk))

        scored.sort(key=lambda item: item[0], reverse=True)

        results = [
            SearchResult(chunk=chunk, score=score, rank=rank)
            for rank, (score, chunk) in enumerate(scored[:top_k], 1)
        ]
        logger.debug(f"Exact search scored {len(scored)} of {len(chunks)} chunks")
        return results

    def stats(self) -> Dict[str, Any]:
        """Degradation counters for health checks."""
        return {
            "fallback_count": self.fallback_count,
            "last_fallback_error": self.last_fallback_error,
        }
