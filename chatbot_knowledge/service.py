"""
Knowledge Service Module

Public entry point used by the host application:
- CRUD handlers call sync_one / remove_source after writes
- The admin "rebuild" action calls rebuild_all
- The chat endpoint calls chat (request payload in, response envelope out)
  or answer directly

All collaborators are injected; from_settings wires the production ones.
Every public coroutine runs under a deadline so a slow provider or database
cannot hold a request forever.
"""

import asyncio
import logging
import math
from typing import Any, Dict, List, Optional

from pymongo import AsyncMongoClient

from config.settings import Settings, get_settings
from chatbot_knowledge.answer_generator import AnswerGenerator, ChatAnswer
from chatbot_knowledge.chunker import KnowledgeChunker, SourceType
from chatbot_knowledge.embeddings import EmbeddingService
from chatbot_knowledge.knowledge_store import BaseKnowledgeStore, create_knowledge_store
from chatbot_knowledge.llm_service import LLMService
from chatbot_knowledge.memory import HistoryCondenser, Message, parse_history
from chatbot_knowledge.retriever import KnowledgeRetriever
from chatbot_knowledge.sources import (
    InMemorySourceRepository,
    SourceRepository,
    mongo_source_repositories,
)
from chatbot_knowledge.synchronizer import SourceSynchronizer, SyncReport, SyncSummary

logger = logging.getLogger(__name__)

QUESTION_REQUIRED = "A question is required."
CHAT_FAILED = "Failed to process chatbot request."

# Distinguishes "use the configured deadline" from an explicit None (no deadline)
_DEFAULT_TIMEOUT: Any = object()


class KnowledgeService:
    """
    Facade over synchronization and answering.

    Example:
        service = KnowledgeService.from_settings()
        await service.ensure_indexes()

        await service.sync_one(SourceType.FAQ, faq_id)
        reply = await service.chat({"question": "How do I apply?", "topK": 3})
    """

    def __init__(
        self,
        store: BaseKnowledgeStore,
        embedding_service: EmbeddingService,
        llm_service: LLMService,
        repositories: Dict[SourceType, SourceRepository],
        settings: Optional[Settings] = None,
        chunker: Optional[KnowledgeChunker] = None,
        client: Optional[AsyncMongoClient] = None,
    ):
        """
        Initialize the service.

        Args:
            store: Knowledge store
            embedding_service: Embeds chunks and questions
            llm_service: Generates answers
            repositories: Source document repositories, one per type
            settings: Application settings (default from environment)
            chunker: Text splitter (default from settings)
            client: MongoDB client owned by this service, closed by close()
        """
        self.settings = settings or get_settings()
        self.store = store
        self.request_timeout = self.settings.request_timeout
        self._client = client

        self.synchronizer = SourceSynchronizer(
            repositories=repositories,
            store=store,
            embedding_service=embedding_service,
            chunker=chunker or KnowledgeChunker(config=self.settings.chunking),
        )
        self.retriever = KnowledgeRetriever(
            embedding_service=embedding_service,
            store=store,
            config=self.settings.retrieval,
        )
        self.generator = AnswerGenerator(
            retriever=self.retriever,
            llm_service=llm_service,
            condenser=HistoryCondenser(config=self.settings.history),
            assistant=self.settings.assistant,
        )

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "KnowledgeService":
        """
        Build a service from configuration.

        Source documents are read from MongoDB when MONGODB_URI is set; the
        same client backs the knowledge store when it is MongoDB-backed.

        Raises:
            ConfigurationError: If a provider is missing credentials
        """
        settings = settings or get_settings()
        store_config = settings.knowledge_store

        client = AsyncMongoClient(store_config.mongodb_uri) if store_config.mongodb_uri else None
        if client is not None:
            repositories = mongo_source_repositories(
                client,
                store_config.mongodb_database,
                faq_collection=store_config.faq_collection,
                content_collection=store_config.content_collection,
                blog_collection=store_config.blog_collection,
                custom_qa_collection=store_config.custom_qa_collection,
            )
        else:
            logger.warning("MONGODB_URI not set, source repositories start empty")
            repositories = {source_type: InMemorySourceRepository() for source_type in SourceType}

        embedding_service = EmbeddingService(config=settings.embedding)
        store = create_knowledge_store(
            dimension=settings.embedding.dimension,
            config=store_config,
            client=client,
        )

        return cls(
            store=store,
            embedding_service=embedding_service,
            llm_service=LLMService(config=settings.llm),
            repositories=repositories,
            settings=settings,
            client=client,
        )

    async def _with_deadline(self, coro, timeout):
        if timeout is _DEFAULT_TIMEOUT:
            timeout = self.request_timeout
        if timeout is None:
            return await coro
        async with asyncio.timeout(timeout):
            return await coro

    async def ensure_indexes(self, timeout: Optional[float] = _DEFAULT_TIMEOUT) -> None:
        """Create the knowledge store's secondary indexes."""
        await self._with_deadline(self.store.ensure_indexes(), timeout)

    async def rebuild_all(
        self,
        force: bool = True,
        timeout: Optional[float] = None,
    ) -> Dict[SourceType, SyncSummary]:
        """
        Resync every source type.

        Unbounded by default since a full rebuild embeds every document.
        """
        summaries = await self._with_deadline(self.synchronizer.rebuild_all(force=force), timeout)
        logger.info(
            "Knowledge base rebuilt: "
            + ", ".join(f"{t.value}={s.chunks} chunks" for t, s in summaries.items())
        )
        return summaries

    async def sync_all(
        self,
        source_type: SourceType,
        force: bool = False,
        timeout: Optional[float] = _DEFAULT_TIMEOUT,
    ) -> SyncSummary:
        """Resync every document of one type."""
        return await self._with_deadline(
            self.synchronizer.sync_all(source_type, force=force), timeout
        )

    async def sync_one(
        self,
        source_type: SourceType,
        source_id: str,
        force: bool = False,
        timeout: Optional[float] = _DEFAULT_TIMEOUT,
    ) -> SyncReport:
        """Resync one document after it was created or updated."""
        return await self._with_deadline(
            self.synchronizer.sync_one(source_type, source_id, force=force), timeout
        )

    async def remove_source(
        self,
        source_type: SourceType,
        source_id: Optional[str] = None,
        timeout: Optional[float] = _DEFAULT_TIMEOUT,
    ) -> int:
        """Drop a document's chunks after it was deleted."""
        return await self._with_deadline(
            self.synchronizer.remove_source(source_type, source_id), timeout
        )

    async def answer(
        self,
        question: str,
        top_k: int = 5,
        history: Optional[List[Message]] = None,
        timeout: Optional[float] = _DEFAULT_TIMEOUT,
    ) -> ChatAnswer:
        """
        Answer a question from the knowledge base.

        Raises:
            UpstreamError: If embedding or generation fails
            TimeoutError: If the deadline expires
        """
        return await self._with_deadline(
            self.generator.answer(question, top_k=top_k, history=history), timeout
        )

    def resolve_top_k(self, raw: Any) -> int:
        """Clamp a client-supplied topK to [1, max_top_k]; default when not a number."""
        retrieval = self.settings.retrieval
        if isinstance(raw, bool) or not isinstance(raw, (int, float)) or not math.isfinite(raw):
            return retrieval.top_k
        return int(min(max(raw, 1), retrieval.max_top_k))

    async def chat(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Handle a chat request body {question, topK?, history?}.

        Returns:
            {"status": "success", "data": {answer, sources}} or
            {"status": "error", "message": ...}
        """
        payload = payload if isinstance(payload, dict) else {}
        question = payload.get("question")
        if not isinstance(question, str) or not question.strip():
            return {"status": "error", "message": QUESTION_REQUIRED}

        try:
            answer = await self.answer(
                question.strip(),
                top_k=self.resolve_top_k(payload.get("topK")),
                history=parse_history(payload.get("history")),
            )
        except Exception as e:
            logger.error(f"Chat request failed: {type(e).__name__}: {e}")
            return {"status": "error", "message": CHAT_FAILED}

        return {"status": "success", "data": answer.to_dict()}

    def stats(self) -> Dict[str, Any]:
        """Operational counters for health checks."""
        return {"retrieval": self.retriever.stats()}

    async def close(self) -> None:
        """Close the MongoDB client created by from_settings."""
        if self._client is not None:
            await self._client.close()
