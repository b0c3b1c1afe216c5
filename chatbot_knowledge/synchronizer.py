"""
Source Synchronizer Module

Keeps the knowledge store consistent with the application's source documents.

Sync Pipeline (per source document):
    Fetch → Compose text → Normalize → Chunk → Compare with stored → Embed → Replace

- A missing, inactive or content-empty document has its chunks removed
- A document whose chunk hashes and metadata match what is stored is left
  untouched unless the sync is forced
- Otherwise its whole chunk set is replaced (see knowledge_store for the
  staged epoch swap that keeps the source visible during the write)
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional

from chatbot_knowledge.chunker import KnowledgeChunker, SourceType
from chatbot_knowledge.embeddings import EmbeddingService
from chatbot_knowledge.knowledge_store import BaseKnowledgeStore
from chatbot_knowledge.sources import SourceRepository

logger = logging.getLogger(__name__)

SYNCED = "synced"
UNCHANGED = "unchanged"
REMOVED = "removed"


@dataclass
class SyncReport:
    """Outcome of syncing a single source document."""

    source_type: SourceType
    source_id: Optional[str]
    action: str
    chunks: int = 0


@dataclass
class SyncSummary:
    """Aggregate outcome of syncing every document of one type."""

    source_type: SourceType
    synced: int = 0
    unchanged: int = 0
    removed: int = 0
    pruned: int = 0
    chunks: int = 0

    def add(self, report: SyncReport) -> None:
        if report.action == SYNCED:
            self.synced += 1
        elif report.action == UNCHANGED:
            self.unchanged += 1
        else:
            self.removed += 1
        self.chunks += report.chunks


class SourceSynchronizer:
    """
    Orchestrates Normalizer → Chunker → Embedder → Knowledge Store.

    CRUD handlers call sync_one after creating or updating a document and
    remove_source after deleting one. Calls for the same source are expected
    to arrive one at a time; concurrent calls still leave the store
    consistent (last writer wins).

    Example:
        synchronizer = SourceSynchronizer(repositories, store, embedding_service)
        await synchronizer.sync_one(SourceType.FAQ, faq_id)
        await synchronizer.remove_source(SourceType.BLOG, blog_id)
    """

    def __init__(
        self,
        repositories: Dict[SourceType, SourceRepository],
        store: BaseKnowledgeStore,
        embedding_service: EmbeddingService,
        chunker: Optional[KnowledgeChunker] = None,
    ):
        """
        Args:
            repositories: One repository per source type
            store: Knowledge store to write chunks to
            embedding_service: Embeds chunk texts
            chunker: Text splitter (default from config)
        """
        self.repositories = {SourceType.parse(k): v for k, v in repositories.items()}
        self.store = store
        self.embedding_service = embedding_service
        self.chunker = chunker or KnowledgeChunker()

    def _repository(self, source_type: SourceType) -> SourceRepository:
        try:
            return self.repositories[source_type]
        except KeyError:
            raise ValueError(f"No repository registered for {source_type.value}") from None

    async def sync_one(
        self,
        source_type: SourceType,
        source_id: str,
        force: bool = False,
    ) -> SyncReport:
        """
        Sync a single source document, typically after create/update.

        Args:
            source_type: Kind of source
            source_id: Document id
            force: Re-embed even if the content is unchanged

        Returns:
            SyncReport describing what happened
        """
        source_type = SourceType.parse(source_type)
        document = await self._repository(source_type).find_by_id(source_id)

        if document is None or not document.is_active:
            logger.debug(f"{source_type.value}:{source_id} is gone or inactive")
            return await self._remove(source_type, str(source_id))

        return await self._sync_document(source_type, document, force)

    async def sync_all(self, source_type: SourceType, force: bool = False) -> SyncSummary:
        """
        Sync (or resync) every document of one type.

        Args:
            source_type: Kind of source
            force: Re-embed even if content is unchanged

        Returns:
            SyncSummary with per-action counts
        """
        source_type = SourceType.parse(source_type)
        documents = await self._repository(source_type).find_all()
        summary = SyncSummary(source_type=source_type)

        for document in documents:
            if not document.is_active:
                summary.add(await self._remove(source_type, str(document.id)))
                continue
            summary.add(await self._sync_document(source_type, document, force))

        logger.info(
            f"Synced {source_type.value}: {summary.synced} synced, "
            f"{summary.unchanged} unchanged, {summary.removed} removed, "
            f"{summary.chunks} chunks"
        )
        return summary

    async def rebuild_all(self, force: bool = True) -> Dict[SourceType, SyncSummary]:
        """
        Rebuild the knowledge base from every source type.

        Chunks belonging to documents that no longer exist are pruned.
        """
        source_types = list(self.repositories)
        summaries: List[SyncSummary] = await asyncio.gather(
            *(self._rebuild_type(source_type, force) for source_type in source_types)
        )
        return dict(zip(source_types, summaries))

    async def _rebuild_type(self, source_type: SourceType, force: bool) -> SyncSummary:
        summary = await self.sync_all(source_type, force=force)
        documents = await self._repository(source_type).find_all()
        keep_ids = [str(d.id) for d in documents if d.is_active]
        summary.pruned = await self.store.prune_sources(source_type, keep_ids)
        if summary.pruned:
            logger.info(f"Pruned {summary.pruned} orphaned {source_type.value} chunks")
        return summary

    async def remove_source(
        self,
        source_type: SourceType,
        source_id: Optional[str] = None,
    ) -> int:
        """
        Remove a source's chunks, or every chunk of the type when no id is given.

        Returns:
            Number of chunks deleted
        """
        source_type = SourceType.parse(source_type)
        return await self.store.delete_source(source_type, source_id)

    async def _remove(self, source_type: SourceType, source_id: str) -> SyncReport:
        await self.store.delete_source(source_type, source_id)
        return SyncReport(source_type=source_type, source_id=source_id, action=REMOVED)

    async def _sync_document(self, source_type: SourceType, document, force: bool) -> SyncReport:
        source_id = str(document.id)
        content = document.compose()

        chunks = [] if content.is_empty else self.chunker.build_chunks(
            source_type, source_id, content.text, content.metadata
        )
        if not chunks:
            logger.debug(f"{source_type.value}:{source_id} has no content")
            return await self._remove(source_type, source_id)

        if not force:
            stored = await self.store.get_source_signatures(source_type, source_id)
            if stored == [(c.hash, c.metadata) for c in chunks]:
                return SyncReport(source_type, source_id, UNCHANGED, len(chunks))

        embeddings = await self.embedding_service.embed_many([c.text for c in chunks])
        for chunk, embedding in zip(chunks, embeddings):
            chunk.embedding = embedding

        written = await self.store.replace_source(
            source_type, source_id, chunks, sync_epoch=uuid.uuid4().hex
        )
        logger.debug(f"Synced {source_type.value}:{source_id} ({written} chunks)")
        return SyncReport(source_type, source_id, SYNCED, written)
