"""
Knowledge Store Module

Persists KnowledgeChunk records and runs similarity search over them.
Supports two backends:
- MongoDB Atlas: Production, with the $vectorSearch aggregation stage
- Local: In-memory dict with a FAISS index, optional JSON persistence

Schema (stored per chunk):
- sourceType / sourceId / chunkIndex: unique key of the chunk
- text: Plain text content
- embedding: Vector representation
- metadata: Annotations copied from the source
- hash: Digest of (sourceType, sourceId, text)
- syncEpoch: Id of the sync pass that last wrote the chunk

Replacing a source's chunks is a staged swap: every new chunk is upserted
under its unique key tagged with a fresh sync epoch, then chunks of that
source carrying any other epoch are deleted. Readers never see a valid
source with zero chunks, and the unique key holds at every instant.
"""

import asyncio
import json
import logging
import math
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Dict, Any, Tuple

import numpy as np
from pymongo import AsyncMongoClient, UpdateOne
from pymongo.operations import SearchIndexModel

from config.settings import get_settings, KnowledgeStoreConfig
from chatbot_knowledge.chunker import KnowledgeChunk, SourceType
from chatbot_knowledge.exceptions import ConfigurationError, VectorSearchUnavailable

logger = logging.getLogger(__name__)


class SearchResult:
    """
    Represents a single search result.

    Attributes:
        chunk: The retrieved KnowledgeChunk
        score: Similarity score (higher is better)
        rank: Position in results (1-indexed)
    """

    def __init__(self, chunk: KnowledgeChunk, score: float, rank: int = 0):
        self.chunk = chunk
        self.score = score
        self.rank = rank

    def __repr__(self) -> str:
        return (
            f"SearchResult(source='{self.chunk.key}', "
            f"score={self.score:.4f}, rank={self.rank})"
        )

    def to_source(self) -> Dict[str, Any]:
        """Public citation record returned alongside an answer."""
        return {
            "sourceType": self.chunk.source_type.value,
            "sourceId": self.chunk.source_id,
            "chunkIndex": self.chunk.chunk_index,
            "text": self.chunk.text,
            "metadata": self.chunk.metadata,
            "score": self.score,
        }


def source_filter(source_type: SourceType, source_id: Optional[str] = None) -> Dict[str, Any]:
    """Query matching one source's chunks, or every chunk of a type."""
    conditions: Dict[str, Any] = {"sourceType": SourceType.parse(source_type).value}
    if source_id:
        conditions["sourceId"] = str(source_id)
    return conditions


class BaseKnowledgeStore(ABC):
    """
    Abstract base class for knowledge stores.

    All implementations must provide:
    - replace_source: Swap a source's chunk set for a new one
    - delete_source: Remove a source's chunks (or a whole type)
    - get_source_signatures: Stored (hash, metadata) pairs of a source, ordered by chunk index
    - vector_search: Approximate nearest-neighbour search
    - find_all: Full scan used by the exact fallback
    """

    async def ensure_indexes(self) -> None:
        """Create secondary indexes (no-op where not applicable)."""

    @abstractmethod
    async def replace_source(
        self,
        source_type: SourceType,
        source_id: Optional[str],
        chunks: List[KnowledgeChunk],
        sync_epoch: str,
    ) -> int:
        """
        Replace the chunk set of one source.

        Args:
            source_type: Kind of source
            source_id: Source document id
            chunks: New chunks, all with embeddings
            sync_epoch: Id of this sync pass

        Returns:
            Number of chunks written
        """

    @abstractmethod
    async def delete_source(
        self,
        source_type: SourceType,
        source_id: Optional[str] = None,
    ) -> int:
        """Delete a source's chunks, or all chunks of a type when no id is given."""

    @abstractmethod
    async def prune_sources(self, source_type: SourceType, keep_ids: List[str]) -> int:
        """
        Delete chunks of a type whose source id is not in keep_ids.

        Global chunks (no source id) are left alone.
        """

    @abstractmethod
    async def get_source_signatures(
        self,
        source_type: SourceType,
        source_id: Optional[str],
    ) -> List[Tuple[str, Dict[str, Any]]]:
        """Return stored (hash, metadata) pairs for a source, ordered by chunk index."""

    @abstractmethod
    async def vector_search(
        self,
        query_embedding: List[float],
        top_k: int,
        num_candidates: int,
    ) -> List[SearchResult]:
        """
        Approximate nearest-neighbour search.

        Raises:
            VectorSearchUnavailable: If the backend has no vector index
        """

    @abstractmethod
    async def find_all(self) -> List[KnowledgeChunk]:
        """Load every stored chunk."""

    @abstractmethod
    async def count(
        self,
        source_type: Optional[SourceType] = None,
        source_id: Optional[str] = None,
    ) -> int:
        """Count chunks, optionally restricted to a type or source."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove all data from the store."""


class MongoKnowledgeStore(BaseKnowledgeStore):
    """
    MongoDB Atlas knowledge store for production use.

    Requires:
    - MongoDB connection URI
    - An Atlas Vector Search index on the `embedding` field for the
      approximate path (without it, vector_search raises and the retriever
      falls back to an exact scan)
    """

    def __init__(
        self,
        dimension: int,
        uri: Optional[str] = None,
        database: Optional[str] = None,
        collection: Optional[str] = None,
        vector_index: Optional[str] = None,
        client: Optional[AsyncMongoClient] = None,
    ):
        """
        Initialize MongoDB knowledge store.

        Args:
            dimension: Embedding dimension
            uri: MongoDB connection URI (or from settings)
            database: Database name
            collection: Collection name
            vector_index: Name of the Atlas vector search index
            client: Existing client to share with the source repositories

        Raises:
            ConfigurationError: If neither a client nor a URI is available
        """
        config = get_settings().knowledge_store

        self.dimension = dimension
        self.uri = uri or config.mongodb_uri
        self.database_name = database or config.mongodb_database
        self.collection_name = collection or config.mongodb_collection
        self.vector_index = vector_index or config.mongodb_vector_index

        if client is None and not self.uri:
            raise ConfigurationError(
                "MongoDB URI not configured. Set MONGODB_URI environment variable."
            )

        self._client = client
        self._collection = None

        logger.info(
            f"MongoKnowledgeStore initialized: db={self.database_name}, "
            f"collection={self.collection_name}"
        )

    async def _connect(self):
        """Establish connection to MongoDB."""
        if self._collection is not None:
            return self._collection

        if self._client is None:
            self._client = AsyncMongoClient(self.uri)
            # Test connection
            await self._client.admin.command("ping")
            logger.info("Connected to MongoDB")

        self._collection = self._client[self.database_name][self.collection_name]
        return self._collection

    async def ensure_indexes(self) -> None:
        collection = await self._connect()
        await collection.create_index(
            [("sourceType", 1), ("sourceId", 1), ("chunkIndex", 1)],
            unique=True,
            name="source_chunk_unique",
        )
        await collection.create_index("hash", name="hash_idx")
        logger.info(f"Ensured indexes on {self.collection_name}")

    async def replace_source(
        self,
        source_type: SourceType,
        source_id: Optional[str],
        chunks: List[KnowledgeChunk],
        sync_epoch: str,
    ) -> int:
        collection = await self._connect()
        base_filter = source_filter(source_type, source_id)
        if not source_id:
            base_filter["sourceId"] = None

        written = 0
        if chunks:
            if any(c.embedding is None for c in chunks):
                raise ValueError("Every chunk needs an embedding before it is stored")

            now = datetime.now(timezone.utc)
            operations = []
            for chunk in chunks:
                chunk.sync_epoch = sync_epoch
                doc = chunk.to_dict()
                doc.pop("_id")
                doc.pop("createdAt")
                doc["updatedAt"] = now
                operations.append(
                    UpdateOne(
                        {**base_filter, "chunkIndex": chunk.chunk_index},
                        {"$set": doc, "$setOnInsert": {"_id": chunk.key, "createdAt": now}},
                        upsert=True,
                    )
                )

            result = await collection.bulk_write(operations, ordered=True)
            written = result.upserted_count + result.matched_count

        stale = await collection.delete_many({**base_filter, "syncEpoch": {"$ne": sync_epoch}})

        logger.info(
            f"Replaced {base_filter['sourceType']}:{source_id}: "
            f"{written} chunks written, {stale.deleted_count} stale removed"
        )
        return written

    async def delete_source(
        self,
        source_type: SourceType,
        source_id: Optional[str] = None,
    ) -> int:
        collection = await self._connect()
        result = await collection.delete_many(source_filter(source_type, source_id))
        logger.info(
            f"Deleted {result.deleted_count} chunks for "
            f"{SourceType.parse(source_type).value}:{source_id or '*'}"
        )
        return result.deleted_count

    async def prune_sources(self, source_type: SourceType, keep_ids: List[str]) -> int:
        collection = await self._connect()
        result = await collection.delete_many({
            "sourceType": SourceType.parse(source_type).value,
            "sourceId": {"$nin": [str(i) for i in keep_ids] + [None]},
        })
        return result.deleted_count

    async def get_source_signatures(
        self,
        source_type: SourceType,
        source_id: Optional[str],
    ) -> List[Tuple[str, Dict[str, Any]]]:
        collection = await self._connect()
        cursor = collection.find(
            source_filter(source_type, source_id),
            {"hash": 1, "metadata": 1, "chunkIndex": 1},
        ).sort("chunkIndex", 1)
        docs = await cursor.to_list(None)
        return [(doc.get("hash", ""), doc.get("metadata") or {}) for doc in docs]

    async def vector_search(
        self,
        query_embedding: List[float],
        top_k: int,
        num_candidates: int,
    ) -> List[SearchResult]:
        collection = await self._connect()

        pipeline = [
            {
                "$vectorSearch": {
                    "index": self.vector_index,
                    "path": "embedding",
                    "queryVector": query_embedding,
                    "numCandidates": num_candidates,
                    "limit": top_k,
                }
            },
            {
                "$project": {
                    "_id": 1,
                    "text": 1,
                    "metadata": 1,
                    "sourceType": 1,
                    "sourceId": 1,
                    "chunkIndex": 1,
                    "hash": 1,
                    "score": {"$meta": "vectorSearchScore"},
                }
            },
        ]

        cursor = await collection.aggregate(pipeline)
        docs = await cursor.to_list(None)

        results = [
            SearchResult(
                chunk=KnowledgeChunk.from_dict(doc),
                score=float(doc.get("score", 0.0)),
                rank=rank,
            )
            for rank, doc in enumerate(docs, 1)
        ]
        logger.debug(f"MongoDB vector search returned {len(results)} results")
        return results

    async def find_all(self) -> List[KnowledgeChunk]:
        collection = await self._connect()
        docs = await collection.find({}).to_list(None)
        return [KnowledgeChunk.from_dict(doc) for doc in docs]

    async def count(
        self,
        source_type: Optional[SourceType] = None,
        source_id: Optional[str] = None,
    ) -> int:
        collection = await self._connect()
        query = source_filter(source_type, source_id) if source_type else {}
        return await collection.count_documents(query)

    async def clear(self) -> None:
        collection = await self._connect()
        result = await collection.delete_many({})
        logger.info(f"Cleared {result.deleted_count} documents from MongoDB")

    def vector_index_definition(self) -> Dict[str, Any]:
        """Atlas Vector Search index definition for the embedding field."""
        return {
            "fields": [
                {
                    "type": "vector",
                    "path": "embedding",
                    "numDimensions": self.dimension,
                    "similarity": "cosine",
                },
                {"type": "filter", "path": "sourceType"},
            ]
        }

    async def create_vector_index(self) -> str:
        """Create the Atlas vector search index (requires an Atlas cluster)."""
        collection = await self._connect()
        model = SearchIndexModel(
            definition=self.vector_index_definition(),
            name=self.vector_index,
            type="vectorSearch",
        )
        name = await collection.create_search_index(model)
        logger.info(f"Requested vector search index '{name}'")
        return name

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()


class LocalKnowledgeStore(BaseKnowledgeStore):
    """
    In-process knowledge store for development and tests.

    Chunks live in a dict keyed by their unique key. The vector stage uses a
    FAISS inner-product index over normalized vectors, rebuilt lazily after
    writes. With use_vector_index=False the store behaves like a database
    without vector search and vector_search always raises.
    """

    def __init__(
        self,
        index_path: Optional[str] = None,
        use_vector_index: bool = True,
    ):
        """
        Initialize the local store.

        Args:
            index_path: JSON file to persist chunks to (optional)
            use_vector_index: Whether the FAISS vector stage is available
        """
        self.index_path = Path(index_path) if index_path else None
        self.use_vector_index = use_vector_index

        self._chunks: Dict[str, KnowledgeChunk] = {}
        self._index = None
        self._index_keys: List[str] = []
        self._version = 0

        if self.index_path and self.index_path.exists():
            self._load()

        logger.info(
            f"LocalKnowledgeStore initialized: index_path={index_path}, "
            f"vector_index={use_vector_index}"
        )

    def _matching(self, source_type: SourceType, source_id: Optional[str]) -> List[str]:
        source_type = SourceType.parse(source_type)
        return [
            key for key, chunk in self._chunks.items()
            if chunk.source_type == source_type
            and (not source_id or chunk.source_id == str(source_id))
        ]

    def _invalidate(self) -> None:
        self._version += 1
        self._index = None
        self._index_keys = []
        if self.index_path:
            self._save()

    async def replace_source(
        self,
        source_type: SourceType,
        source_id: Optional[str],
        chunks: List[KnowledgeChunk],
        sync_epoch: str,
    ) -> int:
        if any(c.embedding is None for c in chunks):
            raise ValueError("Every chunk needs an embedding before it is stored")

        now = datetime.now(timezone.utc)
        for chunk in chunks:
            previous = self._chunks.get(chunk.key)
            chunk.sync_epoch = sync_epoch
            chunk.created_at = previous.created_at if previous else (chunk.created_at or now)
            chunk.updated_at = now
            self._chunks[chunk.key] = chunk

        stale = [
            key for key in self._matching(source_type, source_id)
            if self._chunks[key].sync_epoch != sync_epoch
            and (source_id or self._chunks[key].source_id is None)
        ]
        for key in stale:
            del self._chunks[key]

        self._invalidate()
        logger.debug(
            f"Replaced {SourceType.parse(source_type).value}:{source_id}: "
            f"{len(chunks)} written, {len(stale)} stale removed"
        )
        return len(chunks)

    async def delete_source(
        self,
        source_type: SourceType,
        source_id: Optional[str] = None,
    ) -> int:
        keys = self._matching(source_type, source_id)
        for key in keys:
            del self._chunks[key]
        if keys:
            self._invalidate()
        return len(keys)

    async def prune_sources(self, source_type: SourceType, keep_ids: List[str]) -> int:
        keep = {str(i) for i in keep_ids}
        keys = [
            key for key in self._matching(source_type, None)
            if self._chunks[key].source_id is not None
            and self._chunks[key].source_id not in keep
        ]
        for key in keys:
            del self._chunks[key]
        if keys:
            self._invalidate()
        return len(keys)

    async def get_source_signatures(
        self,
        source_type: SourceType,
        source_id: Optional[str],
    ) -> List[Tuple[str, Dict[str, Any]]]:
        chunks = sorted(
            (self._chunks[key] for key in self._matching(source_type, source_id)),
            key=lambda c: c.chunk_index,
        )
        return [(c.hash, c.metadata) for c in chunks]

    @staticmethod
    def _build_index(snapshot: List[KnowledgeChunk], dimension: int):
        """Build a FAISS index over every chunk with the query's dimension and a usable norm."""
        import faiss

        indexed = [
            chunk for chunk in snapshot
            if chunk.embedding is not None
            and len(chunk.embedding) == dimension
            and _has_direction(chunk.embedding)
        ]
        index = faiss.IndexFlatIP(dimension)
        if indexed:
            vectors = np.array([c.embedding for c in indexed], dtype=np.float32)
            index.add(_normalize(vectors))
        return index, [c.key for c in indexed]

    @staticmethod
    def _search(index, keys: List[str], query_embedding: List[float], top_k: int):
        if index.ntotal == 0:
            return []

        query = _normalize(np.array([query_embedding], dtype=np.float32))
        scores, indices = index.search(query, min(top_k, index.ntotal))
        return [
            (keys[idx], float(score))
            for score, idx in zip(scores[0], indices[0])
            if idx >= 0  # FAISS returns -1 for not found
        ]

    async def vector_search(
        self,
        query_embedding: List[float],
        top_k: int,
        num_candidates: int,
    ) -> List[SearchResult]:
        if not self.use_vector_index:
            raise VectorSearchUnavailable("local store has no vector index configured")
        if not _has_direction(query_embedding):
            # Similarity to a zero vector is undefined, so there is nothing to rank
            return []

        index, keys = self._index, self._index_keys
        dimension = len(query_embedding)
        if index is None or index.d != dimension:
            snapshot, version = list(self._chunks.values()), self._version
            index, keys = await asyncio.to_thread(self._build_index, snapshot, dimension)
            if version == self._version:
                self._index, self._index_keys = index, keys

        hits = await asyncio.to_thread(self._search, index, keys, query_embedding, top_k)
        return [
            SearchResult(chunk=self._chunks[key], score=score, rank=rank)
            for rank, (key, score) in enumerate(hits, 1)
            if key in self._chunks
        ]

    async def find_all(self) -> List[KnowledgeChunk]:
        return list(self._chunks.values())

    async def count(
        self,
        source_type: Optional[SourceType] = None,
        source_id: Optional[str] = None,
    ) -> int:
        if source_type is None:
            return len(self._chunks)
        return len(self._matching(source_type, source_id))

    async def clear(self) -> None:
        self._chunks = {}
        self._invalidate()
        logger.info("Local knowledge store cleared")

    def _save(self):
        """Save chunks to disk."""
        self.index_path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"chunks": [_serialize(c) for c in self._chunks.values()]}
        with open(self.index_path, "w", encoding="utf-8") as f:
            json.dump(payload, f)

    def _load(self):
        """Load chunks from disk."""
        with open(self.index_path, "r", encoding="utf-8") as f:
            payload = json.load(f)

        for data in payload.get("chunks", []):
            for field_name in ("createdAt", "updatedAt"):
                if data.get(field_name):
                    data[field_name] = datetime.fromisoformat(data[field_name])
            chunk = KnowledgeChunk.from_dict(data)
            self._chunks[chunk.key] = chunk

        logger.info(f"Loaded {len(self._chunks)} chunks from {self.index_path}")


def _has_direction(vector: List[float]) -> bool:
    """True when the vector has a finite, non-zero norm."""
    norm = float(np.linalg.norm(np.asarray(vector, dtype=np.float64)))
    return math.isfinite(norm) and norm > 0


def _normalize(vectors: np.ndarray) -> np.ndarray:
    """Normalize vectors for cosine similarity."""
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    norms[norms == 0] = 1  # Avoid division by zero
    return vectors / norms


def _serialize(chunk: KnowledgeChunk) -> Dict[str, Any]:
    data = chunk.to_dict()
    for field_name in ("createdAt", "updatedAt"):
        if data.get(field_name):
            data[field_name] = data[field_name].isoformat()
    return data


def create_knowledge_store(
    dimension: int,
    config: Optional[KnowledgeStoreConfig] = None,
    client: Optional[AsyncMongoClient] = None,
) -> BaseKnowledgeStore:
    """Build the store selected by configuration."""
    config = config or get_settings().knowledge_store

    if config.provider == "mongodb":
        return MongoKnowledgeStore(
            dimension=dimension,
            uri=config.mongodb_uri,
            database=config.mongodb_database,
            collection=config.mongodb_collection,
            vector_index=config.mongodb_vector_index,
            client=client,
        )
    if config.provider == "local":
        return LocalKnowledgeStore(index_path=config.local_store_path)
    raise ConfigurationError(f"Unknown knowledge store provider: {config.provider}")
