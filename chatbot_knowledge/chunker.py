"""
Chunker Module

Splits normalized source text into overlapping chunks and builds the
KnowledgeChunk records that are embedded and stored.

Chunking Strategy:
- Recursive Character Splitting: Splits on natural boundaries (paragraphs, sentences)
- Target size: 800 characters per chunk
- Overlap: 120 characters, so a fact spanning a boundary survives whole in one chunk
- Metadata: copied from the source onto every chunk
"""

import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Dict, Any

from langchain_text_splitters import RecursiveCharacterTextSplitter

from config.settings import get_settings, ChunkingConfig

logger = logging.getLogger(__name__)


class SourceType(str, Enum):
    """Kinds of documents that feed the knowledge base."""

    FAQ = "faq"
    CONTENT_PAGE = "content-page"
    BLOG = "blog"
    CUSTOM_QA = "custom-qa"

    @classmethod
    def parse(cls, value: "str | SourceType") -> "SourceType":
        """Accept an enum member or its string value."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ValueError(
                f"Unknown source type: {value!r}. "
                f"Expected one of {[t.value for t in cls]}"
            ) from None


def content_hash(source_type: SourceType, source_id: Optional[str], text: str) -> str:
    """Deterministic digest of a chunk's identity and text."""
    payload = "::".join([SourceType.parse(source_type).value, source_id or "unknown", text])
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def chunk_key(source_type: SourceType, source_id: Optional[str], chunk_index: int) -> str:
    """Storage key for the (source_type, source_id, chunk_index) triple."""
    return f"{SourceType.parse(source_type).value}:{source_id or 'global'}:{chunk_index}"


@dataclass
class ChunkPiece:
    """A slice of text produced by the splitter, before it becomes a record."""

    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class KnowledgeChunk:
    """
    The unit of retrievable knowledge.

    Attributes:
        source_type: Kind of originating document
        source_id: Id of the originating document (None for global chunks)
        chunk_index: Position of this chunk within the source text (0-indexed)
        text: Plain-text content that is embedded and retrieved
        metadata: Annotations copied from the source (category, title, tags)
        embedding: Vector embedding (populated by the synchronizer)
        hash: Digest of (source_type, source_id, text)
        sync_epoch: Id of the sync pass that last wrote this chunk
    """

    source_type: SourceType
    source_id: Optional[str]
    chunk_index: int
    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    embedding: Optional[List[float]] = None
    hash: str = ""
    sync_epoch: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.source_type = SourceType.parse(self.source_type)
        if self.source_id is not None:
            self.source_id = str(self.source_id)
        if not self.hash:
            self.hash = content_hash(self.source_type, self.source_id, self.text)

    @property
    def key(self) -> str:
        """Unique storage key of this chunk."""
        return chunk_key(self.source_type, self.source_id, self.chunk_index)

    def to_dict(self) -> Dict[str, Any]:
        """Convert chunk to dictionary for storage."""
        return {
            "_id": self.key,
            "sourceType": self.source_type.value,
            "sourceId": self.source_id,
            "chunkIndex": self.chunk_index,
            "text": self.text,
            "metadata": self.metadata,
            "embedding": self.embedding,
            "hash": self.hash,
            "syncEpoch": self.sync_epoch,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KnowledgeChunk":
        """Create KnowledgeChunk from a stored document."""
        return cls(
            source_type=data["sourceType"],
            source_id=data.get("sourceId"),
            chunk_index=data.get("chunkIndex", 0),
            text=data["text"],
            metadata=data.get("metadata") or {},
            embedding=data.get("embedding"),
            hash=data.get("hash", ""),
            sync_epoch=data.get("syncEpoch"),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )


class KnowledgeChunker:
    """
    Splits source text into overlapping chunks.

    Example:
        chunker = KnowledgeChunker()
        chunks = chunker.build_chunks(SourceType.FAQ, "65f0...", text, {"category": "billing"})
        for chunk in chunks:
            print(f"Chunk {chunk.chunk_index}: {chunk.text[:100]}...")
    """

    def __init__(
        self,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
        config: Optional[ChunkingConfig] = None,
    ):
        """
        Initialize the KnowledgeChunker.

        Args:
            chunk_size: Target characters per chunk (default from config)
            chunk_overlap: Overlap between chunks (default from config)
            config: Optional ChunkingConfig instance
        """
        self.config = config or get_settings().chunking

        self.chunk_size = chunk_size or self.config.chunk_size
        self.chunk_overlap = self.config.chunk_overlap if chunk_overlap is None else chunk_overlap

        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be smaller than "
                f"chunk_size ({self.chunk_size})"
            )

        self._splitter = RecursiveCharacterTextSplitter(
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
            length_function=len,
        )

        logger.info(
            f"KnowledgeChunker initialized: chunk_size={self.chunk_size}, "
            f"overlap={self.chunk_overlap}"
        )

    def split(
        self,
        text: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> List[ChunkPiece]:
        """
        Split text into overlapping pieces.

        Args:
            text: Normalized plain text
            metadata: Annotations attached to every piece

        Returns:
            List of ChunkPiece; empty when the text has no content
        """
        if not text or not text.strip():
            return []

        metadata = metadata or {}
        return [
            ChunkPiece(text=piece, metadata=dict(metadata))
            for piece in self._splitter.split_text(text)
            if piece.strip()
        ]

    def build_chunks(
        self,
        source_type: SourceType,
        source_id: Optional[str],
        text: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> List[KnowledgeChunk]:
        """
        Split a source's text and build its KnowledgeChunk records.

        Embeddings are left empty; the synchronizer fills them in.
        """
        now = datetime.now(timezone.utc)
        chunks = [
            KnowledgeChunk(
                source_type=source_type,
                source_id=source_id,
                chunk_index=index,
                text=piece.text,
                metadata=piece.metadata,
                created_at=now,
                updated_at=now,
            )
            for index, piece in enumerate(self.split(text, metadata))
        ]

        logger.debug(
            f"Split {SourceType.parse(source_type).value}:{source_id} into "
            f"{len(chunks)} chunks ({len(text or '')} chars)"
        )
        return chunks
