"""
Chatbot Knowledge Base - Core Module

Keeps the support chatbot's knowledge in step with the application's content
and answers questions from it:
- Normalizer: Rich text to plain text
- KnowledgeChunker: Overlapping chunks with content hashes
- EmbeddingService: Embedding generation (Gemini/OpenAI/local)
- KnowledgeStore: Chunk storage and vector search (MongoDB Atlas/local FAISS)
- SourceSynchronizer: Source document → chunks, replace on every change
- KnowledgeRetriever: Approximate search with an exact cosine fallback
- HistoryCondenser: Bounded conversation history
- AnswerGenerator: Retrieval-augmented answering
- KnowledgeService: Facade used by the host application
"""

from .chunker import KnowledgeChunk, KnowledgeChunker, SourceType
from .embeddings import EmbeddingService, cosine_similarity
from .exceptions import (
    ConfigurationError,
    KnowledgeBaseError,
    UpstreamError,
    VectorSearchUnavailable,
)
from .knowledge_store import (
    BaseKnowledgeStore,
    LocalKnowledgeStore,
    MongoKnowledgeStore,
    SearchResult,
    create_knowledge_store,
)
from .sources import BlogPost, ContentPage, CustomQA, FaqEntry
from .synchronizer import SourceSynchronizer, SyncReport, SyncSummary
from .retriever import KnowledgeRetriever
from .memory import HistoryCondenser, Message, parse_history
from .llm_service import LLMService, LLMResponse
from .answer_generator import AnswerGenerator, ChatAnswer
from .service import KnowledgeService

__all__ = [
    # Ingestion
    "SourceType",
    "KnowledgeChunk",
    "KnowledgeChunker",
    "EmbeddingService",
    "cosine_similarity",
    "BaseKnowledgeStore",
    "MongoKnowledgeStore",
    "LocalKnowledgeStore",
    "SearchResult",
    "create_knowledge_store",
    "FaqEntry",
    "ContentPage",
    "BlogPost",
    "CustomQA",
    "SourceSynchronizer",
    "SyncReport",
    "SyncSummary",
    # Answering
    "KnowledgeRetriever",
    "HistoryCondenser",
    "Message",
    "parse_history",
    "LLMService",
    "LLMResponse",
    "AnswerGenerator",
    "ChatAnswer",
    "KnowledgeService",
    # Errors
    "KnowledgeBaseError",
    "ConfigurationError",
    "UpstreamError",
    "VectorSearchUnavailable",
]
