"""
Configuration settings for the chatbot knowledge base.

This module handles all configuration management using environment variables.
No hardcoded credentials - everything is configurable via .env file.
"""

import logging
import os
import sys
from dataclasses import dataclass, field
from typing import Literal, Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class EmbeddingConfig:
    """Configuration for embedding models."""

    provider: Literal["gemini", "openai", "local"] = "gemini"
    gemini_model: str = "text-embedding-004"
    gemini_api_key: Optional[str] = None
    openai_model: str = "text-embedding-3-small"
    openai_api_key: Optional[str] = None
    local_model: str = "all-MiniLM-L6-v2"

    # Embedding dimensions (depends on model)
    # text-embedding-004: 768
    # text-embedding-3-small: 1536
    # all-MiniLM-L6-v2: 384
    @property
    def dimension(self) -> int:
        """Return embedding dimension based on selected model."""
        if self.provider == "gemini":
            return {"text-embedding-004": 768, "gemini-embedding-001": 3072}.get(
                self.gemini_model, 768
            )
        if self.provider == "openai":
            model_dimensions = {
                "text-embedding-3-small": 1536,
                "text-embedding-3-large": 3072,
                "text-embedding-ada-002": 1536,
            }
            return model_dimensions.get(self.openai_model, 1536)
        model_dimensions = {
            "all-MiniLM-L6-v2": 384,
            "all-mpnet-base-v2": 768,
            "paraphrase-MiniLM-L6-v2": 384,
        }
        return model_dimensions.get(self.local_model, 384)


@dataclass
class LLMConfig:
    """Configuration for generative model providers."""

    provider: Literal["gemini", "openai", "ollama"] = "gemini"
    temperature: float = 0.3
    max_output_tokens: int = 1024

    # Gemini settings
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-flash-lite"

    # OpenAI settings
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"

    # Ollama settings
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3"


@dataclass
class KnowledgeStoreConfig:
    """Configuration for the knowledge chunk store."""

    provider: Literal["mongodb", "local"] = "mongodb"

    # MongoDB settings
    mongodb_uri: Optional[str] = None
    mongodb_database: str = "elevatorpitch"
    mongodb_collection: str = "chatbotknowledges"
    mongodb_vector_index: str = "chatbot_vector_index"

    # Source collections owned by the CRUD side of the application
    faq_collection: str = "faqs"
    content_collection: str = "contents"
    blog_collection: str = "blogs"
    custom_qa_collection: str = "chatbotqas"

    # Local store settings
    local_store_path: Optional[str] = None


@dataclass
class ChunkingConfig:
    """Configuration for text chunking."""

    chunk_size: int = 800  # Characters per chunk
    chunk_overlap: int = 120  # Characters shared by consecutive chunks


@dataclass
class RetrievalConfig:
    """Configuration for retrieval settings."""

    top_k: int = 5  # Number of chunks to retrieve
    max_top_k: int = 10  # Upper bound accepted from chat requests
    candidate_multiplier: int = 15  # numCandidates = top_k * multiplier ...
    min_candidates: int = 200  # ... but never fewer than this


@dataclass
class HistoryConfig:
    """Configuration for conversation history condensing."""

    summary_turns: int = 2  # Earliest turns folded into the summary note
    recent_turns: int = 3  # Latest turns kept verbatim
    max_summary_chars: int = 220  # Per-turn cap inside the summary


@dataclass
class AssistantConfig:
    """Persona used in the system prompt."""

    product_name: str = "Elevator Video Pitch"
    product_short_name: str = "EVP"
    support_email: str = "admin@evpitch.com"


@dataclass
class Settings:
    """
    Main settings class that aggregates all configurations.

    Usage:
        settings = get_settings()
        print(settings.embedding.provider)
        print(settings.chunking.chunk_size)
    """

    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    knowledge_store: KnowledgeStoreConfig = field(default_factory=KnowledgeStoreConfig)
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    assistant: AssistantConfig = field(default_factory=AssistantConfig)

    # Deadline (seconds) applied to public operations; None disables it
    request_timeout: Optional[float] = 60.0

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Create Settings instance from environment variables.

        This is the primary way to instantiate Settings.
        """
        embedding = EmbeddingConfig(
            provider=os.getenv("EMBEDDING_PROVIDER", "gemini"),  # type: ignore
            gemini_model=os.getenv("GEMINI_EMBED_MODEL", "text-embedding-004"),
            gemini_api_key=os.getenv("GEMINI_API_KEY"),
            openai_model=os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small"),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            local_model=os.getenv("LOCAL_EMBEDDING_MODEL", "all-MiniLM-L6-v2"),
        )

        llm = LLMConfig(
            provider=os.getenv("LLM_PROVIDER", "gemini"),  # type: ignore
            temperature=float(os.getenv("LLM_TEMPERATURE", "0.3")),
            max_output_tokens=int(os.getenv("LLM_MAX_OUTPUT_TOKENS", "1024")),
            gemini_api_key=os.getenv("GEMINI_API_KEY"),
            gemini_model=os.getenv("GEMINI_CHAT_MODEL", "gemini-2.5-flash-lite"),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            openai_model=os.getenv("OPENAI_LLM_MODEL", "gpt-4o-mini"),
            ollama_base_url=os.getenv("OLLAMA_BASE_URL", "http://localhost:11434"),
            ollama_model=os.getenv("OLLAMA_MODEL", "llama3"),
        )

        knowledge_store = KnowledgeStoreConfig(
            provider=os.getenv("KNOWLEDGE_STORE_PROVIDER", "mongodb"),  # type: ignore
            mongodb_uri=os.getenv("MONGODB_URI"),
            mongodb_database=os.getenv("MONGODB_DATABASE", "elevatorpitch"),
            mongodb_collection=os.getenv("MONGODB_COLLECTION", "chatbotknowledges"),
            mongodb_vector_index=os.getenv("MONGODB_VECTOR_INDEX", "chatbot_vector_index"),
            local_store_path=os.getenv("LOCAL_STORE_PATH"),
        )

        chunking = ChunkingConfig(
            chunk_size=int(os.getenv("CHUNK_SIZE", "800")),
            chunk_overlap=int(os.getenv("CHUNK_OVERLAP", "120")),
        )

        retrieval = RetrievalConfig(
            top_k=int(os.getenv("TOP_K_RESULTS", "5")),
            max_top_k=int(os.getenv("MAX_TOP_K", "10")),
            candidate_multiplier=int(os.getenv("VECTOR_CANDIDATE_MULTIPLIER", "15")),
            min_candidates=int(os.getenv("VECTOR_MIN_CANDIDATES", "200")),
        )

        assistant = AssistantConfig(
            product_name=os.getenv("ASSISTANT_PRODUCT_NAME", "Elevator Video Pitch"),
            product_short_name=os.getenv("ASSISTANT_PRODUCT_SHORT_NAME", "EVP"),
            support_email=os.getenv("SUPPORT_EMAIL", "admin@evpitch.com"),
        )

        timeout = os.getenv("REQUEST_TIMEOUT", "60")

        return cls(
            embedding=embedding,
            llm=llm,
            knowledge_store=knowledge_store,
            chunking=chunking,
            retrieval=retrieval,
            assistant=assistant,
            request_timeout=float(timeout) if timeout else None,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


# Singleton pattern for settings
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the singleton Settings instance.

    Returns:
        Settings: The application settings loaded from environment.
    """
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reload_settings() -> Settings:
    """
    Reload settings from environment (useful for testing).

    Returns:
        Settings: Fresh settings instance.
    """
    global _settings
    load_dotenv(override=True)
    _settings = Settings.from_env()
    return _settings


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging for scripts and the host application."""
    logging.basicConfig(
        level=getattr(logging, (level or get_settings().log_level).upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
