"""
Exception types for the knowledge base.

Configuration problems are raised while the components are constructed,
upstream failures while they are used. Vector search failures never reach
callers of the retriever; they trigger the exact similarity scan instead.
"""


class KnowledgeBaseError(Exception):
    """Base class for all knowledge base errors."""


class ConfigurationError(KnowledgeBaseError, ValueError):
    """A required credential or setting is missing or invalid."""


class UpstreamError(KnowledgeBaseError):
    """An embedding or generative provider call failed."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider}: {message}")


class VectorSearchUnavailable(KnowledgeBaseError):
    """The knowledge store cannot run an approximate vector search."""
