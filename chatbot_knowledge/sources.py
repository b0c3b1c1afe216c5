"""
Source Documents Module

The knowledge base is fed by four document types owned by the CRUD side of
the application: FAQ entries, content pages, blog posts and custom Q&A pairs.
This module defines their shapes, how each one is composed into the text that
gets chunked, and repositories that read them.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Generic, List, Optional, Type, TypeVar

from bson import ObjectId
from pymongo import AsyncMongoClient

from chatbot_knowledge.chunker import SourceType
from chatbot_knowledge.normalizer import strip_html

logger = logging.getLogger(__name__)


@dataclass
class SourceContent:
    """Text and metadata derived from one source document."""

    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()


def _question_answer(question: str, answer: str) -> str:
    question = (question or "").strip()
    answer = strip_html(answer)
    if not question and not answer:
        return ""
    return f"Question:\n{question}\n\nAnswer:\n{answer}"


def _titled_body(title: str, description: str) -> str:
    parts = [(title or "").strip(), strip_html(description)]
    return "\n\n".join(part for part in parts if part)


@dataclass
class FaqEntry:
    id: str
    question: str = ""
    answer: str = ""
    category: Optional[str] = None

    source_type: ClassVar[SourceType] = SourceType.FAQ
    is_active: ClassVar[bool] = True

    def compose(self) -> SourceContent:
        return SourceContent(
            text=_question_answer(self.question, self.answer),
            metadata={"category": self.category or "general"},
        )

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "FaqEntry":
        return cls(
            id=str(doc["_id"]),
            question=doc.get("question") or "",
            answer=doc.get("answer") or "",
            category=doc.get("category"),
        )


@dataclass
class ContentPage:
    id: str
    type: Optional[str] = None
    title: str = ""
    description: str = ""

    source_type: ClassVar[SourceType] = SourceType.CONTENT_PAGE
    is_active: ClassVar[bool] = True

    def compose(self) -> SourceContent:
        return SourceContent(
            text=_titled_body(self.title, self.description),
            metadata={"type": self.type, "title": self.title},
        )

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "ContentPage":
        return cls(
            id=str(doc["_id"]),
            type=doc.get("type"),
            title=doc.get("title") or "",
            description=doc.get("description") or "",
        )


@dataclass
class BlogPost:
    id: str
    title: str = ""
    description: str = ""

    source_type: ClassVar[SourceType] = SourceType.BLOG
    is_active: ClassVar[bool] = True

    def compose(self) -> SourceContent:
        return SourceContent(
            text=_titled_body(self.title, self.description),
            metadata={"title": self.title, "type": "blog"},
        )

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "BlogPost":
        return cls(
            id=str(doc["_id"]),
            title=doc.get("title") or "",
            description=doc.get("description") or "",
        )


@dataclass
class CustomQA:
    """A question/answer pair curated in the admin dashboard's chatbot page."""

    id: str
    question: str = ""
    answer: str = ""
    tags: List[str] = field(default_factory=list)
    is_active: bool = True

    source_type: ClassVar[SourceType] = SourceType.CUSTOM_QA

    def compose(self) -> SourceContent:
        return SourceContent(
            text=_question_answer(self.question, self.answer),
            metadata={"tags": list(self.tags or [])},
        )

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "CustomQA":
        return cls(
            id=str(doc["_id"]),
            question=doc.get("question") or "",
            answer=doc.get("answer") or "",
            tags=doc.get("tags") or [],
            is_active=doc.get("isActive", True),
        )


DocumentT = TypeVar("DocumentT")


class SourceRepository(ABC, Generic[DocumentT]):
    """Read access to one collection of source documents."""

    @abstractmethod
    async def find_all(self) -> List[DocumentT]:
        """Every document that may contribute knowledge."""

    @abstractmethod
    async def find_by_id(self, source_id: str) -> Optional[DocumentT]:
        """A single document, or None if it does not exist."""


class MongoSourceRepository(SourceRepository[DocumentT]):
    """
    Reads source documents from a MongoDB collection.

    Example:
        faqs = MongoSourceRepository(client, "elevatorpitch", "faqs", FaqEntry)
        entry = await faqs.find_by_id("65f0c0ffee...")
    """

    def __init__(
        self,
        client: AsyncMongoClient,
        database: str,
        collection: str,
        document_class: Type[DocumentT],
        list_filter: Optional[Dict[str, Any]] = None,
    ):
        """
        Args:
            client: Shared async MongoDB client
            database: Database name
            collection: Collection name
            document_class: Dataclass with a from_document constructor
            list_filter: Filter applied by find_all (e.g. only active entries)
        """
        self._collection = client[database][collection]
        self.document_class = document_class
        self.list_filter = list_filter or {}

    async def find_all(self) -> List[DocumentT]:
        docs = await self._collection.find(self.list_filter).to_list(None)
        return [self.document_class.from_document(doc) for doc in docs]

    async def find_by_id(self, source_id: str) -> Optional[DocumentT]:
        key: Any = ObjectId(source_id) if ObjectId.is_valid(source_id) else source_id
        doc = await self._collection.find_one({"_id": key})
        if doc is None:
            return None
        return self.document_class.from_document(doc)


class InMemorySourceRepository(SourceRepository[DocumentT]):
    """Dict-backed repository for development and tests."""

    def __init__(self, documents: Optional[List[DocumentT]] = None, active_only: bool = False):
        self._documents: Dict[str, DocumentT] = {}
        self.active_only = active_only
        for document in documents or []:
            self.save(document)

    def save(self, document: DocumentT) -> None:
        self._documents[str(document.id)] = document

    def delete(self, source_id: str) -> None:
        self._documents.pop(str(source_id), None)

    async def find_all(self) -> List[DocumentT]:
        documents = list(self._documents.values())
        if self.active_only:
            documents = [d for d in documents if d.is_active]
        return documents

    async def find_by_id(self, source_id: str) -> Optional[DocumentT]:
        return self._documents.get(str(source_id))


def mongo_source_repositories(
    client: AsyncMongoClient,
    database: str,
    faq_collection: str = "faqs",
    content_collection: str = "contents",
    blog_collection: str = "blogs",
    custom_qa_collection: str = "chatbotqas",
) -> Dict[SourceType, SourceRepository]:
    """Repositories for all four source types over the application's collections."""
    return {
        SourceType.FAQ: MongoSourceRepository(client, database, faq_collection, FaqEntry),
        SourceType.CONTENT_PAGE: MongoSourceRepository(
            client, database, content_collection, ContentPage
        ),
        SourceType.BLOG: MongoSourceRepository(client, database, blog_collection, BlogPost),
        SourceType.CUSTOM_QA: MongoSourceRepository(
            client, database, custom_qa_collection, CustomQA, list_filter={"isActive": True}
        ),
    }
