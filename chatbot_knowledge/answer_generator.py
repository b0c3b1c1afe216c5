"""
Answer Generator Module

Orchestrates retrieval-augmented answering:
    Question → Retrieve top-K chunks → Build context → Condense history
    → [system prompt + context, history, question] → LLM → {answer, sources}

The sources returned are exactly the chunks that were placed in the prompt,
so the chat UI can show where an answer came from.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from config.settings import get_settings, AssistantConfig
from chatbot_knowledge.knowledge_store import SearchResult
from chatbot_knowledge.llm_service import LLMService
from chatbot_knowledge.memory import HistoryCondenser, Message, SYSTEM, USER
from chatbot_knowledge.retriever import KnowledgeRetriever

logger = logging.getLogger(__name__)

NO_CONTEXT = "No relevant context provided."


@dataclass
class ChatAnswer:
    """
    Answer to a chat question.

    Attributes:
        answer: Generated answer text
        sources: Retrieved chunks that were used as context, best first
    """
    answer: str
    sources: List[SearchResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (for API response)."""
        return {
            "answer": self.answer,
            "sources": [result.to_source() for result in self.sources],
        }


def build_context(results: List[SearchResult]) -> str:
    """Render retrieved chunks as numbered context blocks."""
    return "\n\n".join(
        f"Source {n} (type: {result.chunk.source_type.value}):\n{result.chunk.text.strip()}"
        for n, result in enumerate(results, 1)
    )


class AnswerGenerator:
    """
    Answers questions about the product from the knowledge base.

    Example:
        generator = AnswerGenerator(retriever, llm_service)
        answer = await generator.answer("How much does a job post cost?")
        print(answer.answer)
        for source in answer.sources:
            print(source.chunk.source_type, source.score)
    """

    def __init__(
        self,
        retriever: KnowledgeRetriever,
        llm_service: LLMService,
        condenser: Optional[HistoryCondenser] = None,
        assistant: Optional[AssistantConfig] = None,
    ):
        """
        Initialize the answer generator.

        Args:
            retriever: Finds relevant chunks
            llm_service: Generates the answer
            condenser: Condenses chat history (default from config)
            assistant: Persona settings (default from config)
        """
        self.retriever = retriever
        self.llm_service = llm_service
        self.condenser = condenser or HistoryCondenser()
        self.assistant = assistant or get_settings().assistant

    def system_prompt(self, context: str) -> str:
        """Persona instructions followed by the retrieved context."""
        name = self.assistant.product_name
        short_name = self.assistant.product_short_name
        return (
            f"You are {name}'s assistant. Use the given context to answer questions "
            f"about the {short_name} platform clearly and politely. "
            f"If there's no context, answer that generally but also encourage the user "
            f"to ask about the {short_name} website. "
            f"For more info, contact {self.assistant.support_email}.\n\n"
            f"Context:\n{context or NO_CONTEXT}"
        )

    def build_messages(
        self,
        question: str,
        results: List[SearchResult],
        history: Optional[List[Message]] = None,
    ) -> List[Message]:
        """Assemble the prompt: system + context, condensed history, question."""
        return [
            Message(role=SYSTEM, content=self.system_prompt(build_context(results))),
            *self.condenser.condense(history),
            Message(role=USER, content=question),
        ]

    async def answer(
        self,
        question: str,
        top_k: int = 5,
        history: Optional[List[Message]] = None,
    ) -> ChatAnswer:
        """
        Answer a question using the knowledge base.

        Args:
            question: User's question
            top_k: Number of chunks to retrieve
            history: Prior conversation turns

        Returns:
            ChatAnswer with the answer text and its sources

        Raises:
            UpstreamError: If embedding or generation fails
        """
        start_time = time.time()

        results = await self.retriever.retrieve(question, top_k)
        retrieval_time = time.time() - start_time

        messages = self.build_messages(question, results, history)
        response = await self.llm_service.invoke(messages)

        logger.info(
            f"Answered question with {len(results)} sources in {time.time() - start_time:.2f}s "
            f"(retrieval: {retrieval_time:.2f}s)"
        )
        return ChatAnswer(answer=response.text, sources=results)
