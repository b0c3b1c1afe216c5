"""
Conversation History Module

The chat endpoint is stateless: clients send the prior turns with every
question. This module validates that history and condenses it to a bounded
set of messages for the model.

Condensing Strategy:
- The earliest turns become one short system note (what the conversation
  was originally about)
- The latest turns are kept verbatim (what the follow-up refers to)
- Turns in between are dropped, so the prompt stays bounded no matter how
  long the conversation gets

Usage:
    history = parse_history(payload.get("history"))
    condenser = HistoryCondenser()
    messages = condenser.condense(history)
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from config.settings import get_settings, HistoryConfig
from chatbot_knowledge.normalizer import truncate

logger = logging.getLogger(__name__)

USER = "user"
ASSISTANT = "assistant"
SYSTEM = "system"


@dataclass
class Message:
    """
    A single message sent to the generative model.

    Attributes:
        role: "user", "assistant", or "system"
        content: The message text
    """
    role: str
    content: str

    def to_dict(self) -> Dict[str, Any]:
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(role=data["role"], content=data["content"])

    def __str__(self) -> str:
        return f"{self.role}: {self.content}"


def parse_history(raw: Any) -> Optional[List[Message]]:
    """
    Validate a client-supplied history payload.

    Keeps entries whose role is "user" or "assistant" (any case) and whose
    content is a non-blank string. Anything else is silently dropped.

    Returns:
        The surviving messages, or None if there are none
    """
    if not isinstance(raw, list):
        return None

    messages = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        role = entry.get("role")
        content = entry.get("content")
        if not isinstance(role, str) or not isinstance(content, str):
            continue
        role = role.strip().lower()
        if role not in (USER, ASSISTANT) or not content.strip():
            continue
        messages.append(Message(role=role, content=content.strip()))

    return messages or None


class HistoryCondenser:
    """
    Condenses chat history to at most summary + recent messages.

    Example:
        condenser = HistoryCondenser()
        condensed = condenser.condense([
            Message("user", "Hi, I'm hiring."),
            Message("assistant", "Welcome! How can I help?"),
            Message("user", "How do I post a job?"),
        ])
        # [system summary of turns 1-2, user, assistant, user]
    """

    def __init__(self, config: Optional[HistoryConfig] = None):
        self.config = config or get_settings().history

    def condense(self, history: Optional[List[Message]]) -> List[Message]:
        """
        Condense a history into the messages placed before the question.

        Args:
            history: Prior turns in chronological order

        Returns:
            A system summary of the earliest turns followed by the latest
            turns verbatim; [] when no turn has content
        """
        # Keep the original position so the summary can number turns
        turns = [
            (index, message.role, message.content.strip())
            for index, message in enumerate(history or [])
            if message.content and message.content.strip()
        ]
        if not turns:
            return []

        earliest = turns[:self.config.summary_turns]
        latest = turns[-self.config.recent_turns:] if self.config.recent_turns else []

        condensed = []
        if earliest:
            condensed.append(Message(role=SYSTEM, content=self._summarize(earliest)))

        for _, role, content in latest:
            condensed.append(Message(role=ASSISTANT if role == ASSISTANT else USER, content=content))

        logger.debug(f"Condensed {len(turns)} history turns into {len(condensed)} messages")
        return condensed

    def _summarize(self, turns) -> str:
        parts = []
        for index, role, content in turns:
            speaker = "Assistant" if role == ASSISTANT else "User"
            text = truncate(content, self.config.max_summary_chars)
            parts.append(f"{speaker} message {index + 1}: {text}")
        return f"Early conversation summary (first {len(turns)} messages): " + " | ".join(parts)
