"""Conversation message models.

A session's transcript is the append-only, ordered sequence of its
ConversationMessages. Messages are immutable once created; ordering within
a transcript is the append order, recorded by ``seq`` when persisted.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class MessageRole(str, Enum):
    """Author of a transcript entry."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ConversationMessage(BaseModel):
    """Single transcript entry.

    ``id``, ``session_id`` and ``seq`` are assigned by the message store;
    messages built in memory for the current turn leave them unset.
    """

    model_config = ConfigDict(frozen=True, from_attributes=True)

    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    id: Optional[str] = None
    session_id: Optional[str] = None
    seq: Optional[int] = None

    def as_prompt(self) -> Dict[str, str]:
        """Role/content pair in the shape language-model APIs expect."""
        return {"role": self.role.value, "content": self.content}
