"""Pydantic models for conversations and messages."""

from enum import Enum

from pydantic import BaseModel


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM_SUMMARY = "system-summary"


class Source(BaseModel):
    """A retrieved chunk as persisted on assistant messages and returned to callers.

    text is a bounded preview; the full chunk text is only used in the prompt.
    """

    id: str
    text: str
    title: str | None = None
    score: float | None = None


class Conversation(BaseModel):
    id: str
    created_at: float


class Message(BaseModel):
    """A persisted message.

    created_at always comes from the database clock. seq is the insertion
    order and breaks ties between equal timestamps.
    """

    id: str
    conversation_id: str
    role: MessageRole
    content: str
    sources: list[Source] | None = None
    created_at: float
    seq: int = 0
    archived: bool = False
    client_key: str | None = None
    # id of the user message an assistant message answers
    reply_to: str | None = None


class ChatMessage(BaseModel):
    """The public projection of a message."""

    role: MessageRole
    content: str
    sources: list[Source] | None = None
