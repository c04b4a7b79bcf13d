# donorlink/schemas/conversation.py
import uuid
from datetime import datetime

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel, Field

NO_MESSAGES_NOTICE = "No messages yet"

MESSAGE_MAX_LENGTH = 4000


class ConversationCreate(SQLModel):
    """
    Payload for starting (or reopening) a chat with another user.
    """

    model_config = ConfigDict(extra="forbid")

    target_user_id: uuid.UUID


class ConversationStart(SQLModel):
    conversation_id: uuid.UUID
    created: bool


class ParticipantSummary(SQLModel):
    """Chat header info about the other participant."""

    id: uuid.UUID
    name: str | None = None
    location: str | None = None
    profile_image_url: str | None = None


class ConversationRead(SQLModel):
    id: uuid.UUID
    participants: list[uuid.UUID]
    last_message: str | None = None
    last_message_time: datetime | None = None
    created_at: datetime


class ConversationSummary(ConversationRead):
    """
    Chat list entry.

    `preview` is the last message, or "No messages yet".
    `other_participant` is null if that profile no longer resolves.
    """

    other_participant: ParticipantSummary | None = None
    preview: str


# -------- Messages --------


class MessageCreate(SQLModel):
    model_config = ConfigDict(extra="forbid")

    text: str = Field(max_length=MESSAGE_MAX_LENGTH)

    @field_validator("text")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Message cannot be empty")
        return v


class MessageRead(SQLModel):
    id: uuid.UUID
    conversation_id: uuid.UUID
    sender_id: uuid.UUID
    text: str
    timestamp: datetime


class MessageList(SQLModel):
    """
    Full, ordered message history of a conversation.

    `empty_notice` is set only when there are no messages.
    `load_failed` is set when the history could not be read; `messages`
    is then empty and says nothing about the conversation.
    """

    conversation_id: uuid.UUID
    messages: list[MessageRead]
    empty_notice: str | None = None
    load_failed: bool = False
