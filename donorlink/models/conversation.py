# donorlink/models/conversation.py
import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from the database."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def make_pair_key(a: uuid.UUID, b: uuid.UUID) -> str:
    """Order-independent key for a participant pair."""
    first, second = sorted([str(a), str(b)])
    return f"{first}:{second}"


class Conversation(SQLModel, table=True):
    """
    Two-party messaging thread.

    - user_a_id started the conversation, user_b_id is the other side.
      For membership both are equivalent.
    - pair_key is unique: at most one conversation per pair.
    - last_message / last_message_time are a display cache of the newest
      message; the messages table is authoritative.
    """

    __tablename__ = "conversations"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    user_a_id: uuid.UUID = Field(
        foreign_key="users.id",
        index=True,
    )

    user_b_id: uuid.UUID = Field(
        foreign_key="users.id",
        index=True,
    )

    pair_key: str = Field(
        unique=True,
        index=True,
        description="Sorted participant ids joined with ':'",
    )

    last_message: str | None = Field(default=None)
    last_message_time: datetime | None = Field(default=None)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (UTC)",
    )

    @property
    def participants(self) -> list[uuid.UUID]:
        return [self.user_a_id, self.user_b_id]

    def has_participant(self, user_id: uuid.UUID) -> bool:
        return user_id in (self.user_a_id, self.user_b_id)

    def other_participant(self, user_id: uuid.UUID) -> uuid.UUID:
        return self.user_b_id if user_id == self.user_a_id else self.user_a_id


class Message(SQLModel, table=True):
    """
    Single chat message. Immutable once created.

    Display order is timestamp ascending; timestamp is assigned by the
    backend at insert time.
    """

    __tablename__ = "messages"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    conversation_id: uuid.UUID = Field(
        foreign_key="conversations.id",
        index=True,
    )

    sender_id: uuid.UUID = Field(
        foreign_key="users.id",
        index=True,
    )

    text: str = Field(max_length=4000)

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        index=True,
        description="Server timestamp (UTC)",
    )
