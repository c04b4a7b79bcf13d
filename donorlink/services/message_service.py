# donorlink/services/message_service.py
import logging
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from donorlink.core.realtime import MessageBroker
from donorlink.models.conversation import Message, as_utc
from donorlink.models.user import User
from donorlink.repositories.message_repo import MessageRepository
from donorlink.schemas.conversation import (
    NO_MESSAGES_NOTICE,
    MessageCreate,
    MessageList,
    MessageRead,
)
from donorlink.services.conversation_service import ConversationService

logger = logging.getLogger(__name__)


class MessageService:
    """
    Business logic for messages.

    Sending is two separate writes:
      1. insert the message (authoritative, must succeed)
      2. update the conversation preview (best-effort)
    then the message is published to live subscribers.

    Sends to the same conversation are serialised (timestamp, insert,
    publish), so live subscribers see events in timestamp order.
    """

    def __init__(
        self,
        message_repo: MessageRepository,
        conversations: ConversationService,
        broker: MessageBroker,
    ):
        self.message_repo = message_repo
        self.conversations = conversations
        self.broker = broker
        self._send_locks: dict[uuid.UUID, threading.Lock] = {}
        self._send_locks_guard = threading.Lock()

    # -------- Helpers --------

    @staticmethod
    def to_read(message: Message) -> MessageRead:
        return MessageRead(
            id=message.id,
            conversation_id=message.conversation_id,
            sender_id=message.sender_id,
            text=message.text,
            timestamp=as_utc(message.timestamp),
        )

    def _send_lock(self, conversation_id: uuid.UUID) -> threading.Lock:
        with self._send_locks_guard:
            lock = self._send_locks.get(conversation_id)
            if lock is None:
                lock = self._send_locks[conversation_id] = threading.Lock()
            return lock

    def _next_timestamp(self, session: Session, conversation_id: uuid.UUID) -> datetime:
        """
        Server timestamp for a new message.

        Never earlier than (or equal to) the newest stored message, so
        timestamp order matches send order even with a coarse clock.
        Must be called while holding the conversation's send lock.
        """
        now = datetime.now(timezone.utc)
        latest = self.message_repo.latest_for_conversation(session, conversation_id)
        if latest is not None:
            previous = as_utc(latest.timestamp)
            if now <= previous:
                now = previous + timedelta(microseconds=1)
        return now

    # -------- Reads --------

    def list_messages(
        self,
        session: Session,
        current_user: User,
        conversation_id: uuid.UUID,
    ) -> MessageList:
        """
        Full history, timestamp ascending.

        If the message log cannot be read the history comes back empty
        with `load_failed` set, so the view can show a notice instead of
        "No messages yet".
        """
        conversation = self.conversations.get_conversation(
            session, current_user, conversation_id
        )
        conversation_id = conversation.id

        try:
            messages = self.message_repo.list_for_conversation(session, conversation_id)
        except SQLAlchemyError:
            session.rollback()
            logger.exception(f"Loading messages of conversation {conversation_id} failed")
            return MessageList(
                conversation_id=conversation_id,
                messages=[],
                load_failed=True,
            )

        return MessageList(
            conversation_id=conversation_id,
            messages=[self.to_read(m) for m in messages],
            empty_notice=None if messages else NO_MESSAGES_NOTICE,
        )

    def snapshot_event(
        self,
        session: Session,
        current_user: User,
        conversation_id: uuid.UUID,
    ) -> dict[str, Any]:
        """First event sent to a new realtime subscriber."""
        history = self.list_messages(session, current_user, conversation_id)
        payload = history.model_dump(mode="json")
        return {
            "event": "snapshot",
            "conversation_id": payload["conversation_id"],
            "messages": payload["messages"],
            "empty": history.empty_notice is not None,
            "empty_notice": payload["empty_notice"],
            "load_failed": history.load_failed,
        }

    # -------- Writes --------

    def send_message(
        self,
        session: Session,
        current_user: User,
        conversation_id: uuid.UUID,
        payload: MessageCreate,
    ) -> MessageRead:
        """
        Store a message, refresh the preview, notify subscribers.

        Blank text never gets here: MessageCreate rejects it.

        Raises:
            HTTPException(404): conversation missing or not a participant.
            HTTPException(503): the message insert failed.
        """
        sender_id = current_user.id
        conversation = self.conversations.get_conversation(
            session, current_user, conversation_id
        )
        conversation_id = conversation.id

        with self._send_lock(conversation_id):
            try:
                message = Message(
                    conversation_id=conversation_id,
                    sender_id=sender_id,
                    text=payload.text,
                    timestamp=self._next_timestamp(session, conversation_id),
                )
                message = self.message_repo.create(session, message)
            except SQLAlchemyError:
                session.rollback()
                logger.exception(f"Message insert failed in conversation {conversation_id}")
                raise HTTPException(
                    status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                    detail="Sending message failed. Please try again.",
                )

            message_read = self.to_read(message)

            self.conversations.update_preview(
                session, conversation, message_read.text, message_read.timestamp
            )

            self.broker.publish(
                conversation_id,
                {"event": "message", "message": message_read.model_dump(mode="json")},
            )
        return message_read
