# donorlink/repositories/message_repo.py
import uuid

from sqlmodel import Session, select

from donorlink.models.conversation import Message


class MessageRepository:
    """
    Data access layer for messages.

    Messages are append-only: there is no update or delete here.
    """

    def list_for_conversation(
        self,
        session: Session,
        conversation_id: uuid.UUID,
    ) -> list[Message]:
        stmt = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.timestamp, Message.id)
        )
        return list(session.exec(stmt).all())

    def latest_for_conversation(
        self,
        session: Session,
        conversation_id: uuid.UUID,
    ) -> Message | None:
        stmt = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.timestamp.desc(), Message.id.desc())
            .limit(1)
        )
        return session.exec(stmt).first()

    def create(self, session: Session, message: Message) -> Message:
        session.add(message)
        session.commit()
        session.refresh(message)
        return message
