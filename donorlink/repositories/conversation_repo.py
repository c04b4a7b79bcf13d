# donorlink/repositories/conversation_repo.py
import uuid

from sqlalchemy import func, or_
from sqlmodel import Session, select

from donorlink.models.conversation import Conversation


class ConversationRepository:
    """
    Data access layer for conversations.

    - Pure DB operations (CRUD + queries).
    - No FastAPI, no business logic.
    """

    def get_by_id(
        self, session: Session, conversation_id: uuid.UUID
    ) -> Conversation | None:
        return session.get(Conversation, conversation_id)

    def get_by_pair_key(self, session: Session, pair_key: str) -> Conversation | None:
        stmt = select(Conversation).where(Conversation.pair_key == pair_key)
        return session.exec(stmt).first()

    def list_for_participant(
        self,
        session: Session,
        user_id: uuid.UUID,
    ) -> list[Conversation]:
        """Every conversation the user takes part in, on either side."""
        stmt = select(Conversation).where(
            or_(
                Conversation.user_a_id == user_id,
                Conversation.user_b_id == user_id,
            )
        )
        return list(session.exec(stmt).all())

    def count_for_participant(self, session: Session, user_id: uuid.UUID) -> int:
        stmt = (
            select(func.count())
            .select_from(Conversation)
            .where(
                or_(
                    Conversation.user_a_id == user_id,
                    Conversation.user_b_id == user_id,
                )
            )
        )
        value = session.exec(stmt).one()
        return int(value or 0)

    def create(self, session: Session, conversation: Conversation) -> Conversation:
        session.add(conversation)
        session.commit()
        session.refresh(conversation)
        return conversation

    def update(self, session: Session, conversation: Conversation) -> Conversation:
        session.add(conversation)
        session.commit()
        session.refresh(conversation)
        return conversation
