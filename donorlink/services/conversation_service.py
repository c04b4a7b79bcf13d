# donorlink/services/conversation_service.py
import logging
import uuid
from datetime import datetime, timezone

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session

from donorlink.models.conversation import Conversation, as_utc, make_pair_key
from donorlink.models.user import User
from donorlink.repositories.conversation_repo import ConversationRepository
from donorlink.repositories.message_repo import MessageRepository
from donorlink.repositories.user_repo import UserRepository
from donorlink.schemas.conversation import (
    NO_MESSAGES_NOTICE,
    ConversationSummary,
    ParticipantSummary,
)

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class ConversationService:
    """
    Business logic for conversations.

    Responsibilities:
      - bootstrap: reuse the pair's conversation or create it
      - participant-only access (others get 404)
      - chat list with the other participant's summary
      - keep the last-message preview in line with the message log
    """

    def __init__(
        self,
        conversation_repo: ConversationRepository,
        user_repo: UserRepository,
        message_repo: MessageRepository,
    ):
        self.conversation_repo = conversation_repo
        self.user_repo = user_repo
        self.message_repo = message_repo

    @staticmethod
    def _discard_failed_read(session: Session, *keep) -> None:
        """
        Roll back after a failed store call.

        Rows in `keep` are detached first so their loaded values stay
        readable (a stale view) instead of being reloaded after the
        rollback expires them.
        """
        for row in keep:
            if row in session:
                session.expunge(row)
        session.rollback()

    # -------- Bootstrap --------

    def _find_existing(
        self,
        session: Session,
        actor_id: uuid.UUID,
        target_id: uuid.UUID,
    ) -> Conversation | None:
        """Scan the actor's conversations for one that includes the target."""
        for conversation in self.conversation_repo.list_for_participant(session, actor_id):
            if conversation.has_participant(target_id):
                return conversation
        return None

    def start_conversation(
        self,
        session: Session,
        current_user: User,
        target_user_id: uuid.UUID,
    ) -> tuple[Conversation, bool]:
        """
        Return the conversation between current_user and the target,
        creating it if absent.

        Returns:
            (conversation, created)

        Concurrency:
            Two near-simultaneous calls for the same pair can both miss
            the scan. pair_key is unique, so only one insert lands; the
            other rolls back and reuses the winner's row.
        """
        actor_id = current_user.id
        if target_user_id == actor_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Cannot start a conversation with yourself",
            )

        try:
            target = self.user_repo.get_by_id(session, target_user_id)
            existing = None
            if target is not None:
                existing = self._find_existing(session, actor_id, target.id)
        except SQLAlchemyError:
            session.rollback()
            logger.exception(f"Looking up conversations of user {actor_id} failed")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Starting chat failed. Please try again.",
            )

        if not target or not target.profile_complete:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User not found",
            )

        if existing:
            return existing, False

        pair_key = make_pair_key(actor_id, target.id)
        conversation = Conversation(
            user_a_id=actor_id,
            user_b_id=target.id,
            pair_key=pair_key,
            last_message=None,
            last_message_time=None,
        )
        try:
            conversation = self.conversation_repo.create(session, conversation)
        except IntegrityError:
            session.rollback()
            try:
                winner = self.conversation_repo.get_by_pair_key(session, pair_key)
            except SQLAlchemyError:
                session.rollback()
                winner = None
            if winner is None:
                logger.exception(f"Conversation insert failed for pair {pair_key}")
                raise HTTPException(
                    status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                    detail="Starting chat failed. Please try again.",
                )
            logger.info(f"Conversation for pair {pair_key} created concurrently; reusing it")
            return winner, False
        except SQLAlchemyError:
            session.rollback()
            logger.exception(f"Conversation insert failed for pair {pair_key}")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Starting chat failed. Please try again.",
            )

        logger.info(f"Conversation {conversation.id} started by user {actor_id}")
        return conversation, True

    # -------- Reads --------

    def get_conversation(
        self,
        session: Session,
        current_user: User,
        conversation_id: uuid.UUID,
    ) -> Conversation:
        """
        Raises:
            HTTPException(404): missing, or current_user is not a participant.
            HTTPException(503): the conversation could not be read.
        """
        try:
            conversation = self.conversation_repo.get_by_id(session, conversation_id)
        except SQLAlchemyError:
            session.rollback()
            logger.exception(f"Loading conversation {conversation_id} failed")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Loading conversation failed. Please try again.",
            )

        if not conversation or not conversation.has_participant(current_user.id):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Conversation not found",
            )
        return conversation

    def list_conversations(
        self,
        session: Session,
        current_user: User,
    ) -> list[ConversationSummary]:
        """
        Chat list, most recently active first.

        A failed read is logged and shown as an empty list.
        """
        user_id = current_user.id
        try:
            conversations = self.conversation_repo.list_for_participant(session, user_id)
            other_ids = [c.other_participant(user_id) for c in conversations]
            others = {u.id: u for u in self.user_repo.list_by_ids(session, other_ids)}
        except SQLAlchemyError:
            self._discard_failed_read(session)
            logger.exception(f"Loading conversations failed for user {user_id}")
            return []

        conversations.sort(
            key=lambda c: as_utc(c.last_message_time or c.created_at) or _EPOCH,
            reverse=True,
        )
        return [
            self._build_summary(c, others.get(c.other_participant(user_id)))
            for c in conversations
        ]

    def get_conversation_detail(
        self,
        session: Session,
        current_user: User,
        conversation_id: uuid.UUID,
    ) -> ConversationSummary:
        """
        One conversation for the chat header.

        Read failures after the membership check degrade the view: a stale
        preview is kept and a missing participant summary is shown as null.
        """
        user_id = current_user.id
        conversation = self.get_conversation(session, current_user, conversation_id)
        conversation = self.rebuild_preview(session, conversation)

        other_id = conversation.other_participant(user_id)
        try:
            other = self.user_repo.get_by_id(session, other_id)
        except SQLAlchemyError:
            self._discard_failed_read(session, conversation)
            logger.exception(f"Loading participant {other_id} failed")
            other = None
        return self._build_summary(conversation, other)

    def count_for_user(self, session: Session, current_user: User) -> int:
        """Number of conversations; 0 (logged) when the store cannot be read."""
        user_id = current_user.id
        try:
            return self.conversation_repo.count_for_participant(session, user_id)
        except SQLAlchemyError:
            self._discard_failed_read(session)
            logger.exception(f"Counting conversations failed for user {user_id}")
            return 0

    # -------- Preview cache --------

    def update_preview(
        self,
        session: Session,
        conversation: Conversation,
        text: str,
        timestamp: datetime,
    ) -> bool:
        """
        Best-effort write of the last-message cache.

        Returns False (and logs) instead of raising: the message itself
        is already stored, a stale preview is only a display issue.
        """
        conversation_id = conversation.id
        conversation.last_message = text
        conversation.last_message_time = timestamp
        try:
            self.conversation_repo.update(session, conversation)
        except SQLAlchemyError:
            self._discard_failed_read(session, conversation)
            logger.warning(
                f"Preview update failed for conversation {conversation_id}; "
                "it will be rebuilt from the message log on next open",
                exc_info=True,
            )
            return False
        return True

    def rebuild_preview(
        self,
        session: Session,
        conversation: Conversation,
    ) -> Conversation:
        """
        Recompute the preview from the newest message if it is stale.

        If the message log cannot be read the cached preview is kept.
        """
        conversation_id = conversation.id
        try:
            latest = self.message_repo.latest_for_conversation(session, conversation_id)
        except SQLAlchemyError:
            self._discard_failed_read(session, conversation)
            logger.exception(
                f"Reading latest message of conversation {conversation_id} failed"
            )
            return conversation

        if latest is None:
            return conversation

        cached = as_utc(conversation.last_message_time)
        if cached is not None and cached >= as_utc(latest.timestamp):
            return conversation

        logger.info(f"Rebuilding stale preview of conversation {conversation.id}")
        self.update_preview(session, conversation, latest.text, latest.timestamp)
        return conversation

    # -------- DTO builder --------

    @staticmethod
    def _build_summary(
        conversation: Conversation,
        other: User | None,
    ) -> ConversationSummary:
        participant = None
        if other is not None:
            participant = ParticipantSummary(
                id=other.id,
                name=other.name,
                location=other.location,
                profile_image_url=other.profile_image_url,
            )

        return ConversationSummary(
            id=conversation.id,
            participants=conversation.participants,
            last_message=conversation.last_message,
            last_message_time=as_utc(conversation.last_message_time),
            created_at=as_utc(conversation.created_at),
            other_participant=participant,
            preview=conversation.last_message or NO_MESSAGES_NOTICE,
        )
