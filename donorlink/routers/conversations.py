# donorlink/routers/conversations.py
import uuid

from fastapi import APIRouter, Depends, Response, status
from sqlmodel import Session

from donorlink.core.auth import require_complete_profile
from donorlink.database import get_session
from donorlink.models.user import User
from donorlink.repositories.conversation_repo import ConversationRepository
from donorlink.repositories.message_repo import MessageRepository
from donorlink.repositories.user_repo import UserRepository
from donorlink.schemas.conversation import (
    ConversationCreate,
    ConversationStart,
    ConversationSummary,
)
from donorlink.services.conversation_service import ConversationService

router = APIRouter(prefix="/conversations", tags=["Conversations"])

conversation_repo = ConversationRepository()
user_repo = UserRepository()
message_repo = MessageRepository()
service = ConversationService(conversation_repo, user_repo, message_repo)


@router.get("", response_model=list[ConversationSummary])
def list_my_conversations(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_complete_profile),
):
    """
    Chat list for the current user, most recently active first.

    `preview` is "No messages yet" for conversations without messages.
    """
    return service.list_conversations(session, current_user)


@router.post(
    "",
    response_model=ConversationStart,
    status_code=status.HTTP_201_CREATED,
)
def start_conversation(
    payload: ConversationCreate,
    response: Response,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_complete_profile),
):
    """
    Start a chat with another user, or reopen the existing one.

    - 201 + created=true when a new conversation was made
    - 200 + created=false when the pair already had one
    """
    conversation, created = service.start_conversation(
        session, current_user, payload.target_user_id
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    return ConversationStart(conversation_id=conversation.id, created=created)


@router.get("/{conversation_id}", response_model=ConversationSummary)
def get_conversation(
    conversation_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_complete_profile),
):
    """
    One conversation with the other participant's summary.

    Participants only (404 otherwise).
    """
    return service.get_conversation_detail(session, current_user, conversation_id)
