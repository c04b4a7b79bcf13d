# donorlink/routers/messages.py
"""
Message history, sending, and the realtime feed of a conversation.

Realtime:
    WS /conversations/{conversation_id}/ws?token=<supabase access token>

    Server -> client events:
      {"event": "snapshot", "messages": [...], "empty": bool,
       "empty_notice": ..., "load_failed": bool}
      {"event": "message", "message": {...}}

    Within one server process message events arrive in timestamp order.
    Clients merging events from several sources should still insert by
    (timestamp, id).

    Close codes:
      1013  profile or conversation store unavailable, try again later
      4001  missing/invalid token, or the user signed out
      4003  profile setup not finished
      4004  conversation not found / not a participant
"""
import asyncio
import logging
import uuid
from typing import Any

from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Query,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from donorlink.core.auth import require_complete_profile, user_from_token
from donorlink.core.realtime import MessageSubscription, message_broker
from donorlink.database import get_session, session_scope
from donorlink.models.user import User
from donorlink.repositories.conversation_repo import ConversationRepository
from donorlink.repositories.message_repo import MessageRepository
from donorlink.repositories.user_repo import UserRepository
from donorlink.schemas.conversation import MessageCreate, MessageList, MessageRead
from donorlink.services.conversation_service import ConversationService
from donorlink.services.message_service import MessageService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversations", tags=["Messages"])

user_repo = UserRepository()
message_repo = MessageRepository()
conversations = ConversationService(ConversationRepository(), user_repo, message_repo)
service = MessageService(message_repo, conversations, message_broker)

WS_UNAUTHORIZED = 4001
WS_FORBIDDEN = 4003
WS_NOT_FOUND = 4004
WS_TRY_AGAIN_LATER = 1013

_CLOSE_CODES = {
    status.HTTP_403_FORBIDDEN: WS_FORBIDDEN,
    status.HTTP_404_NOT_FOUND: WS_NOT_FOUND,
    status.HTTP_503_SERVICE_UNAVAILABLE: WS_TRY_AGAIN_LATER,
}


# -------- HTTP endpoints --------


@router.get("/{conversation_id}/messages", response_model=MessageList)
def list_messages(
    conversation_id: uuid.UUID,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_complete_profile),
):
    """
    All messages of a conversation, oldest first.

    `empty_notice` is "No messages yet" when there are none.
    """
    return service.list_messages(session, current_user, conversation_id)


@router.post(
    "/{conversation_id}/messages",
    response_model=MessageRead,
    status_code=status.HTTP_201_CREATED,
)
def send_message(
    conversation_id: uuid.UUID,
    payload: MessageCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_complete_profile),
):
    """
    Send a message.

    Blank text is rejected (422) before anything is written. Live
    subscribers of the conversation receive the message right away.
    """
    return service.send_message(session, current_user, conversation_id, payload)


# -------- Realtime feed --------


def _authorize(token: str, conversation_id: uuid.UUID) -> uuid.UUID:
    """Resolve the token to a participant id, or raise HTTPException."""
    with session_scope() as session:
        user = user_from_token(session, token)
        require_complete_profile(user)
        conversations.get_conversation(session, user, conversation_id)
        return user.id


def _load_snapshot(user_id: uuid.UUID, conversation_id: uuid.UUID) -> dict[str, Any]:
    with session_scope() as session:
        try:
            user = user_repo.get_by_id(session, user_id)
        except SQLAlchemyError:
            logger.exception(f"[WS] Loading profile {user_id} failed")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Loading conversation failed. Please try again.",
            )
        if user is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Conversation not found",
            )
        return service.snapshot_event(session, user, conversation_id)


async def _pump(
    websocket: WebSocket,
    subscription: MessageSubscription,
    seen: set[str],
) -> bool:
    """
    Forward subscription events to the socket.

    Returns True when the subscription was cancelled server-side,
    False when the client went away.
    """
    try:
        async for event in subscription:
            message = event.get("message") or {}
            if message.get("id") in seen:
                continue
            await websocket.send_json(event)
    except (WebSocketDisconnect, RuntimeError):
        return False
    return True


async def _listen(websocket: WebSocket) -> None:
    """Drain client frames until the client disconnects."""
    try:
        while True:
            await websocket.receive_text()
    except (WebSocketDisconnect, RuntimeError):
        return


@router.websocket("/{conversation_id}/ws")
async def conversation_feed(
    websocket: WebSocket,
    conversation_id: uuid.UUID,
    token: str | None = Query(None, description="Supabase access token"),
):
    """
    Live message feed for one conversation.

    The subscription lives exactly as long as this socket: it is
    cancelled when the client disconnects or the user signs out.
    """
    if not token:
        await websocket.close(code=WS_UNAUTHORIZED, reason="Missing token")
        return

    try:
        user_id = await run_in_threadpool(_authorize, token, conversation_id)
    except HTTPException as exc:
        code = _CLOSE_CODES.get(exc.status_code, WS_UNAUTHORIZED)
        logger.warning(f"[WS] Rejected feed for conversation {conversation_id}: {exc.detail}")
        await websocket.close(code=code, reason=str(exc.detail))
        return

    await websocket.accept()

    # Subscribe before loading history so nothing sent in between is lost
    subscription = message_broker.subscribe(conversation_id, user_id)
    try:
        snapshot = await run_in_threadpool(_load_snapshot, user_id, conversation_id)
        await websocket.send_json(snapshot)
        seen = {m["id"] for m in snapshot["messages"]}

        pump = asyncio.create_task(_pump(websocket, subscription, seen))
        listen = asyncio.create_task(_listen(websocket))
        done, pending = await asyncio.wait(
            {pump, listen}, return_when=asyncio.FIRST_COMPLETED
        )
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        if pump in done and pump.result():
            await websocket.close(code=WS_UNAUTHORIZED, reason="Session ended")
    except HTTPException as exc:
        logger.warning(f"[WS] Feed for conversation {conversation_id} aborted: {exc.detail}")
        await websocket.close(
            code=_CLOSE_CODES.get(exc.status_code, WS_UNAUTHORIZED),
            reason=str(exc.detail),
        )
    except WebSocketDisconnect:
        pass
    finally:
        subscription.cancel()
