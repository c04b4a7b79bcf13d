# donorlink/core/realtime.py
"""
In-process realtime fan-out for conversation messages.

Every open chat view holds one `MessageSubscription` for the conversation
it displays. Sending a message publishes an event to all live
subscriptions of that conversation.

Rules:
  - publish() may be called from any thread (sync endpoints run in the
    thread pool); delivery always happens on the subscriber's event loop.
  - Events reach a subscription in publish order.
  - Once cancel() is called the subscription yields nothing more, even if
    events were already queued.

Only one process is covered. Running several workers needs a shared
channel (Supabase Realtime, Postgres LISTEN/NOTIFY, ...).
"""
import asyncio
import logging
import threading
import uuid
from typing import Any

logger = logging.getLogger(__name__)

_CLOSED = object()


class MessageSubscription:
    """
    Cancellable live feed of events for one conversation.

    Usage:

        async with broker.subscribe(conversation_id, user_id) as sub:
            async for event in sub:
                ...
    """

    def __init__(
        self,
        broker: "MessageBroker",
        conversation_id: uuid.UUID,
        user_id: uuid.UUID,
        loop: asyncio.AbstractEventLoop,
    ):
        self.conversation_id = conversation_id
        self.user_id = user_id
        self._broker = broker
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue()
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def _deliver(self, event: Any) -> None:
        # Runs on the subscriber's loop
        if not self._cancelled:
            self._queue.put_nowait(event)

    def _schedule(self, event: Any) -> bool:
        try:
            self._loop.call_soon_threadsafe(self._deliver, event)
        except RuntimeError:
            # Owning loop is gone; nobody can read this subscription anymore
            return False
        return True

    def cancel(self) -> None:
        """Stop the feed. Safe to call more than once and from any thread."""
        if self._cancelled:
            return
        self._cancelled = True
        self._broker._remove(self)
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, _CLOSED)
        except RuntimeError:
            pass

    def __aiter__(self):
        return self

    async def __anext__(self) -> Any:
        if self._cancelled:
            raise StopAsyncIteration
        event = await self._queue.get()
        if event is _CLOSED or self._cancelled:
            raise StopAsyncIteration
        return event

    async def __aenter__(self) -> "MessageSubscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.cancel()


class MessageBroker:
    def __init__(self):
        self.subscriptions: dict[uuid.UUID, list[MessageSubscription]] = {}
        self._lock = threading.Lock()

    def subscribe(
        self,
        conversation_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> MessageSubscription:
        """
        Register a new subscription bound to the running event loop.

        Must be called from async code.
        """
        loop = asyncio.get_running_loop()
        sub = MessageSubscription(self, conversation_id, user_id, loop)
        with self._lock:
            self.subscriptions.setdefault(conversation_id, []).append(sub)
            total = len(self.subscriptions[conversation_id])
        logger.info(
            f"[RT] User {user_id} subscribed to conversation {conversation_id}. "
            f"Subscribers: {total}"
        )
        return sub

    def _remove(self, sub: MessageSubscription) -> None:
        with self._lock:
            subs = self.subscriptions.get(sub.conversation_id)
            if not subs:
                return
            remaining = [s for s in subs if s is not sub]
            if remaining:
                self.subscriptions[sub.conversation_id] = remaining
            else:
                del self.subscriptions[sub.conversation_id]
        logger.info(
            f"[RT] User {sub.user_id} unsubscribed from conversation {sub.conversation_id}"
        )

    def publish(self, conversation_id: uuid.UUID, event: dict[str, Any]) -> int:
        """
        Push an event to every live subscription of a conversation.

        Returns:
            Number of subscriptions the event was handed to.
        """
        with self._lock:
            subs = list(self.subscriptions.get(conversation_id, []))

        delivered = 0
        for sub in subs:
            if sub._schedule(event):
                delivered += 1
            else:
                logger.warning(
                    f"[RT] Dropping subscription of user {sub.user_id}: event loop closed"
                )
                sub.cancel()
        return delivered

    def cancel_user(self, user_id: uuid.UUID) -> int:
        """Cancel every subscription owned by a user (sign-out teardown)."""
        with self._lock:
            owned = [
                sub
                for subs in self.subscriptions.values()
                for sub in subs
                if sub.user_id == user_id
            ]
        for sub in owned:
            sub.cancel()
        return len(owned)

    def subscriber_count(self, conversation_id: uuid.UUID) -> int:
        with self._lock:
            return len(self.subscriptions.get(conversation_id, []))

    def clear(self) -> None:
        with self._lock:
            subs = [s for group in self.subscriptions.values() for s in group]
        for sub in subs:
            sub.cancel()


message_broker = MessageBroker()
