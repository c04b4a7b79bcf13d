import asyncio
import threading
import uuid

import pytest

from donorlink.core.realtime import MessageBroker


async def _next(sub, timeout=1.0):
    return await asyncio.wait_for(sub.__anext__(), timeout)


@pytest.mark.asyncio
async def test_publish_reaches_subscribers_in_order():
    broker = MessageBroker()
    conversation_id = uuid.uuid4()
    sub = broker.subscribe(conversation_id, uuid.uuid4())

    broker.publish(conversation_id, {"event": "message", "n": 1})
    broker.publish(conversation_id, {"event": "message", "n": 2})

    assert (await _next(sub))["n"] == 1
    assert (await _next(sub))["n"] == 2


@pytest.mark.asyncio
async def test_publish_is_scoped_to_conversation():
    broker = MessageBroker()
    mine, other = uuid.uuid4(), uuid.uuid4()
    sub = broker.subscribe(mine, uuid.uuid4())

    assert broker.publish(other, {"event": "message"}) == 0
    broker.publish(mine, {"event": "message", "n": 7})

    assert (await _next(sub))["n"] == 7


@pytest.mark.asyncio
async def test_cancel_drops_queued_events_and_ends_iteration():
    broker = MessageBroker()
    conversation_id = uuid.uuid4()
    sub = broker.subscribe(conversation_id, uuid.uuid4())

    broker.publish(conversation_id, {"event": "message"})
    sub.cancel()

    with pytest.raises(StopAsyncIteration):
        await _next(sub)
    assert broker.subscriber_count(conversation_id) == 0
    assert broker.publish(conversation_id, {"event": "message"}) == 0


@pytest.mark.asyncio
async def test_cancel_wakes_a_waiting_consumer():
    broker = MessageBroker()
    sub = broker.subscribe(uuid.uuid4(), uuid.uuid4())

    async def consume():
        return [event async for event in sub]

    task = asyncio.create_task(consume())
    await asyncio.sleep(0)
    sub.cancel()

    assert await asyncio.wait_for(task, 1.0) == []


@pytest.mark.asyncio
async def test_context_manager_cancels_on_exit():
    broker = MessageBroker()
    conversation_id = uuid.uuid4()

    async with broker.subscribe(conversation_id, uuid.uuid4()) as sub:
        assert broker.subscriber_count(conversation_id) == 1

    assert sub.cancelled
    assert broker.subscriber_count(conversation_id) == 0


@pytest.mark.asyncio
async def test_cancel_user_only_touches_that_user():
    broker = MessageBroker()
    conversation_id = uuid.uuid4()
    alice, bob = uuid.uuid4(), uuid.uuid4()
    alice_sub = broker.subscribe(conversation_id, alice)
    bob_sub = broker.subscribe(conversation_id, bob)

    assert broker.cancel_user(alice) == 1

    assert alice_sub.cancelled
    assert not bob_sub.cancelled
    broker.publish(conversation_id, {"event": "message", "n": 1})
    assert (await _next(bob_sub))["n"] == 1


@pytest.mark.asyncio
async def test_publish_from_worker_thread():
    broker = MessageBroker()
    conversation_id = uuid.uuid4()
    sub = broker.subscribe(conversation_id, uuid.uuid4())

    worker = threading.Thread(
        target=broker.publish,
        args=(conversation_id, {"event": "message", "n": 42}),
    )
    worker.start()
    worker.join()

    assert (await _next(sub))["n"] == 42
