from __future__ import annotations

import asyncio

import pytest

from duo_chat.application.dto.events import MESSAGE_CREATED
from duo_chat.application.exceptions import (
    ConnectionNotActiveError,
    ConnectionNotFoundError,
    ContentTooLongError,
    EmptyContentError,
    InvalidPaginationError,
    UnauthorizedError,
)
from duo_chat.domain.entities.message import MAX_CONTENT_LENGTH
from duo_chat.domain.events.message_created import MessageCreated
from duo_chat.services import connection_service, message_service
from tests.conftest import FakeUoW, RecordingNotifier, StepClock


@pytest.fixture
def conn(store, alice, bob):
    return store.pair(alice, bob)


@pytest.mark.asyncio
async def test_send_message_persists_and_notifies(store, uow, notifier, conn, alice):
    msg = await message_service.send_message(conn.id, alice.id, "  hello  ", uow, notifier)

    assert msg.content == "hello"
    assert msg.sender_id == alice.id
    assert store.messages == [msg]
    assert store.outbox[-1]["event_type"] == MESSAGE_CREATED
    [event] = notifier.of_type(MessageCreated)
    assert event.message_id == msg.id
    assert event.content == "hello"


@pytest.mark.asyncio
async def test_send_message_too_long(store, uow, notifier, conn, alice):
    with pytest.raises(ContentTooLongError):
        await message_service.send_message(conn.id, alice.id, "x" * (MAX_CONTENT_LENGTH + 1), uow, notifier)

    assert store.messages == []
    assert notifier.events == []


@pytest.mark.asyncio
async def test_send_message_at_limit_is_accepted(uow, notifier, conn, alice):
    msg = await message_service.send_message(conn.id, alice.id, "x" * MAX_CONTENT_LENGTH, uow, notifier)
    assert len(msg.content) == MAX_CONTENT_LENGTH


@pytest.mark.asyncio
@pytest.mark.parametrize("content", ["", "   ", "\n\t", None])
async def test_send_message_empty(store, uow, notifier, conn, alice, content):
    with pytest.raises(EmptyContentError):
        await message_service.send_message(conn.id, alice.id, content, uow, notifier)
    assert store.messages == []


@pytest.mark.asyncio
async def test_send_message_to_ended_connection(store, uow, notifier, conn, alice):
    await connection_service.disconnect(conn.id, alice.id, uow, notifier)

    with pytest.raises(ConnectionNotActiveError):
        await message_service.send_message(conn.id, alice.id, "hi", uow, notifier)
    assert store.messages == []


@pytest.mark.asyncio
async def test_send_racing_disconnect_is_not_stored(store, conn, alice, bob):
    notifier = RecordingNotifier()

    sent, ended = await asyncio.gather(
        message_service.send_message(conn.id, alice.id, "hi", FakeUoW(store), notifier),
        connection_service.disconnect(conn.id, bob.id, FakeUoW(store), notifier),
        return_exceptions=True,
    )

    assert not isinstance(ended, Exception)
    assert isinstance(sent, ConnectionNotActiveError)
    assert store.messages == []
    assert notifier.of_type(MessageCreated) == []


@pytest.mark.asyncio
async def test_send_after_stale_read_rechecks_connection(store, uow, notifier, conn, alice, bob):
    async def _stale_get(connection_id):
        return conn

    await connection_service.disconnect(conn.id, bob.id, FakeUoW(store), notifier)
    uow.connections.get_by_id = _stale_get

    with pytest.raises(ConnectionNotActiveError):
        await message_service.send_message(conn.id, alice.id, "late", uow, notifier)
    assert store.messages == []
    assert MESSAGE_CREATED not in [r["event_type"] for r in store.outbox]
    assert notifier.of_type(MessageCreated) == []


@pytest.mark.asyncio
async def test_send_message_to_unknown_connection(uow, notifier, alice):
    with pytest.raises(ConnectionNotActiveError):
        await message_service.send_message(404, alice.id, "hi", uow, notifier)


@pytest.mark.asyncio
async def test_send_message_by_outsider(store, uow, notifier, conn, carol):
    with pytest.raises(UnauthorizedError):
        await message_service.send_message(conn.id, carol.id, "hi", uow, notifier)
    assert store.messages == []


@pytest.mark.asyncio
async def test_history_is_ordered_by_timestamp(uow, notifier, conn, alice, bob):
    clock = StepClock()
    for i in range(5):
        sender = alice if i % 2 == 0 else bob
        await message_service.send_message(conn.id, sender.id, f"m{i}", uow, notifier, clock)

    history = await message_service.list_messages(conn.id, bob.id, 50, 0, uow)

    assert [m.content for m in history] == ["m0", "m1", "m2", "m3", "m4"]
    timestamps = [m.timestamp for m in history]
    assert timestamps == sorted(timestamps)


@pytest.mark.asyncio
async def test_history_offset_counts_back_from_newest(uow, notifier, conn, alice):
    clock = StepClock()
    for i in range(6):
        await message_service.send_message(conn.id, alice.id, f"m{i}", uow, notifier, clock)

    newest = await message_service.list_messages(conn.id, alice.id, 2, 0, uow)
    older = await message_service.list_messages(conn.id, alice.id, 2, 2, uow)

    assert [m.content for m in newest] == ["m4", "m5"]
    assert [m.content for m in older] == ["m2", "m3"]


@pytest.mark.asyncio
async def test_history_kept_after_disconnect(uow, notifier, conn, alice, bob):
    await message_service.send_message(conn.id, alice.id, "bye", uow, notifier)
    await connection_service.disconnect(conn.id, bob.id, uow, notifier)

    history = await message_service.list_messages(conn.id, alice.id, 50, 0, uow)
    assert [m.content for m in history] == ["bye"]


@pytest.mark.asyncio
async def test_history_requires_participant(uow, conn, carol):
    with pytest.raises(UnauthorizedError):
        await message_service.list_messages(conn.id, carol.id, 50, 0, uow)


@pytest.mark.asyncio
async def test_history_unknown_connection(uow, alice):
    with pytest.raises(ConnectionNotFoundError):
        await message_service.list_messages(999, alice.id, 50, 0, uow)


@pytest.mark.asyncio
@pytest.mark.parametrize(("limit", "offset"), [(0, 0), (201, 0), (10, -1)])
async def test_history_rejects_bad_pagination(uow, conn, alice, limit, offset):
    with pytest.raises(InvalidPaginationError):
        await message_service.list_messages(conn.id, alice.id, limit, offset, uow)


@pytest.mark.asyncio
async def test_current_connection_backlog_is_newest_fifty(uow, notifier, conn, alice):
    clock = StepClock()
    for i in range(connection_service.RECENT_MESSAGES_LIMIT + 5):
        await message_service.send_message(conn.id, alice.id, f"m{i}", uow, notifier, clock)

    current = await connection_service.get_current_connection(alice.id, uow)

    assert len(current.recent_messages) == connection_service.RECENT_MESSAGES_LIMIT
    assert current.recent_messages[0].content == "m5"
    assert current.recent_messages[-1].content == f"m{connection_service.RECENT_MESSAGES_LIMIT + 4}"
