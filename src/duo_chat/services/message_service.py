from __future__ import annotations

import logging

from duo_chat.application.dto.events import MESSAGE_CREATED
from duo_chat.application.exceptions import (
    ConnectionNotActiveError,
    ConnectionNotFoundError,
    ContentTooLongError,
    EmptyContentError,
    InvalidPaginationError,
    UnauthorizedError,
)
from duo_chat.application.ports.clock import Clock, SystemClock
from duo_chat.application.ports.notifier import Notifier
from duo_chat.application.uow import UnitOfWork
from duo_chat.domain.entities.message import MAX_CONTENT_LENGTH, Message
from duo_chat.domain.events.message_created import MessageCreated

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 200

_system_clock = SystemClock()


def validate_content(content: str | None) -> str:
    """Return the trimmed content or raise."""
    trimmed = (content or "").strip()
    if not trimmed:
        raise EmptyContentError("Message content cannot be empty")
    if len(content or "") > MAX_CONTENT_LENGTH:
        raise ContentTooLongError(f"Message too long (max {MAX_CONTENT_LENGTH} characters)")
    return trimmed


async def send_message(
    connection_id: int,
    sender_id: int,
    content: str | None,
    uow: UnitOfWork,
    notifier: Notifier,
    clock: Clock = _system_clock,
) -> Message:
    """Persist a message with a server timestamp and broadcast it.

    There is no idempotency key: every successful call stores and emits
    exactly one message.
    """
    body = validate_content(content)

    connection = await uow.connections.get_by_id(connection_id)
    if connection is None or not connection.is_active:
        raise ConnectionNotActiveError("Invalid or inactive connection")
    if not connection.has_participant(sender_id):
        logger.warning("User %d tried to post to connection %d", sender_id, connection_id)
        raise UnauthorizedError("Not a participant of this connection")

    msg = await uow.messages_w.create(connection_id, sender_id, body, clock.now())
    if msg is None:
        raise ConnectionNotActiveError("Connection ended before the message was stored")
    await uow.outbox.add(
        MESSAGE_CREATED,
        {
            "message_id": msg.id,
            "connection_id": msg.connection_id,
            "sender_id": msg.sender_id,
        },
    )
    await uow.commit()

    await notifier.message_created(
        MessageCreated(
            message_id=msg.id,
            connection_id=msg.connection_id,
            sender_id=msg.sender_id,
            content=msg.content,
            timestamp=msg.timestamp,
        )
    )
    return msg


async def list_messages(
    connection_id: int,
    requesting_user_id: int,
    limit: int,
    offset: int,
    uow: UnitOfWork,
) -> list[Message]:
    if not 1 <= limit <= MAX_PAGE_SIZE or offset < 0:
        raise InvalidPaginationError(f"limit must be 1..{MAX_PAGE_SIZE} and offset >= 0")

    connection = await uow.connections.get_by_id(connection_id)
    if connection is None:
        raise ConnectionNotFoundError("Connection not found")
    if not connection.has_participant(requesting_user_id):
        raise UnauthorizedError("Not a participant of this connection")

    return await uow.messages.list_page(connection_id, limit=limit, offset=offset)
