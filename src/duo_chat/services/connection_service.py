"""Connection lifecycle: requests, pairing and termination.

A user holds at most one connected Connection. Every transition that could
break that rule is delegated to a conditional write in the store
(``create_connected``, ``resolve``, ``end``); reads made here beforehand only
produce friendlier errors and are never trusted for correctness.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from duo_chat.application.dto.connection import CurrentConnection
from duo_chat.application.dto.events import (
    CONNECTION_ENDED,
    CONNECTION_ESTABLISHED,
    CONNECTION_REQUESTED,
)
from duo_chat.application.exceptions import (
    AlreadyConnectedError,
    ConflictAlreadyConnectedError,
    ConnectionNotActiveError,
    ConnectionNotFoundError,
    DuplicateRequestError,
    InvalidTargetError,
    RequestNotFoundError,
    RequestNotPendingError,
    SelfTargetError,
    UnauthorizedError,
    UserNotFoundError,
)
from duo_chat.application.ports.notifier import Notifier
from duo_chat.application.uow import UnitOfWork
from duo_chat.domain.entities.connection import Connection
from duo_chat.domain.entities.connection_request import ConnectionRequest
from duo_chat.domain.entities.user import User
from duo_chat.domain.events.connection_ended import ConnectionEnded
from duo_chat.domain.events.connection_established import ConnectionEstablished
from duo_chat.domain.events.connection_requested import ConnectionRequested
from duo_chat.domain.value_objects.enums import DisconnectReason, RequestStatus

logger = logging.getLogger(__name__)

RECENT_MESSAGES_LIMIT = 50


async def send_request(
    from_user_id: int,
    to_username: str,
    uow: UnitOfWork,
    notifier: Notifier,
) -> ConnectionRequest:
    sender = await uow.users.get_by_id(from_user_id)
    if sender is None:
        raise UserNotFoundError("Sender not found")
    if sender.username == to_username:
        raise SelfTargetError("Cannot send a connection request to yourself")

    target = await uow.users.get_by_username(to_username)
    if target is None:
        raise InvalidTargetError("Target user not found")

    if await uow.connections.get_active_for_user(sender.id) is not None:
        raise AlreadyConnectedError("You already have an active connection")
    if await uow.connections.get_active_for_user(target.id) is not None:
        raise AlreadyConnectedError("Target user already has an active connection")

    if await uow.requests.find_pending(sender.id, to_username) is not None:
        raise DuplicateRequestError("Connection request already pending")

    now = datetime.now(timezone.utc)
    request = await uow.requests_w.create_pending(sender.id, to_username, now)
    if request is None:
        # Lost a race against an identical request.
        await uow.rollback()
        raise DuplicateRequestError("Connection request already pending")

    await uow.outbox.add(
        CONNECTION_REQUESTED,
        {
            "request_id": request.id,
            "from_user_id": sender.id,
            "to_username": to_username,
        },
    )
    await uow.commit()
    logger.info("Connection request %d: %s -> %s", request.id, sender.username, to_username)

    await notifier.connection_requested(
        ConnectionRequested(
            request_id=request.id,
            from_user_id=sender.id,
            from_username=sender.username,
            to_user_id=target.id,
            to_username=target.username,
            created_at=request.created_at,
        )
    )
    return request


async def list_pending_requests(
    username: str,
    uow: UnitOfWork,
) -> list[ConnectionRequest]:
    user = await uow.users.get_by_username(username)
    if user is None:
        raise UserNotFoundError("User not found")
    return await uow.requests.list_pending_for(username)


async def _load_pending_for(
    request_id: int,
    user_id: int,
    uow: UnitOfWork,
) -> tuple[ConnectionRequest, User]:
    """Return the pending request and the user it is addressed to."""
    request = await uow.requests.get_by_id(request_id)
    if request is None:
        raise RequestNotFoundError("Connection request not found")
    if not request.is_pending:
        raise RequestNotPendingError("Connection request is not pending")

    user = await uow.users.get_by_id(user_id)
    if user is None or user.username != request.to_username:
        logger.warning(
            "User %s tried to answer request %d addressed to %s",
            user_id, request_id, request.to_username,
        )
        raise UnauthorizedError("Not allowed to answer this request")
    return request, user


async def accept(
    request_id: int,
    accepting_user_id: int,
    uow: UnitOfWork,
    notifier: Notifier,
) -> Connection:
    request, acceptor = await _load_pending_for(request_id, accepting_user_id, uow)

    now = datetime.now(timezone.utc)
    connection = await uow.connections_w.create_connected(
        request.from_user_id, acceptor.id, now,
    )
    if connection is None:
        await uow.rollback()
        raise ConflictAlreadyConnectedError("One or both users already have an active connection")

    if not await uow.requests_w.resolve(request.id, RequestStatus.ACCEPTED):
        await uow.rollback()
        raise RequestNotPendingError("Connection request is not pending")

    await uow.outbox.add(
        CONNECTION_ESTABLISHED,
        {
            "connection_id": connection.id,
            "request_id": request.id,
            "user_a_id": connection.user_a_id,
            "user_b_id": connection.user_b_id,
        },
    )
    await uow.commit()
    logger.info(
        "Connection %d established between users %d and %d",
        connection.id, connection.user_a_id, connection.user_b_id,
    )

    await notifier.connection_established(
        ConnectionEstablished(
            connection_id=connection.id,
            user_a_id=connection.user_a_id,
            user_b_id=connection.user_b_id,
            connected_at=connection.connected_at or now,
        )
    )
    return connection


async def reject(
    request_id: int,
    rejecting_user_id: int,
    uow: UnitOfWork,
) -> None:
    request, _ = await _load_pending_for(request_id, rejecting_user_id, uow)
    if not await uow.requests_w.resolve(request.id, RequestStatus.REJECTED):
        await uow.rollback()
        raise RequestNotPendingError("Connection request is not pending")
    await uow.commit()
    logger.info("Connection request %d rejected", request.id)


async def disconnect(
    connection_id: int,
    requesting_user_id: int,
    uow: UnitOfWork,
    notifier: Notifier,
    *,
    reason: DisconnectReason = DisconnectReason.USER_INITIATED,
) -> Connection:
    connection = await uow.connections.get_by_id(connection_id)
    if connection is None:
        raise ConnectionNotFoundError("Connection not found")
    if not connection.has_participant(requesting_user_id):
        logger.warning("User %d tried to end connection %d", requesting_user_id, connection_id)
        raise UnauthorizedError("Not a participant of this connection")
    if not connection.is_active:
        raise ConnectionNotActiveError("Connection is not active")

    now = datetime.now(timezone.utc)
    if not await uow.connections_w.end(connection.id, requesting_user_id, reason, now):
        await uow.rollback()
        raise ConnectionNotActiveError("Connection is not active")

    await uow.outbox.add(
        CONNECTION_ENDED,
        {
            "connection_id": connection.id,
            "ended_by_user_id": requesting_user_id,
            "reason": str(reason),
        },
    )
    await uow.commit()
    logger.info("Connection %d ended by user %d (%s)", connection.id, requesting_user_id, reason)

    requester = await uow.users.get_by_id(requesting_user_id)
    await notifier.connection_ended(
        ConnectionEnded(
            connection_id=connection.id,
            user_a_id=connection.user_a_id,
            user_b_id=connection.user_b_id,
            ended_by_user_id=requesting_user_id,
            ended_by_username=requester.username if requester else "",
            reason=str(reason),
        )
    )
    return await uow.connections.get_by_id(connection.id)  # type: ignore[return-value]


async def current_connection_for(
    user_id: int,
    uow: UnitOfWork,
) -> Connection | None:
    return await uow.connections.get_active_for_user(user_id)


async def get_current_connection(
    user_id: int,
    uow: UnitOfWork,
) -> CurrentConnection | None:
    """Active connection with the peer and the latest backlog, or None."""
    user = await uow.users.get_by_id(user_id)
    if user is None:
        raise UserNotFoundError("User not found")

    connection = await uow.connections.get_active_for_user(user_id)
    if connection is None:
        return None

    peer = await uow.users.get_by_id(connection.peer_of(user_id))
    recent = await uow.messages.list_page(connection.id, limit=RECENT_MESSAGES_LIMIT, offset=0)
    return CurrentConnection(connection=connection, peer=peer, recent_messages=recent)


async def get_request(request_id: int, uow: UnitOfWork) -> ConnectionRequest:
    request = await uow.requests.get_by_id(request_id)
    if request is None:
        raise RequestNotFoundError("Connection request not found")
    return request


async def get_connection(connection_id: int, uow: UnitOfWork) -> Connection:
    connection = await uow.connections.get_by_id(connection_id)
    if connection is None:
        raise ConnectionNotFoundError("Connection not found")
    return connection
