"""Realtime hub: turns lifecycle notifications into room changes and pushes."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from duo_chat.application.exceptions import (
    AppError,
    ConnectionNotActiveError,
    ConnectionNotFoundError,
)
from duo_chat.application.uow import UoWFactory
from duo_chat.domain.entities.connection import Connection
from duo_chat.domain.events.connection_ended import ConnectionEnded
from duo_chat.domain.events.connection_established import ConnectionEstablished
from duo_chat.domain.events.connection_requested import ConnectionRequested
from duo_chat.domain.events.message_created import MessageCreated
from duo_chat.domain.value_objects.enums import DisconnectReason
from duo_chat.infrastructure.ws.protocol import Outbound
from duo_chat.infrastructure.ws.registry import Session, SessionRegistry, Transport
from duo_chat.services import connection_service

logger = logging.getLogger(__name__)


def connection_payload(connection: Connection) -> dict[str, Any]:
    return {
        "id": connection.id,
        "user_a_id": connection.user_a_id,
        "user_b_id": connection.user_b_id,
        "status": connection.status,
        "created_at": connection.created_at.isoformat(),
        "connected_at": connection.connected_at.isoformat() if connection.connected_at else None,
    }


class RealtimeHub:
    """Implements the ``Notifier`` port on top of a ``SessionRegistry``.

    Also owns the transport-loss policy: when a user's last session goes away
    while they hold a connection, the connection is ended with reason
    ``transport_lost``, immediately or after ``grace_seconds`` if the user has
    not come back by then.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        uow_factory: UoWFactory,
        *,
        grace_seconds: float = 0.0,
    ) -> None:
        self.registry = registry
        self._uow_factory = uow_factory
        self._grace_seconds = grace_seconds
        self._teardowns: dict[int, asyncio.Task[None]] = {}

    # -- Notifier ----------------------------------------------------------

    async def connection_requested(self, event: ConnectionRequested) -> None:
        await self.registry.send_to_user(
            event.to_user_id,
            Outbound.NEW_CONNECTION_REQUEST,
            {
                "id": event.request_id,
                "from_user_id": event.from_user_id,
                "from_username": event.from_username,
                "to_username": event.to_username,
                "status": "pending",
                "created_at": event.created_at.isoformat(),
            },
        )

    async def connection_established(self, event: ConnectionEstablished) -> None:
        users = (event.user_a_id, event.user_b_id)
        self.registry.enroll(event.connection_id, users)
        for user_id in users:
            peer_id = event.user_b_id if user_id == event.user_a_id else event.user_a_id
            await self.registry.send_to_user(
                user_id,
                Outbound.CONNECTION_ESTABLISHED,
                {
                    "connection_id": event.connection_id,
                    "user_a_id": event.user_a_id,
                    "user_b_id": event.user_b_id,
                    "peer_id": peer_id,
                    "peer_online": self.registry.is_online(peer_id),
                    "connected_at": event.connected_at.isoformat(),
                },
            )

    async def connection_ended(self, event: ConnectionEnded) -> None:
        users = (event.user_a_id, event.user_b_id)
        for user_id in users:
            self._cancel_teardown(user_id)
        self.registry.release(event.connection_id, users)

        data = {
            "connection_id": event.connection_id,
            "reason": event.reason,
            "ended_by_user_id": event.ended_by_user_id,
            "ended_by_username": event.ended_by_username,
        }
        for user_id in users:
            await self.registry.send_to_user(user_id, Outbound.CONNECTION_ENDED, data)

    async def message_created(self, event: MessageCreated) -> None:
        await self.registry.send_to_connection(
            event.connection_id,
            Outbound.NEW_MESSAGE,
            {
                "id": event.message_id,
                "connection_id": event.connection_id,
                "sender_id": event.sender_id,
                "content": event.content,
                "timestamp": event.timestamp.isoformat(),
            },
        )

    # -- sessions ----------------------------------------------------------

    async def attach(
        self,
        user_id: int,
        username: str,
        transport_id: str,
        transport: Transport,
        connection: Connection | None,
    ) -> Session:
        """Register a session. First connect and reconnect take this same path."""
        self._cancel_teardown(user_id)
        session, first = self.registry.register_session(
            user_id, username, transport_id, transport, connection,
        )
        connection_id = session.active_connection_id
        if first and connection_id is not None:
            peer_id = self.registry.peer_in(connection_id, user_id)
            if peer_id is not None:
                await self.registry.send_to_user(
                    peer_id,
                    Outbound.USER_ONLINE,
                    {"user_id": user_id, "username": username, "connection_id": connection_id},
                )
        return session

    async def detach(self, transport_id: str) -> None:
        departure = self.registry.deregister_session(transport_id)
        if departure is None or not departure.was_last or departure.connection_id is None:
            return

        session = departure.session
        connection_id = departure.connection_id
        peer_id = self.registry.peer_in(connection_id, session.user_id)
        if peer_id is not None:
            await self.registry.send_to_user(
                peer_id,
                Outbound.USER_OFFLINE,
                {"user_id": session.user_id, "username": session.username, "connection_id": connection_id},
            )

        if self._grace_seconds <= 0:
            await self._end_lost_connection(session.user_id, connection_id)
            return

        task = asyncio.create_task(
            self._end_after_grace(session.user_id, connection_id),
            name=f"transport-lost-{session.user_id}",
        )
        self._teardowns[session.user_id] = task

    async def shutdown(self) -> None:
        tasks = list(self._teardowns.values())
        self._teardowns.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _cancel_teardown(self, user_id: int) -> None:
        task = self._teardowns.pop(user_id, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _end_after_grace(self, user_id: int, connection_id: int) -> None:
        await asyncio.sleep(self._grace_seconds)
        if self._teardowns.get(user_id) is asyncio.current_task():
            del self._teardowns[user_id]
        await self._end_lost_connection(user_id, connection_id)

    async def _end_lost_connection(self, user_id: int, connection_id: int) -> None:
        if self.registry.is_online(user_id):
            return
        if self.registry.connection_of(user_id) != connection_id:
            return
        try:
            async with self._uow_factory() as uow:
                await connection_service.disconnect(
                    connection_id, user_id, uow, self,
                    reason=DisconnectReason.TRANSPORT_LOST,
                )
        except (ConnectionNotActiveError, ConnectionNotFoundError):
            logger.info("Connection %d already ended before transport loss of user %d", connection_id, user_id)
        except AppError as exc:
            logger.error(
                "Could not end connection %d after transport loss of user %d: %s",
                connection_id, user_id, exc.detail,
            )
