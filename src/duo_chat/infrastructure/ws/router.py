"""Per-transport dispatch of inbound realtime frames."""
from __future__ import annotations

import logging
import uuid
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from duo_chat.application.dto.principal import Principal
from duo_chat.application.exceptions import (
    AppError,
    ConnectionNotActiveError,
    ForbiddenError,
    NotJoinedError,
    UnauthorizedError,
)
from duo_chat.application.uow import UoWFactory
from duo_chat.infrastructure.ws.hub import RealtimeHub, connection_payload
from duo_chat.infrastructure.ws.protocol import (
    DisconnectEvent,
    JoinEvent,
    Outbound,
    PingEvent,
    RequestAcceptedEvent,
    RequestSentEvent,
    SendMessageEvent,
    TypingStartEvent,
    TypingStopEvent,
    WsInbound,
    encode_outbound,
    parse_inbound,
)
from duo_chat.infrastructure.ws.registry import Session, Transport
from duo_chat.services import connection_service, message_service, user_service

logger = logging.getLogger(__name__)


class RealtimeRouter:
    """Translates frames of one live transport into service calls.

    The transport is already authenticated; ``principal`` is the only identity
    it may act as. Every rejected frame is answered with an ``error`` frame.
    """

    def __init__(
        self,
        hub: RealtimeHub,
        principal: Principal,
        transport: Transport,
        uow_factory: UoWFactory,
        *,
        transport_id: str | None = None,
    ) -> None:
        self._hub = hub
        self._principal = principal
        self._transport = transport
        self._uow_factory = uow_factory
        self.transport_id = transport_id or uuid.uuid4().hex
        self._session: Session | None = None

    @property
    def joined(self) -> bool:
        return self._session is not None

    async def handle(self, raw: str | bytes) -> None:
        try:
            event = parse_inbound(raw)
        except PydanticValidationError as exc:
            unknown = any(err["type"] == "union_tag_invalid" for err in exc.errors())
            await self._reply_error(
                "unknown_type" if unknown else "invalid_payload",
                str(exc.errors(include_url=False)[0]["msg"]),
            )
            return

        try:
            await self._dispatch(event)
        except AppError as exc:
            if isinstance(exc, ForbiddenError):
                logger.warning(
                    "Rejected %s from user %d on %s: %s",
                    event.type, self._principal.user_id, self.transport_id, exc.detail,
                )
            await self._reply_error(exc.code, exc.detail, retryable=exc.retryable, event=event.type)
        except Exception:
            logger.exception("Unhandled error for %s from user %d", event.type, self._principal.user_id)
            await self._reply_error("internal_error", "Internal error", retryable=True, event=event.type)

    async def close(self) -> None:
        """Called once the transport is gone."""
        if self._session is not None:
            self._session = None
            await self._hub.detach(self.transport_id)

    async def _dispatch(self, event: WsInbound) -> None:
        if isinstance(event, PingEvent):
            await self._reply(Outbound.PONG, {})
        elif isinstance(event, JoinEvent):
            await self._on_join(event)
        elif self._session is None:
            raise NotJoinedError("Join before sending other events")
        elif isinstance(event, SendMessageEvent):
            await self._on_send_message(event)
        elif isinstance(event, (TypingStartEvent, TypingStopEvent)):
            await self._on_typing(event)
        elif isinstance(event, RequestSentEvent):
            await self._on_request_sent(event)
        elif isinstance(event, RequestAcceptedEvent):
            await self._on_request_accepted(event)
        elif isinstance(event, DisconnectEvent):
            await self._on_disconnect(event)

    def _require_self(self, user_id: int) -> None:
        if user_id != self._principal.user_id:
            raise UnauthorizedError("Identity does not match this session")

    async def _on_join(self, event: JoinEvent) -> None:
        self._require_self(event.data.user_id)
        if event.data.username != self._principal.username:
            raise UnauthorizedError("Identity does not match this session")

        with self._hub.registry.joining(event.data.user_id):
            async with self._uow_factory() as uow:
                user = await user_service.get_by_id(event.data.user_id, uow)
                if user.username != event.data.username:
                    raise UnauthorizedError("Invalid user credentials")
                connection = await connection_service.current_connection_for(user.id, uow)

            if self._session is None:
                self._session = await self._hub.attach(
                    user.id, user.username, self.transport_id, self._transport, connection,
                )

        registry = self._hub.registry
        active_id = self._session.active_connection_id
        peer_id = registry.peer_in(active_id, user.id) if active_id is not None else None
        await self._reply(
            Outbound.JOINED,
            {
                "user_id": user.id,
                "username": user.username,
                "connection": connection_payload(connection)
                if connection is not None and connection.id == active_id
                else None,
                "peer_online": registry.is_online(peer_id) if peer_id is not None else False,
            },
        )
        logger.info("User %s (%d) joined on %s", user.username, user.id, self.transport_id)

    async def _on_send_message(self, event: SendMessageEvent) -> None:
        data = event.data
        self._require_self(data.sender_id)
        async with self._uow_factory() as uow:
            await message_service.send_message(
                data.connection_id, data.sender_id, data.content, uow, self._hub,
            )

    async def _on_typing(self, event: TypingStartEvent | TypingStopEvent) -> None:
        assert self._session is not None
        connection_id = event.data.connection_id
        if self._session.active_connection_id != connection_id:
            raise ConnectionNotActiveError("Not a member of this connection")
        await self._hub.registry.send_to_connection(
            connection_id,
            Outbound.USER_TYPING,
            {
                "connection_id": connection_id,
                "user_id": self._principal.user_id,
                "username": self._principal.username,
                "typing": isinstance(event, TypingStartEvent),
            },
            exclude_user_id=self._principal.user_id,
        )

    async def _on_request_sent(self, event: RequestSentEvent) -> None:
        """Client hint after a REST request. The target was notified at creation."""
        data = event.data
        if data.from_username != self._principal.username:
            raise UnauthorizedError("Identity does not match this session")
        async with self._uow_factory() as uow:
            request = await connection_service.get_request(data.request_id, uow)
        if request.from_user_id != self._principal.user_id or request.to_username != data.to_username:
            raise UnauthorizedError("Request does not belong to this session")

    async def _on_request_accepted(self, event: RequestAcceptedEvent) -> None:
        """Client hint after a REST accept.

        Only validated. Rooms change solely on committed transitions, which
        enrolled both users when the connection was established.
        """
        data = event.data
        if self._principal.user_id not in (data.user_a_id, data.user_b_id):
            raise UnauthorizedError("Identity does not match this session")
        async with self._uow_factory() as uow:
            connection = await connection_service.get_connection(data.connection_id, uow)
        if not connection.has_participant(self._principal.user_id):
            raise UnauthorizedError("Not a participant of this connection")
        if not connection.is_active:
            raise ConnectionNotActiveError("Connection is not active")

    async def _on_disconnect(self, event: DisconnectEvent) -> None:
        data = event.data
        self._require_self(data.user_id)
        async with self._uow_factory() as uow:
            await connection_service.disconnect(data.connection_id, data.user_id, uow, self._hub)

    async def _reply(self, event: Outbound, data: dict[str, Any]) -> None:
        await self._transport.send_text(encode_outbound(event, data))

    async def _reply_error(
        self,
        code: str,
        detail: str,
        *,
        retryable: bool = False,
        event: str | None = None,
    ) -> None:
        await self._reply(
            Outbound.ERROR,
            {"code": code, "detail": detail, "retryable": retryable, "event": event},
        )
