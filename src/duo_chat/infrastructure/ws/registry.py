"""In-process presence and session registry."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Protocol

from duo_chat.domain.entities.connection import Connection
from duo_chat.infrastructure.ws.protocol import Outbound, encode_outbound

logger = logging.getLogger(__name__)


class Transport(Protocol):
    async def send_text(self, data: str) -> None: ...


@dataclass(eq=False, slots=True)
class Session:
    """One live transport of a user. Hashable by identity."""

    transport_id: str
    user_id: int
    username: str
    transport: Transport
    active_connection_id: int | None = None


@dataclass(frozen=True, slots=True)
class Departure:
    session: Session
    was_last: bool
    connection_id: int | None


class SessionRegistry:
    """Tracks live sessions per user and room membership per connection.

    The registry never reads the store. Room membership changes only through
    ``enroll`` / ``release``, which the hub calls on every connect and
    disconnect transition. All mutations are synchronous, so an asyncio task
    always sees a consistent registry between two awaits.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._by_user: dict[int, set[str]] = {}
        self._rooms: dict[int, set[str]] = {}
        self._room_users: dict[int, tuple[int, int]] = {}
        # Last membership announced per user, authoritative over stale store reads.
        self._memberships: dict[int, int | None] = {}
        # Joins between their store read and register_session.
        self._joining: dict[int, int] = {}

    # -- lifecycle ---------------------------------------------------------

    @contextmanager
    def joining(self, user_id: int) -> Iterator[None]:
        """Hold around a join's store read and ``register_session`` call."""
        self._joining[user_id] = self._joining.get(user_id, 0) + 1
        try:
            yield
        finally:
            self._joining[user_id] -= 1
            if not self._joining[user_id]:
                del self._joining[user_id]
                self._forget_if_idle(user_id)

    def register_session(
        self,
        user_id: int,
        username: str,
        transport_id: str,
        transport: Transport,
        connection: Connection | None,
    ) -> tuple[Session, bool]:
        """Add a session; return it and whether it is the user's first one.

        ``connection`` is the user's active connection as read by the caller.
        If a transition was announced after that read, the announced state wins.
        """
        if transport_id in self._sessions:
            self.deregister_session(transport_id)

        if user_id in self._memberships:
            connection_id = self._memberships[user_id]
        elif connection is not None and connection.is_active:
            connection_id = connection.id
            self._memberships[user_id] = connection_id
            self._room_users[connection_id] = connection.participants
        else:
            connection_id = None
            self._memberships[user_id] = None

        session = Session(
            transport_id=transport_id,
            user_id=user_id,
            username=username,
            transport=transport,
            active_connection_id=connection_id,
        )
        user_sessions = self._by_user.setdefault(user_id, set())
        first = not user_sessions
        user_sessions.add(transport_id)
        self._sessions[transport_id] = session
        if connection_id is not None:
            self._rooms.setdefault(connection_id, set()).add(transport_id)

        logger.debug(
            "Session %s registered for user %d (sessions=%d, connection=%s)",
            transport_id, user_id, len(user_sessions), connection_id,
        )
        return session, first

    def deregister_session(self, transport_id: str) -> Departure | None:
        session = self._sessions.pop(transport_id, None)
        if session is None:
            return None

        user_sessions = self._by_user.get(session.user_id, set())
        user_sessions.discard(transport_id)
        was_last = not user_sessions
        if was_last:
            self._by_user.pop(session.user_id, None)
            self._forget_if_idle(session.user_id)

        connection_id = session.active_connection_id
        if connection_id is not None:
            room = self._rooms.get(connection_id)
            if room is not None:
                room.discard(transport_id)
                if not room:
                    del self._rooms[connection_id]

        logger.debug("Session %s of user %d deregistered (last=%s)", transport_id, session.user_id, was_last)
        return Departure(session=session, was_last=was_last, connection_id=connection_id)

    # -- room membership ---------------------------------------------------

    def enroll(self, connection_id: int, user_ids: tuple[int, int]) -> None:
        """Put every session of both users into the connection room. Idempotent."""
        self._room_users[connection_id] = user_ids
        room = self._rooms.setdefault(connection_id, set())
        for user_id in user_ids:
            self._memberships[user_id] = connection_id
            for session in self.sessions_for(user_id):
                if session.active_connection_id not in (None, connection_id):
                    self._leave_room(session)
                session.active_connection_id = connection_id
                room.add(session.transport_id)

    def release(self, connection_id: int, user_ids: Iterable[int]) -> None:
        """Empty the connection room. Idempotent."""
        for user_id in user_ids:
            if self._memberships.get(user_id, connection_id) == connection_id:
                self._memberships[user_id] = None
                self._forget_if_idle(user_id)
        for transport_id in self._rooms.pop(connection_id, set()):
            session = self._sessions.get(transport_id)
            if session is not None and session.active_connection_id == connection_id:
                session.active_connection_id = None
        self._room_users.pop(connection_id, None)

    def _forget_if_idle(self, user_id: int) -> None:
        """Drop an empty membership of a user with no sessions and no join in flight."""
        if (
            self._memberships.get(user_id, -1) is None
            and user_id not in self._by_user
            and user_id not in self._joining
        ):
            del self._memberships[user_id]

    def _leave_room(self, session: Session) -> None:
        if session.active_connection_id is None:
            return
        room = self._rooms.get(session.active_connection_id)
        if room is not None:
            room.discard(session.transport_id)

    # -- queries -----------------------------------------------------------

    def sessions_for(self, user_id: int) -> set[Session]:
        return {self._sessions[t] for t in self._by_user.get(user_id, ())}

    def sessions_in_connection(self, connection_id: int) -> set[Session]:
        return {self._sessions[t] for t in self._rooms.get(connection_id, ())}

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    def is_online(self, user_id: int) -> bool:
        return bool(self._by_user.get(user_id))

    def connection_of(self, user_id: int) -> int | None:
        """Active connection of a user as last announced, if known."""
        return self._memberships.get(user_id)

    def peer_in(self, connection_id: int, user_id: int) -> int | None:
        users = self._room_users.get(connection_id)
        if users is None or user_id not in users:
            return None
        return users[1] if users[0] == user_id else users[0]

    # -- fan-out -----------------------------------------------------------

    async def send_to_user(
        self,
        user_id: int,
        event: Outbound,
        data: dict[str, Any],
    ) -> int:
        return await self._deliver(self.sessions_for(user_id), event, data)

    async def send_to_connection(
        self,
        connection_id: int,
        event: Outbound,
        data: dict[str, Any],
        *,
        exclude_user_id: int | None = None,
    ) -> int:
        sessions = [
            s for s in self.sessions_in_connection(connection_id)
            if s.user_id != exclude_user_id
        ]
        return await self._deliver(sessions, event, data)

    async def _deliver(
        self,
        sessions: Iterable[Session],
        event: Outbound,
        data: dict[str, Any],
    ) -> int:
        """Send to a snapshot of sessions; return how many frames went out.

        A broken transport is skipped. Its own read loop fails next and
        deregisters it.
        """
        raw = encode_outbound(event, data)
        delivered = 0
        for session in list(sessions):
            try:
                await session.transport.send_text(raw)
            except Exception:
                logger.info(
                    "Dropping %s for session %s of user %d",
                    event, session.transport_id, session.user_id, exc_info=True,
                )
                continue
            delivered += 1
        return delivered
