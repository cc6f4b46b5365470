"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import itertools
import json
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Callable

import pytest

from duo_chat.application.dto.principal import Principal
from duo_chat.application.repositories.outbox import OutboxRecord
from duo_chat.domain.entities.connection import Connection
from duo_chat.domain.entities.connection_request import ConnectionRequest
from duo_chat.domain.entities.message import Message
from duo_chat.domain.entities.user import User
from duo_chat.domain.events.connection_ended import ConnectionEnded
from duo_chat.domain.events.connection_established import ConnectionEstablished
from duo_chat.domain.events.connection_requested import ConnectionRequested
from duo_chat.domain.events.message_created import MessageCreated
from duo_chat.domain.value_objects.enums import ConnectionStatus, RequestStatus

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


@dataclass
class FakeStore:
    """Shared in-memory state behind any number of FakeUoW instances.

    Conditional writes check and mutate without awaiting, like a single SQL
    statement; reads yield to the loop so concurrent tasks interleave.
    """

    users: dict[int, User] = field(default_factory=dict)
    requests: dict[int, ConnectionRequest] = field(default_factory=dict)
    connections: dict[int, Connection] = field(default_factory=dict)
    messages: list[Message] = field(default_factory=list)
    outbox: list[dict[str, Any]] = field(default_factory=list)
    commits: int = 0
    _ids: Any = field(default_factory=lambda: itertools.count(1))

    def next_id(self) -> int:
        return next(self._ids)

    def add_user(self, username: str) -> User:
        user = User(id=self.next_id(), username=username, current_connection_id=None, created_at=T0)
        self.users[user.id] = user
        return user

    def user(self, user_id: int) -> User:
        return self.users[user_id]

    def pair(self, a: User, b: User) -> Connection:
        """Put two users into a connected Connection directly."""
        conn = Connection(
            id=self.next_id(),
            user_a_id=a.id,
            user_b_id=b.id,
            status=ConnectionStatus.CONNECTED,
            created_at=T0,
            connected_at=T0,
        )
        self.connections[conn.id] = conn
        for u in (a, b):
            self.users[u.id] = replace(self.users[u.id], current_connection_id=conn.id)
        return conn

    def active_connections_of(self, user_id: int) -> list[Connection]:
        return [
            c for c in self.connections.values()
            if c.is_active and c.has_participant(user_id)
        ]


@dataclass
class _Repo:
    _store: FakeStore
    _uow: FakeUoW


class FakeUserRepo(_Repo):
    async def get_by_id(self, user_id: int) -> User | None:
        await asyncio.sleep(0)
        return self._store.users.get(user_id)

    async def get_by_username(self, username: str) -> User | None:
        await asyncio.sleep(0)
        for user in self._store.users.values():
            if user.username == username:
                return user
        return None

    async def create(self, username: str, created_at: datetime) -> User | None:
        if any(u.username == username for u in self._store.users.values()):
            return None
        user = User(id=self._store.next_id(), username=username, current_connection_id=None, created_at=created_at)
        self._store.users[user.id] = user
        self._uow.on_rollback(lambda: self._store.users.pop(user.id, None))
        return user


class FakeRequestRepo(_Repo):
    def _with_sender(self, request: ConnectionRequest) -> ConnectionRequest:
        sender = self._store.users.get(request.from_user_id)
        return replace(request, from_username=sender.username if sender else None)

    async def get_by_id(self, request_id: int) -> ConnectionRequest | None:
        await asyncio.sleep(0)
        request = self._store.requests.get(request_id)
        return self._with_sender(request) if request else None

    async def find_pending(self, from_user_id: int, to_username: str) -> ConnectionRequest | None:
        await asyncio.sleep(0)
        for r in self._store.requests.values():
            if r.is_pending and r.from_user_id == from_user_id and r.to_username == to_username:
                return r
        return None

    async def list_pending_for(self, to_username: str) -> list[ConnectionRequest]:
        await asyncio.sleep(0)
        return [
            self._with_sender(r) for r in self._store.requests.values()
            if r.is_pending and r.to_username == to_username
        ]

    async def create_pending(
        self, from_user_id: int, to_username: str, created_at: datetime
    ) -> ConnectionRequest | None:
        for r in self._store.requests.values():
            if r.is_pending and r.from_user_id == from_user_id and r.to_username == to_username:
                return None
        request = ConnectionRequest(
            id=self._store.next_id(),
            from_user_id=from_user_id,
            to_username=to_username,
            status=RequestStatus.PENDING,
            created_at=created_at,
        )
        self._store.requests[request.id] = request
        self._uow.on_rollback(lambda: self._store.requests.pop(request.id, None))
        return request

    async def resolve(self, request_id: int, status: str) -> bool:
        request = self._store.requests.get(request_id)
        if request is None or not request.is_pending:
            return False
        self._store.requests[request_id] = replace(request, status=status)
        self._uow.on_rollback(lambda: self._store.requests.__setitem__(request_id, request))
        return True


class FakeConnectionRepo(_Repo):
    async def get_by_id(self, connection_id: int) -> Connection | None:
        await asyncio.sleep(0)
        return self._store.connections.get(connection_id)

    async def get_active_for_user(self, user_id: int) -> Connection | None:
        await asyncio.sleep(0)
        user = self._store.users.get(user_id)
        if user is None or user.current_connection_id is None:
            return None
        return self._store.connections.get(user.current_connection_id)

    async def create_connected(
        self, user_a_id: int, user_b_id: int, connected_at: datetime
    ) -> Connection | None:
        users = self._store.users
        if any(users[u].current_connection_id is not None for u in (user_a_id, user_b_id)):
            return None
        conn = Connection(
            id=self._store.next_id(),
            user_a_id=user_a_id,
            user_b_id=user_b_id,
            status=ConnectionStatus.CONNECTED,
            created_at=connected_at,
            connected_at=connected_at,
        )
        before = {u: users[u] for u in (user_a_id, user_b_id)}
        self._store.connections[conn.id] = conn
        for u in (user_a_id, user_b_id):
            users[u] = replace(users[u], current_connection_id=conn.id)

        def _undo() -> None:
            self._store.connections.pop(conn.id, None)
            users.update(before)

        self._uow.on_rollback(_undo)
        return conn

    async def end(
        self,
        connection_id: int,
        ended_by_user_id: int,
        reason: str,
        ended_at: datetime,
    ) -> bool:
        conn = self._store.connections.get(connection_id)
        if conn is None or not conn.is_active:
            return False
        self._store.connections[connection_id] = replace(
            conn,
            status=ConnectionStatus.DISCONNECTED,
            disconnected_at=ended_at,
            ended_by_user_id=ended_by_user_id,
            end_reason=str(reason),
        )
        for u in conn.participants:
            user = self._store.users[u]
            if user.current_connection_id == connection_id:
                self._store.users[u] = replace(user, current_connection_id=None)
        return True


class FakeMessageRepo(_Repo):
    async def list_page(self, connection_id: int, *, limit: int = 50, offset: int = 0) -> list[Message]:
        await asyncio.sleep(0)
        rows = sorted(
            (m for m in self._store.messages if m.connection_id == connection_id),
            key=lambda m: (m.timestamp, m.id),
            reverse=True,
        )
        return list(reversed(rows[offset:offset + limit]))

    async def create(
        self,
        connection_id: int,
        sender_id: int,
        content: str,
        timestamp: datetime,
    ) -> Message | None:
        await asyncio.sleep(0)
        conn = self._store.connections.get(connection_id)
        if conn is None or not conn.is_active:
            return None
        msg = Message(
            id=self._store.next_id(),
            connection_id=connection_id,
            sender_id=sender_id,
            content=content,
            timestamp=timestamp,
        )
        self._store.messages.append(msg)
        self._uow.on_rollback(lambda: self._store.messages.remove(msg))
        return msg


class FakeOutboxWriter(_Repo):
    async def add(self, event_type: str, payload: dict[str, Any]) -> None:
        self._store.outbox.append({
            "event_type": event_type, "payload": payload,
            "sent": False, "attempts": 0, "next_retry_at": None,
        })
        index = len(self._store.outbox) - 1
        self._uow.on_rollback(lambda: self._store.outbox.pop(index))

    async def fetch_pending(self, batch_size: int, now: datetime, max_attempts: int) -> list[OutboxRecord]:
        due = [
            OutboxRecord(id=i, event_type=r["event_type"], payload=r["payload"], attempts=r["attempts"])
            for i, r in enumerate(self._store.outbox)
            if not r["sent"]
            and r["attempts"] < max_attempts
            and (r["next_retry_at"] is None or r["next_retry_at"] <= now)
        ]
        return due[:batch_size]

    async def mark_sent(self, ids: list[int]) -> None:
        for i in ids:
            self._store.outbox[i]["sent"] = True

    async def mark_failed(self, record_id: int, next_retry_at: datetime) -> None:
        record = self._store.outbox[record_id]
        record["attempts"] += 1
        record["next_retry_at"] = next_retry_at


class FakeUoW:
    """In-memory UoW for unit tests. Rollback undoes writes made since the last commit."""

    def __init__(self, store: FakeStore | None = None) -> None:
        self.store = store or FakeStore()
        self._undo: list[Callable[[], object]] = []
        self.rolled_back = False
        self.users = self.users_w = FakeUserRepo(self.store, self)
        self.requests = self.requests_w = FakeRequestRepo(self.store, self)
        self.connections = self.connections_w = FakeConnectionRepo(self.store, self)
        self.messages = self.messages_w = FakeMessageRepo(self.store, self)
        self.outbox = FakeOutboxWriter(self.store, self)

    def on_rollback(self, undo: Callable[[], object]) -> None:
        self._undo.append(undo)

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        self._undo.clear()
        self.store.commits += 1

    async def rollback(self) -> None:
        while self._undo:
            self._undo.pop()()
        self.rolled_back = True


def fake_uow_factory(store: FakeStore, exit_yields: int = 0):
    """``exit_yields`` suspends on exit, like closing a real session."""

    @asynccontextmanager
    async def _factory() -> AsyncIterator[FakeUoW]:
        uow = FakeUoW(store)
        try:
            yield uow
        except BaseException:
            await uow.rollback()
            raise
        for _ in range(exit_yields):
            await asyncio.sleep(0)

    return _factory


@dataclass
class RecordingNotifier:
    events: list[Any] = field(default_factory=list)

    async def connection_requested(self, event: ConnectionRequested) -> None:
        self.events.append(event)

    async def connection_established(self, event: ConnectionEstablished) -> None:
        self.events.append(event)

    async def connection_ended(self, event: ConnectionEnded) -> None:
        self.events.append(event)

    async def message_created(self, event: MessageCreated) -> None:
        self.events.append(event)

    def of_type(self, cls: type) -> list[Any]:
        return [e for e in self.events if isinstance(e, cls)]


class FakeTransport:
    """Collects outbound frames as decoded dicts."""

    def __init__(self, *, broken: bool = False) -> None:
        self.sent: list[dict[str, Any]] = []
        self.broken = broken

    async def send_text(self, data: str) -> None:
        if self.broken:
            raise ConnectionResetError("transport closed")
        self.sent.append(json.loads(data))

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [f["data"] for f in self.sent if f["type"] == event_type]

    def types(self) -> list[str]:
        return [f["type"] for f in self.sent]


class StepClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime = T0) -> None:
        self._now = start

    def now(self) -> datetime:
        self._now += timedelta(seconds=1)
        return self._now


def principal_of(user: User) -> Principal:
    return Principal(user_id=user.id, username=user.username)


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def uow(store: FakeStore) -> FakeUoW:
    return FakeUoW(store)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def alice(store: FakeStore) -> User:
    return store.add_user("alice")


@pytest.fixture
def bob(store: FakeStore) -> User:
    return store.add_user("bob")


@pytest.fixture
def carol(store: FakeStore) -> User:
    return store.add_user("carol")
