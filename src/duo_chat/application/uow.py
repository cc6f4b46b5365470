from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Callable, Protocol

from duo_chat.application.repositories.connection import (
    ConnectionReader,
    ConnectionWriter,
)
from duo_chat.application.repositories.connection_request import (
    ConnectionRequestReader,
    ConnectionRequestWriter,
)
from duo_chat.application.repositories.message import MessageReader, MessageWriter
from duo_chat.application.repositories.outbox import OutboxWriter
from duo_chat.application.repositories.user import UserReader, UserWriter


class UnitOfWork(Protocol):
    users: UserReader
    users_w: UserWriter
    requests: ConnectionRequestReader
    requests_w: ConnectionRequestWriter
    connections: ConnectionReader
    connections_w: ConnectionWriter
    messages: MessageReader
    messages_w: MessageWriter
    outbox: OutboxWriter

    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...
    async def flush(self) -> None: ...


UoWFactory = Callable[[], AbstractAsyncContextManager[UnitOfWork]]
