"""Outbound notification port.

The lifecycle and message services call a ``Notifier`` after each committed
transition. The realtime hub implements it and keeps room membership and
client sessions in sync; the services never reach into the session registry.
"""
from __future__ import annotations

from typing import Protocol

from duo_chat.domain.events.connection_ended import ConnectionEnded
from duo_chat.domain.events.connection_established import ConnectionEstablished
from duo_chat.domain.events.connection_requested import ConnectionRequested
from duo_chat.domain.events.message_created import MessageCreated


class Notifier(Protocol):
    async def connection_requested(self, event: ConnectionRequested) -> None: ...

    async def connection_established(self, event: ConnectionEstablished) -> None: ...

    async def connection_ended(self, event: ConnectionEnded) -> None: ...

    async def message_created(self, event: MessageCreated) -> None: ...
