from __future__ import annotations

from datetime import datetime
from typing import Protocol

from duo_chat.domain.entities.message import Message


class MessageReader(Protocol):
    async def list_page(
        self,
        connection_id: int,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Message]:
        """Return a page in ascending time order; ``offset`` counts back from the newest."""
        ...


class MessageWriter(Protocol):
    async def create(
        self,
        connection_id: int,
        sender_id: int,
        content: str,
        timestamp: datetime,
    ) -> Message | None:
        """Insert unless the connection is no longer connected; then return None."""
        ...
