from __future__ import annotations

from datetime import datetime
from typing import Protocol

from duo_chat.domain.entities.connection_request import ConnectionRequest


class ConnectionRequestReader(Protocol):
    async def get_by_id(self, request_id: int) -> ConnectionRequest | None: ...

    async def find_pending(
        self, from_user_id: int, to_username: str
    ) -> ConnectionRequest | None: ...

    async def list_pending_for(self, to_username: str) -> list[ConnectionRequest]:
        """Pending requests addressed to ``to_username``, oldest first, with sender usernames."""
        ...


class ConnectionRequestWriter(Protocol):
    async def create_pending(
        self, from_user_id: int, to_username: str, created_at: datetime
    ) -> ConnectionRequest | None:
        """Insert a pending request. Return None if one is already pending for the pair."""
        ...

    async def resolve(self, request_id: int, status: str) -> bool:
        """Move a pending request to ``status``. Return False if it was no longer pending."""
        ...
