from __future__ import annotations

from datetime import datetime
from typing import Protocol

from duo_chat.domain.entities.connection import Connection


class ConnectionReader(Protocol):
    async def get_by_id(self, connection_id: int) -> Connection | None: ...

    async def get_active_for_user(self, user_id: int) -> Connection | None: ...


class ConnectionWriter(Protocol):
    async def create_connected(
        self, user_a_id: int, user_b_id: int, connected_at: datetime
    ) -> Connection | None:
        """Atomically pair two users.

        Inserts a connected Connection and claims ``current_connection_id`` of
        both users in one step, only if neither holds one. Returns None and
        leaves no trace when either user is already taken.
        """
        ...

    async def end(
        self,
        connection_id: int,
        ended_by_user_id: int,
        reason: str,
        ended_at: datetime,
    ) -> bool:
        """Move a connected Connection to disconnected and release both users.

        Returns False if the connection was not connected anymore.
        """
        ...
