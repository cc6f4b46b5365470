from __future__ import annotations

from datetime import datetime
from typing import Protocol

from duo_chat.domain.entities.user import User


class UserReader(Protocol):
    async def get_by_id(self, user_id: int) -> User | None: ...

    async def get_by_username(self, username: str) -> User | None: ...


class UserWriter(Protocol):
    async def create(self, username: str, created_at: datetime) -> User | None:
        """Insert a user. Return None if the username is already taken."""
        ...
