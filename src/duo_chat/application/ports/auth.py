from __future__ import annotations

from typing import Protocol

from duo_chat.application.dto.principal import Principal
from duo_chat.domain.entities.user import User


class TokenVerifier(Protocol):
    async def verify(self, token: str) -> Principal: ...


class TokenIssuer(Protocol):
    def issue(self, user: User) -> str: ...
