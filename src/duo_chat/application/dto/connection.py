from __future__ import annotations

from dataclasses import dataclass, field

from duo_chat.domain.entities.connection import Connection
from duo_chat.domain.entities.message import Message
from duo_chat.domain.entities.user import User


@dataclass(frozen=True, slots=True)
class CurrentConnection:
    """Active connection of a user, the peer, and the latest backlog (oldest first)."""

    connection: Connection
    peer: User | None
    recent_messages: list[Message] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class LoginResult:
    user: User
    access_token: str
    current: CurrentConnection | None
