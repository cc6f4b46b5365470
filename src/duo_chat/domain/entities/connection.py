from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from duo_chat.domain.value_objects.enums import ConnectionStatus


@dataclass(frozen=True, slots=True)
class Connection:
    """Exclusive pairing of two users. ``user_a_id`` sent the request."""

    id: int
    user_a_id: int
    user_b_id: int
    status: str
    created_at: datetime
    connected_at: datetime | None = None
    disconnected_at: datetime | None = None
    ended_by_user_id: int | None = None
    end_reason: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == ConnectionStatus.CONNECTED

    @property
    def participants(self) -> tuple[int, int]:
        return (self.user_a_id, self.user_b_id)

    def has_participant(self, user_id: int) -> bool:
        return user_id in (self.user_a_id, self.user_b_id)

    def peer_of(self, user_id: int) -> int:
        if user_id == self.user_a_id:
            return self.user_b_id
        if user_id == self.user_b_id:
            return self.user_a_id
        raise ValueError(f"user {user_id} is not part of connection {self.id}")
