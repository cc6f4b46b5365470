from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ConnectionEnded:
    connection_id: int
    user_a_id: int
    user_b_id: int
    ended_by_user_id: int
    ended_by_username: str
    reason: str  # DisconnectReason value
