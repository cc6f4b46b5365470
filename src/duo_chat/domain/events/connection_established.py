from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class ConnectionEstablished:
    connection_id: int
    user_a_id: int
    user_b_id: int
    connected_at: datetime
