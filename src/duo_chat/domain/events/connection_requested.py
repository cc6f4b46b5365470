from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class ConnectionRequested:
    request_id: int
    from_user_id: int
    from_username: str
    to_user_id: int
    to_username: str
    created_at: datetime
