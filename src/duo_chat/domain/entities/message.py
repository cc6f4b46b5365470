from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

MAX_CONTENT_LENGTH = 1000


@dataclass(frozen=True, slots=True)
class Message:
    id: int
    connection_id: int
    sender_id: int
    content: str
    timestamp: datetime
