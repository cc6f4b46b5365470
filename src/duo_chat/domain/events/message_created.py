from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class MessageCreated:
    message_id: int
    connection_id: int
    sender_id: int
    content: str
    timestamp: datetime
