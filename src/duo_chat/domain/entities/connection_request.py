from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from duo_chat.domain.value_objects.enums import RequestStatus


@dataclass(frozen=True, slots=True)
class ConnectionRequest:
    id: int
    from_user_id: int
    to_username: str
    status: str
    created_at: datetime
    from_username: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.status == RequestStatus.PENDING
