from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class MessageResponse(BaseModel):
    id: int
    connection_id: int
    sender_id: int
    content: str
    timestamp: datetime

    model_config = {"from_attributes": True}
