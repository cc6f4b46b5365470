from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class SendRequestBody(BaseModel):
    to_username: str


class ConnectionRequestResponse(BaseModel):
    id: int
    from_user_id: int
    from_username: str | None = None
    to_username: str
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}
