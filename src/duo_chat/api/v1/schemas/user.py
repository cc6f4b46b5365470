from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from duo_chat.api.v1.schemas.connection import CurrentConnectionResponse


class UsernameRequest(BaseModel):
    username: str


class UserResponse(BaseModel):
    id: int
    username: str
    current_connection_id: int | None
    created_at: datetime

    model_config = {"from_attributes": True}


class LoginResponse(BaseModel):
    user: UserResponse
    access_token: str
    token_type: str = "bearer"
    current: CurrentConnectionResponse | None = None

    model_config = {"from_attributes": True}
