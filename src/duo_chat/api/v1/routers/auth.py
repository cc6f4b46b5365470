from __future__ import annotations

from fastapi import APIRouter

from duo_chat.api.deps import IssuerDep, UoWDep
from duo_chat.api.v1.schemas.user import LoginResponse, UsernameRequest, UserResponse
from duo_chat.services import user_service

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


@router.post("/register", response_model=UserResponse, status_code=201)
async def register(body: UsernameRequest, uow: UoWDep) -> UserResponse:
    user = await user_service.register(body.username.strip(), uow)
    return UserResponse.model_validate(user)


@router.post("/login", response_model=LoginResponse)
async def login(body: UsernameRequest, uow: UoWDep, issuer: IssuerDep) -> LoginResponse:
    result = await user_service.login(body.username.strip(), uow, issuer)
    return LoginResponse.model_validate(result)


@router.get("/users/{username}", response_model=UserResponse)
async def get_user_by_username(username: str, uow: UoWDep) -> UserResponse:
    user = await user_service.get_by_username(username, uow)
    return UserResponse.model_validate(user)


@router.get("/users/id/{user_id}", response_model=UserResponse)
async def get_user_by_id(user_id: int, uow: UoWDep) -> UserResponse:
    user = await user_service.get_by_id(user_id, uow)
    return UserResponse.model_validate(user)
