from __future__ import annotations

import logging
from datetime import datetime, timezone

from duo_chat.application.dto.connection import LoginResult
from duo_chat.application.exceptions import (
    InvalidUsernameError,
    UsernameTakenError,
    UserNotFoundError,
)
from duo_chat.application.ports.auth import TokenIssuer
from duo_chat.application.uow import UnitOfWork
from duo_chat.domain.entities.user import (
    USERNAME_MAX_LENGTH,
    USERNAME_MIN_LENGTH,
    User,
    is_valid_username,
)
from duo_chat.services import connection_service

logger = logging.getLogger(__name__)


async def register(username: str, uow: UnitOfWork) -> User:
    if not is_valid_username(username):
        raise InvalidUsernameError(
            f"Username must be {USERNAME_MIN_LENGTH}-{USERNAME_MAX_LENGTH} characters "
            "of letters, numbers and underscores"
        )
    if await uow.users.get_by_username(username) is not None:
        raise UsernameTakenError("Username already exists")

    user = await uow.users_w.create(username, datetime.now(timezone.utc))
    if user is None:
        await uow.rollback()
        raise UsernameTakenError("Username already exists")
    await uow.commit()
    logger.info("Registered user %s (%d)", user.username, user.id)
    return user


async def login(username: str, uow: UnitOfWork, issuer: TokenIssuer) -> LoginResult:
    """Usernames are the only credential; the token binds later calls to the user id."""
    user = await get_by_username(username, uow)
    current = await connection_service.get_current_connection(user.id, uow)
    return LoginResult(user=user, access_token=issuer.issue(user), current=current)


async def get_by_username(username: str, uow: UnitOfWork) -> User:
    user = await uow.users.get_by_username(username)
    if user is None:
        raise UserNotFoundError("User not found")
    return user


async def get_by_id(user_id: int, uow: UnitOfWork) -> User:
    user = await uow.users.get_by_id(user_id)
    if user is None:
        raise UserNotFoundError("User not found")
    return user
