"""Seed development data: two users, alice and bob, ready to connect."""
from __future__ import annotations

import asyncio
import logging

from duo_chat.application.exceptions import UsernameTakenError
from duo_chat.infrastructure.db.uow import sqlalchemy_uow
from duo_chat.services import user_service

logger = logging.getLogger(__name__)

DEV_USERNAMES = ("alice", "bob")


async def seed() -> None:
    for username in DEV_USERNAMES:
        async with sqlalchemy_uow() as uow:
            try:
                user = await user_service.register(username, uow)
            except UsernameTakenError:
                logger.info("User %s already exists", username)
                continue
        logger.info("Seeded user %s (%d)", user.username, user.id)


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    asyncio.run(seed())


if __name__ == "__main__":
    main()
