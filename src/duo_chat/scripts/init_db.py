"""Create the database schema: python -m duo_chat.scripts.init_db"""
from __future__ import annotations

import asyncio
import logging

from duo_chat.infrastructure.db import models  # noqa: F401
from duo_chat.infrastructure.db.base import Base
from duo_chat.infrastructure.db.session import engine

logger = logging.getLogger(__name__)


async def init_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    logger.info("Created %d tables", len(Base.metadata.tables))


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    asyncio.run(init_db())


if __name__ == "__main__":
    main()
