"""Outbox worker: polls pending outbox records, publishes via Redis Pub/Sub.

Run with ``python -m duo_chat.workers.outbox_worker``.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone

import redis.asyncio as aioredis

from duo_chat.application.uow import UnitOfWork, UoWFactory
from duo_chat.config import settings
from duo_chat.infrastructure.bus.redis_pubsub import RedisPubSubPublisher
from duo_chat.infrastructure.db.uow import sqlalchemy_uow

logger = logging.getLogger(__name__)

BASE_DELAY_SECONDS = 5
MAX_DELAY_SECONDS = 300


def calc_backoff(attempts: int, now: datetime | None = None) -> datetime:
    delay = min(BASE_DELAY_SECONDS * (2 ** attempts), MAX_DELAY_SECONDS)
    return (now or datetime.now(timezone.utc)) + timedelta(seconds=delay)


async def run_outbox_worker() -> None:
    redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    publisher = RedisPubSubPublisher(redis, settings.REDIS_EVENTS_CHANNEL)

    logger.info(
        "Outbox worker started (channel=%s, poll=%.1fs, batch=%d, max_attempts=%d)",
        settings.REDIS_EVENTS_CHANNEL,
        settings.OUTBOX_POLL_INTERVAL,
        settings.OUTBOX_BATCH_SIZE,
        settings.OUTBOX_MAX_ATTEMPTS,
    )

    try:
        while True:
            try:
                await process_batch(publisher, sqlalchemy_uow)
            except Exception:
                logger.exception("Outbox worker loop error")
            await asyncio.sleep(settings.OUTBOX_POLL_INTERVAL)
    finally:
        await redis.aclose()


async def process_batch(publisher: RedisPubSubPublisher, uow_factory: UoWFactory) -> int:
    """Publish one batch of due records; return how many went out."""
    async with uow_factory() as uow:
        return await _publish_due(publisher, uow)


async def _publish_due(publisher: RedisPubSubPublisher, uow: UnitOfWork) -> int:
    now = datetime.now(timezone.utc)
    batch = await uow.outbox.fetch_pending(
        settings.OUTBOX_BATCH_SIZE, now, settings.OUTBOX_MAX_ATTEMPTS,
    )
    if not batch:
        return 0

    sent_ids: list[int] = []
    for record in batch:
        try:
            await publisher.publish(record.event_type, record.payload)
            sent_ids.append(record.id)
        except Exception:
            logger.exception("Failed to publish outbox record %d", record.id)
            await uow.outbox.mark_failed(record.id, calc_backoff(record.attempts, now))
            if record.attempts + 1 >= settings.OUTBOX_MAX_ATTEMPTS:
                logger.warning("Outbox record %d exceeded max attempts, giving up", record.id)

    if sent_ids:
        await uow.outbox.mark_sent(sent_ids)

    await uow.commit()
    if sent_ids:
        logger.info("Published %d outbox records", len(sent_ids))
    return len(sent_ids)


def main() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(run_outbox_worker())


if __name__ == "__main__":
    main()
