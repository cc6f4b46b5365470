"""Redis Pub/Sub publish side for integration events."""
from __future__ import annotations

from typing import Any

import redis.asyncio as aioredis

from duo_chat.infrastructure.bus.serializer import serialize_event


class RedisPubSubPublisher:
    def __init__(self, redis: aioredis.Redis, channel: str) -> None:
        self._redis = redis
        self._channel = channel

    async def publish(self, event_type: str, payload: dict[str, Any]) -> int:
        """Return the number of subscribers that received the event."""
        raw = serialize_event(event_type, payload)
        return await self._redis.publish(self._channel, raw)
