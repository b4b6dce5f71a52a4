import json
from typing import Protocol

import redis.asyncio as redis

from proximity_notifier.core.logging import logger


class StaleTokenSignal(Protocol):
    async def publish(self, user_id: str, push_destination: str, event_id: str, reason: str) -> None:
        ...


class RedisStaleTokenPublisher:
    """Tells the profile subsystem a push token is dead; it owns clearing it."""

    def __init__(self, redis_client: redis.Redis, channel: str = "push_tokens.stale"):
        self._redis = redis_client
        self._channel = channel

    async def publish(self, user_id: str, push_destination: str, event_id: str, reason: str) -> None:
        payload = json.dumps({
            "user_id": user_id,
            "push_destination": push_destination,
            "event_id": event_id,
            "reason": reason,
        })
        await self._redis.publish(self._channel, payload)
        logger.info("Stale push token signalled", user_id=user_id, reason=reason, channel=self._channel)
