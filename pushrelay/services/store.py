"""Subscription store backed by Redis."""

import json
import logging

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from pushrelay.config import get_settings
from pushrelay.exceptions import InvalidSubscriptionData, StoreUnavailable
from pushrelay.models.subscription import SubscriptionRecord

logger = logging.getLogger(__name__)


def create_redis(redis_url: str | None = None) -> aioredis.Redis:
    """Create the process-wide async Redis client."""
    settings = get_settings()
    return aioredis.from_url(
        redis_url or settings.redis_url,
        decode_responses=True,
        socket_timeout=settings.redis_timeout_seconds,
        socket_connect_timeout=settings.redis_timeout_seconds,
    )


class SubscriptionStore:
    """get / set-with-TTL / delete over subscription records.

    Records expire on their own through the Redis TTL; ``delete`` is only
    used when the push provider rejects a token.
    """

    def __init__(self, redis_client: aioredis.Redis, key_prefix: str | None = None) -> None:
        self._redis = redis_client
        if key_prefix is None:
            key_prefix = get_settings().subscription_key_prefix
        self.key_prefix = key_prefix

    def _key(self, subscription_id: str) -> str:
        return f"{self.key_prefix}{subscription_id}"

    async def get(self, subscription_id: str) -> SubscriptionRecord | None:
        """Load a record, or None if it does not exist or has expired.

        Raises:
            InvalidSubscriptionData: if the stored value cannot be used.
            StoreUnavailable: if Redis cannot be reached.
        """
        try:
            raw = await self._redis.get(self._key(subscription_id))
        except RedisError as e:
            logger.error(f"Failed to read subscription {subscription_id}: {e}")
            raise StoreUnavailable("Subscription store is unavailable") from e

        if raw is None:
            return None

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise InvalidSubscriptionData("Subscription record is not valid JSON") from e

        record = SubscriptionRecord.from_stored(data)
        if record.id != subscription_id:
            raise InvalidSubscriptionData("Subscription record id does not match its key")
        return record

    async def set(self, record: SubscriptionRecord, ttl_seconds: int) -> None:
        """Persist a record with an expiry.

        Raises:
            StoreUnavailable: if Redis cannot be reached.
        """
        try:
            await self._redis.set(
                self._key(record.id), json.dumps(record.to_stored()), ex=ttl_seconds
            )
        except RedisError as e:
            logger.error(f"Failed to store subscription {record.id}: {e}")
            raise StoreUnavailable("Subscription store is unavailable") from e
        logger.debug(f"Stored subscription {record.id} for {ttl_seconds}s")

    async def delete(self, subscription_id: str) -> bool:
        """Remove a record. Deleting a missing record is not an error.

        Returns True if a record was removed.

        Raises:
            StoreUnavailable: if Redis cannot be reached.
        """
        try:
            removed = await self._redis.delete(self._key(subscription_id))
        except RedisError as e:
            logger.error(f"Failed to delete subscription {subscription_id}: {e}")
            raise StoreUnavailable("Subscription store is unavailable") from e
        return bool(removed)
