from typing import Dict, Mapping, Optional

import redis.asyncio as redis
import structlog

from error_handling.errors import StoreUnavailableError

logger = structlog.get_logger()


class RedisManager:
    def __init__(self, redis_url: str, client: Optional[redis.Redis] = None):
        """Initialize Redis manager with a connection URL or a ready client."""
        self.redis_url = redis_url
        self.redis: Optional[redis.Redis] = client

    async def connect(self) -> None:
        """Establish connection to Redis."""
        try:
            self.redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True
            )
            await self.redis.ping()
            logger.info("redis_connection_established")
        except redis.RedisError as e:
            logger.error("redis_connection_failed", error=str(e))
            self.redis = None
            raise StoreUnavailableError(f"cannot connect to redis: {e}") from e

    async def disconnect(self) -> None:
        """Close Redis connection."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            logger.info("redis_connection_closed")

    async def hgetall(self, key: str) -> Dict[str, str]:
        """Read a whole hash; a missing key reads as empty."""
        try:
            if not self.redis:
                await self.connect()
            return dict(await self.redis.hgetall(key) or {})
        except redis.RedisError as e:
            logger.error("redis_hgetall_failed", key=key, error=str(e))
            raise StoreUnavailableError(f"cannot read {key}: {e}") from e

    async def hset_many(self, key: str, mapping: Mapping[str, str]) -> None:
        """Write several hash fields in one command."""
        if not mapping:
            return
        try:
            if not self.redis:
                await self.connect()
            await self.redis.hset(key, mapping=dict(mapping))
        except redis.RedisError as e:
            logger.error("redis_hset_failed", key=key, error=str(e))
            raise StoreUnavailableError(f"cannot write {key}: {e}") from e
