"""
Waiting pool store for the matchmaking core.
Thin queue-shaped wrapper over the ephemeral keyed store (Redis).

Every call is one round trip and atomic on its own; nothing here spans
several operations, so callers must tolerate interleavings.
"""
import logging
from contextlib import asynccontextmanager
from typing import Iterable, List, Optional, Set

import redis.asyncio as redis
from redis.exceptions import RedisError

from core.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)


RANDOM_QUEUE = "queue:random"
GUEST_QUEUE = "queue:guest"
INTEREST_QUEUE_PREFIX = "queue:interest"


def interest_queue_key(tag: str) -> str:
    """Interest queues are keyed by the lower-cased tag."""
    return f"{INTEREST_QUEUE_PREFIX}:{tag.strip().lower()}"


def shadow_key(queue_key: str, member_id: str) -> str:
    """Liveness shadow paired with a queue entry."""
    return f"{queue_key}:user:{member_id}"


def interests_key(member_id: str) -> str:
    """Mirror of a waiting party's interest tags, read by the scorer."""
    return f"user:interests:{member_id}"


def filter_key(member_id: str) -> str:
    """Gender filter a waiting paid party asked for."""
    return f"match:filter:{member_id}"


def _decode(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


class WaitingPoolStore:
    """Contract shared by the Redis and in-memory backends."""

    async def push_tail(self, key: str, value: str) -> int:
        raise NotImplementedError

    async def pop_head(self, key: str) -> Optional[str]:
        raise NotImplementedError

    async def remove_value(self, key: str, value: str) -> int:
        """Remove every occurrence of ``value`` from list ``key``."""
        raise NotImplementedError

    async def length(self, key: str) -> int:
        raise NotImplementedError

    async def set_with_expiry(self, key: str, value: str, ttl_seconds: int) -> None:
        raise NotImplementedError

    async def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    async def exists(self, key: str) -> bool:
        raise NotImplementedError

    async def delete(self, *keys: str) -> int:
        raise NotImplementedError

    async def exists_many(self, keys: List[str]) -> List[bool]:
        """Existence of several keys in a single round trip."""
        raise NotImplementedError

    async def get_many(self, keys: List[str]) -> List[Optional[str]]:
        raise NotImplementedError

    async def members_many(self, keys: List[str]) -> List[Set[str]]:
        """Members of several sets in a single round trip."""
        raise NotImplementedError

    async def replace_set(self, key: str, members: Iterable[str], ttl_seconds: int) -> None:
        raise NotImplementedError

    async def increment(self, key: str, ttl_seconds: int) -> int:
        """Increment a counter, starting its TTL on first increment."""
        raise NotImplementedError

    async def ping(self) -> bool:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class RedisPoolStore(WaitingPoolStore):
    """Redis-backed waiting pool store."""

    def __init__(self, redis_client: redis.Redis):
        """
        Initialize store with Redis client.

        Args:
            redis_client: Redis async client instance
        """
        self.redis = redis_client

    @asynccontextmanager
    async def _guard(self, operation: str):
        try:
            yield
        except RedisError as e:
            logger.warning(f"Redis {operation} failed: {e}")
            raise StoreUnavailableError(f"{operation} failed: {e}") from e

    async def push_tail(self, key: str, value: str) -> int:
        async with self._guard("RPUSH"):
            return await self.redis.rpush(key, value)

    async def pop_head(self, key: str) -> Optional[str]:
        async with self._guard("LPOP"):
            return _decode(await self.redis.lpop(key))

    async def remove_value(self, key: str, value: str) -> int:
        async with self._guard("LREM"):
            return await self.redis.lrem(key, 0, value)

    async def length(self, key: str) -> int:
        async with self._guard("LLEN"):
            return await self.redis.llen(key)

    async def set_with_expiry(self, key: str, value: str, ttl_seconds: int) -> None:
        async with self._guard("SET"):
            await self.redis.set(key, value, ex=ttl_seconds)

    async def get(self, key: str) -> Optional[str]:
        async with self._guard("GET"):
            return _decode(await self.redis.get(key))

    async def exists(self, key: str) -> bool:
        async with self._guard("EXISTS"):
            return bool(await self.redis.exists(key))

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        async with self._guard("DEL"):
            return await self.redis.delete(*keys)

    async def exists_many(self, keys: List[str]) -> List[bool]:
        if not keys:
            return []
        async with self._guard("pipelined EXISTS"):
            pipe = self.redis.pipeline(transaction=False)
            for key in keys:
                pipe.exists(key)
            results = await pipe.execute()
        return [bool(r) for r in results]

    async def get_many(self, keys: List[str]) -> List[Optional[str]]:
        if not keys:
            return []
        async with self._guard("pipelined GET"):
            pipe = self.redis.pipeline(transaction=False)
            for key in keys:
                pipe.get(key)
            results = await pipe.execute()
        return [_decode(r) for r in results]

    async def members_many(self, keys: List[str]) -> List[Set[str]]:
        if not keys:
            return []
        async with self._guard("pipelined SMEMBERS"):
            pipe = self.redis.pipeline(transaction=False)
            for key in keys:
                pipe.smembers(key)
            results = await pipe.execute()
        return [{_decode(m) for m in (members or ())} for members in results]

    async def replace_set(self, key: str, members: Iterable[str], ttl_seconds: int) -> None:
        members = list(members)
        async with self._guard("set replace"):
            pipe = self.redis.pipeline(transaction=True)
            pipe.delete(key)
            if members:
                pipe.sadd(key, *members)
                pipe.expire(key, ttl_seconds)
            await pipe.execute()

    async def increment(self, key: str, ttl_seconds: int) -> int:
        async with self._guard("INCR"):
            count = await self.redis.incr(key)
            if count == 1:
                await self.redis.expire(key, ttl_seconds)
            return count

    async def ping(self) -> bool:
        async with self._guard("PING"):
            return bool(await self.redis.ping())

    async def close(self) -> None:
        await self.redis.close()
