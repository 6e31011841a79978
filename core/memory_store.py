"""
In-memory waiting pool store.

Designed for single-process setups and tests: mirrors the Redis store's
list, string and set semantics, including key expiry, without a server.
Expired keys are dropped lazily when touched.
"""
import time
from collections import deque
from typing import Callable, Deque, Dict, Iterable, List, Optional, Set, Tuple

from core.queue_store import WaitingPoolStore


class InMemoryPoolStore(WaitingPoolStore):
    """In-memory implementation of the waiting pool contract."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lists: Dict[str, Deque[str]] = {}
        # key -> (value, expires_at or None)
        self._values: Dict[str, Tuple[str, Optional[float]]] = {}
        self._sets: Dict[str, Tuple[Set[str], Optional[float]]] = {}

    def _expired(self, expires_at: Optional[float]) -> bool:
        return expires_at is not None and self._clock() >= expires_at

    def _value(self, key: str) -> Optional[str]:
        entry = self._values.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._expired(expires_at):
            del self._values[key]
            return None
        return value

    def _set(self, key: str) -> Optional[Set[str]]:
        entry = self._sets.get(key)
        if entry is None:
            return None
        members, expires_at = entry
        if self._expired(expires_at):
            del self._sets[key]
            return None
        return members

    def ttl(self, key: str) -> Optional[float]:
        """Remaining TTL of a string key (test helper); None when absent or persistent."""
        if self._value(key) is None:
            return None
        expires_at = self._values[key][1]
        return None if expires_at is None else expires_at - self._clock()

    def list_items(self, key: str) -> List[str]:
        """Snapshot of a queue (test helper)."""
        return list(self._lists.get(key, ()))

    async def push_tail(self, key: str, value: str) -> int:
        queue = self._lists.setdefault(key, deque())
        queue.append(value)
        return len(queue)

    async def pop_head(self, key: str) -> Optional[str]:
        queue = self._lists.get(key)
        if not queue:
            return None
        value = queue.popleft()
        if not queue:
            del self._lists[key]
        return value

    async def remove_value(self, key: str, value: str) -> int:
        queue = self._lists.get(key)
        if not queue:
            return 0
        kept = deque(item for item in queue if item != value)
        removed = len(queue) - len(kept)
        if kept:
            self._lists[key] = kept
        else:
            del self._lists[key]
        return removed

    async def length(self, key: str) -> int:
        return len(self._lists.get(key, ()))

    async def set_with_expiry(self, key: str, value: str, ttl_seconds: int) -> None:
        self._values[key] = (str(value), self._clock() + ttl_seconds)

    async def get(self, key: str) -> Optional[str]:
        return self._value(key)

    async def exists(self, key: str) -> bool:
        return (
            self._value(key) is not None
            or self._set(key) is not None
            or bool(self._lists.get(key))
        )

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            live = await self.exists(key)
            self._values.pop(key, None)
            self._sets.pop(key, None)
            self._lists.pop(key, None)
            removed += int(live)
        return removed

    async def exists_many(self, keys: List[str]) -> List[bool]:
        return [await self.exists(key) for key in keys]

    async def get_many(self, keys: List[str]) -> List[Optional[str]]:
        return [self._value(key) for key in keys]

    async def members_many(self, keys: List[str]) -> List[Set[str]]:
        return [set(self._set(key) or ()) for key in keys]

    async def replace_set(self, key: str, members: Iterable[str], ttl_seconds: int) -> None:
        members = set(members)
        if not members:
            self._sets.pop(key, None)
            return
        self._sets[key] = (members, self._clock() + ttl_seconds)

    async def increment(self, key: str, ttl_seconds: int) -> int:
        current = self._value(key)
        if current is None:
            self._values[key] = ("1", self._clock() + ttl_seconds)
            return 1
        count = int(current) + 1
        self._values[key] = (str(count), self._values[key][1])
        return count

    async def ping(self) -> bool:
        return True
