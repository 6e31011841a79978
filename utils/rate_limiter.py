"""
Store-backed rate limiting utility.
Prevents abuse by limiting the number of actions per identity per time window.
"""
from typing import Optional

from config.settings import Settings, settings as default_settings
from core.queue_store import WaitingPoolStore


class RateLimiter:
    """Fixed-window rate limiter on top of the ephemeral store."""

    def __init__(self, store: WaitingPoolStore):
        """
        Initialize rate limiter with the ephemeral store.

        Args:
            store: Waiting pool store (Redis or in-memory)
        """
        self.store = store

    async def check_rate_limit(
        self,
        key: str,
        limit: int,
        window_seconds: int = 60
    ) -> tuple[bool, int]:
        """
        Check if an action is allowed based on rate limit.

        The window starts with the first counted action and expires with the key.

        Args:
            key: Unique identifier for rate limiting (e.g., f"rate:{user_id}")
            limit: Maximum number of actions allowed
            window_seconds: Time window in seconds

        Returns:
            Tuple of (is_allowed, remaining_requests)
        """
        count = await self.store.increment(key, window_seconds)
        if count > limit:
            return False, 0
        return True, limit - count


class MessageRateLimiter(RateLimiter):
    """Rate limiter specifically for chat messages."""

    def __init__(self, store: WaitingPoolStore, settings: Optional[Settings] = None):
        super().__init__(store)
        self.settings = settings or default_settings

    async def check_message_limit(self, identity_id: str) -> tuple[bool, int]:
        """
        Check if an identity can send a message based on rate limit.

        Args:
            identity_id: Account or guest id

        Returns:
            Tuple of (is_allowed, remaining_messages)
        """
        key = f"rate:{identity_id}"
        return await self.check_rate_limit(
            key,
            self.settings.RATE_LIMIT_MESSAGES,
            window_seconds=self.settings.RATE_LIMIT_WINDOW_SECONDS
        )
