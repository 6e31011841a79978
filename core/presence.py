"""
Presence tracking.
Short-TTL liveness markers refreshed by heartbeats; absence means "not online".
"""
import logging
from typing import List, Optional

from config.settings import Settings, settings as default_settings
from core.entities import is_guest_id
from core.queue_store import WaitingPoolStore

logger = logging.getLogger(__name__)


class PresenceTracker:
    """Tracks which accounts and guests are currently online."""

    def __init__(self, store: WaitingPoolStore, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or default_settings
        self.presence_prefix = "presence"
        self.guest_presence_prefix = "guest:presence"

    def presence_key(self, identity_id: str) -> str:
        """Get store key for an identity's presence marker."""
        if is_guest_id(identity_id):
            return f"{self.guest_presence_prefix}:{identity_id}"
        return f"{self.presence_prefix}:{identity_id}"

    def default_ttl(self, identity_id: str) -> int:
        if is_guest_id(identity_id):
            return self.settings.GUEST_PRESENCE_TTL_SECONDS
        return self.settings.PRESENCE_TTL_SECONDS

    async def refresh(self, identity_id: str, ttl_seconds: Optional[int] = None) -> int:
        """Set or extend the presence marker. Returns the TTL applied."""
        ttl = ttl_seconds or self.default_ttl(identity_id)
        await self.store.set_with_expiry(self.presence_key(identity_id), "1", ttl)
        return ttl

    async def is_live(self, identity_id: str) -> bool:
        return await self.store.exists(self.presence_key(identity_id))

    async def are_live(self, identity_ids: List[str]) -> List[bool]:
        """Batched liveness check, one round trip for all ids."""
        keys = [self.presence_key(identity_id) for identity_id in identity_ids]
        return await self.store.exists_many(keys)

    async def clear(self, identity_id: str) -> None:
        await self.store.delete(self.presence_key(identity_id))
