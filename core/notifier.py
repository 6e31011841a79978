"""
Pending-match notifier.
Short-TTL "you were matched into room X" markers read by polling clients.
"""
import logging
from typing import Optional

from config.settings import Settings, settings as default_settings
from core.entities import is_guest_id
from core.queue_store import WaitingPoolStore

logger = logging.getLogger(__name__)


class PendingMatchNotifier:
    """Writes and reads pending room assignments."""

    def __init__(self, store: WaitingPoolStore, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or default_settings
        self.pending_prefix = "match:pending"
        self.guest_pending_prefix = "guest:match:pending"

    def _get_pending_key(self, identity_id: str) -> str:
        if is_guest_id(identity_id):
            return f"{self.guest_pending_prefix}:{identity_id}"
        return f"{self.pending_prefix}:{identity_id}"

    async def set_pending(self, identity_id: str, room_id: str, ttl_seconds: Optional[int] = None) -> None:
        ttl = ttl_seconds or self.settings.PENDING_TTL_SECONDS
        await self.store.set_with_expiry(self._get_pending_key(identity_id), room_id, ttl)

    async def get_pending(self, identity_id: str) -> Optional[str]:
        return await self.store.get(self._get_pending_key(identity_id))

    async def clear_pending(self, identity_id: str) -> None:
        await self.store.delete(self._get_pending_key(identity_id))
