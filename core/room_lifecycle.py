"""
Room lifecycle cleanup.

One idempotent ``cleanup`` used by every trigger site: explicit leave or
skip, queue timeout, transport disconnect, page-unload beacon, and the
start of a new match request. Each step is best-effort; a failing step is
logged and the remaining steps still run.
"""
import logging
from typing import Iterable, List, Optional

from core.entities import is_guest_id
from core.notifier import PendingMatchNotifier
from core.presence import PresenceTracker
from core.queue_store import (
    GUEST_QUEUE,
    RANDOM_QUEUE,
    WaitingPoolStore,
    filter_key,
    interest_queue_key,
    interests_key,
    shadow_key,
)
from core.scorer import normalize_tags

logger = logging.getLogger(__name__)


class RoomLifecycle:
    """Removes an identity from every waiting pool and pending hand-off."""

    def __init__(
        self,
        store: WaitingPoolStore,
        notifier: PendingMatchNotifier,
        presence: PresenceTracker,
        repository=None,
    ):
        self.store = store
        self.notifier = notifier
        self.presence = presence
        self.repository = repository

    async def _current_interests(self, identity_id: str) -> List[str]:
        if is_guest_id(identity_id) or self.repository is None:
            return []
        try:
            return await self.repository.get_interest_tags(identity_id)
        except Exception as e:
            logger.warning(f"Could not load interests of {identity_id} for cleanup: {e}")
            return []

    async def _queued_interests(self, identity_id: str) -> List[str]:
        """Tags the identity was actually queued under, from its interest mirror."""
        if is_guest_id(identity_id):
            return []
        try:
            [members] = await self.store.members_many([interests_key(identity_id)])
        except Exception as e:
            logger.warning(f"Could not read queued interests of {identity_id}: {e}")
            return []
        return sorted(members)

    def _queue_keys(self, identity_id: str, interest_tags: Iterable[str]) -> List[str]:
        keys = [RANDOM_QUEUE]
        if is_guest_id(identity_id):
            keys.append(GUEST_QUEUE)
        keys.extend(interest_queue_key(tag) for tag in normalize_tags(interest_tags))
        return keys

    async def cleanup(
        self,
        identity_id: Optional[str],
        interest_tags: Optional[Iterable[str]] = None,
        clear_pending: bool = True,
        clear_presence: bool = False,
    ) -> bool:
        """
        Remove an identity from all queues, shadow keys and its pending marker.

        Args:
            identity_id: Account or guest id; None is ignored
            interest_tags: Current interests; loaded from the persistent store when omitted.
                Tags from the interest mirror are always added.
            clear_pending: Also drop any pending room assignment
            clear_presence: Also drop the presence marker (disconnects)

        Returns:
            True if every step succeeded
        """
        if not identity_id:
            return True

        if interest_tags is None:
            interest_tags = await self._current_interests(identity_id)
        # Mirror tags cover queues joined under an older profile
        interest_tags = list(interest_tags) + await self._queued_interests(identity_id)

        ok = True
        for queue_key in self._queue_keys(identity_id, interest_tags):
            try:
                await self.store.remove_value(queue_key, identity_id)
                await self.store.delete(shadow_key(queue_key, identity_id))
            except Exception as e:
                ok = False
                logger.warning(f"Failed to remove {identity_id} from {queue_key}: {e}")

        extra_keys = [interests_key(identity_id), filter_key(identity_id)]
        try:
            await self.store.delete(*extra_keys)
        except Exception as e:
            ok = False
            logger.warning(f"Failed to drop queue metadata of {identity_id}: {e}")

        if clear_pending:
            try:
                await self.notifier.clear_pending(identity_id)
            except Exception as e:
                ok = False
                logger.warning(f"Failed to clear pending match of {identity_id}: {e}")

        if clear_presence:
            try:
                await self.presence.clear(identity_id)
            except Exception as e:
                ok = False
                logger.warning(f"Failed to clear presence of {identity_id}: {e}")

        logger.info(f"Cleaned up {identity_id} from all queues/pending (complete={ok})")
        return ok
