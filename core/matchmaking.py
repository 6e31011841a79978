"""
Matchmaking engine for anonymous chat.

Each match request runs START -> SCANNING -> MATCHED | QUEUED on its own.
There is no lock across requests: a pop consumes an entry, and a candidate
that is popped but not chosen is pushed back to the tail of its queue. A
failed push-back loses that candidate from the queue until it requests
again, which is accepted.
"""
import asyncio
import enum
import logging
from typing import Awaitable, Callable, List, Optional, Set, Tuple

from config.settings import Settings, settings as default_settings
from core.entities import (
    GenderFilter,
    MatchMode,
    MatchRequest,
    MatchResult,
    PendingMatch,
    UserProjection,
    filter_accepts,
    is_guest_id,
    new_room_id,
    normalize_filter,
)
from core.exceptions import InvalidMatchRequest
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
from core.room_lifecycle import RoomLifecycle
from core.scorer import CompatibilityScorer, normalize_tags

logger = logging.getLogger(__name__)


class _Verdict(enum.Enum):
    ACCEPT = "accept"
    STALE = "stale"  # shadow key expired
    SELF = "self"
    OFFLINE = "offline"  # presence marker expired
    UNKNOWN = "unknown"  # no such user
    FILTERED = "filtered"
    RETRY = "retry"  # persistent store read failed


# Popped and rejected candidates go back to the tail; everything else is dropped.
_REPUSH = {_Verdict.FILTERED, _Verdict.RETRY}


def parse_mode(raw) -> MatchMode:
    """Parse a requested mode, raising InvalidMatchRequest for unknown values."""
    if isinstance(raw, MatchMode):
        return raw
    if raw is None:
        return MatchMode.RANDOM
    try:
        return MatchMode(str(raw).strip().lower())
    except ValueError:
        raise InvalidMatchRequest(f"Unsupported match mode: {raw}")


class MatchmakingEngine:
    """Pairs requesters with waiting candidates or queues them."""

    def __init__(
        self,
        store: WaitingPoolStore,
        presence: PresenceTracker,
        notifier: PendingMatchNotifier,
        scorer: CompatibilityScorer,
        repository,
        lifecycle: RoomLifecycle,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the engine with its collaborators.

        Args:
            store: Waiting pool store holding queues and shadow keys
            presence: Presence tracker
            notifier: Pending-match notifier
            scorer: Interest compatibility scorer
            repository: Persistent store boundary (projections, match records)
            lifecycle: Cleanup used before every new request and on candidate retirement
            settings: Settings; the global instance when omitted
            sleep: Backoff used between pending-marker retries
        """
        self.store = store
        self.presence = presence
        self.notifier = notifier
        self.scorer = scorer
        self.repository = repository
        self.lifecycle = lifecycle
        self.settings = settings or default_settings
        self._sleep = sleep

    def _queue_ttl(self, identity_id: str) -> int:
        if is_guest_id(identity_id):
            return self.settings.GUEST_QUEUE_TTL_SECONDS
        return self.settings.QUEUE_TTL_SECONDS

    async def request_match(self, request: MatchRequest) -> MatchResult:
        """
        Handle one match request.

        Args:
            request: Requester id, mode and requested gender filter

        Returns:
            MatchResult with the room and partner, or a queued result

        Raises:
            InvalidMatchRequest: bad mode, unknown user, or interest mode without interests
            StoreUnavailableError: the ephemeral store is unreachable
        """
        requester_id = request.requester_id
        mode = parse_mode(request.mode)
        if is_guest_id(requester_id):
            mode = MatchMode.RANDOM

        requester = await self.repository.get_projection(
            requester_id, with_interests=mode == MatchMode.INTEREST
        )
        if requester is None:
            raise InvalidMatchRequest(f"Unknown user: {requester_id}")

        tags = sorted(normalize_tags(requester.interests))
        if mode == MatchMode.INTEREST and not tags:
            raise InvalidMatchRequest("Interest matching needs at least one declared interest")

        # Unpaid accounts and guests never filter by gender
        gender_filter = normalize_filter(request.gender_filter) if requester.is_pro else GenderFilter.ANY

        await self.presence.refresh(requester_id)
        await self.lifecycle.cleanup(
            requester_id,
            interest_tags=tags if mode == MatchMode.INTEREST else None,
        )

        if mode == MatchMode.INTEREST:
            candidate = await self._scan_interests(requester, gender_filter, tags)
        elif requester.is_guest:
            candidate = await self._scan_queue(
                requester, gender_filter, GUEST_QUEUE, self.settings.GUEST_SCAN_LIMIT
            )
            if candidate is None:
                candidate = await self._scan_queue(
                    requester, gender_filter, RANDOM_QUEUE, self.settings.GUEST_RANDOM_SCAN_LIMIT
                )
        else:
            candidate = await self._scan_queue(
                requester, gender_filter, RANDOM_QUEUE, self.settings.RANDOM_SCAN_LIMIT
            )
            # Guests are UNDISCLOSED, so only an unfiltered requester may take one
            if candidate is None and gender_filter == GenderFilter.ANY:
                candidate = await self._scan_queue(
                    requester, gender_filter, GUEST_QUEUE, self.settings.GUEST_SCAN_LIMIT
                )

        if candidate is not None:
            return await self._commit_pairing(requester, candidate, mode)

        await self._enqueue(requester, mode, tags, gender_filter)
        return MatchResult.waiting()

    async def _vet(
        self,
        requester: UserProjection,
        gender_filter: GenderFilter,
        queue_key: str,
        candidate_id: str,
    ) -> Tuple[_Verdict, Optional[UserProjection]]:
        """Run the stale, self, presence and filter checks on a popped candidate."""
        if candidate_id == requester.user_id and not self.settings.self_match_allowed:
            return _Verdict.SELF, None

        shadow, their_filter, online = await self.store.get_many([
            shadow_key(queue_key, candidate_id),
            filter_key(candidate_id),
            self.presence.presence_key(candidate_id),
        ])
        if shadow is None:
            return _Verdict.STALE, None
        if online is None:
            return _Verdict.OFFLINE, None

        try:
            candidate = await self.repository.get_projection(candidate_id)
        except Exception as e:
            logger.warning(f"Could not load candidate {candidate_id}: {e}")
            return _Verdict.RETRY, None
        if candidate is None:
            return _Verdict.UNKNOWN, None

        if not filter_accepts(gender_filter, candidate.gender):
            return _Verdict.FILTERED, candidate
        # A waiting paid candidate's own filter applies to whoever pops it
        if not filter_accepts(normalize_filter(their_filter), requester.gender):
            return _Verdict.FILTERED, candidate

        return _Verdict.ACCEPT, candidate

    async def _repush(self, queue_key: str, candidate_id: str) -> None:
        try:
            await self.store.push_tail(queue_key, candidate_id)
        except Exception as e:
            logger.warning(f"Lost candidate {candidate_id} from {queue_key}, re-push failed: {e}")

    async def _scan_queue(
        self,
        requester: UserProjection,
        gender_filter: GenderFilter,
        queue_key: str,
        limit: int,
    ) -> Optional[UserProjection]:
        """
        Pop candidates from one queue until one passes every check.

        Stops when the queue is empty or after ``limit`` pops, and never pops
        more entries than the queue held when the scan started. A duplicate
        entry of a candidate rejected earlier in this pass is re-pushed
        without being checked again.
        """
        budget = min(limit, await self.store.length(queue_key))
        rejected: Set[str] = set()
        for _ in range(budget):
            candidate_id = await self.store.pop_head(queue_key)
            if candidate_id is None:
                return None
            if candidate_id in rejected:
                await self._repush(queue_key, candidate_id)
                continue

            verdict, candidate = await self._vet(requester, gender_filter, queue_key, candidate_id)
            if verdict == _Verdict.ACCEPT:
                return candidate

            logger.debug(f"{requester.user_id} skipped {candidate_id} from {queue_key}: {verdict.value}")
            if verdict in _REPUSH:
                rejected.add(candidate_id)
                await self._repush(queue_key, candidate_id)

        logger.debug(f"Scan of {queue_key} for {requester.user_id} ended after {budget} pops")
        return None

    async def _scan_interests(
        self,
        requester: UserProjection,
        gender_filter: GenderFilter,
        tags: List[str],
    ) -> Optional[UserProjection]:
        """
        Pop one candidate per interest queue and keep the most compatible one.

        Every popped candidate that passes the checks but does not win goes back
        to the tail of the queue it came from.
        """
        valid: List[Tuple[str, UserProjection]] = []
        duplicates: List[Tuple[str, str]] = []
        seen: Set[str] = set()

        for tag in tags:
            queue_key = interest_queue_key(tag)
            candidate_id = await self.store.pop_head(queue_key)
            if candidate_id is None:
                continue

            if candidate_id in seen:
                duplicates.append((queue_key, candidate_id))
                continue

            verdict, candidate = await self._vet(requester, gender_filter, queue_key, candidate_id)
            if verdict == _Verdict.ACCEPT:
                seen.add(candidate_id)
                valid.append((queue_key, candidate))
                continue

            logger.debug(f"{requester.user_id} skipped {candidate_id} from {queue_key}: {verdict.value}")
            if verdict in _REPUSH:
                await self._repush(queue_key, candidate_id)

        winner_id = None
        if valid:
            best = await self.scorer.pick_best(
                requester.user_id, tags, [candidate.user_id for _, candidate in valid]
            )
            if best is not None:
                winner_id = best.candidate_id
                logger.debug(
                    f"{requester.user_id} best interest candidate {winner_id}: "
                    f"score={best.similarity.score:.3f} shared={best.similarity.shared}"
                )

        winner = None
        for queue_key, candidate in valid:
            if candidate.user_id == winner_id and winner is None:
                winner = candidate
            else:
                await self._repush(queue_key, candidate.user_id)
        for queue_key, candidate_id in duplicates:
            if candidate_id != winner_id:
                await self._repush(queue_key, candidate_id)

        return winner

    async def _notify_partner(self, partner_id: str, room_id: str) -> bool:
        attempts = self.settings.PENDING_WRITE_RETRIES + 1
        for attempt in range(1, attempts + 1):
            try:
                await self.notifier.set_pending(partner_id, room_id)
                return True
            except Exception as e:
                logger.warning(f"Pending marker for {partner_id} failed (attempt {attempt}/{attempts}): {e}")
                if attempt < attempts:
                    await self._sleep(0.05 * attempt)
        logger.error(f"Partner {partner_id} was not notified of room {room_id}; it will time out and re-queue")
        return False

    async def _commit_pairing(
        self,
        requester: UserProjection,
        candidate: UserProjection,
        mode: MatchMode,
    ) -> MatchResult:
        room_id = new_room_id(requester.is_guest, candidate.is_guest)

        try:
            await self.repository.create_match(requester.user_id, candidate.user_id, mode.value, room_id)
        except Exception as e:
            logger.error(f"Failed to record match {room_id}: {e}", exc_info=True)

        try:
            await self.notifier.set_pending(requester.user_id, room_id)
        except Exception as e:
            logger.warning(f"Pending marker for requester {requester.user_id} failed: {e}")

        await self._notify_partner(candidate.user_id, room_id)

        # Keep the partner's fresh pending marker; drop its other queue entries
        await self.lifecycle.cleanup(candidate.user_id, clear_pending=False)

        logger.info(
            f"Matched {requester.user_id} with {candidate.user_id} in room {room_id} (mode={mode.value})"
        )
        return MatchResult(
            queued=False,
            room_id=room_id,
            partner_id=candidate.user_id,
            partner_display_name=candidate.display_name,
        )

    async def _enqueue(
        self,
        requester: UserProjection,
        mode: MatchMode,
        tags: List[str],
        gender_filter: GenderFilter,
    ) -> None:
        requester_id = requester.user_id
        ttl = self._queue_ttl(requester_id)

        if requester.is_guest:
            queue_keys = [GUEST_QUEUE, RANDOM_QUEUE]
        elif mode == MatchMode.INTEREST:
            queue_keys = [interest_queue_key(tag) for tag in tags]
            await self.store.replace_set(interests_key(requester_id), tags, ttl)
        else:
            queue_keys = [RANDOM_QUEUE]

        if gender_filter != GenderFilter.ANY:
            await self.store.set_with_expiry(filter_key(requester_id), gender_filter.value, ttl)

        for queue_key in queue_keys:
            # Shadow first, so a popped entry is never mistaken for stale
            await self.store.set_with_expiry(shadow_key(queue_key, requester_id), "1", ttl)
            await self.store.push_tail(queue_key, requester_id)

        logger.info(f"Queued {requester_id} in {', '.join(queue_keys)} (mode={mode.value}, filter={gender_filter.value})")

    async def pending(self, identity_id: str) -> PendingMatch:
        """
        Resolve the pending room of a queued identity.

        Args:
            identity_id: Account or guest id

        Returns:
            PendingMatch; room_id is None when nothing is pending
        """
        room_id = await self.notifier.get_pending(identity_id)
        if not room_id:
            return PendingMatch()

        partner_id = None
        partner_name = None
        try:
            record = await self.repository.find_match(room_id, identity_id)
            if record:
                partner_id = record.partner_of(identity_id)
                partner_name = await self.repository.get_display_name(partner_id)
        except Exception as e:
            logger.warning(f"Could not resolve partner of {identity_id} in room {room_id}: {e}")

        return PendingMatch(room_id=room_id, partner_id=partner_id, partner_display_name=partner_name)

    async def leave(self, identity_id: str, clear_presence: bool = False) -> None:
        """Leave, skip or give up waiting; never raises."""
        await self.lifecycle.cleanup(identity_id, clear_presence=clear_presence)
