"""
Shared fixtures: a controllable clock, the in-memory store and a fake
persistent-store repository.
"""
from typing import Dict, List, Optional
from unittest.mock import AsyncMock

import pytest

from config.settings import Settings
from core.entities import (
    ANONYMOUS_DISPLAY_NAME,
    GUEST_DISPLAY_NAME,
    Gender,
    MatchRecord,
    UserProjection,
    is_guest_id,
)
from core.matchmaking import MatchmakingEngine
from core.memory_store import InMemoryPoolStore
from core.notifier import PendingMatchNotifier
from core.presence import PresenceTracker
from core.queue_store import shadow_key
from core.room_lifecycle import RoomLifecycle
from core.scorer import CompatibilityScorer


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRepository:
    """In-memory stand-in for MatchRepository."""

    def __init__(self):
        self.users: Dict[str, UserProjection] = {}
        self.interest_catalogue: List[str] = []
        self.matches: List[MatchRecord] = []
        self.fail_create = False
        self.fail_ping = False

    def add_user(
        self,
        user_id: str,
        gender: Gender = Gender.UNDISCLOSED,
        is_pro: bool = False,
        display_name: Optional[str] = None,
        interests=(),
    ) -> UserProjection:
        user = UserProjection(
            user_id=user_id,
            gender=gender,
            is_pro=is_pro,
            display_name=display_name or user_id.upper(),
            interests=list(interests),
        )
        self.users[user_id] = user
        return user

    async def get_projection(self, user_id: str, with_interests: bool = False) -> Optional[UserProjection]:
        if is_guest_id(user_id):
            return UserProjection.for_guest(user_id)
        user = self.users.get(user_id)
        if user is None:
            return None
        return UserProjection(
            user_id=user.user_id,
            gender=user.gender,
            is_pro=user.is_pro,
            display_name=user.display_name,
            interests=list(user.interests) if with_interests else [],
        )

    async def get_interest_tags(self, user_id: str) -> List[str]:
        user = self.users.get(user_id)
        return sorted(t.lower() for t in user.interests) if user else []

    async def get_display_name(self, user_id: str) -> str:
        if is_guest_id(user_id):
            return GUEST_DISPLAY_NAME
        user = self.users.get(user_id)
        return user.display_name if user else ANONYMOUS_DISPLAY_NAME

    async def list_interests(self) -> List[str]:
        return sorted(self.interest_catalogue)

    async def create_match(self, initiator_id: str, joiner_id: str, mode: str, room_id: str) -> MatchRecord:
        if self.fail_create:
            raise RuntimeError("database is down")
        record = MatchRecord(room_id=room_id, initiator_id=initiator_id, joiner_id=joiner_id, mode=mode)
        self.matches.append(record)
        return record

    async def find_match(self, room_id: str, participant_id: str) -> Optional[MatchRecord]:
        for record in self.matches:
            if record.room_id == room_id and record.partner_of(participant_id):
                return record
        return None

    async def ping(self) -> None:
        if self.fail_ping:
            raise RuntimeError("database is down")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryPoolStore(clock=clock)


@pytest.fixture
def repository():
    return FakeRepository()


@pytest.fixture
def test_settings():
    return Settings(ENVIRONMENT="production")


@pytest.fixture
def make_engine(store, repository, test_settings):
    """Build an engine around the shared store; collaborators can be overridden."""
    def _make(settings: Optional[Settings] = None, **overrides) -> MatchmakingEngine:
        settings = settings or test_settings
        presence = overrides.pop("presence", None) or PresenceTracker(store, settings)
        notifier = overrides.pop("notifier", None) or PendingMatchNotifier(store, settings)
        lifecycle = overrides.pop("lifecycle", None) or RoomLifecycle(store, notifier, presence, repository)
        return MatchmakingEngine(
            store=store,
            presence=presence,
            notifier=notifier,
            scorer=CompatibilityScorer(store, settings),
            repository=repository,
            lifecycle=lifecycle,
            settings=settings,
            sleep=overrides.pop("sleep", AsyncMock()),
        )
    return _make


@pytest.fixture
def engine(make_engine):
    return make_engine()


@pytest.fixture
def wait_in_queue(store, test_settings):
    """Put an online member at the tail of a queue, as a queued request would."""
    presence = PresenceTracker(store, test_settings)

    async def _wait(queue_key: str, member_id: str, ttl: int = 180) -> None:
        await presence.refresh(member_id)
        await store.set_with_expiry(shadow_key(queue_key, member_id), "1", ttl)
        await store.push_tail(queue_key, member_id)
    return _wait
