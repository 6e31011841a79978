"""
Persistent-store boundary for the matchmaking core.
Opens a session per call and maps rows to core value types.
"""
import logging
from typing import List, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.entities import (
    ANONYMOUS_DISPLAY_NAME,
    GUEST_DISPLAY_NAME,
    MatchRecord,
    UserProjection,
    is_guest_id,
    normalize_gender,
)
from db.crud import (
    create_match,
    get_match_for_participant,
    get_user_by_id,
    get_user_interest_tags,
    list_interest_names,
)

logger = logging.getLogger(__name__)


class MatchRepository:
    """Reads user projections and writes match records."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_projection(self, user_id: str, with_interests: bool = False) -> Optional[UserProjection]:
        """
        Load the matchmaking projection of a user.

        Args:
            user_id: User ID
            with_interests: Also load declared interest tags

        Returns:
            UserProjection, or None when the user does not exist
        """
        if is_guest_id(user_id):
            return UserProjection.for_guest(user_id)
        async with self.session_factory() as session:
            user = await get_user_by_id(session, user_id)
            if not user:
                return None
            interests = await get_user_interest_tags(session, user_id) if with_interests else []
        return UserProjection(
            user_id=user.id,
            gender=normalize_gender(user.gender),
            is_pro=bool(user.is_pro),
            display_name=user.display_name or user.name or ANONYMOUS_DISPLAY_NAME,
            interests=interests,
        )

    async def get_interest_tags(self, user_id: str) -> List[str]:
        if is_guest_id(user_id):
            return []
        async with self.session_factory() as session:
            return await get_user_interest_tags(session, user_id)

    async def get_display_name(self, user_id: str) -> str:
        if is_guest_id(user_id):
            return GUEST_DISPLAY_NAME
        projection = await self.get_projection(user_id)
        return projection.display_name if projection else ANONYMOUS_DISPLAY_NAME

    async def list_interests(self) -> List[str]:
        async with self.session_factory() as session:
            return await list_interest_names(session)

    async def create_match(self, initiator_id: str, joiner_id: str, mode: str, room_id: str) -> MatchRecord:
        async with self.session_factory() as session:
            match = await create_match(session, initiator_id, joiner_id, mode, room_id)
        return MatchRecord(
            room_id=match.room_id,
            initiator_id=match.initiator_id,
            joiner_id=match.joiner_id,
            mode=match.mode,
        )

    async def find_match(self, room_id: str, participant_id: str) -> Optional[MatchRecord]:
        async with self.session_factory() as session:
            match = await get_match_for_participant(session, room_id, participant_id)
        if not match:
            return None
        return MatchRecord(
            room_id=match.room_id,
            initiator_id=match.initiator_id,
            joiner_id=match.joiner_id,
            mode=match.mode,
        )

    async def ping(self) -> None:
        async with self.session_factory() as session:
            await session.execute(text("SELECT 1"))
