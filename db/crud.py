"""
CRUD operations for database models.
Provides the reads and writes the matchmaking core needs: user projection,
declared interests, interest catalogue and match records.
"""
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_, and_

from db.models import User, Interest, UserInterest, Match


# ============= User CRUD =============

async def get_user_by_id(session: AsyncSession, user_id: str) -> Optional[User]:
    """Get user by ID."""
    result = await session.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


# ============= Interest CRUD =============

async def get_user_interest_tags(session: AsyncSession, user_id: str) -> List[str]:
    """
    Get the lower-cased interest tags a user currently declares.

    Args:
        session: Database session
        user_id: User ID

    Returns:
        Tags sorted by name, so queue scans have a stable order
    """
    result = await session.execute(
        select(Interest.name)
        .join(UserInterest, UserInterest.interest_id == Interest.id)
        .where(UserInterest.user_id == user_id)
        .order_by(Interest.name)
    )
    return [name.lower() for name in result.scalars().all()]


async def list_interest_names(session: AsyncSession) -> List[str]:
    """Get every interest name in the catalogue, alphabetically."""
    result = await session.execute(select(Interest.name).order_by(Interest.name.asc()))
    return list(result.scalars().all())


# ============= Match CRUD =============

async def create_match(
    session: AsyncSession,
    initiator_id: str,
    joiner_id: str,
    mode: str,
    room_id: str,
) -> Match:
    """Create a match record for a new pairing."""
    match = Match(initiator_id=initiator_id, joiner_id=joiner_id, mode=mode, room_id=room_id)
    session.add(match)
    await session.commit()
    await session.refresh(match)
    return match


async def get_match_for_participant(session: AsyncSession, room_id: str, participant_id: str) -> Optional[Match]:
    """Get the match record for a room, only if ``participant_id`` took part in it."""
    result = await session.execute(
        select(Match).where(
            and_(
                Match.room_id == room_id,
                or_(Match.initiator_id == participant_id, Match.joiner_id == participant_id),
            )
        )
    )
    return result.scalar_one_or_none()
