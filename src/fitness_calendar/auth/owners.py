"""Owner resolution.

Calendar events belong to internal profile ids. Callers identify users by
platform id: numeric ids already are profile ids and pass through; anything
else is looked up through an `OwnerResolver`.
"""

from __future__ import annotations

from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fitness_calendar.database.models import UserProfile
from fitness_calendar.exceptions import NotFound


class OwnerResolver(Protocol):
    """Maps a platform user id to an internal profile id."""

    async def resolve_owner_id(self, user_id: str) -> int:
        """Raises NotFound if the user has no profile."""
        ...


class ProfileOwnerResolver:
    """Resolves owners from the `user_profiles` table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve_owner_id(self, user_id: str) -> int:
        result = await self.db.execute(
            select(UserProfile.id).where(UserProfile.platform_user_id == user_id)
        )
        owner_id = result.scalar_one_or_none()
        if owner_id is None:
            raise NotFound(f"No profile for user {user_id}")
        return owner_id


async def resolve_owner(resolver: OwnerResolver, user_id: str | int) -> int:
    """Resolve `user_id` to an owner id, passing numeric ids through."""
    if isinstance(user_id, int):
        return user_id
    if user_id.isdigit():
        return int(user_id)
    return await resolver.resolve_owner_id(user_id)
