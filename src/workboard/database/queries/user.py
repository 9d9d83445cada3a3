"""User lookup query functions for Workboard.

Users are owned by the external authentication system; these functions only
read them.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workboard.database.models.user import User


async def get_user(session: AsyncSession, user_id: UUID) -> User | None:
    """Retrieve a user by ID.

    Args:
        session: Active async database session.
        user_id: UUID of the user.

    Returns:
        The User instance if found, None otherwise.
    """
    stmt = select(User).where(User.id == user_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_users(session: AsyncSession, user_ids: Iterable[UUID]) -> list[User]:
    """Retrieve the users matching the given IDs; unknown IDs are skipped."""
    ids = list(dict.fromkeys(user_ids))
    if not ids:
        return []
    stmt = select(User).where(User.id.in_(ids))
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_user_name(session: AsyncSession, user_id: UUID) -> str:
    """Display name for messages, falling back to a generic label."""
    user = await get_user(session, user_id)
    return user.name if user is not None else "Người dùng"
