"""
User repository.

Data access layer for User model. The rewards core reads users only
through the UserDirectory port; UserRepository is its database adapter.
"""

from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskvip.models.user import User
from taskvip.repositories.base import BaseRepository


class UserDirectory(Protocol):
    """Read-only user lookup consumed by the rewards core."""

    async def get_by_id(self, id: int) -> User | None: ...

    async def find_by_referral_code(self, code: str) -> User | None: ...


class UserRepository(BaseRepository[User]):
    """User repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize user repository."""
        super().__init__(User, session)

    async def find_by_referral_code(self, code: str) -> User | None:
        """
        Get user by referral code.

        Args:
            code: Referral code (surrounding whitespace ignored)

        Returns:
            User or None
        """
        code = (code or "").strip()
        if not code:
            return None
        return await self.get_by(referral_code=code)

    async def get_many(self, ids: list[int]) -> dict[int, User]:
        """
        Get several users in one query.

        Args:
            ids: User IDs

        Returns:
            Dict mapping user ID to User (missing IDs omitted)
        """
        if not ids:
            return {}
        stmt = select(User).where(User.id.in_(ids))
        result = await self.session.execute(stmt)
        return {user.id: user for user in result.scalars().all()}
