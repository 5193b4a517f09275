"""
Task completion repository.

Data access layer for TaskCompletion model.
"""

from datetime import datetime

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskvip.models.task_completion import TaskCompletion
from taskvip.repositories.base import BaseRepository


class TaskCompletionRepository(BaseRepository[TaskCompletion]):
    """Task completion repository with fraud window counts."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize task completion repository."""
        super().__init__(TaskCompletion, session)

    async def count_for_user_since(
        self, user_id: int, since: datetime
    ) -> int:
        """
        Count a user's completions in a trailing window.

        Args:
            user_id: User ID
            since: Window start

        Returns:
            Completion count
        """
        stmt = select(func.count(TaskCompletion.id)).where(
            TaskCompletion.user_id == user_id,
            TaskCompletion.completed_at >= since,
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def count_for_fingerprint_since(
        self,
        device_fingerprint: str | None,
        ip_address: str | None,
        since: datetime,
    ) -> int:
        """
        Count completions sharing a device fingerprint or IP address.

        Args:
            device_fingerprint: Device fingerprint
            ip_address: IP address
            since: Window start

        Returns:
            Completion count (0 when neither identifier is known)
        """
        matches = []
        if device_fingerprint:
            matches.append(TaskCompletion.device_fingerprint == device_fingerprint)
        if ip_address:
            matches.append(TaskCompletion.ip_address == ip_address)
        if not matches:
            return 0

        stmt = select(func.count(TaskCompletion.id)).where(
            or_(*matches),
            TaskCompletion.completed_at >= since,
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0
