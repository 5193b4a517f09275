"""
Withdrawal repository.

Data access layer for WithdrawalRequest model.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskvip.models.withdrawal_request import (
    WithdrawalRequest,
    WithdrawalStatus,
)
from taskvip.repositories.base import BaseRepository


# Requests that count against limits and frequency heuristics
COUNTED_STATUSES = (
    WithdrawalStatus.PENDING,
    WithdrawalStatus.APPROVED,
    WithdrawalStatus.COMPLETED,
)


class WithdrawalRepository(BaseRepository[WithdrawalRequest]):
    """Withdrawal request repository with window aggregates."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize withdrawal repository."""
        super().__init__(WithdrawalRequest, session)

    async def count_since(self, user_id: int, since: datetime) -> int:
        """
        Count a user's non-rejected requests in a trailing window.

        Args:
            user_id: User ID
            since: Window start

        Returns:
            Request count
        """
        stmt = select(func.count(WithdrawalRequest.id)).where(
            WithdrawalRequest.user_id == user_id,
            WithdrawalRequest.status.in_(COUNTED_STATUSES),
            WithdrawalRequest.created_at >= since,
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def sum_since(self, user_id: int, since: datetime) -> Decimal:
        """
        Sum a user's non-rejected request amounts in a trailing window.

        Args:
            user_id: User ID
            since: Window start

        Returns:
            Requested amount
        """
        stmt = select(
            func.coalesce(func.sum(WithdrawalRequest.amount), Decimal("0"))
        ).where(
            WithdrawalRequest.user_id == user_id,
            WithdrawalRequest.status.in_(COUNTED_STATUSES),
            WithdrawalRequest.created_at >= since,
        )
        result = await self.session.execute(stmt)
        return Decimal(str(result.scalar() or 0))
