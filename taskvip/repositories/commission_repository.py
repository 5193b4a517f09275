"""
Commission repository.

Data access layer for CommissionTransaction model.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskvip.models.commission_transaction import (
    CommissionStatus,
    CommissionTransaction,
)
from taskvip.repositories.base import BaseRepository


class CommissionRepository(BaseRepository[CommissionTransaction]):
    """Commission transaction repository with specific queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize commission repository."""
        super().__init__(CommissionTransaction, session)

    async def get_for_event(
        self,
        from_user_id: int,
        external_transaction_id: str,
        status: str | None = None,
    ) -> list[CommissionTransaction]:
        """
        Get commissions recorded for one qualifying event.

        Args:
            from_user_id: Payer user ID
            external_transaction_id: Caller-supplied transaction identity
            status: Optional status filter

        Returns:
            Commissions ordered by level
        """
        stmt = (
            select(CommissionTransaction)
            .where(
                CommissionTransaction.from_user_id == from_user_id,
                CommissionTransaction.external_transaction_id
                == external_transaction_id,
            )
            .order_by(CommissionTransaction.level)
            .execution_options(populate_existing=True)
        )
        if status is not None:
            stmt = stmt.where(CommissionTransaction.status == status)

        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_earned_by_level(
        self, to_user_id: int
    ) -> dict[int, dict[str, int | Decimal]]:
        """
        Get paid commission totals grouped by level in a single query.

        Args:
            to_user_id: Ancestor user ID

        Returns:
            Dict mapping level to {"count": n, "total_earned": Decimal}
        """
        stmt = (
            select(
                CommissionTransaction.level,
                func.count(CommissionTransaction.id).label("count"),
                func.coalesce(
                    func.sum(CommissionTransaction.commission_amount),
                    Decimal("0"),
                ).label("total_earned"),
            )
            .where(
                CommissionTransaction.to_user_id == to_user_id,
                CommissionTransaction.status == CommissionStatus.PAID,
            )
            .group_by(CommissionTransaction.level)
        )

        result = await self.session.execute(stmt)

        stats: dict[int, dict[str, int | Decimal]] = {
            level: {"count": 0, "total_earned": Decimal("0")}
            for level in (1, 2, 3)
        }
        for row in result.all():
            stats[row.level] = {
                "count": row.count,
                "total_earned": Decimal(str(row.total_earned)),
            }

        return stats

    async def get_pending_total(self, to_user_id: int) -> Decimal:
        """
        Sum commissions still held for an ancestor.

        Args:
            to_user_id: Ancestor user ID

        Returns:
            Pending commission total
        """
        stmt = select(
            func.coalesce(
                func.sum(CommissionTransaction.commission_amount),
                Decimal("0"),
            )
        ).where(
            CommissionTransaction.to_user_id == to_user_id,
            CommissionTransaction.status == CommissionStatus.PENDING,
        )
        result = await self.session.execute(stmt)
        return Decimal(str(result.scalar() or 0))

    async def get_history(
        self,
        user_id: int,
        direction: str = "earned",
        page: int = 1,
        per_page: int = 20,
    ) -> tuple[list[CommissionTransaction], int]:
        """
        Get commission history, newest first.

        Args:
            user_id: User ID
            direction: "earned" (user is the ancestor) or "paid" (user is payer)
            page: Page number (1-indexed)
            per_page: Items per page

        Returns:
            Tuple of (items, total_count)
        """
        if direction == "earned":
            return await self.find_paginated(
                page=page, per_page=per_page, to_user_id=user_id
            )
        if direction == "paid":
            return await self.find_paginated(
                page=page, per_page=per_page, from_user_id=user_id
            )
        raise ValueError(f"Unknown commission direction: {direction!r}")

    async def get_top_earners(
        self, limit: int = 10, since: datetime | None = None
    ) -> list[tuple[int, Decimal, int]]:
        """
        Rank ancestors by paid commissions.

        Args:
            limit: Number of entries
            since: Only count commissions created at or after this moment

        Returns:
            List of (user_id, total_earned, commission_count), highest first
        """
        total = func.sum(CommissionTransaction.commission_amount).label("total")
        stmt = (
            select(
                CommissionTransaction.to_user_id,
                total,
                func.count(CommissionTransaction.id).label("count"),
            )
            .where(CommissionTransaction.status == CommissionStatus.PAID)
            .group_by(CommissionTransaction.to_user_id)
            .order_by(total.desc(), CommissionTransaction.to_user_id)
            .limit(limit)
        )
        if since is not None:
            stmt = stmt.where(CommissionTransaction.created_at >= since)

        result = await self.session.execute(stmt)
        return [
            (row.to_user_id, Decimal(str(row.total)), row.count)
            for row in result.all()
        ]
