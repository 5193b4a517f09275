"""
Referral repository.

Data access layer for ReferralRecord and ReferralChainEntry models.
"""

from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from taskvip.models.referral_record import (
    ReferralChainEntry,
    ReferralRecord,
    ReferralStatus,
)
from taskvip.repositories.base import BaseRepository


class ReferralRepository(BaseRepository[ReferralRecord]):
    """Referral record repository with chain queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize referral repository."""
        super().__init__(ReferralRecord, session)

    async def get_by_user(self, user_id: int) -> ReferralRecord | None:
        """
        Get the referral record owned by a user.

        Args:
            user_id: Owning user ID

        Returns:
            Record with its chain loaded, or None
        """
        return await self.get_by(user_id=user_id)

    async def create_with_chain(
        self,
        user_id: int,
        referral_code: str,
        entries: list[tuple[int, int, Decimal]],
    ) -> ReferralRecord:
        """
        Persist a record together with its ancestor entries.

        Args:
            user_id: Owning user ID
            referral_code: Code used at signup
            entries: (level, referrer_id, percentage) tuples, level ascending

        Returns:
            Created record
        """
        record = ReferralRecord(
            user_id=user_id,
            referral_code=referral_code,
            status=ReferralStatus.ACTIVE,
            total_commissions_earned=Decimal("0"),
            total_commissions_paid=Decimal("0"),
            chain=[
                ReferralChainEntry(
                    level=level,
                    referrer_id=referrer_id,
                    percentage=percentage,
                )
                for level, referrer_id, percentage in entries
            ],
        )
        self.session.add(record)
        await self.session.flush()
        return record

    async def add_commissions_earned(
        self, user_id: int, amount: Decimal
    ) -> bool:
        """
        Atomically increase a user's earned-commission counter.

        Args:
            user_id: Ancestor user ID
            amount: Commission amount

        Returns:
            True if the user has a record to update
        """
        stmt = (
            update(ReferralRecord)
            .where(ReferralRecord.user_id == user_id)
            .values(
                total_commissions_earned=(
                    ReferralRecord.total_commissions_earned + amount
                )
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def add_commissions_paid(
        self, user_id: int, amount: Decimal
    ) -> bool:
        """
        Atomically increase a payer's paid-out commission counter.

        Args:
            user_id: Payer user ID
            amount: Sum of commissions paid because of this payer

        Returns:
            True if the payer has a record to update
        """
        stmt = (
            update(ReferralRecord)
            .where(ReferralRecord.user_id == user_id)
            .values(
                total_commissions_paid=(
                    ReferralRecord.total_commissions_paid + amount
                )
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def get_level_counts(self, referrer_id: int) -> dict[int, int]:
        """
        Get referral counts for all levels in a single query.

        Args:
            referrer_id: Ancestor user ID

        Returns:
            Dict mapping level to count {1: count1, 2: count2, 3: count3}
        """
        stmt = (
            select(
                ReferralChainEntry.level,
                func.count(ReferralChainEntry.id).label("count"),
            )
            .where(ReferralChainEntry.referrer_id == referrer_id)
            .group_by(ReferralChainEntry.level)
        )

        result = await self.session.execute(stmt)

        level_counts = {1: 0, 2: 0, 3: 0}
        for row in result.all():
            level_counts[row.level] = row.count

        return level_counts
