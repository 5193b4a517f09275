"""
Balance repository.

Data access layer for BalanceAccount and BalanceTransaction models.
Every balance mutation is a single conditional UPDATE; no method reads
a balance and writes it back.
"""

from datetime import datetime
from decimal import Decimal

from loguru import logger
from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from taskvip.models.balance_account import (
    BalanceAccount,
    BalanceEntryStatus,
    BalanceEntryType,
    BalanceTransaction,
)
from taskvip.repositories.base import BaseRepository


# Entry types that count as earnings for fraud heuristics
EARNING_ENTRY_TYPES = (
    BalanceEntryType.GRANT_RELEASE,
    BalanceEntryType.COMMISSION,
)


class BalanceRepository(BaseRepository[BalanceAccount]):
    """Balance account repository with atomic mutations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize balance repository."""
        super().__init__(BalanceAccount, session)

    async def get_by_user(self, user_id: int) -> BalanceAccount | None:
        """
        Get a user's account, re-read from the database.

        Args:
            user_id: User ID

        Returns:
            Account or None if never credited
        """
        stmt = (
            select(BalanceAccount)
            .where(BalanceAccount.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def ensure_account(self, user_id: int) -> None:
        """
        Create an empty account if the user has none.

        Safe against a concurrent creator: the insert runs in a SAVEPOINT
        and a unique violation means the account now exists.

        Args:
            user_id: User ID
        """
        if await self.exists(user_id=user_id):
            return

        try:
            async with self.session.begin_nested():
                self.session.add(
                    BalanceAccount(
                        user_id=user_id,
                        total_credits=Decimal("0"),
                        available_credits=Decimal("0"),
                        withdrawable_credits=Decimal("0"),
                    )
                )
        except IntegrityError:
            logger.debug(
                "Balance account created concurrently, savepoint rolled back",
                extra={"user_id": user_id},
            )

    async def increment(self, user_id: int, amount: Decimal) -> bool:
        """
        Add to total and available credits.

        Args:
            user_id: User ID
            amount: Positive amount

        Returns:
            True if an account was updated
        """
        stmt = (
            update(BalanceAccount)
            .where(BalanceAccount.user_id == user_id)
            .values(
                total_credits=BalanceAccount.total_credits + amount,
                available_credits=BalanceAccount.available_credits + amount,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def decrement_available(
        self,
        user_id: int,
        amount: Decimal,
        from_withdrawable: bool = False,
    ) -> bool:
        """
        Subtract from available credits if enough is available.

        Withdrawable credits are clamped to the new available amount in the
        same statement. With ``from_withdrawable`` the amount must be
        covered by withdrawable credits and is taken from both pools.

        Args:
            user_id: User ID
            amount: Positive amount
            from_withdrawable: Debit the withdrawable pool as well

        Returns:
            True if the debit was applied
        """
        new_available = BalanceAccount.available_credits - amount

        if from_withdrawable:
            stmt = (
                update(BalanceAccount)
                .where(
                    BalanceAccount.user_id == user_id,
                    BalanceAccount.withdrawable_credits >= amount,
                )
                .values(
                    available_credits=new_available,
                    withdrawable_credits=(
                        BalanceAccount.withdrawable_credits - amount
                    ),
                )
            )
        else:
            stmt = (
                update(BalanceAccount)
                .where(
                    BalanceAccount.user_id == user_id,
                    BalanceAccount.available_credits >= amount,
                )
                .values(
                    available_credits=new_available,
                    withdrawable_credits=_clamp_withdrawable(new_available),
                )
            )

        stmt = stmt.execution_options(synchronize_session=False)
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def decrement_total(self, user_id: int, amount: Decimal) -> bool:
        """
        Undo an earlier credit: subtract from total and available credits.

        Args:
            user_id: User ID
            amount: Positive amount

        Returns:
            True if enough available credit remained to reverse
        """
        new_available = BalanceAccount.available_credits - amount
        stmt = (
            update(BalanceAccount)
            .where(
                BalanceAccount.user_id == user_id,
                BalanceAccount.available_credits >= amount,
            )
            .values(
                total_credits=BalanceAccount.total_credits - amount,
                available_credits=new_available,
                withdrawable_credits=_clamp_withdrawable(new_available),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def increment_available(self, user_id: int, amount: Decimal) -> bool:
        """
        Give back a debited amount: raise available credits only.

        Refused if available would exceed total.

        Args:
            user_id: User ID
            amount: Positive amount

        Returns:
            True if the refund was applied
        """
        stmt = (
            update(BalanceAccount)
            .where(
                BalanceAccount.user_id == user_id,
                BalanceAccount.available_credits + amount
                <= BalanceAccount.total_credits,
            )
            .values(
                available_credits=BalanceAccount.available_credits + amount
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def promote_withdrawable(
        self, user_id: int, minimum: Decimal
    ) -> bool:
        """
        Raise withdrawable credits to the available amount.

        Applies only once available credits reach ``minimum``; never lowers
        withdrawable credits.

        Args:
            user_id: User ID
            minimum: Available credits required for promotion

        Returns:
            True if withdrawable credits grew
        """
        stmt = (
            update(BalanceAccount)
            .where(
                BalanceAccount.user_id == user_id,
                BalanceAccount.available_credits >= minimum,
                BalanceAccount.withdrawable_credits
                < BalanceAccount.available_credits,
            )
            .values(withdrawable_credits=BalanceAccount.available_credits)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount > 0


def _clamp_withdrawable(new_available):
    """SET expression keeping withdrawable <= the new available amount."""
    return case(
        (
            BalanceAccount.withdrawable_credits > new_available,
            new_available,
        ),
        else_=BalanceAccount.withdrawable_credits,
    )


class BalanceTransactionRepository(BaseRepository[BalanceTransaction]):
    """Balance audit log repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize balance transaction repository."""
        super().__init__(BalanceTransaction, session)

    async def record(
        self,
        user_id: int,
        entry_type: str,
        amount: Decimal,
        reference_type: str | None = None,
        reference_id: int | None = None,
        description: str | None = None,
        status: str = BalanceEntryStatus.COMPLETED,
    ) -> BalanceTransaction:
        """
        Append an audit entry.

        Args:
            user_id: User ID
            entry_type: BalanceEntryType value
            amount: Signed amount (negative for debits)
            reference_type: Source entity kind
            reference_id: Source entity ID
            description: Human readable description
            status: BalanceEntryStatus value

        Returns:
            Created entry
        """
        entry = BalanceTransaction(
            user_id=user_id,
            entry_type=entry_type,
            amount=amount,
            status=status,
            reference_type=reference_type,
            reference_id=reference_id,
            description=description,
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def sum_earnings_since(
        self, user_id: int, since: datetime
    ) -> Decimal:
        """
        Sum credited earnings (grant releases and commissions).

        Args:
            user_id: User ID
            since: Window start

        Returns:
            Earned amount in the window
        """
        stmt = select(
            func.coalesce(func.sum(BalanceTransaction.amount), Decimal("0"))
        ).where(
            BalanceTransaction.user_id == user_id,
            BalanceTransaction.entry_type.in_(EARNING_ENTRY_TYPES),
            BalanceTransaction.status == BalanceEntryStatus.COMPLETED,
            BalanceTransaction.created_at >= since,
        )
        result = await self.session.execute(stmt)
        return Decimal(str(result.scalar() or 0))
