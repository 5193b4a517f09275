"""
Balance service.

Atomic holder of a user's total, available and withdrawable credits.
Every mutation is one conditional UPDATE plus an audit entry, so
concurrent callers can never drive an account out of
0 <= withdrawable <= available <= total.
"""

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from taskvip.config.settings import settings
from taskvip.models.balance_account import BalanceEntryType
from taskvip.repositories.balance_repository import (
    BalanceRepository,
    BalanceTransactionRepository,
)
from taskvip.repositories.user_repository import UserRepository
from taskvip.services.base_service import BaseService
from taskvip.utils.exceptions import BalanceError, InsufficientBalance


@dataclass(frozen=True)
class BalanceSnapshot:
    """Point-in-time view of an account."""

    total: Decimal
    available: Decimal
    withdrawable: Decimal

    @classmethod
    def empty(cls) -> "BalanceSnapshot":
        return cls(Decimal("0"), Decimal("0"), Decimal("0"))

    def to_dict(self) -> dict[str, Decimal]:
        return {
            "total": self.total,
            "available": self.available,
            "withdrawable": self.withdrawable,
        }


def as_credits(amount: Decimal | int | str) -> Decimal:
    """
    Validate a positive credit amount.

    Args:
        amount: Amount as Decimal, int or numeric string

    Returns:
        Amount as Decimal

    Raises:
        ValueError: If the amount is not a positive number
    """
    value = Decimal(str(amount))
    if not value.is_finite() or value <= 0:
        raise ValueError(f"Amount must be positive, got {amount}")
    return value


class BalanceService(BaseService):
    """Atomic balance mutations with an audit trail."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize balance service."""
        super().__init__(session)
        self.balance_repo = BalanceRepository(session)
        self.audit_repo = BalanceTransactionRepository(session)
        self.user_repo = UserRepository(session)

    async def get_balance(self, user_id: int) -> BalanceSnapshot:
        """
        Get current balance.

        Args:
            user_id: User ID

        Returns:
            Snapshot (zeros for users never credited)
        """
        account = await self.balance_repo.get_by_user(user_id)
        if account is None:
            return BalanceSnapshot.empty()
        return BalanceSnapshot(
            total=account.total_credits,
            available=account.available_credits,
            withdrawable=account.withdrawable_credits,
        )

    async def credit(
        self,
        user_id: int,
        amount: Decimal,
        entry_type: str = BalanceEntryType.GRANT_RELEASE,
        reference_type: str | None = None,
        reference_id: int | None = None,
        description: str | None = None,
    ) -> None:
        """
        Add credits to total and available balance.

        The account is created on first credit.

        Args:
            user_id: User ID
            amount: Positive amount
            entry_type: Audit entry type
            reference_type: Source entity kind
            reference_id: Source entity ID
            description: Audit description
        """
        amount = as_credits(amount)

        await self.balance_repo.ensure_account(user_id)
        if not await self.balance_repo.increment(user_id, amount):
            raise BalanceError(f"Balance account for user {user_id} not found")

        await self.audit_repo.record(
            user_id=user_id,
            entry_type=entry_type,
            amount=amount,
            reference_type=reference_type,
            reference_id=reference_id,
            description=description,
        )

        self.logger.info(
            "Balance credited",
            extra={
                "user_id": user_id,
                "amount": str(amount),
                "entry_type": entry_type,
                "reference_type": reference_type,
                "reference_id": reference_id,
            },
        )

    async def debit(
        self,
        user_id: int,
        amount: Decimal,
        entry_type: str = BalanceEntryType.REDEMPTION,
        reference_type: str | None = None,
        reference_id: int | None = None,
        description: str | None = None,
        from_withdrawable: bool = False,
    ) -> None:
        """
        Spend available credits.

        Args:
            user_id: User ID
            amount: Positive amount
            entry_type: Audit entry type
            reference_type: Source entity kind
            reference_id: Source entity ID
            description: Audit description
            from_withdrawable: Require and consume withdrawable credits

        Raises:
            InsufficientBalance: If the relevant pool is too small
        """
        amount = as_credits(amount)

        applied = await self.balance_repo.decrement_available(
            user_id, amount, from_withdrawable=from_withdrawable
        )
        if not applied:
            snapshot = await self.get_balance(user_id)
            available = (
                snapshot.withdrawable if from_withdrawable else snapshot.available
            )
            self.logger.warning(
                "Debit rejected: insufficient balance",
                extra={
                    "user_id": user_id,
                    "amount": str(amount),
                    "available": str(available),
                    "from_withdrawable": from_withdrawable,
                },
            )
            raise InsufficientBalance(user_id, amount, available)

        await self.audit_repo.record(
            user_id=user_id,
            entry_type=entry_type,
            amount=-amount,
            reference_type=reference_type,
            reference_id=reference_id,
            description=description,
        )

        self.logger.info(
            "Balance debited",
            extra={
                "user_id": user_id,
                "amount": str(amount),
                "entry_type": entry_type,
                "from_withdrawable": from_withdrawable,
            },
        )

    async def reverse(
        self,
        user_id: int,
        amount: Decimal,
        reference_type: str | None = None,
        reference_id: int | None = None,
        description: str | None = None,
    ) -> None:
        """
        Undo an earlier credit, lowering total and available credits.

        Raises:
            InsufficientBalance: If the credits were already spent
        """
        amount = as_credits(amount)

        if not await self.balance_repo.decrement_total(user_id, amount):
            snapshot = await self.get_balance(user_id)
            raise InsufficientBalance(user_id, amount, snapshot.available)

        await self.audit_repo.record(
            user_id=user_id,
            entry_type=BalanceEntryType.REVERSAL,
            amount=-amount,
            reference_type=reference_type,
            reference_id=reference_id,
            description=description,
        )

        self.logger.warning(
            "Balance credit reversed",
            extra={
                "user_id": user_id,
                "amount": str(amount),
                "reference_type": reference_type,
                "reference_id": reference_id,
            },
        )

    async def restore(
        self,
        user_id: int,
        amount: Decimal,
        reference_type: str | None = None,
        reference_id: int | None = None,
        description: str | None = None,
    ) -> None:
        """
        Refund an earlier debit, raising available credits only.

        Raises:
            BalanceError: If available credits would exceed total credits
        """
        amount = as_credits(amount)

        if not await self.balance_repo.increment_available(user_id, amount):
            raise BalanceError(
                f"Cannot restore {amount} credits for user {user_id}: "
                f"exceeds lifetime total"
            )

        await self.audit_repo.record(
            user_id=user_id,
            entry_type=BalanceEntryType.WITHDRAWAL_REFUND,
            amount=amount,
            reference_type=reference_type,
            reference_id=reference_id,
            description=description,
        )

        self.logger.info(
            "Balance restored",
            extra={"user_id": user_id, "amount": str(amount)},
        )

    async def promote_to_withdrawable(
        self, user_id: int, minimum: Decimal | None = None
    ) -> bool:
        """
        Make available credits withdrawable.

        Requires a verified identity and available credits at or above the
        minimum. Monotonic: withdrawable credits only ever grow here.

        Args:
            user_id: User ID
            minimum: Threshold (defaults to settings.min_withdrawable_credits)

        Returns:
            True if withdrawable credits grew
        """
        minimum = (
            settings.min_withdrawable_credits if minimum is None else minimum
        )

        user = await self.user_repo.get_by_id(user_id)
        if user is None or not user.is_verified:
            return False

        promoted = await self.balance_repo.promote_withdrawable(
            user_id, minimum
        )
        if promoted:
            self.logger.info(
                "Credits promoted to withdrawable",
                extra={"user_id": user_id, "minimum": str(minimum)},
            )
        return promoted
