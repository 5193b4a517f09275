"""
BalanceAccount and BalanceTransaction models.

Per-user credit totals plus the audit trail of every mutation applied to them.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from taskvip.models.base import Base
from taskvip.models.types import MoneyType


class BalanceAccount(Base):
    """
    Per-user credit aggregate.

    Invariant (enforced by the database): 0 <= withdrawable <= available <= total.
    Mutated only through single-statement atomic updates in BalanceRepository.

    Attributes:
        user_id: Owning user (unique)
        total_credits: Lifetime earned credits
        available_credits: Spendable credits
        withdrawable_credits: Cash-out eligible part of available credits
    """

    __tablename__ = "balance_accounts"
    __table_args__ = (
        CheckConstraint(
            'withdrawable_credits >= 0',
            name='check_balance_withdrawable_non_negative'
        ),
        CheckConstraint(
            'withdrawable_credits <= available_credits',
            name='check_balance_withdrawable_le_available'
        ),
        CheckConstraint(
            'available_credits <= total_credits',
            name='check_balance_available_le_total'
        ),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )

    total_credits: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    available_credits: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    withdrawable_credits: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<BalanceAccount(user_id={self.user_id}, total={self.total_credits}, "
            f"available={self.available_credits}, "
            f"withdrawable={self.withdrawable_credits})>"
        )


class BalanceEntryType:
    """Kinds of balance mutation."""

    GRANT_RELEASE = "grant_release"
    COMMISSION = "commission"
    REDEMPTION = "redemption"
    WITHDRAWAL = "withdrawal"
    WITHDRAWAL_REFUND = "withdrawal_refund"
    REVERSAL = "reversal"


class BalanceEntryStatus:
    """Balance audit entry status constants."""

    COMPLETED = "completed"
    PENDING = "pending"
    REVERSED = "reversed"


class BalanceTransaction(Base):
    """
    Audit entry for one balance mutation.

    Signed amount: credits are positive, debits and reversals negative.
    """

    __tablename__ = "balance_transactions"
    __table_args__ = (
        Index("idx_balance_tx_user_created", "user_id", "created_at"),
        Index("idx_balance_tx_reference", "reference_type", "reference_id"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    entry_type: Mapped[str] = mapped_column(String(30), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=BalanceEntryStatus.COMPLETED, nullable=False
    )
    reference_type: Mapped[str | None] = mapped_column(
        String(30), nullable=True
    )
    reference_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<BalanceTransaction(user_id={self.user_id}, "
            f"type={self.entry_type}, amount={self.amount})>"
        )
