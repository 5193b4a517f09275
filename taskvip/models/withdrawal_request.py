"""
WithdrawalRequest model.

Cash-out requests debited from withdrawable credits.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
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


class WithdrawalStatus:
    """Withdrawal status constants."""

    PENDING = "pending"  # Held for review
    APPROVED = "approved"  # Ready for payout
    REJECTED = "rejected"  # Funds restored
    COMPLETED = "completed"  # Paid out

    OPEN = (PENDING, APPROVED)


class WithdrawalRequest(Base):
    """Single withdrawal request."""

    __tablename__ = "withdrawal_requests"
    __table_args__ = (
        CheckConstraint("amount > 0", name="check_withdrawal_amount_positive"),
        Index("idx_withdrawals_user_created", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    method: Mapped[str] = mapped_column(String(30), nullable=False)
    payment_details: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=WithdrawalStatus.PENDING,
        nullable=False,
        index=True,
    )
    fraud_score: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    fraud_flags: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)

    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<WithdrawalRequest(id={self.id}, user_id={self.user_id}, "
            f"amount={self.amount}, status={self.status})>"
        )
