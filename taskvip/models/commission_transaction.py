"""
CommissionTransaction model.

Append-style record of one commission payment from a payer to an ancestor.
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
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from taskvip.models.base import Base
from taskvip.models.types import MoneyType, PercentType


class CommissionStatus:
    """Commission status constants."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"

    TERMINAL = (PAID, FAILED, CANCELLED)


class CommissionTransaction(Base):
    """
    CommissionTransaction entity.

    commission_amount = round(original_amount * percentage / 100), where
    percentage is the rate for the ancestor's VIP tier at processing time.
    (from_user_id, external_transaction_id, level) is unique so the same
    qualifying event can never pay an ancestor twice.
    """

    __tablename__ = "commission_transactions"
    __table_args__ = (
        UniqueConstraint(
            "from_user_id",
            "external_transaction_id",
            "level",
            name="uq_commission_payer_txn_level",
        ),
        CheckConstraint(
            "level >= 1 AND level <= 3", name="check_commission_level_range"
        ),
        CheckConstraint(
            "commission_amount >= 0",
            name="check_commission_amount_non_negative",
        ),
        Index("idx_commission_to_user_created", "to_user_id", "created_at"),
        Index("idx_commission_from_user_created", "from_user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    from_user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    to_user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    percentage: Mapped[Decimal] = mapped_column(PercentType, nullable=False)

    original_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    commission_amount: Mapped[Decimal] = mapped_column(
        MoneyType, nullable=False
    )

    transaction_type: Mapped[str] = mapped_column(
        String(30), nullable=False, index=True
    )
    external_transaction_id: Mapped[str] = mapped_column(
        String(128), nullable=False, index=True
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=CommissionStatus.PENDING,
        nullable=False,
        index=True,
    )
    paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Fraud gate that held this commission, if any
    fraud_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    details: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True, comment="Event metadata (vip level, payment method...)"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<CommissionTransaction(id={self.id}, from={self.from_user_id}, "
            f"to={self.to_user_id}, level={self.level}, "
            f"amount={self.commission_amount}, status={self.status})>"
        )
