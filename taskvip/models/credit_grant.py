"""
CreditGrant model.

Pools of credit awaiting release into spendable balance through a fixed
four-bucket vesting schedule.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
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

from taskvip.config.business_constants import VESTING_BUCKETS
from taskvip.models.base import Base
from taskvip.models.types import MoneyType


class CreditGrantStatus:
    """Credit grant status constants."""

    ON_HOLD = "on_hold"  # Held by fraud scoring, nothing releases
    VESTING = "vesting"  # Buckets release as they mature
    VESTED = "vested"  # Terminal: every bucket released
    CANCELLED = "cancelled"  # Terminal: unreleased buckets forfeited

    TERMINAL = (VESTED, CANCELLED)


def _bucket_constraints() -> list[CheckConstraint]:
    constraints = []
    for bucket in VESTING_BUCKETS:
        constraints.append(
            CheckConstraint(
                f"schedule_{bucket} >= 0",
                name=f"check_grant_schedule_{bucket}_non_negative",
            )
        )
        constraints.append(
            CheckConstraint(
                f"progress_{bucket} = 0 OR progress_{bucket} = schedule_{bucket}",
                name=f"check_grant_progress_{bucket}_all_or_nothing",
            )
        )
    return constraints


class CreditGrant(Base):
    """
    CreditGrant entity.

    For every bucket, progress is either 0 or equal to the scheduled amount;
    the grant is vested once released progress equals the amount.
    ``version`` guards against lost updates from concurrent vesting calls.

    Attributes:
        id: Primary key
        user_id: Grant owner
        amount: Total credit in the pool
        grant_type: Why it was granted (task_completion, referral_bonus...)
        source: Where it came from (ad_watch, offer_completion...)
        description: Human readable description
        status: on_hold / vesting / vested / cancelled
        schedule_*: Amount in each bucket
        progress_*: Amount released from each bucket
        is_vested: Terminal vested flag
        fraud_score: Score recorded when the grant was created
        fraud_flags: Triggered fraud rules
        version: Optimistic lock counter
    """

    __tablename__ = "credit_grants"
    __table_args__ = (
        CheckConstraint("amount > 0", name="check_grant_amount_positive"),
        Index("idx_credit_grants_user_created", "user_id", "created_at"),
        Index("idx_credit_grants_status_vested", "status", "is_vested"),
        *_bucket_constraints(),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    grant_type: Mapped[str] = mapped_column(String(30), nullable=False)
    source: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        default=CreditGrantStatus.VESTING,
        nullable=False,
        index=True,
    )

    # Vesting schedule
    schedule_immediate: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    schedule_after_1_day: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    schedule_after_7_days: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    schedule_after_30_days: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )

    # Vesting progress
    progress_immediate: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    progress_after_1_day: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    progress_after_7_days: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    progress_after_30_days: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )

    is_vested: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    vested_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Fraud gate
    fraud_score: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    fraud_flags: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)

    details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    # Cancellation tracking
    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancel_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<CreditGrant(id={self.id}, user_id={self.user_id}, "
            f"amount={self.amount}, status={self.status})>"
        )

    def scheduled(self, bucket: str) -> Decimal:
        """Amount scheduled in a bucket."""
        return getattr(self, f"schedule_{bucket}") or Decimal("0")

    def released(self, bucket: str) -> Decimal:
        """Amount already released from a bucket."""
        return getattr(self, f"progress_{bucket}") or Decimal("0")

    def mark_released(self, bucket: str) -> Decimal:
        """Release a bucket wholly; returns the released amount."""
        amount = self.scheduled(bucket)
        setattr(self, f"progress_{bucket}", amount)
        return amount

    @property
    def total_vested(self) -> Decimal:
        """Sum of released progress across buckets."""
        return sum(
            (self.released(bucket) for bucket in VESTING_BUCKETS),
            Decimal("0"),
        )

    @property
    def remaining_vesting(self) -> Decimal:
        """Amount not yet released."""
        return self.amount - self.total_vested

    @property
    def is_terminal(self) -> bool:
        """Whether the grant can no longer change."""
        return self.status in CreditGrantStatus.TERMINAL


class CreditVestingRelease(Base):
    """
    Append-only release event for one vesting bucket.

    (grant_id, bucket) is unique, so a bucket can be released at most once
    regardless of how many callers race on the same grant.
    """

    __tablename__ = "credit_vesting_releases"
    __table_args__ = (
        UniqueConstraint("grant_id", "bucket", name="uq_release_grant_bucket"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    grant_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("credit_grants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    bucket: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    released_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<CreditVestingRelease(grant_id={self.grant_id}, "
            f"bucket={self.bucket}, amount={self.amount})>"
        )
