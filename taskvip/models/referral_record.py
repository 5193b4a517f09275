"""
ReferralRecord model.

One record per user, created once at signup, holding the flattened
ancestor chain captured at that moment.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taskvip.models.base import Base
from taskvip.models.types import MoneyType, PercentType


class ReferralStatus:
    """Referral record status constants."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"

    ALL = (ACTIVE, INACTIVE, SUSPENDED)


class ReferralRecord(Base):
    """
    ReferralRecord entity.

    Chain entries are written together with the record and never
    recomputed afterwards; only status and the commission counters change.

    Attributes:
        id: Primary key
        user_id: Owning user (unique)
        referral_code: Code used at signup
        status: active / inactive / suspended
        total_commissions_earned: Commissions this user earned from descendants
        total_commissions_paid: Commissions paid to ancestors because of this user
        created_at: When the chain was captured
        chain: Ordered ancestor entries (level 1 -> 3)
    """

    __tablename__ = "referral_records"

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
    referral_code: Mapped[str] = mapped_column(
        String(20), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(
        String(20), default=ReferralStatus.ACTIVE, nullable=False
    )

    total_commissions_earned: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )
    total_commissions_paid: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    chain: Mapped[list["ReferralChainEntry"]] = relationship(
        "ReferralChainEntry",
        back_populates="record",
        order_by="ReferralChainEntry.level",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<ReferralRecord(id={self.id}, user_id={self.user_id}, "
            f"levels={len(self.chain)}, status={self.status})>"
        )

    @property
    def is_active(self) -> bool:
        """Whether commissions flow through this record."""
        return self.status == ReferralStatus.ACTIVE

    def referrer_at(self, level: int) -> int | None:
        """Ancestor user ID at the given level, if any."""
        for entry in self.chain:
            if entry.level == level:
                return entry.referrer_id
        return None


class ReferralChainEntry(Base):
    """Single ancestor in a referral chain."""

    __tablename__ = "referral_chain_entries"
    __table_args__ = (
        UniqueConstraint("record_id", "level", name="uq_chain_record_level"),
        UniqueConstraint(
            "record_id", "referrer_id", name="uq_chain_record_referrer"
        ),
        CheckConstraint(
            "level >= 1 AND level <= 3", name="check_chain_level_range"
        ),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    record_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("referral_records.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    referrer_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Informational: rate at capture time, recomputed at commission time
    percentage: Mapped[Decimal] = mapped_column(PercentType, nullable=False)

    record: Mapped[ReferralRecord] = relationship(
        "ReferralRecord", back_populates="chain"
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<ReferralChainEntry(level={self.level}, "
            f"referrer_id={self.referrer_id})>"
        )
