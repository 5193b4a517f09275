"""
User model.

Minimal user directory record read by the rewards core: referral code,
VIP tier and identity verification. Owned by the surrounding application.
"""

from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from taskvip.models.base import Base
from taskvip.utils.datetime_utils import ensure_utc


class User(Base):
    """User model - registered platform users."""

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            'vip_level >= 0 AND vip_level <= 3',
            name='check_user_vip_level_range'
        ),
    )

    # Primary key
    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )

    username: Mapped[str | None] = mapped_column(
        String(255), nullable=True, index=True
    )
    referral_code: Mapped[str] = mapped_column(
        String(20), nullable=False, unique=True, index=True
    )

    # VIP subscription
    vip_level: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False, index=True
    )
    vip_expiry: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Identity verification gates withdrawals
    is_verified: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<User(id={self.id}, referral_code={self.referral_code!r}, "
            f"vip_level={self.vip_level})>"
        )

    def effective_vip_level(self, now: datetime) -> int:
        """
        VIP tier in effect at ``now``.

        A tier without expiry never lapses; an expired tier counts as 0.
        """
        if self.vip_level <= 0:
            return 0
        if self.vip_expiry is None:
            return self.vip_level
        return self.vip_level if ensure_utc(self.vip_expiry) > now else 0

    def account_age_days(self, now: datetime) -> float:
        """Account age in fractional days."""
        delta = now - ensure_utc(self.created_at)
        return delta.total_seconds() / 86400
