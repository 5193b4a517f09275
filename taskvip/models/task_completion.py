"""
TaskCompletion model.

Reward-bearing completions of ads, offers, surveys and app installs.
Source data for the speed, volume and device/IP fraud heuristics.
"""

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from taskvip.models.base import Base
from taskvip.models.types import MoneyType


class TaskCompletionStatus:
    """Task completion status constants."""

    PENDING = "pending"  # Held by fraud scoring
    COMPLETED = "completed"
    REVERSED = "reversed"


class TaskCompletion(Base):
    """Single completed task awaiting or holding its reward."""

    __tablename__ = "task_completions"
    __table_args__ = (
        Index("idx_task_completions_user_completed", "user_id", "completed_at"),
        Index(
            "idx_task_completions_device_completed",
            "device_fingerprint",
            "completed_at",
        ),
        Index("idx_task_completions_ip_completed", "ip_address", "completed_at"),
    )

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    task_type: Mapped[str] = mapped_column(String(30), nullable=False)
    external_transaction_id: Mapped[str | None] = mapped_column(
        String(128), nullable=True, index=True
    )

    device_fingerprint: Mapped[str | None] = mapped_column(
        String(128), nullable=True
    )
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)

    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    completed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    estimated_seconds: Mapped[int] = mapped_column(Integer, nullable=False)

    reward_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=TaskCompletionStatus.COMPLETED,
        nullable=False,
        index=True,
    )
    fraud_score: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    fraud_flags: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)

    grant_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("credit_grants.id", ondelete="SET NULL"),
        nullable=True,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<TaskCompletion(id={self.id}, user_id={self.user_id}, "
            f"type={self.task_type}, status={self.status})>"
        )
