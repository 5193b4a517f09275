"""
Referral statistics module.

Read models over referral chains and commission history: per-level
stats, paginated history and the earnings leaderboard.
"""

import math
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from taskvip.models.commission_transaction import CommissionTransaction
from taskvip.repositories.commission_repository import CommissionRepository
from taskvip.repositories.referral_repository import ReferralRepository
from taskvip.repositories.user_repository import UserRepository
from taskvip.utils.datetime_utils import ensure_utc, utc_now


LEADERBOARD_PERIODS = {
    "all": None,
    "week": timedelta(days=7),
    "month": timedelta(days=30),
}


class ReferralStatisticsManager:
    """Manages referral statistics and analytics."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize statistics manager."""
        self.session = session
        self.referral_repo = ReferralRepository(session)
        self.commission_repo = CommissionRepository(session)
        self.user_repo = UserRepository(session)

    async def get_referral_stats(self, user_id: int) -> dict:
        """
        Get referral statistics for user.

        Args:
            user_id: User ID

        Returns:
            Dict with referral counts and earnings per level
        """
        counts = await self.referral_repo.get_level_counts(user_id)
        earned = await self.commission_repo.get_earned_by_level(user_id)
        pending = await self.commission_repo.get_pending_total(user_id)
        record = await self.referral_repo.get_by_user(user_id)

        levels = {
            level: {
                "referrals": counts[level],
                "commissions": earned[level]["count"],
                "total_earned": earned[level]["total_earned"],
            }
            for level in (1, 2, 3)
        }

        return {
            "user_id": user_id,
            "levels": levels,
            "total_referrals": sum(counts.values()),
            "total_earned": sum(
                (stats["total_earned"] for stats in levels.values()),
                Decimal("0"),
            ),
            "pending_commissions": pending,
            "total_commissions_paid": (
                record.total_commissions_paid if record else Decimal("0")
            ),
            "referred_by": record.referrer_at(1) if record else None,
        }

    async def get_commission_history(
        self,
        user_id: int,
        page: int = 1,
        limit: int = 20,
        direction: str = "earned",
    ) -> dict:
        """
        Get commission history, newest first.

        Args:
            user_id: User ID
            page: Page number (1-indexed)
            limit: Items per page
            direction: "earned" or "paid"

        Returns:
            Dict with items and pagination info
        """
        page = max(page, 1)
        limit = max(min(limit, 100), 1)

        items, total = await self.commission_repo.get_history(
            user_id, direction=direction, page=page, per_page=limit
        )

        return {
            "items": [self._format_commission(item) for item in items],
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if total else 0,
        }

    async def get_leaderboard(
        self,
        limit: int = 10,
        period: str = "all",
        now: datetime | None = None,
    ) -> list[dict]:
        """
        Get top commission earners.

        Args:
            limit: Number of top users to return
            period: "all", "week" or "month"
            now: Reference time for the period window

        Returns:
            Ranked entries
        """
        if period not in LEADERBOARD_PERIODS:
            raise ValueError(f"Unknown leaderboard period: {period!r}")

        window = LEADERBOARD_PERIODS[period]
        since = None
        if window is not None:
            since = (ensure_utc(now) if now else utc_now()) - window

        rows = await self.commission_repo.get_top_earners(limit, since)
        users = await self.user_repo.get_many([row[0] for row in rows])

        leaderboard = []
        for rank, (user_id, total_earned, count) in enumerate(rows, 1):
            user = users.get(user_id)
            leaderboard.append({
                "rank": rank,
                "user_id": user_id,
                "username": user.username if user else None,
                "vip_level": user.vip_level if user else 0,
                "total_earned": total_earned,
                "commissions": count,
            })

        return leaderboard

    @staticmethod
    def _format_commission(item: CommissionTransaction) -> dict:
        return {
            "id": item.id,
            "from_user_id": item.from_user_id,
            "to_user_id": item.to_user_id,
            "level": item.level,
            "percentage": item.percentage,
            "original_amount": item.original_amount,
            "commission_amount": item.commission_amount,
            "transaction_type": item.transaction_type,
            "transaction_id": item.external_transaction_id,
            "status": item.status,
            "paid_at": item.paid_at,
            "created_at": item.created_at,
        }
