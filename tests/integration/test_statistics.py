"""
Integration tests for referral statistics.

Tests cover:
- Per-level referral counts and earnings
- Paginated commission history in both directions
- Earnings leaderboard
"""

from datetime import timedelta
from decimal import Decimal

import pytest
import pytest_asyncio

from taskvip.config.business_constants import TransactionType
from taskvip.services.referral.commission_processor import CommissionProcessor
from taskvip.services.referral.statistics import ReferralStatisticsManager
from taskvip.utils.datetime_utils import utc_now


@pytest_asyncio.fixture
async def paid_line(session, make_chain):
    """A (VIP 1) -> B -> C -> D, D paid 1000 once."""
    users = await make_chain(1, 0, 0, 0)
    await CommissionProcessor(session).process(
        users[-1].id, Decimal("1000"), TransactionType.VIP_PURCHASE, "txn-1"
    )
    await session.commit()
    return users


class TestReferralStats:
    """Test per-user statistics."""

    @pytest.mark.asyncio
    async def test_root_sees_all_levels(self, session, paid_line):
        """Root has one referral on each level and earned level 3 only."""
        a, b, c, d = paid_line

        stats = await ReferralStatisticsManager(session).get_referral_stats(a.id)

        assert stats["total_referrals"] == 3
        assert {level: s["referrals"] for level, s in stats["levels"].items()} == {
            1: 1,
            2: 1,
            3: 1,
        }
        assert stats["levels"][3]["total_earned"] == Decimal("50")
        assert stats["total_earned"] == Decimal("50")
        assert stats["referred_by"] is None

    @pytest.mark.asyncio
    async def test_payer_stats(self, session, paid_line):
        """Payer sees who referred them and what they generated."""
        a, b, c, d = paid_line

        stats = await ReferralStatisticsManager(session).get_referral_stats(d.id)

        assert stats["total_referrals"] == 0
        assert stats["referred_by"] == c.id
        assert stats["total_commissions_paid"] == Decimal("350")


class TestCommissionHistory:
    """Test history pagination."""

    @pytest.mark.asyncio
    async def test_earned_history(self, session, paid_line):
        """Ancestors see what they earned."""
        a, b, c, d = paid_line

        history = await ReferralStatisticsManager(
            session
        ).get_commission_history(c.id)

        assert history["total"] == 1
        assert history["pages"] == 1
        item = history["items"][0]
        assert item["from_user_id"] == d.id
        assert item["commission_amount"] == Decimal("200")
        assert item["transaction_id"] == "txn-1"

    @pytest.mark.asyncio
    async def test_paid_history_pages(self, session, paid_line):
        """Payers see every commission their events generated."""
        a, b, c, d = paid_line
        manager = ReferralStatisticsManager(session)

        first = await manager.get_commission_history(
            d.id, page=1, limit=2, direction="paid"
        )
        second = await manager.get_commission_history(
            d.id, page=2, limit=2, direction="paid"
        )

        assert first["total"] == 3
        assert first["pages"] == 2
        assert len(first["items"]) == 2
        assert len(second["items"]) == 1

    @pytest.mark.asyncio
    async def test_unknown_direction(self, session, paid_line):
        """Only earned and paid histories exist."""
        with pytest.raises(ValueError):
            await ReferralStatisticsManager(session).get_commission_history(
                paid_line[0].id, direction="sideways"
            )


class TestLeaderboard:
    """Test top earners."""

    @pytest.mark.asyncio
    async def test_ranked_by_earnings(self, session, paid_line):
        """Closer ancestors earned more and rank higher."""
        a, b, c, d = paid_line

        board = await ReferralStatisticsManager(session).get_leaderboard()

        assert [(row["rank"], row["user_id"]) for row in board] == [
            (1, c.id),
            (2, b.id),
            (3, a.id),
        ]
        assert board[0]["total_earned"] == Decimal("200")
        assert board[2]["vip_level"] == 1

    @pytest.mark.asyncio
    async def test_period_window(self, session, paid_line):
        """Commissions older than the window are excluded."""
        board = await ReferralStatisticsManager(session).get_leaderboard(
            period="week", now=utc_now() + timedelta(days=8)
        )

        assert board == []

    @pytest.mark.asyncio
    async def test_unknown_period(self, session):
        """Only all, week and month are supported."""
        with pytest.raises(ValueError):
            await ReferralStatisticsManager(session).get_leaderboard(
                period="decade"
            )
