"""
Integration tests for VIP purchases.

Tests cover:
- Tier, expiry and bonus credits of the buyer
- Upline commissions on the plan price
- Rejected purchases leave nothing behind
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from taskvip.config.business_constants import GrantType, TransactionType
from taskvip.models.commission_transaction import CommissionStatus
from taskvip.repositories.commission_repository import CommissionRepository
from taskvip.services.balance_service import BalanceService
from taskvip.services.rewards_engine import RewardsEngine
from taskvip.services.vip_service import VipService
from taskvip.utils.datetime_utils import ensure_utc, utc_now
from taskvip.utils.exceptions import UserNotFound, VipAlreadyActive


async def _available(session, user_id):
    return (await BalanceService(session).get_balance(user_id)).available


class TestPurchase:
    """Test successful purchases."""

    @pytest.mark.asyncio
    async def test_buyer_upgraded_and_rewarded(self, session, make_user):
        """VIP 3 lasts 30 days and credits a 150 bonus at once."""
        user = await make_user()
        now = utc_now()

        result = await VipService(session).purchase(
            user.id, 3, "pay-1", now=now
        )

        assert result.user.vip_level == 3
        assert ensure_utc(result.user.vip_expiry) == now + timedelta(days=30)
        assert result.grant.grant_type == GrantType.VIP_PURCHASE
        assert result.grant.amount == Decimal("150")
        assert result.commissions == []
        assert await _available(session, user.id) == Decimal("150")

    @pytest.mark.asyncio
    async def test_upline_paid_on_plan_price(self, session, make_chain):
        """D buys VIP 3 for 1000: C earns 200, B 100, A 50."""
        a, b, c, d = await make_chain(1, 0, 0, 0)

        result = await VipService(session).purchase(d.id, 3, "pay-1")

        paid = {
            item.to_user_id: item.commission_amount
            for item in result.commissions
        }
        assert paid == {
            c.id: Decimal("200"),
            b.id: Decimal("100"),
            a.id: Decimal("50"),
        }
        assert all(
            item.status == CommissionStatus.PAID for item in result.commissions
        )
        assert all(
            item.transaction_type == TransactionType.VIP_PURCHASE
            for item in result.commissions
        )
        assert result.commissions[0].details == {
            "vip_level": 3,
            "plan_price": "1000",
        }
        assert await _available(session, c.id) == Decimal("200")
        assert await _available(session, d.id) == Decimal("150")

    @pytest.mark.asyncio
    async def test_expired_membership_can_be_renewed(self, session, make_user):
        """A lapsed tier no longer blocks a new purchase."""
        user = await make_user(
            vip_level=2, vip_expiry=utc_now() - timedelta(days=1)
        )

        result = await VipService(session).purchase(user.id, 1, "pay-2")

        assert result.user.vip_level == 1
        assert await _available(session, user.id) == Decimal("50")

    @pytest.mark.asyncio
    async def test_engine_purchase(self, session, make_chain):
        """The engine entry point commits the purchase."""
        _, d = await make_chain(0, 0)

        result = await RewardsEngine(session).purchase_vip(d.id, 1, "pay-3")

        assert result.user.vip_level == 1
        assert [item.commission_amount for item in result.commissions] == [
            Decimal("60")
        ]


class TestRejectedPurchase:
    """Test purchases that are refused."""

    @pytest.mark.asyncio
    async def test_active_membership_rejected(self, session, make_chain):
        """Buyers with an unexpired tier cannot buy again."""
        _, d = await make_chain(0, 0)
        service = VipService(session)
        await service.purchase(d.id, 1, "pay-1")

        with pytest.raises(VipAlreadyActive) as exc_info:
            await service.purchase(d.id, 2, "pay-2")

        assert exc_info.value.vip_level == 1
        commissions = await CommissionRepository(session).get_for_event(
            d.id, "pay-2"
        )
        assert commissions == []
        assert await _available(session, d.id) == Decimal("50")

    @pytest.mark.asyncio
    async def test_unknown_user(self, session):
        """Purchases need an existing buyer."""
        with pytest.raises(UserNotFound):
            await VipService(session).purchase(999, 1, "pay-1")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("vip_level", [0, 4, True])
    async def test_invalid_level(self, session, make_user, vip_level):
        """Only tiers 1-3 are for sale."""
        user = await make_user()

        with pytest.raises(ValueError):
            await VipService(session).purchase(user.id, vip_level, "pay-1")

        assert await _available(session, user.id) == Decimal("0")
