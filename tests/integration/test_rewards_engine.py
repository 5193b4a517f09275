"""
Integration tests for the rewards engine entry point.

Each engine call is its own unit of work; these tests check that results
survive into a fresh session.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from taskvip.config.business_constants import TransactionType
from taskvip.services.rewards_engine import RewardsEngine
from taskvip.utils.datetime_utils import utc_now
from taskvip.utils.exceptions import InvalidReferralCode


class TestRewardsEngine:
    """Test end-to-end flows through the engine."""

    @pytest.mark.asyncio
    async def test_signup_and_commission(self, session, session_maker, make_user):
        """Chain capture and commissions are committed."""
        referrer = await make_user(vip_level=3)
        new_user = await make_user()
        engine = RewardsEngine(session)

        await engine.build_referral_chain(referrer.referral_code, new_user.id)
        commissions = await engine.process_commissions(
            new_user.id,
            Decimal("100"),
            TransactionType.COIN_PURCHASE,
            "order-1",
            metadata={"payment_method": "upi"},
        )

        async with session_maker() as fresh:
            balance = await RewardsEngine(fresh).get_available_balance(
                referrer.id
            )
        assert commissions[0].details == {"payment_method": "upi"}
        assert balance["available"] == Decimal("50")

    @pytest.mark.asyncio
    async def test_failed_signup_rolls_back(self, session, make_user):
        """Errors propagate and leave nothing behind."""
        new_user = await make_user()
        new_user_id = new_user.id
        engine = RewardsEngine(session)

        with pytest.raises(InvalidReferralCode):
            await engine.build_referral_chain("MISSING", new_user_id)

        assert await engine.chain_manager.get_record(new_user_id) is None

    @pytest.mark.asyncio
    async def test_grant_and_vest(self, session, make_user):
        """Admin grants vest through the engine."""
        user = await make_user()
        engine = RewardsEngine(session)

        grant = await engine.grant_credit(
            user.id,
            Decimal("100"),
            schedule={"immediate": 50, "after1Day": 50},
            description="Welcome bonus",
        )
        grant_id = grant.id

        assert await engine.process_vesting(grant_id) == Decimal("50")
        assert await engine.process_vesting(grant_id) == Decimal("0")
        assert await engine.process_vesting(
            grant_id, utc_now() + timedelta(hours=25)
        ) == Decimal("50")

        balance = await engine.get_available_balance(user.id)
        assert balance == {
            "total": Decimal("100"),
            "available": Decimal("100"),
            "withdrawable": Decimal("0"),
        }
