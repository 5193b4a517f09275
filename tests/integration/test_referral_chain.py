"""
Integration tests for referral chain capture.

Tests cover:
- Flattened three-level chains
- Capture-time rates by VIP tier
- Rejected codes, self-referral, duplicates and loops
- Status changes
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from taskvip.models.referral_record import ReferralStatus
from taskvip.services.referral.chain_manager import ReferralChainManager
from taskvip.utils.datetime_utils import utc_now
from taskvip.utils.exceptions import (
    DuplicateReferralRecord,
    InvalidReferralCode,
    ReferralCycleError,
    ReferralError,
    SelfReferralError,
)


def _levels(record):
    return [(entry.level, entry.referrer_id) for entry in record.chain]


class TestBuildChain:
    """Test chain construction."""

    @pytest.mark.asyncio
    async def test_direct_referral(self, session, make_user):
        """Signing up with a code stores the owner as level 1."""
        referrer = await make_user()
        new_user = await make_user()

        record = await ReferralChainManager(session).build_chain(
            referrer.referral_code, new_user.id
        )

        assert record.user_id == new_user.id
        assert record.status == ReferralStatus.ACTIVE
        assert _levels(record) == [(1, referrer.id)]
        assert record.chain[0].percentage == Decimal("20")

    @pytest.mark.asyncio
    async def test_chain_is_truncated_at_three_levels(self, session, make_chain):
        """Fifth generation sees only its three closest ancestors."""
        a, b, c, d, e = await make_chain(0, 0, 0, 0, 0)

        chain = await ReferralChainManager(session).get_chain(e.id)

        assert [(entry.level, entry.referrer_id) for entry in chain] == [
            (1, d.id),
            (2, c.id),
            (3, b.id),
        ]

    @pytest.mark.asyncio
    async def test_capture_rate_uses_vip_tier(self, session, make_user):
        """Level 1 rate follows the referrer's tier at signup."""
        referrer = await make_user(vip_level=2)
        new_user = await make_user()

        record = await ReferralChainManager(session).build_chain(
            referrer.referral_code, new_user.id
        )

        assert record.chain[0].percentage == Decimal("40")

    @pytest.mark.asyncio
    async def test_expired_vip_counts_as_free(self, session, make_user):
        """Lapsed VIP tiers earn the free rate."""
        referrer = await make_user(
            vip_level=3, vip_expiry=utc_now() - timedelta(days=1)
        )
        new_user = await make_user()

        record = await ReferralChainManager(session).build_chain(
            referrer.referral_code, new_user.id
        )

        assert record.chain[0].percentage == Decimal("20")

    @pytest.mark.asyncio
    async def test_code_whitespace_is_ignored(self, session, make_user):
        """Codes pasted with surrounding spaces still resolve."""
        referrer = await make_user()
        new_user = await make_user()

        record = await ReferralChainManager(session).build_chain(
            f"  {referrer.referral_code} ", new_user.id
        )

        assert record.referral_code == referrer.referral_code

    @pytest.mark.asyncio
    async def test_user_without_record_has_empty_chain(self, session, make_user):
        """Users who signed up without a code have no ancestors."""
        user = await make_user()

        manager = ReferralChainManager(session)

        assert await manager.get_chain(user.id) == []
        assert await manager.get_record(user.id) is None


class TestRejectedChains:
    """Test chain validation errors."""

    @pytest.mark.asyncio
    async def test_unknown_code(self, session, make_user):
        """Codes that match no user are rejected."""
        new_user = await make_user()

        with pytest.raises(InvalidReferralCode):
            await ReferralChainManager(session).build_chain("NOPE", new_user.id)

    @pytest.mark.asyncio
    async def test_self_referral(self, session, make_user):
        """Users cannot sign up with their own code."""
        user = await make_user()

        with pytest.raises(SelfReferralError):
            await ReferralChainManager(session).build_chain(
                user.referral_code, user.id
            )

    @pytest.mark.asyncio
    async def test_duplicate_record(self, session, make_chain, make_user):
        """A user's chain is captured only once."""
        a, b = await make_chain(0, 0)
        other = await make_user()

        with pytest.raises(DuplicateReferralRecord):
            await ReferralChainManager(session).build_chain(
                other.referral_code, b.id
            )

    @pytest.mark.asyncio
    async def test_loop_is_rejected(self, session, make_chain):
        """A root user cannot join below their own descendant."""
        a, b = await make_chain(0, 0)

        with pytest.raises(ReferralCycleError) as exc_info:
            await ReferralChainManager(session).build_chain(
                b.referral_code, a.id
            )

        assert a.id in exc_info.value.chain_ids
        assert isinstance(exc_info.value, SelfReferralError)


class TestReferralStatus:
    """Test administrative status changes."""

    @pytest.mark.asyncio
    async def test_set_status(self, session, make_chain):
        """Records can be suspended."""
        a, b = await make_chain(0, 0)

        record = await ReferralChainManager(session).set_status(
            b.id, ReferralStatus.SUSPENDED
        )

        assert record.status == ReferralStatus.SUSPENDED
        assert record.is_active is False

    @pytest.mark.asyncio
    async def test_unknown_status(self, session, make_chain):
        """Only known statuses are accepted."""
        a, b = await make_chain(0, 0)

        with pytest.raises(ValueError):
            await ReferralChainManager(session).set_status(b.id, "banned")

    @pytest.mark.asyncio
    async def test_status_without_record(self, session, make_user):
        """Users without a record cannot change status."""
        user = await make_user()

        with pytest.raises(ReferralError):
            await ReferralChainManager(session).set_status(
                user.id, ReferralStatus.INACTIVE
            )
