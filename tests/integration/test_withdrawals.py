"""
Integration tests for withdrawal requests.

Tests cover:
- Eligibility checks in order (identity, minimum, open request, daily limit)
- Approved and fraud-held requests
- Review lifecycle: approve, reject, complete
"""

from datetime import timedelta
from decimal import Decimal

import pytest
import pytest_asyncio

from taskvip.models.withdrawal_request import WithdrawalStatus
from taskvip.services.balance_service import BalanceService
from taskvip.services.credit.grant_service import CreditGrantService
from taskvip.services.withdrawal_service import WithdrawalService
from taskvip.utils.datetime_utils import utc_now
from taskvip.utils.exceptions import (
    BelowMinimumWithdrawal,
    IdentityNotVerified,
    InsufficientBalance,
    InvalidWithdrawalState,
    WithdrawalLimitExceeded,
    WithdrawalPending,
)


@pytest.fixture
def fund(session):
    """Credit a user through a fully vested grant."""

    async def _fund(user_id, amount):
        service = CreditGrantService(session)
        grant = await service.grant(user_id, Decimal(amount))
        await service.process_vesting(grant.id)
        await session.commit()

    return _fund


@pytest_asyncio.fixture
async def earner(make_user, fund):
    """Verified 90 day old user with 500 credits."""
    user = await make_user(is_verified=True)
    await fund(user.id, "500")
    return user


async def _balance(session, user_id):
    return await BalanceService(session).get_balance(user_id)


class TestRequestWithdrawal:
    """Test withdrawal requests."""

    @pytest.mark.asyncio
    async def test_clean_request_is_approved(self, session, earner):
        """Eligible requests are approved and debited at once."""
        withdrawal = await WithdrawalService(session).request_withdrawal(
            earner.id, Decimal("200"), "upi", {"vpa": "user@bank"}
        )

        balance = await _balance(session, earner.id)
        assert withdrawal.status == WithdrawalStatus.APPROVED
        assert withdrawal.fraud_score == 0
        assert balance.total == Decimal("500")
        assert balance.available == Decimal("300")
        assert balance.withdrawable == Decimal("300")

    @pytest.mark.asyncio
    async def test_new_account_is_held(self, session, make_user, fund):
        """A day-old account scores 80 and waits for review."""
        user = await make_user(
            is_verified=True, created_at=utc_now() - timedelta(hours=2)
        )
        await fund(user.id, "500")

        withdrawal = await WithdrawalService(session).request_withdrawal(
            user.id, Decimal("200"), "paypal"
        )

        assert withdrawal.status == WithdrawalStatus.PENDING
        assert withdrawal.fraud_score == 80
        assert set(withdrawal.fraud_flags) == {"new_account", "very_new_account"}
        assert (await _balance(session, user.id)).available == Decimal("300")

    @pytest.mark.asyncio
    async def test_unverified_user(self, session, make_user, fund):
        """Identity verification comes first."""
        user = await make_user(is_verified=False)
        user_id = user.id
        await fund(user_id, "500")

        with pytest.raises(IdentityNotVerified):
            await WithdrawalService(session).request_withdrawal(
                user_id, Decimal("200"), "upi"
            )

    @pytest.mark.asyncio
    async def test_below_minimum(self, session, earner):
        """Requests under the minimum are rejected."""
        with pytest.raises(BelowMinimumWithdrawal):
            await WithdrawalService(session).request_withdrawal(
                earner.id, Decimal("50"), "upi"
            )

    @pytest.mark.asyncio
    async def test_open_request_blocks_another(self, session, earner):
        """One open request per user."""
        earner_id = earner.id
        service = WithdrawalService(session)
        await service.request_withdrawal(earner_id, Decimal("100"), "upi")

        with pytest.raises(WithdrawalPending):
            await service.request_withdrawal(earner_id, Decimal("100"), "upi")

    @pytest.mark.asyncio
    async def test_daily_limit(self, session, make_user, fund):
        """Free users withdraw at most 1000 credits a day."""
        user = await make_user(is_verified=True)
        user_id = user.id
        await fund(user_id, "2000")
        service = WithdrawalService(session)
        first = await service.request_withdrawal(user_id, Decimal("600"), "upi")
        await service.complete_withdrawal(first.id)

        with pytest.raises(WithdrawalLimitExceeded) as exc_info:
            await service.request_withdrawal(user_id, Decimal("500"), "upi")

        assert exc_info.value.used == Decimal("600")
        assert (await _balance(session, user_id)).available == Decimal("1400")

    @pytest.mark.asyncio
    async def test_vip_daily_limit(self, session, make_user, fund):
        """VIP users get the higher limit."""
        user = await make_user(is_verified=True, vip_level=1)
        await fund(user.id, "2000")

        withdrawal = await WithdrawalService(session).request_withdrawal(
            user.id, Decimal("1500"), "bank"
        )

        assert withdrawal.status == WithdrawalStatus.APPROVED

    @pytest.mark.asyncio
    async def test_more_than_withdrawable(self, session, earner):
        """Requests beyond the balance fail without a record."""
        earner_id = earner.id

        with pytest.raises(InsufficientBalance):
            await WithdrawalService(session).request_withdrawal(
                earner_id, Decimal("600"), "upi"
            )

        assert (await _balance(session, earner_id)).available == Decimal("500")


class TestWithdrawalReview:
    """Test the review lifecycle."""

    @pytest.mark.asyncio
    async def test_reject_restores_funds(self, session, earner):
        """Rejected requests give the credits back."""
        service = WithdrawalService(session)
        withdrawal = await service.request_withdrawal(
            earner.id, Decimal("200"), "upi"
        )

        rejected = await service.reject_withdrawal(
            withdrawal.id, reason="payout details invalid"
        )

        assert rejected.status == WithdrawalStatus.REJECTED
        assert rejected.rejection_reason == "payout details invalid"
        assert rejected.processed_at is not None
        assert (await _balance(session, earner.id)).available == Decimal("500")

    @pytest.mark.asyncio
    async def test_approve_then_complete(self, session, make_user, fund):
        """Held requests are approved, then paid out."""
        user = await make_user(
            is_verified=True, created_at=utc_now() - timedelta(hours=2)
        )
        await fund(user.id, "500")
        service = WithdrawalService(session)
        withdrawal = await service.request_withdrawal(
            user.id, Decimal("200"), "paypal"
        )

        await service.approve_withdrawal(withdrawal.id)
        completed = await service.complete_withdrawal(withdrawal.id)

        assert completed.status == WithdrawalStatus.COMPLETED
        assert (await _balance(session, user.id)).available == Decimal("300")

    @pytest.mark.asyncio
    async def test_complete_requires_approval(self, session, make_user, fund):
        """Held requests cannot be paid out directly."""
        user = await make_user(
            is_verified=True, created_at=utc_now() - timedelta(hours=2)
        )
        await fund(user.id, "500")
        service = WithdrawalService(session)
        withdrawal = await service.request_withdrawal(
            user.id, Decimal("200"), "paypal"
        )
        withdrawal_id = withdrawal.id

        with pytest.raises(InvalidWithdrawalState):
            await service.complete_withdrawal(withdrawal_id)

    @pytest.mark.asyncio
    async def test_closed_request_cannot_be_rejected(self, session, earner):
        """Completed requests are final."""
        service = WithdrawalService(session)
        withdrawal = await service.request_withdrawal(
            earner.id, Decimal("200"), "upi"
        )
        withdrawal_id = withdrawal.id
        await service.complete_withdrawal(withdrawal_id)

        with pytest.raises(InvalidWithdrawalState):
            await service.reject_withdrawal(withdrawal_id, reason="late")
