"""
Integration tests for balance accounts.

Tests cover:
- Credits, debits and their audit trail
- Withdrawable promotion rules
- Reversal and restore limits
- 0 <= withdrawable <= available <= total after every mutation
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from taskvip.models.balance_account import (
    BalanceAccount,
    BalanceEntryType,
    BalanceTransaction,
)
from taskvip.repositories.balance_repository import BalanceRepository
from taskvip.services.balance_service import BalanceService
from taskvip.utils.exceptions import BalanceError, InsufficientBalance


def _assert_invariant(snapshot):
    assert Decimal("0") <= snapshot.withdrawable
    assert snapshot.withdrawable <= snapshot.available
    assert snapshot.available <= snapshot.total


class TestCreditDebit:
    """Test basic mutations."""

    @pytest.mark.asyncio
    async def test_unknown_user_has_empty_balance(self, session):
        """Users never credited read as zero."""
        snapshot = await BalanceService(session).get_balance(12345)

        assert snapshot.to_dict() == {
            "total": Decimal("0"),
            "available": Decimal("0"),
            "withdrawable": Decimal("0"),
        }

    @pytest.mark.asyncio
    async def test_credit_then_debit(self, session, make_user):
        """Debits lower available credits only."""
        user = await make_user()
        service = BalanceService(session)

        await service.credit(user.id, Decimal("100"))
        await service.debit(user.id, Decimal("30"))

        snapshot = await service.get_balance(user.id)
        assert snapshot.total == Decimal("100")
        assert snapshot.available == Decimal("70")
        _assert_invariant(snapshot)

    @pytest.mark.asyncio
    async def test_account_created_concurrently(
        self, session, make_user, monkeypatch
    ):
        """Losing the account creation race keeps the winner's account."""
        user = await make_user()
        service = BalanceService(session)
        await service.credit(user.id, Decimal("100"))
        await session.commit()

        # Existence check misses the account another caller just created
        monkeypatch.setattr(
            BalanceRepository, "exists", AsyncMock(return_value=False)
        )
        await service.credit(user.id, Decimal("40"))
        await session.commit()

        accounts = await session.execute(
            select(BalanceAccount).where(BalanceAccount.user_id == user.id)
        )
        assert len(accounts.scalars().all()) == 1
        snapshot = await service.get_balance(user.id)
        assert snapshot.total == Decimal("140")
        assert snapshot.available == Decimal("140")

    @pytest.mark.asyncio
    async def test_overdraft_rejected(self, session, make_user):
        """Balance never goes negative."""
        user = await make_user()
        service = BalanceService(session)
        await service.credit(user.id, Decimal("50"))

        with pytest.raises(InsufficientBalance) as exc_info:
            await service.debit(user.id, Decimal("51"))

        assert exc_info.value.available == Decimal("50")
        assert (await service.get_balance(user.id)).available == Decimal("50")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1")])
    async def test_non_positive_amounts(self, session, make_user, amount):
        """Zero and negative mutations are programming errors."""
        user = await make_user()

        with pytest.raises(ValueError):
            await BalanceService(session).credit(user.id, amount)

    @pytest.mark.asyncio
    async def test_audit_trail(self, session, make_user):
        """Each mutation leaves a signed audit entry."""
        user = await make_user()
        service = BalanceService(session)
        await service.credit(
            user.id,
            Decimal("100"),
            entry_type=BalanceEntryType.COMMISSION,
            reference_type="commission",
            reference_id=7,
        )
        await service.debit(user.id, Decimal("40"))

        result = await session.execute(
            select(BalanceTransaction)
            .where(BalanceTransaction.user_id == user.id)
            .order_by(BalanceTransaction.id)
        )
        entries = result.scalars().all()

        assert [(e.entry_type, e.amount) for e in entries] == [
            (BalanceEntryType.COMMISSION, Decimal("100")),
            (BalanceEntryType.REDEMPTION, Decimal("-40")),
        ]
        assert entries[0].reference_id == 7


class TestWithdrawable:
    """Test withdrawable credits."""

    @pytest.mark.asyncio
    async def test_promotion_needs_verification(self, session, make_user):
        """Unverified users never get withdrawable credits."""
        user = await make_user(is_verified=False)
        service = BalanceService(session)
        await service.credit(user.id, Decimal("500"))

        assert await service.promote_to_withdrawable(user.id) is False
        assert (await service.get_balance(user.id)).withdrawable == Decimal("0")

    @pytest.mark.asyncio
    async def test_promotion_needs_minimum(self, session, make_user):
        """Available credits below the minimum stay non-withdrawable."""
        user = await make_user(is_verified=True)
        service = BalanceService(session)
        await service.credit(user.id, Decimal("99"))

        assert await service.promote_to_withdrawable(user.id) is False

        await service.credit(user.id, Decimal("1"))
        assert await service.promote_to_withdrawable(user.id) is True
        assert (await service.get_balance(user.id)).withdrawable == Decimal("100")

    @pytest.mark.asyncio
    async def test_debit_clamps_withdrawable(self, session, make_user):
        """Spending below the withdrawable amount lowers it too."""
        user = await make_user(is_verified=True)
        service = BalanceService(session)
        await service.credit(user.id, Decimal("200"))
        await service.promote_to_withdrawable(user.id)

        await service.debit(user.id, Decimal("150"))

        snapshot = await service.get_balance(user.id)
        assert snapshot.available == Decimal("50")
        assert snapshot.withdrawable == Decimal("50")
        _assert_invariant(snapshot)

    @pytest.mark.asyncio
    async def test_debit_from_withdrawable(self, session, make_user):
        """Withdrawals need enough withdrawable credits."""
        user = await make_user(is_verified=True)
        service = BalanceService(session)
        await service.credit(user.id, Decimal("200"))

        with pytest.raises(InsufficientBalance):
            await service.debit(
                user.id, Decimal("50"), from_withdrawable=True
            )

        await service.promote_to_withdrawable(user.id)
        await service.debit(user.id, Decimal("50"), from_withdrawable=True)

        snapshot = await service.get_balance(user.id)
        assert snapshot.available == Decimal("150")
        assert snapshot.withdrawable == Decimal("150")


class TestReverseRestore:
    """Test corrections."""

    @pytest.mark.asyncio
    async def test_reverse_lowers_total(self, session, make_user):
        """Reversals undo credits entirely."""
        user = await make_user()
        service = BalanceService(session)
        await service.credit(user.id, Decimal("100"))

        await service.reverse(user.id, Decimal("40"))

        snapshot = await service.get_balance(user.id)
        assert snapshot.total == Decimal("60")
        assert snapshot.available == Decimal("60")

    @pytest.mark.asyncio
    async def test_restore_cannot_exceed_total(self, session, make_user):
        """Refunds only give back what was debited."""
        user = await make_user()
        service = BalanceService(session)
        await service.credit(user.id, Decimal("100"))
        await service.debit(user.id, Decimal("30"))

        await service.restore(user.id, Decimal("30"))
        with pytest.raises(BalanceError):
            await service.restore(user.id, Decimal("1"))

        snapshot = await service.get_balance(user.id)
        assert snapshot.available == Decimal("100")
        _assert_invariant(snapshot)
