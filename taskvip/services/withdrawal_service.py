"""
Withdrawal service.

Cash-out requests against withdrawable credits. Requests are validated
(identity, minimum, open requests, daily limit), scored for fraud and
debited atomically; held requests wait as ``pending`` with the funds
already reserved.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from taskvip.config.settings import settings
from taskvip.models.balance_account import BalanceEntryType
from taskvip.models.withdrawal_request import (
    WithdrawalRequest,
    WithdrawalStatus,
)
from taskvip.repositories.user_repository import UserRepository
from taskvip.repositories.withdrawal_repository import WithdrawalRepository
from taskvip.services.balance_service import BalanceService, as_credits
from taskvip.services.base_service import BaseService, transaction
from taskvip.services.fraud.scorer import FraudScorer
from taskvip.services.fraud.signals import FraudSignalCollector
from taskvip.utils.datetime_utils import ensure_utc, utc_now
from taskvip.utils.exceptions import (
    BelowMinimumWithdrawal,
    IdentityNotVerified,
    InvalidWithdrawalState,
    WithdrawalError,
    WithdrawalLimitExceeded,
    WithdrawalNotFound,
    WithdrawalPending,
)


class WithdrawalService(BaseService):
    """Withdrawal requests and their review lifecycle."""

    def __init__(
        self,
        session: AsyncSession,
        scorer: FraudScorer | None = None,
        balance_service: BalanceService | None = None,
    ) -> None:
        """
        Initialize withdrawal service.

        Args:
            session: Async database session
            scorer: Fraud scorer (defaults to the standard rule table)
            balance_service: Balance service sharing the session
        """
        super().__init__(session)
        self.scorer = scorer or FraudScorer(
            hold_threshold=settings.fraud_hold_threshold
        )
        self.balance_service = balance_service or BalanceService(session)
        self.collector = FraudSignalCollector(session)
        self.withdrawal_repo = WithdrawalRepository(session)
        self.user_repo = UserRepository(session)

    @transaction
    async def request_withdrawal(
        self,
        user_id: int,
        amount: Decimal,
        method: str,
        payment_details: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> WithdrawalRequest:
        """
        Create a withdrawal request and reserve its funds.

        Args:
            user_id: Requesting user
            amount: Credits to withdraw
            method: Payout method (upi, paypal, bank...)
            payment_details: Payout destination details
            now: Request time (defaults to current UTC time)

        Returns:
            Request with status ``approved``, or ``pending`` when held

        Raises:
            IdentityNotVerified: If the user is not verified
            BelowMinimumWithdrawal: If the amount is below the minimum
            WithdrawalPending: If an earlier request is still open
            WithdrawalLimitExceeded: If the daily limit would be exceeded
            InsufficientBalance: If withdrawable credits do not cover it
        """
        amount = as_credits(amount)
        now = ensure_utc(now) if now else utc_now()

        user = await self.user_repo.get_by_id(user_id)
        if user is None:
            raise WithdrawalError(f"User {user_id} not found")
        if not user.is_verified:
            raise IdentityNotVerified(user_id)

        minimum = settings.min_withdrawable_credits
        if amount < minimum:
            raise BelowMinimumWithdrawal(amount, minimum)

        for status in WithdrawalStatus.OPEN:
            if await self.withdrawal_repo.exists(user_id=user_id, status=status):
                raise WithdrawalPending(user_id)

        limit = (
            settings.withdrawal_daily_limit_vip
            if user.effective_vip_level(now) > 0
            else settings.withdrawal_daily_limit
        )
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        used = await self.withdrawal_repo.sum_since(user_id, day_start)
        if used + amount > limit:
            raise WithdrawalLimitExceeded(limit, used)

        await self.balance_service.promote_to_withdrawable(user_id)

        signals = await self.collector.for_withdrawal(user_id, amount, now)
        fraud_result = self.scorer.score(signals)

        withdrawal = await self.withdrawal_repo.create(
            user_id=user_id,
            amount=amount,
            method=method,
            payment_details=payment_details,
            status=(
                WithdrawalStatus.PENDING
                if fraud_result.is_held
                else WithdrawalStatus.APPROVED
            ),
            fraud_score=fraud_result.score,
            fraud_flags=list(fraud_result.triggered),
            created_at=now,
        )

        await self.balance_service.debit(
            user_id,
            amount,
            entry_type=BalanceEntryType.WITHDRAWAL,
            reference_type="withdrawal",
            reference_id=withdrawal.id,
            description=f"Withdrawal via {method}",
            from_withdrawable=True,
        )

        self.logger.info(
            "Withdrawal requested",
            extra={
                "withdrawal_id": withdrawal.id,
                "user_id": user_id,
                "amount": str(amount),
                "status": withdrawal.status,
                "fraud_score": fraud_result.score,
                "triggered": list(fraud_result.triggered),
            },
        )
        return withdrawal

    async def _get_withdrawal(self, withdrawal_id: int) -> WithdrawalRequest:
        withdrawal = await self.withdrawal_repo.get_for_update(withdrawal_id)
        if withdrawal is None:
            raise WithdrawalNotFound(withdrawal_id)
        return withdrawal

    @transaction
    async def approve_withdrawal(self, withdrawal_id: int) -> WithdrawalRequest:
        """
        Clear a held request for payout.

        Raises:
            WithdrawalNotFound: If the request does not exist
            InvalidWithdrawalState: If the request is not pending
        """
        withdrawal = await self._get_withdrawal(withdrawal_id)
        if withdrawal.status != WithdrawalStatus.PENDING:
            raise InvalidWithdrawalState(withdrawal_id, withdrawal.status)

        withdrawal.status = WithdrawalStatus.APPROVED
        await self.session.flush()

        self.logger.info(
            "Withdrawal approved",
            extra={"withdrawal_id": withdrawal_id, "user_id": withdrawal.user_id},
        )
        return withdrawal

    @transaction
    async def reject_withdrawal(
        self,
        withdrawal_id: int,
        reason: str,
        now: datetime | None = None,
    ) -> WithdrawalRequest:
        """
        Reject an open request and give the reserved credits back.

        Raises:
            WithdrawalNotFound: If the request does not exist
            InvalidWithdrawalState: If the request is already closed
        """
        withdrawal = await self._get_withdrawal(withdrawal_id)
        if withdrawal.status not in WithdrawalStatus.OPEN:
            raise InvalidWithdrawalState(withdrawal_id, withdrawal.status)

        await self.balance_service.restore(
            withdrawal.user_id,
            withdrawal.amount,
            reference_type="withdrawal",
            reference_id=withdrawal_id,
            description=reason,
        )

        withdrawal.status = WithdrawalStatus.REJECTED
        withdrawal.rejection_reason = reason
        withdrawal.processed_at = ensure_utc(now) if now else utc_now()
        await self.session.flush()

        self.logger.warning(
            "Withdrawal rejected",
            extra={
                "withdrawal_id": withdrawal_id,
                "user_id": withdrawal.user_id,
                "amount": str(withdrawal.amount),
                "reason": reason,
            },
        )
        return withdrawal

    @transaction
    async def complete_withdrawal(
        self, withdrawal_id: int, now: datetime | None = None
    ) -> WithdrawalRequest:
        """
        Mark an approved request as paid out.

        Raises:
            WithdrawalNotFound: If the request does not exist
            InvalidWithdrawalState: If the request is not approved
        """
        withdrawal = await self._get_withdrawal(withdrawal_id)
        if withdrawal.status != WithdrawalStatus.APPROVED:
            raise InvalidWithdrawalState(withdrawal_id, withdrawal.status)

        withdrawal.status = WithdrawalStatus.COMPLETED
        withdrawal.processed_at = ensure_utc(now) if now else utc_now()
        await self.session.flush()

        self.logger.info(
            "Withdrawal completed",
            extra={
                "withdrawal_id": withdrawal_id,
                "user_id": withdrawal.user_id,
                "amount": str(withdrawal.amount),
            },
        )
        return withdrawal
