"""
Fraud signal collection.

Builds FraudSignals snapshots from stored completions, withdrawals,
users and balance history.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from taskvip.config.business_constants import (
    FRAUD_BURST_WINDOW,
    FRAUD_EARNINGS_WINDOW,
    FRAUD_FINGERPRINT_WINDOW,
    FRAUD_VOLUME_WINDOW,
    FRAUD_WITHDRAWAL_WINDOW,
)
from taskvip.repositories.balance_repository import (
    BalanceTransactionRepository,
)
from taskvip.repositories.task_completion_repository import (
    TaskCompletionRepository,
)
from taskvip.repositories.user_repository import UserRepository
from taskvip.repositories.withdrawal_repository import WithdrawalRepository
from taskvip.services.fraud.scorer import FraudSignals
from taskvip.utils.datetime_utils import ensure_utc, utc_now


class FraudSignalCollector:
    """Collects fraud signals for task completions and withdrawals."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize collector."""
        self.session = session
        self.completion_repo = TaskCompletionRepository(session)
        self.withdrawal_repo = WithdrawalRepository(session)
        self.balance_tx_repo = BalanceTransactionRepository(session)
        self.user_repo = UserRepository(session)

    async def for_task_completion(
        self,
        user_id: int,
        started_at: datetime,
        completed_at: datetime,
        estimated_seconds: int,
        device_fingerprint: str | None = None,
        ip_address: str | None = None,
    ) -> FraudSignals:
        """
        Collect signals for a completion that is about to be recorded.

        Counts cover previously stored completions only.

        Args:
            user_id: Completing user
            started_at: Task start time
            completed_at: Task completion time
            estimated_seconds: Expected task duration
            device_fingerprint: Device fingerprint, if known
            ip_address: IP address, if known

        Returns:
            FraudSignals snapshot
        """
        completed_at = ensure_utc(completed_at)
        elapsed = (completed_at - ensure_utc(started_at)).total_seconds()

        return FraudSignals(
            elapsed_seconds=max(elapsed, 0.0),
            estimated_seconds=float(estimated_seconds),
            completions_last_hour=await self.completion_repo.count_for_user_since(
                user_id, completed_at - FRAUD_VOLUME_WINDOW
            ),
            completions_last_5_minutes=(
                await self.completion_repo.count_for_user_since(
                    user_id, completed_at - FRAUD_BURST_WINDOW
                )
            ),
            fingerprint_completions_24h=(
                await self.completion_repo.count_for_fingerprint_since(
                    device_fingerprint,
                    ip_address,
                    completed_at - FRAUD_FINGERPRINT_WINDOW,
                )
            ),
        )

    async def for_withdrawal(
        self,
        user_id: int,
        amount: Decimal,
        now: datetime | None = None,
    ) -> FraudSignals:
        """
        Collect signals for a withdrawal request.

        Args:
            user_id: Requesting user
            amount: Requested amount
            now: Reference time (defaults to current UTC time)

        Returns:
            FraudSignals snapshot
        """
        now = ensure_utc(now) if now else utc_now()
        user = await self.user_repo.get_by_id(user_id)

        return FraudSignals(
            account_age_days=user.account_age_days(now) if user else None,
            withdrawals_last_7_days=await self.withdrawal_repo.count_since(
                user_id, now - FRAUD_WITHDRAWAL_WINDOW
            ),
            withdrawal_amount=amount,
            earnings_last_30_days=await self.balance_tx_repo.sum_earnings_since(
                user_id, now - FRAUD_EARNINGS_WINDOW
            ),
        )
