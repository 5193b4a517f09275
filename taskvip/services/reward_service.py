"""
Reward service.

Records reward-bearing task completions. Each completion is scored for
fraud, backed by a credit grant and released immediately unless the
score holds it for review. App installs also pay referral commissions on
a share of the reward, held together with the reward when flagged.
"""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from taskvip.config.business_constants import (
    APP_INSTALL_COMMISSION_SHARE,
    CREDIT_QUANTUM,
    GrantSource,
    GrantType,
    TransactionType,
)
from taskvip.config.settings import settings
from taskvip.models.task_completion import TaskCompletion, TaskCompletionStatus
from taskvip.repositories.task_completion_repository import (
    TaskCompletionRepository,
)
from taskvip.services.balance_service import as_credits
from taskvip.services.base_service import BaseService, transaction
from taskvip.services.credit.grant_service import CreditGrantService
from taskvip.services.credit.vesting import VestingSchedule
from taskvip.services.fraud.scorer import FraudScorer, FraudScoreResult
from taskvip.services.fraud.signals import FraudSignalCollector
from taskvip.services.referral.commission_processor import CommissionProcessor
from taskvip.utils.datetime_utils import ensure_utc, utc_now
from taskvip.utils.exceptions import (
    InvalidCompletionState,
    TaskCompletionNotFound,
)


# Task type -> credit grant source
TASK_SOURCES = {
    "ad_watch": GrantSource.AD_WATCH,
    "offer": GrantSource.OFFER_COMPLETION,
    "survey": GrantSource.SURVEY_COMPLETION,
    "app_install": GrantSource.APP_INSTALL,
}


class RewardService(BaseService):
    """Task completion rewards gated by fraud scoring."""

    def __init__(
        self,
        session: AsyncSession,
        scorer: FraudScorer | None = None,
        grant_service: CreditGrantService | None = None,
        commission_processor: CommissionProcessor | None = None,
    ) -> None:
        """
        Initialize reward service.

        Args:
            session: Async database session
            scorer: Fraud scorer (defaults to the standard rule table)
            grant_service: Credit grant service sharing the session
            commission_processor: Commission processor sharing the session
        """
        super().__init__(session)
        self.scorer = scorer or FraudScorer(
            hold_threshold=settings.fraud_hold_threshold
        )
        self.grant_service = grant_service or CreditGrantService(session)
        self.commission_processor = commission_processor or CommissionProcessor(
            session, balance_service=self.grant_service.balance_service
        )
        self.collector = FraudSignalCollector(session)
        self.completion_repo = TaskCompletionRepository(session)

    @transaction
    async def complete_task(
        self,
        user_id: int,
        task_type: str,
        reward_amount: Decimal,
        started_at: datetime,
        estimated_seconds: int,
        completed_at: datetime | None = None,
        external_transaction_id: str | None = None,
        device_fingerprint: str | None = None,
        ip_address: str | None = None,
        schedule: VestingSchedule | dict | None = None,
    ) -> TaskCompletion:
        """
        Record a task completion and its reward.

        A held completion (score above threshold) is ``pending`` with an
        ``on_hold`` grant: the user's available credits do not change.

        Args:
            user_id: Completing user
            task_type: One of TASK_SOURCES
            reward_amount: Credits earned
            started_at: Task start time
            estimated_seconds: Expected task duration
            completed_at: Completion time (defaults to current UTC time)
            external_transaction_id: Ad network transaction ID
            device_fingerprint: Device fingerprint, if known
            ip_address: IP address, if known
            schedule: Vesting split (defaults to everything immediate)

        Returns:
            Recorded completion
        """
        if task_type not in TASK_SOURCES:
            raise ValueError(f"Unknown task type: {task_type!r}")
        if estimated_seconds <= 0:
            raise ValueError("estimated_seconds must be positive")

        reward_amount = as_credits(reward_amount)
        completed_at = ensure_utc(completed_at) if completed_at else utc_now()
        started_at = ensure_utc(started_at)

        signals = await self.collector.for_task_completion(
            user_id=user_id,
            started_at=started_at,
            completed_at=completed_at,
            estimated_seconds=estimated_seconds,
            device_fingerprint=device_fingerprint,
            ip_address=ip_address,
        )
        fraud_result = self.scorer.score(signals)

        grant = await self.grant_service.grant(
            user_id=user_id,
            amount=reward_amount,
            schedule=schedule,
            source=TASK_SOURCES[task_type],
            grant_type=GrantType.TASK_COMPLETION,
            description=f"Completed {task_type}",
            fraud_result=fraud_result,
            now=completed_at,
            details={"external_transaction_id": external_transaction_id},
        )
        if not fraud_result.is_held:
            await self.grant_service.process_vesting(grant.id, completed_at)

        completion = await self.completion_repo.create(
            user_id=user_id,
            task_type=task_type,
            external_transaction_id=external_transaction_id,
            device_fingerprint=device_fingerprint,
            ip_address=ip_address,
            started_at=started_at,
            completed_at=completed_at,
            estimated_seconds=estimated_seconds,
            reward_amount=reward_amount,
            status=(
                TaskCompletionStatus.PENDING
                if fraud_result.is_held
                else TaskCompletionStatus.COMPLETED
            ),
            fraud_score=fraud_result.score,
            fraud_flags=list(fraud_result.triggered),
            grant_id=grant.id,
        )

        if task_type == "app_install":
            await self._pay_install_commissions(
                completion, fraud_result, completed_at
            )

        log = self.logger.warning if fraud_result.is_held else self.logger.info
        log(
            "Task completion recorded",
            extra={
                "completion_id": completion.id,
                "user_id": user_id,
                "task_type": task_type,
                "reward": str(reward_amount),
                "fraud_score": fraud_result.score,
                "triggered": list(fraud_result.triggered),
                "held": fraud_result.is_held,
            },
        )
        return completion

    async def _pay_install_commissions(
        self,
        completion: TaskCompletion,
        fraud_result: FraudScoreResult,
        now: datetime,
    ) -> None:
        base = (completion.reward_amount * APP_INSTALL_COMMISSION_SHARE).quantize(
            CREDIT_QUANTUM, rounding=ROUND_HALF_UP
        )
        # Rewards under 5 credits round to a zero commission base
        if base <= 0:
            return

        await self.commission_processor.process(
            completion.user_id,
            base,
            TransactionType.APP_INSTALL,
            str(completion.id),
            metadata={
                "completion_id": completion.id,
                "reward": str(completion.reward_amount),
            },
            fraud_result=fraud_result,
            now=now,
        )

    async def _get_completion(self, completion_id: int) -> TaskCompletion:
        completion = await self.completion_repo.get_for_update(completion_id)
        if completion is None:
            raise TaskCompletionNotFound(completion_id)
        return completion

    @transaction
    async def release_completion(
        self, completion_id: int, now: datetime | None = None
    ) -> Decimal:
        """
        Approve a held completion and release its reward.

        Commissions held with an app install are paid at the same time.

        Args:
            completion_id: Task completion ID
            now: Review time (defaults to current UTC time)

        Returns:
            Credits released into the balance
        """
        completion = await self._get_completion(completion_id)
        if completion.status != TaskCompletionStatus.PENDING:
            raise InvalidCompletionState(completion_id, completion.status)

        released = await self.grant_service.release_hold(
            completion.grant_id, now
        )
        if completion.task_type == "app_install":
            await self.commission_processor.release_held(
                completion.user_id, str(completion.id), now
            )
        completion.status = TaskCompletionStatus.COMPLETED
        await self.session.flush()

        self.logger.info(
            "Held task completion released",
            extra={
                "completion_id": completion_id,
                "user_id": completion.user_id,
                "released": str(released),
            },
        )
        return released

    @transaction
    async def reverse_completion(
        self,
        completion_id: int,
        reason: str,
        now: datetime | None = None,
    ) -> TaskCompletion:
        """
        Reject a completion: cancel its grant and take back released credits.

        Commissions still held with an app install are cancelled; ones
        already paid stay with the referrers.

        Args:
            completion_id: Task completion ID
            reason: Reviewer's reason
            now: Review time (defaults to current UTC time)

        Returns:
            Reversed completion
        """
        completion = await self._get_completion(completion_id)
        if completion.status == TaskCompletionStatus.REVERSED:
            raise InvalidCompletionState(completion_id, completion.status)

        await self.grant_service.claw_back(
            completion.grant_id, reason=reason, now=now
        )
        if completion.task_type == "app_install":
            await self.commission_processor.cancel_held(
                completion.user_id, str(completion.id), reason=reason
            )
        completion.status = TaskCompletionStatus.REVERSED
        await self.session.flush()

        self.logger.warning(
            "Task completion reversed",
            extra={
                "completion_id": completion_id,
                "user_id": completion.user_id,
                "reason": reason,
            },
        )
        return completion
