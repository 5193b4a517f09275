"""
Credit grant service.

Creates vesting credit grants and releases matured buckets into the
owner's balance. Each release runs in its own SAVEPOINT: the grant row is
locked, one release event per bucket is inserted under a unique
(grant_id, bucket) key, the grant's version is bumped and the balance is
credited by exactly the released delta. A lost race surfaces as
ConcurrentUpdateConflict and leaves nothing applied.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from taskvip.config.business_constants import GrantType
from taskvip.config.settings import settings
from taskvip.models.balance_account import BalanceEntryType
from taskvip.models.credit_grant import CreditGrant, CreditGrantStatus
from taskvip.repositories.credit_grant_repository import CreditGrantRepository
from taskvip.services.balance_service import BalanceService, as_credits
from taskvip.services.base_service import BaseService, log_operation
from taskvip.services.credit.vesting import VestingSchedule, VestingScheduler
from taskvip.services.fraud.scorer import FraudScoreResult
from taskvip.utils.datetime_utils import ensure_utc, utc_now
from taskvip.utils.exceptions import (
    AlreadyVestedError,
    ConcurrentUpdateConflict,
    CreditGrantNotFound,
    InvalidVestingSchedule,
)


@dataclass
class SweepResult:
    """Outcome of one vesting sweep run."""

    grants_processed: int = 0
    credits_released: Decimal = Decimal("0")
    conflicts: int = 0


class CreditGrantService(BaseService):
    """Creates grants and applies vesting releases."""

    def __init__(
        self,
        session: AsyncSession,
        balance_service: BalanceService | None = None,
        scheduler: VestingScheduler | None = None,
    ) -> None:
        """
        Initialize credit grant service.

        Args:
            session: Async database session
            balance_service: Balance service sharing the session
            scheduler: Vesting scheduler
        """
        super().__init__(session)
        self.grant_repo = CreditGrantRepository(session)
        self.balance_service = balance_service or BalanceService(session)
        self.scheduler = scheduler or VestingScheduler()

    async def get_grant(self, grant_id: int) -> CreditGrant:
        """
        Get grant by ID.

        Raises:
            CreditGrantNotFound: If the grant does not exist
        """
        grant = await self.grant_repo.get_by_id(grant_id)
        if grant is None:
            raise CreditGrantNotFound(grant_id)
        return grant

    async def grant(
        self,
        user_id: int,
        amount: Decimal,
        schedule: VestingSchedule | dict[str, Any] | None = None,
        source: str = "admin",
        grant_type: str = GrantType.TASK_COMPLETION,
        description: str | None = None,
        fraud_result: FraudScoreResult | None = None,
        now: datetime | None = None,
        details: dict[str, Any] | None = None,
    ) -> CreditGrant:
        """
        Create a credit grant.

        Nothing is released here; callers apply process_vesting. A held
        grant (fraud score above threshold) is stored ``on_hold`` and
        releases nothing until the hold is cleared.

        Args:
            user_id: Grant owner
            amount: Total grant amount
            schedule: Bucket split (defaults to everything immediate)
            source: Where the credit came from
            grant_type: Why the credit was granted
            description: Human readable description
            fraud_result: Fraud score gating this grant
            now: Creation time (defaults to current UTC time)
            details: Extra JSON metadata

        Returns:
            Created grant

        Raises:
            InvalidVestingSchedule: If the amount is not positive or the
                buckets do not sum to it
        """
        try:
            amount = as_credits(amount)
        except ValueError as e:
            raise InvalidVestingSchedule(str(e)) from e

        if schedule is None:
            schedule = VestingSchedule.immediate_only(amount)
        elif not isinstance(schedule, VestingSchedule):
            schedule = VestingSchedule.from_mapping(schedule)

        if schedule.total != amount:
            raise InvalidVestingSchedule(
                f"Vesting schedule sums to {schedule.total}, expected {amount}"
            )

        now = ensure_utc(now) if now else utc_now()
        held = fraud_result is not None and fraud_result.is_held

        grant = await self.grant_repo.create(
            user_id=user_id,
            amount=amount,
            grant_type=grant_type,
            source=source,
            description=description,
            status=(
                CreditGrantStatus.ON_HOLD if held else CreditGrantStatus.VESTING
            ),
            fraud_score=fraud_result.score if fraud_result else 0,
            fraud_flags=list(fraud_result.triggered) if fraud_result else None,
            details=details,
            created_at=now,
            **schedule.as_columns(),
        )

        self.logger.info(
            "Credit grant created",
            extra={
                "grant_id": grant.id,
                "user_id": user_id,
                "amount": str(amount),
                "source": source,
                "held": held,
                "fraud_score": grant.fraud_score,
            },
        )

        return grant

    async def process_vesting(
        self, grant_id: int, now: datetime | None = None
    ) -> Decimal:
        """
        Release matured buckets of a grant into its owner's balance.

        Idempotent: a repeated call with nothing newly matured returns 0.

        Args:
            grant_id: Grant ID
            now: Reference time (defaults to current UTC time)

        Returns:
            Newly released amount

        Raises:
            CreditGrantNotFound: If the grant does not exist
            ConcurrentUpdateConflict: If another caller released concurrently
        """
        now = ensure_utc(now) if now else utc_now()

        try:
            async with self.session.begin_nested():
                grant = await self.grant_repo.get_for_update(grant_id)
                if grant is None:
                    raise CreditGrantNotFound(grant_id)
                return await self._release(grant, now)
        except (IntegrityError, StaleDataError) as e:
            self.logger.warning(
                "Vesting release lost a concurrent update",
                extra={"grant_id": grant_id, "error": type(e).__name__},
            )
            raise ConcurrentUpdateConflict("credit_grant", grant_id) from e

    async def _release(self, grant: CreditGrant, now: datetime) -> Decimal:
        buckets = self.scheduler.matured_buckets(grant, now)
        if not buckets:
            return Decimal("0")

        grant_id = grant.id
        user_id = grant.user_id

        for bucket in buckets:
            await self.grant_repo.add_release(
                grant_id, bucket, grant.scheduled(bucket), now
            )

        released = self.scheduler.process_vesting(grant, now)
        await self.session.flush()

        if released > 0:
            await self.balance_service.credit(
                user_id,
                released,
                entry_type=BalanceEntryType.GRANT_RELEASE,
                reference_type="credit_grant",
                reference_id=grant_id,
                description=f"Vesting release: {', '.join(buckets)}",
            )

        self.logger.info(
            "Vesting buckets released",
            extra={
                "grant_id": grant_id,
                "user_id": user_id,
                "buckets": buckets,
                "released": str(released),
                "is_vested": grant.is_vested,
            },
        )
        return released

    async def release_hold(
        self, grant_id: int, now: datetime | None = None
    ) -> Decimal:
        """
        Clear a fraud hold and release whatever has matured.

        Args:
            grant_id: Grant ID
            now: Reference time (defaults to current UTC time)

        Returns:
            Newly released amount

        Raises:
            CreditGrantNotFound: If the grant does not exist
            AlreadyVestedError: If the grant is vested or cancelled
        """
        now = ensure_utc(now) if now else utc_now()

        try:
            async with self.session.begin_nested():
                grant = await self.grant_repo.get_for_update(grant_id)
                if grant is None:
                    raise CreditGrantNotFound(grant_id)
                if grant.is_terminal:
                    raise AlreadyVestedError(grant_id, grant.status)
                if grant.status == CreditGrantStatus.ON_HOLD:
                    grant.status = CreditGrantStatus.VESTING
                    await self.session.flush()
                    self.logger.info(
                        "Credit grant hold released",
                        extra={"grant_id": grant_id, "user_id": grant.user_id},
                    )
        except StaleDataError as e:
            raise ConcurrentUpdateConflict("credit_grant", grant_id) from e

        return await self.process_vesting(grant_id, now)

    async def cancel(
        self,
        grant_id: int,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> CreditGrant:
        """
        Stop all future releases of a grant.

        Credits already released stay in the balance.

        Args:
            grant_id: Grant ID
            reason: Cancellation reason
            now: Cancellation time (defaults to current UTC time)

        Returns:
            Cancelled grant

        Raises:
            CreditGrantNotFound: If the grant does not exist
            AlreadyVestedError: If the grant is vested or cancelled
        """
        return await self._terminate(grant_id, reason, now, claw_back=False)

    async def claw_back(
        self,
        grant_id: int,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> CreditGrant:
        """
        Cancel a grant and take back every credit it released.

        Unlike cancel, this also applies to fully vested grants.

        Args:
            grant_id: Grant ID
            reason: Reversal reason
            now: Reversal time (defaults to current UTC time)

        Returns:
            Cancelled grant

        Raises:
            CreditGrantNotFound: If the grant does not exist
            AlreadyVestedError: If the grant is already cancelled
            InsufficientBalance: If released credits were already spent
        """
        return await self._terminate(grant_id, reason, now, claw_back=True)

    async def _terminate(
        self,
        grant_id: int,
        reason: str | None,
        now: datetime | None,
        claw_back: bool,
    ) -> CreditGrant:
        now = ensure_utc(now) if now else utc_now()

        try:
            async with self.session.begin_nested():
                grant = await self.grant_repo.get_for_update(grant_id)
                if grant is None:
                    raise CreditGrantNotFound(grant_id)
                if grant.status == CreditGrantStatus.CANCELLED or (
                    grant.is_terminal and not claw_back
                ):
                    raise AlreadyVestedError(grant_id, grant.status)

                user_id = grant.user_id
                released = grant.total_vested

                grant.status = CreditGrantStatus.CANCELLED
                grant.cancelled_at = now
                grant.cancel_reason = reason
                await self.session.flush()

                if claw_back and released > 0:
                    await self.balance_service.reverse(
                        user_id,
                        released,
                        reference_type="credit_grant",
                        reference_id=grant_id,
                        description=reason,
                    )
        except StaleDataError as e:
            raise ConcurrentUpdateConflict("credit_grant", grant_id) from e

        self.logger.warning(
            "Credit grant cancelled",
            extra={
                "grant_id": grant_id,
                "user_id": user_id,
                "released": str(released),
                "clawed_back": claw_back,
                "reason": reason,
            },
        )
        return grant

    @log_operation
    async def sweep_due_grants(
        self, now: datetime | None = None, limit: int | None = None
    ) -> SweepResult:
        """
        Release matured buckets of every due grant.

        Conflicting grants are skipped; another caller already released them.

        Args:
            now: Reference time (defaults to current UTC time)
            limit: Max grants per run (defaults to settings)

        Returns:
            Sweep counters
        """
        now = ensure_utc(now) if now else utc_now()
        limit = limit or settings.vesting_sweep_batch_size

        result = SweepResult()
        for grant_id in await self.grant_repo.find_due_ids(now, limit):
            try:
                released = await self.process_vesting(grant_id, now)
            except ConcurrentUpdateConflict:
                result.conflicts += 1
                continue
            result.grants_processed += 1
            result.credits_released += released

        self.logger.info(
            "Vesting sweep finished",
            extra={
                "grants_processed": result.grants_processed,
                "credits_released": str(result.credits_released),
                "conflicts": result.conflicts,
            },
        )
        return result
