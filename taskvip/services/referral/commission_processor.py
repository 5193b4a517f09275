"""
Commission processor.

Distributes commissions for one qualifying event across the payer's
referral chain: per-ancestor atomic, whole-chain best-effort. Each
ancestor's commission record and balance credit share a SAVEPOINT; a
failing ancestor is rolled back to it, recorded as ``failed`` and the
remaining ancestors are still paid.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from loguru import logger
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from taskvip.config.business_constants import TransactionType
from taskvip.models.balance_account import BalanceEntryType
from taskvip.models.commission_transaction import (
    CommissionStatus,
    CommissionTransaction,
)
from taskvip.repositories.commission_repository import CommissionRepository
from taskvip.repositories.referral_repository import ReferralRepository
from taskvip.repositories.user_repository import UserDirectory, UserRepository
from taskvip.services.balance_service import BalanceService, as_credits
from taskvip.services.fraud.scorer import FraudScoreResult
from taskvip.services.referral.commission_calculator import (
    CommissionCalculator,
)
from taskvip.utils.datetime_utils import ensure_utc, utc_now
from taskvip.utils.exceptions import TaskVipError


class CommissionProcessor:
    """Pays referral commissions for qualifying events."""

    def __init__(
        self,
        session: AsyncSession,
        users: UserDirectory | None = None,
        calculator: CommissionCalculator | None = None,
        balance_service: BalanceService | None = None,
    ) -> None:
        """
        Initialize commission processor.

        Args:
            session: Async database session
            users: User lookup for current VIP tiers
            calculator: Commission rate table
            balance_service: Balance service sharing the session
        """
        self.session = session
        self.users = users or UserRepository(session)
        self.calculator = calculator or CommissionCalculator()
        self.balance_service = balance_service or BalanceService(session)
        self.referral_repo = ReferralRepository(session)
        self.commission_repo = CommissionRepository(session)

    async def process(
        self,
        payer_id: int,
        amount: Decimal,
        transaction_type: str,
        transaction_id: str,
        metadata: dict[str, Any] | None = None,
        fraud_result: FraudScoreResult | None = None,
        now: datetime | None = None,
    ) -> list[CommissionTransaction]:
        """
        Pay commissions on a payer's qualifying transaction.

        Re-processing a transaction ID already seen for this payer is a
        no-op returning the commissions recorded the first time. A held
        fraud result records the commissions as ``pending`` without
        crediting anyone.

        Args:
            payer_id: User whose transaction qualifies
            amount: Transaction amount
            transaction_type: TransactionType value
            transaction_id: Caller-supplied transaction identity
            metadata: JSON-serializable event details
            fraud_result: Fraud score gating the payout
            now: Processing time (defaults to current UTC time)

        Returns:
            One commission per ancestor with a non-zero commission

        Raises:
            ValueError: On invalid amount, type or transaction ID
        """
        amount = as_credits(amount)
        if transaction_type not in TransactionType.ALL:
            raise ValueError(f"Unknown transaction type: {transaction_type!r}")
        if not transaction_id or not str(transaction_id).strip():
            raise ValueError("transaction_id is required")

        transaction_id = str(transaction_id).strip()
        now = ensure_utc(now) if now else utc_now()

        existing = await self.commission_repo.get_for_event(
            payer_id, transaction_id
        )
        if existing:
            logger.info(
                "Commission event already processed",
                extra={
                    "payer_id": payer_id,
                    "transaction_id": transaction_id,
                    "commissions": len(existing),
                },
            )
            return existing

        record = await self.referral_repo.get_by_user(payer_id)
        if record is None or not record.chain:
            return []
        if not record.is_active:
            logger.info(
                "Commissions skipped: referral record not active",
                extra={"payer_id": payer_id, "status": record.status},
            )
            return []

        chain = [(entry.level, entry.referrer_id) for entry in record.chain]
        held = fraud_result is not None and fraud_result.is_held

        results: list[CommissionTransaction] = []
        paid_total = Decimal("0")

        for level, ancestor_id in chain:
            ancestor = await self.users.get_by_id(ancestor_id)
            if ancestor is None:
                logger.warning(
                    "Commission skipped: ancestor not found",
                    extra={"payer_id": payer_id, "ancestor_id": ancestor_id},
                )
                continue

            percentage = self.calculator.rate(
                ancestor.effective_vip_level(now), level
            )
            commission_amount = self.calculator.commission(amount, percentage)
            if commission_amount <= 0:
                continue

            fields = {
                "from_user_id": payer_id,
                "to_user_id": ancestor_id,
                "level": level,
                "percentage": percentage,
                "original_amount": amount,
                "commission_amount": commission_amount,
                "transaction_type": transaction_type,
                "external_transaction_id": transaction_id,
                "fraud_score": fraud_result.score if fraud_result else None,
                "details": metadata,
                "created_at": now,
            }

            try:
                commission = await self._pay_ancestor(fields, held, now)
            except IntegrityError:
                duplicate = await self._find_level(payer_id, transaction_id, level)
                if duplicate is None:
                    raise
                results.append(duplicate)
                continue
            except (SQLAlchemyError, TaskVipError) as e:
                logger.error(
                    "Commission payout failed",
                    extra={
                        "payer_id": payer_id,
                        "ancestor_id": ancestor_id,
                        "level": level,
                        "amount": str(commission_amount),
                        "error": str(e),
                    },
                )
                commission = await self._record_failure(fields, e)
                if commission is None:
                    continue

            results.append(commission)
            if commission.status == CommissionStatus.PAID:
                paid_total += commission_amount

        if paid_total > 0:
            await self.referral_repo.add_commissions_paid(payer_id, paid_total)

        logger.info(
            "Commissions processed",
            extra={
                "payer_id": payer_id,
                "transaction_id": transaction_id,
                "transaction_type": transaction_type,
                "amount": str(amount),
                "paid_total": str(paid_total),
                "commissions": len(results),
                "held": held,
            },
        )
        return results

    async def _pay_ancestor(
        self, fields: dict[str, Any], held: bool, now: datetime
    ) -> CommissionTransaction:
        async with self.session.begin_nested():
            commission = CommissionTransaction(
                status=CommissionStatus.PENDING, **fields
            )
            self.session.add(commission)
            await self.session.flush()

            if held:
                return commission

            await self._credit(commission, now)
            return commission

    async def _credit(
        self, commission: CommissionTransaction, now: datetime
    ) -> None:
        await self.balance_service.credit(
            commission.to_user_id,
            commission.commission_amount,
            entry_type=BalanceEntryType.COMMISSION,
            reference_type="commission",
            reference_id=commission.id,
            description=(
                f"Level {commission.level} commission from user "
                f"{commission.from_user_id}"
            ),
        )
        await self.referral_repo.add_commissions_earned(
            commission.to_user_id, commission.commission_amount
        )
        commission.status = CommissionStatus.PAID
        commission.paid_at = now
        await self.session.flush()

    async def _record_failure(
        self, fields: dict[str, Any], error: Exception
    ) -> CommissionTransaction | None:
        try:
            async with self.session.begin_nested():
                commission = CommissionTransaction(
                    status=CommissionStatus.FAILED,
                    failure_reason=str(error)[:500],
                    **fields,
                )
                self.session.add(commission)
                await self.session.flush()
                return commission
        except SQLAlchemyError as e:
            logger.error(
                "Failed commission could not be recorded",
                extra={
                    "payer_id": fields["from_user_id"],
                    "ancestor_id": fields["to_user_id"],
                    "level": fields["level"],
                    "error": str(e),
                },
            )
            return None

    async def _find_level(
        self, payer_id: int, transaction_id: str, level: int
    ) -> CommissionTransaction | None:
        for commission in await self.commission_repo.get_for_event(
            payer_id, transaction_id
        ):
            if commission.level == level:
                return commission
        return None

    async def release_held(
        self,
        payer_id: int,
        transaction_id: str,
        now: datetime | None = None,
    ) -> list[CommissionTransaction]:
        """
        Pay commissions held by a fraud review.

        Args:
            payer_id: Payer user ID
            transaction_id: Transaction identity used when processing
            now: Payment time (defaults to current UTC time)

        Returns:
            Commissions that were pending, now paid or failed
        """
        now = ensure_utc(now) if now else utc_now()
        pending = await self.commission_repo.get_for_event(
            payer_id, transaction_id, status=CommissionStatus.PENDING
        )

        released: list[CommissionTransaction] = []
        paid_total = Decimal("0")

        for commission in pending:
            commission_id = commission.id
            amount = commission.commission_amount
            try:
                async with self.session.begin_nested():
                    await self._credit(commission, now)
                paid_total += amount
            except (SQLAlchemyError, TaskVipError) as e:
                logger.error(
                    "Held commission payout failed",
                    extra={"commission_id": commission_id, "error": str(e)},
                )
                await self.session.execute(
                    update(CommissionTransaction)
                    .where(CommissionTransaction.id == commission_id)
                    .values(
                        status=CommissionStatus.FAILED,
                        failure_reason=str(e)[:500],
                    )
                    .execution_options(synchronize_session=False)
                )
                await self.session.refresh(commission)
            released.append(commission)

        if paid_total > 0:
            await self.referral_repo.add_commissions_paid(payer_id, paid_total)

        logger.info(
            "Held commissions released",
            extra={
                "payer_id": payer_id,
                "transaction_id": transaction_id,
                "paid_total": str(paid_total),
                "commissions": len(released),
            },
        )
        return released

    async def cancel_held(
        self,
        payer_id: int,
        transaction_id: str,
        reason: str | None = None,
    ) -> list[CommissionTransaction]:
        """
        Cancel commissions held by a fraud review.

        Args:
            payer_id: Payer user ID
            transaction_id: Transaction identity used when processing
            reason: Cancellation reason

        Returns:
            Cancelled commissions
        """
        pending = await self.commission_repo.get_for_event(
            payer_id, transaction_id, status=CommissionStatus.PENDING
        )
        for commission in pending:
            commission.status = CommissionStatus.CANCELLED
            commission.failure_reason = reason
        await self.session.flush()

        logger.warning(
            "Held commissions cancelled",
            extra={
                "payer_id": payer_id,
                "transaction_id": transaction_id,
                "commissions": len(pending),
                "reason": reason,
            },
        )
        return pending
