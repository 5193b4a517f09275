"""
Rewards engine.

In-process entry point used by request handlers. Each operation is one
unit of work: it commits on success and rolls back on failure.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from taskvip.config.business_constants import GrantType
from taskvip.models.commission_transaction import CommissionTransaction
from taskvip.models.credit_grant import CreditGrant
from taskvip.models.referral_record import ReferralRecord
from taskvip.repositories.user_repository import UserDirectory, UserRepository
from taskvip.services.balance_service import BalanceService
from taskvip.services.base_service import BaseService, transaction
from taskvip.services.credit.grant_service import CreditGrantService
from taskvip.services.credit.vesting import VestingSchedule
from taskvip.services.fraud.scorer import FraudScoreResult
from taskvip.services.referral.chain_manager import ReferralChainManager
from taskvip.services.referral.commission_processor import CommissionProcessor
from taskvip.services.vip_service import VipPurchase, VipService
from taskvip.utils.db_decorators import retry_on_conflict


class RewardsEngine(BaseService):
    """Referral chains, commissions, credit grants, VIP and balances."""

    def __init__(
        self, session: AsyncSession, users: UserDirectory | None = None
    ) -> None:
        """
        Initialize rewards engine.

        Args:
            session: Async database session
            users: User lookup (defaults to the users table)
        """
        super().__init__(session)
        users = users or UserRepository(session)
        self.balance_service = BalanceService(session)
        self.chain_manager = ReferralChainManager(session, users=users)
        self.commission_processor = CommissionProcessor(
            session, users=users, balance_service=self.balance_service
        )
        self.grant_service = CreditGrantService(
            session, balance_service=self.balance_service
        )
        self.vip_service = VipService(
            session,
            grant_service=self.grant_service,
            commission_processor=self.commission_processor,
        )

    @transaction
    async def build_referral_chain(
        self, referral_code: str, new_user_id: int
    ) -> ReferralRecord:
        """Capture the referral chain of a new user."""
        return await self.chain_manager.build_chain(referral_code, new_user_id)

    @transaction
    async def process_commissions(
        self,
        payer_id: int,
        amount: Decimal,
        transaction_type: str,
        transaction_id: str,
        metadata: dict[str, Any] | None = None,
        fraud_result: FraudScoreResult | None = None,
    ) -> list[CommissionTransaction]:
        """Pay commissions for a qualifying transaction."""
        return await self.commission_processor.process(
            payer_id,
            amount,
            transaction_type,
            transaction_id,
            metadata=metadata,
            fraud_result=fraud_result,
        )

    @transaction
    async def grant_credit(
        self,
        user_id: int,
        amount: Decimal,
        schedule: VestingSchedule | dict[str, Any] | None = None,
        source: str = "admin",
        grant_type: str = GrantType.ADMIN_ADJUSTMENT,
        description: str | None = None,
        fraud_result: FraudScoreResult | None = None,
    ) -> CreditGrant:
        """Create a vesting credit grant."""
        return await self.grant_service.grant(
            user_id,
            amount,
            schedule=schedule,
            source=source,
            grant_type=grant_type,
            description=description,
            fraud_result=fraud_result,
        )

    @retry_on_conflict(attempts=3)
    @transaction
    async def process_vesting(
        self, grant_id: int, now: datetime | None = None
    ) -> Decimal:
        """
        Release matured buckets of a grant.

        Retried when a concurrent release wins the race; the retry then
        sees the buckets as released and returns only what is left.
        """
        return await self.grant_service.process_vesting(grant_id, now)

    async def purchase_vip(
        self,
        user_id: int,
        vip_level: int,
        purchase_id: str,
        now: datetime | None = None,
    ) -> VipPurchase:
        """Buy a VIP membership; commits on its own."""
        return await self.vip_service.purchase(
            user_id, vip_level, purchase_id, now=now
        )

    async def get_available_balance(self, user_id: int) -> dict[str, Decimal]:
        """Total, available and withdrawable credits of a user."""
        snapshot = await self.balance_service.get_balance(user_id)
        return snapshot.to_dict()
