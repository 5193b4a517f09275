"""
VIP service.

Paid VIP memberships. A purchase sets the buyer's tier for
VIP_DURATION, grants a bonus of VIP_BONUS_PER_LEVEL credits per tier and
pays referral commissions on the plan price.
"""

from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from taskvip.config.business_constants import (
    VIP_BONUS_PER_LEVEL,
    VIP_DURATION,
    VIP_PLAN_PRICES,
    GrantSource,
    GrantType,
    TransactionType,
)
from taskvip.models.commission_transaction import CommissionTransaction
from taskvip.models.credit_grant import CreditGrant
from taskvip.models.user import User
from taskvip.repositories.user_repository import UserRepository
from taskvip.services.base_service import BaseService, transaction
from taskvip.services.credit.grant_service import CreditGrantService
from taskvip.services.referral.commission_processor import CommissionProcessor
from taskvip.utils.datetime_utils import ensure_utc, utc_now
from taskvip.utils.exceptions import UserNotFound, VipAlreadyActive


@dataclass
class VipPurchase:
    """Outcome of a VIP purchase."""

    user: User
    grant: CreditGrant
    commissions: list[CommissionTransaction] = field(default_factory=list)


class VipService(BaseService):
    """VIP membership purchases."""

    def __init__(
        self,
        session: AsyncSession,
        grant_service: CreditGrantService | None = None,
        commission_processor: CommissionProcessor | None = None,
    ) -> None:
        """
        Initialize VIP service.

        Args:
            session: Async database session
            grant_service: Credit grant service sharing the session
            commission_processor: Commission processor sharing the session
        """
        super().__init__(session)
        self.grant_service = grant_service or CreditGrantService(session)
        self.commission_processor = commission_processor or CommissionProcessor(
            session, balance_service=self.grant_service.balance_service
        )
        self.user_repo = UserRepository(session)

    @transaction
    async def purchase(
        self,
        user_id: int,
        vip_level: int,
        purchase_id: str,
        now: datetime | None = None,
    ) -> VipPurchase:
        """
        Buy a VIP membership.

        Args:
            user_id: Buyer
            vip_level: Purchased tier (1-3)
            purchase_id: Payment identity, used as the commission
                transaction ID
            now: Purchase time (defaults to current UTC time)

        Returns:
            Upgraded user, bonus grant and upline commissions

        Raises:
            ValueError: On an unknown tier or empty purchase ID
            UserNotFound: If the buyer does not exist
            VipAlreadyActive: If the buyer's membership has not expired
        """
        if isinstance(vip_level, bool) or vip_level not in VIP_PLAN_PRICES:
            raise ValueError(f"Invalid VIP level: {vip_level!r}")
        if not purchase_id or not str(purchase_id).strip():
            raise ValueError("purchase_id is required")

        purchase_id = str(purchase_id).strip()
        now = ensure_utc(now) if now else utc_now()
        price = VIP_PLAN_PRICES[vip_level]

        user = await self.user_repo.get_for_update(user_id)
        if user is None:
            raise UserNotFound(user_id)
        active_level = user.effective_vip_level(now)
        if active_level > 0:
            raise VipAlreadyActive(user_id, active_level, user.vip_expiry)

        user.vip_level = vip_level
        user.vip_expiry = now + VIP_DURATION
        await self.session.flush()

        grant = await self.grant_service.grant(
            user_id=user_id,
            amount=VIP_BONUS_PER_LEVEL * vip_level,
            source=GrantSource.VIP_UPGRADE,
            grant_type=GrantType.VIP_PURCHASE,
            description=f"VIP {vip_level} purchase bonus",
            now=now,
            details={"purchase_id": purchase_id},
        )
        await self.grant_service.process_vesting(grant.id, now)

        commissions = await self.commission_processor.process(
            user_id,
            price,
            TransactionType.VIP_PURCHASE,
            purchase_id,
            metadata={"vip_level": vip_level, "plan_price": str(price)},
            now=now,
        )

        self.logger.info(
            "VIP purchased",
            extra={
                "user_id": user_id,
                "vip_level": vip_level,
                "purchase_id": purchase_id,
                "price": str(price),
                "expiry": user.vip_expiry.isoformat(),
                "commissions": len(commissions),
            },
        )
        return VipPurchase(user=user, grant=grant, commissions=commissions)
