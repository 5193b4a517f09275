"""
Referral chain management module.

Captures a flat, immutable ancestor chain for a new user at signup.
Levels 2 and 3 are copied from the direct referrer's own persisted
chain, so building never walks live referrer pointers.
"""

from datetime import datetime
from decimal import Decimal

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from taskvip.models.referral_record import (
    ReferralChainEntry,
    ReferralRecord,
    ReferralStatus,
)
from taskvip.repositories.referral_repository import ReferralRepository
from taskvip.repositories.user_repository import UserDirectory, UserRepository
from taskvip.services.referral.commission_calculator import (
    CommissionCalculator,
)
from taskvip.services.referral.config import REFERRAL_DEPTH
from taskvip.utils.datetime_utils import ensure_utc, utc_now
from taskvip.utils.exceptions import (
    DuplicateReferralRecord,
    InvalidReferralCode,
    ReferralCycleError,
    ReferralError,
    SelfReferralError,
)


class ReferralChainManager:
    """Manages referral chain operations."""

    def __init__(
        self,
        session: AsyncSession,
        users: UserDirectory | None = None,
        calculator: CommissionCalculator | None = None,
    ) -> None:
        """
        Initialize chain manager.

        Args:
            session: Async database session
            users: User lookup (defaults to the users table)
            calculator: Commission rate table
        """
        self.session = session
        self.users = users or UserRepository(session)
        self.calculator = calculator or CommissionCalculator()
        self.referral_repo = ReferralRepository(session)

    async def build_chain(
        self,
        referral_code: str,
        new_user_id: int,
        now: datetime | None = None,
    ) -> ReferralRecord:
        """
        Create the referral record of a new user.

        Args:
            referral_code: Code the user signed up with
            new_user_id: New user ID
            now: Capture time (defaults to current UTC time)

        Returns:
            Created record with up to three ancestors

        Raises:
            InvalidReferralCode: If the code matches no user
            SelfReferralError: If the code belongs to the new user
            DuplicateReferralRecord: If the user already has a record
            ReferralCycleError: If the derived chain would contain the new
                user or repeat an ancestor
        """
        now = ensure_utc(now) if now else utc_now()

        referrer = await self.users.find_by_referral_code(referral_code)
        if referrer is None:
            logger.warning(
                "Referral rejected: unknown code",
                extra={"referral_code": referral_code, "new_user_id": new_user_id},
            )
            raise InvalidReferralCode(referral_code)

        if referrer.id == new_user_id:
            logger.warning(
                "Referral rejected: self-referral",
                extra={"new_user_id": new_user_id},
            )
            raise SelfReferralError(new_user_id)

        if await self.referral_repo.get_by_user(new_user_id) is not None:
            raise DuplicateReferralRecord(new_user_id)

        ancestor_ids = [referrer.id]
        parent_record = await self.referral_repo.get_by_user(referrer.id)
        if parent_record is not None:
            for level in range(1, REFERRAL_DEPTH):
                ancestor_id = parent_record.referrer_at(level)
                if ancestor_id is not None:
                    ancestor_ids.append(ancestor_id)

        if new_user_id in ancestor_ids or len(set(ancestor_ids)) != len(
            ancestor_ids
        ):
            logger.warning(
                "Referral loop detected",
                extra={"new_user_id": new_user_id, "chain_ids": ancestor_ids},
            )
            raise ReferralCycleError(new_user_id, ancestor_ids)

        entries: list[tuple[int, int, Decimal]] = []
        for level, ancestor_id in enumerate(ancestor_ids, start=1):
            ancestor = (
                referrer
                if ancestor_id == referrer.id
                else await self.users.get_by_id(ancestor_id)
            )
            vip_level = ancestor.effective_vip_level(now) if ancestor else 0
            entries.append(
                (level, ancestor_id, self.calculator.rate(vip_level, level))
            )

        try:
            async with self.session.begin_nested():
                record = await self.referral_repo.create_with_chain(
                    user_id=new_user_id,
                    referral_code=referral_code.strip(),
                    entries=entries,
                )
        except IntegrityError as e:
            # Another signup for the same user won the race
            raise DuplicateReferralRecord(new_user_id) from e

        logger.info(
            "Referral chain created",
            extra={
                "new_user_id": new_user_id,
                "direct_referrer_id": referrer.id,
                "chain_ids": ancestor_ids,
            },
        )
        return record

    async def get_record(self, user_id: int) -> ReferralRecord | None:
        """Referral record of a user, if any."""
        return await self.referral_repo.get_by_user(user_id)

    async def get_chain(self, user_id: int) -> list[ReferralChainEntry]:
        """
        Ancestors of a user ordered level 1 -> 3.

        Args:
            user_id: User ID

        Returns:
            Chain entries (empty if the user signed up without a code)
        """
        record = await self.referral_repo.get_by_user(user_id)
        return list(record.chain) if record else []

    async def set_status(self, user_id: int, status: str) -> ReferralRecord:
        """
        Administrative status change.

        Inactive and suspended records pay no commissions to their chain.

        Args:
            user_id: Owning user ID
            status: New ReferralStatus value

        Returns:
            Updated record

        Raises:
            ValueError: If the status is unknown
            ReferralError: If the user has no record
        """
        if status not in ReferralStatus.ALL:
            raise ValueError(f"Unknown referral status: {status!r}")

        record = await self.referral_repo.get_by_user(user_id)
        if record is None:
            raise ReferralError(f"User {user_id} has no referral record")

        previous = record.status
        record.status = status
        await self.session.flush()

        logger.info(
            "Referral record status changed",
            extra={"user_id": user_id, "from": previous, "to": status},
        )
        return record
