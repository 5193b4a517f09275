"""
Credit grant repository.

Data access layer for CreditGrant and CreditVestingRelease models.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskvip.config.business_constants import VESTING_OFFSETS
from taskvip.models.credit_grant import (
    CreditGrant,
    CreditGrantStatus,
    CreditVestingRelease,
)
from taskvip.repositories.base import BaseRepository


class CreditGrantRepository(BaseRepository[CreditGrant]):
    """Credit grant repository with vesting queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize credit grant repository."""
        super().__init__(CreditGrant, session)

    async def add_release(
        self,
        grant_id: int,
        bucket: str,
        amount: Decimal,
        released_at: datetime,
    ) -> CreditVestingRelease:
        """
        Append a release event for one bucket.

        Raises IntegrityError on flush if the bucket was already released.

        Args:
            grant_id: Grant ID
            bucket: Bucket name
            amount: Released amount
            released_at: Release timestamp

        Returns:
            Created release event
        """
        release = CreditVestingRelease(
            grant_id=grant_id,
            bucket=bucket,
            amount=amount,
            released_at=released_at,
        )
        self.session.add(release)
        await self.session.flush()
        return release

    async def find_due_ids(self, now: datetime, limit: int = 500) -> list[int]:
        """
        Find vesting grants with at least one matured, unreleased bucket.

        Args:
            now: Reference time
            limit: Max number of grants

        Returns:
            Grant IDs, oldest first
        """
        matured = [
            and_(
                getattr(CreditGrant, f"schedule_{bucket}") > 0,
                getattr(CreditGrant, f"progress_{bucket}") == 0,
                CreditGrant.created_at <= now - offset,
            )
            for bucket, offset in VESTING_OFFSETS.items()
        ]
        stmt = (
            select(CreditGrant.id)
            .where(
                CreditGrant.status == CreditGrantStatus.VESTING,
                CreditGrant.is_vested.is_(False),
                or_(*matured),
            )
            .order_by(CreditGrant.created_at, CreditGrant.id)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [row[0] for row in result.all()]
