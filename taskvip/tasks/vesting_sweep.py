"""
Vesting sweep.

Releases matured buckets of grants nobody has touched since they
matured. Vesting stays pull-based; this only shortens the lag.
"""

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from datetime import datetime

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from taskvip.services.credit.grant_service import CreditGrantService, SweepResult


async def run_vesting_sweep(
    session_factory: Callable[[], AbstractAsyncContextManager[AsyncSession]]
    | None = None,
    now: datetime | None = None,
    limit: int | None = None,
) -> SweepResult:
    """
    Run one sweep and commit it.

    Args:
        session_factory: Callable returning an async session context
            (defaults to the application session maker)
        now: Reference time (defaults to current UTC time)
        limit: Max grants to process (defaults to settings)

    Returns:
        Sweep counters
    """
    if session_factory is None:
        from taskvip.config.database import async_session_maker

        session_factory = async_session_maker

    async with session_factory() as session:
        try:
            result = await CreditGrantService(session).sweep_due_grants(
                now=now, limit=limit
            )
            await session.commit()
        except Exception:
            await session.rollback()
            logger.exception("Vesting sweep failed, rolled back")
            raise

    return result
