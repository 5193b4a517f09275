"""
Vesting sweep task.

Releases matured vesting buckets of idle credit grants.
"""

import dramatiq
from loguru import logger

import jobs.broker  # noqa: F401  (actors bind to the Redis broker)
from jobs.async_runner import create_local_session, run_async
from taskvip.tasks.vesting_sweep import run_vesting_sweep


@dramatiq.actor(max_retries=3, time_limit=300_000)  # 5 min timeout
def sweep_vesting(limit: int | None = None) -> None:
    """
    Release matured buckets of due grants.

    Args:
        limit: Max grants to process (defaults to settings)
    """
    logger.info("Starting vesting sweep...")

    result = run_async(
        run_vesting_sweep(session_factory=create_local_session, limit=limit)
    )

    logger.info(
        f"Vesting sweep complete: {result.grants_processed} grants, "
        f"{result.credits_released} credits released, "
        f"{result.conflicts} conflicts"
    )
