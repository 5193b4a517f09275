"""
Periodic job scheduler.

Enqueues the vesting sweep on a fixed interval.
"""

import asyncio

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from jobs.tasks.vesting_sweep import sweep_vesting
from taskvip.config.logging import setup_logging

VESTING_SWEEP_INTERVAL_MINUTES = 15


def create_scheduler() -> AsyncIOScheduler:
    """
    Build the scheduler with all periodic jobs.

    Returns:
        Configured, not yet started scheduler
    """
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        sweep_vesting.send,
        "interval",
        minutes=VESTING_SWEEP_INTERVAL_MINUTES,
        id="vesting_sweep",
        name="Vesting sweep",
        max_instances=1,
        coalesce=True,
    )
    return scheduler


async def main() -> None:
    """Run the scheduler until cancelled."""
    setup_logging()
    scheduler = create_scheduler()
    scheduler.start()
    logger.info(
        "Scheduler started",
        extra={"jobs": [job.id for job in scheduler.get_jobs()]},
    )
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown(wait=False)


if __name__ == "__main__":
    asyncio.run(main())
