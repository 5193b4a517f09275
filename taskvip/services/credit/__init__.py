"""
Credit grant services.

- vesting: VestingSchedule value object and the pure VestingScheduler
- grant_service: CreditGrantService persisting grants and releases
"""

from taskvip.services.credit.grant_service import CreditGrantService, SweepResult
from taskvip.services.credit.vesting import VestingSchedule, VestingScheduler


__all__ = [
    "CreditGrantService",
    "SweepResult",
    "VestingSchedule",
    "VestingScheduler",
]
