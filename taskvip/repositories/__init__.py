"""
Repositories package.

Data access layer over the SQLAlchemy models.
"""

from taskvip.repositories.balance_repository import (
    BalanceRepository,
    BalanceTransactionRepository,
)
from taskvip.repositories.base import BaseRepository
from taskvip.repositories.commission_repository import CommissionRepository
from taskvip.repositories.credit_grant_repository import CreditGrantRepository
from taskvip.repositories.referral_repository import ReferralRepository
from taskvip.repositories.task_completion_repository import (
    TaskCompletionRepository,
)
from taskvip.repositories.user_repository import UserDirectory, UserRepository
from taskvip.repositories.withdrawal_repository import WithdrawalRepository


__all__ = [
    "BaseRepository",
    "BalanceRepository",
    "BalanceTransactionRepository",
    "CommissionRepository",
    "CreditGrantRepository",
    "ReferralRepository",
    "TaskCompletionRepository",
    "UserDirectory",
    "UserRepository",
    "WithdrawalRepository",
]
