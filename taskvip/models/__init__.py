"""
Database models.

Exports all SQLAlchemy models for easy imports.
"""

from taskvip.models.balance_account import (
    BalanceAccount,
    BalanceEntryStatus,
    BalanceEntryType,
    BalanceTransaction,
)
from taskvip.models.base import Base
from taskvip.models.commission_transaction import (
    CommissionStatus,
    CommissionTransaction,
)
from taskvip.models.credit_grant import (
    CreditGrant,
    CreditGrantStatus,
    CreditVestingRelease,
)
from taskvip.models.referral_record import (
    ReferralChainEntry,
    ReferralRecord,
    ReferralStatus,
)
from taskvip.models.task_completion import TaskCompletion, TaskCompletionStatus
from taskvip.models.user import User
from taskvip.models.withdrawal_request import (
    WithdrawalRequest,
    WithdrawalStatus,
)


__all__ = [
    # Base
    "Base",
    # Users
    "User",
    # Referrals
    "ReferralRecord",
    "ReferralChainEntry",
    "ReferralStatus",
    "CommissionTransaction",
    "CommissionStatus",
    # Credits
    "CreditGrant",
    "CreditGrantStatus",
    "CreditVestingRelease",
    "BalanceAccount",
    "BalanceTransaction",
    "BalanceEntryType",
    "BalanceEntryStatus",
    # Rewards and withdrawals
    "TaskCompletion",
    "TaskCompletionStatus",
    "WithdrawalRequest",
    "WithdrawalStatus",
]
