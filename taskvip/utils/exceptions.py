"""
Exception hierarchy for the rewards core.

Defines the error taxonomy raised by referral, commission, vesting, balance,
withdrawal and VIP operations, and marks which storage errors are retryable.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy.exc import OperationalError


if TYPE_CHECKING:
    from taskvip.services.fraud.scorer import FraudScoreResult


class TaskVipError(Exception):
    """Base class for all rewards core errors."""
    pass


# Referral chain construction


class ReferralError(TaskVipError):
    """Raised when a referral chain cannot be built."""
    pass


class InvalidReferralCode(ReferralError):
    """Referral code does not resolve to any user."""

    def __init__(self, referral_code: str) -> None:
        self.referral_code = referral_code
        super().__init__(f"Invalid referral code: {referral_code!r}")


class SelfReferralError(ReferralError):
    """User attempted to refer themselves."""

    def __init__(self, user_id: int, message: str | None = None) -> None:
        self.user_id = user_id
        super().__init__(message or f"User {user_id} cannot refer themselves")


class ReferralCycleError(SelfReferralError):
    """Derived ancestors would contain the new user or a repeated referrer."""

    def __init__(self, user_id: int, chain_ids: list[int]) -> None:
        self.chain_ids = chain_ids
        super().__init__(
            user_id,
            f"Referral chain {chain_ids} for user {user_id} would be cyclic",
        )


class DuplicateReferralRecord(ReferralError):
    """User already owns a referral record."""

    def __init__(self, user_id: int) -> None:
        self.user_id = user_id
        super().__init__(f"User {user_id} already has a referral record")


# Balances


class BalanceError(TaskVipError):
    """Raised when a balance mutation is rejected."""
    pass


class InsufficientBalance(BalanceError):
    """Debit would drive the balance negative."""

    def __init__(
        self, user_id: int, requested: Decimal, available: Decimal
    ) -> None:
        self.user_id = user_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient balance for user {user_id}: "
            f"requested {requested}, available {available}"
        )


# Credit grants


class CreditGrantError(TaskVipError):
    """Raised when a credit grant operation is rejected."""
    pass


class CreditGrantNotFound(CreditGrantError):
    """Grant does not exist."""

    def __init__(self, grant_id: int) -> None:
        self.grant_id = grant_id
        super().__init__(f"Credit grant {grant_id} not found")


class InvalidVestingSchedule(CreditGrantError):
    """Vesting buckets are negative or do not sum to the grant amount."""
    pass


class AlreadyVestedError(CreditGrantError):
    """Grant is in a terminal state and cannot be modified."""

    def __init__(self, grant_id: int, status: str) -> None:
        self.grant_id = grant_id
        self.status = status
        super().__init__(
            f"Credit grant {grant_id} is already {status} and cannot be modified"
        )


# Withdrawals


class WithdrawalError(TaskVipError):
    """Raised when a withdrawal request is rejected."""
    pass


class IdentityNotVerified(WithdrawalError):
    """Withdrawals need a verified identity."""

    def __init__(self, user_id: int) -> None:
        self.user_id = user_id
        super().__init__(f"User {user_id} has not verified their identity")


class BelowMinimumWithdrawal(WithdrawalError):
    """Requested amount is below the configured minimum."""

    def __init__(self, amount: Decimal, minimum: Decimal) -> None:
        self.amount = amount
        self.minimum = minimum
        super().__init__(f"Withdrawal of {amount} is below minimum {minimum}")


class WithdrawalLimitExceeded(WithdrawalError):
    """Daily withdrawal limit would be exceeded."""

    def __init__(self, limit: Decimal, used: Decimal) -> None:
        self.limit = limit
        self.used = used
        super().__init__(
            f"Daily withdrawal limit exceeded. Limit: {limit}, used: {used}"
        )


class WithdrawalPending(WithdrawalError):
    """An earlier request is still open."""

    def __init__(self, user_id: int) -> None:
        self.user_id = user_id
        super().__init__(f"User {user_id} has an open withdrawal request")


class WithdrawalNotFound(WithdrawalError):
    """Withdrawal request does not exist."""

    def __init__(self, withdrawal_id: int) -> None:
        self.withdrawal_id = withdrawal_id
        super().__init__(f"Withdrawal request {withdrawal_id} not found")


class InvalidWithdrawalState(WithdrawalError):
    """Withdrawal request cannot make the requested transition."""

    def __init__(self, withdrawal_id: int, status: str) -> None:
        self.withdrawal_id = withdrawal_id
        self.status = status
        super().__init__(f"Withdrawal request {withdrawal_id} is {status}")


# Task rewards


class RewardError(TaskVipError):
    """Raised when a task reward operation is rejected."""
    pass


class TaskCompletionNotFound(RewardError):
    """Task completion does not exist."""

    def __init__(self, completion_id: int) -> None:
        self.completion_id = completion_id
        super().__init__(f"Task completion {completion_id} not found")


class InvalidCompletionState(RewardError):
    """Task completion cannot make the requested transition."""

    def __init__(self, completion_id: int, status: str) -> None:
        self.completion_id = completion_id
        self.status = status
        super().__init__(f"Task completion {completion_id} is {status}")


# VIP


class VipError(TaskVipError):
    """Raised when a VIP purchase is rejected."""
    pass


class UserNotFound(VipError):
    """Buyer does not exist."""

    def __init__(self, user_id: int) -> None:
        self.user_id = user_id
        super().__init__(f"User {user_id} not found")


class VipAlreadyActive(VipError):
    """Buyer still has an unexpired VIP membership."""

    def __init__(
        self, user_id: int, vip_level: int, expiry: datetime | None
    ) -> None:
        self.user_id = user_id
        self.vip_level = vip_level
        self.expiry = expiry
        super().__init__(
            f"User {user_id} already has active VIP {vip_level}"
            + (f" until {expiry.isoformat()}" if expiry else "")
        )


# Fraud


class FraudHoldError(TaskVipError):
    """
    Informational: a request was held for review.

    Core flows never raise this; held requests succeed with a pending status.
    Callers that prefer an exception can use FraudScoreResult.raise_if_held().
    """

    def __init__(self, result: FraudScoreResult) -> None:
        self.result = result
        super().__init__(
            f"Held for review (fraud score {result.score}: "
            f"{', '.join(result.triggered) or 'no rules'})"
        )


# Storage


class ConcurrentUpdateConflict(TaskVipError):
    """Lost update detected at the storage layer; retry the operation."""

    def __init__(self, entity: str, entity_id: int | None = None) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            f"Concurrent update conflict on {entity}"
            + (f" {entity_id}" if entity_id is not None else "")
        )


# Exception categories based on handling strategy

# Safe to retry after rollback
RETRYABLE = (
    ConcurrentUpdateConflict,
    OperationalError,  # Serialization failures, dropped connections
)


def is_retryable(exc: Exception) -> bool:
    """
    Check if exception can be retried after rollback.

    Args:
        exc: Exception to check

    Returns:
        True if the operation may succeed on retry
    """
    return isinstance(exc, RETRYABLE)
