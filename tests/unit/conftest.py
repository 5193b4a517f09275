"""
Shared fixtures for unit tests.

This module provides common fixtures used across multiple test modules:
- CommissionCalculator instance
- In-memory credit grants (never flushed)
"""

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from taskvip.config.business_constants import VESTING_BUCKETS
from taskvip.models.credit_grant import CreditGrant, CreditGrantStatus
from taskvip.services.referral.commission_calculator import (
    CommissionCalculator,
)


GRANT_CREATED_AT = datetime(2026, 1, 5, 12, 0, tzinfo=UTC)


@pytest.fixture
def calculator():
    """
    Create CommissionCalculator instance.

    Returns:
        CommissionCalculator: Stateless rate table
    """
    return CommissionCalculator()


@pytest.fixture
def t0():
    """Creation time of grants built by make_grant."""
    return GRANT_CREATED_AT


@pytest.fixture
def make_grant():
    """
    Build a transient CreditGrant.

    Buckets are passed as keyword amounts; missing buckets are zero.
    """

    def _make_grant(status: str = CreditGrantStatus.VESTING, **buckets):
        values = {
            bucket: Decimal(str(buckets.get(bucket, 0)))
            for bucket in VESTING_BUCKETS
        }
        return CreditGrant(
            id=1,
            user_id=100,
            amount=sum(values.values(), Decimal("0")),
            grant_type="task_completion",
            source="ad_watch",
            status=status,
            is_vested=False,
            created_at=GRANT_CREATED_AT,
            **{f"schedule_{bucket}": value for bucket, value in values.items()},
            **{f"progress_{bucket}": Decimal("0") for bucket in VESTING_BUCKETS},
        )

    return _make_grant
