"""
Vesting schedule and scheduler.

A grant's amount is split into four buckets that mature at fixed offsets
from its creation. The scheduler is pure: it moves matured buckets into
progress on an in-memory grant and reports only the newly released delta.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from taskvip.config.business_constants import (
    VESTING_BUCKET_ALIASES,
    VESTING_BUCKETS,
    VESTING_OFFSETS,
)
from taskvip.models.credit_grant import CreditGrant, CreditGrantStatus
from taskvip.utils.datetime_utils import ensure_utc
from taskvip.utils.exceptions import InvalidVestingSchedule


@dataclass(frozen=True)
class VestingSchedule:
    """Amounts per vesting bucket."""

    immediate: Decimal = Decimal("0")
    after_1_day: Decimal = Decimal("0")
    after_7_days: Decimal = Decimal("0")
    after_30_days: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        for bucket in VESTING_BUCKETS:
            value = getattr(self, bucket)
            if not isinstance(value, Decimal):
                value = Decimal(str(value))
                object.__setattr__(self, bucket, value)
            if not value.is_finite() or value < 0:
                raise InvalidVestingSchedule(
                    f"Bucket {bucket} must be a non-negative amount, got {value}"
                )

    @classmethod
    def immediate_only(cls, amount: Decimal) -> "VestingSchedule":
        """Whole amount available at once."""
        return cls(immediate=amount)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, object]) -> "VestingSchedule":
        """
        Build a schedule from bucket names.

        Accepts both ``after_1_day`` and ``after1Day`` spellings; missing
        buckets are zero.

        Raises:
            InvalidVestingSchedule: On unknown bucket names or bad amounts
        """
        values: dict[str, Decimal] = {}
        for key, value in mapping.items():
            bucket = VESTING_BUCKET_ALIASES.get(key, key)
            if bucket not in VESTING_OFFSETS:
                raise InvalidVestingSchedule(f"Unknown vesting bucket: {key!r}")
            if bucket in values:
                raise InvalidVestingSchedule(f"Duplicate vesting bucket: {key!r}")
            values[bucket] = Decimal(str(value))
        return cls(**values)

    @property
    def total(self) -> Decimal:
        return sum(
            (getattr(self, bucket) for bucket in VESTING_BUCKETS),
            Decimal("0"),
        )

    def as_columns(self) -> dict[str, Decimal]:
        """Model column values for CreditGrant."""
        return {
            f"schedule_{bucket}": getattr(self, bucket)
            for bucket in VESTING_BUCKETS
        }


class VestingScheduler:
    """Releases matured buckets of a grant in memory."""

    def matured_buckets(self, grant: CreditGrant, now: datetime) -> list[str]:
        """
        Buckets whose maturity has passed and that are still unreleased.

        Grants that are on hold or terminal have no matured buckets.

        Args:
            grant: Credit grant
            now: Reference time

        Returns:
            Bucket names in release order
        """
        if grant.status != CreditGrantStatus.VESTING or grant.is_vested:
            return []

        now = ensure_utc(now)
        created_at = ensure_utc(grant.created_at)
        return [
            bucket
            for bucket, offset in VESTING_OFFSETS.items()
            if grant.scheduled(bucket) > 0
            and grant.released(bucket) == 0
            and created_at + offset <= now
        ]

    def process_vesting(self, grant: CreditGrant, now: datetime) -> Decimal:
        """
        Release every matured bucket and return the newly released amount.

        Calling again with no newly matured bucket returns 0. The grant is
        marked vested once everything scheduled has been released.

        Args:
            grant: Credit grant (mutated)
            now: Reference time

        Returns:
            Amount released by this call only
        """
        released = Decimal("0")
        for bucket in self.matured_buckets(grant, now):
            released += grant.mark_released(bucket)

        if (
            grant.status == CreditGrantStatus.VESTING
            and not grant.is_vested
            and grant.total_vested == grant.amount
        ):
            grant.is_vested = True
            grant.status = CreditGrantStatus.VESTED
            grant.vested_at = ensure_utc(now)

        return released
