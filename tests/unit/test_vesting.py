"""
Unit tests for vesting schedules and the in-memory scheduler.

Tests cover:
- Schedule validation and bucket aliases
- Matured bucket selection by offset
- Release deltas and idempotence
- Vested and on-hold grants
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from taskvip.models.credit_grant import CreditGrantStatus
from taskvip.services.credit.vesting import VestingSchedule, VestingScheduler
from taskvip.utils.exceptions import InvalidVestingSchedule


class TestVestingSchedule:
    """Test schedule construction."""

    def test_immediate_only(self):
        """Whole amount lands in the immediate bucket."""
        schedule = VestingSchedule.immediate_only(Decimal("100"))

        assert schedule.immediate == Decimal("100")
        assert schedule.total == Decimal("100")

    def test_from_mapping_accepts_aliases(self):
        """Camel-case API names map onto bucket names."""
        schedule = VestingSchedule.from_mapping(
            {"immediate": 50, "after1Day": 25, "after_7_days": "25"}
        )

        assert schedule.after_1_day == Decimal("25")
        assert schedule.after_7_days == Decimal("25")
        assert schedule.after_30_days == Decimal("0")
        assert schedule.total == Decimal("100")

    def test_unknown_bucket_rejected(self):
        """Unknown bucket names are an error, not silently dropped."""
        with pytest.raises(InvalidVestingSchedule, match="Unknown"):
            VestingSchedule.from_mapping({"after_2_days": 10})

    def test_duplicate_bucket_rejected(self):
        """The same bucket under two spellings is ambiguous."""
        with pytest.raises(InvalidVestingSchedule, match="Duplicate"):
            VestingSchedule.from_mapping({"after1Day": 10, "after_1_day": 10})

    def test_negative_bucket_rejected(self):
        """Bucket amounts cannot be negative."""
        with pytest.raises(InvalidVestingSchedule):
            VestingSchedule(immediate=Decimal("-1"))

    def test_as_columns(self):
        """Schedule maps onto model column names."""
        columns = VestingSchedule(immediate=Decimal("1")).as_columns()

        assert columns["schedule_immediate"] == Decimal("1")
        assert set(columns) == {
            "schedule_immediate",
            "schedule_after_1_day",
            "schedule_after_7_days",
            "schedule_after_30_days",
        }


class TestVestingScheduler:
    """Test bucket maturity and release."""

    def test_immediate_bucket_matures_at_creation(self, make_grant, t0):
        """Immediate bucket is due right away, later ones are not."""
        grant = make_grant(immediate=50, after_1_day=50)

        assert VestingScheduler().matured_buckets(grant, t0) == ["immediate"]

    def test_release_then_repeat_returns_zero(self, make_grant, t0):
        """Second call with nothing newly matured releases nothing."""
        scheduler = VestingScheduler()
        grant = make_grant(immediate=50, after_1_day=50)

        assert scheduler.process_vesting(grant, t0) == Decimal("50")
        assert scheduler.process_vesting(grant, t0) == Decimal("0")
        assert grant.progress_immediate == Decimal("50")
        assert grant.is_vested is False

    def test_full_vesting_after_last_bucket(self, make_grant, t0):
        """Grant becomes vested once every bucket is released."""
        scheduler = VestingScheduler()
        grant = make_grant(immediate=50, after_1_day=50)
        scheduler.process_vesting(grant, t0)

        released = scheduler.process_vesting(grant, t0 + timedelta(hours=25))

        assert released == Decimal("50")
        assert grant.is_vested is True
        assert grant.status == CreditGrantStatus.VESTED
        assert grant.vested_at == t0 + timedelta(hours=25)

    def test_late_call_releases_every_matured_bucket(self, make_grant, t0):
        """Missed maturities are caught up in one call."""
        grant = make_grant(
            immediate=10, after_1_day=20, after_7_days=30, after_30_days=40
        )

        released = VestingScheduler().process_vesting(
            grant, t0 + timedelta(days=8)
        )

        assert released == Decimal("60")
        assert grant.total_vested == Decimal("60")
        assert grant.remaining_vesting == Decimal("40")

    def test_bucket_not_due_one_second_early(self, make_grant, t0):
        """Offsets are inclusive of the exact maturity instant only."""
        scheduler = VestingScheduler()
        grant = make_grant(after_7_days=100)

        assert scheduler.matured_buckets(
            grant, t0 + timedelta(days=7) - timedelta(seconds=1)
        ) == []
        assert scheduler.matured_buckets(
            grant, t0 + timedelta(days=7)
        ) == ["after_7_days"]

    def test_empty_buckets_are_skipped(self, make_grant, t0):
        """Zero buckets never show up as matured."""
        grant = make_grant(after_30_days=100)

        assert VestingScheduler().matured_buckets(
            grant, t0 + timedelta(days=1)
        ) == []

    def test_on_hold_grant_releases_nothing(self, make_grant, t0):
        """Held grants stay untouched until the hold is cleared."""
        grant = make_grant(status=CreditGrantStatus.ON_HOLD, immediate=100)

        assert VestingScheduler().process_vesting(grant, t0) == Decimal("0")
        assert grant.progress_immediate == Decimal("0")

    def test_cancelled_grant_releases_nothing(self, make_grant, t0):
        """Cancelled grants never vest further."""
        grant = make_grant(status=CreditGrantStatus.CANCELLED, immediate=100)

        assert VestingScheduler().process_vesting(
            grant, t0 + timedelta(days=31)
        ) == Decimal("0")
        assert grant.is_vested is False
