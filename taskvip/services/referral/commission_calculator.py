"""
Commission calculator.

Maps (referrer VIP tier, referral level) to a commission percentage and
turns percentages into whole-credit commission amounts.
"""

from decimal import ROUND_HALF_UP, Decimal

from taskvip.config.business_constants import CREDIT_QUANTUM, VIP_LEVELS
from taskvip.services.referral.config import (
    FLAT_LEVEL_RATES,
    LEVEL_1_RATES,
    REFERRAL_DEPTH,
)


class CommissionCalculator:
    """Pure commission rate table."""

    @staticmethod
    def rate(vip_level: int, referral_level: int) -> Decimal:
        """
        Commission percentage for an ancestor.

        Args:
            vip_level: Ancestor's effective VIP tier (0-3)
            referral_level: Ancestor's distance from the payer (1-3)

        Returns:
            Percentage, e.g. Decimal("30") for 30%

        Raises:
            ValueError: If either argument is out of range
        """
        if isinstance(vip_level, bool) or vip_level not in VIP_LEVELS:
            raise ValueError(f"Invalid VIP level: {vip_level!r}")
        if isinstance(referral_level, bool) or referral_level not in range(
            1, REFERRAL_DEPTH + 1
        ):
            raise ValueError(f"Invalid referral level: {referral_level!r}")

        if referral_level == 1:
            return LEVEL_1_RATES[vip_level]
        return FLAT_LEVEL_RATES[referral_level]

    @staticmethod
    def commission(amount: Decimal, percentage: Decimal) -> Decimal:
        """
        Commission for an amount, rounded half-up to whole credits.

        Args:
            amount: Qualifying transaction amount
            percentage: Commission percentage

        Returns:
            Commission amount
        """
        raw = Decimal(str(amount)) * Decimal(str(percentage)) / Decimal("100")
        return raw.quantize(CREDIT_QUANTUM, rounding=ROUND_HALF_UP)

    @classmethod
    def rate_table(cls) -> dict[int, dict[int, Decimal]]:
        """All rates keyed by VIP tier, then referral level."""
        return {
            vip: {
                level: cls.rate(vip, level)
                for level in range(1, REFERRAL_DEPTH + 1)
            }
            for vip in VIP_LEVELS
        }
