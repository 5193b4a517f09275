"""
Referral system configuration.

Contains constants and configuration for the referral system.
"""

from decimal import Decimal

# 3-level referral program. Level 1 pays by the referrer's VIP tier,
# levels 2 and 3 pay a flat rate regardless of tier.
REFERRAL_DEPTH = 3
LEVEL_1_RATES = {
    0: Decimal("20"),  # free users
    1: Decimal("30"),
    2: Decimal("40"),
    3: Decimal("50"),
}
FLAT_LEVEL_RATES = {
    2: Decimal("10"),
    3: Decimal("5"),
}
