"""
Business logic constants for the rewards core.

Central location for business rules that are not environment-specific.
"""

from datetime import timedelta
from decimal import Decimal


# VIP tiers (0 = free user)
VIP_LEVELS = (0, 1, 2, 3)

# Vesting buckets and their maturity offsets from grant creation.
# Order matters: buckets are released in this order.
VESTING_OFFSETS: dict[str, timedelta] = {
    "immediate": timedelta(0),
    "after_1_day": timedelta(days=1),
    "after_7_days": timedelta(days=7),
    "after_30_days": timedelta(days=30),
}
VESTING_BUCKETS = tuple(VESTING_OFFSETS)

# Accepted aliases for bucket names coming from API payloads
VESTING_BUCKET_ALIASES = {
    "immediate": "immediate",
    "after1Day": "after_1_day",
    "after7Days": "after_7_days",
    "after30Days": "after_30_days",
}

# Whole credits; commissions are rounded half-up to this quantum
CREDIT_QUANTUM = Decimal("1")

# App installs pay referral commissions on this share of the reward
APP_INSTALL_COMMISSION_SHARE = Decimal("0.1")

# VIP plans: price paid (commission base), membership length and the
# bonus credited to the buyer per tier
VIP_PLAN_PRICES: dict[int, Decimal] = {
    1: Decimal("300"),
    2: Decimal("600"),
    3: Decimal("1000"),
}
VIP_DURATION = timedelta(days=30)
VIP_BONUS_PER_LEVEL = Decimal("50")


class TransactionType:
    """Qualifying monetary events that pay referral commissions."""

    VIP_PURCHASE = "vip_purchase"
    COIN_PURCHASE = "coin_purchase"
    WITHDRAWAL_FEE = "withdrawal_fee"
    APP_INSTALL = "app_install"
    TASK_COMPLETION = "task_completion"

    ALL = (
        VIP_PURCHASE,
        COIN_PURCHASE,
        WITHDRAWAL_FEE,
        APP_INSTALL,
        TASK_COMPLETION,
    )


class GrantType:
    """Why a credit grant was issued."""

    TASK_COMPLETION = "task_completion"
    REFERRAL_BONUS = "referral_bonus"
    VIP_PURCHASE = "vip_purchase"
    MILESTONE_REWARD = "milestone_reward"
    STREAK_BONUS = "streak_bonus"
    ADMIN_ADJUSTMENT = "admin_adjustment"


class GrantSource:
    """Where a credit grant came from."""

    AD_WATCH = "ad_watch"
    OFFER_COMPLETION = "offer_completion"
    SURVEY_COMPLETION = "survey_completion"
    APP_INSTALL = "app_install"
    REFERRAL_SIGNUP = "referral_signup"
    VIP_UPGRADE = "vip_upgrade"
    MILESTONE = "milestone"
    ADMIN = "admin"


# Fraud heuristics: trailing windows and thresholds
FRAUD_HOLD_THRESHOLD = 70
FRAUD_MAX_SCORE = 100
FRAUD_VOLUME_WINDOW = timedelta(hours=1)
FRAUD_VOLUME_LIMIT = 10
FRAUD_BURST_WINDOW = timedelta(minutes=5)
FRAUD_BURST_LIMIT = 5
FRAUD_FINGERPRINT_WINDOW = timedelta(hours=24)
FRAUD_FINGERPRINT_LIMIT = 50
FRAUD_WITHDRAWAL_WINDOW = timedelta(days=7)
FRAUD_WITHDRAWAL_LIMIT = 3
FRAUD_EARNINGS_WINDOW = timedelta(days=30)
FRAUD_EARNINGS_SHARE = Decimal("0.8")
