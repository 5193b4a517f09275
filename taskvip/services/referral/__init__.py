"""
Referral services package.

Contains modular services for referral processing:
- config: Configuration constants (REFERRAL_DEPTH, commission rates)
- commission_calculator: VIP tier x level -> percentage
- chain_manager: Captures referral chains at signup
- commission_processor: Pays commissions across a chain
- statistics: Provides analytics and statistics
"""

from taskvip.services.referral.chain_manager import ReferralChainManager
from taskvip.services.referral.commission_calculator import (
    CommissionCalculator,
)
from taskvip.services.referral.commission_processor import CommissionProcessor
from taskvip.services.referral.config import (
    FLAT_LEVEL_RATES,
    LEVEL_1_RATES,
    REFERRAL_DEPTH,
)
from taskvip.services.referral.statistics import ReferralStatisticsManager


__all__ = [
    # Configuration
    "REFERRAL_DEPTH",
    "LEVEL_1_RATES",
    "FLAT_LEVEL_RATES",
    # Managers
    "CommissionCalculator",
    "CommissionProcessor",
    "ReferralChainManager",
    "ReferralStatisticsManager",
]
