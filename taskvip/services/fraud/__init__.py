"""
Fraud scoring package.

- scorer: rule table, FraudScorer and FraudScoreResult
- signals: FraudSignalCollector building signals from stored activity
"""

from taskvip.services.fraud.scorer import (
    DEFAULT_RULES,
    FraudRule,
    FraudScorer,
    FraudScoreResult,
    FraudSignals,
)
from taskvip.services.fraud.signals import FraudSignalCollector


__all__ = [
    "DEFAULT_RULES",
    "FraudRule",
    "FraudScorer",
    "FraudScoreResult",
    "FraudSignals",
    "FraudSignalCollector",
]
