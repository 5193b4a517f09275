"""
Fraud scorer.

Deterministic, additive rule table producing a 0-100 risk score. Each
rule looks at one FraudSignals snapshot; the total is capped at 100 and
a score above the hold threshold routes the request to manual review.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from decimal import Decimal

from taskvip.config.business_constants import (
    FRAUD_BURST_LIMIT,
    FRAUD_EARNINGS_SHARE,
    FRAUD_FINGERPRINT_LIMIT,
    FRAUD_HOLD_THRESHOLD,
    FRAUD_MAX_SCORE,
    FRAUD_VOLUME_LIMIT,
    FRAUD_WITHDRAWAL_LIMIT,
)
from taskvip.utils.exceptions import FraudHoldError


@dataclass(frozen=True)
class FraudSignals:
    """
    Observations about one reward or withdrawal request.

    Missing observations (None) never trigger a rule.
    """

    elapsed_seconds: float | None = None
    estimated_seconds: float | None = None
    completions_last_hour: int = 0
    completions_last_5_minutes: int = 0
    fingerprint_completions_24h: int = 0
    account_age_days: float | None = None
    withdrawals_last_7_days: int = 0
    withdrawal_amount: Decimal | None = None
    earnings_last_30_days: Decimal | None = None

    @property
    def speed_ratio(self) -> float | None:
        """Elapsed time as a fraction of the estimated duration."""
        if self.elapsed_seconds is None or not self.estimated_seconds:
            return None
        return self.elapsed_seconds / self.estimated_seconds


@dataclass(frozen=True)
class FraudRule:
    """Single heuristic: ``points`` are added when ``predicate`` holds."""

    name: str
    points: int
    predicate: Callable[[FraudSignals], bool]

    def applies(self, signals: FraudSignals) -> bool:
        return bool(self.predicate(signals))


def _faster_than(share: float) -> Callable[[FraudSignals], bool]:
    def predicate(signals: FraudSignals) -> bool:
        ratio = signals.speed_ratio
        return ratio is not None and ratio < share
    return predicate


def _younger_than(days: float) -> Callable[[FraudSignals], bool]:
    def predicate(signals: FraudSignals) -> bool:
        age = signals.account_age_days
        return age is not None and age < days
    return predicate


def _withdrawing_most_earnings(signals: FraudSignals) -> bool:
    if signals.withdrawal_amount is None or signals.earnings_last_30_days is None:
        return False
    return signals.withdrawal_amount > (
        signals.earnings_last_30_days * FRAUD_EARNINGS_SHARE
    )


# Thresholds are cumulative: a completion at 5% of the estimate scores 40 + 60.
DEFAULT_RULES: tuple[FraudRule, ...] = (
    FraudRule("completed_too_fast", 40, _faster_than(0.3)),
    FraudRule("completed_way_too_fast", 60, _faster_than(0.1)),
    FraudRule(
        "high_hourly_volume",
        30,
        lambda s: s.completions_last_hour > FRAUD_VOLUME_LIMIT,
    ),
    FraudRule(
        "rapid_burst",
        90,
        lambda s: s.completions_last_5_minutes >= FRAUD_BURST_LIMIT,
    ),
    FraudRule(
        "shared_device_or_ip",
        25,
        lambda s: s.fingerprint_completions_24h > FRAUD_FINGERPRINT_LIMIT,
    ),
    FraudRule("new_account", 30, _younger_than(7)),
    FraudRule("very_new_account", 50, _younger_than(1)),
    FraudRule(
        "frequent_withdrawals",
        25,
        lambda s: s.withdrawals_last_7_days > FRAUD_WITHDRAWAL_LIMIT,
    ),
    FraudRule("withdrawal_exceeds_earnings", 20, _withdrawing_most_earnings),
)


@dataclass(frozen=True)
class FraudScoreResult:
    """Score plus the names of the rules that produced it."""

    score: int
    triggered: tuple[str, ...] = field(default_factory=tuple)
    hold_threshold: int = FRAUD_HOLD_THRESHOLD

    @classmethod
    def clean(cls, hold_threshold: int = FRAUD_HOLD_THRESHOLD) -> "FraudScoreResult":
        """Result for a request that triggered nothing."""
        return cls(score=0, triggered=(), hold_threshold=hold_threshold)

    @property
    def is_held(self) -> bool:
        """Whether the request must wait for review."""
        return self.score > self.hold_threshold

    def raise_if_held(self) -> None:
        """Raise FraudHoldError for callers that prefer an exception."""
        if self.is_held:
            raise FraudHoldError(self)


class FraudScorer:
    """Evaluates a rule table against fraud signals."""

    def __init__(
        self,
        rules: Iterable[FraudRule] = DEFAULT_RULES,
        hold_threshold: int = FRAUD_HOLD_THRESHOLD,
    ) -> None:
        """
        Initialize scorer.

        Args:
            rules: Heuristics to evaluate
            hold_threshold: Scores strictly above this are held
        """
        self.rules = tuple(rules)
        self.hold_threshold = hold_threshold

    def score(self, signals: FraudSignals) -> FraudScoreResult:
        """
        Score a request.

        Args:
            signals: Observations about the request

        Returns:
            Capped score and triggered rule names
        """
        matched = [rule for rule in self.rules if rule.applies(signals)]
        points = sum(rule.points for rule in matched)
        return FraudScoreResult(
            score=min(points, FRAUD_MAX_SCORE),
            triggered=tuple(rule.name for rule in matched),
            hold_threshold=self.hold_threshold,
        )
