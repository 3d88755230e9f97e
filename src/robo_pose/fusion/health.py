"""
Per-sensor measurement health for the filter core.

Every measurement model that feeds the filter gets a MeasurementHealth record
keyed by the model name. Rejected updates (invalid input, singular innovation
covariance, gated outliers) lower the reliability score; accepted updates
restore it.

Reliability Model:
    reliability = max(0.0, 1.0 - min(0.9, decay * consecutive_rejections))   on rejection
    reliability = min(1.0, reliability + recovery_rate)                     on acceptance

A sensor is flagged non-operational after ``rejection_threshold``
consecutive rejections and re-enabled once reliability recovers above 0.5.
The flag is advisory; the filter still evaluates every update it is given.
"""

from collections import Counter
from typing import Any, Dict


class MeasurementHealth:
    """
    Acceptance statistics for one measurement source.

    Attributes:
        is_operational: False after too many consecutive rejections
        reliability: Float [0.0, 1.0] indicating measurement trustworthiness
        accepted_count: Total accepted updates
        rejected_count: Total rejected updates
        consecutive_rejections: Current rejection streak
        rejection_reasons: Count of rejections by status value
    """

    def __init__(self, rejection_threshold: int = 5, reliability_decay: float = 0.15,
                 recovery_rate: float = 0.05):
        if rejection_threshold <= 0:
            raise ValueError(f"Rejection threshold must be positive, got {rejection_threshold}")
        self.is_operational = True
        self.reliability = 1.0
        self.accepted_count = 0
        self.rejected_count = 0
        self.consecutive_rejections = 0
        self.rejection_reasons = Counter()

        self._rejection_threshold = rejection_threshold
        self._reliability_decay = reliability_decay
        self._recovery_rate = recovery_rate

    def record_rejection(self, reason: str) -> None:
        self.rejected_count += 1
        self.consecutive_rejections += 1
        self.rejection_reasons[reason] += 1

        penalty = min(0.9, self._reliability_decay * self.consecutive_rejections)
        self.reliability = max(0.0, 1.0 - penalty)

        if self.consecutive_rejections >= self._rejection_threshold:
            self.is_operational = False

    def record_acceptance(self) -> None:
        self.accepted_count += 1
        self.consecutive_rejections = 0
        self.reliability = min(1.0, self.reliability + self._recovery_rate)

        if not self.is_operational and self.reliability > 0.5:
            self.is_operational = True

    def get_rejection_rate(self) -> float:
        """Fraction of updates rejected, 0.0 before any update."""
        total = self.accepted_count + self.rejected_count
        if total == 0:
            return 0.0
        return self.rejected_count / total

    def get_health_summary(self) -> Dict[str, Any]:
        return {
            'operational': self.is_operational,
            'reliability': self.reliability,
            'accepted_count': self.accepted_count,
            'rejected_count': self.rejected_count,
            'consecutive_rejections': self.consecutive_rejections,
            'rejection_rate': self.get_rejection_rate(),
            'rejection_reasons': dict(self.rejection_reasons),
        }
