"""
Scoring Engine Service

Maps measured metrics onto a normalized quality in [0, 1] per metric and
a weighted overall score in [0, 100].

Normalization by tolerance shape (w = max - min, mid = window centre):
- RANGE:            (v - min) / w up to max, then 1 - (v - max) / w
- LOWER_IS_BETTER:  (max - v) / w, 1 at or below min
- CENTERED:         1 - |v - mid| / w

Qualities are clamped to [0, 1]. Metrics without a value are left out of
both the weighted sum and the total weight.
"""

import logging
import math
from typing import Dict, List, Mapping, Optional

from ..domain.analysis import MetricContribution, MetricSpec, ScoreResult, ToleranceShape

logger = logging.getLogger(__name__)


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))


class ScoringEngine:
    """
    Scores a swing against a set of metric specifications.

    Only metrics with a spec are scored; other measurements are ignored.
    The result depends only on the contents of the two mappings, never on
    their order.

    Usage:
        engine = ScoringEngine()
        result = engine.score({"attack_angle_deg": 12.0}, specs)
        print(result.overall, result.label, result.weakest)
    """

    def score(
        self,
        metrics: Mapping[str, Optional[float]],
        specs: Mapping[str, MetricSpec],
    ) -> ScoreResult:
        """
        Score present metrics.

        Args:
            metrics: Metric name to value (None = absent)
            specs: Metric name to scoring policy

        Returns:
            ScoreResult. When nothing can be scored, overall is 0 and
            insufficient_data is True.
        """
        contributions: List[MetricContribution] = []
        for name in sorted(specs):
            value = metrics.get(name)
            if value is None or not math.isfinite(value):
                continue
            spec = specs[name]
            contributions.append(MetricContribution(
                metric=name,
                normalized=self.normalize(value, spec),
                weight=spec.weight,
            ))

        total_weight = sum(c.weight for c in contributions)
        if not contributions or total_weight <= 0:
            logger.info("No scorable metrics; returning insufficient data")
            return ScoreResult(
                overall=0,
                per_metric_normalized={c.metric: c.normalized for c in contributions},
                weakest=(),
                insufficient_data=True,
                contributions=tuple(contributions),
            )

        weighted = sum(c.weight * c.normalized for c in contributions)
        # Half-up rounding (67.5 -> 68)
        overall = int(math.floor(100 * weighted / total_weight + 0.5))
        overall = min(100, max(0, overall))

        # Weakest first; ties go to the heavier metric, then by name
        ranked = sorted(contributions, key=lambda c: (c.normalized, -c.weight, c.metric))

        return ScoreResult(
            overall=overall,
            per_metric_normalized={c.metric: c.normalized for c in contributions},
            weakest=tuple(c.metric for c in ranked),
            insufficient_data=False,
            contributions=tuple(contributions),
        )

    @staticmethod
    def normalize(value: float, spec: MetricSpec) -> float:
        """Quality of one value against its spec, in [0, 1]."""
        low, high = spec.minimum, spec.maximum
        width = high - low

        if width == 0:
            if spec.shape is ToleranceShape.LOWER_IS_BETTER:
                return 1.0 if value <= high else 0.0
            return 1.0 if value == low else 0.0

        if spec.shape is ToleranceShape.LOWER_IS_BETTER:
            return _clamp((high - value) / width)

        if spec.shape is ToleranceShape.CENTERED:
            mid = (low + high) / 2
            return _clamp(1.0 - abs(value - mid) / width)

        if value <= high:
            return _clamp((value - low) / width)
        # Overshoot
        return _clamp(1.0 - (value - high) / width)

    @staticmethod
    def weighted_shares(result: ScoreResult) -> Dict[str, float]:
        """Each metric's share of the overall score, in points out of 100."""
        total_weight = sum(c.weight for c in result.contributions)
        if total_weight <= 0:
            return {}
        return {
            c.metric: 100 * c.weight * c.normalized / total_weight
            for c in result.contributions
        }
