"""
Encouragement Request Builder

Packages a scored swing into the structured summary an external
text-generation service turns into free-form encouragement.

Nothing in the analysis result depends on that service. It only ever
receives what is built here.
"""

import logging
from dataclasses import asdict, dataclass
from typing import List, Mapping, Optional, Protocol, Tuple

from ..domain.analysis import MetricSpec, MetricsResult, ScoreResult
from .bat_speed import PlayerLevel
from .metric_computer import metric_display_name, metric_unit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetricSummary:
    """
    One scored metric as seen by the encouragement service.

    percentile_rank is the normalized quality on a 0-100 scale.
    """
    name: str
    display_name: str
    value: float
    target: Tuple[float, float]
    unit: str
    percentile_rank: int


@dataclass(frozen=True)
class EncouragementRequest:
    metrics: Tuple[MetricSummary, ...]
    weakest: Tuple[MetricSummary, ...]
    overall_score: int
    player_level: Optional[str] = None
    previous_score: Optional[int] = None
    session_number: Optional[int] = None

    def to_dict(self) -> dict:
        return asdict(self)


class EncouragementService(Protocol):
    """External text-generation collaborator."""

    def generate(self, request: EncouragementRequest) -> str: ...


def build_encouragement_request(
    metrics: MetricsResult,
    score: ScoreResult,
    specs: Mapping[str, MetricSpec],
    player_level: Optional[PlayerLevel] = None,
    previous_score: Optional[int] = None,
    session_number: Optional[int] = None,
    weakest_count: int = 2,
) -> EncouragementRequest:
    """
    Build the ranked metric summary for one swing.

    Only scored metrics are included, ordered weakest first.
    """
    summaries: List[MetricSummary] = []
    for name in score.weakest:
        value = metrics.metrics.get(name)
        if value is None or name not in specs:
            continue
        summaries.append(MetricSummary(
            name=name,
            display_name=metric_display_name(name),
            value=round(value, 2),
            target=specs[name].target,
            unit=metric_unit(name),
            percentile_rank=int(round(score.per_metric_normalized[name] * 100)),
        ))

    return EncouragementRequest(
        metrics=tuple(summaries),
        weakest=tuple(summaries[:weakest_count]),
        overall_score=score.overall,
        player_level=player_level.value if player_level else None,
        previous_score=previous_score,
        session_number=session_number,
    )


def request_encouragement(
    service: EncouragementService,
    request: EncouragementRequest,
) -> Optional[str]:
    """
    Ask the service for encouragement text.

    Returns None when the service fails; the analysis result stands
    on its own without it.
    """
    try:
        return service.generate(request)
    except Exception as e:
        logger.warning(f"Encouragement service failed: {e}")
        return None
