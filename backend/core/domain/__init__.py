"""
Domain Models

Pure data structures representing swing analysis concepts.
No external dependencies - just Python dataclasses and enums.
"""

from .pose import BodyPart, FrameKeypoints, Handedness, Keypoint, MIN_KEYPOINT_CONFIDENCE
from .analysis import (
    AnalysisOutcome,
    AnalysisState,
    AttemptLifecycle,
    CoachingCard,
    CRITICAL_EVENTS,
    DrillReference,
    MetricContribution,
    MetricSpec,
    MetricsResult,
    QualityFlags,
    ScoreResult,
    SegmentationQuality,
    SegmentationResult,
    SwingEvent,
    SwingEvents,
    ToleranceShape,
    score_label,
)
from .errors import (
    AnalysisCancelled,
    InvalidMetricSpec,
    InvalidStateTransition,
    PersistenceFailure,
    PoseDetectionFailure,
    SwingAnalysisError,
)

__all__ = [
    # Pose
    "BodyPart",
    "FrameKeypoints",
    "Handedness",
    "Keypoint",
    "MIN_KEYPOINT_CONFIDENCE",
    # Analysis
    "AnalysisOutcome",
    "AnalysisState",
    "AttemptLifecycle",
    "CoachingCard",
    "CRITICAL_EVENTS",
    "DrillReference",
    "MetricContribution",
    "MetricSpec",
    "MetricsResult",
    "QualityFlags",
    "ScoreResult",
    "SegmentationQuality",
    "SegmentationResult",
    "SwingEvent",
    "SwingEvents",
    "ToleranceShape",
    "score_label",
    # Errors
    "AnalysisCancelled",
    "InvalidMetricSpec",
    "InvalidStateTransition",
    "PersistenceFailure",
    "PoseDetectionFailure",
    "SwingAnalysisError",
]
