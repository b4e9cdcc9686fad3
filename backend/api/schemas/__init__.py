"""
API Schemas

Pydantic models for request/response validation.
"""

from .pose import (
    KeypointSchema,
    RawFrameSchema,
    WebSocketMessageType,
    WebSocketMessage,
    StartAnalysisMessage,
    ProgressMessage,
)

from .analysis import (
    HandednessEnum,
    SwingEventEnum,
    MetricSpecSchema,
    MetricSpecsResponse,
    MetricValueSchema,
    QualityFlagsSchema,
    MetricContributionSchema,
    SwingScoreSchema,
    DrillSchema,
    CoachingCardSchema,
    PhaseSchema,
    BatSpeedSchema,
    SwingAnalysisResponse,
    AnalyzeFramesRequest,
    EvaluateRequest,
    EvaluateResponse,
    HealthResponse,
)

__all__ = [
    # Pose schemas
    "KeypointSchema",
    "RawFrameSchema",
    "WebSocketMessageType",
    "WebSocketMessage",
    "StartAnalysisMessage",
    "ProgressMessage",
    # Analysis schemas
    "HandednessEnum",
    "SwingEventEnum",
    "MetricSpecSchema",
    "MetricSpecsResponse",
    "MetricValueSchema",
    "QualityFlagsSchema",
    "MetricContributionSchema",
    "SwingScoreSchema",
    "DrillSchema",
    "CoachingCardSchema",
    "PhaseSchema",
    "BatSpeedSchema",
    "SwingAnalysisResponse",
    "AnalyzeFramesRequest",
    "EvaluateRequest",
    "EvaluateResponse",
    "HealthResponse",
]
