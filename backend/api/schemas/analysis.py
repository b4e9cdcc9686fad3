"""
Analysis API Schemas

Pydantic models for swing analysis API requests and responses.
"""

from pydantic import BaseModel, Field
from typing import Dict, Optional, List, Tuple
from enum import Enum
from datetime import datetime

from .pose import RawFrameSchema


class HandednessEnum(str, Enum):
    """Batting side for API."""
    RIGHT = "right"
    LEFT = "left"


class SwingEventEnum(str, Enum):
    """Swing events for API, in canonical order."""
    LOAD_START = "load_start"
    STRIDE_PLANT = "stride_plant"
    LAUNCH = "launch"
    CONTACT = "contact"
    EXTENSION = "extension"
    FINISH = "finish"


class MetricSpecSchema(BaseModel):
    """
    Target window and weight of one scored metric.

    `shape` is derived from the flags: range, lower_is_better or centered.
    """
    target: Tuple[float, float] = Field(..., description="Target window [min, max]")
    weight: float = Field(..., ge=0, description="Relative weight in the overall score")
    invert: bool = Field(False, description="Lower is better")
    abs_window: bool = Field(False, alias="absWindow", description="Best at the centre of the window")
    shape: Optional[str] = Field(None, description="Tolerance shape")
    unit: Optional[str] = Field(None, description="Measurement unit")
    display_name: Optional[str] = Field(None, description="Human-readable metric name")

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "target": [40, 60],
                "weight": 25,
                "invert": False,
                "absWindow": False,
                "shape": "range",
                "unit": "deg",
                "display_name": "Hip-Shoulder Separation"
            }
        }


class MetricSpecsResponse(BaseModel):
    """Active metric specifications."""
    specs: Dict[str, MetricSpecSchema] = Field(..., description="Metric name -> specification")
    total_weight: float = Field(..., description="Sum of all weights")


class MetricValueSchema(BaseModel):
    """
    One computed metric. `value` is None when it could not be measured.
    """
    name: str = Field(..., description="Metric key (e.g., 'attack_angle_deg')")
    display_name: str = Field(..., description="Human-readable name")
    value: Optional[float] = Field(None, description="Raw measured value")
    unit: str = Field("", description="Measurement unit")
    normalized: Optional[float] = Field(None, ge=0.0, le=1.0, description="Quality 0-1 (scored metrics only)")
    target: Optional[Tuple[float, float]] = Field(None, description="Target window")

    class Config:
        json_schema_extra = {
            "example": {
                "name": "attack_angle_deg",
                "display_name": "Attack Angle",
                "value": 11.5,
                "unit": "deg",
                "normalized": 0.43,
                "target": [5, 20]
            }
        }


class QualityFlagsSchema(BaseModel):
    low_confidence: bool = Field(False, description="Too many metrics or events missing")
    missing_events: List[SwingEventEnum] = Field(default_factory=list, description="Critical events not found")


class MetricContributionSchema(BaseModel):
    """How much one metric contributed to the overall score."""
    metric: str
    normalized: float = Field(..., ge=0.0, le=1.0)
    weight: float
    weighted_share: float = Field(..., description="Points contributed to the overall score (0-100)")


class SwingScoreSchema(BaseModel):
    """
    Overall swing score.
    """
    overall: int = Field(..., ge=0, le=100, description="Score out of 100")
    label: str = Field(..., description="Excellent, Good, Needs Work or Insufficient Data")
    insufficient_data: bool = Field(False, description="No scored metric could be measured")
    per_metric_normalized: Dict[str, float] = Field(default_factory=dict, description="Metric -> quality 0-1")
    weakest: List[str] = Field(default_factory=list, description="Scored metrics, weakest first")
    contributions: List[MetricContributionSchema] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "overall": 72,
                "label": "Good",
                "insufficient_data": False,
                "per_metric_normalized": {"attack_angle_deg": 0.43, "head_drift_cm": 1.0},
                "weakest": ["attack_angle_deg", "head_drift_cm"]
            }
        }


class DrillSchema(BaseModel):
    """
    Practice drill recommended by a coaching card.
    """
    id: str = Field(..., description="Drill identifier")
    name: str = Field(..., description="Drill name")
    goal_metric: Optional[str] = Field(None, description="Metric this drill targets")
    purpose: str = Field("", description="What the drill trains")
    setup: List[str] = Field(default_factory=list)
    steps: List[str] = Field(default_factory=list)
    reps: str = Field("", description="Suggested volume")
    focus_cues: List[str] = Field(default_factory=list)
    equipment: List[str] = Field(default_factory=list)


class CoachingCardSchema(BaseModel):
    """
    Actionable coaching advice for one weak metric.
    """
    metric: str = Field(..., description="Metric the card addresses")
    priority: int = Field(..., ge=1, description="Priority (1=highest)")
    cue: str = Field(..., description="Short cue to think about")
    why: str = Field(..., description="Why it matters")
    drill: Optional[DrillSchema] = Field(None, description="Practice drill (null if not found)")

    class Config:
        json_schema_extra = {
            "example": {
                "metric": "head_drift_cm",
                "priority": 1,
                "cue": "Quiet head: keep your eyes level through contact.",
                "why": "Minimizes timing errors and improves barrel accuracy.",
                "drill": {"id": "wall-head-check", "name": "Wall Head Check"}
            }
        }


class PhaseSchema(BaseModel):
    """
    One detected swing event on the timeline.
    """
    event: SwingEventEnum = Field(..., description="Swing event")
    label: str = Field(..., description="Display label")
    frame_index: int = Field(..., description="Frame number")
    timestamp_ms: Optional[float] = Field(None, description="Video timestamp")
    description: str = Field(..., description="What happens at this event")


class BatSpeedSchema(BaseModel):
    """
    Bat speed estimated from wrist movement.
    """
    peak_speed_mph: float
    avg_speed_mph: float
    peak_wrist_speed_mph: float
    swing_duration_ms: float
    acceleration_phase_ms: float
    level: str = Field(..., description="Player level band")
    level_description: str
    tips: List[str] = Field(default_factory=list)


class SwingAnalysisResponse(BaseModel):
    """
    Complete swing analysis result.

    This is the main response from the analyze endpoints. When
    `needs_retake` is true only the segmentation fields are filled.
    """
    # Identification
    id: str = Field(..., description="Unique analysis ID")
    timestamp: datetime = Field(..., description="When analysis was performed")
    state: str = Field(..., description="Final attempt state (complete or needs_retake)")

    # Video info
    fps: float = Field(..., description="Video frames per second")
    frames_analyzed: int = Field(..., description="Frames that went into the analysis")
    average_confidence: float = Field(..., description="Mean landmark confidence")

    # Segmentation
    needs_retake: bool = Field(False, description="Tracking too poor to score; record again")
    retake_reasons: List[str] = Field(default_factory=list)
    events: Dict[str, int] = Field(default_factory=dict, description="Event -> frame number mapping")
    phases: List[PhaseSchema] = Field(default_factory=list, description="Event timeline")

    # Measurement and scoring
    metrics: List[MetricValueSchema] = Field(default_factory=list)
    quality_flags: Optional[QualityFlagsSchema] = None
    pixels_per_cm: Optional[float] = Field(None, description="Scale derived from body height")
    score: Optional[SwingScoreSchema] = None
    bat_speed: Optional[BatSpeedSchema] = None

    # Coaching
    cards: List[CoachingCardSchema] = Field(default_factory=list, description="Ranked coaching cards")
    summary: str = Field(..., description="Text summary of analysis")
    encouragement_request: Optional[dict] = Field(
        None, description="Structured metric summary for an external encouragement service"
    )
    swing_record: Optional[dict] = Field(
        None, description="Record of a scored swing, ready to hand to a swing store"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "id": "550e8400-e29b-41d4-a716-446655440000",
                "timestamp": "2024-01-15T10:30:00Z",
                "state": "complete",
                "fps": 60.0,
                "frames_analyzed": 120,
                "average_confidence": 0.88,
                "needs_retake": False,
                "events": {"launch": 48, "contact": 55, "finish": 70},
                "summary": "Your swing scored 72/100 - Good."
            }
        }


class AnalyzeFramesRequest(BaseModel):
    """
    Request to analyze pre-detected keypoint frames.

    Used when the client has already done pose detection.
    """
    frames: List[RawFrameSchema] = Field(..., description="Detector output per frame")
    fps: float = Field(..., gt=0, description="Original video FPS")
    handedness: HandednessEnum = Field(HandednessEnum.RIGHT, description="Batting side")
    recent_stride_lengths: List[float] = Field(default_factory=list, description="Previous stride lengths (cm)")


class EvaluateRequest(BaseModel):
    """
    Score metric values directly, without video.
    """
    metrics: Dict[str, Optional[float]] = Field(..., description="Metric name -> raw value (null = absent)")
    card_count: int = Field(2, ge=0, le=8, description="Coaching cards to return")

    class Config:
        json_schema_extra = {
            "example": {
                "metrics": {
                    "hip_shoulder_sep_deg": 50,
                    "attack_angle_deg": 12,
                    "head_drift_cm": 2.0,
                    "contact_timing_frames": 0
                },
                "card_count": 2
            }
        }


class EvaluateResponse(BaseModel):
    score: SwingScoreSchema
    cards: List[CoachingCardSchema] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """
    Health check response.
    """
    status: str = Field("healthy", description="Service status")
    version: str = Field(..., description="API version")
    mediapipe_available: bool = Field(..., description="Whether MediaPipe is installed")
    metric_count: int = Field(..., description="Scored metrics in the active configuration")
    drill_count: int = Field(..., description="Drills in the catalog")
