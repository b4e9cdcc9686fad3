"""
Swing Analysis Domain Models

Data structures for representing swing analysis results:
detected events, per-metric measurements, scores and coaching cards.

All results are immutable. A retake creates a brand new set of
objects instead of patching the previous one.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple

from .errors import InvalidMetricSpec, InvalidStateTransition
from .pose import FrameKeypoints, Handedness


class SwingEvent(Enum):
    """
    Named instants of a baseball/softball swing, in canonical order.

    - LOAD_START: Batter begins loading weight and rotating hips
    - STRIDE_PLANT: Lead foot makes contact with the ground
    - LAUNCH: Explosive power transfer begins, hands start to fire
    - CONTACT: Bat meets the ball
    - EXTENSION: Maximum arm extension through the swing
    - FINISH: Follow-through complete, balanced finish position
    """
    LOAD_START = "load_start"
    STRIDE_PLANT = "stride_plant"
    LAUNCH = "launch"
    CONTACT = "contact"
    EXTENSION = "extension"
    FINISH = "finish"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


CANONICAL_ORDER: Tuple[SwingEvent, ...] = tuple(SwingEvent)

# Missing two or more of these means the video should be retaken
CRITICAL_EVENTS: Tuple[SwingEvent, ...] = (
    SwingEvent.LAUNCH,
    SwingEvent.CONTACT,
    SwingEvent.FINISH,
)


@dataclass(frozen=True)
class SwingEvents:
    """
    Partial mapping from swing event to frame index.

    Any event may be missing (None). Present events must have
    non-decreasing frame indices in canonical swing order.
    """
    load_start: Optional[int] = None
    stride_plant: Optional[int] = None
    launch: Optional[int] = None
    contact: Optional[int] = None
    extension: Optional[int] = None
    finish: Optional[int] = None

    def __post_init__(self):
        previous: Optional[Tuple[SwingEvent, int]] = None
        for event in CANONICAL_ORDER:
            frame_index = self.get(event)
            if frame_index is None:
                continue
            if previous is not None and frame_index < previous[1]:
                raise ValueError(
                    f"{event.value} at frame {frame_index} comes before "
                    f"{previous[0].value} at frame {previous[1]}"
                )
            previous = (event, frame_index)

    @classmethod
    def from_mapping(cls, events: Mapping[SwingEvent, Optional[int]]) -> "SwingEvents":
        return cls(**{event.value: frame for event, frame in events.items()})

    def get(self, event: SwingEvent) -> Optional[int]:
        return getattr(self, event.value)

    def as_dict(self) -> Dict[str, int]:
        """Present events only, in canonical order."""
        return {
            event.value: self.get(event)
            for event in CANONICAL_ORDER
            if self.get(event) is not None
        }

    def missing(self, events: Tuple[SwingEvent, ...] = CRITICAL_EVENTS) -> list[SwingEvent]:
        return [event for event in events if self.get(event) is None]


# =============================================================================
# Segmentation
# =============================================================================

class SegmentationQuality(Enum):
    OK = "ok"
    LOW_CONFIDENCE = "low_confidence"


@dataclass(frozen=True)
class SegmentationResult:
    """
    Output of the phase segmenter.

    A LOW_CONFIDENCE quality is the retake gate: callers stop the
    pipeline and ask the athlete for a new recording.
    """
    events: SwingEvents
    quality: SegmentationQuality
    average_confidence: float
    reasons: Tuple[str, ...] = ()

    @property
    def needs_retake(self) -> bool:
        return self.quality is SegmentationQuality.LOW_CONFIDENCE


# =============================================================================
# Metrics
# =============================================================================

class ToleranceShape(Enum):
    """
    How a measured value is compared against its target window.

    RANGE: higher is better inside the window, overshoot is penalized
    LOWER_IS_BETTER: smaller values are better, best at or below min
    CENTERED: distance from the window midpoint governs quality
    """
    RANGE = "range"
    LOWER_IS_BETTER = "lower_is_better"
    CENTERED = "centered"


@dataclass(frozen=True)
class MetricSpec:
    """
    Declarative scoring policy for one metric.

    Attributes:
        target: (min, max) window, min <= max
        weight: Relative importance in the overall score (>= 0)
        shape: Polarity and tolerance shape of the window
    """
    target: Tuple[float, float]
    weight: float
    shape: ToleranceShape = ToleranceShape.RANGE

    def __post_init__(self):
        low, high = self.target
        if not (math.isfinite(low) and math.isfinite(high)):
            raise InvalidMetricSpec(f"Target bounds must be finite, got {self.target}")
        if low > high:
            raise InvalidMetricSpec(f"Target min {low} is greater than max {high}")
        if not math.isfinite(self.weight) or self.weight < 0:
            raise InvalidMetricSpec(f"Weight must be >= 0, got {self.weight}")

    @classmethod
    def from_flags(
        cls,
        target: Tuple[float, float],
        weight: float,
        invert: bool = False,
        abs_window: bool = False,
    ) -> "MetricSpec":
        """
        Build a spec from the boolean flag form used in configuration files.

        invert and abs_window together are rejected: a symmetric window
        has no direction to invert.
        """
        if invert and abs_window:
            raise InvalidMetricSpec("invert and abs_window cannot both be set")
        if invert:
            shape = ToleranceShape.LOWER_IS_BETTER
        elif abs_window:
            shape = ToleranceShape.CENTERED
        else:
            shape = ToleranceShape.RANGE
        return cls(target=(float(target[0]), float(target[1])), weight=float(weight), shape=shape)

    @property
    def minimum(self) -> float:
        return self.target[0]

    @property
    def maximum(self) -> float:
        return self.target[1]

    @property
    def invert(self) -> bool:
        return self.shape is ToleranceShape.LOWER_IS_BETTER

    @property
    def abs_window(self) -> bool:
        return self.shape is ToleranceShape.CENTERED


@dataclass(frozen=True)
class QualityFlags:
    low_confidence: bool = False
    missing_events: Tuple[str, ...] = ()


@dataclass(frozen=True)
class MetricsResult:
    """
    Biomechanical measurements for one swing.

    A metric is None when a frame or keypoint required by its formula
    is missing; it is never zero-filled.
    """
    metrics: Mapping[str, Optional[float]]
    quality_flags: QualityFlags = field(default_factory=QualityFlags)
    pixels_per_cm: Optional[float] = None

    def present(self) -> Dict[str, float]:
        return {name: value for name, value in self.metrics.items() if value is not None}


# =============================================================================
# Scoring
# =============================================================================

INSUFFICIENT_DATA_LABEL = "Insufficient Data"


def score_label(overall: int) -> str:
    """Convert an overall score to its display label."""
    if overall >= 80:
        return "Excellent"
    elif overall >= 60:
        return "Good"
    else:
        return "Needs Work"


@dataclass(frozen=True)
class MetricContribution:
    metric: str
    normalized: float
    weight: float


@dataclass(frozen=True)
class ScoreResult:
    """
    Weighted swing score.

    Attributes:
        overall: 0-100 weighted score over present metrics
        per_metric_normalized: Quality in [0, 1] for each present metric
        weakest: Present metrics ordered from weakest to strongest
        insufficient_data: True when no metric could be scored;
                           overall is then 0 and must not be shown as a grade
        contributions: Normalized quality and weight per scored metric
    """
    overall: int
    per_metric_normalized: Mapping[str, float]
    weakest: Tuple[str, ...]
    insufficient_data: bool = False
    contributions: Tuple[MetricContribution, ...] = ()

    @property
    def label(self) -> str:
        if self.insufficient_data:
            return INSUFFICIENT_DATA_LABEL
        return score_label(self.overall)


# =============================================================================
# Coaching
# =============================================================================

@dataclass(frozen=True)
class DrillReference:
    """
    A practice drill resolved from the drill catalog.

    Attributes:
        drill_id: Stable catalog identifier
        name: Display name
        goal_metric: Metric this drill targets
        purpose: One-line purpose
        setup: How to set up before starting
        instructions: Ordered steps
        equipment: Required equipment
        reps: Suggested volume
        focus_cues: Short reminders while doing the drill
    """
    drill_id: str
    name: str
    goal_metric: Optional[str] = None
    purpose: str = ""
    setup: Tuple[str, ...] = ()
    instructions: Tuple[str, ...] = ()
    equipment: Tuple[str, ...] = ()
    reps: str = ""
    focus_cues: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CoachingCard:
    """
    A coaching cue for one weak metric with its recommended drill.

    drill is None when the catalog has no drill for the metric;
    the UI decides how to render that.
    """
    metric: str
    cue: str
    why: str
    drill: Optional[DrillReference] = None


# =============================================================================
# Attempt lifecycle
# =============================================================================

class AnalysisState(Enum):
    """
    States of a single analysis attempt.

    NEEDS_RETAKE, COMPLETE, ERROR and CANCELLED are terminal.
    A new attempt always starts from a fresh IDLE.
    """
    IDLE = "idle"
    DETECTING = "detecting"
    NEEDS_RETAKE = "needs_retake"
    SEGMENTED = "segmented"
    SCORING = "scoring"
    CARDS_BUILT = "cards_built"
    COMPLETE = "complete"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self]


_TRANSITIONS: Dict[AnalysisState, frozenset] = {
    AnalysisState.IDLE: frozenset({AnalysisState.DETECTING}),
    AnalysisState.DETECTING: frozenset({
        AnalysisState.NEEDS_RETAKE,
        AnalysisState.SEGMENTED,
        AnalysisState.ERROR,
        AnalysisState.CANCELLED,
    }),
    AnalysisState.SEGMENTED: frozenset({AnalysisState.SCORING, AnalysisState.CANCELLED}),
    AnalysisState.SCORING: frozenset({
        AnalysisState.CARDS_BUILT,
        AnalysisState.ERROR,
        AnalysisState.CANCELLED,
    }),
    AnalysisState.CARDS_BUILT: frozenset({AnalysisState.COMPLETE}),
    AnalysisState.NEEDS_RETAKE: frozenset(),
    AnalysisState.COMPLETE: frozenset(),
    AnalysisState.ERROR: frozenset(),
    AnalysisState.CANCELLED: frozenset(),
}


class AttemptLifecycle:
    """Tracks the state of one attempt and rejects illegal transitions."""

    def __init__(self):
        self.state = AnalysisState.IDLE
        self.history: list[AnalysisState] = [AnalysisState.IDLE]

    def advance(self, to: AnalysisState) -> AnalysisState:
        if to not in _TRANSITIONS[self.state]:
            raise InvalidStateTransition(f"Cannot move from {self.state.value} to {to.value}")
        self.state = to
        self.history.append(to)
        return to


@dataclass(frozen=True)
class AnalysisOutcome:
    """
    Complete result of one analysis attempt.

    When needs_retake is True, metrics/score/cards are None and
    retake_reasons explains why.
    """
    # Identification
    id: str
    state: AnalysisState

    # Stream info
    fps: float
    frames_analyzed: int

    # Segmentation
    segmentation: SegmentationResult

    # Results (absent when a retake is needed)
    metrics: Optional[MetricsResult] = None
    score: Optional[ScoreResult] = None
    cards: Tuple[CoachingCard, ...] = ()

    # Batting side the attempt was analyzed for
    handedness: Handedness = Handedness.RIGHT

    # Normalized frames the attempt was computed from
    frames: Tuple[FrameKeypoints, ...] = field(default=(), repr=False, compare=False)

    @property
    def needs_retake(self) -> bool:
        return self.state is AnalysisState.NEEDS_RETAKE

    @property
    def retake_reasons(self) -> Tuple[str, ...]:
        return self.segmentation.reasons if self.needs_retake else ()

    @property
    def events(self) -> SwingEvents:
        return self.segmentation.events

    @property
    def primary_card(self) -> Optional[CoachingCard]:
        return self.cards[0] if self.cards else None
