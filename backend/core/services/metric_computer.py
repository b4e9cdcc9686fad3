"""
Metric Computer Service

Turns keypoints at the detected swing events into named biomechanical
measurements (angles in degrees, distances in cm, timing in frames/ms,
speed in mph).

Every metric is computed on its own. A missing frame, event or keypoint
makes only that metric None; it never stops the others and is never
replaced by zero. The computation is deterministic: the same frames,
events and frame rate always give the same result.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from ..domain.analysis import (
    CRITICAL_EVENTS,
    MetricsResult,
    QualityFlags,
    SwingEvent,
    SwingEvents,
)
from ..domain.pose import BodyPart, FrameKeypoints, Handedness, MIN_KEYPOINT_CONFIDENCE
from .angle_calculator import AngleCalculator, Point
from .bat_speed import BatSpeedEstimator
from .body_scale import estimate_pixels_per_cm

logger = logging.getLogger(__name__)


# Contact ideally lands 100 ms after launch
IDEAL_CONTACT_DELAY_MS = 100.0

# Frames on either side of contact used for the attack angle
TRAJECTORY_WINDOW_FRAMES = 3

# Stride history needed before stride variance is measured
MIN_STRIDE_HISTORY = 3

# More than this share of absent metrics flags the swing as low confidence
ABSENT_METRIC_RATIO = 0.4


METRIC_UNITS = {
    "hip_shoulder_sep_deg": "deg",
    "attack_angle_deg": "deg",
    "head_drift_cm": "cm",
    "contact_timing_frames": "frames",
    "bat_lag_deg": "deg",
    "torso_tilt_deg": "deg",
    "stride_var_pct": "%",
    "finish_balance_idx": "index",
    "time_to_contact_ms": "ms",
    "bat_speed_mph": "mph",
    "arm_extension_cm": "cm",
    "shoulder_tilt_deg": "deg",
}

METRIC_DISPLAY_NAMES = {
    "hip_shoulder_sep_deg": "Hip-Shoulder Separation",
    "attack_angle_deg": "Attack Angle",
    "head_drift_cm": "Head Drift",
    "contact_timing_frames": "Contact Timing",
    "bat_lag_deg": "Bat Lag",
    "torso_tilt_deg": "Torso Tilt",
    "stride_var_pct": "Stride Variance",
    "finish_balance_idx": "Finish Balance",
    "time_to_contact_ms": "Time to Contact",
    "bat_speed_mph": "Bat Speed",
    "arm_extension_cm": "Arm Extension",
    "shoulder_tilt_deg": "Shoulder Tilt",
}

METRIC_NAMES = tuple(METRIC_UNITS)


def metric_unit(name: str) -> str:
    return METRIC_UNITS.get(name, "")


def metric_display_name(name: str) -> str:
    return METRIC_DISPLAY_NAMES.get(name, name.replace("_", " ").title())


@dataclass(frozen=True)
class _SwingContext:
    """Everything a single metric formula may look at."""
    frames_by_index: Mapping[int, FrameKeypoints]
    ordered_indices: List[int]
    events: SwingEvents
    fps: float
    pixels_per_cm: Optional[float]
    handedness: Handedness
    recent_stride_lengths: Sequence[float]
    min_confidence: float

    def frame(self, event: SwingEvent) -> Optional[FrameKeypoints]:
        frame_index = self.events.get(event)
        if frame_index is None:
            return None
        return self.frames_by_index.get(frame_index)

    def point(self, frame: Optional[FrameKeypoints], body_part: BodyPart) -> Optional[Point]:
        if frame is None:
            return None
        keypoint = frame.get(body_part, self.min_confidence)
        if keypoint is None:
            return None
        return (keypoint.x, keypoint.y)

    def midpoint(
        self,
        frame: Optional[FrameKeypoints],
        a: BodyPart,
        b: BodyPart,
    ) -> Optional[Point]:
        return AngleCalculator.calculate_midpoint(self.point(frame, a), self.point(frame, b))

    def to_cm(self, pixels: Optional[float]) -> Optional[float]:
        if pixels is None or not self.pixels_per_cm:
            return None
        return pixels / self.pixels_per_cm


# =============================================================================
# Public API
# =============================================================================

def compute_metrics(
    frames_by_index: Mapping[int, FrameKeypoints],
    events: SwingEvents,
    fps: float,
    recent_stride_lengths: Sequence[float] = (),
    handedness: Handedness = Handedness.RIGHT,
    min_confidence: float = MIN_KEYPOINT_CONFIDENCE,
) -> MetricsResult:
    """
    Compute all swing metrics.

    Args:
        frames_by_index: Normalized frames keyed by frame index
        events: Detected swing events
        fps: Frame rate of the source video (decoded frames per second)
        recent_stride_lengths: The athlete's previous stride lengths in cm,
                               oldest first; stride variance needs three
        handedness: Batting side (selects the lead arm and leg)
        min_confidence: Keypoints below this confidence are treated as absent

    Returns:
        MetricsResult with one entry per metric in METRIC_NAMES
    """
    ordered_indices = sorted(frames_by_index)
    launch_frame = frames_by_index.get(events.launch) if events.launch is not None else None
    pixels_per_cm = estimate_pixels_per_cm(
        [frames_by_index[i] for i in ordered_indices],
        reference=launch_frame,
    )

    ctx = _SwingContext(
        frames_by_index=frames_by_index,
        ordered_indices=ordered_indices,
        events=events,
        fps=fps,
        pixels_per_cm=pixels_per_cm,
        handedness=handedness,
        recent_stride_lengths=tuple(recent_stride_lengths),
        min_confidence=min_confidence,
    )

    metrics: Dict[str, Optional[float]] = {}
    for name, formula in METRIC_FORMULAS.items():
        value = formula(ctx)
        metrics[name] = float(value) if value is not None else None

    missing = [event.value for event in events.missing(CRITICAL_EVENTS)]
    absent = sum(1 for value in metrics.values() if value is None)
    low_confidence = absent / len(metrics) > ABSENT_METRIC_RATIO or len(missing) > 1

    if low_confidence:
        logger.info(f"Metrics flagged low confidence: {absent} absent, missing events {missing}")

    return MetricsResult(
        metrics=metrics,
        quality_flags=QualityFlags(low_confidence=low_confidence, missing_events=tuple(missing)),
        pixels_per_cm=pixels_per_cm,
    )


def measure_stride_length_cm(
    frames_by_index: Mapping[int, FrameKeypoints],
    events: SwingEvents,
    handedness: Handedness = Handedness.RIGHT,
) -> Optional[float]:
    """
    Lead ankle travel between stride plant and launch, in cm.

    Callers keep these per athlete and pass the most recent ones back as
    recent_stride_lengths on the next swing.
    """
    ordered = [frames_by_index[i] for i in sorted(frames_by_index)]
    launch_frame = frames_by_index.get(events.launch) if events.launch is not None else None
    ctx = _SwingContext(
        frames_by_index=frames_by_index,
        ordered_indices=sorted(frames_by_index),
        events=events,
        fps=0.0,
        pixels_per_cm=estimate_pixels_per_cm(ordered, reference=launch_frame),
        handedness=handedness,
        recent_stride_lengths=(),
        min_confidence=MIN_KEYPOINT_CONFIDENCE,
    )
    return _stride_length_cm(ctx)


# =============================================================================
# Metric formulas
# =============================================================================

def _hip_shoulder_separation(ctx: _SwingContext) -> Optional[float]:
    """Angle between the shoulder line and the hip line at launch."""
    frame = ctx.frame(SwingEvent.LAUNCH)
    ls = ctx.point(frame, BodyPart.LEFT_SHOULDER)
    rs = ctx.point(frame, BodyPart.RIGHT_SHOULDER)
    lh = ctx.point(frame, BodyPart.LEFT_HIP)
    rh = ctx.point(frame, BodyPart.RIGHT_HIP)
    if None in (ls, rs, lh, rh):
        return None
    shoulders = (rs[0] - ls[0], rs[1] - ls[1])
    hips = (rh[0] - lh[0], rh[1] - lh[1])
    return AngleCalculator.angle_between_vectors(shoulders, hips)


def _attack_angle(ctx: _SwingContext) -> Optional[float]:
    """Lead wrist travel direction over the frames around contact."""
    contact = ctx.events.contact
    if contact is None or contact not in ctx.frames_by_index:
        return None

    position = ctx.ordered_indices.index(contact)
    start = ctx.ordered_indices[max(0, position - TRAJECTORY_WINDOW_FRAMES)]
    end = ctx.ordered_indices[min(len(ctx.ordered_indices) - 1, position + TRAJECTORY_WINDOW_FRAMES)]
    if start == end:
        return None

    wrist = ctx.handedness.lead_part("wrist")
    p_start = ctx.point(ctx.frames_by_index[start], wrist)
    p_end = ctx.point(ctx.frames_by_index[end], wrist)
    if p_start is None or p_end is None:
        return None
    return AngleCalculator.trajectory_angle(p_start, p_end)


def _head_center(ctx: _SwingContext, frame: Optional[FrameKeypoints]) -> Optional[Point]:
    points = [
        p for p in (
            ctx.point(frame, BodyPart.NOSE),
            ctx.point(frame, BodyPart.LEFT_EYE),
            ctx.point(frame, BodyPart.RIGHT_EYE),
        )
        if p is not None
    ]
    return AngleCalculator.centroid(points)


def _head_drift(ctx: _SwingContext) -> Optional[float]:
    """Head movement from launch to contact."""
    start = _head_center(ctx, ctx.frame(SwingEvent.LAUNCH))
    end = _head_center(ctx, ctx.frame(SwingEvent.CONTACT))
    return ctx.to_cm(AngleCalculator.calculate_distance(start, end))


def _contact_timing(ctx: _SwingContext) -> Optional[float]:
    """Frames between actual contact and the ideal contact frame (positive = late)."""
    launch, contact = ctx.events.launch, ctx.events.contact
    if launch is None or contact is None or ctx.fps <= 0:
        return None
    ideal_frames = round(IDEAL_CONTACT_DELAY_MS / 1000.0 * ctx.fps)
    return contact - (launch + ideal_frames)


def _bat_lag(ctx: _SwingContext) -> Optional[float]:
    """Lead forearm against the barrel proxy (mid-elbows to mid-wrists) at launch."""
    frame = ctx.frame(SwingEvent.LAUNCH)
    lead_elbow = ctx.point(frame, ctx.handedness.lead_part("elbow"))
    lead_wrist = ctx.point(frame, ctx.handedness.lead_part("wrist"))
    mid_elbows = ctx.midpoint(frame, BodyPart.LEFT_ELBOW, BodyPart.RIGHT_ELBOW)
    mid_wrists = ctx.midpoint(frame, BodyPart.LEFT_WRIST, BodyPart.RIGHT_WRIST)
    if None in (lead_elbow, lead_wrist, mid_elbows, mid_wrists):
        return None
    forearm = (lead_wrist[0] - lead_elbow[0], lead_wrist[1] - lead_elbow[1])
    barrel = (mid_wrists[0] - mid_elbows[0], mid_wrists[1] - mid_elbows[1])
    return AngleCalculator.angle_between_vectors(forearm, barrel)


def _torso_tilt(ctx: _SwingContext) -> Optional[float]:
    """Hip centre to shoulder centre lean from vertical at launch."""
    frame = ctx.frame(SwingEvent.LAUNCH)
    hips = ctx.midpoint(frame, BodyPart.LEFT_HIP, BodyPart.RIGHT_HIP)
    shoulders = ctx.midpoint(frame, BodyPart.LEFT_SHOULDER, BodyPart.RIGHT_SHOULDER)
    if hips is None or shoulders is None:
        return None
    angle = AngleCalculator.angle_from_vertical(hips, shoulders)
    return abs(angle) if angle is not None else None


def _stride_length_cm(ctx: _SwingContext) -> Optional[float]:
    ankle = ctx.handedness.lead_part("ankle")
    plant = ctx.point(ctx.frame(SwingEvent.STRIDE_PLANT), ankle)
    launch = ctx.point(ctx.frame(SwingEvent.LAUNCH), ankle)
    return ctx.to_cm(AngleCalculator.calculate_distance(plant, launch))


def _stride_variance(ctx: _SwingContext) -> Optional[float]:
    """Deviation of this stride from the mean of the last three, in percent."""
    if len(ctx.recent_stride_lengths) < MIN_STRIDE_HISTORY:
        return None
    stride = _stride_length_cm(ctx)
    if stride is None:
        return None
    recent = ctx.recent_stride_lengths[-MIN_STRIDE_HISTORY:]
    mean = sum(recent) / len(recent)
    if mean <= 0:
        return None
    return abs(stride - mean) / mean * 100.0


def _finish_balance(ctx: _SwingContext) -> Optional[float]:
    """
    Horizontal offset of the hips from the centre of the feet at finish.

    0 = centred over the base, 1 = at or beyond either foot.
    """
    frame = ctx.frame(SwingEvent.FINISH)
    com = ctx.midpoint(frame, BodyPart.LEFT_HIP, BodyPart.RIGHT_HIP)
    left_foot = ctx.point(frame, BodyPart.LEFT_ANKLE)
    right_foot = ctx.point(frame, BodyPart.RIGHT_ANKLE)
    if com is None or left_foot is None or right_foot is None:
        return None

    foot_span = abs(right_foot[0] - left_foot[0])
    if foot_span == 0:
        return None
    foot_center = (left_foot[0] + right_foot[0]) / 2
    return min(1.0, abs(com[0] - foot_center) / (foot_span / 2))


def _time_to_contact(ctx: _SwingContext) -> Optional[float]:
    launch = ctx.frame(SwingEvent.LAUNCH)
    contact = ctx.frame(SwingEvent.CONTACT)
    if launch is None or contact is None:
        return None
    return contact.timestamp_ms - launch.timestamp_ms


def _bat_speed(ctx: _SwingContext) -> Optional[float]:
    """Peak wrist speed from launch to contact, scaled to the bat tip."""
    launch, contact = ctx.events.launch, ctx.events.contact
    if launch is None or contact is None or not ctx.pixels_per_cm:
        return None
    window = [
        ctx.frames_by_index[i] for i in ctx.ordered_indices
        if launch <= i <= contact
    ]
    estimator = BatSpeedEstimator(ctx.handedness, ctx.min_confidence)
    samples = estimator.wrist_speeds(window, ctx.pixels_per_cm)
    if not samples:
        return None
    return max(sample.mph for sample in samples) * BatSpeedEstimator.BAT_TIP_MULTIPLIER


def _arm_extension(ctx: _SwingContext) -> Optional[float]:
    """Lead shoulder to lead wrist distance at contact."""
    frame = ctx.frame(SwingEvent.CONTACT)
    shoulder = ctx.point(frame, ctx.handedness.lead_part("shoulder"))
    wrist = ctx.point(frame, ctx.handedness.lead_part("wrist"))
    return ctx.to_cm(AngleCalculator.calculate_distance(shoulder, wrist))


def _shoulder_tilt(ctx: _SwingContext) -> Optional[float]:
    """Shoulder line against horizontal at contact."""
    frame = ctx.frame(SwingEvent.CONTACT)
    left = ctx.point(frame, BodyPart.LEFT_SHOULDER)
    right = ctx.point(frame, BodyPart.RIGHT_SHOULDER)
    if left is None or right is None:
        return None
    return AngleCalculator.angle_from_horizontal(left, right)


METRIC_FORMULAS: Dict[str, Callable[[_SwingContext], Optional[float]]] = {
    "hip_shoulder_sep_deg": _hip_shoulder_separation,
    "attack_angle_deg": _attack_angle,
    "head_drift_cm": _head_drift,
    "contact_timing_frames": _contact_timing,
    "bat_lag_deg": _bat_lag,
    "torso_tilt_deg": _torso_tilt,
    "stride_var_pct": _stride_variance,
    "finish_balance_idx": _finish_balance,
    "time_to_contact_ms": _time_to_contact,
    "bat_speed_mph": _bat_speed,
    "arm_extension_cm": _arm_extension,
    "shoulder_tilt_deg": _shoulder_tilt,
}
