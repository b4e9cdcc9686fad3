"""
Phase Segmenter Service

Locates the named events of a swing (load, stride plant, launch, contact,
extension, finish) from keypoint trajectories.

The hands (midpoint of both wrists) act as a proxy for the bat:
- CONTACT: peak hand speed
- LAUNCH: last frame before contact where the hands are still slow
- FINISH: first frame after contact where the hands settle
- LOAD_START: hands farthest from where they meet the ball
- STRIDE_PLANT: lead ankle stops moving after the stride
- EXTENSION: lead arm at its longest after contact

An event that cannot be located is left out. When too much of the swing
is missing, or tracking was poor, the result asks for a retake instead
of raising.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import numpy as np

from ..domain.analysis import (
    CANONICAL_ORDER,
    CRITICAL_EVENTS,
    SegmentationQuality,
    SegmentationResult,
    SwingEvent,
    SwingEvents,
)
from ..domain.pose import BodyPart, FrameKeypoints, Handedness, MIN_KEYPOINT_CONFIDENCE
from .angle_calculator import AngleCalculator, Point

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SegmenterSettings:
    """
    Tunables for event detection and the retake gate.

    Speed ratios are fractions of the peak (smoothed) hand speed.
    """
    min_frames: int = 10
    min_average_confidence: float = 0.4
    keypoint_confidence: float = MIN_KEYPOINT_CONFIDENCE
    smoothing_window: int = 3
    launch_speed_ratio: float = 0.25
    finish_speed_ratio: float = 0.15
    finish_plateau_frames: int = 3
    stride_speed_ratio: float = 0.20
    min_stride_travel_px: float = 5.0
    max_missing_critical: int = 1


PHASE_DESCRIPTIONS = {
    SwingEvent.LOAD_START: "Weight shifts back and the hands load",
    SwingEvent.STRIDE_PLANT: "Lead foot lands and braces",
    SwingEvent.LAUNCH: "Hips fire and the hands start forward",
    SwingEvent.CONTACT: "Barrel meets the ball",
    SwingEvent.EXTENSION: "Arms extend through the hitting zone",
    SwingEvent.FINISH: "Balanced follow-through",
}


class PhaseSegmenter:
    """
    Detects swing events in a normalized keypoint stream.

    Usage:
        segmenter = PhaseSegmenter()
        result = segmenter.segment(frames)
        if result.needs_retake:
            print(result.reasons)
        else:
            print(result.events.contact)
    """

    def __init__(
        self,
        settings: Optional[SegmenterSettings] = None,
        handedness: Handedness = Handedness.RIGHT,
    ):
        self.settings = settings or SegmenterSettings()
        self.handedness = handedness

    # -------------------------------------------------------------------------
    # Main Segmentation
    # -------------------------------------------------------------------------

    def segment(self, frames: Sequence[FrameKeypoints]) -> SegmentationResult:
        """
        Locate swing events and apply the retake gate.

        Args:
            frames: Normalized frames; sorted by timestamp before use

        Returns:
            SegmentationResult. Events are reported even when the quality is
            LOW_CONFIDENCE so the caller can show what was found.
        """
        ordered = sorted(frames, key=lambda f: f.timestamp_ms)
        events = self.detect_events(ordered)
        average_confidence = self._average_confidence(ordered)
        reasons = self._retake_reasons(ordered, events, average_confidence)

        if reasons:
            logger.info(f"Segmentation asks for a retake: {'; '.join(reasons)}")
            quality = SegmentationQuality.LOW_CONFIDENCE
        else:
            quality = SegmentationQuality.OK

        return SegmentationResult(
            events=events,
            quality=quality,
            average_confidence=average_confidence,
            reasons=tuple(reasons),
        )

    def detect_events(self, frames: Sequence[FrameKeypoints]) -> SwingEvents:
        """Locate each event independently; undetectable events are left out."""
        found: Dict[SwingEvent, Optional[int]] = {event: None for event in CANONICAL_ORDER}
        if not frames:
            return SwingEvents()

        hands = [self._hand_position(frame) for frame in frames]
        speeds = self._smoothed_speeds(frames, hands)

        contact = self._find_contact(speeds)
        if contact is None:
            logger.debug("No hand movement found; contact cannot be located")
            return SwingEvents()

        peak = float(speeds[contact])
        launch = self._find_launch(speeds, contact, peak)
        finish = self._find_finish(speeds, contact, peak)
        load_start = self._find_load_start(hands, contact, launch)
        stride_plant = self._find_stride_plant(frames, load_start, launch)
        extension = self._find_extension(frames, contact, finish)

        positions = {
            SwingEvent.LOAD_START: load_start,
            SwingEvent.STRIDE_PLANT: stride_plant,
            SwingEvent.LAUNCH: launch,
            SwingEvent.CONTACT: contact,
            SwingEvent.EXTENSION: extension,
            SwingEvent.FINISH: finish,
        }
        for event, position in positions.items():
            if position is not None:
                found[event] = frames[position].frame_index

        return SwingEvents.from_mapping(self._enforce_order(found))

    # -------------------------------------------------------------------------
    # Event Detection
    # -------------------------------------------------------------------------

    def _find_contact(self, speeds: np.ndarray) -> Optional[int]:
        if not np.isfinite(speeds).any():
            return None
        contact = int(np.nanargmax(speeds))
        if speeds[contact] <= 0:
            return None
        return contact

    def _find_launch(self, speeds: np.ndarray, contact: int, peak: float) -> Optional[int]:
        threshold = peak * self.settings.launch_speed_ratio
        for i in range(contact - 1, -1, -1):
            if np.isfinite(speeds[i]) and speeds[i] <= threshold:
                return i
        return None

    def _find_finish(self, speeds: np.ndarray, contact: int, peak: float) -> Optional[int]:
        threshold = peak * self.settings.finish_speed_ratio
        run = self.settings.finish_plateau_frames
        for start in range(contact + 1, len(speeds) - run + 1):
            window = speeds[start:start + run]
            if np.isfinite(window).all() and (window < threshold).all():
                return start
        return None

    def _find_load_start(
        self,
        hands: List[Optional[Point]],
        contact: int,
        launch: Optional[int],
    ) -> Optional[int]:
        if launch is None or hands[contact] is None:
            return None
        best, best_distance = None, -1.0
        for i in range(0, launch + 1):
            distance = AngleCalculator.calculate_distance(hands[i], hands[contact])
            if distance is not None and distance > best_distance:
                best, best_distance = i, distance
        return best

    def _find_stride_plant(
        self,
        frames: Sequence[FrameKeypoints],
        load_start: Optional[int],
        launch: Optional[int],
    ) -> Optional[int]:
        if load_start is None or launch is None or launch <= load_start:
            return None

        window = frames[load_start:launch + 1]
        ankle_part = self.handedness.lead_part("ankle")
        ankles = [self._point(frame, ankle_part) for frame in window]

        visible = [p for p in ankles if p is not None]
        if len(visible) < 2:
            return None
        travel = max(AngleCalculator.calculate_distance(visible[0], p) for p in visible)
        if travel < self.settings.min_stride_travel_px:
            return None

        speeds = self._smoothed_speeds(window, ankles)
        if not np.isfinite(speeds).any():
            return None
        peak_index = int(np.nanargmax(speeds))
        threshold = speeds[peak_index] * self.settings.stride_speed_ratio
        for i in range(peak_index + 1, len(speeds)):
            if np.isfinite(speeds[i]) and speeds[i] < threshold:
                return load_start + i
        return None

    def _find_extension(
        self,
        frames: Sequence[FrameKeypoints],
        contact: int,
        finish: Optional[int],
    ) -> Optional[int]:
        """Longest lead arm between contact and finish (or the end of the clip)."""
        end = finish if finish is not None else len(frames) - 1
        shoulder_part = self.handedness.lead_part("shoulder")
        wrist_part = self.handedness.lead_part("wrist")

        best, best_length = None, -1.0
        for i in range(contact, end + 1):
            length = AngleCalculator.calculate_distance(
                self._point(frames[i], shoulder_part),
                self._point(frames[i], wrist_part),
            )
            if length is not None and length > best_length:
                best, best_length = i, length
        return best

    @staticmethod
    def _enforce_order(found: Dict[SwingEvent, Optional[int]]) -> Dict[SwingEvent, Optional[int]]:
        """Drop any event that would come before an earlier event in the swing."""
        ordered: Dict[SwingEvent, Optional[int]] = {}
        last = None
        for event in CANONICAL_ORDER:
            frame_index = found.get(event)
            if frame_index is not None and last is not None and frame_index < last:
                logger.debug(f"Dropping {event.value} at frame {frame_index}: out of order")
                frame_index = None
            ordered[event] = frame_index
            if frame_index is not None:
                last = frame_index
        return ordered

    # -------------------------------------------------------------------------
    # Retake gate
    # -------------------------------------------------------------------------

    def _retake_reasons(
        self,
        frames: Sequence[FrameKeypoints],
        events: SwingEvents,
        average_confidence: float,
    ) -> List[str]:
        reasons = []
        if len(frames) < self.settings.min_frames:
            reasons.append(
                f"Only {len(frames)} frames were captured; "
                f"at least {self.settings.min_frames} are needed"
            )
        if average_confidence < self.settings.min_average_confidence:
            reasons.append(
                f"Body tracking confidence is too low "
                f"({average_confidence:.2f} < {self.settings.min_average_confidence:.2f})"
            )
        missing = events.missing(CRITICAL_EVENTS)
        if len(missing) > self.settings.max_missing_critical:
            names = ", ".join(event.value for event in missing)
            reasons.append(f"Could not find key swing events: {names}")
        return reasons

    @staticmethod
    def _average_confidence(frames: Sequence[FrameKeypoints]) -> float:
        """Mean landmark confidence over frames where a person was tracked."""
        tracked = [frame.average_confidence for frame in frames if frame.has_pose]
        tracked = [value for value in tracked if np.isfinite(value)]
        if not tracked:
            return 0.0
        return float(np.mean(tracked))

    # -------------------------------------------------------------------------
    # Private Helper Methods
    # -------------------------------------------------------------------------

    def _point(self, frame: FrameKeypoints, body_part: BodyPart) -> Optional[Point]:
        keypoint = frame.get(body_part, self.settings.keypoint_confidence)
        if keypoint is None:
            return None
        return (keypoint.x, keypoint.y)

    def _hand_position(self, frame: FrameKeypoints) -> Optional[Point]:
        """Midpoint of the wrists, or the single visible wrist."""
        left = self._point(frame, BodyPart.LEFT_WRIST)
        right = self._point(frame, BodyPart.RIGHT_WRIST)
        if left is not None and right is not None:
            return AngleCalculator.calculate_midpoint(left, right)
        return left or right

    def _smoothed_speeds(
        self,
        frames: Sequence[FrameKeypoints],
        positions: List[Optional[Point]],
    ) -> np.ndarray:
        """
        Per-frame speed in pixels/second, smoothed with a centred moving average.

        Frames without a position (or without a usable previous position)
        are NaN and are ignored by the average.
        """
        raw = np.full(len(frames), np.nan)
        for i in range(1, len(frames)):
            dt = frames[i].timestamp_ms - frames[i - 1].timestamp_ms
            distance = AngleCalculator.calculate_distance(positions[i - 1], positions[i])
            if distance is not None and dt > 0:
                raw[i] = distance / dt * 1000.0

        half = self.settings.smoothing_window // 2
        smoothed = np.full(len(frames), np.nan)
        for i in range(len(frames)):
            window = raw[max(0, i - half):i + half + 1]
            window = window[np.isfinite(window)]
            if window.size:
                smoothed[i] = window.mean()
        return smoothed


# =============================================================================
# Display helpers
# =============================================================================

def format_phases(
    events: SwingEvents,
    frames_by_index: Dict[int, FrameKeypoints],
) -> List[dict]:
    """
    Ordered phase timeline for display.

    Returns:
        One dict per detected event with event, label, frame_index,
        timestamp_ms (None if the frame is unknown) and description.
    """
    timeline = []
    for event in CANONICAL_ORDER:
        frame_index = events.get(event)
        if frame_index is None:
            continue
        frame = frames_by_index.get(frame_index)
        timeline.append({
            "event": event.value,
            "label": event.label,
            "frame_index": frame_index,
            "timestamp_ms": frame.timestamp_ms if frame else None,
            "description": PHASE_DESCRIPTIONS[event],
        })
    return timeline
