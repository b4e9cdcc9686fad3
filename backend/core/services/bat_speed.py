"""
Bat Speed Estimator

Estimates bat speed from wrist motion and places it in a player level band.

The bat is not tracked. Wrist speed is measured instead and scaled by a
fixed lever ratio (the barrel travels about 1.4x faster than the hands).
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from ..domain.pose import FrameKeypoints, Handedness, MIN_KEYPOINT_CONFIDENCE
from .body_scale import estimate_pixels_per_cm

logger = logging.getLogger(__name__)


# 1 cm/s = 0.0223694 mph
CM_PER_SECOND_TO_MPH = 0.0223694


class PlayerLevel(Enum):
    """Bat speed bands."""
    YOUTH = "Youth"
    DEVELOPING = "Developing"
    HIGH_SCHOOL = "High School"
    COLLEGE = "College"
    PROFESSIONAL = "Professional"

    @property
    def description(self) -> str:
        return LEVEL_DESCRIPTIONS[self]

    @property
    def tips(self) -> List[str]:
        return list(LEVEL_TIPS[self])


# Upper speed bound (mph, exclusive) for each band below PROFESSIONAL
LEVEL_BANDS = [
    (40.0, PlayerLevel.YOUTH),
    (55.0, PlayerLevel.DEVELOPING),
    (70.0, PlayerLevel.HIGH_SCHOOL),
    (80.0, PlayerLevel.COLLEGE),
]

LEVEL_DESCRIPTIONS = {
    PlayerLevel.YOUTH: "Youth level (8-12 years)",
    PlayerLevel.DEVELOPING: "Developing player (13-15 years)",
    PlayerLevel.HIGH_SCHOOL: "High school varsity level",
    PlayerLevel.COLLEGE: "College/elite amateur level",
    PlayerLevel.PROFESSIONAL: "Professional/elite level",
}

LEVEL_TIPS = {
    PlayerLevel.YOUTH: (
        "Focus on proper swing mechanics before worrying about speed",
        "Build core strength with age-appropriate exercises",
        "Practice dry swings with a lighter bat to develop muscle memory",
        "Work on hip rotation and weight transfer",
    ),
    PlayerLevel.DEVELOPING: (
        "Incorporate resistance training with bands or weighted bats",
        "Focus on explosive hip rotation drills",
        "Practice bat speed drills 3-4 times per week",
        "Work on lower body strength and flexibility",
    ),
    PlayerLevel.HIGH_SCHOOL: (
        "Add plyometric exercises to build explosive power",
        "Use overload/underload training (heavier and lighter bats)",
        "Focus on bat path efficiency and minimizing wasted movement",
        "Strengthen your core and rotational power",
    ),
    PlayerLevel.COLLEGE: (
        "Fine-tune your swing path for maximum efficiency",
        "Incorporate advanced strength training with Olympic lifts",
        "Work on bat speed maintenance throughout the season",
        "Study video to eliminate any unnecessary movements",
    ),
    PlayerLevel.PROFESSIONAL: (
        "Continue optimizing swing mechanics for consistency",
        "Maintain peak physical condition year-round",
        "Focus on bat-to-ball skills while preserving speed",
        "Use technology to track and maintain your metrics",
    ),
}


def categorize_level(speed_mph: float) -> PlayerLevel:
    """Player level band for a bat speed in mph."""
    for upper_bound, level in LEVEL_BANDS:
        if speed_mph < upper_bound:
            return level
    return PlayerLevel.PROFESSIONAL


@dataclass(frozen=True)
class SpeedSample:
    """Wrist speed over the step that ends at frame_index."""
    frame_index: int
    timestamp_ms: float
    mph: float


@dataclass(frozen=True)
class BatSpeedResult:
    peak_speed_mph: float
    avg_speed_mph: float
    peak_wrist_speed_mph: float
    avg_wrist_speed_mph: float
    swing_duration_ms: float
    acceleration_phase_ms: float
    level: PlayerLevel
    pixels_per_cm: float
    samples: Tuple[SpeedSample, ...] = ()

    @property
    def level_description(self) -> str:
        return self.level.description

    @property
    def tips(self) -> List[str]:
        return self.level.tips


class BatSpeedEstimator:
    """
    Estimates bat speed from wrist movement across frames.

    Usage:
        estimator = BatSpeedEstimator()
        result = estimator.estimate(frames)
        if result:
            print(f"{result.peak_speed_mph:.0f} mph ({result.level.value})")
    """

    BAT_TIP_MULTIPLIER = 1.4
    ACCELERATION_RATIO = 0.8

    def __init__(
        self,
        handedness: Handedness = Handedness.RIGHT,
        min_confidence: float = MIN_KEYPOINT_CONFIDENCE,
    ):
        self.handedness = handedness
        self.min_confidence = min_confidence

    def estimate(
        self,
        frames: Sequence[FrameKeypoints],
        pixels_per_cm: Optional[float] = None,
    ) -> Optional[BatSpeedResult]:
        """
        Estimate bat speed over the whole clip.

        Args:
            frames: Frames in timestamp order
            pixels_per_cm: Scale; calibrated from body height if omitted

        Returns:
            BatSpeedResult, or None without enough frames, a scale or any
            trackable wrist movement
        """
        if len(frames) < 2:
            logger.debug("Not enough frames to estimate bat speed")
            return None

        scale = pixels_per_cm or estimate_pixels_per_cm(frames)
        if not scale:
            logger.debug("Could not calibrate scale from body height")
            return None

        samples = self.wrist_speeds(frames, scale)
        if not samples:
            return None

        speeds = [sample.mph for sample in samples]
        peak_wrist = max(speeds)
        avg_wrist = sum(speeds) / len(speeds)

        # Time from the first tracked step until the hands reach 80% of peak
        threshold = peak_wrist * self.ACCELERATION_RATIO
        reached = next(sample for sample in samples if sample.mph >= threshold)
        acceleration_ms = reached.timestamp_ms - samples[0].timestamp_ms

        peak_speed = peak_wrist * self.BAT_TIP_MULTIPLIER
        return BatSpeedResult(
            peak_speed_mph=peak_speed,
            avg_speed_mph=avg_wrist * self.BAT_TIP_MULTIPLIER,
            peak_wrist_speed_mph=peak_wrist,
            avg_wrist_speed_mph=avg_wrist,
            swing_duration_ms=frames[-1].timestamp_ms - frames[0].timestamp_ms,
            acceleration_phase_ms=acceleration_ms,
            level=categorize_level(peak_speed),
            pixels_per_cm=scale,
            samples=tuple(samples),
        )

    def wrist_speeds(
        self,
        frames: Sequence[FrameKeypoints],
        pixels_per_cm: float,
    ) -> List[SpeedSample]:
        """
        Wrist speed in mph between consecutive frames.

        The trail wrist is preferred; the lead wrist is used for steps
        where the trail wrist is not tracked in both frames.
        """
        samples = []
        wrists = (self.handedness.trail_part("wrist"), self.handedness.lead_part("wrist"))

        for previous, current in zip(frames, frames[1:]):
            dt_ms = current.timestamp_ms - previous.timestamp_ms
            if dt_ms <= 0:
                continue
            for wrist in wrists:
                start = previous.get(wrist, self.min_confidence)
                end = current.get(wrist, self.min_confidence)
                if start is None or end is None:
                    continue
                cm_per_second = start.distance_to(end) / pixels_per_cm / (dt_ms / 1000.0)
                samples.append(SpeedSample(
                    frame_index=current.frame_index,
                    timestamp_ms=current.timestamp_ms,
                    mph=cm_per_second * CM_PER_SECOND_TO_MPH,
                ))
                break
        return samples
