"""
Body Scale Calibration

Converts pixel distances into real-world units using the athlete's
apparent standing height as a ruler.
"""

import logging
from typing import Optional, Sequence

import numpy as np

from ..domain.pose import BodyPart, FrameKeypoints

logger = logging.getLogger(__name__)


ASSUMED_BODY_HEIGHT_CM = 170.0

# Nose to ankle covers about 85% of standing height
NOSE_TO_ANKLE_RATIO = 0.85

CALIBRATION_CONFIDENCE = 0.4


def body_height_px(
    frame: FrameKeypoints,
    min_confidence: float = CALIBRATION_CONFIDENCE,
) -> Optional[float]:
    """
    Estimated standing height in pixels for one frame.

    Uses the nose and whichever ankle is tracked with higher confidence.
    Returns None when either landmark is missing or below min_confidence.
    """
    nose = frame.get(BodyPart.NOSE, min_confidence)
    ankles = [
        ankle for ankle in (
            frame.get(BodyPart.LEFT_ANKLE, min_confidence),
            frame.get(BodyPart.RIGHT_ANKLE, min_confidence),
        )
        if ankle is not None
    ]
    if nose is None or not ankles:
        return None

    ankle = max(ankles, key=lambda kp: kp.confidence)
    distance = nose.distance_to(ankle)
    if distance <= 0:
        return None
    return distance / NOSE_TO_ANKLE_RATIO


def estimate_pixels_per_cm(
    frames: Sequence[FrameKeypoints],
    reference: Optional[FrameKeypoints] = None,
    body_height_cm: float = ASSUMED_BODY_HEIGHT_CM,
) -> Optional[float]:
    """
    Pixels per centimetre in the video.

    Args:
        frames: All frames of the swing (median fallback)
        reference: Preferred calibration frame, usually launch
        body_height_cm: Assumed real-world standing height

    Returns:
        Scale factor, or None if no frame shows both head and feet
    """
    if reference is not None:
        height = body_height_px(reference)
        if height is not None:
            return height / body_height_cm

    heights = [h for h in (body_height_px(frame) for frame in frames) if h is not None]
    if not heights:
        logger.debug("Body scale unavailable: no frame shows both nose and ankle")
        return None

    # Median avoids outliers from crouched or partially hidden frames
    return float(np.median(heights)) / body_height_cm
