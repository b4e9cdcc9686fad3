"""
Pose Domain Models

Data structures for representing body keypoints produced by a pose
detection model, after they have been normalized into one canonical
vocabulary.

Coordinates are pixel positions in the source video frame
(x grows to the right, y grows downward).
"""
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional


# Keypoints below this confidence are treated as absent for measurements
MIN_KEYPOINT_CONFIDENCE = 0.3


class BodyPart(str, Enum):
    """
    Canonical body landmark names.

    This is the 17-point COCO vocabulary used by MoveNet/PoseNet.
    MediaPipe's 33-point output is mapped onto it by the pose stream
    adapter; landmarks outside this set are dropped.
    """
    # Face
    NOSE = "nose"
    LEFT_EYE = "left_eye"
    RIGHT_EYE = "right_eye"
    LEFT_EAR = "left_ear"
    RIGHT_EAR = "right_ear"

    # Upper body
    LEFT_SHOULDER = "left_shoulder"
    RIGHT_SHOULDER = "right_shoulder"
    LEFT_ELBOW = "left_elbow"
    RIGHT_ELBOW = "right_elbow"
    LEFT_WRIST = "left_wrist"
    RIGHT_WRIST = "right_wrist"

    # Lower body
    LEFT_HIP = "left_hip"
    RIGHT_HIP = "right_hip"
    LEFT_KNEE = "left_knee"
    RIGHT_KNEE = "right_knee"
    LEFT_ANKLE = "left_ankle"
    RIGHT_ANKLE = "right_ankle"


class Handedness(Enum):
    """
    Batting side.

    A right-handed batter leads with the left side of the body
    (the side facing the pitcher).
    """
    RIGHT = "right"
    LEFT = "left"

    @property
    def lead(self) -> str:
        """Prefix of the lead-side landmarks ("left" or "right")."""
        return "left" if self is Handedness.RIGHT else "right"

    @property
    def trail(self) -> str:
        return "right" if self is Handedness.RIGHT else "left"

    def lead_part(self, joint: str) -> BodyPart:
        """Lead-side landmark for a joint name, e.g. lead_part("wrist")."""
        return BodyPart(f"{self.lead}_{joint}")

    def trail_part(self, joint: str) -> BodyPart:
        return BodyPart(f"{self.trail}_{joint}")


@dataclass(frozen=True)
class Keypoint:
    """
    A single body landmark in one frame.

    Attributes:
        name: Which body part this keypoint represents
        x: Horizontal pixel position
        y: Vertical pixel position
        confidence: Detection confidence (0.0 to 1.0)
    """
    name: BodyPart
    x: float
    y: float
    confidence: float

    def is_visible(self, threshold: float = MIN_KEYPOINT_CONFIDENCE) -> bool:
        """Check if keypoint is confident enough to be measured."""
        return self.confidence >= threshold

    def distance_to(self, other: "Keypoint") -> float:
        """Euclidean pixel distance to another keypoint."""
        return ((self.x - other.x) ** 2 + (self.y - other.y) ** 2) ** 0.5


@dataclass(frozen=True)
class FrameKeypoints:
    """
    All keypoints detected in one processed video frame.

    Attributes:
        frame_index: Index of the decoded frame in the source video
        timestamp_ms: Video timestamp in milliseconds
        keypoints: Keypoints keyed by body part (unique by name).
                   Empty when no person was detected in the frame.
    """
    frame_index: int
    timestamp_ms: float
    keypoints: Mapping[BodyPart, Keypoint] = field(default_factory=dict)

    @property
    def has_pose(self) -> bool:
        return bool(self.keypoints)

    def get(
        self,
        body_part: BodyPart,
        min_confidence: float = MIN_KEYPOINT_CONFIDENCE,
    ) -> Optional[Keypoint]:
        """
        Get a keypoint usable for measurement.

        Returns None when the keypoint is missing or below
        the confidence threshold.
        """
        keypoint = self.keypoints.get(body_part)
        if keypoint is None or not keypoint.is_visible(min_confidence):
            return None
        return keypoint

    @property
    def average_confidence(self) -> float:
        """Mean confidence across the landmarks present in this frame; NaN scores are skipped."""
        scores = [kp.confidence for kp in self.keypoints.values() if math.isfinite(kp.confidence)]
        if not scores:
            return 0.0
        return sum(scores) / len(scores)
