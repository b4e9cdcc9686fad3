"""
Pose Stream Adapter

Normalizes raw per-frame output of a pose detection model into the
canonical FrameKeypoints representation.

Pose models disagree on field names (name/part, score/confidence/
visibility), landmark vocabularies (COCO camelCase, MediaPipe's
33 landmarks, upper-case enum names) and container shapes. This module
is the only place that knows about those differences; everything
downstream works with FrameKeypoints.
"""

import logging
import math
import re
from collections.abc import Mapping, Sequence
from typing import Any, Iterable, Iterator, List, Optional, Protocol, Tuple

import numpy as np

from ..domain.errors import PoseDetectionFailure
from ..domain.pose import BodyPart, FrameKeypoints, Keypoint

logger = logging.getLogger(__name__)


class PoseModel(Protocol):
    """
    An initialized pose detection model owned by the caller.

    detect() returns zero or more detected people for one image,
    in whatever shape the model emits.
    """

    def initialize(self) -> None: ...

    def detect(self, image: np.ndarray) -> Any: ...

    def close(self) -> None: ...


# =============================================================================
# Alias tables
# =============================================================================

# MediaPipe Pose Landmarker order (33 landmarks)
MEDIAPIPE_LANDMARKS = [
    "nose",
    "left_eye_inner", "left_eye", "left_eye_outer",
    "right_eye_inner", "right_eye", "right_eye_outer",
    "left_ear", "right_ear",
    "mouth_left", "mouth_right",
    "left_shoulder", "right_shoulder",
    "left_elbow", "right_elbow",
    "left_wrist", "right_wrist",
    "left_pinky", "right_pinky",
    "left_index", "right_index",
    "left_thumb", "right_thumb",
    "left_hip", "right_hip",
    "left_knee", "right_knee",
    "left_ankle", "right_ankle",
    "left_heel", "right_heel",
    "left_foot_index", "right_foot_index",
]

# COCO / MoveNet / PoseNet order (17 keypoints)
COCO_KEYPOINTS = [part.value for part in BodyPart]

NAME_FIELDS = ("name", "part", "body_part", "landmark")
CONFIDENCE_FIELDS = ("score", "confidence", "visibility", "presence")
KEYPOINT_CONTAINER_FIELDS = ("keypoints", "landmarks", "pose_landmarks")
PEOPLE_FIELDS = ("poses", "people", "persons", "detections")


def _alias_key(name: str) -> str:
    """Lower-case and drop separators: "LEFT_SHOULDER" and "leftShoulder" -> "leftshoulder"."""
    return re.sub(r"[^a-z0-9]", "", name.lower())


def _build_alias_table() -> dict[str, BodyPart]:
    table: dict[str, BodyPart] = {}
    for part in BodyPart:
        table[_alias_key(part.value)] = part
        side, _, joint = part.value.partition("_")
        if joint:
            # l_shoulder / lshoulder
            table[_alias_key(side[0] + joint)] = part
    return table


ALIASES: dict[str, BodyPart] = _build_alias_table()


def resolve_body_part(name: Any) -> Optional[BodyPart]:
    """Map a landmark name from any supported vocabulary onto BodyPart."""
    if isinstance(name, BodyPart):
        return name
    if isinstance(name, int) and not isinstance(name, bool):
        if 0 <= name < len(MEDIAPIPE_LANDMARKS):
            return ALIASES.get(_alias_key(MEDIAPIPE_LANDMARKS[name]))
        return None
    if hasattr(name, "name") and not isinstance(name, str):
        # Enum members from other vocabularies (e.g. IntEnum landmark ids)
        name = name.name
    if not isinstance(name, str):
        return None
    return ALIASES.get(_alias_key(name))


def _field(record: Any, names: Tuple[str, ...], default: Any = None) -> Any:
    """First non-None field among names, for dicts and attribute objects alike."""
    for name in names:
        if isinstance(record, Mapping):
            value = record.get(name)
        else:
            value = getattr(record, name, None)
        if value is not None:
            return value
    return default


def _unit_interval(value: Any) -> float:
    """Clamp a score to [0, 1]; non-finite scores count as 0."""
    value = float(value)
    if not math.isfinite(value):
        return 0.0
    return min(max(value, 0.0), 1.0)


def _looks_like_keypoint(record: Any) -> bool:
    if _field(record, ("x",)) is not None and _field(record, ("y",)) is not None:
        return True
    return _field(record, ("position",)) is not None


# =============================================================================
# Adapter
# =============================================================================

class PoseStreamAdapter:
    """
    Converts raw detector output into canonical FrameKeypoints.

    The adapter is pure: normalize_frame() and normalize_stream() only map
    data. process_image() additionally calls the pose model handed in
    by the caller; the adapter never creates or disposes of the model.

    Usage:
        with PoseDetector() as detector:
            adapter = PoseStreamAdapter(detector)
            frame = adapter.process_image(image, frame_index=0, timestamp_ms=0.0)

        # Or normalize output that was detected elsewhere
        frames = PoseStreamAdapter().normalize_stream(raw_frames)
    """

    def __init__(self, model: Optional[PoseModel] = None):
        self.model = model

    # -------------------------------------------------------------------------
    # Model invocation
    # -------------------------------------------------------------------------

    def process_image(
        self,
        image: np.ndarray,
        frame_index: int,
        timestamp_ms: float,
    ) -> FrameKeypoints:
        """
        Run the pose model on one image and normalize the result.

        A frame without a detected person yields an empty FrameKeypoints.

        Raises:
            PoseDetectionFailure: the model call itself failed
        """
        if self.model is None:
            raise PoseDetectionFailure("No pose model attached to the adapter")
        try:
            raw = self.model.detect(image)
        except PoseDetectionFailure:
            raise
        except Exception as e:
            raise PoseDetectionFailure(f"Pose model failed on frame {frame_index}: {e}") from e
        return self.normalize_frame(raw, frame_index, timestamp_ms)

    # -------------------------------------------------------------------------
    # Normalization
    # -------------------------------------------------------------------------

    def normalize_stream(
        self,
        raw_frames: Iterable[Tuple[int, float, Any]],
    ) -> List[FrameKeypoints]:
        """
        Normalize a sequence of (frame_index, timestamp_ms, raw_output) tuples.

        Frames whose timestamp does not strictly increase are dropped.
        """
        frames: List[FrameKeypoints] = []
        for frame_index, timestamp_ms, raw in raw_frames:
            if frames and timestamp_ms <= frames[-1].timestamp_ms:
                logger.warning(
                    f"Dropping frame {frame_index}: timestamp {timestamp_ms}ms "
                    f"does not follow {frames[-1].timestamp_ms}ms"
                )
                continue
            frames.append(self.normalize_frame(raw, frame_index, timestamp_ms))
        return frames

    def normalize_frame(self, raw: Any, frame_index: int, timestamp_ms: float) -> FrameKeypoints:
        """Normalize the raw output for a single frame."""
        people = list(self._iter_people(raw))
        if not people:
            logger.debug(f"No person detected in frame {frame_index}")
            return FrameKeypoints(frame_index=frame_index, timestamp_ms=float(timestamp_ms))

        candidates = [self._convert_person(person) for person in people]
        keypoints, _ = max(candidates, key=lambda candidate: candidate[1])
        return FrameKeypoints(
            frame_index=frame_index,
            timestamp_ms=float(timestamp_ms),
            keypoints=keypoints,
        )

    # -------------------------------------------------------------------------
    # Private Helper Methods
    # -------------------------------------------------------------------------

    def _iter_people(self, raw: Any) -> Iterator[Any]:
        """Yield each detected person in the raw frame output."""
        if raw is None:
            return
        if isinstance(raw, Mapping) or not isinstance(raw, Sequence):
            people = _field(raw, PEOPLE_FIELDS)
            if people is not None:
                yield from self._iter_people(people)
            elif _field(raw, KEYPOINT_CONTAINER_FIELDS) is not None or isinstance(raw, Mapping):
                yield raw
            return
        if isinstance(raw, str) or len(raw) == 0:
            return
        # A flat list of keypoint records is a single person
        if _looks_like_keypoint(raw[0]):
            yield raw
            return
        for person in raw:
            if person is not None:
                yield person

    def _convert_person(self, person: Any) -> Tuple[dict[BodyPart, Keypoint], float]:
        """
        Convert one person into canonical keypoints.

        Returns:
            (keypoints by body part, person score used to pick between people)
        """
        container = _field(person, KEYPOINT_CONTAINER_FIELDS, default=person)

        if isinstance(container, Mapping):
            records = [
                (name, record) for name, record in container.items()
                if _looks_like_keypoint(record)
            ]
        elif isinstance(container, Sequence) and not isinstance(container, str):
            positional = self._positional_vocabulary(container)
            records = [
                (positional[i] if positional else None, record)
                for i, record in enumerate(container)
            ]
        else:
            records = []

        keypoints: dict[BodyPart, Keypoint] = {}
        for fallback_name, record in records:
            keypoint = self._convert_keypoint(record, fallback_name)
            if keypoint is None:
                continue
            existing = keypoints.get(keypoint.name)
            if existing is None or keypoint.confidence > existing.confidence:
                keypoints[keypoint.name] = keypoint

        pose_score = _field(person, ("score", "confidence")) if person is not container else None
        if pose_score is None or not math.isfinite(float(pose_score)):
            pose_score = (
                sum(kp.confidence for kp in keypoints.values()) / len(keypoints)
                if keypoints else 0.0
            )
        return keypoints, _unit_interval(pose_score)

    @staticmethod
    def _positional_vocabulary(records: Sequence[Any]) -> Optional[List[str]]:
        """Landmark order for unnamed keypoint lists, chosen by length."""
        if any(_field(record, NAME_FIELDS) is not None for record in records):
            return None
        if len(records) == len(MEDIAPIPE_LANDMARKS):
            return MEDIAPIPE_LANDMARKS
        if len(records) == len(COCO_KEYPOINTS):
            return COCO_KEYPOINTS
        return None

    @staticmethod
    def _convert_keypoint(record: Any, fallback_name: Any) -> Optional[Keypoint]:
        name = _field(record, NAME_FIELDS, default=fallback_name)
        body_part = resolve_body_part(name)
        if body_part is None:
            if name is not None:
                logger.debug(f"Dropping unknown landmark {name!r}")
            return None

        position = _field(record, ("position",), default=record)
        x = _field(position, ("x",))
        y = _field(position, ("y",))
        if x is None or y is None:
            return None

        x, y = float(x), float(y)
        if not (math.isfinite(x) and math.isfinite(y)):
            return None

        confidence = _unit_interval(_field(record, CONFIDENCE_FIELDS, default=0.0))
        return Keypoint(name=body_part, x=x, y=y, confidence=confidence)
