"""Tests for the pose stream adapter."""

import numpy as np
import pytest

from core.domain import BodyPart, PoseDetectionFailure
from core.services import PoseStreamAdapter
from core.services.pose_stream import COCO_KEYPOINTS, MEDIAPIPE_LANDMARKS, resolve_body_part


@pytest.mark.parametrize("name", [
    "left_shoulder",
    "leftShoulder",
    "LEFT_SHOULDER",
    "l_shoulder",
    "lshoulder",
    "Left Shoulder",
])
def test_aliases_resolve_to_canonical_name(name):
    assert resolve_body_part(name) is BodyPart.LEFT_SHOULDER


def test_unknown_and_mediapipe_only_names_are_dropped():
    assert resolve_body_part("left_pinky") is None
    assert resolve_body_part("bat_knob") is None
    assert resolve_body_part(None) is None


def test_integer_index_uses_mediapipe_order():
    assert resolve_body_part(0) is BodyPart.NOSE
    assert resolve_body_part(11) is BodyPart.LEFT_SHOULDER
    assert resolve_body_part(17) is None  # left_pinky
    assert resolve_body_part(99) is None


def test_named_records_with_mixed_field_names():
    raw = [{
        "keypoints": [
            {"name": "leftWrist", "x": 10, "y": 20, "score": 0.8},
            {"part": "RIGHT_WRIST", "position": {"x": 30, "y": 40}, "confidence": 0.7},
            {"body_part": "nose", "x": 5, "y": 6, "visibility": 0.95},
            {"landmark": "left_heel", "x": 1, "y": 2, "score": 0.9},
        ]
    }]

    frame = PoseStreamAdapter().normalize_frame(raw, frame_index=3, timestamp_ms=50.0)

    assert frame.frame_index == 3
    assert frame.timestamp_ms == 50.0
    assert set(frame.keypoints) == {BodyPart.LEFT_WRIST, BodyPart.RIGHT_WRIST, BodyPart.NOSE}
    right = frame.keypoints[BodyPart.RIGHT_WRIST]
    assert (right.x, right.y, right.confidence) == (30.0, 40.0, 0.7)


def test_missing_confidence_becomes_zero_and_values_are_clamped():
    raw = {"keypoints": {
        "nose": {"x": 1, "y": 1},
        "left_eye": {"x": 2, "y": 2, "score": 1.7},
        "right_eye": {"x": 3, "y": 3, "score": -0.2},
    }}

    frame = PoseStreamAdapter().normalize_frame(raw, 0, 0.0)

    assert frame.keypoints[BodyPart.NOSE].confidence == 0.0
    assert frame.keypoints[BodyPart.LEFT_EYE].confidence == 1.0
    assert frame.keypoints[BodyPart.RIGHT_EYE].confidence == 0.0
    # Present but not usable for measurement
    assert frame.get(BodyPart.NOSE) is None


def test_non_finite_values_are_not_trusted():
    raw = {"score": float("nan"), "keypoints": {
        "nose": {"x": 1, "y": 1, "score": float("nan")},
        "left_eye": {"x": 2, "y": 2, "score": float("inf")},
        "right_eye": {"x": float("nan"), "y": 3, "score": 0.9},
        "left_ear": {"x": 4, "y": 4, "score": 0.6},
    }}

    frame = PoseStreamAdapter().normalize_frame(raw, 0, 0.0)

    assert frame.keypoints[BodyPart.NOSE].confidence == 0.0
    assert frame.keypoints[BodyPart.LEFT_EYE].confidence == 0.0
    assert BodyPart.RIGHT_EYE not in frame.keypoints
    assert frame.average_confidence == pytest.approx(0.2)


def test_empty_people_gives_empty_frame():
    adapter = PoseStreamAdapter()

    for raw in (None, [], {"people": []}):
        frame = adapter.normalize_frame(raw, 7, 116.7)
        assert not frame.has_pose
        assert frame.average_confidence == 0.0


def test_highest_scoring_person_wins():
    raw = {"people": [
        {"score": 0.3, "keypoints": [{"name": "nose", "x": 1, "y": 1, "score": 0.9}]},
        {"score": 0.8, "keypoints": [{"name": "nose", "x": 99, "y": 99, "score": 0.6}]},
    ]}

    frame = PoseStreamAdapter().normalize_frame(raw, 0, 0.0)

    assert frame.keypoints[BodyPart.NOSE].x == 99.0


def test_people_without_score_compared_by_mean_confidence():
    raw = [
        [{"name": "nose", "x": 1, "y": 1, "score": 0.2}],
        [{"name": "nose", "x": 50, "y": 50, "score": 0.9}],
    ]

    frame = PoseStreamAdapter().normalize_frame(raw, 0, 0.0)

    assert frame.keypoints[BodyPart.NOSE].x == 50.0


def test_nan_person_score_falls_back_to_mean_confidence():
    raw = {"people": [
        {"score": 0.5, "keypoints": [{"name": "nose", "x": 1, "y": 1, "score": 0.5}]},
        {"score": float("nan"), "keypoints": [{"name": "nose", "x": 50, "y": 50, "score": 0.9}]},
    ]}

    frame = PoseStreamAdapter().normalize_frame(raw, 0, 0.0)

    assert frame.keypoints[BodyPart.NOSE].x == 50.0


def test_duplicate_names_keep_higher_confidence():
    raw = [{"keypoints": [
        {"name": "left_knee", "x": 1, "y": 1, "score": 0.4},
        {"name": "leftKnee", "x": 2, "y": 2, "score": 0.9},
        {"name": "LEFT_KNEE", "x": 3, "y": 3, "score": 0.5},
    ]}]

    frame = PoseStreamAdapter().normalize_frame(raw, 0, 0.0)

    assert frame.keypoints[BodyPart.LEFT_KNEE].x == 2.0


def test_positional_mediapipe_list():
    landmarks = [{"x": float(i), "y": float(i), "visibility": 0.9} for i in range(len(MEDIAPIPE_LANDMARKS))]

    frame = PoseStreamAdapter().normalize_frame([landmarks], 0, 0.0)

    assert len(frame.keypoints) == 17
    assert frame.keypoints[BodyPart.LEFT_HIP].x == float(MEDIAPIPE_LANDMARKS.index("left_hip"))


def test_positional_coco_list():
    keypoints = [{"x": float(i), "y": 0.0, "score": 0.5} for i in range(len(COCO_KEYPOINTS))]

    frame = PoseStreamAdapter().normalize_frame({"keypoints": keypoints}, 0, 0.0)

    assert len(frame.keypoints) == 17
    assert frame.keypoints[BodyPart.RIGHT_ANKLE].x == 16.0


def test_stream_drops_non_increasing_timestamps():
    person = [{"name": "nose", "x": 1, "y": 1, "score": 0.9}]
    raw_frames = [
        (0, 0.0, person),
        (1, 16.7, person),
        (2, 16.7, person),
        (3, 10.0, person),
        (4, 50.0, person),
    ]

    frames = PoseStreamAdapter().normalize_stream(raw_frames)

    assert [f.frame_index for f in frames] == [0, 1, 4]


class _FailingModel:
    def initialize(self):
        pass

    def detect(self, image):
        raise RuntimeError("GPU went away")

    def close(self):
        pass


class _StaticModel(_FailingModel):
    def detect(self, image):
        return [[{"name": "nose", "x": 4, "y": 5, "visibility": 0.9}]]


def test_model_errors_become_pose_detection_failure():
    adapter = PoseStreamAdapter(_FailingModel())

    with pytest.raises(PoseDetectionFailure) as excinfo:
        adapter.process_image(np.zeros((4, 4, 3), dtype=np.uint8), 12, 200.0)

    assert excinfo.value.retryable
    assert "frame 12" in str(excinfo.value)


def test_process_image_without_model_fails():
    with pytest.raises(PoseDetectionFailure):
        PoseStreamAdapter().process_image(np.zeros((4, 4, 3), dtype=np.uint8), 0, 0.0)


def test_process_image_normalizes_model_output():
    frame = PoseStreamAdapter(_StaticModel()).process_image(np.zeros((4, 4, 3), dtype=np.uint8), 2, 33.3)

    assert frame.frame_index == 2
    assert frame.keypoints[BodyPart.NOSE].x == 4.0
