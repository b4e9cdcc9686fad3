"""
Shared fixtures: a synthetic right-handed swing filmed at 60 fps.

The hands (wrist midpoint) sit still, load back, pause, then burst
forward and settle. With the default segmenter settings this puts

    load_start=11, stride_plant=15, launch=16, contact=20,
    extension=25, finish=25

The lead (left) ankle strides forward between frames 11 and 14.
"""

from typing import Dict, List, Optional

import pytest

from core.domain import BodyPart, FrameKeypoints, Keypoint
from core.config import load_drill_catalog, load_metric_specs

FPS = 60.0
N_FRAMES = 40

# Hand x travel per frame, keyed by the frame that ends the step
HAND_DX = {
    6: -5, 7: -5, 8: -5, 9: -5, 10: -5, 11: -5,
    16: 10, 17: 25, 18: 45, 19: 60, 20: 70, 21: 60, 22: 40, 23: 20, 24: 8, 25: 3,
}
# Hands rise 10 px per frame through the hitting zone
HAND_RISE_FRAMES = range(17, 24)

LEAD_ANKLE_DX = {12: 15, 13: 15, 14: 5}

EXPECTED_EVENTS = {
    "load_start": 11,
    "stride_plant": 15,
    "launch": 16,
    "contact": 20,
    "extension": 25,
    "finish": 25,
}


def hand_path(n_frames: int = N_FRAMES) -> List[tuple]:
    x, y = 300.0, 300.0
    path = []
    for i in range(n_frames):
        x += HAND_DX.get(i, 0)
        if i in HAND_RISE_FRAMES:
            y -= 10
        path.append((x, y))
    return path


def lead_ankle_path(n_frames: int = N_FRAMES) -> List[float]:
    x = 380.0
    path = []
    for i in range(n_frames):
        x += LEAD_ANKLE_DX.get(i, 0)
        path.append(x)
    return path


def body_points(hands: tuple, lead_ankle_x: float) -> Dict[BodyPart, tuple]:
    hx, hy = hands
    return {
        BodyPart.NOSE: (340.0, 100.0),
        BodyPart.LEFT_EYE: (345.0, 95.0),
        BodyPart.RIGHT_EYE: (335.0, 95.0),
        BodyPart.LEFT_EAR: (352.0, 98.0),
        BodyPart.RIGHT_EAR: (328.0, 98.0),
        BodyPart.LEFT_SHOULDER: (360.0, 160.0),
        BodyPart.RIGHT_SHOULDER: (320.0, 165.0),
        BodyPart.LEFT_ELBOW: (380.0, 220.0),
        BodyPart.RIGHT_ELBOW: (320.0, 222.0),
        BodyPart.LEFT_WRIST: (hx + 6, hy),
        BodyPart.RIGHT_WRIST: (hx - 6, hy),
        BodyPart.LEFT_HIP: (355.0, 300.0),
        BodyPart.RIGHT_HIP: (325.0, 305.0),
        BodyPart.LEFT_KNEE: (lead_ankle_x - 5, 390.0),
        BodyPart.RIGHT_KNEE: (305.0, 390.0),
        BodyPart.LEFT_ANKLE: (lead_ankle_x, 470.0),
        BodyPart.RIGHT_ANKLE: (300.0, 470.0),
    }


def build_swing_frames(
    n_frames: int = N_FRAMES,
    fps: float = FPS,
    confidence: float = 0.9,
    overrides: Optional[Dict[BodyPart, float]] = None,
) -> List[FrameKeypoints]:
    """Synthetic swing; `overrides` sets the confidence of individual parts."""
    overrides = overrides or {}
    hands = hand_path(n_frames)
    ankles = lead_ankle_path(n_frames)
    frames = []
    for i in range(n_frames):
        keypoints = {
            part: Keypoint(name=part, x=x, y=y, confidence=overrides.get(part, confidence))
            for part, (x, y) in body_points(hands[i], ankles[i]).items()
        }
        frames.append(FrameKeypoints(frame_index=i, timestamp_ms=i * 1000.0 / fps, keypoints=keypoints))
    return frames


def to_raw_frames(frames: List[FrameKeypoints]) -> List[dict]:
    """Detector-shaped payload with camelCase names, as a web client sends it."""
    raw = []
    for frame in frames:
        keypoints = []
        for kp in frame.keypoints.values():
            first, _, rest = kp.name.value.partition("_")
            name = first + rest.capitalize()
            keypoints.append({"name": name, "x": kp.x, "y": kp.y, "score": kp.confidence})
        raw.append({
            "frame_index": frame.frame_index,
            "timestamp_ms": frame.timestamp_ms,
            "people": [{"score": 0.9, "keypoints": keypoints}],
        })
    return raw


@pytest.fixture
def swing_frames() -> List[FrameKeypoints]:
    return build_swing_frames()


@pytest.fixture
def frames_by_index(swing_frames) -> Dict[int, FrameKeypoints]:
    return {frame.frame_index: frame for frame in swing_frames}


@pytest.fixture
def make_swing_frames():
    return build_swing_frames


@pytest.fixture
def raw_swing_frames(swing_frames) -> List[dict]:
    return to_raw_frames(swing_frames)


@pytest.fixture
def metric_specs():
    return load_metric_specs()


@pytest.fixture
def drill_catalog():
    return load_drill_catalog()


@pytest.fixture(autouse=True)
def _bundled_config(monkeypatch):
    """Tests always start from the bundled configuration files."""
    monkeypatch.delenv("SWINGSENSE_METRIC_SPECS", raising=False)
    monkeypatch.delenv("SWINGSENSE_DRILLS", raising=False)
