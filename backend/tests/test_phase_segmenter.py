"""Tests for swing event detection and the retake gate."""

import pytest

from core.domain import (
    BodyPart,
    FrameKeypoints,
    Handedness,
    Keypoint,
    SegmentationQuality,
    SwingEvent,
    SwingEvents,
)
from core.services import PhaseSegmenter, SegmenterSettings, format_phases

from conftest import EXPECTED_EVENTS


def _wrist_frames(xs, fps=60.0, confidence=0.9):
    """Frames with only the two wrists, hands moving along x."""
    frames = []
    for i, x in enumerate(xs):
        keypoints = {
            BodyPart.LEFT_WRIST: Keypoint(BodyPart.LEFT_WRIST, x + 5, 200.0, confidence),
            BodyPart.RIGHT_WRIST: Keypoint(BodyPart.RIGHT_WRIST, x - 5, 200.0, confidence),
        }
        frames.append(FrameKeypoints(i, i * 1000.0 / fps, keypoints))
    return frames


def test_detects_all_events_in_synthetic_swing(swing_frames):
    result = PhaseSegmenter().segment(swing_frames)

    assert result.quality is SegmentationQuality.OK
    assert not result.needs_retake
    assert result.events.as_dict() == EXPECTED_EVENTS
    assert result.average_confidence == pytest.approx(0.9)


def test_events_are_in_canonical_order(swing_frames):
    events = PhaseSegmenter().detect_events(swing_frames)

    found = [events.get(event) for event in SwingEvent if events.get(event) is not None]
    assert found == sorted(found)


def test_frames_are_sorted_by_timestamp(swing_frames):
    shuffled = list(reversed(swing_frames))

    result = PhaseSegmenter().segment(shuffled)

    assert result.events.contact == EXPECTED_EVENTS["contact"]


def test_missing_launch_and_finish_needs_retake():
    # Hands are fastest at the start and never settle
    steps = [100, 90, 80, 70, 60, 50, 45, 40, 35, 30, 28, 26]
    xs = [0.0]
    for step in steps:
        xs.append(xs[-1] + step)

    result = PhaseSegmenter().segment(_wrist_frames(xs))

    assert result.events.contact is not None
    assert result.events.launch is None
    assert result.events.finish is None
    assert result.needs_retake
    assert any("launch" in reason and "finish" in reason for reason in result.reasons)


def test_short_stream_needs_retake(swing_frames):
    result = PhaseSegmenter().segment(swing_frames[14:22])

    assert result.needs_retake
    assert any("8 frames" in reason for reason in result.reasons)


def test_low_confidence_needs_retake(make_swing_frames):
    frames = make_swing_frames(confidence=0.35)

    result = PhaseSegmenter().segment(frames)

    assert result.needs_retake
    assert result.quality is SegmentationQuality.LOW_CONFIDENCE
    assert any("confidence" in reason for reason in result.reasons)


def test_nan_landmark_score_does_not_bypass_confidence_gate(make_swing_frames):
    frames = make_swing_frames(confidence=0.35, overrides={BodyPart.LEFT_EAR: float("nan")})

    result = PhaseSegmenter().segment(frames)

    assert result.average_confidence == pytest.approx(0.35)
    assert result.needs_retake
    assert "Body tracking confidence is too low (0.35 < 0.40)" in result.reasons


def test_frames_without_people_do_not_lower_confidence(swing_frames):
    empty = [FrameKeypoints(100 + i, 1000.0 + i * 16.7) for i in range(20)]

    result = PhaseSegmenter().segment(swing_frames + empty)

    assert result.average_confidence == pytest.approx(0.9)


def test_no_movement_gives_no_events():
    result = PhaseSegmenter().segment(_wrist_frames([100.0] * 15))

    assert result.events == SwingEvents()
    assert result.needs_retake


def test_stride_plant_absent_without_lead_ankle_travel():
    frames = _wrist_frames([0, 0, 0, 0, 0, 10, 40, 90, 150, 200, 220, 225, 226, 226, 226, 226])

    events = PhaseSegmenter().detect_events(frames)

    assert events.contact is not None
    assert events.stride_plant is None


def test_left_handed_batter_uses_right_ankle(make_swing_frames):
    # Mirror the stride onto the right ankle
    frames = []
    for frame in make_swing_frames():
        keypoints = dict(frame.keypoints)
        left, right = keypoints[BodyPart.LEFT_ANKLE], keypoints[BodyPart.RIGHT_ANKLE]
        keypoints[BodyPart.LEFT_ANKLE] = Keypoint(BodyPart.LEFT_ANKLE, right.x, right.y, right.confidence)
        keypoints[BodyPart.RIGHT_ANKLE] = Keypoint(BodyPart.RIGHT_ANKLE, left.x, left.y, left.confidence)
        frames.append(FrameKeypoints(frame.frame_index, frame.timestamp_ms, keypoints))

    right_handed = PhaseSegmenter().detect_events(frames)
    left_handed = PhaseSegmenter(handedness=Handedness.LEFT).detect_events(frames)

    assert right_handed.stride_plant is None
    assert left_handed.stride_plant == EXPECTED_EVENTS["stride_plant"]


def test_custom_settings_change_the_gate(swing_frames):
    strict = PhaseSegmenter(SegmenterSettings(min_frames=50))

    assert strict.segment(swing_frames).needs_retake


def test_format_phases(swing_frames, frames_by_index):
    events = PhaseSegmenter().detect_events(swing_frames)

    timeline = format_phases(events, frames_by_index)

    assert [phase["event"] for phase in timeline] == [
        "load_start", "stride_plant", "launch", "contact", "extension", "finish",
    ]
    contact = timeline[3]
    assert contact["label"] == "Contact"
    assert contact["frame_index"] == 20
    assert contact["timestamp_ms"] == pytest.approx(20 * 1000.0 / 60.0)
    assert contact["description"]


def test_format_phases_skips_missing_events():
    timeline = format_phases(SwingEvents(launch=3, contact=8), {})

    assert [phase["event"] for phase in timeline] == ["launch", "contact"]
    assert timeline[0]["timestamp_ms"] is None
