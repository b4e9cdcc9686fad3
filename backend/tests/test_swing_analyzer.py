"""End-to-end tests for one analysis attempt."""

import pytest

from core.domain import (
    AnalysisCancelled,
    AnalysisState,
    AttemptLifecycle,
    Handedness,
    InvalidStateTransition,
    PoseDetectionFailure,
    SwingEvents,
)
from core.services import CancellationToken, PhaseSegmenter, ScoringEngine, SwingAnalyzer

from conftest import EXPECTED_EVENTS


class _ContactOnlySegmenter(PhaseSegmenter):
    def detect_events(self, frames):
        return SwingEvents(contact=5)


class _ExplodingEngine(ScoringEngine):
    def score(self, metrics, specs):
        raise ValueError("bad weights")


def test_complete_analysis(swing_frames):
    outcome = SwingAnalyzer().analyze_frames(swing_frames, fps=60.0)

    assert outcome.state is AnalysisState.COMPLETE
    assert not outcome.needs_retake
    assert outcome.events.as_dict() == EXPECTED_EVENTS
    assert outcome.frames_analyzed == len(swing_frames)
    assert len(outcome.frames) == len(swing_frames)
    assert 0 <= outcome.score.overall <= 100
    assert not outcome.score.insufficient_data
    assert len(outcome.cards) == 2
    assert [card.metric for card in outcome.cards] == list(outcome.score.weakest[:2])
    assert outcome.primary_card is outcome.cards[0]
    assert outcome.handedness is Handedness.RIGHT


def test_outcome_records_batting_side(swing_frames):
    outcome = SwingAnalyzer(handedness=Handedness.LEFT).analyze_frames(swing_frames, fps=60.0)

    assert outcome.handedness is Handedness.LEFT


def test_every_attempt_gets_a_new_outcome(swing_frames):
    analyzer = SwingAnalyzer()

    first = analyzer.analyze_frames(swing_frames, fps=60.0)
    second = analyzer.analyze_frames(swing_frames, fps=60.0)

    assert first.id != second.id
    assert first.score == second.score


def test_retake_skips_scoring(swing_frames):
    analyzer = SwingAnalyzer(segmenter=_ContactOnlySegmenter())

    outcome = analyzer.analyze_frames(swing_frames, fps=60.0)

    assert outcome.state is AnalysisState.NEEDS_RETAKE
    assert outcome.needs_retake
    assert outcome.retake_reasons
    assert outcome.metrics is None
    assert outcome.score is None
    assert outcome.cards == ()
    assert outcome.events == SwingEvents(contact=5)


def test_progress_is_monotonic_and_ends_at_100(swing_frames):
    updates = []

    SwingAnalyzer().analyze_frames(swing_frames, fps=60.0, progress=lambda p, m: updates.append((p, m)))

    percents = [percent for percent, _ in updates]
    assert percents == sorted(percents)
    assert percents[-1] == 100
    assert updates[-1][1] == "Analysis complete"


def test_retake_reports_final_progress(swing_frames):
    updates = []

    SwingAnalyzer(segmenter=_ContactOnlySegmenter()).analyze_frames(
        swing_frames, fps=60.0, progress=lambda p, m: updates.append((p, m)),
    )

    assert updates[-1] == (100, "Please retake the video")


def test_cancelled_token_stops_the_attempt(swing_frames):
    token = CancellationToken()
    token.cancel()

    with pytest.raises(AnalysisCancelled):
        SwingAnalyzer().analyze_frames(swing_frames, fps=60.0, token=token)


def test_scoring_errors_propagate(swing_frames):
    analyzer = SwingAnalyzer(scoring_engine=_ExplodingEngine())

    with pytest.raises(ValueError):
        analyzer.analyze_frames(swing_frames, fps=60.0)


def test_custom_card_count(swing_frames):
    outcome = SwingAnalyzer(card_count=4).analyze_frames(swing_frames, fps=60.0)

    assert len(outcome.cards) == 4


def test_unreadable_video_is_a_pose_detection_failure(tmp_path):
    video = tmp_path / "swing.mp4"
    video.write_bytes(b"not a video")

    with pytest.raises(PoseDetectionFailure):
        SwingAnalyzer().analyze_video(str(video), pose_model=None)


def test_lifecycle_follows_allowed_edges():
    lifecycle = AttemptLifecycle()
    for state in (
        AnalysisState.DETECTING,
        AnalysisState.SEGMENTED,
        AnalysisState.SCORING,
        AnalysisState.CARDS_BUILT,
        AnalysisState.COMPLETE,
    ):
        lifecycle.advance(state)

    assert lifecycle.state.is_terminal
    assert lifecycle.history[0] is AnalysisState.IDLE


@pytest.mark.parametrize("path", [
    (AnalysisState.SCORING,),
    (AnalysisState.DETECTING, AnalysisState.COMPLETE),
    (AnalysisState.DETECTING, AnalysisState.NEEDS_RETAKE, AnalysisState.SEGMENTED),
])
def test_lifecycle_rejects_illegal_edges(path):
    lifecycle = AttemptLifecycle()

    with pytest.raises(InvalidStateTransition):
        for state in path:
            lifecycle.advance(state)
