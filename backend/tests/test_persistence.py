"""Tests for building and saving swing records."""

import pytest

from core.domain import PersistenceFailure, SwingEvents
from core.services import PhaseSegmenter, SwingAnalyzer
from core.services import InMemorySwingStore, build_swing_record, save_swing


class _ContactOnlySegmenter(PhaseSegmenter):
    def detect_events(self, frames):
        return SwingEvents(contact=5)


class _DownStore:
    def save(self, record):
        raise ConnectionError("database is down")


@pytest.fixture
def outcome(swing_frames):
    return SwingAnalyzer().analyze_frames(swing_frames, fps=60.0)


def test_record_from_completed_outcome(outcome):
    record = build_swing_record(outcome, video_ref="videos/a.mp4", session_id="s1", client_request_id="req-1")

    assert record.client_request_id == "req-1"
    assert record.analysis_id == outcome.id
    assert record.score == outcome.score.overall
    assert record.label == outcome.score.label
    assert record.cues == tuple(card.cue for card in outcome.cards)
    assert record.primary_drill_id == outcome.cards[0].drill.drill_id
    assert record.events == outcome.events.as_dict()
    assert record.raw_values["attack_angle_deg"] == outcome.metrics.metrics["attack_angle_deg"]
    assert record.to_dict()["video_ref"] == "videos/a.mp4"


def test_retake_has_nothing_to_save(swing_frames):
    retake = SwingAnalyzer(segmenter=_ContactOnlySegmenter()).analyze_frames(swing_frames, fps=60.0)

    with pytest.raises(ValueError):
        build_swing_record(retake)


def test_saving_is_idempotent(outcome):
    store = InMemorySwingStore()
    record = build_swing_record(outcome, client_request_id="req-1")

    first = save_swing(store, record)
    second = save_swing(store, record)

    assert first == second
    assert len(store) == 1
    assert store.get(first) is record


def test_store_errors_become_persistence_failure(outcome):
    record = build_swing_record(outcome)

    with pytest.raises(PersistenceFailure) as excinfo:
        save_swing(_DownStore(), record)

    assert excinfo.value.retryable
