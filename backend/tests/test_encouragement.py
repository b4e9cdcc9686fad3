"""Tests for the encouragement request payload."""

from core.domain import MetricsResult
from core.services import ScoringEngine
from core.services.bat_speed import PlayerLevel
from core.services.encouragement import build_encouragement_request, request_encouragement


class _EchoService:
    def generate(self, request):
        return f"Nice work! You scored {request.overall_score}."


class _DownService:
    def generate(self, request):
        raise TimeoutError("text service timed out")


def _scored(metric_specs):
    metrics = MetricsResult(metrics={
        "attack_angle_deg": 12.0,
        "head_drift_cm": 3.0,
        "bat_lag_deg": 60.0,
        "torso_tilt_deg": None,
    })
    return metrics, ScoringEngine().score(metrics.metrics, metric_specs)


def test_request_lists_weakest_first(metric_specs):
    metrics, score = _scored(metric_specs)

    request = build_encouragement_request(
        metrics, score, metric_specs, player_level=PlayerLevel.HIGH_SCHOOL, previous_score=55,
    )

    assert [m.name for m in request.metrics] == ["head_drift_cm", "attack_angle_deg", "bat_lag_deg"]
    assert [m.name for m in request.weakest] == ["head_drift_cm", "attack_angle_deg"]
    head = request.metrics[0]
    assert head.percentile_rank == 40
    assert head.unit == "cm"
    assert head.target == (0.0, 5.0)
    assert request.overall_score == score.overall
    assert request.player_level == "High School"
    assert request.to_dict()["previous_score"] == 55


def test_service_text_is_returned(metric_specs):
    metrics, score = _scored(metric_specs)
    request = build_encouragement_request(metrics, score, metric_specs)

    assert request_encouragement(_EchoService(), request) == f"Nice work! You scored {score.overall}."


def test_service_failure_returns_none(metric_specs):
    metrics, score = _scored(metric_specs)
    request = build_encouragement_request(metrics, score, metric_specs)

    assert request_encouragement(_DownService(), request) is None
