"""Tests for metric normalization and the weighted swing score."""

import pytest

from core.domain import InvalidMetricSpec, MetricSpec, ToleranceShape
from core.domain.analysis import score_label
from core.services import ScoringEngine


def _range(low, high, weight=1.0):
    return MetricSpec(target=(low, high), weight=weight)


def test_range_metric_inside_window():
    spec = _range(5, 20, weight=20)

    assert ScoringEngine.normalize(12.0, spec) == pytest.approx(7 / 15)


def test_lower_is_better_metric():
    spec = MetricSpec.from_flags(target=(0, 5), weight=15, invert=True)

    assert ScoringEngine.normalize(3.0, spec) == pytest.approx(0.4)
    assert ScoringEngine.normalize(0.0, spec) == 1.0
    assert ScoringEngine.normalize(-2.0, spec) == 1.0
    assert ScoringEngine.normalize(9.0, spec) == 0.0


def test_centered_metric():
    spec = MetricSpec.from_flags(target=(-3, 3), weight=12, abs_window=True)

    assert ScoringEngine.normalize(0.0, spec) == 1.0
    assert ScoringEngine.normalize(-3.0, spec) == pytest.approx(0.5)
    assert ScoringEngine.normalize(3.0, spec) == pytest.approx(0.5)
    assert ScoringEngine.normalize(12.0, spec) == 0.0


def test_range_overshoot_is_penalized():
    spec = _range(40, 60)

    assert ScoringEngine.normalize(60.0, spec) == 1.0
    assert ScoringEngine.normalize(70.0, spec) == pytest.approx(0.5)
    assert ScoringEngine.normalize(90.0, spec) == 0.0
    assert ScoringEngine.normalize(30.0, spec) == 0.0


def test_zero_width_window():
    exact = _range(4, 4)
    lower = MetricSpec.from_flags(target=(4, 4), weight=1, invert=True)

    assert ScoringEngine.normalize(4.0, exact) == 1.0
    assert ScoringEngine.normalize(4.5, exact) == 0.0
    assert ScoringEngine.normalize(3.0, lower) == 1.0
    assert ScoringEngine.normalize(5.0, lower) == 0.0


def test_weighted_overall_score():
    specs = {"a": _range(0, 10, weight=2), "b": _range(0, 10, weight=1)}

    result = ScoringEngine().score({"a": 8.0, "b": 4.0}, specs)

    # (2 * 0.8 + 1 * 0.4) / 3 = 0.667
    assert result.overall == 67
    assert result.label == "Good"
    assert result.weakest == ("b", "a")
    assert not result.insufficient_data


@pytest.mark.parametrize("overall, label", [
    (100, "Excellent"),
    (82, "Excellent"),
    (80, "Excellent"),
    (79, "Good"),
    (65, "Good"),
    (60, "Good"),
    (59, "Needs Work"),
    (40, "Needs Work"),
    (0, "Needs Work"),
])
def test_score_labels(overall, label):
    assert score_label(overall) == label


def test_overall_stays_within_bounds(metric_specs):
    engine = ScoringEngine()
    perfect = {
        "hip_shoulder_sep_deg": 60.0,
        "attack_angle_deg": 20.0,
        "head_drift_cm": 0.0,
        "contact_timing_frames": 0.0,
        "bat_lag_deg": 70.0,
        "torso_tilt_deg": 25.0,
        "stride_var_pct": 0.0,
        "finish_balance_idx": 0.0,
    }
    awful = {
        "hip_shoulder_sep_deg": 500.0,
        "attack_angle_deg": -90.0,
        "head_drift_cm": 1000.0,
        "contact_timing_frames": -40.0,
    }

    assert engine.score(perfect, metric_specs).overall == 100
    assert engine.score(awful, metric_specs).overall == 0


def test_absent_metrics_do_not_count(metric_specs):
    engine = ScoringEngine()
    metrics = {"attack_angle_deg": 12.0, "head_drift_cm": 3.0}

    base = engine.score(metrics, metric_specs)
    with_absent = engine.score({**metrics, "bat_lag_deg": None, "torso_tilt_deg": None}, metric_specs)

    assert with_absent == base
    assert set(base.per_metric_normalized) == {"attack_angle_deg", "head_drift_cm"}


def test_nan_is_treated_as_absent():
    specs = {"a": _range(0, 10), "b": _range(0, 10)}

    result = ScoringEngine().score({"a": 5.0, "b": float("nan")}, specs)

    assert result.weakest == ("a",)
    assert result.overall == 50


def test_metrics_without_spec_are_ignored():
    result = ScoringEngine().score({"a": 5.0, "mystery": 1.0}, {"a": _range(0, 10)})

    assert result.weakest == ("a",)


def test_score_does_not_depend_on_input_order(metric_specs):
    metrics = {
        "attack_angle_deg": 12.0,
        "head_drift_cm": 3.0,
        "bat_lag_deg": 55.0,
        "contact_timing_frames": 2.0,
    }
    reversed_metrics = dict(reversed(list(metrics.items())))
    reversed_specs = dict(reversed(list(metric_specs.items())))

    engine = ScoringEngine()

    assert engine.score(metrics, metric_specs) == engine.score(reversed_metrics, reversed_specs)


def test_nothing_to_score_is_insufficient_data(metric_specs):
    result = ScoringEngine().score({"attack_angle_deg": None}, metric_specs)

    assert result.insufficient_data
    assert result.overall == 0
    assert result.weakest == ()
    assert result.label == "Insufficient Data"


def test_zero_total_weight_is_insufficient_data():
    specs = {"a": _range(0, 10, weight=0)}

    result = ScoringEngine().score({"a": 5.0}, specs)

    assert result.insufficient_data
    assert result.per_metric_normalized == {"a": pytest.approx(0.5)}


def test_ties_go_to_the_heavier_metric_then_name():
    specs = {
        "light": _range(0, 10, weight=1),
        "heavy": _range(0, 10, weight=5),
        "also_light": _range(0, 10, weight=1),
    }

    result = ScoringEngine().score({"light": 5.0, "heavy": 5.0, "also_light": 5.0}, specs)

    assert result.weakest == ("heavy", "also_light", "light")


def test_weighted_shares_sum_to_overall():
    specs = {"a": _range(0, 10, weight=2), "b": _range(0, 10, weight=1)}
    result = ScoringEngine().score({"a": 8.0, "b": 4.0}, specs)

    shares = ScoringEngine.weighted_shares(result)

    assert shares["a"] == pytest.approx(100 * 1.6 / 3)
    assert shares["b"] == pytest.approx(100 * 0.4 / 3)
    assert sum(shares.values()) == pytest.approx(200 / 3)


def test_flags_map_to_shapes():
    assert MetricSpec.from_flags((0, 1), 1).shape is ToleranceShape.RANGE
    assert MetricSpec.from_flags((0, 1), 1, invert=True).shape is ToleranceShape.LOWER_IS_BETTER
    assert MetricSpec.from_flags((0, 1), 1, abs_window=True).shape is ToleranceShape.CENTERED


def test_invert_with_abs_window_is_rejected():
    with pytest.raises(InvalidMetricSpec):
        MetricSpec.from_flags((0, 5), 1, invert=True, abs_window=True)


def test_min_above_max_is_rejected():
    with pytest.raises(InvalidMetricSpec):
        MetricSpec(target=(10, 5), weight=1)


def test_negative_weight_is_rejected():
    with pytest.raises(InvalidMetricSpec):
        MetricSpec(target=(0, 5), weight=-1)
