"""Tests for loading metric specs and drills from YAML."""

import pytest

from core.config import (
    DRILLS_ENV,
    METRIC_SPECS_ENV,
    ServerSettings,
    load_drill_catalog,
    load_metric_specs,
    parse_metric_specs,
)
from core.domain import InvalidMetricSpec, ToleranceShape


def test_bundled_metric_specs(metric_specs):
    assert len(metric_specs) == 8
    assert sum(spec.weight for spec in metric_specs.values()) == 110

    attack = metric_specs["attack_angle_deg"]
    assert attack.target == (5.0, 20.0)
    assert attack.weight == 20.0
    assert attack.shape is ToleranceShape.RANGE
    assert metric_specs["head_drift_cm"].shape is ToleranceShape.LOWER_IS_BETTER
    assert metric_specs["contact_timing_frames"].shape is ToleranceShape.CENTERED


def test_bundled_drills(drill_catalog):
    drill = drill_catalog.get("tape-ladder-strides")

    assert drill.goal_metric == "stride_var_pct"
    assert drill.instructions
    assert drill.reps


def test_env_override_for_specs(tmp_path, monkeypatch):
    path = tmp_path / "specs.yaml"
    path.write_text("metrics:\n  bat_lag_deg:\n    target: [45, 65]\n    weight: 4\n")
    monkeypatch.setenv(METRIC_SPECS_ENV, str(path))

    specs = load_metric_specs()

    assert list(specs) == ["bat_lag_deg"]
    assert specs["bat_lag_deg"].target == (45.0, 65.0)


def test_explicit_path_beats_env(tmp_path, monkeypatch):
    path = tmp_path / "specs.yaml"
    path.write_text("head_drift_cm:\n  target: [0, 4]\n  weight: 1\n  invert: true\n")
    monkeypatch.setenv(METRIC_SPECS_ENV, str(tmp_path / "missing.yaml"))

    specs = load_metric_specs(path)

    assert specs["head_drift_cm"].invert


def test_env_override_for_drills(tmp_path, monkeypatch):
    path = tmp_path / "drills.yaml"
    path.write_text(
        "drills:\n"
        "  - id: tee-work\n"
        "    name: Tee Work\n"
        "    goalMetric: attack_angle_deg\n"
        "    steps: [Set the tee, Swing]\n"
    )
    monkeypatch.setenv(DRILLS_ENV, str(path))

    catalog = load_drill_catalog()

    assert len(catalog) == 1
    assert catalog.get("tee-work").instructions == ("Set the tee", "Swing")


def test_bare_mapping_is_accepted():
    specs = parse_metric_specs({"a": {"target": [0, 1], "weight": 2, "absWindow": True}})

    assert specs["a"].abs_window


@pytest.mark.parametrize("entry", [
    {"target": [0, 5], "weight": 1, "invert": True, "absWindow": True},
    {"target": [10, 5], "weight": 1},
    {"target": [0, 5], "weight": -1},
    {"target": [0, 5]},
    {"target": [0, 5], "weight": 1, "polarity": "up"},
])
def test_invalid_entries_raise(entry):
    with pytest.raises(InvalidMetricSpec):
        parse_metric_specs({"metrics": {"bad_metric": entry}})


def test_server_settings_defaults(monkeypatch):
    for var in ("SWINGSENSE_LOG_LEVEL", "SWINGSENSE_CORS_ORIGINS", "SWINGSENSE_HOST", "SWINGSENSE_PORT"):
        monkeypatch.delenv(var, raising=False)

    settings = ServerSettings.from_env()

    assert settings.log_level == "INFO"
    assert "*" in settings.cors_origins
    assert settings.port == 8000


def test_server_settings_from_env(monkeypatch):
    monkeypatch.setenv("SWINGSENSE_LOG_LEVEL", "debug")
    monkeypatch.setenv("SWINGSENSE_CORS_ORIGINS", "https://coach.example.com, https://app.example.com")
    monkeypatch.setenv("SWINGSENSE_PORT", "9001")

    settings = ServerSettings.from_env()

    assert settings.log_level == "DEBUG"
    assert settings.cors_origins == ["https://coach.example.com", "https://app.example.com"]
    assert settings.port == 9001
