"""
Tests for settings loading.
"""

import pytest
from pydantic import ValidationError

from classroom_insight.shared.config import AnalyticsConfig, InsightSettings


def test_defaults():
    config = AnalyticsConfig()
    assert config.socratic_weight == 0.25
    assert config.persistence_weight == 0.35
    assert config.frustration_weight == 0.40
    assert config.cluster_activation_threshold == 0.4
    assert config.critical_cell_threshold == 0.6


def test_load_from_yaml_flattens_weights(tmp_path):
    path = tmp_path / "insight.yaml"
    path.write_text(
        "insight:\n"
        "  analytics:\n"
        "    lexicon_locale: en\n"
        "    weights:\n"
        "      socratic: 0.2\n"
        "      persistence: 0.3\n"
        "      frustration: 0.5\n"
        "    critical_cell_threshold: 0.7\n"
        "  memory:\n"
        "    enabled: false\n"
        "  diagnostic:\n"
        "    language: English\n",
        encoding="utf-8"
    )

    loaded = InsightSettings.load_from_yaml(path)

    assert loaded.analytics.lexicon_locale == "en"
    assert loaded.analytics.socratic_weight == 0.2
    assert loaded.analytics.persistence_weight == 0.3
    assert loaded.analytics.frustration_weight == 0.5
    assert loaded.analytics.critical_cell_threshold == 0.7
    assert loaded.memory.enabled is False
    assert loaded.diagnostic.language == "English"


def test_missing_yaml_uses_defaults(tmp_path):
    loaded = InsightSettings.load_from_yaml(tmp_path / "missing.yaml")
    assert loaded.analytics.cluster_min_students == 2


def test_thresholds_must_be_in_unit_range():
    with pytest.raises(ValidationError):
        AnalyticsConfig(cluster_activation_threshold=1.5)


def test_env_override(monkeypatch):
    monkeypatch.setenv("ANALYTICS_CRITICAL_CELL_THRESHOLD", "0.75")
    assert AnalyticsConfig().critical_cell_threshold == 0.75
