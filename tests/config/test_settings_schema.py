"""
Tests for weather_config - YAML loading and typed settings validation.
"""
from __future__ import annotations

from unittest.mock import patch

import pytest

from weather_config.settings_loader import (
    clear_settings_cache,
    get_config_path,
    get_setting,
    load_settings,
)
from weather_config.settings_schema import (
    EngineSettings,
    load_validated_settings,
    parse_settings,
)
from weather_core.exceptions import ConfigurationError
from weather_markov.observation_ingestor import ConditionClassifier


class TestLoadSettings:
    """Tests for the YAML loader."""

    def test_packaged_defaults(self):
        assert get_config_path().name == "base.yaml"
        settings = load_settings()
        assert settings["solver"]["max_iterations"] == 10000
        assert settings["classification"]["default_state"] == "Sunny"

    def test_get_setting_dot_path(self):
        assert get_setting("statistics.streak_source") == "analytic"
        assert get_setting("solver.missing", "fallback") == "fallback"
        assert get_setting("nope.deeper", 3) == 3

    def test_env_override(self, tmp_path, monkeypatch):
        cfg = tmp_path / "city.yaml"
        cfg.write_text("simulation:\n  max_horizon: 30\n", encoding="utf-8")
        monkeypatch.setenv("WEATHER_MARKOV_CONFIG_PATH", str(cfg))
        clear_settings_cache()

        assert get_setting("simulation.max_horizon") == 30
        settings = load_validated_settings(force_reload=True)
        assert settings.simulation.max_horizon == 30
        assert settings.solver.max_iterations == 10_000

    def test_missing_file_gives_defaults(self, tmp_path, monkeypatch):
        monkeypatch.setenv("WEATHER_MARKOV_CONFIG_PATH", str(tmp_path / "absent.yaml"))
        clear_settings_cache()
        assert load_settings() == {}
        assert load_validated_settings().solver.tolerance == pytest.approx(1e-9)

    def test_cached(self):
        assert load_settings() is load_settings()
        assert load_settings(force_reload=True) is not None


class TestSettingsSchema:
    """Tests for the pydantic models."""

    def test_defaults(self):
        settings = EngineSettings()
        assert settings.solver.method == "power"
        assert settings.solver.fallback == "none"
        assert [r.state for r in settings.classification.rules] == ["Rainy", "Cloudy"]
        assert settings.statistics.streak_source == "analytic"

    def test_yaml_matches_model_defaults(self):
        from_yaml = load_validated_settings()
        assert from_yaml.model_dump() == EngineSettings().model_dump()

    def test_keywords_normalised(self):
        settings = parse_settings({
            "classification": {"rules": [{"state": "Rainy", "keywords": [" RAIN ", "Drizzle"]}]}
        })
        assert settings.classification.rules[0].keywords == ["rain", "drizzle"]

    @pytest.mark.parametrize("raw", [
        {"solver": {"tolerance": 0}},
        {"solver": {"max_iterations": 0}},
        {"solver": {"fallback": "guess"}},
        {"solver": {"method": "qr"}},
        {"simulation": {"max_horizon": 0}},
        {"simulation": {"default_seed": -1}},
        {"matrix": {"smoothing": -1.0}},
        {"statistics": {"streak_source": "median"}},
        {"classification": {"rules": [{"state": "Rainy", "keywords": []}]}},
        {"classification": {"rules": [{"state": "Rainy", "keywords": ["  "]}]}},
    ])
    def test_invalid_values_raise_configuration_error(self, raw):
        with pytest.raises(ConfigurationError):
            parse_settings(raw)

    def test_state_may_own_several_rules(self):
        raw = {"classification": {"rules": [
            {"state": "Rainy", "keywords": ["rain"]},
            {"state": "Cloudy", "keywords": ["cloud"]},
            {"state": "Rainy", "keywords": ["drizzle"]},
        ]}}
        settings = parse_settings(raw)
        assert [r.state for r in settings.classification.rules] == ["Rainy", "Cloudy", "Rainy"]

        clf = ConditionClassifier.from_settings(settings.classification)
        assert clf.classify("Light rain") == "Rainy"
        assert clf.classify("Cloudy with drizzle") == "Cloudy"
        assert clf.classify("Patchy drizzle") == "Rainy"
        assert clf.alphabet == ("Rainy", "Cloudy", "Sunny")

    def test_repeated_rule_rejected(self):
        raw = {"classification": {"rules": [
            {"state": "Rainy", "keywords": ["rain"]},
            {"state": "Rainy", "keywords": [" RAIN "]},
        ]}}
        with pytest.raises(ConfigurationError) as exc_info:
            parse_settings(raw)
        assert exc_info.value.is_recoverable is False

    def test_unknown_sections_allowed(self):
        settings = parse_settings({"ui": {"theme": "dark"}})
        assert settings.solver.max_iterations == 10_000

    def test_invalid_yaml_file_values(self):
        with patch("weather_config.settings_schema.load_settings", return_value={"solver": {"tolerance": -1}}):
            with pytest.raises(ConfigurationError):
                load_validated_settings()
