"""
Tests for the WeatherMarkovEngine facade.

Run: pytest tests/weather_markov/test_engine.py -v
"""

import json

import pytest

from weather_config.settings_schema import parse_settings
from weather_core.exceptions import ValidationError
from weather_core.structured_log import read_recent_logs
from weather_markov.engine import WeatherMarkovEngine, create_engine

from tests.fixtures.weather_payloads import make_records


@pytest.fixture
def engine():
    return WeatherMarkovEngine(settings=parse_settings({}))


class TestProcessWeatherData:
    """Tests for process_weather_data."""

    def test_returns_wire_matrix(self, engine, simple_payload):
        result = engine.process_weather_data(simple_payload)

        assert result.ok
        assert result.value["states"] == ["Sunny", "Rainy"]
        assert result.value["rows"] == 2
        assert result.value["matrix"] == pytest.approx([0.5, 0.5, 1 / 3, 2 / 3])
        assert engine.matrix is not None

    def test_accepts_json_string(self, engine, simple_payload):
        assert engine.process_weather_data(json.dumps(simple_payload)).ok

    def test_invalid_payload_is_tagged_error(self, engine):
        result = engine.process_weather_data("{broken")

        assert not result.ok
        assert result.error_code == "VALIDATION_ERROR"
        assert isinstance(result.error, ValidationError)
        with pytest.raises(ValidationError):
            result.unwrap()

    def test_failure_keeps_previous_matrix(self, engine, simple_payload):
        engine.process_weather_data(simple_payload)
        before = engine.matrix
        engine.process_weather_data(make_records(["Sunny"]))
        assert engine.matrix is before

    def test_logs_matrix_built(self, engine, simple_payload):
        engine.process_weather_data(simple_payload)
        events = [e["event"] for e in read_recent_logs()]
        assert "matrix_built" in events


class TestRunSimulation:
    """Tests for run_simulation."""

    def test_requires_matrix(self, engine):
        result = engine.run_simulation(days=5, initial_state="Sunny", seed=1)
        assert result.error_code == "VALIDATION_ERROR"
        assert "process weather data first" in result.error.message

    def test_returns_day_list(self, engine, simple_payload):
        engine.process_weather_data(simple_payload)
        result = engine.run_simulation(days=7, initial_state="Rainy", seed=3)

        assert result.ok
        assert len(result.value) == 7
        assert result.value[0]["state"] == "Rainy"
        assert set(result.value[0]) == {"day", "state", "timestamp"}

    def test_reproducible(self, engine, simple_payload):
        engine.process_weather_data(simple_payload)
        a = engine.run_simulation(days=20, initial_state="Sunny", seed=8).unwrap()
        b = engine.run_simulation(days=20, initial_state="Sunny", seed=8).unwrap()
        assert a == b

    def test_unknown_state(self, engine, simple_payload):
        engine.process_weather_data(simple_payload)
        result = engine.run_simulation(days=5, initial_state="Cloudy", seed=1)
        assert result.error_code == "VALIDATION_ERROR"

    def test_horizon_from_settings(self, simple_payload):
        engine = WeatherMarkovEngine(settings=parse_settings({"simulation": {"max_horizon": 10}}))
        engine.process_weather_data(simple_payload)
        assert not engine.run_simulation(days=11, initial_state="Sunny", seed=1).ok
        assert engine.run_simulation(days=10, initial_state="Sunny", seed=1).ok


class TestGetStatistics:
    """Tests for get_statistics."""

    def test_requires_matrix(self, engine):
        assert engine.get_statistics().error_code == "VALIDATION_ERROR"

    def test_requires_trajectory(self, engine, simple_payload):
        engine.process_weather_data(simple_payload)
        result = engine.get_statistics()
        assert result.error_code == "VALIDATION_ERROR"
        assert "run a simulation first" in result.error.message

    def test_report_for_latest_trajectory(self, engine, simple_payload):
        engine.process_weather_data(simple_payload)
        engine.run_simulation(days=30, initial_state="Sunny", seed=4)
        stats = engine.get_statistics().unwrap()

        assert set(stats["steady_state"]) == {"Sunny", "Rainy"}
        assert stats["steady_state"]["Sunny"] == pytest.approx(0.4)
        assert stats["average_streaks"]["Sunny"] == pytest.approx(2.0)
        assert stats["average_streaks"]["Rainy"] == pytest.approx(3.0)
        assert stats["anomalies"] == []

    def test_empirical_streaks(self, engine, simple_payload):
        engine.process_weather_data(simple_payload)
        engine.run_simulation(days=30, initial_state="Sunny", seed=4)
        stats = engine.get_statistics(streak_source="empirical").unwrap()
        assert stats["streak_source"] == "empirical"
        assert stats["average_streaks"] == stats["observed_streaks"]

    def test_new_data_resets_trajectory(self, engine, simple_payload):
        engine.process_weather_data(simple_payload)
        engine.run_simulation(days=5, initial_state="Sunny", seed=1)
        engine.process_weather_data(simple_payload)
        assert not engine.get_statistics().ok

    def test_absorbing_state_anomaly(self, engine):
        engine.process_weather_data(make_records(["Sunny", "Sunny", "Rain"]))
        engine.run_simulation(days=5, initial_state="Rainy", seed=1)
        stats = engine.get_statistics().unwrap()
        assert stats["average_streaks"]["Rainy"] == "unbounded"
        assert stats["anomalies"][0]["context"]["state"] == "Rainy"


class TestRunForecast:
    """Tests for the one-shot concurrent pipeline."""

    def test_full_pipeline(self, engine, three_state_payload):
        result = engine.run_forecast(three_state_payload, "Cloudy", days=30, seed=7)

        assert result.ok
        value = result.value
        assert set(value) == {"matrix", "stationary", "trajectory", "statistics"}
        assert value["matrix"]["states"] == ["Sunny", "Cloudy", "Rainy"]
        assert len(value["trajectory"]) == 30
        assert value["trajectory"][0]["state"] == "Cloudy"
        assert value["stationary"]["converged"] is True
        assert sum(value["statistics"]["distribution"].values()) == pytest.approx(1.0)

    def test_matches_stepwise_calls(self, three_state_payload):
        one_shot = create_engine(parse_settings({})).run_forecast(
            three_state_payload, "Sunny", days=25, seed=5
        ).unwrap()

        stepwise = create_engine(parse_settings({}))
        stepwise.process_weather_data(three_state_payload)
        trajectory = stepwise.run_simulation(days=25, initial_state="Sunny", seed=5).unwrap()
        stats = stepwise.get_statistics().unwrap()

        assert one_shot["trajectory"] == trajectory
        assert one_shot["statistics"]["distribution"] == stats["distribution"]

    def test_worker_error_is_tagged(self, engine, simple_payload):
        result = engine.run_forecast(simple_payload, "Snowy", days=5, seed=1)
        assert result.error_code == "VALIDATION_ERROR"

    def test_convergence_error_surfaces(self, simple_payload):
        settings = parse_settings({"solver": {"max_iterations": 1}})
        result = WeatherMarkovEngine(settings=settings).run_forecast(simple_payload, "Sunny", days=5, seed=1)
        assert result.error_code == "CONVERGENCE_ERROR"

    def test_solver_fallback_from_settings(self, simple_payload):
        settings = parse_settings({"solver": {"max_iterations": 1, "fallback": "last_iterate"}})
        value = WeatherMarkovEngine(settings=settings).run_forecast(
            simple_payload, "Sunny", days=5, seed=1
        ).unwrap()
        assert value["stationary"]["converged"] is False
        assert value["stationary"]["fallback"] == "last_iterate"
        assert value["statistics"]["steady_state_converged"] is False

    def test_event_log(self, engine, three_state_payload):
        engine.run_forecast(three_state_payload, "Sunny", days=10, seed=1)
        engine.run_simulation(days=0, initial_state="Sunny")

        events = [e["event"] for e in read_recent_logs()]
        for name in ("matrix_built", "steady_state_solved", "simulation_run",
                     "statistics_aggregated", "engine_error"):
            assert name in events

        errors = read_recent_logs(level="ERROR")
        assert errors[-1]["operation"] == "run_simulation"
        assert errors[-1]["error_code"] == "VALIDATION_ERROR"


class TestEngineConstruction:
    """Tests for settings wiring."""

    def test_default_settings_from_yaml(self):
        engine = WeatherMarkovEngine()
        assert engine.solver.tolerance == pytest.approx(1e-9)
        assert engine.simulator.max_horizon == 365
        assert engine.classifier.default_state == "Sunny"

    def test_custom_classification(self):
        settings = parse_settings({
            "classification": {
                "default_state": "Dry",
                "rules": [{"state": "Wet", "keywords": ["rain", "drizzle"]}],
            }
        })
        engine = WeatherMarkovEngine(settings=settings)
        value = engine.process_weather_data(make_records(["Rain", "Sunny", "Drizzle"])).unwrap()
        assert value["states"] == ["Wet", "Dry"]
