"""
Pytest configuration and shared fixtures for the weather Markov engine tests.
"""

import sys
from datetime import date
from pathlib import Path

import numpy as np
import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from weather_config.settings_loader import clear_settings_cache
from weather_core.structured_log import reset_log_handler
from weather_markov.transition_matrix import TransitionMatrix

from tests.fixtures.weather_payloads import make_weatherapi_payload


@pytest.fixture(autouse=True)
def isolated_event_log(tmp_path, monkeypatch):
    """Send JSONL events to a per-test directory."""
    log_dir = tmp_path / "logs"
    monkeypatch.setenv("WEATHER_MARKOV_LOG_DIR", str(log_dir))
    monkeypatch.delenv("WEATHER_MARKOV_CONFIG_PATH", raising=False)
    reset_log_handler()
    clear_settings_cache()
    yield log_dir
    reset_log_handler()
    clear_settings_cache()


@pytest.fixture
def simple_payload():
    """Six days: Sunny, Sunny, Rainy, Rainy, Rainy, Sunny."""
    return make_weatherapi_payload(
        ["Sunny", "Clear", "Light rain", "Heavy rain", "Patchy rain possible", "Sunny"]
    )


@pytest.fixture
def three_state_payload():
    """Sixty days cycling through all three states with some persistence."""
    pattern = ["Sunny", "Sunny", "Partly cloudy", "Light drizzle", "Overcast", "Clear",
               "Moderate rain", "Moderate rain", "Mist", "Sunny"]
    return make_weatherapi_payload(pattern * 6)


@pytest.fixture
def two_state_matrix():
    """Sunny/Rainy matrix with stationary distribution (0.4, 0.6)."""
    return TransitionMatrix(
        probabilities=np.array([[0.4, 0.6], [0.4, 0.6]]),
        states=("Sunny", "Rainy"),
    )


@pytest.fixture
def three_state_matrix():
    return TransitionMatrix(
        probabilities=np.array([
            [0.6, 0.1, 0.3],
            [0.3, 0.5, 0.2],
            [0.4, 0.3, 0.3],
        ]),
        states=("Sunny", "Rainy", "Cloudy"),
        last_observed=date(2024, 3, 31),
    )


@pytest.fixture
def absorbing_matrix():
    """Rainy is absorbing: once it rains it never stops."""
    return TransitionMatrix(
        probabilities=np.array([[0.5, 0.5], [0.0, 1.0]]),
        states=("Sunny", "Rainy"),
    )
