"""
Trajectory Simulator for Weather Markov Chains

Draws forward stochastic weather paths ("forecasts") from a transition
matrix, starting at a caller-chosen state.

Sampling is inverse-CDF: draw r in [0, 1), walk the current row's
cumulative probabilities in canonical state order, and take the first
state whose cumulative probability reaches r.

Usage:
    trajectory = simulate_trajectory(tm, initial_state="Sunny", days=30, seed=7)
    trajectory.states        # ("Sunny", "Sunny", "Cloudy", ...)
    trajectory.to_list()     # [{"day": 0, "state": "Sunny", "timestamp": ...}, ...]

Created: 2026-01-04
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from weather_core.exceptions import ValidationError

from .transition_matrix import TransitionMatrix

logger = logging.getLogger(__name__)

DEFAULT_MAX_HORIZON = 365
MS_PER_DAY = 86_400_000

SeedLike = Union[None, int, np.random.Generator]
StartLike = Union[None, int, date, datetime]


@dataclass(frozen=True)
class SimulationDay:
    """One simulated day."""

    day: int
    state: str
    timestamp: int  # epoch milliseconds (UTC)

    def to_dict(self) -> Dict[str, Any]:
        return {"day": self.day, "state": self.state, "timestamp": self.timestamp}


@dataclass(frozen=True)
class SimulatedTrajectory:
    """
    Ordered simulated days; day 0 is the caller's initial state.

    ``seed`` is the integer seed used, or None when the caller passed a
    Generator or opted into OS entropy.
    """

    days: Tuple[SimulationDay, ...]
    state_order: Tuple[str, ...]
    seed: Optional[int] = None
    start_timestamp: int = 0

    def __len__(self) -> int:
        return len(self.days)

    @property
    def states(self) -> Tuple[str, ...]:
        return tuple(d.state for d in self.days)

    @property
    def initial_state(self) -> str:
        return self.days[0].state

    def to_list(self) -> List[Dict[str, Any]]:
        return [d.to_dict() for d in self.days]

    def to_frame(self) -> pd.DataFrame:
        df = pd.DataFrame(self.to_list(), columns=["day", "state", "timestamp"])
        df["date"] = pd.to_datetime(df["timestamp"], unit="ms", utc=True).dt.date
        return df


# =============================================================================
# Helpers
# =============================================================================

def make_rng(seed: SeedLike = None) -> np.random.Generator:
    """
    Build the random source for one simulation.

    An int gives a reproducible stream; a Generator is used as-is; None is an
    explicit opt-in to OS entropy.
    """
    if isinstance(seed, np.random.Generator):
        return seed
    if seed is not None and (isinstance(seed, bool) or not isinstance(seed, (int, np.integer)) or seed < 0):
        raise ValidationError("seed must be a non-negative integer", context={"seed": seed})
    return np.random.default_rng(seed)


def to_epoch_ms(start: StartLike) -> int:
    """Normalise a start date/datetime/epoch-ms value to epoch milliseconds."""
    if isinstance(start, datetime):
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        return int(start.timestamp() * 1000)
    if isinstance(start, date):
        return int(datetime.combine(start, time(0), tzinfo=timezone.utc).timestamp() * 1000)
    if isinstance(start, (int, np.integer)) and not isinstance(start, bool):
        return int(start)
    raise ValidationError("start must be a date, datetime or epoch milliseconds",
                          context={"type": type(start).__name__})


def default_start(matrix: TransitionMatrix) -> int:
    """The day after the last observation, else today's UTC midnight."""
    if matrix.last_observed is not None:
        return to_epoch_ms(matrix.last_observed + timedelta(days=1))
    return to_epoch_ms(datetime.now(timezone.utc).date())


def sample_index(row: np.ndarray, r: float) -> int:
    """
    Inverse-CDF pick: first index whose cumulative probability is >= r.

    Zero-probability entries are skipped, so a draw landing exactly on a
    cumulative boundary never selects an impossible state. A float
    shortfall at the top of the CDF maps to the last positive entry.
    """
    cdf = np.cumsum(row)
    hits = np.flatnonzero((cdf >= r) & (row > 0))
    if hits.size:
        return int(hits[0])
    return int(np.flatnonzero(row > 0)[-1])


# =============================================================================
# Simulator
# =============================================================================

class TrajectorySimulator:
    """
    Generate forward weather trajectories from a transition matrix.

    Example:
        sim = TrajectorySimulator(max_horizon=365)
        path = sim.simulate(tm, "Rainy", days=14, seed=42)
    """

    def __init__(self, max_horizon: int = DEFAULT_MAX_HORIZON, default_seed: Optional[int] = None):
        if max_horizon < 1:
            raise ValueError("max_horizon must be >= 1")
        self.max_horizon = max_horizon
        self.default_seed = default_seed

    @classmethod
    def from_settings(cls, simulation_settings) -> "TrajectorySimulator":
        return cls(
            max_horizon=simulation_settings.max_horizon,
            default_seed=simulation_settings.default_seed,
        )

    def validate_horizon(self, days: Any) -> int:
        if isinstance(days, bool) or not isinstance(days, (int, np.integer)):
            raise ValidationError("days must be an integer", context={"days": days})
        if not 1 <= days <= self.max_horizon:
            raise ValidationError(
                f"days must be between 1 and {self.max_horizon}",
                context={"days": int(days)},
            )
        return int(days)

    def simulate(
        self,
        matrix: TransitionMatrix,
        initial_state: str,
        days: int,
        seed: SeedLike = None,
        start: StartLike = None,
    ) -> SimulatedTrajectory:
        """
        Simulate ``days`` days starting at ``initial_state``.

        Args:
            matrix: Transition kernel
            initial_state: State for day 0 (not sampled)
            days: Horizon N, 1 <= N <= max_horizon
            seed: int for reproducible runs, Generator, or None for OS entropy
            start: Timestamp of day 0; defaults to the day after the last
                observation behind ``matrix``

        Returns:
            SimulatedTrajectory with exactly ``days`` entries

        Raises:
            ValidationError: Unknown initial state or horizon out of range
        """
        n_days = self.validate_horizon(days)
        current = matrix.index_of(initial_state)

        if seed is None:
            seed = self.default_seed
        rng = make_rng(seed)
        start_ms = default_start(matrix) if start is None else to_epoch_ms(start)

        P = matrix.probabilities
        path = [current]
        draws = rng.random(n_days - 1)
        for r in draws:
            current = sample_index(P[current], float(r))
            path.append(current)

        simulated = tuple(
            SimulationDay(day=k, state=matrix.states[s], timestamp=start_ms + k * MS_PER_DAY)
            for k, s in enumerate(path)
        )

        logger.debug(f"Simulated {n_days} days from {initial_state} (seed={seed!r})")
        return SimulatedTrajectory(
            days=simulated,
            state_order=matrix.states,
            seed=int(seed) if isinstance(seed, (int, np.integer)) else None,
            start_timestamp=start_ms,
        )


def simulate_trajectory(
    matrix: TransitionMatrix,
    initial_state: str,
    days: int,
    seed: SeedLike = None,
    start: StartLike = None,
    max_horizon: int = DEFAULT_MAX_HORIZON,
) -> SimulatedTrajectory:
    """Convenience wrapper around TrajectorySimulator.simulate."""
    return TrajectorySimulator(max_horizon=max_horizon).simulate(
        matrix, initial_state, days, seed=seed, start=start
    )
