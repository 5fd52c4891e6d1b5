"""
Statistics Aggregator for Weather Markov Chains

Combines a transition matrix, its stationary distribution and one simulated
trajectory into a report:

- distribution: empirical state frequencies in the trajectory
- steady_state: the stationary distribution, for side-by-side comparison
- average_streaks: expected consecutive days per state

Expected run-length comes in two flavours:
- analytic: 1 / (1 - p_self), the mean of the geometric sojourn time
- empirical: mean length of the runs actually seen in the trajectory

They agree for long trajectories and can diverge for short ones, so both
are reported and the caller picks which one fills ``average_streaks``.

An absorbing state (p_self = 1) has no finite analytic run-length; it is
reported as the UNBOUNDED sentinel and recorded as a NumericAnomaly.

Created: 2026-01-04
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from itertools import groupby
from typing import Any, Dict, List, Tuple, Union

import numpy as np
import pandas as pd

from weather_core.exceptions import NumericAnomaly, ValidationError

from .simulator import SimulatedTrajectory
from .stationary_dist import StationaryDistribution
from .transition_matrix import TransitionMatrix

logger = logging.getLogger(__name__)

ABSORBING_TOLERANCE = 1e-12
STREAK_SOURCES = ("analytic", "empirical")


class _Unbounded:
    """Sentinel for a run-length that diverges (absorbing state)."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNBOUNDED"

    def __reduce__(self):
        return (_Unbounded, ())

    def to_json(self) -> str:
        return "unbounded"


UNBOUNDED = _Unbounded()

RunLength = Union[float, _Unbounded]


def expected_run_length(p_self: float, state: str = "", strict: bool = False) -> RunLength:
    """
    Expected consecutive days in a state: 1 / (1 - p_self).

    Args:
        p_self: Self-transition probability
        state: State name, for error context
        strict: Raise NumericAnomaly instead of returning UNBOUNDED

    Returns:
        Float run-length, or UNBOUNDED when p_self is 1
    """
    if p_self >= 1.0 - ABSORBING_TOLERANCE:
        if strict:
            raise NumericAnomaly(
                "Expected run-length diverges for an absorbing state",
                state=state or None,
                quantity="expected_run_length",
                context={"p_self": float(p_self)},
            )
        return UNBOUNDED
    return 1.0 / (1.0 - p_self)


def observed_run_lengths(states: Tuple[str, ...], state_order: Tuple[str, ...]) -> Dict[str, float]:
    """Mean length of maximal same-state runs per state (0.0 if never visited)."""
    runs: Dict[str, List[int]] = {s: [] for s in state_order}
    for state, group in groupby(states):
        runs.setdefault(state, []).append(sum(1 for _ in group))
    return {s: float(np.mean(runs[s])) if runs[s] else 0.0 for s in state_order}


def empirical_distribution(states: Tuple[str, ...], state_order: Tuple[str, ...]) -> Dict[str, float]:
    """Frequency of each state in ``states``, normalised by length."""
    n = len(states)
    counts = {s: 0 for s in state_order}
    for s in states:
        counts[s] += 1
    return {s: counts[s] / n for s in state_order}


def _serialise(value: RunLength) -> Any:
    return value.to_json() if value is UNBOUNDED else value


@dataclass(frozen=True)
class StatisticsReport:
    """
    Per-request statistics bundle. Never persisted.

    ``average_streaks`` holds whichever run-length source was selected;
    ``analytic_streaks`` and ``observed_streaks`` hold both.
    """

    steady_state: Dict[str, float]
    distribution: Dict[str, float]
    average_streaks: Dict[str, RunLength]
    analytic_streaks: Dict[str, RunLength]
    observed_streaks: Dict[str, float]
    streak_source: str = "analytic"
    convergence_gap: float = 0.0
    most_likely_state: str = ""
    steady_state_converged: bool = True
    anomalies: Tuple[NumericAnomaly, ...] = field(default_factory=tuple)

    @property
    def unbounded_states(self) -> Tuple[str, ...]:
        return tuple(s for s, v in self.analytic_streaks.items() if v is UNBOUNDED)

    def to_dict(self) -> Dict[str, Any]:
        """Wire form; UNBOUNDED is serialised as the string "unbounded"."""
        return {
            "steady_state": dict(self.steady_state),
            "distribution": dict(self.distribution),
            "average_streaks": {s: _serialise(v) for s, v in self.average_streaks.items()},
            "analytic_streaks": {s: _serialise(v) for s, v in self.analytic_streaks.items()},
            "observed_streaks": dict(self.observed_streaks),
            "streak_source": self.streak_source,
            "convergence_gap": self.convergence_gap,
            "most_likely_state": self.most_likely_state,
            "steady_state_converged": self.steady_state_converged,
            "anomalies": [a.to_dict() for a in self.anomalies],
        }

    def to_frame(self) -> pd.DataFrame:
        """One row per state: steady state, empirical share and both streaks."""
        rows = []
        for s in self.steady_state:
            analytic = self.analytic_streaks[s]
            rows.append({
                "state": s,
                "steady_state": self.steady_state[s],
                "distribution": self.distribution[s],
                "analytic_streak": np.nan if analytic is UNBOUNDED else analytic,
                "unbounded": analytic is UNBOUNDED,
                "observed_streak": self.observed_streaks[s],
            })
        return pd.DataFrame(rows).set_index("state")


class StatisticsAggregator:
    """
    Build StatisticsReports.

    Example:
        agg = StatisticsAggregator(streak_source="analytic")
        report = agg.aggregate(tm, pi, trajectory)
        report.to_dict()["average_streaks"]   # {"Sunny": 2.0, "Rainy": 1.5, ...}
    """

    def __init__(self, streak_source: str = "analytic"):
        if streak_source not in STREAK_SOURCES:
            raise ValueError(f"Unknown streak source: {streak_source}")
        self.streak_source = streak_source

    @classmethod
    def from_settings(cls, statistics_settings) -> "StatisticsAggregator":
        return cls(streak_source=statistics_settings.streak_source)

    def analytic_streaks(self, matrix: TransitionMatrix) -> Tuple[Dict[str, RunLength], List[NumericAnomaly]]:
        streaks: Dict[str, RunLength] = {}
        anomalies: List[NumericAnomaly] = []
        for state, p_self in zip(matrix.states, matrix.get_persistence()):
            value = expected_run_length(float(p_self), state)
            if value is UNBOUNDED:
                anomalies.append(NumericAnomaly(
                    "Expected run-length diverges for an absorbing state",
                    state=state,
                    quantity="expected_run_length",
                    context={"p_self": float(p_self)},
                ))
            streaks[state] = value
        return streaks, anomalies

    def aggregate(
        self,
        matrix: TransitionMatrix,
        stationary: StationaryDistribution,
        trajectory: SimulatedTrajectory,
        streak_source: str = "",
    ) -> StatisticsReport:
        """
        Combine the three inputs into a report.

        Raises:
            ValidationError: If the inputs disagree on state ordering or the
                trajectory is empty
        """
        source = streak_source or self.streak_source
        if source not in STREAK_SOURCES:
            raise ValidationError("Unknown streak source", context={"streak_source": source})

        order = matrix.states
        if tuple(stationary.states) != order:
            raise ValidationError(
                "Stationary distribution uses a different state ordering",
                context={"matrix": list(order), "stationary": list(stationary.states)},
            )
        if tuple(trajectory.state_order) != order:
            raise ValidationError(
                "Trajectory uses a different state ordering",
                context={"matrix": list(order), "trajectory": list(trajectory.state_order)},
            )
        if len(trajectory) == 0:
            raise ValidationError("Trajectory is empty")

        distribution = empirical_distribution(trajectory.states, order)
        steady_state = stationary.as_dict()
        analytic, anomalies = self.analytic_streaks(matrix)
        observed = observed_run_lengths(trajectory.states, order)

        for anomaly in anomalies:
            logger.warning(f"{anomaly}")

        gap = float(sum(abs(distribution[s] - steady_state[s]) for s in order))

        return StatisticsReport(
            steady_state=steady_state,
            distribution=distribution,
            average_streaks=dict(analytic) if source == "analytic" else dict(observed),
            analytic_streaks=analytic,
            observed_streaks=observed,
            streak_source=source,
            convergence_gap=gap,
            most_likely_state=stationary.most_likely_state(),
            steady_state_converged=stationary.converged,
            anomalies=tuple(anomalies),
        )


def aggregate_statistics(
    matrix: TransitionMatrix,
    stationary: StationaryDistribution,
    trajectory: SimulatedTrajectory,
    streak_source: str = "analytic",
) -> StatisticsReport:
    """Convenience wrapper around StatisticsAggregator.aggregate."""
    return StatisticsAggregator(streak_source=streak_source).aggregate(matrix, stationary, trajectory)
