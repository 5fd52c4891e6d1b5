"""
Weather Markov Chain Forecast Engine

Models the daily weather condition of a city as a discrete-time,
finite-state, first-order Markov chain estimated from historical
observations.

Key Components:
- ConditionClassifier / ingest_observations: Free-text conditions to states
- TransitionMatrixBuilder: Build P(tomorrow | today) matrices
- StationaryDistributionSolver: Long-run equilibrium π
- TrajectorySimulator: Seeded forward trajectories
- StatisticsAggregator: Empirical vs steady state, expected run-lengths
- WeatherMarkovEngine: Host facade returning tagged results

Usage:
    from weather_markov import (
        ingest_observations,
        build_transition_matrix,
        compute_stationary_distribution,
        simulate_trajectory,
        aggregate_statistics,
    )

    sequence = ingest_observations(api_response)
    tm = build_transition_matrix(sequence)
    pi = compute_stationary_distribution(tm)
    path = simulate_trajectory(tm, "Sunny", days=30, seed=7)
    report = aggregate_statistics(tm, pi, path)

Created: 2026-01-04
"""

from .observation_ingestor import (
    ClassificationRule,
    ConditionClassifier,
    ObservationSequence,
    ingest_observations,
    sequence_from_states,
)
from .transition_matrix import TransitionMatrix, TransitionMatrixBuilder, build_transition_matrix
from .stationary_dist import (
    StationaryDistribution,
    StationaryDistributionSolver,
    compute_stationary_distribution,
)
from .simulator import SimulatedTrajectory, SimulationDay, TrajectorySimulator, simulate_trajectory
from .statistics import (
    UNBOUNDED,
    StatisticsAggregator,
    StatisticsReport,
    aggregate_statistics,
    expected_run_length,
)
from .engine import WeatherMarkovEngine, create_engine

__all__ = [
    # Ingestion
    "ClassificationRule",
    "ConditionClassifier",
    "ObservationSequence",
    "ingest_observations",
    "sequence_from_states",
    # Matrix
    "TransitionMatrix",
    "TransitionMatrixBuilder",
    "build_transition_matrix",
    # Steady state
    "StationaryDistribution",
    "StationaryDistributionSolver",
    "compute_stationary_distribution",
    # Simulation
    "SimulatedTrajectory",
    "SimulationDay",
    "TrajectorySimulator",
    "simulate_trajectory",
    # Statistics
    "UNBOUNDED",
    "StatisticsAggregator",
    "StatisticsReport",
    "aggregate_statistics",
    "expected_run_length",
    # Facade
    "WeatherMarkovEngine",
    "create_engine",
]

__version__ = "1.0.0"
