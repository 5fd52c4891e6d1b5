"""
Weather Markov Engine Facade

Host-facing entry point wrapping the pipeline

    Ingestor -> Matrix Builder -> {Solver, Simulator} -> Aggregator

behind three operations (process_weather_data, run_simulation,
get_statistics) plus a one-shot run_forecast that solves the steady state
and simulates concurrently.

Every operation returns an EngineResult instead of raising: engine errors
are logged as ``engine_error`` events and handed back to the host, which
decides whether to retry or substitute. Anything that is not a
WeatherEngineError is a bug and propagates.

The engine keeps the current matrix and the most recent trajectory between
calls. One instance per host context; instances are not shared across
threads.

Usage:
    engine = WeatherMarkovEngine()
    engine.process_weather_data(api_response).unwrap()
    result = engine.run_simulation(days=14, initial_state="Sunny", seed=7)
    stats = engine.get_statistics()

Created: 2026-01-04
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional

from weather_config.settings_schema import EngineSettings, load_validated_settings
from weather_core.exceptions import ValidationError
from weather_core.result import EngineResult, capture
from weather_core.structured_log import jlog

from .observation_ingestor import ConditionClassifier, ObservationSequence, ingest_observations
from .simulator import SeedLike, SimulatedTrajectory, TrajectorySimulator
from .stationary_dist import StationaryDistribution, StationaryDistributionSolver
from .statistics import StatisticsAggregator, StatisticsReport
from .transition_matrix import TransitionMatrix, TransitionMatrixBuilder

logger = logging.getLogger(__name__)


class WeatherMarkovEngine:
    """
    Stateful facade over the pure pipeline components.

    Example:
        engine = WeatherMarkovEngine()
        forecast = engine.run_forecast(payload, "Rainy", days=30, seed=1)
        if forecast.ok:
            print(forecast.value["statistics"]["steady_state"])
    """

    def __init__(self, settings: Optional[EngineSettings] = None):
        self.settings = settings or load_validated_settings()

        self.classifier = ConditionClassifier.from_settings(self.settings.classification)
        self.builder = TransitionMatrixBuilder.from_settings(self.settings.matrix)
        self.solver = StationaryDistributionSolver.from_settings(self.settings.solver)
        self.simulator = TrajectorySimulator.from_settings(self.settings.simulation)
        self.aggregator = StatisticsAggregator.from_settings(self.settings.statistics)

        self.sequence: Optional[ObservationSequence] = None
        self.matrix: Optional[TransitionMatrix] = None
        self.stationary: Optional[StationaryDistribution] = None
        self.trajectory: Optional[SimulatedTrajectory] = None

    # ------------------------------------------------------------------
    # Host-facing operations
    # ------------------------------------------------------------------

    def process_weather_data(self, payload: Any) -> EngineResult[Dict[str, Any]]:
        """Ingest a historical payload and build the transition matrix."""
        return self._guard("process_weather_data", self._process, payload)

    def run_simulation(
        self,
        days: int,
        initial_state: str,
        seed: SeedLike = None,
    ) -> EngineResult[List[Dict[str, Any]]]:
        """Simulate ``days`` days from ``initial_state`` on the current matrix."""
        return self._guard("run_simulation", self._simulate, days, initial_state, seed)

    def get_statistics(self, streak_source: str = "") -> EngineResult[Dict[str, Any]]:
        """Statistics report for the most recent trajectory."""
        return self._guard("get_statistics", self._statistics, streak_source)

    def run_forecast(
        self,
        payload: Any,
        initial_state: str,
        days: int,
        seed: SeedLike = None,
        streak_source: str = "",
    ) -> EngineResult[Dict[str, Any]]:
        """
        One-shot pipeline: ingest, build, then solve and simulate in parallel.

        Returns:
            Result whose value holds ``matrix``, ``stationary``, ``trajectory``
            and ``statistics`` dicts
        """
        return self._guard(
            "run_forecast", self._forecast, payload, initial_state, days, seed, streak_source
        )

    # ------------------------------------------------------------------
    # Pipeline steps (raise typed errors)
    # ------------------------------------------------------------------

    def _process(self, payload: Any) -> Dict[str, Any]:
        sequence = ingest_observations(payload, classifier=self.classifier)
        matrix = self.builder.fit(sequence)

        self.sequence = sequence
        self.matrix = matrix
        self.stationary = None
        self.trajectory = None

        jlog(
            "matrix_built",
            states=list(matrix.states),
            observations=len(sequence),
            transitions=matrix.total_transitions,
            fallback_states=list(matrix.fallback_states),
            last_observed=sequence.last_observed,
        )
        return matrix.to_dict()

    def _require_matrix(self) -> TransitionMatrix:
        if self.matrix is None:
            raise ValidationError("No transition matrix; process weather data first")
        return self.matrix

    def _solve(self, matrix: TransitionMatrix) -> StationaryDistribution:
        stationary = self.solver.compute(matrix)
        jlog(
            "steady_state_solved",
            level="INFO" if stationary.converged else "WARNING",
            method=stationary.method,
            iterations=stationary.iterations,
            residual=stationary.residual,
            converged=stationary.converged,
            fallback=stationary.fallback,
        )
        return stationary

    def _run_trajectory(
        self,
        matrix: TransitionMatrix,
        days: int,
        initial_state: str,
        seed: SeedLike,
    ) -> SimulatedTrajectory:
        trajectory = self.simulator.simulate(matrix, initial_state, days, seed=seed)
        jlog(
            "simulation_run",
            initial_state=initial_state,
            days=len(trajectory),
            seed=trajectory.seed,
        )
        return trajectory

    def _simulate(self, days: int, initial_state: str, seed: SeedLike) -> List[Dict[str, Any]]:
        matrix = self._require_matrix()
        self.trajectory = self._run_trajectory(matrix, days, initial_state, seed)
        return self.trajectory.to_list()

    def _report(
        self,
        matrix: TransitionMatrix,
        stationary: StationaryDistribution,
        trajectory: SimulatedTrajectory,
        streak_source: str,
    ) -> StatisticsReport:
        report = self.aggregator.aggregate(matrix, stationary, trajectory, streak_source=streak_source)
        jlog(
            "statistics_aggregated",
            level="WARNING" if report.anomalies else "INFO",
            streak_source=report.streak_source,
            convergence_gap=report.convergence_gap,
            most_likely_state=report.most_likely_state,
            unbounded_states=list(report.unbounded_states),
        )
        return report

    def _statistics(self, streak_source: str) -> Dict[str, Any]:
        matrix = self._require_matrix()
        if self.trajectory is None:
            raise ValidationError("No trajectory; run a simulation first")
        if self.stationary is None:
            self.stationary = self._solve(matrix)
        return self._report(matrix, self.stationary, self.trajectory, streak_source).to_dict()

    def _forecast(
        self,
        payload: Any,
        initial_state: str,
        days: int,
        seed: SeedLike,
        streak_source: str,
    ) -> Dict[str, Any]:
        matrix_dict = self._process(payload)
        matrix = self._require_matrix()

        # Both consume the read-only matrix; result() re-raises worker errors
        with ThreadPoolExecutor(max_workers=2) as executor:
            solve_future = executor.submit(self._solve, matrix)
            sim_future = executor.submit(self._run_trajectory, matrix, days, initial_state, seed)
            trajectory = sim_future.result()
            stationary = solve_future.result()

        self.stationary = stationary
        self.trajectory = trajectory
        report = self._report(matrix, stationary, trajectory, streak_source)

        return {
            "matrix": matrix_dict,
            "stationary": stationary.to_dict(),
            "trajectory": trajectory.to_list(),
            "statistics": report.to_dict(),
        }

    # ------------------------------------------------------------------
    # Error boundary
    # ------------------------------------------------------------------

    def _guard(self, operation: str, fn: Callable[..., Any], *args: Any) -> EngineResult[Any]:
        result = capture(fn, *args)
        if not result.ok:
            logger.warning(f"{operation} failed: {result.error}")
            jlog("engine_error", level="ERROR", operation=operation, **result.error.to_dict())
        return result


def create_engine(settings: Optional[EngineSettings] = None) -> WeatherMarkovEngine:
    """Build an engine from validated settings (base.yaml by default)."""
    return WeatherMarkovEngine(settings=settings)
