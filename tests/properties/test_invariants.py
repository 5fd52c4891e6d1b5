"""
Property-Based Tests for Weather Markov Invariants.

Uses Hypothesis to check invariants that must hold for any input:

1. Every row of a built transition matrix sums to 1 (within 1e-9)
2. The stationary distribution of a strictly positive matrix is a fixed
   point of P and sums to 1
3. A trajectory has exactly N days, starts at the initial state and only
   visits states reachable through positive transitions
4. A fixed seed reproduces the trajectory
5. The empirical distribution covers every state and sums to 1
"""

import numpy as np
import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from weather_markov.simulator import simulate_trajectory
from weather_markov.stationary_dist import StationaryDistributionSolver, compute_stationary_distribution
from weather_markov.statistics import aggregate_statistics
from weather_markov.transition_matrix import TransitionMatrix, build_transition_matrix


# =============================================================================
# STRATEGIES (Custom data generators)
# =============================================================================

STATES = ("Sunny", "Rainy", "Cloudy", "Windy")

# Observed sequences over a small alphabet
sequence_strategy = st.lists(st.sampled_from(STATES), min_size=2, max_size=200)

seed_strategy = st.integers(min_value=0, max_value=2**32 - 1)

# The autouse event-log fixture is function scoped and holds no per-example state
SUPPRESSED = [HealthCheck.too_slow, HealthCheck.function_scoped_fixture]


@st.composite
def positive_matrix_strategy(draw, min_states=2, max_states=5):
    """Strictly positive row-stochastic matrix (ergodic by construction)."""
    n = draw(st.integers(min_value=min_states, max_value=max_states))
    raw = draw(st.lists(
        st.lists(st.floats(min_value=0.01, max_value=1.0, allow_nan=False), min_size=n, max_size=n),
        min_size=n, max_size=n,
    ))
    P = np.array(raw)
    P = P / P.sum(axis=1, keepdims=True)
    return TransitionMatrix(probabilities=P, states=tuple(f"S{i}" for i in range(n)))


@st.composite
def sparse_matrix_strategy(draw, max_states=5):
    """Row-stochastic matrix with zeros; every row keeps at least one entry."""
    n = draw(st.integers(min_value=2, max_value=max_states))
    rows = []
    for _ in range(n):
        row = draw(st.lists(
            st.sampled_from([0.0, 0.0, 0.2, 0.5, 1.0]), min_size=n, max_size=n,
        ))
        if sum(row) == 0:
            row[draw(st.integers(min_value=0, max_value=n - 1))] = 1.0
        rows.append(row)
    P = np.array(rows)
    P = P / P.sum(axis=1, keepdims=True)
    return TransitionMatrix(probabilities=P, states=tuple(f"S{i}" for i in range(n)))


# =============================================================================
# MATRIX INVARIANTS
# =============================================================================

class TestMatrixInvariants:
    """Row-stochastic output for any observed sequence."""

    @given(sequence=sequence_strategy, smoothing=st.sampled_from([0.0, 0.5, 1.0]))
    @settings(max_examples=200, deadline=None, suppress_health_check=SUPPRESSED)
    def test_rows_sum_to_one(self, sequence, smoothing):
        tm = build_transition_matrix(sequence, smoothing=smoothing)

        assert np.all(np.abs(tm.probabilities.sum(axis=1) - 1.0) <= 1e-9)
        assert np.all(tm.probabilities >= 0)
        assert not np.any(np.isnan(tm.probabilities))

    @given(sequence=sequence_strategy)
    @settings(max_examples=100, deadline=None, suppress_health_check=SUPPRESSED)
    def test_counts_match_pairs(self, sequence):
        tm = build_transition_matrix(sequence)
        assert tm.total_transitions == len(sequence) - 1
        assert tm.states == tuple(dict.fromkeys(sequence))

    @given(sequence=sequence_strategy)
    @settings(max_examples=100, deadline=None, suppress_health_check=SUPPRESSED)
    def test_wire_round_trip_preserves_ordering(self, sequence):
        tm = build_transition_matrix(sequence)
        rebuilt = TransitionMatrix.from_dict(tm.to_dict())
        assert rebuilt.states == tm.states
        assert np.array_equal(rebuilt.probabilities, tm.probabilities)


# =============================================================================
# STEADY-STATE INVARIANTS
# =============================================================================

class TestStationaryInvariants:
    """Power iteration on ergodic chains."""

    @given(tm=positive_matrix_strategy())
    @settings(max_examples=100, deadline=None, suppress_health_check=SUPPRESSED)
    def test_fixed_point(self, tm):
        pi = compute_stationary_distribution(tm)

        assert pi.converged
        assert pi.probabilities.sum() == pytest.approx(1.0, abs=1e-9)
        assert np.all(pi.probabilities >= 0)
        assert np.abs(pi.probabilities @ tm.probabilities - pi.probabilities).sum() < 1e-6

    @given(tm=positive_matrix_strategy())
    @settings(max_examples=50, deadline=None, suppress_health_check=SUPPRESSED)
    def test_power_matches_eigen(self, tm):
        solver = StationaryDistributionSolver()
        power = solver.compute(tm)
        eigen = solver.compute(tm, method="eigen")
        np.testing.assert_allclose(power.probabilities, eigen.probabilities, atol=1e-6)


# =============================================================================
# SIMULATION INVARIANTS
# =============================================================================

class TestSimulationInvariants:
    """Trajectory shape, reachability and determinism."""

    @given(
        tm=sparse_matrix_strategy(),
        days=st.integers(min_value=1, max_value=365),
        seed=seed_strategy,
        data=st.data(),
    )
    @settings(max_examples=150, deadline=None, suppress_health_check=SUPPRESSED)
    def test_only_positive_transitions(self, tm, days, seed, data):
        initial = data.draw(st.sampled_from(tm.states))
        path = simulate_trajectory(tm, initial, days=days, seed=seed)

        assert len(path) == days
        assert path.states[0] == initial
        for today, tomorrow in zip(path.states, path.states[1:]):
            assert tm.get_probability(today, tomorrow) > 0

    @given(tm=positive_matrix_strategy(), seed=seed_strategy)
    @settings(max_examples=50, deadline=None, suppress_health_check=SUPPRESSED)
    def test_seed_reproduces(self, tm, seed):
        a = simulate_trajectory(tm, tm.states[0], days=50, seed=seed)
        b = simulate_trajectory(tm, tm.states[0], days=50, seed=seed)
        assert a.states == b.states

    @given(tm=positive_matrix_strategy(), seed=seed_strategy)
    @settings(max_examples=50, deadline=None, suppress_health_check=SUPPRESSED)
    def test_empirical_distribution_complete(self, tm, seed):
        pi = compute_stationary_distribution(tm)
        path = simulate_trajectory(tm, tm.states[-1], days=40, seed=seed)
        report = aggregate_statistics(tm, pi, path)

        assert list(report.distribution) == list(tm.states)
        assert sum(report.distribution.values()) == pytest.approx(1.0)
        assert all(v >= 1.0 for v in report.average_streaks.values())
