"""
Stationary Distribution Solver for Weather Markov Chains

Computes the equilibrium (stationary) distribution π where πP = π.

The stationary distribution is the long-run share of days the city spends
in each weather state:
- π(Rainy) = 0.25 means about one day in four is rainy in the long run
- Compare it with a simulated trajectory's empirical frequencies to see
  how quickly a forecast forgets its starting state

Mathematical Background:
- π is the left eigenvector of P for eigenvalue 1
- For ergodic chains, π is unique and power iteration converges to it
  from any starting vector
- Chains with an absorbing self-loop row (see the zero-row policy of the
  matrix builder) are reducible, so convergence is not guaranteed

Usage:
    solver = StationaryDistributionSolver()
    result = solver.compute(tm)
    result.as_dict()   # {"Sunny": 0.52, "Rainy": 0.21, "Cloudy": 0.27}

    # Opt into an explicit fallback instead of an error
    result = solver.compute(tm, fallback="last_iterate")
    if not result.converged:
        ...

Created: 2026-01-04
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np
from scipy import linalg

from weather_core.exceptions import ConvergenceError, ValidationError

from .transition_matrix import TransitionMatrix

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 1e-9
DEFAULT_MAX_ITERATIONS = 10_000
FALLBACKS = ("none", "last_iterate", "uniform")


@dataclass(frozen=True, eq=False)
class StationaryDistribution:
    """Long-run state probabilities plus solver diagnostics."""

    probabilities: np.ndarray
    states: Tuple[str, ...]
    iterations: int = 0
    residual: float = 0.0
    converged: bool = True
    fallback: Optional[str] = None
    method: str = "power"

    def __post_init__(self) -> None:
        pi = np.array(self.probabilities, dtype=float)
        pi.setflags(write=False)
        object.__setattr__(self, "probabilities", pi)

    def __getitem__(self, state: str) -> float:
        return float(self.probabilities[self.states.index(state)])

    def as_dict(self) -> Dict[str, float]:
        return {s: float(p) for s, p in zip(self.states, self.probabilities)}

    def most_likely_state(self) -> str:
        return self.states[int(np.argmax(self.probabilities))]

    def to_dict(self) -> Dict[str, object]:
        return {
            "distribution": self.as_dict(),
            "iterations": self.iterations,
            "residual": self.residual,
            "converged": self.converged,
            "fallback": self.fallback,
            "method": self.method,
        }


def stationary_residual(P: np.ndarray, pi: np.ndarray) -> float:
    """L1 norm of πP − π."""
    return float(np.abs(pi @ P - pi).sum())


class StationaryDistributionSolver:
    """
    Compute stationary distributions of transition matrices.

    Power iteration (default):
        π_0 = uniform
        π_{k+1} = normalise(π_k · P)
        stop when ||π_{k+1} − π_k||_1 < tolerance

    The loop is capped at ``max_iterations``. Hitting the cap raises
    ConvergenceError unless the caller asked for a fallback, in which case
    the result is returned with ``converged=False`` and ``fallback`` set.
    """

    def __init__(
        self,
        tolerance: float = DEFAULT_TOLERANCE,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        method: str = "power",
        fallback: str = "none",
    ):
        """
        Initialize the solver.

        Args:
            tolerance: L1 convergence threshold between successive iterates
            max_iterations: Iteration cap for power iteration
            method: Computation method
                - "power": Power iteration (default)
                - "eigen": Left eigenvector via scipy (cross-check)
            fallback: Behaviour on non-convergence
                - "none": raise ConvergenceError
                - "last_iterate": return the last iterate, flagged
                - "uniform": return the uniform distribution, flagged
        """
        if method not in ("power", "eigen"):
            raise ValueError(f"Unknown method: {method}")
        if fallback not in FALLBACKS:
            raise ValueError(f"Unknown fallback: {fallback}")
        if tolerance <= 0 or max_iterations < 1:
            raise ValueError("tolerance must be > 0 and max_iterations >= 1")

        self.tolerance = tolerance
        self.max_iterations = max_iterations
        self.method = method
        self.fallback = fallback

    @classmethod
    def from_settings(cls, solver_settings) -> "StationaryDistributionSolver":
        return cls(
            tolerance=solver_settings.tolerance,
            max_iterations=solver_settings.max_iterations,
            method=solver_settings.method,
            fallback=solver_settings.fallback,
        )

    def compute(
        self,
        matrix: TransitionMatrix,
        method: Optional[str] = None,
        fallback: Optional[str] = None,
    ) -> StationaryDistribution:
        """
        Compute the stationary distribution.

        Args:
            matrix: Row-stochastic TransitionMatrix
            method: Override default computation method
            fallback: Override default non-convergence behaviour

        Returns:
            StationaryDistribution (sums to 1)

        Raises:
            ConvergenceError: Power iteration did not converge and no fallback
        """
        if not isinstance(matrix, TransitionMatrix):
            raise ValidationError(
                "Expected a TransitionMatrix", context={"type": type(matrix).__name__}
            )

        method = method or self.method
        fallback = fallback or self.fallback
        if fallback not in FALLBACKS:
            raise ValueError(f"Unknown fallback: {fallback}")

        if method == "power":
            return self._compute_power(matrix, fallback)
        elif method == "eigen":
            return self._compute_eigen(matrix)
        else:
            raise ValueError(f"Unknown method: {method}")

    def _compute_power(self, matrix: TransitionMatrix, fallback: str) -> StationaryDistribution:
        P = matrix.probabilities
        n = P.shape[0]
        pi = np.full(n, 1.0 / n)  # Start uniform

        delta = float("inf")
        for i in range(1, self.max_iterations + 1):
            pi_next = pi @ P  # Row vector × matrix
            pi_next = pi_next / pi_next.sum()  # Counter float drift

            delta = float(np.abs(pi_next - pi).sum())
            pi = pi_next
            if delta < self.tolerance:
                logger.debug(f"Power iteration converged in {i} iterations (delta={delta:.3e})")
                return StationaryDistribution(
                    probabilities=pi,
                    states=matrix.states,
                    iterations=i,
                    residual=stationary_residual(P, pi),
                    converged=True,
                    method="power",
                )

        residual = stationary_residual(P, pi)
        if fallback == "none":
            raise ConvergenceError(
                f"Power iteration did not converge in {self.max_iterations} iterations",
                last_iterate=pi.copy(),
                iterations=self.max_iterations,
                residual=residual,
                context={"delta": delta, "tolerance": self.tolerance},
            )

        logger.warning(
            f"Power iteration did not converge in {self.max_iterations} iterations "
            f"(delta={delta:.3e}); using {fallback} fallback"
        )
        if fallback == "uniform":
            pi = np.full(n, 1.0 / n)
            residual = stationary_residual(P, pi)

        return StationaryDistribution(
            probabilities=pi,
            states=matrix.states,
            iterations=self.max_iterations,
            residual=residual,
            converged=False,
            fallback=fallback,
            method="power",
        )

    def _compute_eigen(self, matrix: TransitionMatrix) -> StationaryDistribution:
        """
        Compute via eigenvalue decomposition.

        Left eigenvector: πP = λπ where λ = 1
        Equivalent to: P^T π^T = π^T
        """
        P = matrix.probabilities
        eigenvalues, eigenvectors = linalg.eig(P.T)

        # Find eigenvector for eigenvalue ≈ 1
        idx = int(np.argmin(np.abs(eigenvalues - 1.0)))
        pi = np.abs(np.real(eigenvectors[:, idx]))
        pi = pi / pi.sum()

        return StationaryDistribution(
            probabilities=pi,
            states=matrix.states,
            iterations=0,
            residual=stationary_residual(P, pi),
            converged=True,
            method="eigen",
        )

    def second_eigenvalue(self, matrix: TransitionMatrix) -> float:
        """
        Second largest eigenvalue magnitude.

        |λ2| close to 0 = fast mixing (weather forgets today quickly)
        |λ2| close to 1 = slow mixing, long persistent spells
        """
        mags = np.sort(np.abs(linalg.eigvals(matrix.probabilities)))[::-1]
        return float(mags[1]) if len(mags) > 1 else 0.0


def compute_stationary_distribution(
    matrix: TransitionMatrix,
    tolerance: float = DEFAULT_TOLERANCE,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    fallback: str = "none",
) -> StationaryDistribution:
    """
    Convenience function to compute a stationary distribution.

    Args:
        matrix: Row-stochastic TransitionMatrix
        tolerance: L1 convergence threshold
        max_iterations: Iteration cap
        fallback: "none", "last_iterate" or "uniform"

    Returns:
        StationaryDistribution
    """
    solver = StationaryDistributionSolver(
        tolerance=tolerance, max_iterations=max_iterations, fallback=fallback
    )
    return solver.compute(matrix)
