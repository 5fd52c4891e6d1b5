"""
Transition Matrix Builder for Weather Markov Chains

Builds the transition probability matrix P where:
    P[i,j] = P(tomorrow = states[j] | today = states[i])
    Each row sums to 1.

Features:
- First-order transition counting over consecutive days
- Optional Laplace smoothing for sparse histories
- Deterministic zero-row fallback (self-loop) for states never seen
  as a transition source
- Wire serialisation: {matrix (flattened, row-major), states, rows, cols}

Usage:
    tm = build_transition_matrix(sequence)

    tm.get_probability("Sunny", "Rainy")   # P(Rainy tomorrow | Sunny today)
    tm.predict_next("Rainy")              # row for Rainy
    tm.to_dict()                          # {"matrix": [...], "states": [...], ...}

Created: 2026-01-04
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from weather_core.exceptions import ValidationError

from .observation_ingestor import ObservationSequence, first_seen_order

logger = logging.getLogger(__name__)

ROW_SUM_TOLERANCE = 1e-9


@dataclass
class TransitionMatrixConfig:
    """Configuration for transition matrix estimation."""

    smoothing: float = 0.0  # Laplace smoothing (pseudocounts); 0 = raw frequencies
    min_transitions: int = 30  # Minimum transitions for a reliable matrix
    row_sum_tolerance: float = ROW_SUM_TOLERANCE


@dataclass(frozen=True, eq=False)
class TransitionMatrix:
    """
    Immutable row-stochastic transition matrix paired with its state order.

    Example for 3 states (Sunny, Rainy, Cloudy):
        P = [[0.6, 0.1, 0.3],   # From Sunny: 60% stay Sunny
             [0.3, 0.5, 0.2],   # From Rainy: 50% stay Rainy
             [0.4, 0.3, 0.3]]   # From Cloudy

    The arrays are read-only; the matrix is shared by the solver and the
    simulator without copying.
    """

    probabilities: np.ndarray
    states: Tuple[str, ...]
    counts: Optional[np.ndarray] = None
    last_observed: Optional[date] = None
    smoothing: float = 0.0
    fallback_states: Tuple[str, ...] = field(default_factory=tuple)
    row_sum_tolerance: float = ROW_SUM_TOLERANCE

    def __post_init__(self) -> None:
        P = np.array(self.probabilities, dtype=float)
        n = len(self.states)

        if len(set(self.states)) != n:
            raise ValidationError("State names must be unique", context={"states": list(self.states)})
        if n == 0:
            raise ValidationError("Transition matrix needs at least one state")
        if P.shape != (n, n):
            raise ValidationError(
                f"Matrix must be shape ({n},{n})", context={"shape": P.shape}
            )
        if not np.all(np.isfinite(P)) or np.any(P < 0):
            raise ValidationError("Matrix entries must be finite and non-negative")

        row_sums = P.sum(axis=1)
        bad = np.flatnonzero(np.abs(row_sums - 1.0) > self.row_sum_tolerance)
        if bad.size:
            raise ValidationError(
                "Each row must sum to 1",
                context={"state": self.states[int(bad[0])], "row_sum": float(row_sums[bad[0]])},
            )

        P.setflags(write=False)
        object.__setattr__(self, "probabilities", P)
        object.__setattr__(self, "states", tuple(self.states))

        if self.counts is not None:
            C = np.array(self.counts, dtype=np.int64)
            C.setflags(write=False)
            object.__setattr__(self, "counts", C)

    # ------------------------------------------------------------------
    # Shape / lookup
    # ------------------------------------------------------------------

    @property
    def rows(self) -> int:
        return self.probabilities.shape[0]

    @property
    def cols(self) -> int:
        return self.probabilities.shape[1]

    @property
    def n_states(self) -> int:
        return len(self.states)

    @property
    def total_transitions(self) -> int:
        return int(self.counts.sum()) if self.counts is not None else 0

    def is_reliable(self, min_transitions: int = 30) -> bool:
        """Whether the matrix was estimated from enough transitions."""
        return self.total_transitions >= min_transitions

    def index_of(self, state: str) -> int:
        """
        Position of ``state`` in the canonical ordering.

        Raises:
            ValidationError: If the state is not part of this matrix
        """
        try:
            return self.states.index(state)
        except ValueError:
            raise ValidationError(
                f"Unknown state: {state!r}",
                context={"known_states": list(self.states)},
            ) from None

    def get_probability(self, from_state: str, to_state: str) -> float:
        """P(to_state tomorrow | from_state today)."""
        return float(self.probabilities[self.index_of(from_state), self.index_of(to_state)])

    def predict_next(self, current_state: str) -> np.ndarray:
        """Probability distribution over tomorrow's state."""
        return self.probabilities[self.index_of(current_state)].copy()

    def most_likely_next(self, current_state: str) -> str:
        return self.states[int(np.argmax(self.predict_next(current_state)))]

    # ------------------------------------------------------------------
    # Structural properties
    # ------------------------------------------------------------------

    def get_persistence(self) -> np.ndarray:
        """
        Self-transition probabilities (diagonal).

        High persistence = weather tends to stick (long spells)
        """
        return np.diag(self.probabilities).copy()

    def get_row_entropy(self) -> np.ndarray:
        """
        Entropy (bits) of each row.

        High entropy = tomorrow is hard to call from today's state
        """
        P = self.probabilities
        with np.errstate(divide="ignore", invalid="ignore"):
            log_probs = np.log2(P)
            log_probs = np.where(np.isfinite(log_probs), log_probs, 0)
        return -np.sum(P * log_probs, axis=1)

    def absorbing_states(self) -> Tuple[str, ...]:
        """States whose self-transition probability is 1."""
        diag = np.diag(self.probabilities)
        return tuple(s for s, p in zip(self.states, diag) if p >= 1.0 - 1e-12)

    def is_ergodic(self) -> bool:
        """
        Check if the chain is irreducible and aperiodic.

        A finite chain is ergodic iff P is primitive, i.e. some power of the
        zero pattern is strictly positive; Wielandt's bound says checking
        power (n-1)^2 + 1 is enough.
        """
        n = self.n_states
        A = (self.probabilities > 0).astype(np.int64)
        k = (n - 1) ** 2 + 1
        result = np.eye(n, dtype=np.int64)
        base = A
        while k:
            if k & 1:
                result = np.minimum(result @ base, 1)
            base = np.minimum(base @ base, 1)
            k >>= 1
        return bool(np.all(result > 0))

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Wire form: flattened row-major matrix with its state ordering."""
        return {
            "matrix": self.probabilities.ravel().tolist(),
            "states": list(self.states),
            "rows": self.rows,
            "cols": self.cols,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TransitionMatrix":
        """
        Rebuild from the wire form (flattened or nested ``matrix``).

        Raises:
            ValidationError: If the payload is inconsistent
        """
        try:
            states = tuple(data["states"])
            raw = data["matrix"]
        except (KeyError, TypeError) as e:
            raise ValidationError("Matrix payload needs 'matrix' and 'states'", cause=e) from e

        n = len(states)
        rows = int(data.get("rows", n))
        cols = int(data.get("cols", n))
        if rows != n or cols != n:
            raise ValidationError(
                "rows/cols must equal the number of states",
                context={"rows": rows, "cols": cols, "states": n},
            )

        try:
            arr = np.asarray(raw, dtype=float)
        except (TypeError, ValueError) as e:
            raise ValidationError("Matrix entries must be numeric and rectangular", cause=e) from e
        if arr.ndim == 1:
            if arr.size != n * n:
                raise ValidationError(
                    "Flattened matrix has the wrong length",
                    context={"length": int(arr.size), "expected": n * n},
                )
            arr = arr.reshape(n, n)
        return cls(probabilities=arr, states=states)

    def to_frame(self) -> pd.DataFrame:
        """Matrix as a labelled DataFrame (index = from, columns = to)."""
        return pd.DataFrame(self.probabilities, index=list(self.states), columns=list(self.states))

    def __repr__(self) -> str:
        return (
            f"TransitionMatrix(states={list(self.states)}, "
            f"transitions={self.total_transitions})"
        )

    def pretty_print(self) -> str:
        """Human-readable matrix."""
        width = max(6, max(len(s) for s in self.states))
        lines = ["Transition Matrix:"]
        lines.append(" " * (width + 2) + "  ".join(f"{s:>{width}}" for s in self.states))
        for i, s in enumerate(self.states):
            row = "  ".join(f"{p:>{width}.3f}" for p in self.probabilities[i])
            lines.append(f"{s:>{width}}: {row}")
        return "\n".join(lines)


# =============================================================================
# Builder
# =============================================================================

class TransitionMatrixBuilder:
    """
    Count first-order transitions and normalise them into a TransitionMatrix.

    Zero-row policy: a state that never appears as a transition source
    (it only occurs on the final day) gets a deterministic self-loop row,
    P[i,i] = 1, so every row stays a valid distribution instead of 0/0.
    """

    def __init__(
        self,
        smoothing: float = 0.0,
        min_transitions: int = 30,
        row_sum_tolerance: float = ROW_SUM_TOLERANCE,
    ):
        if smoothing < 0:
            raise ValidationError("smoothing must be >= 0", context={"smoothing": smoothing})
        self.config = TransitionMatrixConfig(
            smoothing=smoothing,
            min_transitions=min_transitions,
            row_sum_tolerance=row_sum_tolerance,
        )

    @classmethod
    def from_settings(cls, matrix_settings) -> "TransitionMatrixBuilder":
        return cls(
            smoothing=matrix_settings.smoothing,
            min_transitions=matrix_settings.min_transitions,
            row_sum_tolerance=matrix_settings.row_sum_tolerance,
        )

    def count(self, states: Sequence[str], order: Sequence[str]) -> np.ndarray:
        """Integer count matrix C[i,j] over the n-1 consecutive pairs."""
        index = {s: i for i, s in enumerate(order)}
        unknown = sorted(set(states) - set(index))
        if unknown:
            raise ValidationError(
                "Sequence contains states outside the state ordering",
                context={"unknown": unknown},
            )

        idx = np.fromiter((index[s] for s in states), dtype=np.int64, count=len(states))
        counts = np.zeros((len(order), len(order)), dtype=np.int64)
        np.add.at(counts, (idx[:-1], idx[1:]), 1)
        return counts

    def normalize(self, counts: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Row-normalise counts (plus smoothing).

        Returns:
            (probabilities, boolean mask of rows that took the self-loop fallback)
        """
        smoothed = counts.astype(float) + self.config.smoothing
        row_sums = smoothed.sum(axis=1, keepdims=True)

        zero_rows = (row_sums == 0).ravel()
        safe_sums = np.where(row_sums == 0, 1.0, row_sums)
        P = smoothed / safe_sums

        zi = np.flatnonzero(zero_rows)
        if zi.size:
            P[zi] = 0.0
            P[zi, zi] = 1.0

        return P, zero_rows

    def fit(
        self,
        sequence: Union[ObservationSequence, Sequence[str]],
        states: Optional[Sequence[str]] = None,
    ) -> TransitionMatrix:
        """
        Build a transition matrix from an observation sequence.

        Args:
            sequence: ObservationSequence or plain list of state names
            states: Explicit ordering; defaults to the sequence's first-seen order

        Returns:
            TransitionMatrix

        Raises:
            ValidationError: Fewer than 2 observations or unknown states
        """
        if isinstance(sequence, ObservationSequence):
            observed = sequence.states
            order = tuple(states) if states is not None else sequence.state_order
            last_observed = sequence.last_observed
        else:
            observed = tuple(sequence)
            order = tuple(states) if states is not None else first_seen_order(observed)
            last_observed = None

        if len(observed) < 2:
            raise ValidationError(
                "Need at least 2 observations to count a transition",
                context={"observations": len(observed)},
            )

        counts = self.count(observed, order)
        P, zero_rows = self.normalize(counts)
        fallback = tuple(s for s, z in zip(order, zero_rows) if z)

        if fallback:
            logger.warning(
                f"States never seen as a transition source, using self-loop rows: {list(fallback)}"
            )

        tm = TransitionMatrix(
            probabilities=P,
            states=order,
            counts=counts,
            last_observed=last_observed,
            smoothing=self.config.smoothing,
            fallback_states=fallback,
            row_sum_tolerance=self.config.row_sum_tolerance,
        )

        if not tm.is_reliable(self.config.min_transitions):
            logger.warning(
                f"Only {tm.total_transitions} transitions observed "
                f"(< {self.config.min_transitions}); matrix estimates are noisy"
            )

        logger.debug(f"Fitted {tm!r}")
        return tm


def build_transition_matrix(
    sequence: Union[ObservationSequence, Sequence[str]],
    states: Optional[Sequence[str]] = None,
    smoothing: float = 0.0,
) -> TransitionMatrix:
    """
    Convenience function to build a transition matrix.

    Args:
        sequence: ObservationSequence or list of state names
        states: Optional explicit state ordering
        smoothing: Laplace smoothing factor

    Returns:
        TransitionMatrix
    """
    return TransitionMatrixBuilder(smoothing=smoothing).fit(sequence, states=states)

