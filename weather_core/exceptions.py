"""
Exception Hierarchy for the Weather Markov Engine.

All engine errors inherit from WeatherEngineError so a host can branch on
``error_code`` instead of parsing message strings.

Usage:
    from weather_core.exceptions import (
        WeatherEngineError,
        ValidationError,
        ConvergenceError,
        NumericAnomaly,
    )

    try:
        matrix = build_transition_matrix(sequence)
    except ValidationError as e:
        # Caller supplied bad input; fix it and retry
        report_to_user(e.to_dict())
    except WeatherEngineError as e:
        log_error(e)
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional


# =============================================================================
# BASE EXCEPTION
# =============================================================================

class WeatherEngineError(Exception):
    """
    Base exception for all weather engine errors.

    Attributes:
        error_code: Unique identifier for this error type
        is_recoverable: Whether the caller can recover by correcting input
        context: Additional context about the error
        timestamp: When the error occurred (UTC)
    """
    error_code: str = "ENGINE_ERROR"
    is_recoverable: bool = True

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        self.message = message
        self.context = context or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(message)

    def __str__(self) -> str:
        base = f"[{self.error_code}] {self.message}"
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base = f"{base} ({ctx_str})"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "is_recoverable": self.is_recoverable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }


# =============================================================================
# INPUT ERRORS
# =============================================================================

class ValidationError(WeatherEngineError):
    """
    Raised when input is malformed or insufficient.

    Examples:
    - Fewer than 2 days of history (no transition can be observed)
    - Records missing a date or a condition description
    - Duplicate or missing dates
    - Unknown initial state or out-of-range simulation horizon
    """
    error_code = "VALIDATION_ERROR"


# =============================================================================
# NUMERIC ERRORS
# =============================================================================

class ConvergenceError(WeatherEngineError):
    """
    Raised when the steady-state solver exhausts its iteration budget.

    The last iterate is attached so a caller can opt into it explicitly.
    """
    error_code = "CONVERGENCE_ERROR"

    def __init__(
        self,
        message: str,
        last_iterate: Any = None,
        iterations: int = 0,
        residual: float = float("nan"),
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = {"iterations": iterations, "residual": residual}
        ctx.update(context or {})
        super().__init__(message, ctx)
        self.last_iterate = last_iterate
        self.iterations = iterations
        self.residual = residual


class NumericAnomaly(WeatherEngineError):
    """
    Raised when a derived quantity is undefined.

    The canonical case is the expected run-length of an absorbing state
    (self-transition probability 1), where 1 / (1 - p) diverges.
    """
    error_code = "NUMERIC_ANOMALY"

    def __init__(
        self,
        message: str,
        state: Optional[str] = None,
        quantity: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = {}
        if state is not None:
            ctx["state"] = state
        if quantity is not None:
            ctx["quantity"] = quantity
        ctx.update(context or {})
        super().__init__(message, ctx)
        self.state = state
        self.quantity = quantity


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================

class ConfigurationError(WeatherEngineError):
    """
    Raised when engine settings fail schema validation.

    Uses Pydantic validation under the hood.
    """
    error_code = "CONFIG_ERROR"
    is_recoverable = False


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def is_recoverable(error: Exception) -> bool:
    """
    Check whether an error can be fixed by the caller supplying new input.

    Args:
        error: The exception to check

    Returns:
        True for recoverable engine errors, False otherwise
    """
    if isinstance(error, WeatherEngineError):
        return error.is_recoverable
    return False


def get_error_code(error: Exception) -> str:
    """
    Get the error code for an exception.

    Args:
        error: The exception to get the code for

    Returns:
        Error code string, or "UNKNOWN" for non-engine exceptions
    """
    if isinstance(error, WeatherEngineError):
        return error.error_code
    return "UNKNOWN"
