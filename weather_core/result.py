"""
Tagged result type returned by the host-facing engine operations.

A result is either a success payload or one engine error; callers branch on
``ok`` / ``error_code`` rather than catching exceptions.

Usage:
    result = engine.run_simulation(days=30, initial_state="Sunny", seed=7)
    if result.ok:
        render(result.value)
    elif result.error_code == "VALIDATION_ERROR":
        ask_for_new_input(result.error.message)
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

from .exceptions import WeatherEngineError

T = TypeVar("T")


@dataclass(frozen=True)
class EngineResult(Generic[T]):
    """Success payload or a WeatherEngineError, never both."""

    value: Optional[T] = None
    error: Optional[WeatherEngineError] = None

    def __post_init__(self) -> None:
        if self.value is not None and self.error is not None:
            raise ValueError("EngineResult cannot carry both a value and an error")

    @classmethod
    def success(cls, value: T) -> "EngineResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: WeatherEngineError) -> "EngineResult[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def error_code(self) -> Optional[str]:
        return self.error.error_code if self.error is not None else None

    def unwrap(self) -> T:
        """Return the value, re-raising the stored error on failure."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]

    def to_dict(self) -> Dict[str, Any]:
        if self.error is not None:
            return {"ok": False, "error": self.error.to_dict()}
        return {"ok": True, "value": self.value}


def capture(fn: Callable[..., T], *args: Any, **kwargs: Any) -> EngineResult[T]:
    """
    Run ``fn`` and wrap its outcome.

    Only WeatherEngineError is converted to a failure result; anything else
    is a programming error and propagates.
    """
    try:
        return EngineResult.success(fn(*args, **kwargs))
    except WeatherEngineError as e:
        return EngineResult.failure(e)
