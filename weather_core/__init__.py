"""
Core Infrastructure
====================

Foundational components shared by the weather Markov engine.

Components:
- exceptions: Engine error hierarchy (ValidationError, ConvergenceError, NumericAnomaly)
- result: Tagged success/error result returned to host shells
- structured_log: JSON event logging
"""

from .exceptions import (
    WeatherEngineError,
    ValidationError,
    ConvergenceError,
    NumericAnomaly,
    ConfigurationError,
    get_error_code,
    is_recoverable,
)
from .result import EngineResult, capture
from .structured_log import jlog, read_recent_logs

__all__ = [
    # Exceptions
    'WeatherEngineError',
    'ValidationError',
    'ConvergenceError',
    'NumericAnomaly',
    'ConfigurationError',
    'get_error_code',
    'is_recoverable',
    # Results
    'EngineResult',
    'capture',
    # Structured Logging
    'jlog',
    'read_recent_logs',
]
