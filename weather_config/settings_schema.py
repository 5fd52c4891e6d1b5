"""
Typed Settings Schema (Pydantic)
================================

Provides typed, validated configuration for the weather Markov engine.

Usage:
    from weather_config.settings_schema import load_validated_settings

    settings = load_validated_settings()
    tol = settings.solver.tolerance
    rules = settings.classification.rules
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from weather_core.exceptions import ConfigurationError

from .settings_loader import load_settings

logger = logging.getLogger(__name__)


# ============================================================================
# Schema Definitions
# ============================================================================

class RuleConfig(BaseModel):
    """One keyword rule: any keyword found in a description maps to ``state``."""
    state: str = Field(min_length=1)
    keywords: List[str] = Field(min_length=1)

    @field_validator("keywords")
    @classmethod
    def check_keywords_not_blank(cls, v: List[str]) -> List[str]:
        cleaned = [k.strip().lower() for k in v]
        if any(not k for k in cleaned):
            raise ValueError("keywords must be non-empty strings")
        return cleaned


class ClassificationConfig(BaseModel):
    """Ordered condition-text classification rules."""
    default_state: str = Field(default="Sunny", min_length=1)
    rules: List[RuleConfig] = Field(
        default_factory=lambda: [
            RuleConfig(state="Rainy", keywords=["rain", "drizzle", "shower", "thunder", "sleet"]),
            RuleConfig(state="Cloudy", keywords=["cloud", "overcast", "mist", "fog"]),
        ]
    )


class MatrixConfig(BaseModel):
    """Transition matrix estimation."""
    smoothing: float = Field(default=0.0, ge=0)
    row_sum_tolerance: float = Field(default=1e-9, gt=0, le=1e-3)
    min_transitions: int = Field(default=30, ge=1)


class SolverConfig(BaseModel):
    """Steady-state power iteration."""
    method: Literal["power", "eigen"] = "power"
    tolerance: float = Field(default=1e-9, gt=0, lt=1)
    max_iterations: int = Field(default=10_000, ge=1)
    fallback: Literal["none", "last_iterate", "uniform"] = "none"


class SimulationConfig(BaseModel):
    """Trajectory simulation bounds."""
    max_horizon: int = Field(default=365, ge=1)
    default_seed: Optional[int] = Field(default=None, ge=0)


class StatisticsConfig(BaseModel):
    """Statistics aggregation."""
    streak_source: Literal["analytic", "empirical"] = "analytic"


class EngineSettings(BaseModel):
    """Complete settings schema."""
    model_config = ConfigDict(extra="allow")

    classification: ClassificationConfig = Field(default_factory=ClassificationConfig)
    matrix: MatrixConfig = Field(default_factory=MatrixConfig)
    solver: SolverConfig = Field(default_factory=SolverConfig)
    simulation: SimulationConfig = Field(default_factory=SimulationConfig)
    statistics: StatisticsConfig = Field(default_factory=StatisticsConfig)

    @model_validator(mode="after")
    def check_no_repeated_rules(self) -> "EngineSettings":
        # A state may own several rules at different priorities; an identical rule is a typo
        seen = set()
        for rule in self.classification.rules:
            key = (rule.state, tuple(rule.keywords))
            if key in seen:
                raise ValueError(f"Repeated classification rule for state {rule.state!r}")
            seen.add(key)
        return self


# ============================================================================
# Validation Functions
# ============================================================================

def parse_settings(raw: Optional[Dict[str, Any]]) -> EngineSettings:
    """
    Validate a raw settings mapping.

    Raises:
        ConfigurationError: If settings are invalid
    """
    try:
        return EngineSettings(**(raw or {}))
    except ValidationError as e:
        logger.error(f"Settings validation failed: {e}")
        raise ConfigurationError(
            "Engine settings failed validation",
            context={"errors": len(e.errors())},
            cause=e,
        ) from e


def load_validated_settings(force_reload: bool = False) -> EngineSettings:
    """
    Load and validate settings from base.yaml (or WEATHER_MARKOV_CONFIG_PATH).

    Returns:
        Validated EngineSettings object

    Raises:
        ConfigurationError: If settings are invalid
    """
    return parse_settings(load_settings(force_reload=force_reload))
