"""
Engine configuration: YAML defaults validated through pydantic models.
"""

from .settings_loader import get_config_path, get_setting, load_settings, clear_settings_cache
from .settings_schema import (
    EngineSettings,
    ClassificationConfig,
    RuleConfig,
    MatrixConfig,
    SolverConfig,
    SimulationConfig,
    StatisticsConfig,
    load_validated_settings,
    parse_settings,
)

__all__ = [
    'get_config_path',
    'get_setting',
    'load_settings',
    'clear_settings_cache',
    'EngineSettings',
    'ClassificationConfig',
    'RuleConfig',
    'MatrixConfig',
    'SolverConfig',
    'SimulationConfig',
    'StatisticsConfig',
    'load_validated_settings',
    'parse_settings',
]
