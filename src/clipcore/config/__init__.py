"""Configuration models and the shared heuristic rule set."""

from .config import Config, ExtractionSettings, LazyConfig, MonitoringConfig, find_config_file, settings
from .rules import DEFAULT_RULES, HeuristicRules

__all__ = [
    "Config",
    "ExtractionSettings",
    "MonitoringConfig",
    "LazyConfig",
    "HeuristicRules",
    "DEFAULT_RULES",
    "find_config_file",
    "settings",
]
