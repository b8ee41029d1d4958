"""
Configuration management module.

Loads configuration from YAML files and provides easy access.
"""

from .settings import (
    AppConfig,
    AnalyzerConfig,
    EngineConfig,
    SystemConfig,
    TokenPairConfig,
    ValidatorConfig,
)
from .loader import ConfigLoader, get_app_config, get_config_loader

__all__ = [
    'AppConfig',
    'AnalyzerConfig',
    'EngineConfig',
    'SystemConfig',
    'TokenPairConfig',
    'ValidatorConfig',
    'ConfigLoader',
    'get_app_config',
    'get_config_loader',
]
