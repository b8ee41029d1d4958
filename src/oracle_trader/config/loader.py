"""
Loads config/config.yaml into a validated AppConfig.

Order of precedence (last wins):
1. AppConfig defaults
2. config/config.yaml, with ${VAR} / ${VAR:default} placeholders expanded
3. Environment overrides listed in ENV_OVERRIDES

The .env file at the repository root is read once, on import.
"""

import os
import re
import yaml
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple
from dotenv import load_dotenv
import logging

from .settings import AppConfig


logger = logging.getLogger(__name__)

# src/oracle_trader/config/loader.py -> repository root
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent.parent

load_dotenv(PROJECT_ROOT / ".env")

CONFIG_FILE = "config.yaml"

PLACEHOLDER_RE = re.compile(r"^\$\{([^}:]+)(?::([^}]*))?\}$")

# Environment variable -> (section, key, conversion)
ENV_OVERRIDES: Dict[str, Tuple[str, str, Callable[[str], Any]]] = {
    "ENVIRONMENT": ("system", "environment", str),
    "LOG_LEVEL": ("system", "log_level", str.upper),
    "STABLE_TOKEN": ("tokens", "stable_address", str),
    "VOLATILE_TOKEN": ("tokens", "volatile_address", str),
    "EVENT_COOLDOWN_SECONDS": ("engine", "cooldown_seconds", float),
}


def expand_placeholders(value: Any) -> Any:
    """Expand whole-string ${VAR} / ${VAR:default} values, recursing into dicts and lists."""
    if isinstance(value, dict):
        return {k: expand_placeholders(v) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_placeholders(item) for item in value]
    if not isinstance(value, str):
        return value

    match = PLACEHOLDER_RE.match(value)
    if match is None:
        return value

    name, default = match.group(1).strip(), match.group(2)
    resolved = os.getenv(name)
    if resolved is not None:
        return resolved
    if default is not None:
        return default.strip()

    logger.warning(f"Environment variable {name} not set, using empty string")
    return ""


def apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of config with ENV_OVERRIDES applied."""
    merged = dict(config)
    for var, (section, key, convert) in ENV_OVERRIDES.items():
        raw = os.getenv(var)
        if not raw:
            continue
        merged[section] = {**(merged.get(section) or {}), key: convert(raw)}
        logger.debug(f"{var} overrides {section}.{key}")
    return merged


class ConfigLoader:
    """Reads and caches the application configuration from a config directory."""

    def __init__(self, config_dir: Optional[Path] = None):
        self.config_dir = Path(config_dir) if config_dir else (PROJECT_ROOT / "config")
        self._config: Optional[AppConfig] = None
        logger.info(f"ConfigLoader initialized with config_dir: {self.config_dir}")

    def read_yaml(self) -> Dict[str, Any]:
        """Raw config.yaml contents with placeholders expanded ({} when the file is missing)."""
        config_path = self.config_dir / CONFIG_FILE

        if not config_path.exists():
            logger.warning(f"{config_path} not found, using defaults")
            return {}

        logger.debug(f"Loading YAML config from: {config_path}")
        with open(config_path, 'r') as f:
            return expand_placeholders(yaml.safe_load(f) or {})

    def load_app_config(self, use_cache: bool = True) -> AppConfig:
        """
        Load and validate the application configuration.

        Raises:
            pydantic.ValidationError: If a value is invalid or a key is unknown
        """
        if use_cache and self._config is not None:
            return self._config

        try:
            app_config = AppConfig(**apply_env_overrides(self.read_yaml()))
        except Exception as e:
            logger.error(f"Configuration validation failed: {e}")
            raise

        logger.info(
            f"Configuration loaded: environment={app_config.system.environment}, "
            f"pair={app_config.tokens.symbol}"
        )

        if use_cache:
            self._config = app_config
        return app_config

    def reload(self) -> AppConfig:
        """Drop the cached configuration and read it again from disk."""
        logger.info("Reloading configuration from disk")
        self._config = None
        return self.load_app_config()


_global_loader: Optional[ConfigLoader] = None


def get_config_loader() -> ConfigLoader:
    """Get or create the process-wide ConfigLoader."""
    global _global_loader
    if _global_loader is None:
        _global_loader = ConfigLoader()
    return _global_loader


def get_app_config(use_cache: bool = True) -> AppConfig:
    """Application configuration from the process-wide loader."""
    return get_config_loader().load_app_config(use_cache=use_cache)
