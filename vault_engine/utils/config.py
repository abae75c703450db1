"""
Configuration management for the vault strategy engine.

Loads configuration from environment variables and YAML files.
"""
import os
from pathlib import Path
from typing import Any, Dict, Optional
from decimal import Decimal
import logging

import yaml
from dotenv import load_dotenv

logger = logging.getLogger('CONFIG')

DEFAULT_CONFIG_FILE = 'config/config.yaml'


class Config:
    """
    Application configuration manager.

    Loads settings from:
    1. .env file (environment variables)
    2. config/config.yaml (application config)
    3. Environment variables (override everything)

    Environment overrides for nested keys use upper-case, underscore-joined
    names: `engine.risk.max_drawdown_bps` is overridden by
    `ENGINE_RISK_MAX_DRAWDOWN_BPS`.

    Example:
        config = Config()
        drawdown = config.get_int('engine.risk.max_drawdown_bps', 1000)
        level = config.log_level
    """

    def __init__(self, env_file: str = '.env', config_file: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            env_file: Path to .env file
            config_file: Path to config YAML file (defaults to config/config.yaml)
        """
        load_dotenv(env_file)

        if config_file is None:
            config_file = os.getenv('VAULT_ENGINE_CONFIG', DEFAULT_CONFIG_FILE)

        self.config_file = config_file
        self._config = self._load_yaml(config_file)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        """Build a Config around an in-memory dictionary (no file access)."""
        config = cls.__new__(cls)
        config.config_file = None
        config._config = data
        return config

    def _load_yaml(self, config_file: str) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        config_path = Path(config_file)

        if not config_path.exists():
            example_path = Path(f"{config_file}.example")
            if example_path.exists():
                logger.warning(
                    f"{config_file} not found, using {config_file}.example. "
                    f"Please copy to {config_file} and customize."
                )
                config_path = example_path
            else:
                logger.warning(f"No config file found at {config_file}, using defaults")
                return {}

        with open(config_path, 'r') as f:
            return yaml.safe_load(f) or {}

    @staticmethod
    def _env_key(key: str) -> str:
        return key.replace('.', '_').upper()

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value.

        Checks in order:
        1. Environment variable
        2. YAML config (dotted keys walk nested mappings)
        3. Default value
        """
        env_value = os.getenv(self._env_key(key))
        if env_value is not None:
            return env_value

        value = self._config
        for part in key.split('.'):
            if isinstance(value, dict) and part in value:
                value = value[part]
            else:
                return default

        return value if value is not self._config else default

    def get_section(self, key: str) -> Dict[str, Any]:
        """
        Get a nested mapping with environment overrides applied to its leaves.

        Returns an empty dict when the section is missing.
        """
        section = self.get(key, {})
        if not isinstance(section, dict):
            return {}
        return self._apply_env_overrides(key, section)

    def _apply_env_overrides(self, prefix: str, section: Dict[str, Any]) -> Dict[str, Any]:
        resolved: Dict[str, Any] = {}
        for name, value in section.items():
            dotted = f"{prefix}.{name}"
            if isinstance(value, dict):
                resolved[name] = self._apply_env_overrides(dotted, value)
            else:
                env_value = os.getenv(self._env_key(dotted))
                resolved[name] = env_value if env_value is not None else value
        return resolved

    def get_decimal(self, key: str, default: Decimal = Decimal('0')) -> Decimal:
        """Get configuration value as Decimal."""
        value = self.get(key)
        if value is None:
            return default
        return Decimal(str(value))

    def get_int(self, key: str, default: int = 0) -> int:
        """Get configuration value as integer."""
        value = self.get(key)
        if value is None:
            return default
        return int(value)

    def get_bool(self, key: str, default: bool = False) -> bool:
        """Get configuration value as boolean."""
        value = self.get(key)
        if value is None:
            return default

        if isinstance(value, bool):
            return value

        if isinstance(value, str):
            return value.lower() in ('true', '1', 'yes', 'on')

        return bool(value)

    @property
    def log_level(self) -> str:
        """Get log level."""
        return self.get('LOG_LEVEL', self.get('logging.level', 'INFO'))

    @property
    def snapshot_file(self) -> Path:
        """Path of the persisted monitoring snapshot."""
        return Path(self.get('monitoring.snapshot_file', 'state/engine_snapshot.json'))

    @property
    def environment(self) -> str:
        """Get environment (development, staging, production)."""
        return self.get('ENV', 'development')

    @property
    def is_production(self) -> bool:
        return self.environment == 'production'


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """
    Get global configuration instance.

    Creates singleton Config instance on first call.
    """
    global _config
    if _config is None:
        _config = Config()
    return _config


def reload_config(config_file: Optional[str] = None) -> Config:
    """Reload configuration (useful for testing)."""
    global _config
    _config = Config(config_file=config_file)
    return _config
