"""Configuration manager for loading and merging configs."""

import logging
from pathlib import Path
from typing import Any

import toml
from pydantic import ValidationError

from oversight.config.schema import OversightConfig, get_config_file
from oversight.errors import ConfigurationError

logger = logging.getLogger(__name__)

PROJECT_CONFIG_NAME = ".oversight.toml"


class ConfigManager:
    """Manages configuration loading, merging, and access."""

    _instance: "ConfigManager | None" = None
    _config: OversightConfig | None = None

    def __new__(cls) -> "ConfigManager":
        """Singleton pattern for config manager."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @classmethod
    def get_config(cls) -> OversightConfig:
        """Get the current configuration, loading if necessary."""
        if cls._config is None:
            cls._config = cls.load_config()
        return cls._config

    @classmethod
    def load_config(cls) -> OversightConfig:
        """Load configuration from all sources.

        Priority (highest to lowest):
        1. Project-level config (.oversight.toml in cwd or parents)
        2. User config (~/.config/oversight/config.toml)
        3. Default config
        """
        config_dict: dict[str, Any] = {}

        user_config_file = get_config_file()
        if user_config_file.exists():
            config_dict = cls._deep_merge(config_dict, cls._read_toml(user_config_file))

        project_config_file = cls._find_project_config()
        if project_config_file and project_config_file.exists():
            config_dict = cls._deep_merge(config_dict, cls._read_toml(project_config_file))

        if not config_dict:
            return OversightConfig.default()

        try:
            return OversightConfig.model_validate(config_dict)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    @classmethod
    def reload(cls) -> OversightConfig:
        """Force reload configuration from disk."""
        cls._config = cls.load_config()
        return cls._config

    @classmethod
    def reset(cls) -> None:
        """Drop the cached configuration."""
        cls._config = None

    @classmethod
    def _read_toml(cls, path: Path) -> dict[str, Any]:
        try:
            return toml.load(path)
        except toml.TomlDecodeError as e:
            raise ConfigurationError(f"Could not parse {path}: {e}") from e

    @classmethod
    def _find_project_config(cls) -> Path | None:
        """Find project-level config file by searching up from cwd."""
        cwd = Path.cwd()
        for parent in [cwd, *cwd.parents]:
            config_file = parent / PROJECT_CONFIG_NAME
            if config_file.exists():
                return config_file
            # Stop at home directory
            if parent == Path.home():
                break
        return None

    @classmethod
    def _deep_merge(
        cls, base: dict[str, Any], override: dict[str, Any]
    ) -> dict[str, Any]:
        """Deep merge two dictionaries, with override taking precedence."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = cls._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    @classmethod
    def save_user_config(cls, config: OversightConfig) -> None:
        """Save configuration to user config file."""
        config_file = get_config_file()
        config_dict = config.model_dump(by_alias=True, exclude_none=True)
        with open(config_file, "w") as f:
            toml.dump(config_dict, f)
        logger.info("Saved configuration to %s", config_file)

    @classmethod
    def get_value(cls, key_path: str, default: Any = None) -> Any:
        """Get a configuration value by dot-separated path.

        Example: get_value("verification.mode")
        """
        config = cls.get_config()
        config_dict = config.model_dump(by_alias=True)

        keys = key_path.split(".")
        current = config_dict
        for key in keys:
            if isinstance(current, dict) and key in current:
                current = current[key]
            else:
                return default
        return current
