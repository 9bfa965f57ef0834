"""Configuration management."""

from oversight.config.manager import ConfigManager
from oversight.config.schema import OversightConfig

__all__ = ["ConfigManager", "OversightConfig"]
