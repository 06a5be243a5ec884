"""Configuration management.

This package provides:
- ConfigManager: Facade over the INI settings file
- GlobalConfigManager: INI configuration management (from settings.py)
- Paths: Path constants and utilities (from paths.py)
"""

from macup.config.config import ConfigManager
from macup.config.paths import Paths
from macup.config.settings import GlobalConfigManager
from macup.types import GlobalConfig

__all__ = [
    "ConfigManager",
    "GlobalConfig",
    "GlobalConfigManager",
    "Paths",
]
