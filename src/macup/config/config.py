"""Configuration facade used by the CLI composition root."""

from pathlib import Path

from macup.config.settings import GlobalConfigManager
from macup.types import GlobalConfig


class ConfigManager:
    """Single entry point for configuration access.

    Wraps :class:`GlobalConfigManager` and memoises the loaded config so
    repeated lookups during one run do not re-read settings.conf.
    """

    def __init__(self, config_dir: Path | None = None) -> None:
        """Initialize the facade.

        Args:
            config_dir: Optional override of the configuration directory

        """
        self.global_config_manager = GlobalConfigManager(config_dir)
        self._cached: GlobalConfig | None = None

    @property
    def config_dir(self) -> Path:
        """Return the configuration directory."""
        return self.global_config_manager.config_dir

    def load_global_config(self, *, refresh: bool = False) -> GlobalConfig:
        """Return the global config, reading settings.conf at most once.

        Args:
            refresh: Force a re-read from disk

        Returns:
            Loaded global configuration

        """
        if self._cached is None or refresh:
            self._cached = self.global_config_manager.load_global_config()
        return self._cached

    def save_global_config(self, config: GlobalConfig) -> None:
        """Persist ``config`` and update the memoised copy."""
        self.global_config_manager.save_global_config(config)
        self._cached = config
