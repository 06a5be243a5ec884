"""Global configuration manager for INI settings."""

import configparser
from pathlib import Path

from macup.config.paths import Paths
from macup.constants import (
    DEFAULT_CASK_INDEX_TTL_HOURS,
    DEFAULT_CONNECT_TIMEOUT_SECONDS,
    DEFAULT_CONSOLE_LOG_LEVEL,
    DEFAULT_ETAG_SAVE_TIMEOUT_SECONDS,
    DEFAULT_KEEPALIVE_SECONDS,
    DEFAULT_LOG_LEVEL,
    DEFAULT_MAX_CONCURRENT_CHECKS,
    DEFAULT_MAX_CONCURRENT_UPDATES,
    DEFAULT_TIMEOUT_SECONDS,
    DIRECTORY_KEYS,
    GLOBAL_CONFIG_VERSION,
    SECTION_CACHE,
    SECTION_DEFAULT,
    SECTION_DIRECTORY,
    SECTION_ELEVATION,
    SECTION_NETWORK,
)
from macup.logger import get_logger
from macup.types import (
    CacheConfig,
    DirectoryConfig,
    ElevationConfig,
    GlobalConfig,
    NetworkConfig,
)

logger = get_logger(__name__)

# Raw INI values: flat DEFAULT keys plus one dict per section
RawConfigDict = dict[str, str | dict[str, str]]

_FILE_HEADER = (
    "# macup settings\n"
    "# Values are re-read on every run; delete a key to restore its default.\n"
)

_SECTION_COMMENTS: dict[str, str] = {
    SECTION_DEFAULT: "\n# General behaviour\n",
    SECTION_NETWORK: "\n# HTTP timeouts (seconds)\n",
    SECTION_CACHE: "\n# Cask index lifetime and cache persistence\n",
    SECTION_ELEVATION: (
        "\n# Administrator prompts. An empty askpass_path uses the bundled "
        "helper.\n"
    ),
    SECTION_DIRECTORY: "\n# Where macup keeps its files\n",
}


class GlobalConfigManager:
    """Manages global INI configuration."""

    def __init__(self, config_dir: Path | None = None) -> None:
        """Initialize global config manager.

        Args:
            config_dir: Configuration directory path
                (defaults to Paths.CONFIG_DIR)

        """
        self.config_dir = config_dir or Paths.CONFIG_DIR
        self.settings_file = self.config_dir / "settings.conf"

    def get_default_global_config(self) -> RawConfigDict:
        """Get default global configuration values.

        Returns:
            Default configuration dictionary

        """
        return {
            "config_version": GLOBAL_CONFIG_VERSION,
            "log_level": DEFAULT_LOG_LEVEL,
            "console_log_level": DEFAULT_CONSOLE_LOG_LEVEL,
            "max_concurrent_checks": str(DEFAULT_MAX_CONCURRENT_CHECKS),
            "max_concurrent_updates": str(DEFAULT_MAX_CONCURRENT_UPDATES),
            SECTION_NETWORK: {
                "timeout_seconds": str(DEFAULT_TIMEOUT_SECONDS),
                "connect_timeout_seconds": str(
                    DEFAULT_CONNECT_TIMEOUT_SECONDS
                ),
            },
            SECTION_CACHE: {
                "cask_index_ttl_hours": str(DEFAULT_CASK_INDEX_TTL_HOURS),
                "etag_save_timeout_seconds": str(
                    DEFAULT_ETAG_SAVE_TIMEOUT_SECONDS
                ),
            },
            SECTION_ELEVATION: {
                "askpass_path": "",
                "keepalive_seconds": str(DEFAULT_KEEPALIVE_SECONDS),
            },
            SECTION_DIRECTORY: {
                "settings": str(self.config_dir),
                "logs": str(self.config_dir / "logs"),
                "cache": str(self.config_dir / "cache"),
                "state": str(self.config_dir / "state"),
            },
        }

    def _create_config_from_defaults(
        self, defaults: RawConfigDict
    ) -> configparser.ConfigParser:
        """Create ConfigParser from defaults dictionary.

        Args:
            defaults: Default configuration values

        Returns:
            ConfigParser populated with defaults

        """
        config = configparser.ConfigParser(
            inline_comment_prefixes=("#", ";"),
            interpolation=None,
        )
        flat_defaults = {
            key: str(value)
            for key, value in defaults.items()
            if not isinstance(value, dict)
        }
        config.read_dict({SECTION_DEFAULT: flat_defaults})

        for key, value in defaults.items():
            if isinstance(value, dict):
                config.add_section(key)
                for subkey, subvalue in value.items():
                    config.set(key, subkey, str(subvalue))

        return config

    def load_global_config(self) -> GlobalConfig:
        """Load global configuration, writing defaults on first run.

        Returns:
            Loaded global configuration

        """
        defaults = self.get_default_global_config()
        config = self._create_config_from_defaults(defaults)

        if self.settings_file.exists():
            try:
                config.read(self.settings_file, encoding="utf-8")
            except configparser.Error as e:
                logger.warning(
                    "Ignoring unreadable settings file %s: %s",
                    self.settings_file,
                    e,
                )
                config = self._create_config_from_defaults(defaults)
        else:
            self.save_global_config(self._convert_to_global_config(config))

        return self._convert_to_global_config(config)

    def save_global_config(self, config: GlobalConfig) -> None:
        """Write ``config`` to settings.conf with section comments.

        Args:
            config: Global configuration to save

        """
        self.config_dir.mkdir(parents=True, exist_ok=True)
        sections: list[tuple[str, dict[str, str]]] = [
            (
                SECTION_DEFAULT,
                {
                    "config_version": config["config_version"],
                    "log_level": config["log_level"],
                    "console_log_level": config["console_log_level"],
                    "max_concurrent_checks": str(
                        config["max_concurrent_checks"]
                    ),
                    "max_concurrent_updates": str(
                        config["max_concurrent_updates"]
                    ),
                },
            ),
            (
                SECTION_NETWORK,
                {k: str(v) for k, v in config["network"].items()},
            ),
            (SECTION_CACHE, {k: str(v) for k, v in config["cache"].items()}),
            (
                SECTION_ELEVATION,
                {k: str(v) for k, v in config["elevation"].items()},
            ),
            (
                SECTION_DIRECTORY,
                {k: str(v) for k, v in config["directory"].items()},
            ),
        ]

        with self.settings_file.open("w", encoding="utf-8") as f:
            f.write(_FILE_HEADER)
            for section, values in sections:
                f.write(_SECTION_COMMENTS[section])
                f.write(f"[{section}]\n")
                for key, value in values.items():
                    f.write(f"{key} = {value}\n")

    def _convert_to_global_config(
        self, config: configparser.ConfigParser
    ) -> GlobalConfig:
        """Convert a populated parser into a typed GlobalConfig.

        Invalid integers fall back to their defaults with a warning rather
        than aborting startup.

        Args:
            config: Parser holding defaults overlaid with user values

        Returns:
            Typed global configuration

        """

        def get_int(section: str, key: str, default: int) -> int:
            try:
                return config.getint(section, key, fallback=default)
            except ValueError:
                logger.warning(
                    "Invalid integer for %s.%s, using %s", section, key, default
                )
                return default

        defaults = config.defaults()
        directory: dict[str, Path] = {}
        for key in DIRECTORY_KEYS:
            raw = config.get(SECTION_DIRECTORY, key, raw=True, fallback="")
            directory[key] = (
                Paths.expand_path(raw) if raw else self.config_dir / key
            )

        return GlobalConfig(
            config_version=defaults.get(
                "config_version", GLOBAL_CONFIG_VERSION
            ),
            log_level=defaults.get("log_level", DEFAULT_LOG_LEVEL).upper(),
            console_log_level=defaults.get(
                "console_log_level", DEFAULT_CONSOLE_LOG_LEVEL
            ).upper(),
            max_concurrent_checks=max(
                1,
                get_int(
                    SECTION_DEFAULT,
                    "max_concurrent_checks",
                    DEFAULT_MAX_CONCURRENT_CHECKS,
                ),
            ),
            max_concurrent_updates=max(
                1,
                get_int(
                    SECTION_DEFAULT,
                    "max_concurrent_updates",
                    DEFAULT_MAX_CONCURRENT_UPDATES,
                ),
            ),
            network=NetworkConfig(
                timeout_seconds=get_int(
                    SECTION_NETWORK, "timeout_seconds", DEFAULT_TIMEOUT_SECONDS
                ),
                connect_timeout_seconds=get_int(
                    SECTION_NETWORK,
                    "connect_timeout_seconds",
                    DEFAULT_CONNECT_TIMEOUT_SECONDS,
                ),
            ),
            cache=CacheConfig(
                cask_index_ttl_hours=get_int(
                    SECTION_CACHE,
                    "cask_index_ttl_hours",
                    DEFAULT_CASK_INDEX_TTL_HOURS,
                ),
                etag_save_timeout_seconds=get_int(
                    SECTION_CACHE,
                    "etag_save_timeout_seconds",
                    DEFAULT_ETAG_SAVE_TIMEOUT_SECONDS,
                ),
            ),
            elevation=ElevationConfig(
                askpass_path=config.get(
                    SECTION_ELEVATION, "askpass_path", raw=True, fallback=""
                ).strip(),
                keepalive_seconds=get_int(
                    SECTION_ELEVATION,
                    "keepalive_seconds",
                    DEFAULT_KEEPALIVE_SECONDS,
                ),
            ),
            directory=DirectoryConfig(
                settings=directory["settings"],
                logs=directory["logs"],
                cache=directory["cache"],
                state=directory["state"],
            ),
        )
