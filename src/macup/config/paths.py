"""Path constants and utilities for macup configuration."""

from pathlib import Path

from macup.constants import (
    ASKPASS_FILE_NAME,
    CASK_INDEX_FILE_NAME,
    CONFIG_DIR_NAME,
    CONFIG_FILE_NAME,
    DEFAULT_CONFIG_SUBDIR,
    ETAG_CACHE_FILE_NAME,
    STATE_FILE_NAME,
)


class Paths:
    """Application paths and directory structure."""

    HOME_DIR = Path.home()
    CONFIG_BASE_DIR = HOME_DIR / DEFAULT_CONFIG_SUBDIR
    CONFIG_DIR = CONFIG_BASE_DIR / CONFIG_DIR_NAME

    CACHE_DIR = CONFIG_DIR / "cache"
    LOGS_DIR = CONFIG_DIR / "logs"
    STATE_DIR = CONFIG_DIR / "state"

    GLOBAL_CONFIG_FILE = CONFIG_DIR / CONFIG_FILE_NAME

    @classmethod
    def state_file(cls, state_dir: Path | None = None) -> Path:
        """Return the app registry file inside ``state_dir``."""
        return (state_dir or cls.STATE_DIR) / STATE_FILE_NAME

    @classmethod
    def etag_cache_file(cls, cache_dir: Path | None = None) -> Path:
        """Return the persisted GitHub ETag cache file."""
        return (cache_dir or cls.CACHE_DIR) / ETAG_CACHE_FILE_NAME

    @classmethod
    def cask_index_file(cls, cache_dir: Path | None = None) -> Path:
        """Return the persisted cask index snapshot."""
        return (cache_dir or cls.CACHE_DIR) / CASK_INDEX_FILE_NAME

    @classmethod
    def askpass_file(cls, config_dir: Path | None = None) -> Path:
        """Return the location of the generated askpass helper."""
        return (config_dir or cls.CONFIG_DIR) / ASKPASS_FILE_NAME

    @classmethod
    def expand_path(cls, path_str: str) -> Path:
        """Expand ``~`` and resolve a path string.

        Example:
            >>> Paths.expand_path("~/Library")
            Path('/Users/user/Library')
        """
        return Path(path_str).expanduser().resolve(strict=False)
