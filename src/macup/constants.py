"""Application-wide constants for macup.

Values that are shared across several packages live here so the logger,
config and core layers agree on names, limits and well-known endpoints.
"""

from typing import Final

APP_NAME: Final[str] = "macup"
USER_AGENT: Final[str] = "macup/1.0"

# Paths
DEFAULT_CONFIG_SUBDIR: Final[str] = ".config"
CONFIG_DIR_NAME: Final[str] = "macup"
CONFIG_FILE_NAME: Final[str] = "settings.conf"
STATE_FILE_NAME: Final[str] = "apps.json"
ETAG_CACHE_FILE_NAME: Final[str] = "github_etag_cache.json"
CASK_INDEX_FILE_NAME: Final[str] = "cask_index.json"
ASKPASS_FILE_NAME: Final[str] = "askpass.sh"

# Config file
GLOBAL_CONFIG_VERSION: Final[str] = "1.0.0"
SECTION_DEFAULT: Final[str] = "DEFAULT"
SECTION_NETWORK: Final[str] = "network"
SECTION_CACHE: Final[str] = "cache"
SECTION_ELEVATION: Final[str] = "elevation"
SECTION_DIRECTORY: Final[str] = "directory"
DIRECTORY_KEYS: Final[tuple[str, ...]] = ("settings", "logs", "cache", "state")

DEFAULT_LOG_LEVEL: Final[str] = "INFO"
DEFAULT_CONSOLE_LOG_LEVEL: Final[str] = "WARNING"
DEFAULT_MAX_CONCURRENT_CHECKS: Final[int] = 10
DEFAULT_MAX_CONCURRENT_UPDATES: Final[int] = 4
DEFAULT_TIMEOUT_SECONDS: Final[int] = 15
DEFAULT_CONNECT_TIMEOUT_SECONDS: Final[int] = 10
DEFAULT_CASK_INDEX_TTL_HOURS: Final[int] = 6
DEFAULT_ETAG_SAVE_TIMEOUT_SECONDS: Final[int] = 5
DEFAULT_KEEPALIVE_SECONDS: Final[int] = 240

# Logging
LOG_COLORS: Final[dict[str, str]] = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
    "RESET": "\033[0m",
}
LOG_CONSOLE_FORMAT: Final[str] = (
    "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
LOG_CONSOLE_DATE_FORMAT: Final[str] = "%H:%M:%S"
LOG_FILE_FORMAT: Final[str] = (
    "%(asctime)s - %(name)s - %(levelname)s - "
    "[%(funcName)s:%(lineno)d] - %(message)s"
)
LOG_FILE_DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"
LOG_ROTATION_THRESHOLD_BYTES: Final[int] = 10 * 1024 * 1024
LOG_BACKUP_COUNT: Final[int] = 3

# Release notes
MAX_RELEASE_NOTES_CHARS: Final[int] = 2000

# Remote endpoints
CASK_INDEX_URL: Final[str] = "https://formulae.brew.sh/api/cask.json"
CASK_SOURCE_URL: Final[str] = (
    "https://raw.githubusercontent.com/Homebrew/homebrew-cask/master/Casks"
)
GITHUB_API_URL: Final[str] = "https://api.github.com"
ITUNES_LOOKUP_URL: Final[str] = "https://itunes.apple.com/lookup"
MOZILLA_PRODUCT_DETAILS_URL: Final[str] = (
    "https://product-details.mozilla.org/1.0"
)
CHROMIUM_DASH_URL: Final[str] = (
    "https://chromiumdash.appspot.com/fetch_releases"
)
MACADMINS_OFFICE_FEED_URL: Final[str] = "https://macadmins.software/latest.xml"
JETBRAINS_RELEASES_URL: Final[str] = (
    "https://data.services.jetbrains.com/products/releases"
)

# External tools
BREW_CANDIDATE_PATHS: Final[tuple[str, ...]] = (
    "/opt/homebrew/bin/brew",
    "/usr/local/bin/brew",
)
MAS_CANDIDATE_PATHS: Final[tuple[str, ...]] = (
    "/opt/homebrew/bin/mas",
    "/usr/local/bin/mas",
)
MSUPDATE_PATH: Final[str] = (
    "/Library/Application Support/Microsoft/MAU2.0/"
    "Microsoft AutoUpdate.app/Contents/MacOS/msupdate"
)
ADOBE_RUM_PATH: Final[str] = "/usr/local/bin/RemoteUpdateManager"
SUBPROCESS_CWD: Final[str] = "/tmp"  # noqa: S108

# Cask entries that are never reported as outdated
BREW_OUTDATED_BLOCKLIST: Final[frozenset[str]] = frozenset({"toolreleases"})
UNVERSIONED_SENTINEL: Final[str] = "latest"
