"""Typed dictionaries for configuration and persisted state."""

from pathlib import Path
from typing import NotRequired, TypedDict


class NetworkConfig(TypedDict):
    """Network configuration options."""

    timeout_seconds: int
    connect_timeout_seconds: int


class CacheConfig(TypedDict):
    """Cache lifetimes and persistence bounds."""

    cask_index_ttl_hours: int
    etag_save_timeout_seconds: int


class ElevationConfig(TypedDict):
    """Privilege escalation settings."""

    askpass_path: str
    keepalive_seconds: int


class DirectoryConfig(TypedDict):
    """Directory configuration options."""

    settings: Path
    logs: Path
    cache: Path
    state: Path


class GlobalConfig(TypedDict):
    """Global application configuration loaded from settings.conf."""

    config_version: str
    log_level: str
    console_log_level: str
    max_concurrent_checks: int
    max_concurrent_updates: int
    network: NetworkConfig
    cache: CacheConfig
    elevation: ElevationConfig
    directory: DirectoryConfig


class AppEntry(TypedDict):
    """One registered application in the state file."""

    bundle_id: str
    name: str
    path: str
    installed_version: NotRequired[str | None]
    install_source: NotRequired[str]
    homebrew_cask_token: NotRequired[str | None]
    homebrew_formula_name: NotRequired[str | None]
    sparkle_feed_url: NotRequired[str | None]
    github_repo: NotRequired[str | None]
    obtained_from: NotRequired[str | None]
    mas_app_id: NotRequired[str | None]
    ignored: NotRequired[bool]


class PendingUpdateEntry(TypedDict):
    """A confirmed update awaiting installation."""

    bundle_id: str
    current_version: str | None
    available_version: str
    source: str
    download_url: NotRequired[str | None]
    release_notes_url: NotRequired[str | None]
    release_notes: NotRequired[str | None]
    is_paid_upgrade: NotRequired[bool]
    notes: NotRequired[str | None]
    detected_at: str


class HistoryEntry(TypedDict):
    """One execution-history record."""

    id: int
    bundle_id: str
    status: str
    source: str | None
    from_version: str | None
    to_version: str | None
    message: str | None
    started_at: str
    finished_at: str | None


class StateFile(TypedDict):
    """Top-level layout of apps.json."""

    config_version: str
    apps: dict[str, AppEntry]
    pending_updates: dict[str, PendingUpdateEntry]
    history: list[HistoryEntry]
    fingerprints: dict[str, str]
