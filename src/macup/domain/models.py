"""Domain types for update checking and execution.

These are pure data carriers with no I/O. Everything a checker or
executor returns is immutable; per-cycle context is built once and shared
by reference across concurrently running checkers.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from macup.core.cache.cask_index import CaskIndex
    from macup.core.cache.fingerprint import FingerprintChecker
    from macup.core.github import GitHubReleaseClient


class SourceKind(Enum):
    """Update ecosystem that produced or will apply an update."""

    SPARKLE = "sparkle"
    HOMEBREW = "homebrew"
    HOMEBREW_API = "homebrew_api"
    HOMEBREW_FORMULA = "homebrew_formula"
    MAS = "mas"
    MOZILLA = "mozilla"
    GITHUB = "github"
    ELECTRON = "electron"
    KEYSTONE = "keystone"
    MICROSOFT = "microsoft"
    JETBRAINS = "jetbrains"
    ADOBE_CC = "adobe_cc"
    DIRECT = "direct"
    DELEGATED = "delegated"

    @property
    def is_local(self) -> bool:
        """Return True for sources backed only by pre-fetched local data."""
        return self in _LOCAL_SOURCES


_LOCAL_SOURCES = frozenset(
    {SourceKind.HOMEBREW, SourceKind.HOMEBREW_API, SourceKind.HOMEBREW_FORMULA}
)


class InstallSource(Enum):
    """How an application was originally installed."""

    MAS = "mas"
    HOMEBREW = "homebrew"
    HOMEBREW_FORMULA = "homebrew_formula"
    DIRECT = "direct"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | None) -> InstallSource:
        """Parse a stored provenance string, defaulting to UNKNOWN."""
        try:
            return cls(value) if value else cls.UNKNOWN
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class AppRecord:
    """What the app registry knows about one installed application."""

    bundle_id: str
    name: str
    path: Path
    installed_version: str | None = None
    install_source: InstallSource = InstallSource.UNKNOWN
    homebrew_cask_token: str | None = None
    homebrew_formula_name: str | None = None
    sparkle_feed_url: str | None = None
    github_repo: str | None = None
    obtained_from: str | None = None
    mas_app_id: str | None = None

    def with_version(self, version: str | None) -> AppRecord:
        """Return a copy carrying ``version`` as the installed version."""
        return replace(self, installed_version=version)


@dataclass(frozen=True)
class UpdateInfo:
    """A confirmed newer version for one application."""

    bundle_id: str
    current_version: str | None
    available_version: str
    source: SourceKind
    download_url: str | None = None
    release_notes_url: str | None = None
    release_notes: str | None = None
    is_paid_upgrade: bool = False
    notes: str | None = None


@dataclass(frozen=True)
class UpdateResult:
    """Outcome of one executor invocation."""

    bundle_id: str
    success: bool
    message: str | None
    source: SourceKind
    from_version: str | None = None
    to_version: str | None = None
    handled_relaunch: bool = False
    delegated: bool = False

    @classmethod
    def failed(
        cls, bundle_id: str, source: SourceKind, message: str
    ) -> UpdateResult:
        """Build a terminal failure result."""
        return cls(
            bundle_id=bundle_id, success=False, message=message, source=source
        )

    @classmethod
    def delegated_to(
        cls, bundle_id: str, source: SourceKind, message: str
    ) -> UpdateResult:
        """Build a hand-off result that was not independently verified."""
        return cls(
            bundle_id=bundle_id,
            success=True,
            message=message,
            source=source,
            delegated=True,
        )


@dataclass(frozen=True)
class BrewOutdatedCask:
    """One entry of ``brew outdated --cask --json=v2``."""

    current_version: str
    installed_versions: str


@dataclass(frozen=True)
class BrewOutdatedFormula:
    """One entry of ``brew outdated --formula --json=v2``."""

    current_version: str
    installed_version: str


@dataclass(frozen=True)
class CaskVersionInfo:
    """Version data for one cask in the source index."""

    token: str
    version: str
    url: str | None = None
    sha256: str | None = None


def _frozen(mapping: Mapping[str, Any] | None) -> Mapping[str, Any]:
    # Proxies built once per cycle are shared as-is across every app
    if isinstance(mapping, MappingProxyType):
        return mapping
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class CheckContext:
    """Per-app view of the cycle's pre-fetched data.

    Built once per app per cycle and never mutated. The mapping fields are
    read-only proxies so a checker cannot alter what its siblings see.
    """

    install_source: InstallSource = InstallSource.UNKNOWN
    homebrew_cask_token: str | None = None
    homebrew_formula_name: str | None = None
    sparkle_feed_url: str | None = None
    obtained_from: str | None = None
    github_repo: str | None = None
    brew_outdated: Mapping[str, BrewOutdatedCask] | None = None
    brew_outdated_formulae: Mapping[str, BrewOutdatedFormula] | None = None
    cask_index: CaskIndex | None = None
    xcode_clt_installed: bool = True
    fingerprints: FingerprintChecker | None = None
    github: GitHubReleaseClient | None = None

    def __post_init__(self) -> None:
        """Wrap mapping fields in read-only proxies."""
        if self.brew_outdated is not None:
            object.__setattr__(
                self, "brew_outdated", _frozen(self.brew_outdated)
            )
        if self.brew_outdated_formulae is not None:
            object.__setattr__(
                self,
                "brew_outdated_formulae",
                _frozen(self.brew_outdated_formulae),
            )


@dataclass(frozen=True)
class CheckerDiagnostic:
    """Per-checker outcome reported by ``Dispatcher.debug_check``."""

    source: SourceKind
    can_check: bool
    result: str


@dataclass(frozen=True)
class CycleSummary:
    """Counts published at the end of a check cycle."""

    apps_checked: int
    updates_found: int
    purged: int = 0
