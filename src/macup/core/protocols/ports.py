"""Ports the update engine requires from its collaborators.

The engine never touches storage directly. Persistence and bundle reads
are reached through these protocols so tests can swap in fakes.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from macup.domain.models import AppRecord, UpdateInfo, UpdateResult


@runtime_checkable
class FingerprintStore(Protocol):
    """Last-seen content hash per package token."""

    def get_fingerprint(self, token: str) -> str | None:
        """Return the stored hash for ``token``, if any."""
        ...

    def set_fingerprint(self, token: str, sha256: str) -> None:
        """Record ``sha256`` as the last-seen hash for ``token``."""
        ...


@runtime_checkable
class AppRegistry(Protocol):
    """Read and write access to registered applications."""

    def get_app(self, bundle_id: str) -> AppRecord | None:
        """Return one app, or None if it is not registered."""
        ...

    def list_apps(self) -> Sequence[AppRecord]:
        """Return every registered, non-ignored app."""
        ...

    def update_app(self, app: AppRecord) -> None:
        """Insert or replace one app record."""
        ...

    def get_pending_update(self, bundle_id: str) -> UpdateInfo | None:
        """Return the pending update for ``bundle_id``, if any."""
        ...

    def list_pending_updates(self) -> Sequence[UpdateInfo]:
        """Return every pending update."""
        ...

    def save_pending_update(self, update: UpdateInfo) -> None:
        """Upsert a confirmed update keyed by bundle id."""
        ...

    def clear_pending_update(self, bundle_id: str) -> int:
        """Drop the pending update for ``bundle_id``; return count removed."""
        ...

    def clear_pending_updates_for_token(self, token: str) -> int:
        """Drop pending updates of every app sharing a package token."""
        ...

    def record_history_start(
        self, bundle_id: str, from_version: str | None
    ) -> int:
        """Open a history entry and return its id."""
        ...

    def record_history_finish(self, entry_id: int, result: UpdateResult) -> None:
        """Close a history entry with the executor's result."""
        ...


@runtime_checkable
class BundleReader(Protocol):
    """Reads the on-disk installed version of an application."""

    async def read_version(self, app_path: Path) -> str | None:
        """Return the version in the bundle at ``app_path``."""
        ...
