"""JSON-file app registry.

One ``apps.json`` document holds registered apps, pending updates,
execution history and cask fingerprints. The document is validated
against its schema on load and before every write, and is written
atomically through a ``.tmp`` file so a crash never leaves it truncated.
"""

from __future__ import annotations

import contextlib
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, cast

import orjson

from macup.config.schemas.validator import (
    SchemaValidationError,
    StateValidator,
)
from macup.constants import GLOBAL_CONFIG_VERSION
from macup.domain.models import (
    AppRecord,
    InstallSource,
    SourceKind,
    UpdateInfo,
    UpdateResult,
)
from macup.exceptions import StoreError
from macup.logger import get_logger
from macup.types import AppEntry, HistoryEntry, PendingUpdateEntry, StateFile

logger = get_logger(__name__)

MAX_HISTORY_ENTRIES = 500


def _now() -> str:
    return datetime.now(UTC).isoformat(timespec="seconds")


def _empty_state() -> StateFile:
    return StateFile(
        config_version=GLOBAL_CONFIG_VERSION,
        apps={},
        pending_updates={},
        history=[],
        fingerprints={},
    )


def app_to_entry(app: AppRecord, *, ignored: bool = False) -> AppEntry:
    """Serialize an :class:`AppRecord` for the state file."""
    entry = AppEntry(
        bundle_id=app.bundle_id,
        name=app.name,
        path=str(app.path),
        installed_version=app.installed_version,
        install_source=app.install_source.value,
        homebrew_cask_token=app.homebrew_cask_token,
        homebrew_formula_name=app.homebrew_formula_name,
        sparkle_feed_url=app.sparkle_feed_url,
        github_repo=app.github_repo,
        obtained_from=app.obtained_from,
        mas_app_id=app.mas_app_id,
    )
    if ignored:
        entry["ignored"] = True
    return entry


def entry_to_app(entry: AppEntry) -> AppRecord:
    """Build an :class:`AppRecord` from a state-file entry."""
    return AppRecord(
        bundle_id=entry["bundle_id"],
        name=entry["name"],
        path=Path(entry["path"]),
        installed_version=entry.get("installed_version"),
        install_source=InstallSource.parse(entry.get("install_source")),
        homebrew_cask_token=entry.get("homebrew_cask_token"),
        homebrew_formula_name=entry.get("homebrew_formula_name"),
        sparkle_feed_url=entry.get("sparkle_feed_url"),
        github_repo=entry.get("github_repo"),
        obtained_from=entry.get("obtained_from"),
        mas_app_id=entry.get("mas_app_id"),
    )


def update_to_entry(update: UpdateInfo) -> PendingUpdateEntry:
    """Serialize a pending update, stamping the detection time."""
    return PendingUpdateEntry(
        bundle_id=update.bundle_id,
        current_version=update.current_version,
        available_version=update.available_version,
        source=update.source.value,
        download_url=update.download_url,
        release_notes_url=update.release_notes_url,
        release_notes=update.release_notes,
        is_paid_upgrade=update.is_paid_upgrade,
        notes=update.notes,
        detected_at=_now(),
    )


def entry_to_update(entry: PendingUpdateEntry) -> UpdateInfo | None:
    """Build an :class:`UpdateInfo`, or None for an unknown source kind."""
    try:
        source = SourceKind(entry["source"])
    except ValueError:
        logger.warning(
            "Ignoring pending update for %s with unknown source '%s'",
            entry["bundle_id"],
            entry["source"],
        )
        return None
    return UpdateInfo(
        bundle_id=entry["bundle_id"],
        current_version=entry.get("current_version"),
        available_version=entry["available_version"],
        source=source,
        download_url=entry.get("download_url"),
        release_notes_url=entry.get("release_notes_url"),
        release_notes=entry.get("release_notes"),
        is_paid_upgrade=entry.get("is_paid_upgrade", False),
        notes=entry.get("notes"),
    )


def history_status(result: UpdateResult) -> str:
    """Map an executor result to its history status."""
    if not result.success:
        return "failed"
    return "delegated" if result.delegated else "completed"


class JsonAppStore:
    """App registry and fingerprint store backed by one JSON file."""

    def __init__(
        self,
        state_file: Path,
        validator: StateValidator | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            state_file: Path of apps.json (created on first write)
            validator: Schema validator (built on demand when omitted)

        """
        self.state_file = state_file
        self.validator = validator or StateValidator()
        self._state: StateFile | None = None

    @property
    def state(self) -> StateFile:
        """Return the loaded document, reading it on first access."""
        if self._state is None:
            self._state = self._load()
        return self._state

    def _load(self) -> StateFile:
        if not self.state_file.exists():
            logger.debug("No state file at %s, starting empty", self.state_file)
            return _empty_state()
        try:
            data = orjson.loads(self.state_file.read_bytes())
        except orjson.JSONDecodeError as e:
            msg = f"invalid JSON in {self.state_file}: {e}"
            raise StoreError(msg) from e
        except OSError as e:
            msg = f"cannot read {self.state_file}: {e}"
            raise StoreError(msg) from e

        try:
            self.validator.validate_state(data)
        except SchemaValidationError as e:
            msg = f"invalid state file {self.state_file}: {e}"
            raise StoreError(msg) from e
        return cast("StateFile", data)

    def save(self) -> None:
        """Validate and atomically write the document.

        Raises:
            StoreError: If the document is invalid or cannot be written

        """
        state = self.state
        try:
            self.validator.validate_state(cast("dict[str, Any]", state))
        except SchemaValidationError as e:
            msg = f"refusing to save invalid state: {e}"
            raise StoreError(msg) from e

        temp_file = self.state_file.with_suffix(".tmp")
        try:
            self.state_file.parent.mkdir(parents=True, exist_ok=True)
            temp_file.write_bytes(
                orjson.dumps(
                    state, option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS
                )
            )
            temp_file.replace(self.state_file)
        except OSError as e:
            with contextlib.suppress(OSError):
                temp_file.unlink()
            msg = f"cannot write {self.state_file}: {e}"
            raise StoreError(msg) from e

    # Apps

    def get_app(self, bundle_id: str) -> AppRecord | None:
        entry = self.state["apps"].get(bundle_id)
        return entry_to_app(entry) if entry else None

    def list_apps(self) -> list[AppRecord]:
        return [
            entry_to_app(entry)
            for _, entry in sorted(self.state["apps"].items())
            if not entry.get("ignored", False)
        ]

    def update_app(self, app: AppRecord) -> None:
        previous = self.state["apps"].get(app.bundle_id)
        ignored = bool(previous and previous.get("ignored", False))
        self.state["apps"][app.bundle_id] = app_to_entry(app, ignored=ignored)
        self.save()

    def remove_app(self, bundle_id: str) -> bool:
        """Unregister an app and drop its pending update."""
        removed = self.state["apps"].pop(bundle_id, None) is not None
        self.state["pending_updates"].pop(bundle_id, None)
        if removed:
            self.save()
        return removed

    def set_ignored(self, bundle_id: str, *, ignored: bool) -> bool:
        """Exclude an app from checks and listings, or include it again."""
        entry = self.state["apps"].get(bundle_id)
        if entry is None:
            return False
        if ignored:
            entry["ignored"] = True
        else:
            entry.pop("ignored", None)
        self.save()
        return True

    # Pending updates

    def get_pending_update(self, bundle_id: str) -> UpdateInfo | None:
        entry = self.state["pending_updates"].get(bundle_id)
        return entry_to_update(entry) if entry else None

    def list_pending_updates(self) -> list[UpdateInfo]:
        updates = (
            entry_to_update(entry)
            for _, entry in sorted(self.state["pending_updates"].items())
        )
        return [update for update in updates if update is not None]

    def save_pending_update(self, update: UpdateInfo) -> None:
        self.state["pending_updates"][update.bundle_id] = update_to_entry(
            update
        )
        self.save()

    def clear_pending_update(self, bundle_id: str) -> int:
        if self.state["pending_updates"].pop(bundle_id, None) is None:
            return 0
        self.save()
        return 1

    def clear_pending_updates_for_token(self, token: str) -> int:
        sharing = [
            bundle_id
            for bundle_id, entry in self.state["apps"].items()
            if entry.get("homebrew_cask_token") == token
            and bundle_id in self.state["pending_updates"]
        ]
        for bundle_id in sharing:
            del self.state["pending_updates"][bundle_id]
        if sharing:
            self.save()
        return len(sharing)

    # History

    def record_history_start(
        self, bundle_id: str, from_version: str | None
    ) -> int:
        history = self.state["history"]
        entry_id = history[-1]["id"] + 1 if history else 1
        history.append(
            HistoryEntry(
                id=entry_id,
                bundle_id=bundle_id,
                status="started",
                source=None,
                from_version=from_version,
                to_version=None,
                message=None,
                started_at=_now(),
                finished_at=None,
            )
        )
        if len(history) > MAX_HISTORY_ENTRIES:
            del history[: len(history) - MAX_HISTORY_ENTRIES]
        self.save()
        return entry_id

    def record_history_finish(self, entry_id: int, result: UpdateResult) -> None:
        for entry in reversed(self.state["history"]):
            if entry["id"] == entry_id:
                entry["status"] = history_status(result)
                entry["source"] = result.source.value
                entry["to_version"] = result.to_version
                entry["message"] = result.message
                entry["finished_at"] = _now()
                self.save()
                return
        logger.warning("History entry %d not found, result dropped", entry_id)

    def list_history(self, bundle_id: str | None = None) -> list[HistoryEntry]:
        """Return history entries, newest first."""
        return [
            entry
            for entry in reversed(self.state["history"])
            if bundle_id is None or entry["bundle_id"] == bundle_id
        ]

    # Fingerprints

    def get_fingerprint(self, token: str) -> str | None:
        return self.state["fingerprints"].get(token)

    def set_fingerprint(self, token: str, sha256: str) -> None:
        self.state["fingerprints"][token] = sha256
        self.save()
