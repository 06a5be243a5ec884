"""Pytest configuration and shared fixtures for macup tests.

Fixtures defined here are available to every test module:

- log propagation so ``caplog`` sees macup loggers
- an in-memory app registry implementing the persistence ports
- a progress reporter that records every event
- a bundle reader with scripted on-disk versions
"""

import logging
from collections.abc import Iterable, Sequence
from pathlib import Path

import pytest

from macup.domain.models import (
    AppRecord,
    InstallSource,
    UpdateInfo,
    UpdateResult,
)


@pytest.fixture(autouse=True)
def enable_log_propagation(tmp_path, monkeypatch):
    """Let caplog capture macup logs and keep log files out of $HOME."""
    monkeypatch.setenv("MACUP_LOG_DIR", str(tmp_path / "logs"))
    original_propagation = {}
    for name in list(logging.Logger.manager.loggerDict.keys()):
        if name.startswith("macup"):
            logger = logging.getLogger(name)
            original_propagation[name] = logger.propagate
            logger.propagate = True

    yield

    for name, propagate_value in original_propagation.items():
        logging.getLogger(name).propagate = propagate_value


# =============================================================================
# Fakes
# =============================================================================


class InMemoryRegistry:
    """AppRegistry and FingerprintStore kept in plain dicts."""

    def __init__(self, apps: Iterable[AppRecord] = ()) -> None:
        self.apps: dict[str, AppRecord] = {a.bundle_id: a for a in apps}
        self.pending: dict[str, UpdateInfo] = {}
        self.history: list[dict] = []
        self.fingerprints: dict[str, str] = {}

    def get_app(self, bundle_id: str) -> AppRecord | None:
        return self.apps.get(bundle_id)

    def list_apps(self) -> Sequence[AppRecord]:
        return list(self.apps.values())

    def update_app(self, app: AppRecord) -> None:
        self.apps[app.bundle_id] = app

    def get_pending_update(self, bundle_id: str) -> UpdateInfo | None:
        return self.pending.get(bundle_id)

    def list_pending_updates(self) -> Sequence[UpdateInfo]:
        return list(self.pending.values())

    def save_pending_update(self, update: UpdateInfo) -> None:
        self.pending[update.bundle_id] = update

    def clear_pending_update(self, bundle_id: str) -> int:
        return 1 if self.pending.pop(bundle_id, None) else 0

    def clear_pending_updates_for_token(self, token: str) -> int:
        sharing = [
            bid
            for bid, app in self.apps.items()
            if app.homebrew_cask_token == token and bid in self.pending
        ]
        for bid in sharing:
            del self.pending[bid]
        return len(sharing)

    def record_history_start(
        self, bundle_id: str, from_version: str | None
    ) -> int:
        self.history.append(
            {
                "id": len(self.history) + 1,
                "bundle_id": bundle_id,
                "from_version": from_version,
                "result": None,
            }
        )
        return len(self.history)

    def record_history_finish(self, entry_id: int, result: UpdateResult) -> None:
        self.history[entry_id - 1]["result"] = result

    def get_fingerprint(self, token: str) -> str | None:
        return self.fingerprints.get(token)

    def set_fingerprint(self, token: str, sha256: str) -> None:
        self.fingerprints[token] = sha256


class RecordingProgress:
    """ProgressReporter that keeps every reported event."""

    def __init__(self) -> None:
        self.events: list[tuple[int, str, tuple | None]] = []

    def is_active(self) -> bool:
        return True

    def report(self, percent, phase, byte_counts=None) -> None:
        self.events.append((percent, phase, byte_counts))

    @property
    def phases(self) -> list[str]:
        return [phase for _, phase, _ in self.events]


class ScriptedBundleReader:
    """BundleReader returning queued versions, repeating the last one."""

    def __init__(self, *versions: str | None) -> None:
        self.versions = list(versions) or [None]
        self.calls = 0

    async def read_version(self, app_path: Path) -> str | None:
        index = min(self.calls, len(self.versions) - 1)
        self.calls += 1
        return self.versions[index]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def make_app():
    """Factory for AppRecord instances with sensible defaults."""

    def _make(
        bundle_id: str = "com.example.app",
        name: str = "Example",
        installed_version: str | None = "1.0.0",
        install_source: InstallSource = InstallSource.DIRECT,
        **kwargs,
    ) -> AppRecord:
        return AppRecord(
            bundle_id=bundle_id,
            name=name,
            path=Path(f"/Applications/{name}.app"),
            installed_version=installed_version,
            install_source=install_source,
            **kwargs,
        )

    return _make


@pytest.fixture
def registry():
    """Empty in-memory registry."""
    return InMemoryRegistry()


@pytest.fixture
def progress():
    """Progress reporter recording every event."""
    return RecordingProgress()


@pytest.fixture
def bundle_reader_factory():
    """Build a ScriptedBundleReader from a sequence of versions."""
    return ScriptedBundleReader
