"""Tests for batch updates with one shared elevation grant."""

import asyncio

import pytest

from macup.core.batch import BatchUpdater, may_need_elevation
from macup.core.elevation import ElevationSession
from macup.core.protocols.progress import NullProgressReporter
from macup.domain.models import (
    InstallSource,
    SourceKind,
    UpdateInfo,
    UpdateResult,
)


def pending(bundle_id, source):
    return UpdateInfo(
        bundle_id=bundle_id,
        current_version="1.0",
        available_version="2.0",
        source=source,
    )


def ok_result(bundle_id):
    return UpdateResult(
        bundle_id=bundle_id,
        success=True,
        message="done",
        source=SourceKind.HOMEBREW,
    )


class FakeRouter:
    """Router stand-in; raises for bundle ids listed in ``failing``."""

    def __init__(self, failing=(), delay=0.0):
        self.failing = set(failing)
        self.delay = delay
        self.executed: list[str] = []
        self.active = 0
        self.max_active = 0

    async def execute(self, app, progress=None):
        self.executed.append(app.bundle_id)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            if app.bundle_id in self.failing:
                raise RuntimeError("installer exploded")
            return ok_result(app.bundle_id)
        finally:
            self.active -= 1


class FakeElevationRunner:
    def __init__(self, granted=True):
        self.granted = granted
        self.pre_auth_calls = 0

    async def pre_authenticate(self):
        self.pre_auth_calls += 1
        return self.granted

    async def refresh_timestamp(self):
        return True


@pytest.fixture
def brew_apps(registry, make_app):
    """Three Homebrew apps, each with a pending cask update."""
    apps = [
        make_app(
            bundle_id=f"com.example.app{i}",
            name=f"App{i}",
            install_source=InstallSource.HOMEBREW,
            homebrew_cask_token=f"app{i}",
        )
        for i in range(3)
    ]
    for app in apps:
        registry.update_app(app)
        registry.save_pending_update(
            pending(app.bundle_id, SourceKind.HOMEBREW)
        )
    return apps


@pytest.fixture
def sessions(monkeypatch):
    """Record every ElevationSession the batch creates."""
    created = []

    class TrackingSession(ElevationSession):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            created.append(self)

    monkeypatch.setattr("macup.core.batch.ElevationSession", TrackingSession)
    return created


class TestMayNeedElevation:
    def test_by_update_source(self, make_app):
        app = make_app()
        assert may_need_elevation(app, pending(app.bundle_id, SourceKind.MAS))
        assert not may_need_elevation(
            app, pending(app.bundle_id, SourceKind.ADOBE_CC)
        )

    def test_by_install_source(self, make_app):
        assert may_need_elevation(
            make_app(install_source=InstallSource.HOMEBREW_FORMULA), None
        )
        assert not may_need_elevation(make_app(), None)


class TestBatchUpdater:
    async def test_one_grant_for_many_elevated_updates(
        self, registry, brew_apps, sessions
    ):
        runner = FakeElevationRunner()
        batch = BatchUpdater(
            registry, FakeRouter(), runner, keepalive_interval=60
        )

        results = await batch.run([a.bundle_id for a in brew_apps])

        assert runner.pre_auth_calls == 1
        assert len(sessions) == 1
        assert sessions[0].authenticated
        assert sessions[0].stop_count == 1
        assert all(r.success for r in results)

    async def test_keepalive_stopped_exactly_once_despite_failures(
        self, registry, brew_apps, sessions
    ):
        runner = FakeElevationRunner()
        router = FakeRouter(failing={"com.example.app1"})
        batch = BatchUpdater(registry, router, runner, keepalive_interval=60)

        results = await batch.run([a.bundle_id for a in brew_apps])

        assert len(sessions) == 1
        assert sessions[0].stop_count == 1
        assert not sessions[0].keepalive_running
        assert [r.success for r in results] == [True, False, True]
        assert results[1].message == "Update task failed: installer exploded"

    async def test_single_candidate_skips_pre_auth(
        self, registry, brew_apps
    ):
        runner = FakeElevationRunner()
        batch = BatchUpdater(registry, FakeRouter(), runner)

        await batch.run([brew_apps[0].bundle_id])

        assert runner.pre_auth_calls == 0

    async def test_declined_grant_still_runs_updates(
        self, registry, brew_apps
    ):
        runner = FakeElevationRunner(granted=False)
        router = FakeRouter()
        batch = BatchUpdater(registry, router, runner)

        results = await batch.run([a.bundle_id for a in brew_apps])

        assert runner.pre_auth_calls == 1
        assert len(router.executed) == 3
        assert all(r.success for r in results)

    async def test_unregistered_app_fails_in_place(self, registry, brew_apps):
        batch = BatchUpdater(registry, FakeRouter(), FakeElevationRunner())

        results = await batch.run(
            [brew_apps[0].bundle_id, "com.example.ghost"]
        )

        assert [r.bundle_id for r in results] == [
            brew_apps[0].bundle_id,
            "com.example.ghost",
        ]
        assert not results[1].success
        assert results[1].message == "App is not registered"

    async def test_concurrency_is_bounded(self, registry, brew_apps):
        router = FakeRouter(delay=0.01)
        batch = BatchUpdater(
            registry, router, FakeElevationRunner(granted=False), 2
        )

        await batch.run([a.bundle_id for a in brew_apps])

        assert router.max_active == 2

    async def test_progress_factory_called_per_app(self, registry, brew_apps):
        seen = []

        def factory(bundle_id):
            seen.append(bundle_id)
            return NullProgressReporter()

        batch = BatchUpdater(
            registry, FakeRouter(), FakeElevationRunner(granted=False)
        )
        await batch.run([a.bundle_id for a in brew_apps], factory)

        assert sorted(seen) == sorted(a.bundle_id for a in brew_apps)

