"""Tests for the update check cycle."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from macup.core.cycle import CheckCycle
from macup.domain.models import (
    BrewOutdatedCask,
    CheckerDiagnostic,
    InstallSource,
    SourceKind,
    UpdateInfo,
)

OUTDATED = {"firefox": BrewOutdatedCask("2.0", "1.0")}


def found(bundle_id, version="2.0", source=SourceKind.SPARKLE):
    return UpdateInfo(
        bundle_id=bundle_id,
        current_version="1.0",
        available_version=version,
        source=source,
    )


class FakeDispatcher:
    """Answers from a bundle id map; raises for ids in ``crashing``."""

    def __init__(self, answers=None, crashing=()):
        self.answers = answers or {}
        self.crashing = set(crashing)
        self.contexts = {}

    async def check(self, bundle_id, app_path, version, session, context):
        self.contexts[bundle_id] = context
        if bundle_id in self.crashing:
            raise RuntimeError("checker bug")
        return self.answers.get(bundle_id)

    async def debug_check(self, bundle_id, app_path, version, session, ctx):
        self.contexts[bundle_id] = ctx
        return [CheckerDiagnostic(SourceKind.SPARKLE, True, "not_found")]


class FakeIndex:
    def __init__(self, tokens=None, repos=None):
        self.tokens = tokens or {}
        self.repos = repos or {}

    def lookup_token(self, bundle_id, app_path):
        return self.tokens.get(bundle_id)

    def github_repo(self, bundle_id):
        return self.repos.get(bundle_id)


class FakeCaskCache:
    def __init__(self, index=None, error=None):
        self.index = index
        self.error = error

    async def get(self, session):
        if self.error is not None:
            raise self.error
        return self.index


class FakeEtagCache:
    def __init__(self, delay=0.0):
        self.delay = delay
        self.saved = 0

    async def save(self):
        await asyncio.sleep(self.delay)
        self.saved += 1


class FakeGitHub:
    def __init__(self, delay=0.0):
        self.etag_cache = FakeEtagCache(delay)
        self.resets = 0

    def reset_rate_limit(self):
        self.resets += 1


@pytest.fixture
def brew():
    """Patch the pre-fetch subprocess helpers used by the cycle."""
    with (
        patch(
            "macup.core.cycle.fetch_brew_outdated",
            new_callable=AsyncMock,
            return_value=OUTDATED,
        ) as casks,
        patch(
            "macup.core.cycle.fetch_brew_outdated_formulae",
            new_callable=AsyncMock,
            return_value={},
        ) as formulae,
        patch(
            "macup.core.cycle.check_xcode_clt",
            new_callable=AsyncMock,
            return_value=True,
        ) as clt,
    ):
        yield {"casks": casks, "formulae": formulae, "clt": clt}


def make_cycle(registry, dispatcher, index=None, github=None, **kwargs):
    return CheckCycle(
        registry,
        session=None,
        dispatcher=dispatcher,
        cask_cache=FakeCaskCache(index),
        github=github or FakeGitHub(),
        **kwargs,
    )


class TestRun:
    async def test_updates_are_saved_and_counted(
        self, registry, make_app, brew
    ):
        first = make_app(bundle_id="com.example.one", name="One")
        second = make_app(bundle_id="com.example.two", name="Two")
        registry.update_app(first)
        registry.update_app(second)
        dispatcher = FakeDispatcher({first.bundle_id: found(first.bundle_id)})
        github = FakeGitHub()

        summary = await make_cycle(registry, dispatcher, github=github).run()

        assert summary.apps_checked == 2
        assert summary.updates_found == 1
        assert summary.purged == 0
        assert list(registry.pending) == [first.bundle_id]
        assert github.resets == 1
        assert github.etag_cache.saved == 1

    async def test_crashing_app_does_not_stop_the_cycle(
        self, registry, make_app, brew, caplog
    ):
        broken = make_app(bundle_id="com.example.broken", name="Broken")
        fine = make_app(bundle_id="com.example.fine", name="Fine")
        registry.update_app(broken)
        registry.update_app(fine)
        dispatcher = FakeDispatcher(
            {fine.bundle_id: found(fine.bundle_id)},
            crashing={broken.bundle_id},
        )

        summary = await make_cycle(registry, dispatcher).run()

        assert summary.updates_found == 1
        assert "Update check crashed for com.example.broken" in caplog.text

    async def test_context_carries_prefetched_data(
        self, registry, make_app, brew
    ):
        brew["clt"].return_value = False
        app = make_app(
            install_source=InstallSource.HOMEBREW,
            homebrew_cask_token="firefox",
            sparkle_feed_url="https://example.com/appcast.xml",
        )
        registry.update_app(app)
        dispatcher = FakeDispatcher()
        index = FakeIndex()

        await make_cycle(registry, dispatcher, index=index).run()

        context = dispatcher.contexts[app.bundle_id]
        assert context.install_source is InstallSource.HOMEBREW
        assert context.homebrew_cask_token == "firefox"
        assert context.sparkle_feed_url == "https://example.com/appcast.xml"
        assert dict(context.brew_outdated) == OUTDATED
        assert context.cask_index is index
        assert context.xcode_clt_installed is False
        brew["casks"].assert_awaited_once()

    async def test_prefetch_failures_degrade_to_empty_data(
        self, registry, make_app, brew
    ):
        brew["casks"].side_effect = RuntimeError("brew missing")
        app = make_app()
        registry.update_app(app)
        dispatcher = FakeDispatcher({app.bundle_id: found(app.bundle_id)})
        cycle = CheckCycle(
            registry,
            session=None,
            dispatcher=dispatcher,
            cask_cache=FakeCaskCache(error=OSError("offline")),
            github=FakeGitHub(),
        )

        summary = await cycle.run()

        context = dispatcher.contexts[app.bundle_id]
        assert dict(context.brew_outdated) == {}
        assert context.cask_index is None
        assert summary.updates_found == 1

    async def test_backfills_token_and_repo(self, registry, make_app, brew):
        app = make_app(bundle_id="org.mozilla.firefox", name="Firefox")
        registry.update_app(app)
        dispatcher = FakeDispatcher()
        index = FakeIndex(
            tokens={app.bundle_id: "firefox"},
            repos={app.bundle_id: "mozilla/firefox"},
        )

        await make_cycle(registry, dispatcher, index=index).run()

        stored = registry.get_app(app.bundle_id)
        assert stored.homebrew_cask_token == "firefox"
        assert stored.github_repo == "mozilla/firefox"
        assert dispatcher.contexts[app.bundle_id].github_repo == (
            "mozilla/firefox"
        )

    async def test_restricted_to_requested_apps(
        self, registry, make_app, brew, caplog
    ):
        wanted = make_app(bundle_id="com.example.wanted", name="Wanted")
        other = make_app(bundle_id="com.example.other", name="Other")
        registry.update_app(wanted)
        registry.update_app(other)
        dispatcher = FakeDispatcher()

        summary = await make_cycle(registry, dispatcher).run(
            [wanted.bundle_id, "com.example.ghost"]
        )

        assert summary.apps_checked == 1
        assert list(dispatcher.contexts) == [wanted.bundle_id]
        assert "Not registered, skipped: com.example.ghost" in caplog.text

    async def test_slow_etag_save_is_abandoned(
        self, registry, make_app, brew, caplog
    ):
        registry.update_app(make_app())
        github = FakeGitHub(delay=1.0)
        cycle = make_cycle(
            registry, FakeDispatcher(), github=github, etag_save_timeout=0.01
        )

        summary = await cycle.run()

        assert summary.apps_checked == 1
        assert github.etag_cache.saved == 0
        assert "Saving the ETag cache took longer" in caplog.text


class TestPurgeStale:
    def test_purges_updates_no_longer_newer(self, registry, make_app):
        current = make_app(bundle_id="com.example.current", name="Current")
        current = current.with_version("2.0")
        behind = make_app(bundle_id="com.example.behind", name="Behind")
        registry.update_app(current)
        registry.update_app(behind)
        registry.save_pending_update(found(current.bundle_id, "2.0"))
        registry.save_pending_update(found(behind.bundle_id, "2.0"))

        purged = make_cycle(registry, FakeDispatcher()).purge_stale()

        assert purged == 1
        assert list(registry.pending) == [behind.bundle_id]

    def test_purges_updates_for_removed_apps(self, registry):
        registry.save_pending_update(found("com.example.gone"))

        purged = make_cycle(registry, FakeDispatcher()).purge_stale()

        assert purged == 1
        assert registry.pending == {}

    def test_keeps_update_when_installed_version_unknown(
        self, registry, make_app
    ):
        app = make_app(installed_version=None)
        registry.update_app(app)
        registry.save_pending_update(found(app.bundle_id))

        assert make_cycle(registry, FakeDispatcher()).purge_stale() == 0


class TestDiagnose:
    async def test_returns_checker_diagnostics(
        self, registry, make_app, brew
    ):
        app = make_app()
        registry.update_app(app)
        dispatcher = FakeDispatcher()

        diagnostics = await make_cycle(registry, dispatcher).diagnose(app)

        assert diagnostics == [
            CheckerDiagnostic(SourceKind.SPARKLE, True, "not_found")
        ]
        assert app.bundle_id in dispatcher.contexts
        assert registry.pending == {}
