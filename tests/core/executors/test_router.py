"""Tests for executor routing and post-update reconciliation."""

from unittest.mock import AsyncMock, patch

import pytest

from macup.core.executors.base import Executor
from macup.core.executors.delegated import (
    CREATIVE_CLOUD_BUNDLE_ID,
    DelegatedExecutor,
)
from macup.core.executors.direct import DirectDownloadExecutor
from macup.core.executors.formula import HomebrewFormulaExecutor
from macup.core.executors.homebrew import HomebrewExecutor
from macup.core.executors.mas import MasExecutor
from macup.core.executors.microsoft import MicrosoftAutoUpdateExecutor
from macup.core.executors.router import ExecutorRouter, is_downloadable_url
from macup.domain.models import (
    InstallSource,
    SourceKind,
    UpdateInfo,
    UpdateResult,
)
from macup.exceptions import ExecutorError, UserCancelledError

DMG_URL = "https://downloads.example.com/Example-2.0.dmg"


def pending(bundle_id, source, download_url=None, version="2.0"):
    return UpdateInfo(
        bundle_id=bundle_id,
        current_version="1.0",
        available_version=version,
        source=source,
        download_url=download_url,
    )


class ScriptedExecutor(Executor):
    """Executor returning a fixed result or raising."""

    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = 0

    @property
    def source(self) -> SourceKind:
        return SourceKind.SPARKLE

    async def execute(self, bundle_id, app_path, progress):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def router(registry, fake_runner, bundle_reader_factory):
    return ExecutorRouter(
        registry,
        fake_runner(),
        session=None,
        bundle_reader=bundle_reader_factory("2.0"),
        relaunch_delay=0,
    )


@pytest.fixture
def desktop():
    """Patch process inspection and relaunch."""
    with (
        patch(
            "macup.core.executors.router.is_app_running",
            new_callable=AsyncMock,
            return_value=False,
        ) as running,
        patch(
            "macup.core.executors.router.relaunch_app",
            new_callable=AsyncMock,
        ) as relaunch,
    ):
        yield {"running": running, "relaunch": relaunch}


class TestIsDownloadableUrl:
    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            (DMG_URL, True),
            ("https://example.com/App.zip?sig=abc", True),
            ("https://example.com/App.tar.gz", True),
            ("https://example.com/download/latest", True),
            ("https://apps.apple.com/app/id123", False),
            ("https://example.com/releases", False),
            (None, False),
            ("", False),
        ],
    )
    def test_classification(self, url, expected):
        assert is_downloadable_url(url) is expected


class TestSelect:
    """Routing precedence: update source, install source, delegation."""

    def test_cask_source_prefers_direct_file(self, router, make_app):
        app = make_app(homebrew_cask_token="example")
        update = pending(app.bundle_id, SourceKind.HOMEBREW, DMG_URL)
        executor = router.select(app, update)
        assert isinstance(executor, DirectDownloadExecutor)
        assert executor.source is SourceKind.HOMEBREW

    def test_cask_source_without_file_uses_cask(self, router, make_app):
        app = make_app(homebrew_cask_token="example")
        update = pending(app.bundle_id, SourceKind.HOMEBREW_API)
        executor = router.select(app, update)
        assert isinstance(executor, HomebrewExecutor)
        assert executor.cask_token == "example"

    def test_keystone_prefers_cask(self, router, make_app):
        app = make_app(homebrew_cask_token="example")
        update = pending(app.bundle_id, SourceKind.KEYSTONE, DMG_URL)
        assert isinstance(router.select(app, update), HomebrewExecutor)

    def test_cask_source_without_token_downloads(self, router, make_app):
        app = make_app()
        update = pending(app.bundle_id, SourceKind.HOMEBREW_API, DMG_URL)
        executor = router.select(app, update)
        assert isinstance(executor, DirectDownloadExecutor)
        assert executor.source is SourceKind.HOMEBREW_API

    def test_download_source_prefers_direct(self, router, make_app):
        app = make_app(homebrew_cask_token="example")
        update = pending(app.bundle_id, SourceKind.SPARKLE, DMG_URL)
        assert isinstance(
            router.select(app, update), DirectDownloadExecutor
        )

    def test_download_source_without_installer_uses_cask(
        self, router, make_app
    ):
        app = make_app(homebrew_cask_token="example")
        update = pending(
            app.bundle_id,
            SourceKind.GITHUB,
            "https://github.com/example/app/releases",
        )
        assert isinstance(router.select(app, update), HomebrewExecutor)

    def test_formula(self, router, make_app):
        app = make_app(
            bundle_id="wget",
            homebrew_formula_name="wget",
            install_source=InstallSource.HOMEBREW_FORMULA,
        )
        update = pending("wget", SourceKind.HOMEBREW_FORMULA)
        assert isinstance(
            router.select(app, update), HomebrewFormulaExecutor
        )

    def test_mas(self, router, make_app):
        app = make_app(mas_app_id="409183694")
        executor = router.select(app, pending(app.bundle_id, SourceKind.MAS))
        assert isinstance(executor, MasExecutor)
        assert executor.mas_app_id == "409183694"

    def test_microsoft(self, router, make_app):
        app = make_app()
        update = pending(app.bundle_id, SourceKind.MICROSOFT)
        assert isinstance(
            router.select(app, update), MicrosoftAutoUpdateExecutor
        )

    def test_adobe_without_token_opens_creative_cloud(
        self, router, make_app
    ):
        app = make_app()
        executor = router.select(
            app, pending(app.bundle_id, SourceKind.ADOBE_CC)
        )
        assert isinstance(executor, DelegatedExecutor)
        assert executor.helper_bundle_id == CREATIVE_CLOUD_BUNDLE_ID
        assert executor.source is SourceKind.ADOBE_CC

    def test_unusable_update_falls_back_to_install_source(
        self, router, make_app
    ):
        app = make_app(install_source=InstallSource.MAS)
        update = pending(app.bundle_id, SourceKind.KEYSTONE)
        assert isinstance(router.select(app, update), MasExecutor)

    def test_no_update_mas_install(self, router, make_app):
        app = make_app(install_source=InstallSource.MAS)
        assert isinstance(router.select(app, None), MasExecutor)

    def test_no_update_direct_install_is_delegated(self, router, make_app):
        executor = router.select(make_app(), None)
        assert isinstance(executor, DelegatedExecutor)
        assert executor.source is SourceKind.DELEGATED


class TestExecute:
    """History, reconciliation and relaunch around one executor run."""

    def success(self, app, **kwargs):
        return UpdateResult(
            bundle_id=app.bundle_id,
            success=True,
            message="done",
            source=SourceKind.SPARKLE,
            from_version="1.0",
            to_version="2.0",
            **kwargs,
        )

    async def test_verified_success_reconciles_state(
        self, router, registry, make_app, desktop
    ):
        app = make_app(homebrew_cask_token="shared")
        sibling = make_app(
            bundle_id="com.example.helper",
            name="Helper",
            homebrew_cask_token="shared",
        )
        registry.update_app(app)
        registry.update_app(sibling)
        registry.save_pending_update(pending(app.bundle_id, SourceKind.SPARKLE))
        registry.save_pending_update(
            pending(sibling.bundle_id, SourceKind.HOMEBREW)
        )
        executor = ScriptedExecutor(self.success(app))

        with patch.object(router, "select", return_value=executor):
            result = await router.execute(app)

        assert result.success
        assert registry.get_app(app.bundle_id).installed_version == "2.0"
        assert registry.pending == {}
        assert len(registry.history) == 1
        assert registry.history[0]["from_version"] == "1.0"
        assert registry.history[0]["result"] is result
        desktop["relaunch"].assert_not_awaited()

    async def test_running_app_is_relaunched(
        self, router, registry, make_app, desktop
    ):
        app = make_app()
        registry.update_app(app)
        desktop["running"].return_value = True
        executor = ScriptedExecutor(self.success(app))

        with patch.object(router, "select", return_value=executor):
            await router.execute(app)

        desktop["relaunch"].assert_awaited_once_with(app.path)

    async def test_executor_that_relaunched_is_not_relaunched_again(
        self, router, registry, make_app, desktop
    ):
        app = make_app()
        registry.update_app(app)
        desktop["running"].return_value = True
        executor = ScriptedExecutor(self.success(app, handled_relaunch=True))

        with patch.object(router, "select", return_value=executor):
            await router.execute(app)

        desktop["relaunch"].assert_not_awaited()

    async def test_delegated_result_keeps_pending_update(
        self, router, registry, make_app, desktop
    ):
        app = make_app()
        registry.update_app(app)
        registry.save_pending_update(pending(app.bundle_id, SourceKind.MAS))
        executor = ScriptedExecutor(
            UpdateResult.delegated_to(
                app.bundle_id, SourceKind.MAS, "Opened Mac App Store"
            )
        )

        with patch.object(router, "select", return_value=executor):
            result = await router.execute(app)

        assert result.delegated
        assert app.bundle_id in registry.pending
        assert registry.get_app(app.bundle_id).installed_version == "1.0"

    async def test_cancellation_becomes_failed_result(
        self, router, registry, make_app, desktop, progress
    ):
        app = make_app()
        registry.update_app(app)
        executor = ScriptedExecutor(error=UserCancelledError("dismissed"))

        with patch.object(router, "select", return_value=executor):
            result = await router.execute(app, progress)

        assert not result.success
        assert result.message == (
            "Update cancelled: administrator approval required for Example"
        )
        assert registry.history[0]["result"] is result
        assert progress.events[-1][:2] == (100, result.message)

    async def test_executor_error_becomes_failed_result(
        self, router, registry, make_app, desktop
    ):
        app = make_app()
        registry.update_app(app)
        executor = ScriptedExecutor(
            error=ExecutorError("Homebrew not found", target=app.bundle_id)
        )

        with patch.object(router, "select", return_value=executor):
            result = await router.execute(app)

        assert not result.success
        assert "Homebrew not found" in result.message
        assert result.from_version == "1.0"

    async def test_unexpected_error_is_recorded_in_history(
        self, router, registry, make_app, desktop, progress
    ):
        app = make_app()
        registry.update_app(app)
        executor = ScriptedExecutor(
            error=OSError(28, "No space left on device")
        )

        with patch.object(router, "select", return_value=executor):
            result = await router.execute(app, progress)

        assert not result.success
        assert "No space left on device" in result.message
        assert registry.history[0]["result"] is result
        assert progress.events[-1][0] == 100

    async def test_unreadable_bundle_falls_back_to_available_version(
        self, registry, fake_runner, bundle_reader_factory, make_app, desktop
    ):
        router = ExecutorRouter(
            registry,
            fake_runner(),
            session=None,
            bundle_reader=bundle_reader_factory(None),
            relaunch_delay=0,
        )
        app = make_app()
        registry.update_app(app)
        registry.save_pending_update(
            pending(app.bundle_id, SourceKind.SPARKLE, version="3.1")
        )
        executor = ScriptedExecutor(self.success(app))

        with patch.object(router, "select", return_value=executor):
            await router.execute(app)

        assert registry.get_app(app.bundle_id).installed_version == "3.1"
