"""Tests for the Homebrew-backed (local tier) checkers."""

from pathlib import Path

import pytest

from macup.core.cache.cask_index import CaskIndex
from macup.core.checkers.homebrew import (
    XCODE_CLT_NOTE,
    HomebrewApiChecker,
    HomebrewCaskChecker,
    HomebrewFormulaChecker,
)
from macup.domain.models import (
    BrewOutdatedCask,
    BrewOutdatedFormula,
    CheckContext,
    InstallSource,
    SourceKind,
)

APP_PATH = Path("/Applications/Firefox.app")


@pytest.fixture
def cask_index():
    return CaskIndex.build(
        [
            {
                "token": "firefox",
                "version": "125.0.1",
                "url": "https://download.mozilla.org/firefox-125.0.1.dmg",
                "artifacts": [{"app": ["Firefox.app"]}],
            }
        ]
    )


class TestHomebrewCaskChecker:
    """Reads ``brew outdated`` data from the context."""

    async def test_reports_outdated_cask(self, cask_index):
        context = CheckContext(
            homebrew_cask_token="firefox",
            brew_outdated={"firefox": BrewOutdatedCask("125.0.1", "124.0")},
            cask_index=cask_index,
        )
        update = await HomebrewCaskChecker().check(
            "org.mozilla.firefox", APP_PATH, "124.0", None, context
        )
        assert update is not None
        assert update.available_version == "125.0.1"
        assert update.source is SourceKind.HOMEBREW
        assert update.download_url == (
            "https://download.mozilla.org/firefox-125.0.1.dmg"
        )

    async def test_bundle_newer_than_brew_receipt(self):
        context = CheckContext(
            homebrew_cask_token="firefox",
            brew_outdated={"firefox": BrewOutdatedCask("125.0", "124.0")},
        )
        update = await HomebrewCaskChecker().check(
            "org.mozilla.firefox", APP_PATH, "125.0", None, context
        )
        assert update is None

    async def test_without_token(self):
        context = CheckContext(brew_outdated={})
        update = await HomebrewCaskChecker().check(
            "org.mozilla.firefox", APP_PATH, "124.0", None, context
        )
        assert update is None

    def test_skips_mas_apps(self):
        checker = HomebrewCaskChecker()
        assert not checker.can_handle("a.b", APP_PATH, InstallSource.MAS)
        assert checker.is_local is True


class TestHomebrewApiChecker:
    """Compares against the cask index."""

    async def test_reports_index_version(self, cask_index):
        context = CheckContext(cask_index=cask_index)
        update = await HomebrewApiChecker().check(
            "org.mozilla.firefox", APP_PATH, "124.0", None, context
        )
        assert update is not None
        assert update.available_version == "125.0.1"
        assert update.source is SourceKind.HOMEBREW_API

    async def test_known_cask_absent_from_outdated_is_current(
        self, cask_index
    ):
        context = CheckContext(
            homebrew_cask_token="firefox",
            brew_outdated={},
            cask_index=cask_index,
        )
        update = await HomebrewApiChecker().check(
            "org.mozilla.firefox", APP_PATH, "124.0", None, context
        )
        assert update is None

    async def test_browser_web_app_is_ignored(self, cask_index):
        context = CheckContext(cask_index=cask_index)
        update = await HomebrewApiChecker().check(
            "com.google.Chrome.app.abcdef",
            APP_PATH,
            "1.0",
            None,
            context,
        )
        assert update is None


class TestHomebrewFormulaChecker:
    """Reads ``brew outdated --formula`` data."""

    async def test_reports_outdated_formula_with_clt_note(self):
        context = CheckContext(
            homebrew_formula_name="wget",
            brew_outdated_formulae={
                "wget": BrewOutdatedFormula("1.24.5", "1.24.4")
            },
            xcode_clt_installed=False,
        )
        update = await HomebrewFormulaChecker().check(
            "org.gnu.wget", Path("/opt/homebrew/bin/wget"), "1.24.4", None, context
        )
        assert update is not None
        assert update.available_version == "1.24.5"
        assert update.notes == XCODE_CLT_NOTE

    def test_only_handles_formula_installs(self):
        checker = HomebrewFormulaChecker()
        assert checker.can_handle(
            "a.b", APP_PATH, InstallSource.HOMEBREW_FORMULA
        )
        assert not checker.can_handle("a.b", APP_PATH, InstallSource.HOMEBREW)
