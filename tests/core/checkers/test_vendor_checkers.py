"""Tests for the Microsoft and Adobe Creative Cloud checkers."""

from pathlib import Path
from unittest.mock import AsyncMock, patch

import aiohttp
import pytest
from aioresponses import aioresponses

from macup.constants import MACADMINS_OFFICE_FEED_URL
from macup.core.cache.fingerprint import FingerprintVerdict
from macup.core.checkers.adobe import (
    AdobeCCChecker,
    parse_rum_output,
    precise_version,
    product_matches_bundle,
)
from macup.core.checkers.microsoft import MicrosoftChecker, find_feed_version
from macup.core.command import CommandOutput
from macup.domain.models import (
    BrewOutdatedCask,
    CheckContext,
    InstallSource,
    SourceKind,
)

WORD = "com.microsoft.Word"
PHOTOSHOP = "com.adobe.Photoshop"
APP = Path("/Applications/Microsoft Word.app")

FEED = """<?xml version="1.0" encoding="UTF-8"?>
<latest>
  <package>
    <id>com.microsoft.package.Microsoft_Excel.app</id>
    <title>Excel Update 16.88</title>
    <version>16.88.24081116</version>
  </package>
  <package>
    <id>com.microsoft.package.Microsoft_Word.app</id>
    <title>Word Update 16.88</title>
    <version>16.88.24081116</version>
    <cfbundleidentifier>com.microsoft.Word</cfbundleidentifier>
  </package>
</latest>
"""


class FakeFingerprints:
    def __init__(self, verdict):
        self.verdict = verdict
        self.tokens = []

    async def check(self, token):
        self.tokens.append(token)
        return self.verdict


@pytest.fixture
async def session():
    async with aiohttp.ClientSession() as http:
        yield http


class TestFindFeedVersion:
    def test_title_match(self):
        assert find_feed_version(FEED, "excel", "com.microsoft.Excel") == (
            "16.88.24081116"
        )

    def test_bundle_id_match(self):
        assert find_feed_version(FEED, "nope", WORD) == "16.88.24081116"

    def test_invalid_xml(self, caplog):
        assert find_feed_version("<latest>", "word", WORD) is None
        assert "not valid XML" in caplog.text


class TestMicrosoftChecker:
    async def test_feed_update(self, session):
        with aioresponses() as mocked:
            mocked.get(MACADMINS_OFFICE_FEED_URL, body=FEED)
            update = await MicrosoftChecker().check(
                WORD, APP, "16.87", session, CheckContext()
            )

        assert update.available_version == "16.88.24081116"
        assert update.source is SourceKind.MICROSOFT
        assert "release-notes-office-for-mac" in update.release_notes_url

    async def test_brew_outdated_after_feed_failure(self, session):
        context = CheckContext(
            brew_outdated={
                "microsoft-word": BrewOutdatedCask("16.89", "16.88.24081116")
            }
        )
        with aioresponses() as mocked:
            mocked.get(MACADMINS_OFFICE_FEED_URL, status=503)
            update = await MicrosoftChecker().check(
                WORD, APP, "16.88.24081116", session, context
            )

        assert update.available_version == "16.89"
        assert update.notes == "Update available via Homebrew"

    async def test_fingerprint_change(self, session):
        fingerprints = FakeFingerprints(FingerprintVerdict.CHANGED)
        context = CheckContext(brew_outdated={}, fingerprints=fingerprints)
        with aioresponses() as mocked:
            mocked.get(
                MACADMINS_OFFICE_FEED_URL,
                exception=aiohttp.ClientConnectionError(),
            )
            update = await MicrosoftChecker().check(
                WORD, APP, "16.88", session, context
            )

        assert fingerprints.tokens == ["microsoft-word"]
        assert update.available_version == "16.88 (newer build)"

    async def test_up_to_date(self, session):
        fingerprints = FakeFingerprints(FingerprintVerdict.UNCHANGED)
        context = CheckContext(fingerprints=fingerprints)
        with aioresponses() as mocked:
            mocked.get(MACADMINS_OFFICE_FEED_URL, body=FEED)
            update = await MicrosoftChecker().check(
                WORD, APP, "16.88.24081116", session, context
            )
        assert update is None

    def test_not_for_store_installs(self):
        checker = MicrosoftChecker()
        assert not checker.can_handle(WORD, APP, InstallSource.MAS)
        assert checker.can_handle(WORD, APP, InstallSource.DIRECT)


class TestAdobeHelpers:
    @pytest.mark.parametrize(
        ("product", "expected"),
        [
            ("Photoshop", True),
            ("photoshop2025", True),
            ("PHSP", True),
            ("PHSP_26", True),
            ("PHSPX", False),
            ("ILST", False),
        ],
    )
    def test_product_matches_bundle(self, product, expected):
        assert product_matches_bundle(product, PHOTOSHOP) is expected

    def test_parse_rum_json(self):
        stdout = (
            '{"updates": [{"sapCode": "PHSP", "productVersion": "26.1"},'
            ' {"product": {"id": "ILST", "version": "29.0"}}, {"junk": 1}]}'
        )
        assert parse_rum_output(stdout) == [("PHSP", "26.1"), ("ILST", "29.0")]

    def test_parse_rum_text(self):
        stdout = (
            "Following Updates are applicable on the system :\n"
            "PHSP - 26.1 - Photoshop\n"
            "ILST/29.0\n"
            "\n"
        )
        assert parse_rum_output(stdout) == [("PHSP", "26.1"), ("ILST", "29.0")]

    def test_precise_version_from_application_xml(self, tmp_path):
        resources = tmp_path / "Contents" / "Resources"
        resources.mkdir(parents=True)
        (resources / "application.xml").write_text(
            "<MajorVersion>26</MajorVersion><MinorVersion>0</MinorVersion>"
            "<PatchVersion>2</PatchVersion>",
            encoding="utf-8",
        )
        assert precise_version("26.0", tmp_path) == "26.0.2"
        assert precise_version("26.0.2.1", tmp_path) == "26.0.2.1"


class TestAdobeCCChecker:
    def test_can_handle(self):
        checker = AdobeCCChecker()
        assert checker.can_handle("com.adobe.photoshop", APP, InstallSource.DIRECT)
        assert checker.can_handle("com.adobe.NewTool", APP, InstallSource.DIRECT)
        assert not checker.can_handle("com.adobe.acc", APP, InstallSource.DIRECT)
        assert not checker.can_handle("com.example.x", APP, InstallSource.DIRECT)

    async def test_remote_update_manager(self, tmp_path):
        rum = AsyncMock(return_value=CommandOutput(0, "PHSP - 26.1 - Photoshop\n", ""))
        with (
            patch("macup.core.checkers.adobe.ADOBE_RUM_PATH", str(tmp_path)),
            patch("macup.core.checkers.adobe.run_command", rum),
        ):
            update = await AdobeCCChecker().check(
                PHOTOSHOP, tmp_path, "26.0", None, CheckContext()
            )

        assert update.available_version == "26.1"
        assert update.source is SourceKind.ADOBE_CC
        assert "Remote Update Manager" in update.notes

    async def test_brew_outdated_by_known_token(self, tmp_path):
        context = CheckContext(
            brew_outdated={"adobe-photoshop": BrewOutdatedCask("26.1", "26.0")}
        )
        with patch(
            "macup.core.checkers.adobe.check_remote_update_manager",
            AsyncMock(return_value=None),
        ):
            update = await AdobeCCChecker().check(
                PHOTOSHOP, tmp_path, "26.0", None, context
            )
        assert update.available_version == "26.1"

    async def test_no_check_cask(self, tmp_path, caplog):
        context = CheckContext(
            brew_outdated={},
            fingerprints=FakeFingerprints(FingerprintVerdict.NO_CHECK),
        )
        with patch(
            "macup.core.checkers.adobe.check_remote_update_manager",
            AsyncMock(return_value=None),
        ):
            update = await AdobeCCChecker().check(
                PHOTOSHOP, tmp_path, "26.0", None, context
            )
        assert update is None
        assert "sha256 :no_check" in caplog.text
