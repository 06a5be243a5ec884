"""Tests for the Sparkle appcast checker."""

from pathlib import Path

import aiohttp
import pytest
from aioresponses import aioresponses

from macup.core.checkers.sparkle import (
    SparkleChecker,
    best_newer_item,
    extract_version_from_title,
    is_pre_release,
    parse_appcast,
)
from macup.domain.models import CheckContext, InstallSource, SourceKind
from macup.exceptions import CheckerError

FEED_URL = "https://example.com/appcast.xml"

APPCAST = """<?xml version="1.0" encoding="utf-8"?>
<rss version="2.0" xmlns:sparkle="http://www.andymatuschak.org/xml-namespaces/sparkle">
  <channel>
    <item>
      <title>Version 2.1.0</title>
      <description><![CDATA[<ul><li>Faster sync</li></ul>]]></description>
      <enclosure url="https://example.com/App-2.1.0.zip"
                 sparkle:shortVersionString="2.1.0"
                 sparkle:version="210"/>
    </item>
    <item>
      <title>Version 2.2.0 beta</title>
      <enclosure url="https://example.com/App-2.2.0b1.zip"
                 sparkle:shortVersionString="2.2.0-beta.1"
                 sparkle:version="220"/>
    </item>
    <item>
      <title>Version 2.0.5</title>
      <enclosure url="https://example.com/App-2.0.5.zip"
                 sparkle:shortVersionString="2.0.5"
                 sparkle:version="205"/>
    </item>
  </channel>
</rss>
"""

TITLE_ONLY = """<?xml version="1.0"?>
<rss version="2.0">
  <channel>
    <item>
      <title>Version 3.4</title>
      <link>https://example.com/download</link>
    </item>
  </channel>
</rss>
"""


class TestHelpers:
    """Appcast parsing helpers."""

    def test_parse_appcast_reads_enclosures(self):
        enclosures, titles = parse_appcast(APPCAST)
        assert [i.version for i in enclosures] == [
            "2.1.0",
            "2.2.0-beta.1",
            "2.0.5",
        ]
        assert enclosures[0].download_url == "https://example.com/App-2.1.0.zip"
        assert len(titles) == 3

    def test_parse_appcast_title_only_feed(self):
        enclosures, titles = parse_appcast(TITLE_ONLY)
        assert enclosures == []
        assert titles[0].version == "3.4"
        assert titles[0].download_url == "https://example.com/download"

    def test_malformed_feed_falls_back_to_scanning(self):
        broken = (
            '<rss><item><enclosure url="https://example.com/a.dmg" '
            'sparkle:shortVersionString="1.5"/></item>'
        )
        enclosures, titles = parse_appcast(broken)
        assert enclosures[0].version == "1.5"
        assert enclosures[0].download_url == "https://example.com/a.dmg"
        assert titles == []

    @pytest.mark.parametrize(
        ("title", "expected"),
        [
            ("Version 1.2.3", "1.2.3"),
            ("v4.0", "4.0"),
            ("Release notes", None),
        ],
    )
    def test_extract_version_from_title(self, title, expected):
        assert extract_version_from_title(title) == expected

    def test_is_pre_release(self):
        assert is_pre_release("2.0-beta.3") is True
        assert is_pre_release("2.0", "Nightly build") is True
        assert is_pre_release("2.0") is False

    def test_best_newer_item_skips_prereleases(self):
        enclosures, _ = parse_appcast(APPCAST)
        best = best_newer_item(enclosures, "2.0.0", check_title=False)
        assert best is not None
        assert best.version == "2.1.0"

    def test_best_newer_item_none_when_current(self):
        enclosures, _ = parse_appcast(APPCAST)
        assert best_newer_item(enclosures, "2.1.0", check_title=False) is None


class TestSparkleChecker:
    """Checker behaviour against a mocked feed."""

    @pytest.fixture
    def checker(self):
        return SparkleChecker()

    def test_mas_apps_are_not_handled(self, checker, tmp_path):
        assert (
            checker.can_handle("a.b", tmp_path / "A.app", InstallSource.MAS)
            is False
        )

    def test_bundle_with_framework_is_handled(self, checker, tmp_path):
        app = tmp_path / "A.app"
        (app / "Contents/Frameworks/Sparkle.framework").mkdir(parents=True)
        assert checker.can_handle("a.b", app, InstallSource.DIRECT) is True

    def test_is_network_tier(self, checker):
        assert checker.is_local is False

    async def test_finds_newest_stable_release(self, checker):
        context = CheckContext(sparkle_feed_url=FEED_URL)
        with aioresponses() as mocked:
            mocked.get(FEED_URL, status=200, body=APPCAST)
            async with aiohttp.ClientSession() as session:
                update = await checker.check(
                    "com.example.app",
                    Path("/Applications/Example.app"),
                    "2.0.5",
                    session,
                    context,
                )

        assert update is not None
        assert update.available_version == "2.1.0"
        assert update.source is SourceKind.SPARKLE
        assert update.download_url == "https://example.com/App-2.1.0.zip"
        assert "Faster sync" in update.release_notes

    async def test_up_to_date_returns_none(self, checker):
        context = CheckContext(sparkle_feed_url=FEED_URL)
        with aioresponses() as mocked:
            mocked.get(FEED_URL, status=200, body=APPCAST)
            async with aiohttp.ClientSession() as session:
                update = await checker.check(
                    "com.example.app",
                    Path("/Applications/Example.app"),
                    "2.1.0",
                    session,
                    context,
                )
        assert update is None

    async def test_title_fallback_only_without_enclosures(self, checker):
        context = CheckContext(sparkle_feed_url=FEED_URL)
        with aioresponses() as mocked:
            mocked.get(FEED_URL, status=200, body=TITLE_ONLY)
            async with aiohttp.ClientSession() as session:
                update = await checker.check(
                    "com.example.app",
                    Path("/Applications/Example.app"),
                    "3.3",
                    session,
                    context,
                )
        assert update is not None
        assert update.available_version == "3.4"

    async def test_missing_feed_url_raises(self, checker, tmp_path):
        async with aiohttp.ClientSession() as session:
            with pytest.raises(CheckerError):
                await checker.check(
                    "com.example.app",
                    tmp_path / "NoFeed.app",
                    "1.0",
                    session,
                    CheckContext(),
                )
