"""Tests for bundle metadata, subprocess deadlines and progress events."""

import asyncio
import plistlib

import pytest

from macup.core.bundle import (
    PlistBundleReader,
    is_browser_extension,
    read_bundle,
    read_installed_version,
)
from macup.core.command import command_succeeds, run_command
from macup.core.protocols.progress import (
    NullProgressReporter,
    ProgressEvent,
    ProgressReporter,
    QueueProgressReporter,
)
from macup.exceptions import CommandError


def write_bundle(app_path, **plist):
    contents = app_path / "Contents"
    contents.mkdir(parents=True)
    with (contents / "Info.plist").open("wb") as fh:
        plistlib.dump(plist, fh)
    return app_path


class TestBundle:
    def test_read_bundle(self, tmp_path):
        app = write_bundle(
            tmp_path / "Rectangle.app",
            CFBundleIdentifier="com.knollsoft.Rectangle",
            CFBundleName="Rectangle",
            CFBundleShortVersionString=" 0.80 ",
            CFBundleVersion="94",
            SUFeedURL="https://rectangleapp.com/downloads/updates.xml",
        )

        info = read_bundle(app)

        assert info.bundle_id == "com.knollsoft.Rectangle"
        assert info.display_name == "Rectangle"
        assert info.installed_version == "0.80"
        assert info.sparkle_feed_url.endswith("updates.xml")

    def test_build_number_fallback(self, tmp_path):
        app = write_bundle(
            tmp_path / "Tool.app", CFBundleIdentifier="a.b", CFBundleVersion="412"
        )
        assert read_installed_version(app) == "412"
        assert read_bundle(app).display_name == "Tool"

    def test_missing_or_broken_plist(self, tmp_path):
        assert read_bundle(tmp_path / "Nothing.app") is None
        broken = tmp_path / "Broken.app" / "Contents"
        broken.mkdir(parents=True)
        (broken / "Info.plist").write_bytes(b"not a plist")
        assert read_bundle(tmp_path / "Broken.app") is None

    def test_bundle_without_identifier(self, tmp_path):
        app = write_bundle(tmp_path / "Anon.app", CFBundleName="Anon")
        assert read_bundle(app) is None

    async def test_reader_runs_off_loop(self, tmp_path):
        app = write_bundle(
            tmp_path / "App.app",
            CFBundleIdentifier="a.b",
            CFBundleShortVersionString="2.0",
        )
        assert await PlistBundleReader().read_version(app) == "2.0"

    def test_browser_extension(self):
        assert is_browser_extension("com.google.Chrome.app.abcdef")
        assert not is_browser_extension("com.google.Chrome")


class TestRunCommand:
    async def test_captures_output(self):
        output = await run_command("sh", "-c", "echo out; echo err >&2; exit 3")
        assert output.returncode == 3
        assert output.stdout == "out\n"
        assert output.error_text == "err\n"
        assert not output.ok

    async def test_deadline_kills_process(self):
        with pytest.raises(CommandError, match="timed out"):
            await run_command("sleep", "5", timeout=0.1)

    async def test_missing_program(self):
        with pytest.raises(CommandError):
            await run_command("/nonexistent/macup-tool")
        assert not await command_succeeds("/nonexistent/macup-tool")

    async def test_env_is_merged(self):
        output = await run_command(
            "sh",
            "-c",
            'echo "$MACUP_ENV_VALUE"',
            env={"MACUP_ENV_VALUE": "yes"},
        )
        assert output.stdout.strip() == "yes"


class TestProgressReporters:
    def test_null_reporter(self):
        reporter = NullProgressReporter()
        assert isinstance(reporter, ProgressReporter)
        assert not reporter.is_active()
        reporter.report(50, "ignored")

    async def test_queue_reporter_never_waits(self):
        queue: asyncio.Queue[ProgressEvent] = asyncio.Queue()
        reporter = QueueProgressReporter(queue, "com.example.app")

        for percent in (-5, 40, 140):
            reporter.report(percent, "Downloading", (10, 100))

        events = [queue.get_nowait() for _ in range(queue.qsize())]
        assert [e.percent for e in events] == [0, 40, 100]
        assert events[0].bundle_id == "com.example.app"
        assert events[1].byte_counts == (10, 100)
