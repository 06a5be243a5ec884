"""Tests for the privilege escalation ladder."""

import re
from unittest.mock import AsyncMock, patch

import pytest
from executor_fakes import failed, ok

from macup.core.executors.base import (
    CommandPlan,
    EscalationLadder,
    LadderStatus,
    Rung,
    is_app_management_block,
    needs_elevation,
    version_changed,
)
from macup.exceptions import CommandError, UserCancelledError

PLAN = CommandPlan(
    program="/opt/homebrew/bin/brew",
    args=("upgrade", "--cask", "example"),
    shell_cmd="brew upgrade --cask example",
    label="Brew",
    pkg_pattern=re.compile(r"/opt/homebrew/Caskroom/\S+\.pkg"),
)
PKG = "/opt/homebrew/Caskroom/example/2.0/Example.pkg"


def versions(*values):
    """Version reader returning ``values`` in order."""
    remaining = list(values)

    async def read():
        return remaining.pop(0) if len(remaining) > 1 else remaining[0]

    return read


@pytest.fixture
def plain_run():
    with patch(
        "macup.core.executors.base.run_command", new_callable=AsyncMock
    ) as mock:
        yield mock


async def climb(runner, progress, read_version, pre="1.0"):
    ladder = EscalationLadder(runner)
    return await ladder.climb(PLAN, pre, read_version, progress)


class TestClassification:
    @pytest.mark.parametrize(
        "text",
        [
            "sudo: a terminal is required to read the password",
            "sudo: no tty present and no askpass program specified",
            "mv: /Applications/Example.app: Operation not permitted",
            "Permission denied @ rb_sysopen",
            "sudo: a password is required",
        ],
    )
    def test_needs_elevation(self, text):
        assert needs_elevation(text)

    def test_ordinary_failure_is_terminal(self):
        assert not needs_elevation("Error: Cask 'example' is unavailable")

    def test_app_management_block(self):
        assert is_app_management_block("rm: Operation not permitted")
        assert not is_app_management_block("Permission denied")

    @pytest.mark.parametrize(
        ("before", "after", "expected"),
        [
            ("1.0", "2.0", True),
            ("1.0", "1.0", False),
            (None, "1.0", True),
            ("1.0", None, True),
        ],
    )
    def test_version_changed(self, before, after, expected):
        assert version_changed(before, after) is expected


class TestUnprivilegedRung:
    async def test_success_with_new_version(
        self, plain_run, fake_runner, progress
    ):
        plain_run.return_value = ok()
        runner = fake_runner()

        outcome = await climb(runner, progress, versions("2.0"))

        assert outcome.status is LadderStatus.CHANGED
        assert outcome.rung is Rung.UNPRIVILEGED
        assert outcome.new_version == "2.0"
        assert not outcome.elevated
        assert runner.calls == []

    async def test_zero_exit_with_same_version_is_unchanged(
        self, plain_run, fake_runner, progress
    ):
        plain_run.return_value = ok()

        outcome = await climb(fake_runner(), progress, versions("1.0"))

        assert outcome.status is LadderStatus.UNCHANGED

    async def test_unrelated_error_does_not_escalate(
        self, plain_run, fake_runner, progress
    ):
        plain_run.return_value = failed("Error: Download failed")
        runner = fake_runner()

        outcome = await climb(runner, progress, versions("1.0"))

        assert outcome.status is LadderStatus.FAILED
        assert outcome.error_text == "Error: Download failed"
        assert runner.calls == []

    async def test_spawn_failure(self, plain_run, fake_runner, progress):
        plain_run.side_effect = CommandError("timed out", target="brew")

        outcome = await climb(fake_runner(), progress, versions("1.0"))

        assert outcome.status is LadderStatus.FAILED
        assert "timed out" in outcome.error_text


class TestPackageRung:
    async def test_installs_package_then_reconciles(
        self, plain_run, fake_runner, progress
    ):
        plain_run.side_effect = [
            failed(f"sudo: a terminal is required\ninstaller: {PKG}"),
            ok(),
        ]
        runner = fake_runner()

        outcome = await climb(runner, progress, versions("2.0"))

        assert outcome.status is LadderStatus.CHANGED
        assert outcome.rung is Rung.PACKAGE
        assert runner.calls == [
            ("run", ("/usr/sbin/installer", "-pkg", PKG, "-target", "/"))
        ]
        assert plain_run.await_count == 2

    async def test_cancelled_package_install(
        self, plain_run, fake_runner, progress
    ):
        plain_run.return_value = failed(f"Permission denied {PKG}")
        runner = fake_runner(run=UserCancelledError("dismissed"))

        outcome = await climb(runner, progress, versions("1.0"))

        assert outcome.status is LadderStatus.CANCELLED
        assert outcome.rung is Rung.PACKAGE
        assert "shell" not in runner.kinds()


class TestAskpassAndPromptRungs:
    async def test_askpass_retry_succeeds(
        self, plain_run, fake_runner, progress
    ):
        plain_run.return_value = failed("sudo: a terminal is required")
        runner = fake_runner(noninteractive=ok())

        outcome = await climb(runner, progress, versions("2.0"))

        assert outcome.status is LadderStatus.CHANGED
        assert outcome.rung is Rung.ASKPASS
        assert runner.kinds() == ["noninteractive"]

    async def test_cancel_at_askpass_is_terminal(
        self, plain_run, fake_runner, progress
    ):
        plain_run.return_value = failed("sudo: a terminal is required")
        runner = fake_runner(noninteractive=UserCancelledError("dismissed"))

        outcome = await climb(runner, progress, versions("1.0"))

        assert outcome.status is LadderStatus.CANCELLED
        assert runner.kinds() == ["noninteractive"]

    async def test_unchanged_askpass_retry_falls_back_to_prompt(
        self, plain_run, fake_runner, progress
    ):
        plain_run.return_value = failed("sudo: a terminal is required")
        runner = fake_runner(noninteractive=ok())

        outcome = await climb(runner, progress, versions("1.0", "2.0"))

        assert outcome.status is LadderStatus.CHANGED
        assert outcome.rung is Rung.PROMPT
        assert runner.kinds() == ["noninteractive", "shell"]
        assert runner.calls[1] == ("shell", (PLAN.shell_cmd,))

    async def test_without_askpass_goes_straight_to_prompt(
        self, plain_run, fake_runner, progress
    ):
        plain_run.return_value = failed("Operation not permitted")
        runner = fake_runner(askpass=False)

        outcome = await climb(runner, progress, versions("2.0"))

        assert outcome.rung is Rung.PROMPT
        assert runner.kinds() == ["shell"]
        assert "Requesting administrator privileges..." in progress.phases

    async def test_cancelled_prompt(self, plain_run, fake_runner, progress):
        plain_run.return_value = failed("Operation not permitted")
        runner = fake_runner(
            askpass=False, shell=UserCancelledError("User canceled")
        )

        outcome = await climb(runner, progress, versions("1.0"))

        assert outcome.status is LadderStatus.CANCELLED
        assert outcome.rung is Rung.PROMPT

    async def test_failed_prompt_keeps_error_text(
        self, plain_run, fake_runner, progress
    ):
        plain_run.return_value = failed("Operation not permitted")
        runner = fake_runner(askpass=False, shell=failed("still blocked"))

        outcome = await climb(runner, progress, versions("1.0"))

        assert outcome.status is LadderStatus.FAILED
        assert outcome.elevated
        assert outcome.error_text == "still blocked"
