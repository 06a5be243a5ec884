"""Tests for CLI argument parsing."""

import pytest

from macup.cli.parser import CLIParser


@pytest.fixture
def parser():
    return CLIParser({})


class TestCLIParser:
    def test_add_with_options(self, parser):
        args = parser.parse_args(
            [
                "add",
                "/Applications/iTerm.app",
                "--cask",
                "iterm2",
                "--repo",
                "gnachman/iTerm2",
                "--mas-id",
                "123",
                "--source",
                "homebrew",
            ]
        )
        assert args.command == "add"
        assert args.path == "/Applications/iTerm.app"
        assert args.cask == "iterm2"
        assert args.repo == "gnachman/iTerm2"
        assert args.mas_id == "123"
        assert args.source == "homebrew"

    def test_add_rejects_unknown_source(self, parser):
        with pytest.raises(SystemExit):
            parser.parse_args(["add", "/Applications/X.app", "--source", "x"])

    def test_check_defaults(self, parser):
        args = parser.parse_args(["check"])
        assert args.bundle_ids == []
        assert args.refresh_index is False

    def test_check_with_ids_and_refresh(self, parser):
        args = parser.parse_args(
            ["check", "org.mozilla.firefox", "--refresh-index"]
        )
        assert args.bundle_ids == ["org.mozilla.firefox"]
        assert args.refresh_index is True

    def test_update_many(self, parser):
        args = parser.parse_args(["update", "a.b", "c.d"])
        assert args.bundle_ids == ["a.b", "c.d"]

    def test_list_pending(self, parser):
        assert parser.parse_args(["list", "--pending"]).pending is True

    def test_debug_requires_bundle_id(self, parser):
        with pytest.raises(SystemExit):
            parser.parse_args(["debug"])

    def test_token_requires_one_action(self, parser):
        with pytest.raises(SystemExit):
            parser.parse_args(["token"])
        with pytest.raises(SystemExit):
            parser.parse_args(["token", "--save", "--remove"])
        assert parser.parse_args(["token", "--status"]).status is True

    def test_version_flag(self, parser):
        args = parser.parse_args(["--version"])
        assert args.version is True
        assert args.command is None
