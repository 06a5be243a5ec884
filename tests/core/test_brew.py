"""Tests for parsing ``brew outdated --json=v2`` output."""

from macup.core.brew import parse_outdated_casks, parse_outdated_formulae
from macup.domain.models import BrewOutdatedCask, BrewOutdatedFormula


class TestParseOutdatedCasks:
    def test_token_and_versions(self):
        payload = {
            "casks": [
                {
                    "name": "firefox",
                    "token": "firefox",
                    "installed_versions": ["127.0"],
                    "current_version": "128.0.3",
                },
                {
                    "token": "android-studio",
                    "installed_versions": ["2024.1.1.11"],
                    "current_version": "2024.1.2.12,abc123def",
                },
            ]
        }

        outdated = parse_outdated_casks(payload)

        assert outdated == {
            "firefox": BrewOutdatedCask("128.0.3", "127.0"),
            "android-studio": BrewOutdatedCask("2024.1.2.12", "2024.1.1.11"),
        }

    def test_name_used_when_token_missing(self):
        payload = {"casks": [{"name": "iterm2", "current_version": "3.5.4"}]}
        outdated = parse_outdated_casks(payload)
        assert outdated["iterm2"].current_version == "3.5.4"
        assert outdated["iterm2"].installed_versions == ""

    def test_installed_versions_as_string(self):
        payload = {
            "casks": [
                {
                    "token": "zoom",
                    "installed_versions": "6.0.0",
                    "current_version": "6.1.0",
                }
            ]
        }
        assert parse_outdated_casks(payload)["zoom"].installed_versions == (
            "6.0.0"
        )

    def test_blocklisted_and_nameless_entries_skipped(self):
        payload = {
            "casks": [
                {"token": "toolreleases", "current_version": "1.0"},
                {"current_version": "2.0"},
            ]
        }
        assert parse_outdated_casks(payload) == {}

    def test_missing_casks_array(self, caplog):
        assert parse_outdated_casks({"formulae": []}) == {}
        assert "no 'casks' array" in caplog.text


class TestParseOutdatedFormulae:
    def test_first_installed_version(self):
        payload = {
            "formulae": [
                {
                    "name": "neovim",
                    "installed_versions": ["0.9.5", "0.10.0"],
                    "current_version": "0.10.1",
                },
                {"name": "git", "current_version": "2.46.0"},
                {"current_version": "1.0"},
            ]
        }

        outdated = parse_outdated_formulae(payload)

        assert outdated == {
            "neovim": BrewOutdatedFormula("0.10.1", "0.9.5"),
            "git": BrewOutdatedFormula("2.46.0", ""),
        }

    def test_no_formulae(self):
        assert parse_outdated_formulae({"casks": []}) == {}
