"""Command-line interface for macup."""

from macup.cli.runner import CLIRunner

__all__ = ["CLIRunner"]
