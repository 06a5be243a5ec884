"""Console formatters for macup log output.

INFO lines are user-facing progress ("Checking 42 apps"), so they are
printed bare. Anything else keeps timestamp, logger and a coloured level.
"""

import logging

from macup.constants import LOG_COLORS


class ColoredConsoleFormatter(logging.Formatter):
    """Formatter that wraps the level name in an ANSI colour code."""

    def format(self, record: logging.LogRecord) -> str:
        """Format ``record`` with a coloured level name.

        The record's levelname is swapped only for the duration of the
        call so other handlers see the original value.

        Args:
            record: The log record to format

        Returns:
            Formatted message

        """
        color = LOG_COLORS.get(record.levelname)
        if color is None:
            return super().format(record)

        original_levelname = record.levelname
        record.levelname = f"{color}{original_levelname}{LOG_COLORS['RESET']}"
        try:
            return super().format(record)
        finally:
            record.levelname = original_levelname


class SimpleConsoleFormatter(logging.Formatter):
    """Formatter that emits only the rendered message."""

    def format(self, record: logging.LogRecord) -> str:
        """Return the message without metadata."""
        return record.getMessage()


class HybridConsoleFormatter(logging.Formatter):
    """Bare output for INFO, coloured structured output for other levels."""

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
    ) -> None:
        """Initialize with the structured format used for non-INFO levels.

        Args:
            fmt: Format string for structured messages
            datefmt: Date format string for timestamps

        """
        super().__init__(fmt, datefmt)
        self._simple_formatter = SimpleConsoleFormatter()
        self._colored_formatter = ColoredConsoleFormatter(fmt, datefmt)

    def format(self, record: logging.LogRecord) -> str:
        """Pick the simple or the structured formatter by level."""
        if record.levelno == logging.INFO:
            return self._simple_formatter.format(record)
        return self._colored_formatter.format(record)
