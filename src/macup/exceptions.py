"""Exception classes for macup operations."""


class MacupError(Exception):
    """Base exception for macup operations."""

    error_prefix: str = "Operation failed"

    def __init__(self, message: str, target: str | None = None) -> None:
        """Initialize error with message and optional target.

        Args:
            message: Error message describing the failure.
            target: Optional bundle id, token or program that failed.

        """
        super().__init__(message)
        self.message = message
        self.target = target

    def __str__(self) -> str:
        """Return formatted error message."""
        if self.target:
            return f"{self.error_prefix} for '{self.target}': {self.message}"
        return f"{self.error_prefix}: {self.message}"


class CommandError(MacupError):
    """Raised when a subprocess cannot be spawned or exceeds its deadline."""

    error_prefix = "Command failed"


class ElevationError(CommandError):
    """Raised when the OS administrator prompt cannot be shown or times out."""

    error_prefix = "Elevated command failed"


class UserCancelledError(MacupError):
    """Raised when the user dismisses the administrator prompt."""

    error_prefix = "Cancelled"


class CheckerError(MacupError):
    """Raised when an update source returns something unusable."""

    error_prefix = "Update check failed"


class ExecutorError(MacupError):
    """Raised when an update cannot be attempted at all."""

    error_prefix = "Update failed"


class StoreError(MacupError):
    """Raised when the app registry cannot be read or written."""

    error_prefix = "State store error"
