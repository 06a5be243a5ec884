"""GitHub token storage using the system keyring.

On macOS the default keyring backend is the login Keychain, so no backend
selection is needed.
"""

import re

import keyring
import keyring.errors

from macup.constants import APP_NAME
from macup.logger import get_logger

logger = get_logger(__name__)

MAX_TOKEN_LENGTH: int = 255

_PREFIXED_PATTERNS = (
    r"^ghp_[A-Za-z0-9_]{36,251}$",
    r"^gho_[A-Za-z0-9_]{36,251}$",
    r"^ghu_[A-Za-z0-9_]{36,251}$",
    r"^ghs_[A-Za-z0-9_]{36,251}$",
    r"^ghr_[A-Za-z0-9_]{36,251}$",
    r"^github_pat_[A-Za-z0-9_]{36,243}$",
)


def validate_github_token(token: str | None) -> bool:
    """Validate GitHub token format.

    Accepts classic 40-hex tokens and the prefixed formats (``ghp_``,
    ``gho_``, ``ghu_``, ``ghs_``, ``ghr_``, ``github_pat_``).

    Args:
        token: The token to validate

    Returns:
        True if the token format is valid, False otherwise.

    """
    if not token or not isinstance(token, str):
        return False

    token = token.strip()
    if not token:
        return False

    if len(token) > MAX_TOKEN_LENGTH:
        logger.warning("Token exceeds maximum allowed length")
        return False

    if any(
        pattern in token.lower()
        for pattern in ("http://", "https://", "example", "test_token")
    ):
        logger.warning("Token contains suspicious patterns")
        return False

    if re.match(r"^[a-f0-9]{40}$", token):
        return True

    return any(re.match(pattern, token) for pattern in _PREFIXED_PATTERNS)


class KeyringTokenStore:
    """Token storage backed by the system keyring."""

    def __init__(
        self, service: str = APP_NAME, username: str = "github-token"
    ) -> None:
        """Initialize the keyring token store.

        Args:
            service: The service name for keyring storage.
            username: The username for keyring storage.

        """
        self.service = service
        self.username = username

    def get(self) -> str | None:
        """Retrieve the stored token from the keyring.

        Returns:
            The token if available, None if not stored or the keyring is
            unavailable.

        """
        try:
            token = keyring.get_password(self.service, self.username)
        except keyring.errors.KeyringError:
            # Don't log exception details, they can carry secrets
            logger.debug("Keyring access failed")
            return None
        if token:
            logger.debug("GitHub token retrieved from keyring (value hidden)")
            return token
        logger.debug("No token stored in keyring")
        return None

    def set(self, token: str) -> None:
        """Store the token in the keyring.

        Raises:
            keyring.errors.KeyringError: If keyring storage fails.

        """
        try:
            keyring.set_password(self.service, self.username, token)
        except keyring.errors.KeyringError:
            logger.exception("Failed to save token to keyring")
            raise
        logger.debug("Token saved to keyring successfully")

    def delete(self) -> None:
        """Remove the token from the keyring.

        Raises:
            keyring.errors.PasswordDeleteError: If no password is stored.

        """
        try:
            keyring.delete_password(self.service, self.username)
        except keyring.errors.PasswordDeleteError:
            logger.debug("No token found in keyring to delete")
            raise
        logger.debug("Token removed from keyring successfully")
