"""GitHub authentication and rate limiting management.

`GitHubAuthManager` applies the stored token to request headers and keeps
track of the rate-limit headers GitHub returns, so a check cycle can stop
calling the API once the quota is gone.
"""

import time
from collections.abc import Mapping

from macup.core.token import KeyringTokenStore, validate_github_token
from macup.logger import get_logger

logger = get_logger(__name__)


class GitHubAuthManager:
    """Manage GitHub authentication and rate limiting."""

    def __init__(self, token_store: KeyringTokenStore | None = None) -> None:
        """Initialize the auth manager.

        Args:
            token_store: Token storage; a KeyringTokenStore when None.

        """
        self.token_store = (
            token_store if token_store is not None else KeyringTokenStore()
        )
        self._rate_limit_reset: int | None = None
        self._remaining_requests: int | None = None
        self._last_check_time: float = 0
        self._user_notified: bool = False
        self._token_loaded = False
        self._token: str | None = None

    def get_token(self) -> str | None:
        """Return the stored GitHub token, reading the keyring once."""
        if not self._token_loaded:
            self._token = self.token_store.get()
            self._token_loaded = True
        return self._token

    def apply_auth(self, headers: dict[str, str]) -> dict[str, str]:
        """Apply GitHub authentication to the given request headers.

        Args:
            headers: HTTP headers to update.

        Returns:
            Headers with authentication applied when a token is available.

        """
        token = self.get_token()

        if token:
            headers["Authorization"] = f"Bearer {token}"
        elif not self._user_notified:
            self._user_notified = True
            logger.info(
                "No GitHub token configured. API rate limits apply "
                "(60 requests/hour). Use 'macup token --save' "
                "to increase the limit to 5000 requests/hour."
            )

        return headers

    def update_rate_limit_info(self, headers: Mapping[str, str]) -> None:
        """Update rate-limit information from GitHub response headers."""
        try:
            remaining = headers.get("X-RateLimit-Remaining")
            reset = headers.get("X-RateLimit-Reset")
            if remaining is not None:
                self._remaining_requests = int(remaining)
            if reset is not None:
                self._rate_limit_reset = int(reset)
            self._last_check_time = time.time()
        except (ValueError, TypeError):
            logger.warning("Invalid rate limit headers received")

    def get_rate_limit_status(self) -> dict[str, int | None]:
        """Return the current rate limit status.

        Returns:
            Mapping with keys 'remaining', 'reset_time' and
            'reset_in_seconds'. Values may be None when unknown.

        """
        current_time = int(time.time())

        if self._rate_limit_reset and current_time >= self._rate_limit_reset:
            self._remaining_requests = None
            self._rate_limit_reset = None

        return {
            "remaining": self._remaining_requests,
            "reset_time": self._rate_limit_reset,
            "reset_in_seconds": (
                self._rate_limit_reset - current_time
                if self._rate_limit_reset
                else None
            ),
        }

    def is_authenticated(self) -> bool:
        """Return whether a non-empty token is stored."""
        token = self.get_token()
        return token is not None and len(token.strip()) > 0

    def is_token_valid(self) -> bool:
        """Return whether the stored token has a valid format."""
        return validate_github_token(self.get_token())
