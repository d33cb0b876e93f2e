"""Exception types raised by the YouTube authentication core.

Menus catch :class:`YouTubeAuthError` and turn it into a message plus a
return to the idle/retry state, so every error here carries a readable
message and keeps its underlying cause via ``raise ... from``.
"""

from typing import Optional


class YouTubeAuthError(Exception):
    """Base class for every authentication-core failure."""


class ConfigError(YouTubeAuthError):
    """Client descriptor or auth configuration is missing or malformed (fatal at startup)."""


class StoreError(YouTubeAuthError):
    """The credential file could not be read or written."""


class NotFoundError(StoreError):
    """No credential file exists."""


class DecodeError(StoreError):
    """The credential file exists but is not a readable credential."""


class InvalidCredentialError(YouTubeAuthError):
    """Credential is structurally present but has neither an access nor a refresh token."""


class RefreshError(YouTubeAuthError):
    """The provider rejected a refresh; the local credential has been deleted."""


class CallbackError(YouTubeAuthError):
    """The loopback redirect was rejected (CSRF mismatch, provider denial, missing code)."""


class ExchangeError(YouTubeAuthError):
    """Exchanging the authorization code failed; nothing was persisted."""


class RevokeError(YouTubeAuthError):
    """The revocation endpoint did not answer with a success status."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class YouTubeAPIError(Exception):
    """A YouTube Data API call failed."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
