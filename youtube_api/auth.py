import json
import logging
import urllib.parse
from typing import Any, Dict, Iterable, Optional, Tuple, Type

import httpx

from .client_secrets import ClientSecrets
from .errors import (
    ExchangeError,
    RefreshError,
    RevokeError,
    StoreError,
    YouTubeAuthError,
)
from .token_manager import Credential, TokenManager

logger = logging.getLogger(__name__)

YOUTUBE_API_BASE_URL = "https://www.googleapis.com/youtube/v3"
DEFAULT_SCOPES = ["https://www.googleapis.com/auth/youtube"]
DEFAULT_REDIRECT_URI = "http://localhost:8080/"


def split_redirect_uri(redirect_uri: str) -> Tuple[str, int, str]:
    """Return (host, port, path) for a loopback redirect URI."""

    parsed = urllib.parse.urlparse(str(redirect_uri or "").strip())
    if parsed.scheme != "http" or not parsed.hostname:
        raise ValueError(f"Redirect URI must be an http:// loopback URL, got {redirect_uri!r}")
    port = parsed.port or 80
    path = parsed.path or "/"
    return parsed.hostname, port, path


class YouTubeOAuth:
    """Google OAuth (authorization code, offline access) for the YouTube Data API.

    One instance is built at startup and shared by the menus and the API
    client. It never holds a credential itself; TokenManager does.
    """

    def __init__(
        self,
        config: Dict[str, Any],
        client_secrets: ClientSecrets,
        *,
        token_manager: Optional[TokenManager] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.config = config or {}
        self.client_secrets = client_secrets
        self.token_manager = token_manager or TokenManager()
        self._transport = transport

    @property
    def redirect_uri(self) -> str:
        return str(self.config.get("youtube_redirect_uri") or DEFAULT_REDIRECT_URI).strip()

    @property
    def scopes(self) -> list:
        scopes = self.config.get("youtube_scopes") or DEFAULT_SCOPES
        return [str(s).strip() for s in scopes if str(s).strip()]

    # -----------------
    # Authorization URL
    # -----------------

    def generate_auth_url(self, state: str, *, scopes: Optional[Iterable[str]] = None) -> str:
        """Build the consent URL bound to ``state``; always asks for offline access."""

        scope_list = list(scopes) if scopes is not None else self.scopes
        params: Dict[str, str] = {
            "client_id": self.client_secrets.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(scope_list),
            "state": str(state),
            "access_type": "offline",
        }
        return f"{self.client_secrets.auth_uri}?{urllib.parse.urlencode(params)}"

    # -----------------
    # Code exchange
    # -----------------

    def exchange_code_for_token(self, code: str) -> Credential:
        payload = self._post_form(
            self.client_secrets.token_uri,
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
                "client_id": self.client_secrets.client_id,
                "client_secret": self.client_secrets.client_secret or None,
            },
            error_cls=ExchangeError,
        )

        try:
            credential = Credential.from_token_response(payload)
        except (TypeError, ValueError, OverflowError) as e:
            raise ExchangeError(f"Token response has a malformed field: {e}") from e
        if not credential.access_token:
            raise ExchangeError("Token response did not contain an access_token")

        try:
            self.token_manager.save(credential)
        except YouTubeAuthError as e:
            raise ExchangeError(f"Could not save the new credential: {e}") from e

        logger.info("Authorization code exchanged; refresh token issued: %s", bool(credential.refresh_token))
        return credential

    # -----------------
    # Refresh
    # -----------------

    def refresh_access_token(self, refresh_token: str) -> Credential:
        payload = self._post_form(
            self.client_secrets.token_uri,
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self.client_secrets.client_id,
                "client_secret": self.client_secrets.client_secret or None,
            },
            error_cls=RefreshError,
        )

        try:
            credential = Credential.from_token_response(payload)
        except (TypeError, ValueError, OverflowError) as e:
            raise RefreshError(f"Refresh response has a malformed field: {e}") from e
        if not credential.access_token:
            raise RefreshError("Refresh response did not contain an access_token")

        # Google omits refresh_token on refresh; keep the existing one.
        if not credential.refresh_token:
            credential = credential.with_refresh_token(refresh_token)
        return credential

    def _fresh_credential(self, credential: Credential) -> Credential:
        if credential.is_valid:
            return credential
        if not credential.refresh_token:
            raise RefreshError("Access token expired and no refresh token is available")
        return self.refresh_access_token(credential.refresh_token)

    def get_valid_credential(self) -> Tuple[Credential, bool]:
        """Return (usable credential, refreshed).

        Store errors propagate unchanged. A failed refresh deletes the local
        credential so the next attempt goes through the interactive login.
        """

        stored = self.token_manager.load()

        try:
            fresh = self._fresh_credential(stored)
        except RefreshError as e:
            self._invalidate_local_credential()
            raise RefreshError(f"Could not refresh the stored credential: {e}") from e

        changed = (
            fresh.access_token != stored.access_token
            or (bool(fresh.refresh_token) and fresh.refresh_token != stored.refresh_token)
            or fresh.expiry != stored.expiry
        )
        if changed:
            self.token_manager.save(fresh)
            logger.info("Credential refreshed and saved")

        return fresh, changed

    def _invalidate_local_credential(self) -> None:
        try:
            self.token_manager.delete()
        except StoreError as e:
            logger.error("Could not delete unrefreshable credential: %s", e)

    def get_authenticated_client(self) -> Tuple[httpx.Client, Credential]:
        """Return an httpx client for the YouTube Data API plus the credential it carries."""

        credential, _ = self.get_valid_credential()
        client = httpx.Client(
            base_url=YOUTUBE_API_BASE_URL,
            headers={
                "Authorization": f"{credential.token_type or 'Bearer'} {credential.access_token}",
                "Accept": "application/json",
            },
            timeout=30.0,
            transport=self._transport,
        )
        return client, credential

    # -----------------
    # Revoke
    # -----------------

    def revoke_token(self, token: str) -> None:
        """Revoke ``token`` at the provider. Local storage is left untouched."""

        if not token:
            return

        try:
            with self._http_client() as client:
                resp = client.post(
                    self.client_secrets.revoke_uri,
                    data={"token": token},
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
        except httpx.HTTPError as e:
            raise RevokeError(f"Token revocation request failed: {e}") from e

        if resp.status_code != 200:
            raise RevokeError(
                f"Token revocation failed (HTTP {resp.status_code}): {resp.text}",
                status_code=resp.status_code,
            )

        logger.info("Token revoked at provider")

    # -----------------
    # HTTP helpers
    # -----------------

    def _http_client(self) -> httpx.Client:
        return httpx.Client(timeout=30.0, follow_redirects=False, transport=self._transport)

    def _post_form(
        self,
        url: str,
        form: Dict[str, Any],
        *,
        error_cls: Type[YouTubeAuthError],
    ) -> Dict[str, Any]:
        data = {k: str(v) for k, v in (form or {}).items() if v is not None}

        try:
            with self._http_client() as client:
                resp = client.post(
                    url,
                    data=data,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
        except httpx.HTTPError as e:
            raise error_cls(f"Token request failed: {e}") from e

        if resp.status_code >= 400:
            raise error_cls(f"Token request failed (HTTP {resp.status_code}): {resp.text}")

        try:
            payload = resp.json()
        except json.JSONDecodeError as e:
            raise error_cls(f"Token response was not JSON: {resp.text}") from e

        if not isinstance(payload, dict):
            raise error_cls(f"Token response was not an object: {payload}")

        return payload
