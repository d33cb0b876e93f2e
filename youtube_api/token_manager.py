import json
import logging
import os
import tempfile
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from .errors import DecodeError, InvalidCredentialError, NotFoundError, StoreError

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_PATH = os.path.join("data", "token.json")

# Access tokens are treated as expired this long before their real expiry.
EXPIRY_SKEW_SECONDS = 10


def _parse_expiry(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(float(value), tz=timezone.utc)

    text = str(value).strip()
    # fromisoformat() on older interpreters rejects the trailing "Z".
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Credential:
    """One OAuth credential as issued by Google's token endpoint."""

    access_token: str
    refresh_token: Optional[str] = None
    expiry: Optional[datetime] = None
    token_type: str = "Bearer"

    @property
    def is_usable(self) -> bool:
        return bool(self.access_token) or bool(self.refresh_token)

    def is_expired(self, *, skew_seconds: int = EXPIRY_SKEW_SECONDS, now: Optional[datetime] = None) -> bool:
        if self.expiry is None:
            return False
        now_dt = now or datetime.now(timezone.utc)
        return now_dt >= self.expiry - timedelta(seconds=skew_seconds)

    @property
    def is_valid(self) -> bool:
        """True when the access token can be sent as-is."""
        return bool(self.access_token) and not self.is_expired()

    def with_refresh_token(self, refresh_token: Optional[str]) -> "Credential":
        return replace(self, refresh_token=refresh_token)

    @staticmethod
    def from_token_response(payload: Dict[str, Any], *, now: Optional[datetime] = None) -> "Credential":
        """Convert a token-endpoint JSON response into a Credential.

        Google returns:
        - access_token
        - expires_in (seconds)
        - refresh_token (first consent only, when access_type=offline)
        - token_type, scope
        """

        expiry = None
        expires_in = payload.get("expires_in")
        if expires_in not in (None, ""):
            now_dt = now or datetime.now(timezone.utc)
            expiry = now_dt + timedelta(seconds=float(expires_in))

        return Credential(
            access_token=str(payload.get("access_token") or ""),
            refresh_token=payload.get("refresh_token") or None,
            expiry=expiry,
            token_type=str(payload.get("token_type") or "Bearer"),
        )

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Credential":
        return Credential(
            access_token=str(data.get("access_token") or ""),
            refresh_token=data.get("refresh_token") or None,
            expiry=_parse_expiry(data.get("expiry")),
            token_type=str(data.get("token_type") or "Bearer"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "token_type": self.token_type,
            "refresh_token": self.refresh_token or "",
            "expiry": self.expiry.isoformat() if self.expiry else None,
        }


class TokenManager:
    """Single-slot, on-disk persistence of the user's credential.

    The file is owned exclusively by this class. Callers get immutable
    Credential values back and hand changed ones to save().
    """

    def __init__(self, *, token_path: str = DEFAULT_TOKEN_PATH):
        self.token_path = token_path

    def exists(self) -> bool:
        return os.path.exists(self.token_path)

    def load(self) -> Credential:
        try:
            with open(self.token_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise NotFoundError(f"No credential file at {self.token_path}") from e
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DecodeError(f"Credential file {self.token_path} is not valid JSON: {e}") from e
        except OSError as e:
            raise StoreError(f"Could not read credential file {self.token_path}: {e}") from e

        if not isinstance(data, dict):
            raise DecodeError(f"Credential file {self.token_path} does not hold a JSON object")

        try:
            credential = Credential.from_dict(data)
        except (TypeError, ValueError, OverflowError, OSError) as e:
            raise DecodeError(f"Credential file {self.token_path} has a malformed field: {e}") from e

        if not credential.is_usable:
            raise InvalidCredentialError("Stored credential has neither an access token nor a refresh token")

        return credential

    def save(self, credential: Credential) -> None:
        """Replace the stored credential (write temp file, fsync, os.replace)."""
        if not credential.is_usable:
            raise InvalidCredentialError("Refusing to save a credential with neither an access token nor a refresh token")

        directory = os.path.dirname(os.path.abspath(self.token_path))
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".token-", suffix=".tmp", dir=directory)
            # mkstemp already creates the file as 0600.
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(credential.to_dict(), f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.token_path)
            tmp_path = None
        except OSError as e:
            raise StoreError(f"Could not write credential file {self.token_path}: {e}") from e
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.remove(tmp_path)

        logger.debug("Credential saved to %s", self.token_path)

    def delete(self) -> None:
        try:
            os.remove(self.token_path)
        except FileNotFoundError:
            return
        except OSError as e:
            raise StoreError(f"Could not remove credential file {self.token_path}: {e}") from e

        logger.info("Local credential removed (%s)", self.token_path)
