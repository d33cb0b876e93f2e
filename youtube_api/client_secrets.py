import json
from dataclasses import dataclass
from typing import Any, Dict

from .errors import ConfigError

GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
GOOGLE_REVOKE_URI = "https://oauth2.googleapis.com/revoke"


@dataclass(frozen=True)
class ClientSecrets:
    """OAuth client descriptor as downloaded from the Google Cloud console."""

    client_id: str
    client_secret: str
    auth_uri: str = GOOGLE_AUTH_URI
    token_uri: str = GOOGLE_TOKEN_URI
    revoke_uri: str = GOOGLE_REVOKE_URI

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "ClientSecrets":
        """Parse the descriptor; accepts the ``installed`` or ``web`` wrapper."""

        if not isinstance(data, dict):
            raise ConfigError("Client secret file must hold a JSON object")

        section = data.get("installed") or data.get("web")
        if not isinstance(section, dict):
            raise ConfigError("Client secret file has no 'installed' or 'web' section")

        client_id = str(section.get("client_id") or "").strip()
        if not client_id:
            raise ConfigError("Client secret file is missing client_id")

        return ClientSecrets(
            client_id=client_id,
            client_secret=str(section.get("client_secret") or "").strip(),
            auth_uri=str(section.get("auth_uri") or GOOGLE_AUTH_URI),
            token_uri=str(section.get("token_uri") or GOOGLE_TOKEN_URI),
            revoke_uri=str(section.get("revoke_uri") or GOOGLE_REVOKE_URI),
        )


def load_client_secrets(path: str) -> ClientSecrets:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigError(f"Could not read client secret file ({path}): {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Client secret file ({path}) is not valid JSON: {e}") from e

    return ClientSecrets.from_dict(data)


def client_setup_instructions(*, redirect_uri: str = "http://localhost:8080/") -> str:
    """Return user-facing setup instructions for creating a Google OAuth client."""

    return (
        "YouTube OAuth client setup:\n"
        "1) Go to https://console.cloud.google.com/apis/credentials\n"
        "2) Enable the 'YouTube Data API v3' for your project\n"
        "3) Create an OAuth client ID of type 'Desktop app'\n"
        f"4) Make sure {redirect_uri} is an allowed redirect URI\n"
        "5) Download the JSON and point youtube_client_secret_file in config.json at it\n"
    )
