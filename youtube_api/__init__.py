"""YouTube Data API integration (OAuth authorization code + loopback redirect).

Future integration points:
- menus/login_menu.py (interactive login/logout)
- menus/playlists_menu.py (playlist browsing + reorder)
"""

from .auth import YouTubeOAuth
from .callback_server import CallbackResult, CallbackServer, listen_and_serve
from .client import YouTubeClient
from .client_secrets import ClientSecrets, load_client_secrets
from .token_manager import Credential, TokenManager

__all__ = [
    "YouTubeOAuth",
    "CallbackResult",
    "CallbackServer",
    "listen_and_serve",
    "YouTubeClient",
    "ClientSecrets",
    "load_client_secrets",
    "Credential",
    "TokenManager",
]
