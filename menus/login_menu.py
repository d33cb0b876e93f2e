import queue
import secrets
import threading
import time
import webbrowser
from typing import Any, Callable, Dict, Optional

import questionary

from config import get_config_value
from utils.logger import log_error, log_info, log_success, log_warning
from youtube_api.auth import YouTubeOAuth, split_redirect_uri
from youtube_api.callback_server import listen_and_serve, new_result_queue
from youtube_api.client_secrets import client_setup_instructions
from youtube_api.errors import (
    CallbackError,
    InvalidCredentialError,
    NotFoundError,
    RevokeError,
    StoreError,
    YouTubeAuthError,
)
from youtube_api.token_manager import Credential

_RESULT_POLL_SECONDS = 0.2


def run_login_flow(
    auth: YouTubeOAuth,
    config: Dict[str, Any],
    *,
    cancel_event: Optional[threading.Event] = None,
    browser_opener: Optional[Callable[[str], Any]] = None,
) -> Credential:
    """Interactive login: consent URL -> browser -> loopback callback -> code exchange.

    Raises CallbackError on timeout, cancellation or a rejected callback, and
    ExchangeError if the code cannot be turned into a saved credential. The
    loopback listener is always stopped before this returns.
    """

    state = secrets.token_urlsafe(24)
    auth_url = auth.generate_auth_url(state)
    host, port, path = split_redirect_uri(auth.redirect_uri)
    timeout = float(get_config_value(config, "youtube_login_timeout"))
    grace = float(get_config_value(config, "youtube_shutdown_grace"))

    cancel = cancel_event or threading.Event()
    results = new_result_queue()
    server = listen_and_serve(cancel, state, host, port, path, results, shutdown_grace=grace)

    try:
        log_info("\n" + "=" * 72)
        log_info("YOUTUBE AUTHENTICATION")
        log_info("=" * 72)
        log_info("Open this link in your browser to sign in:")
        log_info(auth_url)
        log_info("=" * 72)

        if get_config_value(config, "youtube_open_browser"):
            opener = browser_opener or webbrowser.open
            try:
                opener(auth_url)
            except webbrowser.Error as e:
                log_warning(f"Could not open a browser automatically: {e}")

        log_info(f"Waiting for the browser redirect to {server.redirect_uri} ...")
        deadline = time.monotonic() + timeout
        while True:
            if cancel.is_set():
                raise CallbackError("Login cancelled")
            if time.monotonic() >= deadline:
                raise CallbackError(f"Login timed out after {timeout:.0f}s")
            try:
                result = results.get(timeout=_RESULT_POLL_SECONDS)
                break
            except queue.Empty:
                continue
    finally:
        # No effect once a result was delivered; otherwise stops the listener.
        cancel.set()
        server.wait_stopped(grace + 1.0)

    if result.error is not None:
        if isinstance(result.error, CallbackError):
            raise result.error
        raise CallbackError(str(result.error)) from result.error

    return auth.exchange_code_for_token(result.code)


def logout(auth: YouTubeOAuth) -> None:
    """Revoke the stored access token (best effort) and delete the local credential."""

    try:
        credential = auth.token_manager.load()
    except NotFoundError:
        log_info("No stored credential; already logged out.")
        return
    except (InvalidCredentialError, StoreError) as e:
        log_warning(f"Stored credential is unreadable ({e}); removing it.")
        auth.token_manager.delete()
        return

    try:
        auth.revoke_token(credential.access_token)
    except RevokeError as e:
        log_warning(f"Token revocation failed (continuing with local logout): {e}")

    auth.token_manager.delete()
    log_success("Logged out.")


def token_status(auth: YouTubeOAuth) -> str:
    try:
        credential = auth.token_manager.load()
    except NotFoundError:
        return "No stored YouTube credential. Run 'Login with Google' first."
    except YouTubeAuthError as e:
        return f"Stored credential unusable: {e}"

    expiry = credential.expiry.astimezone().strftime("%Y-%m-%d %H:%M:%S") if credential.expiry else "never"
    return (
        f"Credential stored: YES | Expired: {'YES' if credential.is_expired() else 'NO'} | "
        f"Expires at: {expiry} | Refresh token: {'YES' if credential.refresh_token else 'NO'}"
    )


def login_menu(auth: YouTubeOAuth, config: Dict[str, Any]) -> Optional[Credential]:
    """Run one login attempt from the menu; returns the credential or None."""

    try:
        split_redirect_uri(auth.redirect_uri)
    except ValueError as e:
        log_error(f"Invalid redirect URI configuration: {e}")
        return None

    try:
        credential = run_login_flow(auth, config)
    except KeyboardInterrupt:
        log_warning("Login cancelled.")
        return None
    except YouTubeAuthError as e:
        log_error("Login failed. Please try again.", e)
        return None

    log_success("Login successful.")
    return credential


def account_menu(auth: YouTubeOAuth, config: Dict[str, Any]) -> None:
    while True:
        choice = questionary.select(
            "🔐 Account — What would you like to do?",
            choices=[
                "Login with Google",
                "Token status",
                "Logout",
                "OAuth client setup help",
                "Back",
            ],
        ).ask()

        if choice == "Login with Google":
            login_menu(auth, config)

        elif choice == "Token status":
            log_info(token_status(auth))

        elif choice == "Logout":
            if questionary.confirm("Revoke and delete the stored credential?", default=False).ask():
                try:
                    logout(auth)
                except StoreError as e:
                    log_error("Could not remove the local credential.", e)

        elif choice == "OAuth client setup help":
            log_info(client_setup_instructions(redirect_uri=auth.redirect_uri))

        else:
            break
