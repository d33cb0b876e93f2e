import json

from config import load_config, validate_config
from utils.logger import setup_logging, log_info, log_error, log_warning
from menus.main_menu import main_menu
from menus.login_menu import account_menu, login_menu
from menus.playlists_menu import my_playlists_menu, playlist_by_url_menu
from youtube_api.auth import YouTubeOAuth
from youtube_api.client import YouTubeClient
from youtube_api.client_secrets import client_setup_instructions, load_client_secrets
from youtube_api.errors import ConfigError, YouTubeAuthError
from youtube_api.token_manager import TokenManager


def ensure_logged_in(auth: YouTubeOAuth, config: dict) -> bool:
    """Make sure a usable credential exists, running the login flow if not."""
    try:
        auth.get_valid_credential()
        return True
    except YouTubeAuthError as e:
        log_warning(f"Not logged in: {e}")

    return login_menu(auth, config) is not None


if __name__ == "__main__":
    try:
        config = load_config()
    except FileNotFoundError as e:
        setup_logging()
        log_error(f"Config file not found: {e}")
        log_error("Please create config.json with required settings.")
        exit(1)
    except json.JSONDecodeError as e:
        setup_logging()
        log_error(f"Config file contains invalid JSON: {e}")
        exit(1)

    setup_logging(config["log_dir"], config["log_level"])
    log_info("Application starting...")

    is_valid, errors = validate_config(config)
    if not is_valid:
        for err in errors:
            log_error(err)
        exit(1)

    try:
        client_secrets = load_client_secrets(config["youtube_client_secret_file"])
    except ConfigError as e:
        log_error(f"Failed to initialize auth service: {e}")
        log_info(client_setup_instructions(redirect_uri=config["youtube_redirect_uri"]))
        exit(1)

    auth = YouTubeOAuth(
        config,
        client_secrets,
        token_manager=TokenManager(token_path=config["youtube_token_file"]),
    )
    client = YouTubeClient(auth)

    while True:
        choice = main_menu()

        if choice == "My playlists":
            if ensure_logged_in(auth, config):
                my_playlists_menu(client)

        elif choice == "Open playlist by URL":
            if ensure_logged_in(auth, config):
                playlist_by_url_menu(client)

        elif choice == "Account (login / logout)":
            account_menu(auth, config)

        elif choice == "Exit":
            log_info("Exiting program...")
            break

        else:
            log_error("Invalid choice.")
