import json
import os
from typing import Any, Dict

CONFIG_PATH = "config.json"

# Default configuration values
DEFAULT_CONFIG = {
    # YouTube Data API (OAuth authorization code + loopback redirect)
    "youtube_client_secret_file": "client_secret.json",
    "youtube_token_file": "data/token.json",
    "youtube_redirect_uri": "http://localhost:8080/",
    "youtube_scopes": [
        "https://www.googleapis.com/auth/youtube",
    ],
    "youtube_login_timeout": 300,
    "youtube_shutdown_grace": 5,
    "youtube_open_browser": True,
    "youtube_new_playlist_privacy": "public",
    "youtube_max_retries": 3,
    "youtube_backoff_base": 1.0,

    # Logging
    "log_dir": "logs",
    "log_level": "INFO",
}

# Validation rules for config fields
CONFIG_SCHEMA = {
    "youtube_client_secret_file": {"type": str, "required": True},
    "youtube_token_file": {"type": str, "required": True},
    "youtube_redirect_uri": {"type": str, "required": True},
    "youtube_scopes": {"type": list, "required": False, "element_type": str},
    "youtube_login_timeout": {"type": (int, float), "required": False, "min": 10, "max": 3600},
    "youtube_shutdown_grace": {"type": (int, float), "required": False, "min": 0, "max": 60},
    "youtube_open_browser": {"type": bool, "required": False},
    "youtube_new_playlist_privacy": {"type": str, "required": False, "choices": ["public", "unlisted", "private"]},
    "youtube_max_retries": {"type": int, "required": False, "min": 0, "max": 10},
    "youtube_backoff_base": {"type": (int, float), "required": False, "min": 0, "max": 10},

    "log_dir": {"type": str, "required": False},
    "log_level": {"type": str, "required": False, "choices": ["DEBUG", "INFO", "WARNING", "ERROR"]},
}


def load_config(path: str = CONFIG_PATH) -> Dict[str, Any]:
    """Load configuration from file, applying defaults for missing fields."""
    if not os.path.exists(path):
        raise FileNotFoundError(f"Config file {path} not found.")

    with open(path, "r", encoding="utf-8") as f:
        config = json.load(f)

    # Apply defaults for missing fields
    for key, value in DEFAULT_CONFIG.items():
        if key not in config:
            config[key] = value

    return config


def validate_config(config: Dict[str, Any]) -> tuple[bool, list[str]]:
    """
    Validate configuration against schema.
    Returns (is_valid, list_of_errors).
    """
    errors = []

    for key, rules in CONFIG_SCHEMA.items():
        # Check required fields
        if rules.get("required", False) and key not in config:
            errors.append(f"Missing required field: {key}")
            continue

        if key not in config:
            continue

        value = config[key]

        # bool is an int subclass; don't let True pass as a number.
        expected_type = rules.get("type")
        if expected_type and (
            not isinstance(value, expected_type)
            or (isinstance(value, bool) and expected_type is not bool)
        ):
            type_names = expected_type.__name__ if not isinstance(expected_type, tuple) else "/".join(t.__name__ for t in expected_type)
            errors.append(f"Field '{key}' must be {type_names}, got {type(value).__name__}")
            continue

        # List element type check (when schema uses: {"type": list, "element_type": ...})
        if isinstance(value, list) and "element_type" in rules:
            elem_type = rules["element_type"]
            bad_elems = [v for v in value if not isinstance(v, elem_type)]
            if bad_elems:
                errors.append(
                    f"Field '{key}' must be a list of {elem_type.__name__}, got invalid elements: {bad_elems}"
                )
                continue

        # Choices check
        if "choices" in rules and value not in rules["choices"]:
            errors.append(f"Field '{key}' must be one of {rules['choices']}, got '{value}'")

        # Range check for numeric values
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            if "min" in rules and value < rules["min"]:
                errors.append(f"Field '{key}' must be >= {rules['min']}, got {value}")
            if "max" in rules and value > rules["max"]:
                errors.append(f"Field '{key}' must be <= {rules['max']}, got {value}")

    redirect_uri = config.get("youtube_redirect_uri")
    if isinstance(redirect_uri, str) and not redirect_uri.startswith("http://"):
        errors.append(f"Field 'youtube_redirect_uri' must be an http:// loopback URL, got '{redirect_uri}'")

    return len(errors) == 0, errors


def get_config_value(config: Dict[str, Any], key: str, default: Any = None) -> Any:
    """Get a single config value, falling back to DEFAULT_CONFIG then ``default``."""
    if key in config:
        return config[key]
    return DEFAULT_CONFIG.get(key, default)
