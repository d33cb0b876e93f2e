import json
import os
import tempfile
import unittest

# Ensure local imports work when running this file directly.
THIS_DIR = os.path.dirname(os.path.abspath(__file__))
if THIS_DIR not in os.sys.path:
    os.sys.path.insert(0, THIS_DIR)

from config import DEFAULT_CONFIG, get_config_value, load_config, validate_config


class TestConfig(unittest.TestCase):
    def test_defaults_are_valid(self):
        ok, errors = validate_config(dict(DEFAULT_CONFIG))
        self.assertTrue(ok, errors)

    def test_load_applies_defaults(self):
        with tempfile.TemporaryDirectory() as td:
            path = os.path.join(td, "config.json")
            with open(path, "w", encoding="utf-8") as f:
                json.dump({"youtube_login_timeout": 120}, f)
            config = load_config(path)

        self.assertEqual(config["youtube_login_timeout"], 120)
        self.assertEqual(config["youtube_redirect_uri"], DEFAULT_CONFIG["youtube_redirect_uri"])

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_config(os.path.join(tempfile.gettempdir(), "no-such-dir", "config.json"))

    def test_invalid_values_are_reported(self):
        config = dict(DEFAULT_CONFIG)
        config.update(
            {
                "youtube_login_timeout": 1,
                "youtube_open_browser": "yes",
                "youtube_new_playlist_privacy": "friends",
                "youtube_scopes": ["ok", 3],
                "youtube_shutdown_grace": True,
                "youtube_redirect_uri": "https://example.com/callback",
            }
        )
        ok, errors = validate_config(config)
        self.assertFalse(ok)
        joined = "\n".join(errors)
        for key in (
            "youtube_login_timeout",
            "youtube_open_browser",
            "youtube_new_playlist_privacy",
            "youtube_scopes",
            "youtube_shutdown_grace",
            "youtube_redirect_uri",
        ):
            self.assertIn(key, joined)

    def test_missing_required_field(self):
        config = dict(DEFAULT_CONFIG)
        del config["youtube_token_file"]
        ok, errors = validate_config(config)
        self.assertFalse(ok)
        self.assertIn("Missing required field: youtube_token_file", errors)

    def test_get_config_value_falls_back_to_defaults(self):
        self.assertEqual(get_config_value({}, "youtube_shutdown_grace"), 5)
        self.assertEqual(get_config_value({"youtube_shutdown_grace": 2}, "youtube_shutdown_grace"), 2)
        self.assertEqual(get_config_value({}, "unknown", "x"), "x")


if __name__ == "__main__":
    unittest.main(verbosity=2)
