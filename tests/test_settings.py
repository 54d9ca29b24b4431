# tests/test_settings.py

"""Tests for the Settings configuration class."""

import json
import unittest
from pathlib import Path

from src.config.settings import Settings


class TestSettings(unittest.TestCase):
    """Verify Settings constants."""

    def test_rate_limit_is_positive(self) -> None:
        """At least one request per window is allowed."""
        self.assertIsInstance(Settings.REQUESTS_PER_MINUTE, int)
        self.assertGreaterEqual(Settings.REQUESTS_PER_MINUTE, 1)
        self.assertGreater(Settings.RATE_WINDOW_SECONDS, 0)

    def test_request_timeout_is_positive_int(self) -> None:
        """REQUEST_TIMEOUT must be a positive integer."""
        self.assertIsInstance(Settings.REQUEST_TIMEOUT, int)
        self.assertGreater(Settings.REQUEST_TIMEOUT, 0)

    def test_retry_limits(self) -> None:
        """Retries are bounded and backoff is capped."""
        self.assertGreaterEqual(Settings.MAX_RETRIES, 0)
        self.assertGreater(Settings.BACKOFF_BASE, 0)
        self.assertGreaterEqual(Settings.MAX_BACKOFF, Settings.BACKOFF_BASE)

    def test_retry_codes(self) -> None:
        """429 and 5xx are retried; 403 is treated as blocked."""
        self.assertIn(429, Settings.RETRY_STATUS_CODES)
        self.assertIn(503, Settings.RETRY_STATUS_CODES)
        self.assertNotIn(404, Settings.RETRY_STATUS_CODES)
        self.assertIn(403, Settings.BLOCKED_STATUS_CODES)

    def test_circuit_breaker_threshold_positive(self) -> None:
        """CIRCUIT_BREAKER_THRESHOLD must be >= 1."""
        self.assertGreaterEqual(Settings.CIRCUIT_BREAKER_THRESHOLD, 1)
        self.assertGreater(Settings.CIRCUIT_BREAKER_COOLDOWN, 0)

    def test_alert_threshold_non_negative(self) -> None:
        """The default alert threshold is a usable percentage."""
        self.assertGreaterEqual(Settings.ALERT_THRESHOLD_PERCENT, 0)

    def test_path_constants_are_paths(self) -> None:
        """Path-typed settings are Path instances."""
        for name in (
            "BASE_DIR", "SELECTORS_PATH", "DATA_DIR", "DB_PATH",
            "WATCHLIST_PATH", "CHARTS_DIR", "RESULTS_DIR", "LOGS_DIR",
        ):
            with self.subTest(name=name):
                self.assertIsInstance(getattr(Settings, name), Path)

    def test_selectors_file_is_valid(self) -> None:
        """selectors.json exists and defines the default site."""
        with open(Settings.SELECTORS_PATH, encoding="utf-8") as f:
            data = json.load(f)
        self.assertIn("default", data)
        for site_id, config in data.items():
            with self.subTest(site=site_id):
                self.assertIn("price", config)
                self.assertIsInstance(config.get("domains", []), list)

    def test_impersonate_browser_is_string(self) -> None:
        """IMPERSONATE_BROWSER must be a non-empty string."""
        self.assertIsInstance(Settings.IMPERSONATE_BROWSER, str)
        self.assertTrue(len(Settings.IMPERSONATE_BROWSER) > 0)

    def test_default_headers_has_accept_language(self) -> None:
        """DEFAULT_HEADERS must include Accept-Language."""
        self.assertIn("Accept-Language", Settings.DEFAULT_HEADERS)


if __name__ == "__main__":
    unittest.main()
