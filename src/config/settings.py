# src/config/settings.py

"""Central configuration for the price_monitor engine."""

import os
from pathlib import Path

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: float) -> float:
    """Read a float override from the environment (.env included)."""
    raw = os.getenv(name)
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    """Read an int override from the environment (.env included)."""
    raw = os.getenv(name)
    return int(raw) if raw else default


class Settings:
    """Central configuration for the price_monitor engine."""

    # --- Rate limiting ---
    REQUESTS_PER_MINUTE: int = _env_int(
        "PRICE_MONITOR_REQUESTS_PER_MINUTE", 30
    )
    RATE_WINDOW_SECONDS: float = 60.0   # Trailing window for the limiter

    # --- Fetching ---
    REQUEST_TIMEOUT: int = _env_int("PRICE_MONITOR_TIMEOUT", 15)
    MAX_RETRIES: int = _env_int("PRICE_MONITOR_MAX_RETRIES", 3)
    BACKOFF_BASE: float = _env_float("PRICE_MONITOR_BACKOFF_BASE", 1.0)
    MAX_BACKOFF: float = 60.0           # Cap for any single retry wait
    RETRY_STATUS_CODES: frozenset[int] = frozenset(
        {429, 500, 502, 503, 504}
    )
    BLOCKED_STATUS_CODES: frozenset[int] = frozenset({403})

    # --- Resilience ---
    CIRCUIT_BREAKER_THRESHOLD: int = 3  # Consecutive failures to trip
    CIRCUIT_BREAKER_COOLDOWN: float = 300.0
    CLOUDSCRAPER_FALLBACK: bool = True
    CAPTCHA_KEYWORDS: list[str] = [
        "captcha",
        "verify you are human",
        "unusual traffic",
        "automated requests",
    ]

    # --- Monitoring ---
    MAX_WORKERS: int = _env_int("PRICE_MONITOR_MAX_WORKERS", 4)
    ALERT_THRESHOLD_PERCENT: float = _env_float(
        "PRICE_MONITOR_ALERT_THRESHOLD", 5.0
    )
    DEFAULT_CURRENCY: str = os.getenv(
        "PRICE_MONITOR_DEFAULT_CURRENCY", "USD"
    )

    # --- Browser Impersonation ---
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": (
            "text/html,application/xhtml+xml,"
            "application/xml;q=0.9,image/avif,"
            "image/webp,image/apng,*/*;q=0.8"
        ),
        "Accept-Language": "en-US,en;q=0.9",
        "sec-ch-ua": (
            '"Google Chrome";v="131", '
            '"Chromium";v="131", '
            '"Not_A Brand";v="24"'
        ),
        "sec-ch-ua-mobile": "?0",
        "sec-ch-ua-platform": '"Windows"',
        "sec-fetch-dest": "document",
        "sec-fetch-mode": "navigate",
        "sec-fetch-site": "none",
        "sec-fetch-user": "?1",
        "Upgrade-Insecure-Requests": "1",
    }

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    SELECTORS_PATH: Path = BASE_DIR / "src" / "config" / "selectors.json"
    DATA_DIR: Path = Path(
        os.getenv("PRICE_MONITOR_DATA_DIR", str(BASE_DIR / "data"))
    )
    DB_PATH: Path = DATA_DIR / "price_monitor.db"
    WATCHLIST_PATH: Path = DATA_DIR / "watchlist.json"
    CHARTS_DIR: Path = DATA_DIR / "charts"
    RESULTS_DIR: Path = BASE_DIR / "results"
    LOGS_DIR: Path = BASE_DIR / "logs"
    LOG_RETENTION: int = _env_int("PRICE_MONITOR_LOG_RETENTION", 30)
