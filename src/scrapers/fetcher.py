# src/scrapers/fetcher.py

"""Polite HTTP fetcher with rate limiting, bounded retries and backoff."""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any
from urllib.parse import urlparse

import cloudscraper  # type: ignore[import-untyped]
from curl_cffi import requests as curl_requests

from src.config.settings import Settings
from src.models.scrape_log import (
    STATUS_FAILED,
    STATUS_RETRYABLE,
    STATUS_SUCCESS,
    FetchResult,
)
from src.scrapers.rate_limiter import RateLimiter


@dataclass
class _Circuit:
    """Failure bookkeeping for one host."""

    failures: int = 0
    is_open: bool = False
    opened_at: float = 0.0
    trial_pending: bool = False


def homepage_for(url: str) -> str:
    """Return ``scheme://host/`` for the Referer header."""
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}/"


def parse_retry_after(
    value: str | None, now: datetime | None = None,
) -> float | None:
    """Convert a ``Retry-After`` header to seconds.

    Accepts both delta-seconds and HTTP-date forms. Returns ``None``
    when the header is absent or unreadable.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    current = now or datetime.now(timezone.utc)
    return max(0.0, (when - current).total_seconds())


class HttpFetcher:
    """Fetch pages politely, reporting every outcome as a FetchResult.

    All network calls pass through a shared :class:`RateLimiter`.
    Retryable failures (429, 5xx, transport errors, challenge pages)
    are retried with exponential backoff up to ``max_retries`` times.
    A ``Retry-After`` header on a 429 overrides the computed backoff;
    one longer than ``MAX_BACKOFF`` ends the fetch as ``failed``.
    Waits between retries never decrease within one fetch.

    Hosts that keep failing trip a per-host circuit breaker that
    fails fast until a cooldown has passed, then admits one trial request.
    """

    # Cloudflare challenge page markers (checked before keyword scan)
    _CF_CHALLENGE_MARKERS: list[str] = [
        "challenges.cloudflare.com",
        "cdn-cgi/challenge-platform",
        "just a moment",
        "cf-turnstile",
        "cf_chl_opt",
    ]

    def __init__(
        self,
        rate_limiter: RateLimiter | None = None,
        max_retries: int | None = None,
        session: Any | None = None,
    ) -> None:
        self.logger = logging.getLogger("price_monitor.fetcher")
        self.settings = Settings()
        self.rate_limiter = rate_limiter or RateLimiter(
            self.settings.REQUESTS_PER_MINUTE,
            self.settings.RATE_WINDOW_SECONDS,
        )
        self.max_retries: int = (
            self.settings.MAX_RETRIES
            if max_retries is None
            else max_retries
        )
        self.session = session or curl_requests.Session(
            impersonate=self.settings.IMPERSONATE_BROWSER
        )
        self._request_timeout: int = self.settings.REQUEST_TIMEOUT
        self._circuits: dict[str, _Circuit] = {}
        self._circuit_lock = threading.Lock()

    # ── Response validation ──────────────────────────────

    def _validate_response(self, text: str) -> bool:
        """Check for Cloudflare challenge pages and CAPTCHA indicators."""
        if text.lstrip().startswith(("{", "[")):
            return True
        lower = text.lower()

        for marker in self._CF_CHALLENGE_MARKERS:
            if marker in lower:
                self.logger.warning(
                    "Cloudflare challenge detected (marker: '%s')",
                    marker,
                )
                return False

        # Skip the keyword scan on large pages to avoid false
        # positives from product copy mentioning the words
        has_body_content = "<body" in lower and len(text) > 5000
        if not has_body_content:
            for keyword in self.settings.CAPTCHA_KEYWORDS:
                if keyword in lower:
                    self.logger.warning(
                        "CAPTCHA keyword '%s' detected", keyword,
                    )
                    return False
        return True

    # ── Circuit breaker ──────────────────────────────────

    def _circuit_for(self, url: str) -> _Circuit:
        host = urlparse(url).netloc.lower()
        return self._circuits.setdefault(host, _Circuit())

    def _check_circuit(self, url: str) -> bool:
        """Return True if the circuit breaker blocks this request.

        After CIRCUIT_BREAKER_COOLDOWN seconds the breaker enters
        a half-open state, allowing a single trial request through.
        """
        with self._circuit_lock:
            circuit = self._circuit_for(url)
            if not circuit.is_open:
                return False
            if circuit.trial_pending:
                return True
            elapsed = time.time() - circuit.opened_at
            if elapsed >= self.settings.CIRCUIT_BREAKER_COOLDOWN:
                self.logger.info(
                    "Circuit breaker half-open for %s after %.0fs",
                    urlparse(url).netloc,
                    elapsed,
                )
                circuit.trial_pending = True
                return False
            return True

    def _record_success(self, url: str) -> None:
        """Reset failure counters after a successful fetch."""
        with self._circuit_lock:
            circuit = self._circuit_for(url)
            circuit.failures = 0
            circuit.is_open = False
            circuit.opened_at = 0.0
            circuit.trial_pending = False

    def _record_failure(self, url: str) -> None:
        """Track failure and open the circuit breaker if needed."""
        with self._circuit_lock:
            circuit = self._circuit_for(url)
            circuit.failures += 1
            circuit.trial_pending = False
            threshold = self.settings.CIRCUIT_BREAKER_THRESHOLD
            if circuit.failures >= threshold:
                circuit.is_open = True
                circuit.opened_at = time.time()
                self.logger.error(
                    "Circuit breaker opened for %s after %d "
                    "consecutive failures",
                    urlparse(url).netloc,
                    circuit.failures,
                )

    def is_circuit_open(self, url: str) -> bool:
        """Whether requests to *url*'s host are currently blocked."""
        with self._circuit_lock:
            return self._circuit_for(url).is_open

    # ── Backoff ──────────────────────────────────────────

    def _backoff_delay(self, retry_index: int) -> float:
        """Exponential backoff for the given zero-based retry."""
        delay = self.settings.BACKOFF_BASE * (2 ** retry_index)
        return min(delay, self.settings.MAX_BACKOFF)

    # ── Fetching ─────────────────────────────────────────

    def _fallback_fetch(
        self, url: str, headers: dict[str, str],
    ) -> str | None:
        """One cloudscraper attempt after curl_cffi was blocked."""
        self.logger.info(
            "curl_cffi blocked on %s, falling back to cloudscraper",
            url,
        )
        self.rate_limiter.acquire()
        try:
            _cs: Any = cloudscraper
            scraper: Any = _cs.create_scraper()
            resp: Any = scraper.get(
                url,
                headers=headers,
                timeout=self._request_timeout,
            )
            if resp.status_code == 200 and self._validate_response(
                str(resp.text)
            ):
                return str(resp.text)
            self.logger.warning(
                "cloudscraper fallback got HTTP %d for %s",
                resp.status_code,
                url,
            )
        except Exception as exc:
            self.logger.error(
                "cloudscraper fallback also failed for %s: %s",
                url,
                exc,
                exc_info=True,
            )
        return None

    def fetch(
        self,
        url: str,
        headers: dict[str, str] | None = None,
    ) -> FetchResult:
        """GET *url* with rate limiting, retries and backoff.

        Never raises. The result's ``status`` is ``success``,
        ``retryable`` (skipped because the host's circuit is open) or
        ``failed`` (terminal, retries exhausted or non-retryable).
        """
        start = time.monotonic()
        if self._check_circuit(url):
            self.logger.warning(
                "Circuit open, skipping %s", url,
            )
            return FetchResult(
                url=url,
                status=STATUS_RETRYABLE,
                error="circuit breaker open",
            )

        request_headers: dict[str, str] = {
            **self.settings.DEFAULT_HEADERS,
            "Referer": homepage_for(url),
            **(headers or {}),
        }
        waits: list[float] = []
        last_wait = 0.0
        status_code: int | None = None
        error: str | None = None
        blocked_every_time = True
        attempts = 0

        for attempt in range(self.max_retries + 1):
            attempts = attempt + 1
            self.rate_limiter.acquire()
            retry_after: float | None = None
            try:
                resp = self.session.get(
                    url,
                    headers=request_headers,
                    timeout=self._request_timeout,
                )
            except Exception as exc:
                status_code = None
                error = f"{type(exc).__name__}: {exc}"
                blocked_every_time = False
                self.logger.warning(
                    "Request error on attempt %d for %s: %s",
                    attempts,
                    url,
                    exc,
                    exc_info=True,
                )
            else:
                status_code = resp.status_code
                if status_code == 200:
                    if self._validate_response(resp.text):
                        self._record_success(url)
                        return FetchResult(
                            url=url,
                            status=STATUS_SUCCESS,
                            status_code=200,
                            text=resp.text,
                            attempts=attempts,
                            elapsed=time.monotonic() - start,
                            waits=waits,
                        )
                    error = "blocked by challenge page"
                elif status_code in self.settings.BLOCKED_STATUS_CODES:
                    error = f"HTTP {status_code}"
                elif status_code in self.settings.RETRY_STATUS_CODES:
                    error = f"HTTP {status_code}"
                    blocked_every_time = False
                    if status_code == 429:
                        retry_after = parse_retry_after(
                            resp.headers.get("Retry-After")
                        )
                    if (
                        retry_after is not None
                        and retry_after > self.settings.MAX_BACKOFF
                    ):
                        error = (
                            f"Retry-After {retry_after:.0f}s exceeds cap"
                        )
                        self.logger.warning(
                            "%s for %s, not retrying", error, url,
                        )
                        self._record_failure(url)
                        return FetchResult(
                            url=url,
                            status=STATUS_FAILED,
                            status_code=status_code,
                            attempts=attempts,
                            elapsed=time.monotonic() - start,
                            waits=waits,
                            error=error,
                        )
                else:
                    self.logger.warning(
                        "HTTP %d for %s is not retryable",
                        status_code,
                        url,
                    )
                    self._record_failure(url)
                    return FetchResult(
                        url=url,
                        status=STATUS_FAILED,
                        status_code=status_code,
                        attempts=attempts,
                        elapsed=time.monotonic() - start,
                        waits=waits,
                        error=f"HTTP {status_code}",
                    )
                self.logger.warning(
                    "%s on attempt %d for %s",
                    error,
                    attempts,
                    url,
                )

            if attempt == self.max_retries:
                break

            wait = (
                retry_after
                if retry_after is not None
                else self._backoff_delay(attempt)
            )
            wait = max(wait, last_wait)
            waits.append(wait)
            last_wait = wait
            self.logger.debug(
                "Backing off %.2fs before retry %d for %s",
                wait,
                attempt + 1,
                url,
            )
            time.sleep(wait)

        if blocked_every_time and self.settings.CLOUDSCRAPER_FALLBACK:
            text = self._fallback_fetch(url, request_headers)
            if text is not None:
                self._record_success(url)
                return FetchResult(
                    url=url,
                    status=STATUS_SUCCESS,
                    status_code=200,
                    text=text,
                    attempts=attempts + 1,
                    elapsed=time.monotonic() - start,
                    waits=waits,
                )

        self.logger.error(
            "Giving up on %s after %d attempts: %s",
            url,
            attempts,
            error,
        )
        self._record_failure(url)
        return FetchResult(
            url=url,
            status=STATUS_FAILED,
            status_code=status_code,
            attempts=attempts,
            elapsed=time.monotonic() - start,
            waits=waits,
            error=error,
        )


_shared_fetcher: HttpFetcher | None = None
_shared_fetcher_lock = threading.Lock()


def shared_fetcher() -> HttpFetcher:
    """Return the process-wide fetcher.

    Every monitoring pass that does not bring its own fetcher uses
    this one, so passes share one rate window and one circuit map.
    """
    global _shared_fetcher
    with _shared_fetcher_lock:
        if _shared_fetcher is None:
            _shared_fetcher = HttpFetcher()
        return _shared_fetcher
