# src/models/scrape_log.py

"""Fetch outcome models shared by the fetcher, monitor and store."""

from dataclasses import dataclass, field
from datetime import datetime

STATUS_SUCCESS = "success"
STATUS_RETRYABLE = "retryable"
STATUS_FAILED = "failed"


@dataclass
class FetchResult:
    """Outcome of one polite fetch, including every retry it took."""

    url: str
    status: str
    status_code: int | None = None
    text: str = ""
    attempts: int = 0
    elapsed: float = 0.0
    waits: list[float] = field(
        default_factory=lambda: list[float]()
    )
    error: str | None = None

    @property
    def ok(self) -> bool:
        """True when the page body is usable."""
        return self.status == STATUS_SUCCESS


@dataclass
class ScrapeLogEntry:
    """One row of the append-only scrape log."""

    url: str
    status: str
    elapsed: float
    timestamp: datetime
    error: str | None = None
    status_code: int | None = None
    attempts: int = 0
