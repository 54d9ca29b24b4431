# src/services/monitor.py

"""Drive fetch → extract → parse → store for every watched URL."""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime

from src.config.settings import Settings
from src.config.watchlist import WatchItem
from src.models.alert import PriceAlert
from src.models.product import Product
from src.models.scrape_log import (
    STATUS_FAILED,
    STATUS_SUCCESS,
    ScrapeLogEntry,
)
from src.scrapers.extractor import Extractor
from src.scrapers.fetcher import HttpFetcher, shared_fetcher
from src.services.analyzer import PriceAnalyzer
from src.storage.product_store import ProductStore

logger = logging.getLogger("price_monitor.monitor")


@dataclass
class CheckOutcome:
    """Result of checking a single product URL."""

    url: str
    status: str
    product: Product | None = None
    created: bool = False
    price_changed: bool = False
    previous_price: float | None = None
    error: str | None = None
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == STATUS_SUCCESS


@dataclass
class RunReport:
    """Container for a completed monitoring pass."""

    started_at: datetime
    outcomes: list[CheckOutcome] = field(
        default_factory=lambda: list[CheckOutcome]()
    )
    alerts: list[PriceAlert] = field(
        default_factory=lambda: list[PriceAlert]()
    )
    errors: list[str] = field(
        default_factory=lambda: list[str]()
    )

    @property
    def checked(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.ok)

    @property
    def price_changes(self) -> int:
        return sum(
            1 for o in self.outcomes if o.price_changed and not o.created
        )

    @property
    def new_products(self) -> int:
        return sum(1 for o in self.outcomes if o.created)

    @property
    def missing_prices(self) -> int:
        return sum(
            1
            for o in self.outcomes
            if o.ok and o.product is not None and o.product.price is None
        )


def _as_watch_items(
    items: Sequence[WatchItem | str],
) -> list[WatchItem]:
    """Accept bare URLs alongside WatchItems."""
    return [
        item if isinstance(item, WatchItem) else WatchItem(url=item)
        for item in items
    ]


class PriceMonitor:
    """Coordinates the fetcher, extractor and store for a pass."""

    def __init__(
        self,
        store: ProductStore,
        fetcher: HttpFetcher | None = None,
        extractor: Extractor | None = None,
    ) -> None:
        self.settings = Settings()
        self.store = store
        self.fetcher = fetcher or shared_fetcher()
        self.extractor = extractor or Extractor()
        self.analyzer = PriceAnalyzer(store)

    # ── Single URL ───────────────────────────────────────

    def check_url(
        self, url: str, site: str | None = None,
    ) -> CheckOutcome:
        """Fetch, extract and store one product page.

        Failures are logged and recorded in the scrape log; they are
        reported in the outcome rather than raised.
        """
        fetched = self.fetcher.fetch(url)
        outcome = CheckOutcome(
            url=url,
            status=fetched.status,
            error=fetched.error,
            elapsed=fetched.elapsed,
        )

        if fetched.ok:
            try:
                product = self.extractor.extract(
                    url, fetched.text, site,
                )
                result = self.store.upsert_product(product)
            except Exception as exc:
                logger.error(
                    "Failed to process %s: %s", url, exc, exc_info=True,
                )
                outcome.status = STATUS_FAILED
                outcome.error = f"processing failed: {exc}"
            else:
                outcome.product = result.product
                outcome.created = result.created
                outcome.price_changed = result.price_changed
                outcome.previous_price = result.previous_price
                if product.price is None:
                    outcome.error = "no price found"
        else:
            logger.warning(
                "Fetch %s for %s: %s", fetched.status, url, fetched.error,
            )

        try:
            self.store.log_scrape(
                ScrapeLogEntry(
                    url=url,
                    status=outcome.status,
                    elapsed=fetched.elapsed,
                    timestamp=datetime.now(),
                    error=outcome.error,
                    status_code=fetched.status_code,
                    attempts=fetched.attempts,
                )
            )
        except Exception as exc:
            logger.error(
                "Could not write scrape log for %s: %s",
                url,
                exc,
                exc_info=True,
            )
        return outcome

    def _finish(self, report: RunReport) -> RunReport:
        """Scan for alerts raised during this pass and log a summary."""
        try:
            report.alerts = self.analyzer.scan_alerts(
                since=report.started_at,
            )
        except Exception as exc:
            logger.error("Alert scan failed: %s", exc, exc_info=True)
            report.errors.append(f"alert scan failed: {exc}")

        logger.info(
            "Run finished: %d checked, %d ok, %d failed, "
            "%d price changes, %d new, %d alerts",
            report.checked,
            report.succeeded,
            report.failed,
            report.price_changes,
            report.new_products,
            len(report.alerts),
        )
        return report

    # ── Sequential pass ──────────────────────────────────

    def run(self, items: Sequence[WatchItem | str]) -> RunReport:
        """Check every item one after another."""
        report = RunReport(started_at=datetime.now())
        for item in _as_watch_items(items):
            outcome = self.check_url(item.url, item.site)
            report.outcomes.append(outcome)
            if not outcome.ok:
                report.errors.append(f"{item.url}: {outcome.error}")
        return self._finish(report)

    # ── Concurrent pass ──────────────────────────────────

    async def run_concurrent(
        self,
        items: Sequence[WatchItem | str],
        max_workers: int | None = None,
    ) -> RunReport:
        """Check items on worker threads, at most ``max_workers`` at once.

        The shared rate limiter still bounds the overall request rate.
        """
        workers = max_workers or self.settings.MAX_WORKERS
        semaphore = asyncio.Semaphore(max(1, workers))
        watch_items = _as_watch_items(items)
        report = RunReport(started_at=datetime.now())

        async def run_one(item: WatchItem) -> CheckOutcome:
            async with semaphore:
                return await asyncio.to_thread(
                    self.check_url, item.url, item.site,
                )

        results = await asyncio.gather(
            *(run_one(item) for item in watch_items),
            return_exceptions=True,
        )

        for item, result in zip(watch_items, results):
            if isinstance(result, CheckOutcome):
                report.outcomes.append(result)
                if not result.ok:
                    report.errors.append(f"{item.url}: {result.error}")
            elif isinstance(result, BaseException):
                logger.error(
                    "Check crashed for %s: %s",
                    item.url,
                    result,
                    exc_info=result,
                )
                report.outcomes.append(
                    CheckOutcome(
                        url=item.url,
                        status=STATUS_FAILED,
                        error=str(result),
                    )
                )
                report.errors.append(f"{item.url}: {result}")

        return self._finish(report)
