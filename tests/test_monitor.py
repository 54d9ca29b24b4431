# tests/test_monitor.py

"""Tests for the PriceMonitor fetch, extract and store pipeline."""

import asyncio
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from src.config.watchlist import WatchItem
from src.models.scrape_log import (
    STATUS_FAILED,
    STATUS_RETRYABLE,
    STATUS_SUCCESS,
    FetchResult,
)
from src.scrapers.extractor import Extractor, load_selectors
from src.scrapers.rate_limiter import RateLimiter
from src.services.monitor import PriceMonitor
from src.storage.product_store import ProductStore

URL_A = "https://books.toscrape.com/catalogue/a_1/index.html"
URL_B = "https://books.toscrape.com/catalogue/b_2/index.html"
URL_C = "https://books.toscrape.com/catalogue/c_3/index.html"


def _book_page(title: str, price: str | None) -> str:
    """Render a minimal books.toscrape.com product page."""
    price_html = f'<p class="price_color">{price}</p>' if price else ""
    return (
        "<html><body><div class='product_main'>"
        f"<h1>{title}</h1>{price_html}"
        "<p class='availability'>In stock</p>"
        "</div></body></html>"
    )


def _ok(url: str, html: str) -> FetchResult:
    return FetchResult(
        url=url, status=STATUS_SUCCESS, status_code=200,
        text=html, attempts=1, elapsed=0.1,
    )


def _failed(url: str, error: str = "HTTP 503") -> FetchResult:
    return FetchResult(
        url=url, status=STATUS_FAILED, status_code=503,
        attempts=4, elapsed=7.0, waits=[1.0, 2.0, 4.0], error=error,
    )


class TestPriceMonitor(unittest.TestCase):
    """Pipeline tests with a fake fetcher and a real store."""

    def setUp(self) -> None:
        self.tmp_dir = tempfile.mkdtemp()
        self.store = ProductStore(db_path=Path(self.tmp_dir) / "m.db")
        self.pages: dict[str, FetchResult] = {}
        self.fetcher = MagicMock()
        self.fetcher.fetch.side_effect = lambda url: self.pages[url]
        self.monitor = PriceMonitor(
            self.store,
            fetcher=self.fetcher,
            extractor=Extractor(load_selectors()),
        )

    def tearDown(self) -> None:
        self.store.close()
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    # ── check_url ────────────────────────────────────────

    def test_first_check_creates_product(self) -> None:
        """A successful first check stores product and history."""
        self.pages[URL_A] = _ok(URL_A, _book_page("Alpha", "£20.00"))
        outcome = self.monitor.check_url(URL_A)

        self.assertTrue(outcome.ok)
        self.assertTrue(outcome.created)
        assert outcome.product is not None
        self.assertEqual(outcome.product.title, "Alpha")
        self.assertEqual(outcome.product.price, 20.0)
        self.assertEqual(outcome.product.currency, "GBP")
        self.assertEqual(len(self.store.get_price_history(URL_A)), 1)

        log = self.store.get_scrape_log()
        self.assertEqual(len(log), 1)
        self.assertEqual(log[0].status, STATUS_SUCCESS)
        self.assertEqual(log[0].status_code, 200)

    def test_price_change_detected(self) -> None:
        """A second check at a new price reports the change."""
        self.pages[URL_A] = _ok(URL_A, _book_page("Alpha", "£20.00"))
        self.monitor.check_url(URL_A)
        self.pages[URL_A] = _ok(URL_A, _book_page("Alpha", "£15.00"))
        outcome = self.monitor.check_url(URL_A)

        self.assertFalse(outcome.created)
        self.assertTrue(outcome.price_changed)
        self.assertEqual(outcome.previous_price, 20.0)

    def test_fetch_failure_is_recorded(self) -> None:
        """A failed fetch leaves products alone and logs the failure."""
        self.pages[URL_A] = _failed(URL_A)
        outcome = self.monitor.check_url(URL_A)

        self.assertEqual(outcome.status, STATUS_FAILED)
        self.assertEqual(outcome.error, "HTTP 503")
        self.assertIsNone(self.store.get_product(URL_A))

        log = self.store.get_scrape_log()
        self.assertEqual(log[0].status, STATUS_FAILED)
        self.assertEqual(log[0].attempts, 4)
        self.assertEqual(log[0].error, "HTTP 503")

    def test_circuit_skip_is_logged_as_retryable(self) -> None:
        """A skipped fetch keeps its retryable status."""
        self.pages[URL_A] = FetchResult(
            url=URL_A, status=STATUS_RETRYABLE,
            error="circuit breaker open",
        )
        outcome = self.monitor.check_url(URL_A)
        self.assertFalse(outcome.ok)
        self.assertEqual(
            self.store.get_scrape_log()[0].status, STATUS_RETRYABLE,
        )

    def test_missing_price_is_success_with_note(self) -> None:
        """A page without a price is stored but flagged."""
        self.pages[URL_A] = _ok(URL_A, _book_page("Alpha", None))
        outcome = self.monitor.check_url(URL_A)

        self.assertTrue(outcome.ok)
        self.assertEqual(outcome.error, "no price found")
        self.assertEqual(self.store.get_price_history(URL_A), [])

    def test_extraction_error_is_contained(self) -> None:
        """An extractor crash becomes a failed outcome."""
        self.pages[URL_A] = _ok(URL_A, "<html></html>")
        self.monitor.extractor = MagicMock()
        self.monitor.extractor.extract.side_effect = RuntimeError("bad")

        outcome = self.monitor.check_url(URL_A)

        self.assertEqual(outcome.status, STATUS_FAILED)
        self.assertEqual(outcome.error, "processing failed: bad")
        self.assertEqual(
            self.store.get_scrape_log()[0].status, STATUS_FAILED,
        )

    def test_explicit_site_is_used(self) -> None:
        """A watch item's site overrides domain matching."""
        self.pages["https://mirror.test/a"] = _ok(
            "https://mirror.test/a", _book_page("Alpha", "£9.99"),
        )
        outcome = self.monitor.check_url(
            "https://mirror.test/a", site="books_toscrape",
        )
        assert outcome.product is not None
        self.assertEqual(outcome.product.site, "books_toscrape")
        self.assertEqual(outcome.product.price, 9.99)

    # ── Passes ───────────────────────────────────────────

    def _three_pages(self) -> None:
        self.pages[URL_A] = _ok(URL_A, _book_page("Alpha", "£20.00"))
        self.pages[URL_B] = _failed(URL_B)
        self.pages[URL_C] = _ok(URL_C, _book_page("Gamma", None))

    def test_run_isolates_failures(self) -> None:
        """One failing URL does not stop the others."""
        self._three_pages()
        report = self.monitor.run([URL_A, WatchItem(url=URL_B), URL_C])

        self.assertEqual(report.checked, 3)
        self.assertEqual(report.succeeded, 2)
        self.assertEqual(report.failed, 1)
        self.assertEqual(report.new_products, 2)
        self.assertEqual(report.missing_prices, 1)
        self.assertEqual(report.errors, [f"{URL_B}: HTTP 503"])
        self.assertEqual(len(self.store.get_scrape_log()), 3)

    def test_run_reports_alerts_from_this_pass(self) -> None:
        """Threshold-crossing moves found in the pass are returned."""
        self.pages[URL_A] = _ok(URL_A, _book_page("Alpha", "£20.00"))
        first = self.monitor.run([URL_A])
        self.assertEqual(first.alerts, [])
        self.assertEqual(first.price_changes, 0)

        self.pages[URL_A] = _ok(URL_A, _book_page("Alpha", "£10.00"))
        second = self.monitor.run([URL_A])

        self.assertEqual(second.price_changes, 1)
        self.assertEqual(len(second.alerts), 1)
        self.assertEqual(second.alerts[0].change_percent, -50.0)
        self.assertEqual(second.alerts[0].title, "Alpha")

    def test_run_concurrent_matches_sequential(self) -> None:
        """The worker-pool pass produces the same tallies."""
        self._three_pages()
        report = asyncio.run(
            self.monitor.run_concurrent(
                [URL_A, URL_B, URL_C], max_workers=2,
            )
        )

        self.assertEqual(report.checked, 3)
        self.assertEqual(report.succeeded, 2)
        self.assertEqual(report.failed, 1)
        self.assertEqual(
            [o.url for o in report.outcomes], [URL_A, URL_B, URL_C],
        )
        self.assertEqual(len(self.store.list_products()), 2)

    def test_run_concurrent_contains_crashes(self) -> None:
        """An exception escaping a check becomes a failed outcome."""
        self.pages[URL_A] = _ok(URL_A, _book_page("Alpha", "£20.00"))

        def fetch(url: str) -> FetchResult:
            if url == URL_B:
                raise RuntimeError("worker died")
            return self.pages[url]

        self.fetcher.fetch.side_effect = fetch
        report = asyncio.run(self.monitor.run_concurrent([URL_A, URL_B]))

        self.assertEqual(report.succeeded, 1)
        self.assertEqual(report.failed, 1)
        self.assertEqual(report.outcomes[1].error, "worker died")

    def test_empty_pass(self) -> None:
        """No items means an empty report."""
        report = self.monitor.run([])
        self.assertEqual(report.checked, 0)
        self.assertEqual(report.alerts, [])
        self.fetcher.fetch.assert_not_called()


class TestSharedRequestWindow(unittest.TestCase):
    """Monitors built without a fetcher share one rate window."""

    def setUp(self) -> None:
        self.tmp_dir = tempfile.mkdtemp()
        self.store = ProductStore(db_path=Path(self.tmp_dir) / "w.db")
        self.now = 0.0
        self.sleeps: list[float] = []

        def get(url: str, **_kwargs: object) -> MagicMock:
            resp = MagicMock()
            resp.status_code = 200
            resp.text = _book_page(url.rsplit("/", 2)[-2], "£5.00")
            resp.headers = {}
            return resp

        session = MagicMock()
        session.get.side_effect = get
        for target, kwargs in (
            ("src.scrapers.fetcher._shared_fetcher", {"new": None}),
            (
                "src.scrapers.fetcher.curl_requests.Session",
                {"return_value": session},
            ),
        ):
            patcher = patch(target, **kwargs)
            patcher.start()
            self.addCleanup(patcher.stop)

    def tearDown(self) -> None:
        self.store.close()
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    def _clock(self) -> float:
        return self.now

    def _sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def _monitor(self) -> PriceMonitor:
        return PriceMonitor(self.store, extractor=Extractor(load_selectors()))

    def test_second_pass_waits_for_first_pass_window(self) -> None:
        """A new pass cannot reuse request slots spent by the last one."""
        first = self._monitor()
        first.fetcher.rate_limiter = RateLimiter(
            2, 60.0, clock=self._clock, sleep=self._sleep,
        )
        self.assertEqual(first.run([URL_A, URL_B]).succeeded, 2)
        self.assertEqual(self.sleeps, [])

        second = self._monitor()
        self.assertIs(second.fetcher, first.fetcher)
        self.assertIs(
            second.fetcher.rate_limiter, first.fetcher.rate_limiter,
        )
        report = second.run([URL_C])

        self.assertEqual(report.succeeded, 1)
        self.assertEqual(self.sleeps, [60.0])


if __name__ == "__main__":
    unittest.main()
