# src/storage/product_store.py

"""SQLite-backed product store with append-only price history."""

import logging
import re
import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from pathlib import Path
from types import TracebackType
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from src.config.settings import Settings
from src.models.price_history import PriceHistoryEntry
from src.models.product import Product
from src.models.scrape_log import STATUS_SUCCESS, ScrapeLogEntry

logger = logging.getLogger("price_monitor.store")

# Marketplace tracking params that vary per session
_TRACKING_PARAMS: frozenset[str] = frozenset({
    "ref", "ref_", "dib", "dib_tag", "qid", "sr", "spc",
    "sp_csd", "xpid", "aref", "sp_cr", "psc",
    "keywords", "pd_rd_i", "pd_rd_r", "pd_rd_w",
    "pd_rd_wg", "pf_rd_i", "pf_rd_m", "pf_rd_p",
    "pf_rd_r", "pf_rd_s", "pf_rd_t", "th",
    "utm_source", "utm_medium", "utm_campaign",
    "utm_term", "utm_content", "gclid", "fbclid",
    "_trkparms", "_trksid", "hash",
})

_CENT = Decimal("0.01")

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS products (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    url          TEXT    NOT NULL UNIQUE,
    site         TEXT    NOT NULL DEFAULT '',
    title        TEXT    NOT NULL DEFAULT '',
    price        REAL,
    currency     TEXT    NOT NULL DEFAULT '',
    availability TEXT    NOT NULL DEFAULT '',
    description  TEXT    NOT NULL DEFAULT '',
    first_seen   TEXT    NOT NULL,
    last_updated TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS price_history (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    product_id  INTEGER NOT NULL
                REFERENCES products(id) ON DELETE CASCADE,
    price       REAL    NOT NULL,
    currency    TEXT    NOT NULL DEFAULT '',
    recorded_at TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_history_product_date
    ON price_history(product_id, recorded_at);

CREATE TABLE IF NOT EXISTS scrape_log (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    url         TEXT    NOT NULL,
    status      TEXT    NOT NULL,
    status_code INTEGER,
    attempts    INTEGER NOT NULL DEFAULT 0,
    error       TEXT,
    elapsed     REAL    NOT NULL,
    timestamp   TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_scrape_log_timestamp
    ON scrape_log(timestamp);
"""


def normalize_url(raw_url: str) -> str:
    """Strip tracking/session query params to get a stable product URL."""
    parsed = urlparse(raw_url.strip())

    # Strip Amazon path-based tracking (e.g. /ref=sr_1_243)
    path = re.sub(r"/ref=[^/]*", "", parsed.path)

    params = parse_qs(parsed.query, keep_blank_values=True)
    cleaned = {
        k: v for k, v in params.items()
        if k.lower() not in _TRACKING_PARAMS
    }
    new_query = urlencode(cleaned, doseq=True) if cleaned else ""
    return urlunparse((
        parsed.scheme.lower(),
        parsed.netloc.lower(),
        path,
        parsed.params,
        new_query,
        "",  # drop fragment
    ))


def to_cents(amount: float) -> Decimal | None:
    """Quantize an amount to cents; ``None`` if it is not a number."""
    try:
        return Decimal(str(amount)).quantize(_CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        return None


def same_price(
    old_amount: float | None,
    old_currency: str,
    new_amount: float | None,
    new_currency: str,
) -> bool:
    """Compare two prices as (cents, currency) pairs."""
    if old_amount is None or new_amount is None:
        return old_amount is None and new_amount is None
    return (
        to_cents(old_amount) == to_cents(new_amount)
        and (old_currency or "").upper() == (new_currency or "").upper()
    )


@dataclass
class UpsertResult:
    """What an upsert did to the stored product."""

    product: Product
    created: bool
    price_changed: bool
    previous_price: float | None = None
    previous_currency: str = ""


class ProductStore:
    """SQLite store for products, their price history and the scrape log.

    One connection is shared between threads; every statement runs
    under a lock so the concurrent monitor can write safely.
    """

    def __init__(
        self, db_path: Path | None = None,
    ) -> None:
        path = db_path or Settings.DB_PATH
        path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(
            str(path), check_same_thread=False,
        )
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.executescript(_SCHEMA)
        logger.debug("ProductStore opened at %s", path)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "ProductStore":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    @staticmethod
    def _row_to_product(row: tuple[object, ...]) -> Product:
        price = row[3]
        return Product(
            url=str(row[0]),
            site=str(row[1]),
            title=str(row[2]),
            price=float(price) if price is not None else None,  # type: ignore[arg-type]
            currency=str(row[4]),
            availability=str(row[5]),
            description=str(row[6]),
            first_seen=datetime.fromisoformat(str(row[7])),
            last_updated=datetime.fromisoformat(str(row[8])),
        )

    # ── Upsert ───────────────────────────────────────────

    def upsert_product(
        self,
        product: Product,
        observed_at: datetime | None = None,
    ) -> UpsertResult:
        """Insert or update a product keyed by its normalised URL.

        A history entry is appended only when the observed price is
        known and differs (in cents or currency) from the stored one.
        A missing price never overwrites a stored price, and empty
        fields never overwrite stored text.
        """
        if not product.url.strip():
            raise ValueError("product url must not be empty")
        url = normalize_url(product.url)
        ts = (observed_at or datetime.now()).isoformat()
        currency = product.currency

        with self._lock:
            cur = self._conn.cursor()
            row = cur.execute(
                "SELECT id, site, title, price, currency, "
                "       availability, description "
                "FROM products WHERE url = ?",
                (url,),
            ).fetchone()

            if row is None:
                created = True
                previous_price: float | None = None
                previous_currency = ""
                changed = product.price is not None
                cur.execute(
                    "INSERT INTO products (url, site, title, price, "
                    "currency, availability, description, "
                    "first_seen, last_updated) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        url,
                        product.site,
                        product.title,
                        product.price,
                        product.currency,
                        product.availability,
                        product.description,
                        ts,
                        ts,
                    ),
                )
                product_id = int(cur.lastrowid or 0)
            else:
                created = False
                product_id = int(row[0])
                previous_price = row[3]
                previous_currency = str(row[4])
                currency = product.currency or previous_currency
                changed = product.price is not None and not same_price(
                    previous_price,
                    previous_currency,
                    product.price,
                    currency,
                )
                keep_price = product.price is None
                cur.execute(
                    "UPDATE products SET site = ?, title = ?, price = ?, "
                    "currency = ?, availability = ?, description = ?, "
                    "last_updated = ? WHERE id = ?",
                    (
                        product.site or row[1],
                        product.title or row[2],
                        previous_price if keep_price else product.price,
                        previous_currency if keep_price
                        else currency,
                        product.availability or row[5],
                        product.description or row[6],
                        ts,
                        product_id,
                    ),
                )

            if changed:
                cur.execute(
                    "INSERT INTO price_history "
                    "(product_id, price, currency, recorded_at) "
                    "VALUES (?, ?, ?, ?)",
                    (product_id, product.price, currency, ts),
                )

            self._conn.commit()
            stored = cur.execute(
                "SELECT url, site, title, price, currency, "
                "       availability, description, first_seen, "
                "       last_updated "
                "FROM products WHERE id = ?",
                (product_id,),
            ).fetchone()

        if changed and not created:
            logger.info(
                "Price change for %s: %s %s -> %s %s",
                url,
                previous_price,
                previous_currency,
                product.price,
                currency,
            )
        elif created:
            logger.info("New product tracked: %s", url)

        return UpsertResult(
            product=self._row_to_product(stored),
            created=created,
            price_changed=changed,
            previous_price=previous_price,
            previous_currency=previous_currency,
        )

    # ── Querying ─────────────────────────────────────────

    def get_product(self, product_url: str) -> Product | None:
        """Return the stored product for a URL, if tracked."""
        with self._lock:
            row = self._conn.execute(
                "SELECT url, site, title, price, currency, "
                "       availability, description, first_seen, "
                "       last_updated "
                "FROM products WHERE url = ?",
                (normalize_url(product_url),),
            ).fetchone()
        return self._row_to_product(row) if row else None

    def list_products(self) -> list[Product]:
        """Return every tracked product ordered by title."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT url, site, title, price, currency, "
                "       availability, description, first_seen, "
                "       last_updated "
                "FROM products ORDER BY title, url",
            ).fetchall()
        return [self._row_to_product(r) for r in rows]

    def get_price_history(
        self, product_url: str,
    ) -> list[PriceHistoryEntry]:
        """Return all history entries for a product, oldest first."""
        url = normalize_url(product_url)
        with self._lock:
            rows = self._conn.execute(
                "SELECT p.url, h.price, h.currency, h.recorded_at "
                "FROM price_history h "
                "JOIN products p ON p.id = h.product_id "
                "WHERE p.url = ? "
                "ORDER BY h.recorded_at ASC, h.id ASC",
                (url,),
            ).fetchall()
        return [
            PriceHistoryEntry(
                product_url=r[0],
                price=r[1],
                currency=r[2],
                recorded_at=datetime.fromisoformat(r[3]),
            )
            for r in rows
        ]

    def get_all_history(self) -> dict[str, list[PriceHistoryEntry]]:
        """Return history for every product keyed by URL."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT p.url, h.price, h.currency, h.recorded_at "
                "FROM price_history h "
                "JOIN products p ON p.id = h.product_id "
                "ORDER BY p.url, h.recorded_at ASC, h.id ASC",
            ).fetchall()
        result: dict[str, list[PriceHistoryEntry]] = {}
        for r in rows:
            result.setdefault(r[0], []).append(
                PriceHistoryEntry(
                    product_url=r[0],
                    price=r[1],
                    currency=r[2],
                    recorded_at=datetime.fromisoformat(r[3]),
                )
            )
        return result

    def get_trend_summary(
        self, product_url: str,
    ) -> dict[str, object] | None:
        """Compute min / max / avg / latest price for a product."""
        url = normalize_url(product_url)
        with self._lock:
            row = self._conn.execute(
                "SELECT MIN(h.price), MAX(h.price), "
                "       AVG(h.price), COUNT(h.id) "
                "FROM price_history h "
                "JOIN products p ON p.id = h.product_id "
                "WHERE p.url = ?",
                (url,),
            ).fetchone()
            if row is None or row[3] == 0:
                return None
            latest_row = self._conn.execute(
                "SELECT h.price "
                "FROM price_history h "
                "JOIN products p ON p.id = h.product_id "
                "WHERE p.url = ? "
                "ORDER BY h.recorded_at DESC, h.id DESC LIMIT 1",
                (url,),
            ).fetchone()
        latest_price: float = latest_row[0] if latest_row else 0.0
        return {
            "min": row[0],
            "max": row[1],
            "avg": round(row[2], 2),
            "count": row[3],
            "latest": latest_price,
        }

    # ── Scrape log ───────────────────────────────────────

    def log_scrape(self, entry: ScrapeLogEntry) -> None:
        """Append one fetch outcome to the scrape log."""
        with self._lock:
            self._conn.execute(
                "INSERT INTO scrape_log (url, status, status_code, "
                "attempts, error, elapsed, timestamp) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    normalize_url(entry.url),
                    entry.status,
                    entry.status_code,
                    entry.attempts,
                    entry.error,
                    entry.elapsed,
                    entry.timestamp.isoformat(),
                ),
            )
            self._conn.commit()

    def get_scrape_log(
        self,
        limit: int = 50,
        product_url: str | None = None,
    ) -> list[ScrapeLogEntry]:
        """Return the newest scrape log rows, optionally for one URL."""
        query = (
            "SELECT url, status, elapsed, timestamp, error, "
            "       status_code, attempts "
            "FROM scrape_log "
        )
        params: tuple[object, ...] = ()
        if product_url is not None:
            query += "WHERE url = ? "
            params = (normalize_url(product_url),)
        query += "ORDER BY timestamp DESC, id DESC LIMIT ?"
        with self._lock:
            rows = self._conn.execute(
                query, (*params, limit),
            ).fetchall()
        return [
            ScrapeLogEntry(
                url=r[0],
                status=r[1],
                elapsed=r[2],
                timestamp=datetime.fromisoformat(r[3]),
                error=r[4],
                status_code=r[5],
                attempts=r[6],
            )
            for r in rows
        ]

    def get_failure_count(self, since: datetime | None = None) -> int:
        """Count non-successful scrape log rows since a point in time."""
        query = "SELECT COUNT(*) FROM scrape_log WHERE status != ?"
        params: tuple[object, ...] = (STATUS_SUCCESS,)
        if since is not None:
            query += " AND timestamp >= ?"
            params = (*params, since.isoformat())
        with self._lock:
            row = self._conn.execute(query, params).fetchone()
        return int(row[0]) if row else 0
