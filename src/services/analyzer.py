# src/services/analyzer.py

"""Scan stored price history for threshold-crossing price moves."""

import logging
from datetime import datetime

from src.config.settings import Settings
from src.models.alert import PriceAlert
from src.models.price_history import PriceHistoryEntry
from src.storage.product_store import ProductStore

logger = logging.getLogger("price_monitor.analyzer")


def _raw_change(old: float, new: float) -> float:
    if old == 0:
        return 0.0
    # Sheds float noise so exact boundary moves still compare equal
    return round((new - old) / old * 100, 9)


def change_percent(old: float, new: float) -> float:
    """Signed percentage change from *old* to *new*, two decimals."""
    return round(_raw_change(old, new), 2)


class PriceAnalyzer:
    """Derive alerts and summaries from a :class:`ProductStore`."""

    def __init__(self, store: ProductStore) -> None:
        self.store = store

    def _alerts_for(
        self,
        title: str,
        history: list[PriceHistoryEntry],
        threshold_percent: float,
        since: datetime | None,
    ) -> list[PriceAlert]:
        alerts: list[PriceAlert] = []
        for prev, curr in zip(history, history[1:]):
            if since is not None and curr.recorded_at < since:
                continue
            # Moves across currencies are not comparable
            if prev.currency.upper() != curr.currency.upper():
                continue
            raw = _raw_change(prev.price, curr.price)
            if abs(raw) >= threshold_percent and raw != 0:
                alerts.append(
                    PriceAlert(
                        product_url=curr.product_url,
                        title=title,
                        old_price=prev.price,
                        new_price=curr.price,
                        change_percent=round(raw, 2),
                        currency=curr.currency,
                        recorded_at=curr.recorded_at,
                    )
                )
        return alerts

    def scan_alerts(
        self,
        threshold_percent: float | None = None,
        since: datetime | None = None,
    ) -> list[PriceAlert]:
        """Return price moves of at least ``threshold_percent``.

        Consecutive history entries are compared; only moves recorded
        at or after ``since`` are considered. Newest alerts first.
        """
        threshold = (
            Settings.ALERT_THRESHOLD_PERCENT
            if threshold_percent is None
            else threshold_percent
        )
        if threshold < 0:
            raise ValueError("threshold_percent must not be negative")

        titles = {p.url: p.title for p in self.store.list_products()}
        alerts: list[PriceAlert] = []
        for url, history in self.store.get_all_history().items():
            alerts.extend(
                self._alerts_for(
                    titles.get(url, ""), history, threshold, since,
                )
            )

        alerts.sort(key=lambda a: a.recorded_at, reverse=True)
        if alerts:
            logger.info(
                "Found %d price alerts (threshold %.1f%%)",
                len(alerts),
                threshold,
            )
        return alerts

    def price_drops(
        self,
        threshold_percent: float | None = None,
        since: datetime | None = None,
    ) -> list[PriceAlert]:
        """Only the alerts where the price went down."""
        return [
            a
            for a in self.scan_alerts(threshold_percent, since)
            if a.direction == "drop"
        ]

    def summarize(self) -> list[dict[str, object]]:
        """Current price plus min / max / avg for every product."""
        rows: list[dict[str, object]] = []
        for product in self.store.list_products():
            stats = self.store.get_trend_summary(product.url) or {}
            rows.append({
                "url": product.url,
                "title": product.title,
                "site": product.site,
                "price": product.price,
                "currency": product.currency,
                "min": stats.get("min"),
                "max": stats.get("max"),
                "avg": stats.get("avg"),
                "count": stats.get("count", 0),
                "last_updated": product.last_updated,
            })
        return rows
