# src/storage/file_manager.py

"""Handles exporting tracked products and price history to disk."""

import csv
import json
import logging
from datetime import datetime
from pathlib import Path

from src.config.settings import Settings
from src.models.price_history import PriceHistoryEntry
from src.models.product import Product

logger = logging.getLogger("price_monitor.export")

EXPORT_FORMATS: tuple[str, ...] = ("json", "csv", "tsv")

_PRODUCT_COLUMNS: list[str] = [
    "Title", "Price", "Currency", "Availability",
    "Site", "URL", "First Seen", "Last Updated",
]


def _iso(value: datetime | None) -> str:
    return value.isoformat() if value else ""


def _price_sort_key(p: Product) -> float:
    """Priced products first, cheapest first."""
    return p.price if p.price is not None else float("inf")


def product_to_dict(p: Product) -> dict[str, object]:
    """Serialise a product to a plain dict for JSON output."""
    return {
        "title": p.title,
        "price": p.price,
        "currency": p.currency,
        "availability": p.availability,
        "description": p.description,
        "site": p.site,
        "url": p.url,
        "first_seen": _iso(p.first_seen),
        "last_updated": _iso(p.last_updated),
    }


class FileManager:
    """Handles saving product snapshots and history exports."""

    def __init__(self, results_dir: Path | None = None) -> None:
        self.results_dir: Path = results_dir or Settings.RESULTS_DIR
        self.results_dir.mkdir(parents=True, exist_ok=True)
        logger.debug(
            "FileManager initialised, results_dir=%s", self.results_dir,
        )

    def _target(self, prefix: str, suffix: str) -> Path:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        return self.results_dir / f"{prefix}_{timestamp}.{suffix}"

    def save_json(self, products: list[Product]) -> Path:
        """Save products to a timestamped JSON file."""
        filepath = self._target("products", "json")
        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(
                [product_to_dict(p) for p in products],
                f,
                ensure_ascii=False,
                indent=2,
            )
        logger.info("Saved %d products to %s", len(products), filepath)
        return filepath

    def export_csv(self, products: list[Product]) -> Path:
        """Export products to a human-readable CSV sorted by price."""
        filepath = self._target("products", "csv")
        with open(filepath, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(_PRODUCT_COLUMNS)
            for p in sorted(products, key=_price_sort_key):
                writer.writerow([
                    p.title,
                    "" if p.price is None else p.price,
                    p.currency,
                    p.availability,
                    p.site,
                    p.url,
                    _iso(p.first_seen),
                    _iso(p.last_updated),
                ])
        logger.info(
            "Exported %d products to %s", len(products), filepath,
        )
        return filepath

    def export(self, products: list[Product], fmt: str) -> Path:
        """Dispatch to the exporter for *fmt*."""
        if fmt == "json":
            return self.save_json(products)
        if fmt == "csv":
            return self.export_csv(products)
        if fmt == "tsv":
            return self.export_tsv(products)
        raise ValueError(
            f"Unknown export format '{fmt}' "
            f"(expected one of {', '.join(EXPORT_FORMATS)})"
        )

    def export_history_csv(
        self, history: dict[str, list[PriceHistoryEntry]],
    ) -> Path:
        """Export every history entry as one long-format CSV."""
        filepath = self._target("price_history", "csv")
        rows = 0
        with open(filepath, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(["URL", "Price", "Currency", "Recorded At"])
            for url in sorted(history):
                for entry in history[url]:
                    writer.writerow([
                        url,
                        entry.price,
                        entry.currency,
                        entry.recorded_at.isoformat(),
                    ])
                    rows += 1
        logger.info("Exported %d history rows to %s", rows, filepath)
        return filepath

    def export_tsv(self, products: list[Product]) -> Path:
        """Write :meth:`format_tsv` output to a timestamped .tsv file."""
        filepath = self._target("products", "tsv")
        filepath.write_text(
            self.format_tsv(products) + "\n", encoding="utf-8",
        )
        logger.info("Exported %d products to %s", len(products), filepath)
        return filepath

    @staticmethod
    def format_tsv(products: list[Product]) -> str:
        """Format products as tab-separated text sorted by price."""
        lines: list[str] = [
            "Title\tPrice\tCurrency\tAvailability\tSite\tURL",
        ]
        for p in sorted(products, key=_price_sort_key):
            price = "" if p.price is None else f"{p.price}"
            lines.append(
                f"{p.title}\t{price}\t{p.currency}"
                f"\t{p.availability}\t{p.site}\t{p.url}"
            )
        return "\n".join(lines)
