# src/config/watchlist.py

"""JSON watchlist of product URLs to monitor."""

import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path

from src.config.settings import Settings
from src.storage.product_store import normalize_url

logger = logging.getLogger("price_monitor.watchlist")


class WatchlistError(Exception):
    """Raised when the watchlist file cannot be understood."""


@dataclass
class WatchItem:
    """A product URL to monitor."""

    url: str
    label: str = ""
    site: str | None = None


def load_watchlist(path: Path | None = None) -> list[WatchItem]:
    """Read the watchlist; a missing file is an empty watchlist."""
    filepath = path or Settings.WATCHLIST_PATH
    if not filepath.exists():
        logger.debug("No watchlist at %s", filepath)
        return []

    try:
        with open(filepath, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        raise WatchlistError(
            f"Malformed watchlist {filepath}: {exc}"
        ) from exc

    if not isinstance(data, list):
        raise WatchlistError(
            f"Watchlist {filepath} must contain a JSON list"
        )

    items: list[WatchItem] = []
    for entry in data:
        if isinstance(entry, str):
            items.append(WatchItem(url=entry))
        elif isinstance(entry, dict) and entry.get("url"):
            items.append(
                WatchItem(
                    url=str(entry["url"]),
                    label=str(entry.get("label", "")),
                    site=entry.get("site") or None,
                )
            )
        else:
            logger.warning(
                "Skipping invalid watchlist entry: %r", entry,
            )
    return items


def save_watchlist(
    items: list[WatchItem], path: Path | None = None,
) -> Path:
    """Write the watchlist back to disk."""
    filepath = path or Settings.WATCHLIST_PATH
    filepath.parent.mkdir(parents=True, exist_ok=True)
    with open(filepath, "w", encoding="utf-8") as f:
        json.dump(
            [asdict(item) for item in items],
            f,
            ensure_ascii=False,
            indent=2,
        )
    return filepath


def add_url(
    url: str,
    label: str = "",
    site: str | None = None,
    path: Path | None = None,
) -> bool:
    """Add a URL unless already watched. Returns True if added."""
    items = load_watchlist(path)
    key = normalize_url(url)
    if any(normalize_url(i.url) == key for i in items):
        logger.info("Already watching %s", url)
        return False
    items.append(WatchItem(url=url, label=label, site=site))
    save_watchlist(items, path)
    logger.info("Added %s to watchlist", url)
    return True


def remove_url(url: str, path: Path | None = None) -> bool:
    """Remove a URL from the watchlist. Returns True if removed."""
    items = load_watchlist(path)
    key = normalize_url(url)
    kept = [i for i in items if normalize_url(i.url) != key]
    if len(kept) == len(items):
        return False
    save_watchlist(kept, path)
    logger.info("Removed %s from watchlist", url)
    return True
