# src/scrapers/extractor.py

"""Map a fetched product page to a flat Product via site selectors."""

import json
import logging
import re
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from src.config.settings import Settings
from src.models.product import Product
from src.parsers.price_parser import parse_price

logger = logging.getLogger("price_monitor.extractor")

DEFAULT_SITE = "default"

# "css selector@attribute" reads an attribute instead of text
_ATTR_SUFFIX_RE = re.compile(r"^(.*\S)@([\w:-]+)$")
_FALLBACK_SEPARATOR = "||"
_DESCRIPTION_LIMIT = 1000


def load_selectors(path: Path | None = None) -> dict[str, dict[str, Any]]:
    """Load per-site selector definitions from selectors.json."""
    with open(path or Settings.SELECTORS_PATH, encoding="utf-8") as f:
        data: dict[str, dict[str, Any]] = json.load(f)
    return data


def _clean_text(value: str) -> str:
    """Collapse whitespace runs to single spaces."""
    return " ".join(value.split())


def _clean_availability(value: str) -> str:
    """Turn schema.org availability URLs into their short name."""
    if "schema.org/" in value:
        return value.rstrip("/").rsplit("/", 1)[-1]
    return value


class Extractor:
    """Apply a site's field selectors to an HTML document."""

    def __init__(
        self, selectors: dict[str, dict[str, Any]] | None = None,
    ) -> None:
        self.selectors = (
            selectors if selectors is not None else load_selectors()
        )
        if DEFAULT_SITE not in self.selectors:
            self.selectors[DEFAULT_SITE] = {}

    def resolve_site(self, url: str) -> str:
        """Return the site id whose domains match *url*'s host."""
        host = (urlparse(url).hostname or "").lower()
        if host.startswith("www."):
            host = host[4:]
        for site_id, config in self.selectors.items():
            for domain in config.get("domains", []):
                domain = domain.lower()
                if host == domain or host.endswith("." + domain):
                    return site_id
        return DEFAULT_SITE

    @staticmethod
    def select_value(soup: BeautifulSoup, spec: str | None) -> str:
        """Return the first non-empty value for a selector spec.

        ``spec`` holds one or more CSS selectors separated by ``||``,
        each optionally suffixed with ``@attr``.
        """
        if not spec:
            return ""
        for alternative in spec.split(_FALLBACK_SEPARATOR):
            alternative = alternative.strip()
            if not alternative:
                continue
            attr: str | None = None
            match = _ATTR_SUFFIX_RE.match(alternative)
            if match:
                alternative, attr = match.group(1), match.group(2)
            try:
                el = soup.select_one(alternative)
            except Exception as exc:
                logger.warning(
                    "Bad selector %r skipped: %s", alternative, exc,
                )
                continue
            if el is None:
                continue
            if attr:
                raw = el.get(attr)
                if isinstance(raw, list):
                    raw = " ".join(raw)
                value = str(raw or "")
            else:
                value = el.get_text(" ", strip=True)
            value = _clean_text(value)
            if value:
                return value
        return ""

    def _resolve_currency(
        self,
        soup: BeautifulSoup,
        config: dict[str, Any],
        detected: str | None,
    ) -> str:
        """Pick the currency: site constant, page markup, text, default."""
        fixed = str(config.get("currency") or "")
        if fixed:
            return fixed
        marked = self.select_value(
            soup, config.get("currency_selector"),
        ).upper()
        if re.fullmatch(r"[A-Z]{3}", marked):
            return marked
        return detected or Settings.DEFAULT_CURRENCY

    def extract(
        self, url: str, html: str, site: str | None = None,
    ) -> Product:
        """Build a Product from *html*; missing fields stay empty."""
        site_id = site or self.resolve_site(url)
        config = self.selectors.get(site_id)
        if config is None:
            logger.warning(
                "Unknown site '%s' for %s, using default selectors",
                site_id,
                url,
            )
            site_id = DEFAULT_SITE
            config = self.selectors[DEFAULT_SITE]

        soup = BeautifulSoup(html, "lxml")

        title = self.select_value(soup, config.get("title"))
        if not title:
            title = self.select_value(
                soup, "meta[property='og:title']@content || title",
            )

        price_text = self.select_value(soup, config.get("price"))
        parsed = parse_price(price_text)
        if parsed is None:
            logger.info(
                "No price found on %s (raw=%r)", url, price_text[:60],
            )

        product = Product(
            url=url,
            title=title,
            price=parsed.amount if parsed else None,
            currency=self._resolve_currency(
                soup, config, parsed.currency if parsed else None,
            ),
            site=site_id,
            availability=_clean_availability(
                self.select_value(soup, config.get("availability"))
            ),
            description=self.select_value(
                soup, config.get("description"),
            )[:_DESCRIPTION_LIMIT],
        )
        logger.debug(
            "Extracted %s: title=%r price=%s %s",
            url,
            product.title[:60],
            product.price,
            product.currency,
        )
        return product
