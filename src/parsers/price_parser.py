# src/parsers/price_parser.py

"""Normalise free-form price text to an amount and currency.

Comma is always a thousands separator and dot is always the decimal
separator. Anything that does not yield a number is reported as
``None`` rather than raised, so one odd page never aborts a run.
"""

import logging
import re
from dataclasses import dataclass

logger = logging.getLogger("price_monitor.parser")

_CURRENCY_SYMBOLS: dict[str, str] = {
    "$": "USD",
    "€": "EUR",
    "£": "GBP",
    "¥": "JPY",
    "₹": "INR",
    "₩": "KRW",
    "₽": "RUB",
    "₺": "TRY",
    "₫": "VND",
    "₪": "ILS",
    "₱": "PHP",
}

_ISO_CODES: frozenset[str] = frozenset({
    "USD", "EUR", "GBP", "AED", "JPY", "INR", "CAD", "AUD",
    "CHF", "CNY", "SAR", "SEK", "NOK", "DKK", "PLN", "CZK",
    "HUF", "BRL", "MXN", "ZAR", "SGD", "HKD", "NZD", "KRW",
    "RUB", "TRY", "ILS", "PHP", "VND", "EGP", "QAR", "KWD",
})

_SYMBOL_RE = re.compile(
    "|".join(re.escape(s) for s in _CURRENCY_SYMBOLS)
)
_CODE_RE = re.compile(r"\b([A-Z]{3})\b")

# Commas only count as thousands separators when between digits
_THOUSANDS_RE = re.compile(r"(?<=\d),(?=\d)")
_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?|\.\d+")


@dataclass(frozen=True)
class ParsedPrice:
    """A normalised price."""

    amount: float
    currency: str | None = None


def detect_currency(text: str) -> str | None:
    """Return the ISO code of the first currency marker in *text*."""
    candidates: list[tuple[int, str]] = []

    symbol = _SYMBOL_RE.search(text)
    if symbol:
        candidates.append(
            (symbol.start(), _CURRENCY_SYMBOLS[symbol.group()])
        )

    for match in _CODE_RE.finditer(text):
        if match.group(1) in _ISO_CODES:
            candidates.append((match.start(), match.group(1)))
            break

    if not candidates:
        return None
    return min(candidates)[1]


def parse_price(text: object) -> ParsedPrice | None:
    """Parse text like ``"$1,234.56"`` into a :class:`ParsedPrice`.

    Returns ``None`` when the input is empty or holds no number.
    """
    if text is None:
        return None
    raw = text if isinstance(text, str) else str(text)
    raw = raw.strip()
    if not raw:
        return None

    cleaned = _THOUSANDS_RE.sub("", raw)
    match = _NUMBER_RE.search(cleaned)
    if not match:
        logger.debug("No price found in %r", raw[:80])
        return None

    try:
        amount = float(match.group())
    except ValueError:
        logger.debug("Unparseable price text %r", raw[:80])
        return None

    return ParsedPrice(amount=amount, currency=detect_currency(raw))
