# src/models/price_history.py

"""Append-only price history model."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class PriceHistoryEntry:
    """A single recorded price for a product at a point in time."""

    product_url: str
    price: float
    currency: str
    recorded_at: datetime
