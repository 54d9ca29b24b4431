# src/models/alert.py

"""Price change alert model."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class PriceAlert:
    """A price move between two consecutive history entries."""

    product_url: str
    title: str
    old_price: float
    new_price: float
    change_percent: float
    currency: str
    recorded_at: datetime

    @property
    def direction(self) -> str:
        """Either ``"drop"`` or ``"rise"``."""
        return "drop" if self.new_price < self.old_price else "rise"
