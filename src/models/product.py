# src/models/product.py

"""Product data model for inter-module data flow."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Product:
    """A product page as observed by the extractor or held by the store.

    ``price`` is ``None`` when no price could be found on the page.
    The timestamps are only populated for products read back from the
    store.
    """

    url: str
    title: str = ""
    price: float | None = None
    currency: str = ""
    site: str = ""
    availability: str = ""
    description: str = ""
    first_seen: datetime | None = None
    last_updated: datetime | None = None
