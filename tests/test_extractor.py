# tests/test_extractor.py

"""Tests for selector-driven product extraction."""

import unittest

from bs4 import BeautifulSoup

from src.config.settings import Settings
from src.scrapers.extractor import DEFAULT_SITE, Extractor, load_selectors

BOOK_HTML = """
<html><head><title>A Light in the Attic | Books to Scrape</title></head>
<body>
  <div class="product_main">
    <h1>A Light in the Attic</h1>
    <p class="price_color">£51.77</p>
    <p class="instock availability">
        In stock (22 available)
    </p>
  </div>
  <div id="product_description" class="sub-header">
    <h2>Product Description</h2>
  </div>
  <p>It's hard to imagine a world without A Light in the Attic.</p>
</body></html>
"""

MICRODATA_HTML = """
<html><head>
  <meta name="description" content="A   sturdy  kettle.">
</head>
<body>
  <h1>Steel Kettle</h1>
  <span itemprop="price" content="19.99">19,99 €</span>
  <meta itemprop="priceCurrency" content="eur">
  <link itemprop="availability" href="https://schema.org/InStock">
</body></html>
"""


class TestResolveSite(unittest.TestCase):
    """Domain to selector-set matching."""

    def setUp(self) -> None:
        self.extractor = Extractor(load_selectors())

    def test_exact_domain(self) -> None:
        """books.toscrape.com maps to its own selector set."""
        self.assertEqual(
            self.extractor.resolve_site(
                "https://books.toscrape.com/catalogue/a_1/index.html"
            ),
            "books_toscrape",
        )

    def test_www_and_subdomains(self) -> None:
        """www. and other subdomains match the parent domain."""
        self.assertEqual(
            self.extractor.resolve_site("https://www.amazon.co.uk/dp/B0"),
            "amazon",
        )
        self.assertEqual(
            self.extractor.resolve_site("https://m.ebay.com/itm/1"),
            "ebay",
        )

    def test_comma_decimal_storefronts_use_default(self) -> None:
        """German storefronts fall back to the microdata selectors."""
        for url in (
            "https://www.amazon.de/dp/B0",
            "https://www.ebay.de/itm/1",
        ):
            with self.subTest(url=url):
                self.assertEqual(
                    self.extractor.resolve_site(url), DEFAULT_SITE,
                )

    def test_german_price_read_from_machine_value(self) -> None:
        """A '19,99 €' page is priced from its itemprop content."""
        product = self.extractor.extract(
            "https://www.amazon.de/dp/B0", MICRODATA_HTML,
        )
        self.assertEqual(product.site, DEFAULT_SITE)
        self.assertEqual(product.price, 19.99)
        self.assertEqual(product.currency, "EUR")

    def test_lookalike_domain_is_not_matched(self) -> None:
        """A host merely ending in the domain text is not a match."""
        self.assertEqual(
            self.extractor.resolve_site("https://notamazon.com/x"),
            DEFAULT_SITE,
        )


class TestExtract(unittest.TestCase):
    """Full page extraction."""

    def setUp(self) -> None:
        self.extractor = Extractor(load_selectors())

    def test_books_page(self) -> None:
        """All fields are read from a books.toscrape.com page."""
        url = "https://books.toscrape.com/catalogue/a-light_1000/index.html"
        product = self.extractor.extract(url, BOOK_HTML)

        self.assertEqual(product.url, url)
        self.assertEqual(product.site, "books_toscrape")
        self.assertEqual(product.title, "A Light in the Attic")
        self.assertEqual(product.price, 51.77)
        self.assertEqual(product.currency, "GBP")
        self.assertEqual(product.availability, "In stock (22 available)")
        self.assertTrue(product.description.startswith("It's hard"))

    def test_microdata_page(self) -> None:
        """Default selectors read schema.org attributes."""
        product = self.extractor.extract(
            "https://kettles.example.com/p/1", MICRODATA_HTML,
        )
        self.assertEqual(product.site, DEFAULT_SITE)
        self.assertEqual(product.title, "Steel Kettle")
        self.assertEqual(product.price, 19.99)
        self.assertEqual(product.currency, "EUR")
        self.assertEqual(product.availability, "InStock")
        self.assertEqual(product.description, "A sturdy kettle.")

    def test_currency_detected_from_price_text(self) -> None:
        """Without a fixed currency the price symbol decides."""
        html = (
            "<html><body><span id='productTitle'>Mouse</span>"
            "<span class='a-price'><span class='a-offscreen'>"
            "$1,299.99</span></span></body></html>"
        )
        product = self.extractor.extract(
            "https://www.amazon.com/dp/B01", html,
        )
        self.assertEqual(product.title, "Mouse")
        self.assertEqual(product.price, 1299.99)
        self.assertEqual(product.currency, "USD")

    def test_missing_price_is_none(self) -> None:
        """A page without a price yields price=None, not an error."""
        html = "<html><body><h1>Sold out thing</h1></body></html>"
        product = self.extractor.extract("https://x.example/p", html)
        self.assertIsNone(product.price)
        self.assertEqual(product.title, "Sold out thing")
        self.assertEqual(product.currency, Settings.DEFAULT_CURRENCY)

    def test_title_falls_back_to_document_title(self) -> None:
        """A missing title selector falls back to <title>."""
        extractor = Extractor({
            "shop": {"domains": ["shop.test"], "title": ".nope"},
        })
        html = "<html><head><title> Page  Title </title></head></html>"
        product = extractor.extract("https://shop.test/a", html)
        self.assertEqual(product.title, "Page Title")
        self.assertEqual(product.site, "shop")

    def test_unknown_site_uses_default(self) -> None:
        """An unknown explicit site falls back to the default set."""
        with self.assertLogs("price_monitor.extractor", "WARNING"):
            product = self.extractor.extract(
                "https://kettles.example.com/p/1",
                MICRODATA_HTML,
                site="no_such_site",
            )
        self.assertEqual(product.site, DEFAULT_SITE)
        self.assertEqual(product.price, 19.99)

    def test_description_is_truncated(self) -> None:
        """Long descriptions are capped at 1000 characters."""
        html = (
            "<html><head><meta name='description' content='"
            + "word " * 500
            + "'></head><body></body></html>"
        )
        product = self.extractor.extract("https://x.example/p", html)
        self.assertEqual(len(product.description), 1000)

    def test_empty_selector_set_gets_default(self) -> None:
        """A selectors dict without 'default' still extracts."""
        extractor = Extractor({})
        product = extractor.extract(
            "https://x.example/p", "<html><title>T</title></html>",
        )
        self.assertEqual(product.site, DEFAULT_SITE)
        self.assertEqual(product.title, "T")


class TestSelectValue(unittest.TestCase):
    """Selector spec evaluation."""

    def setUp(self) -> None:
        self.soup = BeautifulSoup(
            "<div class='a b'><p class='ok'>  fine\n text </p>"
            "<img src='/x.png'></div>",
            "lxml",
        )

    def test_fallback_chain(self) -> None:
        """The first selector that yields text wins."""
        self.assertEqual(
            Extractor.select_value(self.soup, ".missing || p.ok"),
            "fine text",
        )

    def test_attribute_suffix(self) -> None:
        """'@attr' reads the attribute instead of the text."""
        self.assertEqual(
            Extractor.select_value(self.soup, "img@src"), "/x.png",
        )
        self.assertEqual(
            Extractor.select_value(self.soup, "div@class"), "a b",
        )

    def test_bad_selector_is_skipped(self) -> None:
        """Invalid CSS is logged and the next alternative is tried."""
        with self.assertLogs("price_monitor.extractor", "WARNING"):
            value = Extractor.select_value(self.soup, "p:::bad || .ok")
        self.assertEqual(value, "fine text")

    def test_empty_spec(self) -> None:
        """No selector means no value."""
        self.assertEqual(Extractor.select_value(self.soup, None), "")
        self.assertEqual(Extractor.select_value(self.soup, ""), "")


if __name__ == "__main__":
    unittest.main()
