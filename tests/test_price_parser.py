# tests/test_price_parser.py

"""Tests for free-form price text normalisation."""

import unittest

from src.parsers.price_parser import (
    ParsedPrice,
    detect_currency,
    parse_price,
)


def _amount(text: object) -> float | None:
    parsed = parse_price(text)
    return parsed.amount if parsed else None


class TestParsePrice(unittest.TestCase):
    """parse_price unit tests."""

    def test_dollar_with_thousands_separator(self) -> None:
        """'$1,234.56' parses to 1234.56 USD."""
        self.assertEqual(
            parse_price("$1,234.56"), ParsedPrice(1234.56, "USD")
        )

    def test_euro_symbol(self) -> None:
        """'€25.50' parses to 25.50 EUR."""
        result = parse_price("€25.50")
        assert result is not None
        self.assertAlmostEqual(result.amount, 25.50)
        self.assertEqual(result.currency, "EUR")

    def test_no_digits_is_no_result(self) -> None:
        """Text without a number yields None, not an error."""
        self.assertIsNone(parse_price("no price here"))

    def test_empty_string_is_no_result(self) -> None:
        """Empty and whitespace-only input yield None."""
        self.assertIsNone(parse_price(""))
        self.assertIsNone(parse_price("   "))

    def test_none_is_no_result(self) -> None:
        """None input yields None."""
        self.assertIsNone(parse_price(None))

    def test_iso_code_prefix(self) -> None:
        """'AED 1,299.00' picks up the ISO code."""
        self.assertEqual(
            parse_price("AED 1,299.00"), ParsedPrice(1299.0, "AED")
        )

    def test_plain_number_has_no_currency(self) -> None:
        """A bare number parses with an unknown currency."""
        self.assertEqual(parse_price("42"), ParsedPrice(42.0, None))

    def test_pound_with_surrounding_text(self) -> None:
        """Surrounding words are ignored."""
        self.assertEqual(
            parse_price("Price: £51.77 incl. VAT"),
            ParsedPrice(51.77, "GBP"),
        )

    def test_large_amount_multiple_separators(self) -> None:
        """Several thousands separators are all removed."""
        self.assertEqual(_amount("$1,234,567.89"), 1234567.89)

    def test_comma_never_decimal(self) -> None:
        """A comma between digits is a thousands separator only."""
        self.assertEqual(_amount("1,50"), 150.0)

    def test_first_number_wins_in_range(self) -> None:
        """A price range yields its first amount."""
        self.assertEqual(_amount("$10.00 - $20.00"), 10.0)

    def test_leading_decimal_point(self) -> None:
        """'.99' is read as 0.99."""
        self.assertEqual(_amount("$.99"), 0.99)

    def test_non_string_input_is_coerced(self) -> None:
        """Numbers are accepted and stringified."""
        self.assertEqual(_amount(19.5), 19.5)

    def test_malformed_input_never_raises(self) -> None:
        """Odd inputs yield a result or None, never an exception."""
        for text in ["$", ",,,", "..", "€-", "abc,def", "1..2", object()]:
            with self.subTest(text=text):
                parse_price(text)


class TestDetectCurrency(unittest.TestCase):
    """detect_currency unit tests."""

    def test_symbol(self) -> None:
        """Known symbols map to ISO codes."""
        self.assertEqual(detect_currency("¥1200"), "JPY")

    def test_first_marker_wins(self) -> None:
        """The earliest marker in the text is used."""
        self.assertEqual(detect_currency("EUR 10 ($11)"), "EUR")

    def test_unknown_code_ignored(self) -> None:
        """Uppercase words that are not currencies are skipped."""
        self.assertEqual(detect_currency("NEW 10 USD"), "USD")

    def test_none_when_absent(self) -> None:
        """No marker means None."""
        self.assertIsNone(detect_currency("10.00"))


if __name__ == "__main__":
    unittest.main()
