"""Unit tests for currency lookup and formatting."""

import pytest

from services.invoice.currency import (
    CURRENCIES,
    CURRENCY_CODES,
    format_currency,
    get_currency,
    get_currency_symbol,
)


def test_supported_codes() -> None:
    """The selectable set is fixed."""
    assert CURRENCY_CODES == {"USD", "EUR", "GBP", "JPY", "CAD", "AUD"}
    assert all(currency.flag for currency in CURRENCIES)


def test_get_currency() -> None:
    """Lookup by code returns the full record."""
    euro = get_currency("EUR")
    assert euro is not None
    assert euro.symbol == "€"
    assert get_currency("XYZ") is None


def test_symbol_falls_back_to_code() -> None:
    """Unknown codes are shown as-is."""
    assert get_currency_symbol("GBP") == "£"
    assert get_currency_symbol("CHF") == "CHF"


@pytest.mark.parametrize(
    ("amount", "code", "expected"),
    [
        (1105, "USD", "$1,105.00"),
        (1234567.891, "EUR", "€1,234,567.89"),
        (0.005, "GBP", "£0.01"),
        (2.675, "USD", "$2.68"),
        (1000, "JPY", "¥1,000.00"),
        (50, "CAD", "CA$50.00"),
        (50, "AUD", "A$50.00"),
        (-12.5, "USD", "-$12.50"),
        (0, "USD", "$0.00"),
    ],
)
def test_format_currency(amount: float, code: str, expected: str) -> None:
    """Two decimals, thousands separators, half-up rounding."""
    assert format_currency(amount, code) == expected


def test_format_unknown_code() -> None:
    """Unknown codes fall back to the plain number."""
    assert format_currency(12.5, "XYZ") == "12.5"
