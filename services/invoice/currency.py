"""Supported currencies and display formatting."""

import math
from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel


class Currency(BaseModel):
    """A selectable invoice currency."""

    code: str
    symbol: str
    name: str
    flag: str


CURRENCIES: tuple[Currency, ...] = (
    Currency(code="USD", symbol="$", name="US Dollar", flag="🇺🇸"),
    Currency(code="EUR", symbol="€", name="Euro", flag="🇪🇺"),
    Currency(code="GBP", symbol="£", name="British Pound", flag="🇬🇧"),
    Currency(code="JPY", symbol="¥", name="Japanese Yen", flag="🇯🇵"),
    Currency(code="CAD", symbol="$", name="Canadian Dollar", flag="🇨🇦"),
    Currency(code="AUD", symbol="$", name="Australian Dollar", flag="🇦🇺"),
)

CURRENCY_CODES: frozenset[str] = frozenset(c.code for c in CURRENCIES)

# en-US display prefixes; dollar currencies other than USD are disambiguated.
_DISPLAY_PREFIX = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "CAD": "CA$",
    "AUD": "A$",
}

_CENTS = Decimal("0.01")


def get_currency(code: str) -> Currency | None:
    """Look up a supported currency by ISO code."""
    for currency in CURRENCIES:
        if currency.code == code:
            return currency
    return None


def get_currency_symbol(code: str) -> str:
    """Return the currency symbol, or the code itself when unsupported."""
    currency = get_currency(code)
    return currency.symbol if currency else code


def format_currency(amount: float, code: str) -> str:
    """Format an amount for display with exactly two decimal places.

    Rounding happens here only; stored totals keep full precision.

    Args:
        amount: Value to format
        code: ISO currency code

    Returns:
        Display string such as ``$1,105.00``; ``str(amount)`` for unknown codes
    """
    if code not in CURRENCY_CODES or not math.isfinite(amount):
        return str(amount)

    value = Decimal(repr(float(amount))).quantize(_CENTS, rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    return f"{sign}{_DISPLAY_PREFIX[code]}{abs(value):,.2f}"
