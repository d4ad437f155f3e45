"""Currency parsing and formatting.

Amounts are entered and displayed in the company locale ("1.234,56" with a
"R$" prefix by default). Parsing and formatting are lossless to the cent:
``parse_currency(format_currency(x)) == x`` for every two-place ``Decimal``.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional, Union

from .config import DEFAULT_LOCALE, LocaleConfig
from .utils import ZERO, to_money

Amount = Union[Decimal, int, float, str]


def parse_currency(value: Amount, locale: LocaleConfig = DEFAULT_LOCALE) -> Decimal:
    """Convert a locale-formatted amount into a two-place ``Decimal``.

    Strings may carry the currency symbol, thousands separators and a leading
    minus sign. A blank string means zero (an input field not yet filled in).
    Non-string values go straight through :func:`to_money`.

    Raises
    ------
    ValueError
        If the string is not a valid amount.
    """
    if not isinstance(value, str):
        return to_money(value)
    text = value.strip()
    if not text:
        return ZERO
    negative = text.startswith("-")
    if negative:
        text = text[1:].strip()
    if locale.currency_symbol and text.startswith(locale.currency_symbol):
        text = text[len(locale.currency_symbol):].strip()
    cleaned = text.replace(locale.thousands_separator, "").replace(locale.decimal_separator, ".")
    if not cleaned or cleaned.startswith(("-", "+")):
        raise ValueError(f"Invalid amount: {value}")
    amount = to_money(cleaned)
    return -amount if negative else amount


def format_number(amount: Amount, locale: LocaleConfig = DEFAULT_LOCALE) -> str:
    """Format ``amount`` with locale grouping and two decimals, no symbol."""
    value = to_money(amount)
    sign = "-" if value < 0 else ""
    integer_part, fraction = f"{abs(value):,.2f}".split(".")
    integer_part = integer_part.replace(",", locale.thousands_separator)
    return f"{sign}{integer_part}{locale.decimal_separator}{fraction}"


def format_currency(amount: Amount, locale: LocaleConfig = DEFAULT_LOCALE) -> str:
    """Format ``amount`` for display, e.g. ``R$ 1.234,56``."""
    number = format_number(amount, locale)
    if number.startswith("-"):
        return f"-{locale.currency_symbol} {number[1:]}"
    return f"{locale.currency_symbol} {number}"


def format_date(value: Optional[date], locale: LocaleConfig = DEFAULT_LOCALE) -> str:
    if value is None:
        return "-"
    return value.strftime(locale.date_format)
