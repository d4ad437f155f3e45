"""Utility functions for the installment ledger.

This module provides helpers for turning user input into ``Decimal`` money
values and ``date`` objects, and for date arithmetic (adding months with the
day clamped to the end of the target month). All money values handled by the
planner and reconciler pass through :func:`to_money` so that they carry exactly
two decimal places.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal, InvalidOperation, getcontext
from typing import Any, Optional, Union

getcontext().prec = 28  # increase decimal precision to avoid rounding errors

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# Epsilon used by every balance comparison (one cent).
MONEY_TOLERANCE = Decimal("0.01")

Number = Union[Decimal, int, float, str]


def to_money(value: Number) -> Decimal:
    """Convert ``value`` into a ``Decimal`` with two decimal places.

    Floats are converted through ``str`` first so that ``0.1`` becomes
    ``Decimal("0.10")`` rather than its binary expansion. Rounding is half-up.

    Raises
    ------
    ValueError
        If the value cannot be interpreted as a number.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid numeric value: {value!r}")
    try:
        if isinstance(value, Decimal):
            dec = value
        elif isinstance(value, float):
            dec = Decimal(repr(value))
        else:
            dec = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Invalid numeric value: {value!r}") from exc
    if not dec.is_finite():
        raise ValueError(f"Invalid numeric value: {value!r}")
    return dec.quantize(CENT, rounding=ROUND_HALF_UP)


def floor_money(value: Decimal) -> Decimal:
    """Truncate ``value`` to two decimal places, rounding toward -infinity."""
    return value.quantize(CENT, rounding=ROUND_FLOOR)


def sum_money(values) -> Decimal:
    """Sum an iterable of amounts, returning a two-place ``Decimal``."""
    total = ZERO
    for v in values:
        total += to_money(v)
    return total


def add_months(dt: date, months: int) -> date:
    """Return a new date a number of months after ``dt``.

    The day of the month is clamped to the last valid day if needed (e.g.,
    adding one month to Jan 31 yields Feb 28 or 29).
    """
    year = dt.year + (dt.month - 1 + months) // 12
    month = (dt.month - 1 + months) % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def parse_iso_date(value: Any) -> Optional[date]:
    """Interpret ``value`` as a calendar date.

    Accepts ``date`` and ``datetime`` instances and ``YYYY-MM-DD`` strings
    (a trailing time component is ignored). Anything else, including
    ``None`` and malformed strings, yields ``None``.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()[:10]
        try:
            return date.fromisoformat(text)
        except ValueError:
            return None
    return None


def parse_date_arg(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` string, raising ``ValueError`` when invalid."""
    parsed = parse_iso_date(value)
    if parsed is None:
        raise ValueError(f"Invalid date string: {value}")
    return parsed
