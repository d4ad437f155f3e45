"""Output helpers for the installment ledger.

Plain tab-separated tables for the terminal, built with string formatting
only. Amounts are shown in the configured locale.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Optional

from .config import DEFAULT_LOCALE, LocaleConfig
from .currency import format_currency, format_date, format_number
from .data_models import Installment, Reconciliation


def print_plan(
    installments: Iterable[Installment],
    difference: Optional[Decimal] = None,
    locale: LocaleConfig = DEFAULT_LOCALE,
) -> None:
    """Print an installment plan as a simple table.

    Parameters
    ----------
    installments: Iterable[Installment]
        The plan to print.
    difference: Decimal, optional
        Result of ``plan_difference``; a non-zero value prints a warning line
        below the table.
    """
    headers = ["Installment", "Amount", "Due date"]
    print("\t".join(headers))
    rows = 0
    for inst in installments:
        row = [
            str(inst.installment_number),
            format_number(inst.expected_amount, locale),
            format_date(inst.due_date, locale),
        ]
        print("\t".join(row))
        rows += 1
    if not rows:
        print("No installments generated.")
    if difference:
        if difference > 0:
            print(f"Installments fall short of the total by {format_currency(difference, locale)}")
        else:
            print(f"Installments exceed the total by {format_currency(-difference, locale)}")


def print_reconciliation(rec: Reconciliation, locale: LocaleConfig = DEFAULT_LOCALE) -> None:
    print("Balance")
    print("-" * 48)
    print(f"Expected  : {format_currency(rec.expected_amount, locale)}")
    print(f"Paid      : {format_currency(rec.paid_amount, locale)}")
    print(f"Remaining : {format_currency(rec.remaining, locale)}")
    print(f"Status    : {rec.status.value}")
    print("-" * 48)
