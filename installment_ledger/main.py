"""Command-line interface for the installment ledger.

This module uses the ``click`` library to implement a multi-command
interface. Users can generate and edit installment plans, export them to
JSON/CSV files, and check the balance of an entry against its payments.
Amounts are entered in the company locale (e.g. ``1.234,56``).
"""

from __future__ import annotations

import csv
import json
import logging
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import click

from .config import load_config
from .currency import parse_currency
from .data_models import EntryKind, Installment, LedgerEntry, PaymentEntry, PaymentMethod
from .errors import LedgerError
from .formatter import print_plan, print_reconciliation
from .memory_gateway import InMemoryPaymentGateway
from .planner import edit_installment_amount, generate_installments, plan_difference
from .reconciler import PaymentReconciler
from .utils import parse_date_arg


def parse_amount(value: str) -> Decimal:
    try:
        return parse_currency(value, load_config().locale)
    except ValueError:
        raise click.BadParameter(f"Invalid amount: {value}")


def parse_edit_strings(values: Tuple[str, ...]) -> List[Tuple[int, Any]]:
    edits = []
    for item in values:
        parts = item.split("=")
        if len(parts) != 2:
            raise click.BadParameter(f"Edit must be in NUMBER=AMOUNT format; got {item}")
        number_str, amount_str = parts
        try:
            number = int(number_str)
        except ValueError:
            raise click.BadParameter(f"Invalid installment number: {number_str}")
        edits.append((number, parse_amount(amount_str)))
    return edits


def installment_to_dict(inst: Installment) -> Dict[str, Any]:
    return {
        "installment_number": inst.installment_number,
        "due_date": inst.due_date.isoformat(),
        "expected_amount": str(inst.expected_amount),
        "paid_amount": str(inst.paid_amount),
        "paid_date": inst.paid_date.isoformat() if inst.paid_date else None,
        "status": inst.status.value,
    }


def export_to_json(path: Path, installments: List[Installment], warnings: List[str]) -> None:
    """Export the plan and any edit warnings to a JSON file."""
    data = {
        "installments": [installment_to_dict(i) for i in installments],
        "warnings": warnings,
    }
    with path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def export_to_csv(path: Path, installments: List[Installment]) -> None:
    """Export the plan to a CSV file."""
    header = ["Installment", "Due_Date", "Expected_Amount", "Paid_Amount", "Status"]
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        for inst in installments:
            writer.writerow(
                [
                    inst.installment_number,
                    inst.due_date.isoformat(),
                    str(inst.expected_amount),
                    str(inst.paid_amount),
                    inst.status.value,
                ]
            )


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log planner and payment events")
def cli(verbose: bool) -> None:
    """Installment plans and payment balances for credit/debit entries."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.option("--total", "-t", "total", required=True, help="Document total (e.g. 1.234,56)")
@click.option("--down-payment", "-d", "down_payment", default="0", help="Down payment amount")
@click.option("--installments", "-n", "installments_number", required=True, type=int, help="Number of installments")
@click.option("--issue-date", "-i", "issue_date", required=True, help="Issue date (YYYY-MM-DD)")
@click.option("--edit", "edit", multiple=True, help="Installment amount edit in NUMBER=AMOUNT format")
@click.option("--output", "output", type=str, help="Output file path (.json or .csv)")
def plan(
    total: str,
    down_payment: str,
    installments_number: int,
    issue_date: str,
    edit: Tuple[str, ...],
    output: Optional[str],
) -> None:
    """Generate an installment plan and apply manual edits in order."""
    locale = load_config().locale
    total_value = parse_amount(total)
    down_value = parse_amount(down_payment)
    try:
        issued = parse_date_arg(issue_date)
    except ValueError as exc:
        raise click.BadParameter(str(exc))
    installments = generate_installments(total_value, down_value, installments_number, issued)
    if not installments:
        raise click.ClickException(
            "Nothing to generate: check the number of installments and that the down payment does not exceed the total."
        )
    warnings: List[str] = []
    for number, amount in parse_edit_strings(edit):
        if not 1 <= number <= len(installments):
            raise click.BadParameter(f"Installment {number} does not exist")
        result = edit_installment_amount(installments, number - 1, amount, total_value - down_value)
        installments = result.installments
        if result.warning:
            warnings.append(f"Installment {number}: {result.warning}")

    if output:
        path = Path(output)
        if path.suffix.lower() == ".json":
            export_to_json(path, installments, warnings)
        elif path.suffix.lower() == ".csv":
            export_to_csv(path, installments)
        else:
            raise click.BadParameter("Unsupported output format; use .json or .csv")
        click.echo(f"Plan exported to {path}")
    else:
        print_plan(installments, plan_difference(installments, total_value, down_value), locale)
    for warning in warnings:
        click.echo(f"Warning: {warning}", err=True)


@cli.command()
@click.option("--expected", "-e", "expected", required=True, help="Expected amount of the entry")
@click.option("--payment", "-p", "payment", multiple=True, help="Amount already paid (repeatable)")
@click.option("--new-payment", "new_payment", help="Prospective payment to validate and apply")
@click.option(
    "--method",
    "method",
    type=click.Choice([m.value for m in PaymentMethod]),
    default=PaymentMethod.PIX.value,
    help="Method of the new payment",
)
@click.option("--account", "account", default="cash", help="Settlement account of the new payment")
def balance(
    expected: str,
    payment: Tuple[str, ...],
    new_payment: Optional[str],
    method: str,
    account: str,
) -> None:
    """Show paid amount, remaining balance and status of an entry."""
    locale = load_config().locale
    today = locale.today()
    entry = LedgerEntry(
        kind=EntryKind.CREDIT,
        description="cli",
        expected_amount=parse_amount(expected),
        issue_date=today,
        id="cli-entry",
    )
    history = [
        PaymentEntry(
            id=f"p{i}",
            parent_entry_id=entry.id,
            amount=parse_amount(value),
            date=today,
            method=PaymentMethod.OTHER,
        )
        for i, value in enumerate(payment, start=1)
    ]
    reconciler = PaymentReconciler(InMemoryPaymentGateway(history), locale=locale)
    if new_payment:
        try:
            result = reconciler.register_payment(
                entry, parse_amount(new_payment), today, method, account_id=account
            )
        except LedgerError as exc:
            raise click.ClickException(str(exc))
    else:
        result = reconciler.reconcile(entry)
    print_reconciliation(result, locale)


if __name__ == "__main__":
    cli()
