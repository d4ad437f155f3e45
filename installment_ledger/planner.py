"""Installment plan generation and editing.

A plan splits the financed balance (total value minus down payment) into N
installments due monthly after the issue date. The base installment is the
balance divided by N truncated to the cent; the last installment absorbs the
cents lost to truncation, so the installments always sum exactly to the
financed balance.

Edits are pure functions: they take the current plan and return a
:class:`PlanEdit` holding a new list, never mutating their input. This keeps
the recomputation that runs on every keystroke of the editing surface
independent of any UI framework.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .currency import format_currency
from .data_models import Installment, InstallmentStatus, PlanEdit
from .utils import (
    MONEY_TOLERANCE,
    ZERO,
    Number,
    add_months,
    floor_money,
    parse_iso_date,
    sum_money,
    to_money,
)

logger = logging.getLogger(__name__)


def generate_installments(
    total_value: Number,
    down_payment: Number,
    installments_number: int,
    issue_date: Any,
    existing_installments: Iterable[Installment] = (),
) -> List[Installment]:
    """Build the installment plan for a financed total.

    Parameters
    ----------
    total_value, down_payment:
        Document total and the portion paid upfront.
    installments_number: int
        How many installments to split the remaining balance into.
    issue_date:
        Document issue date (``date`` or ISO string). Installment ``i`` is due
        ``i`` months after it.
    existing_installments:
        Previously persisted installments. Matched on ``installment_number``,
        they keep their id, payment data and due date; amounts are always
        recomputed.

    Returns
    -------
    List[Installment]
        The plan, or an empty list while the inputs are not ready (no
        installments, negative balance or invalid issue date).
    """
    issued = parse_iso_date(issue_date)
    try:
        count = int(installments_number)
        remaining = to_money(total_value) - to_money(down_payment)
    except (TypeError, ValueError):
        return []
    if count <= 0 or remaining < 0 or issued is None:
        return []

    base = floor_money(remaining / count)
    rounding_remainder = remaining - base * count
    existing_by_number: Dict[int, Installment] = {
        inst.installment_number: inst for inst in existing_installments
    }

    plan: List[Installment] = []
    for number in range(1, count + 1):
        amount = base + rounding_remainder if number == count else base
        existing = existing_by_number.get(number)
        if existing is not None:
            plan.append(
                Installment(
                    installment_number=number,
                    due_date=parse_iso_date(existing.due_date) or add_months(issued, number),
                    expected_amount=amount,
                    paid_amount=to_money(existing.paid_amount or 0),
                    paid_date=existing.paid_date,
                    status=existing.status or InstallmentStatus.PENDING,
                    id=existing.id,
                )
            )
        else:
            plan.append(
                Installment(
                    installment_number=number,
                    due_date=add_months(issued, number),
                    expected_amount=amount,
                )
            )
    return plan


def edit_installment_amount(
    installments: Sequence[Installment],
    index: int,
    new_amount: Number,
    total_expected: Optional[Number] = None,
) -> PlanEdit:
    """Change the amount of one installment and rebalance the plan.

    Editing a non-last installment moves the difference onto the last one.
    The last installment only accepts the value that keeps the plan balanced
    (within one cent); any other value is replaced by that value and a warning
    is returned. Edits that are negative, or that would push the last
    installment below zero, are rejected and the plan is returned unchanged.

    ``total_expected`` defaults to the current sum of the plan.
    """
    if not 0 <= index < len(installments):
        raise IndexError(f"Installment index {index} out of range")
    plan = [replace(inst) for inst in installments]
    total = sum_money(i.expected_amount for i in plan) if total_expected is None else to_money(total_expected)
    amount = to_money(new_amount)
    last = len(plan) - 1

    if amount < 0:
        logger.info("Rejected negative amount %s for installment %d", amount, index + 1)
        return PlanEdit(plan, "The installment amount cannot be negative.")

    if index == last:
        target_last = total - sum_money(i.expected_amount for i in plan[:last])
        if target_last < 0:
            logger.info("Rejected amount %s for last installment: plan total %s exceeded", amount, total)
            return PlanEdit(
                plan,
                "The installments exceed the total to be financed "
                f"({format_currency(total)}).",
            )
        plan[last].expected_amount = target_last
        if abs(amount - target_last) > MONEY_TOLERANCE:
            logger.info(
                "Last installment forced to %s (entered %s)", target_last, amount
            )
            return PlanEdit(
                plan,
                "The last installment must be "
                f"{format_currency(target_last)} so that the installments add up to "
                f"{format_currency(total)}.",
            )
        if amount != target_last:
            return PlanEdit(plan, f"Last installment adjusted to {format_currency(target_last)}.")
        return PlanEdit(plan)

    plan[index].expected_amount = amount
    difference = total - sum_money(i.expected_amount for i in plan)
    new_last = plan[last].expected_amount + difference
    if new_last < 0:
        logger.info(
            "Rejected amount %s for installment %d: plan total %s exceeded",
            amount, index + 1, total,
        )
        return PlanEdit(
            [replace(inst) for inst in installments],
            "The installments exceed the total to be financed "
            f"({format_currency(total)}).",
        )
    plan[last].expected_amount = new_last
    return PlanEdit(plan)


def edit_installment_due_date(
    installments: Sequence[Installment],
    index: int,
    new_date: Any,
    issue_date: Any = None,
) -> PlanEdit:
    """Replace the due date of one installment.

    Invalid dates leave the plan unchanged. A due date earlier than the
    issue date is kept but flagged with a warning.
    """
    if not 0 <= index < len(installments):
        raise IndexError(f"Installment index {index} out of range")
    plan = [replace(inst) for inst in installments]
    parsed = parse_iso_date(new_date)
    if parsed is None:
        return PlanEdit(plan)
    plan[index].due_date = parsed
    issued = parse_iso_date(issue_date)
    if issued is not None and parsed < issued:
        return PlanEdit(plan, "Due date is earlier than the issue date.")
    return PlanEdit(plan)


def plan_difference(
    installments: Iterable[Installment], total_value: Number, down_payment: Number
) -> Decimal:
    """Return how far the plan is from the document total.

    Positive: the down payment plus installments fall short of the total.
    Negative: they exceed it. Zero for a balanced plan.
    """
    scheduled = to_money(down_payment) + sum_money(i.expected_amount for i in installments)
    return to_money(total_value) - scheduled


def compute_balance(installment: Installment) -> Decimal:
    """Outstanding amount of an installment."""
    return to_money(installment.expected_amount) - to_money(installment.paid_amount or 0)


def derive_status(expected_amount: Number, paid_amount: Number) -> InstallmentStatus:
    paid = to_money(paid_amount)
    if paid <= ZERO:
        return InstallmentStatus.PENDING
    if paid >= to_money(expected_amount):
        return InstallmentStatus.PAID
    return InstallmentStatus.PARTIALLY_PAID
