"""Data models for the installment ledger.

This module defines the records shared by the planner, the reconciler and the
persistence layer: installments of a financed total, single-shot credit/debit
ledger entries, payments recorded against either of them and the result
objects returned by edit and payment operations. Dataclasses keep the shapes
explicit: required fields come first, optional ones default to ``None``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, Optional


class InstallmentStatus(str, Enum):
    PENDING = "pending"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"


class PaymentMethod(str, Enum):
    PIX = "pix"
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    BOLETO = "boleto"
    OTHER = "other"


class EntryKind(str, Enum):
    CREDIT = "credit"  # amount to receive
    DEBIT = "debit"  # amount to pay


@dataclass
class Installment:
    """One scheduled portion of a financed total.

    Attributes
    ----------
    installment_number: int
        1-based position within the plan. The last installment absorbs the
        rounding remainder and any redistribution from manual edits.
    due_date: date
        When the installment is due.
    expected_amount: Decimal
        Amount owed for this installment (two decimal places).
    paid_amount: Decimal
        Cumulative amount paid against this installment.
    paid_date: date or None
        Date of the most recent payment, if any.
    status: InstallmentStatus
        Display status derived from ``paid_amount`` vs ``expected_amount``.
    id: str or None
        Identity assigned by the persistence layer; ``None`` until saved.
    """

    installment_number: int
    due_date: date
    expected_amount: Decimal
    paid_amount: Decimal = Decimal("0.00")
    paid_date: Optional[date] = None
    status: InstallmentStatus = InstallmentStatus.PENDING
    id: Optional[str] = None


@dataclass
class LedgerEntry:
    """A single-shot credit or debit entry, e.g. a one-off receivable."""

    kind: EntryKind
    description: str
    expected_amount: Decimal
    issue_date: date
    paid_amount: Decimal = Decimal("0.00")
    paid_date: Optional[date] = None
    status: InstallmentStatus = InstallmentStatus.PENDING
    parent_record_id: Optional[str] = None
    id: Optional[str] = None


@dataclass
class PaymentEntry:
    """A payment recorded against an installment or ledger entry."""

    id: str
    parent_entry_id: str
    amount: Decimal
    date: date
    method: PaymentMethod
    notes: str = ""
    account_id: Optional[str] = None


@dataclass
class PaymentResult:
    """Outcome reported by the payment collaborator.

    ``success`` False means nothing was applied; ``message`` is meant to be
    shown to the user as-is.
    """

    success: bool
    message: str
    payment_id: Optional[str] = None
    balance_after: Optional[Decimal] = None


@dataclass
class PlanEdit:
    """Result of an edit on an installment plan.

    ``warning`` is a user-facing message when the edit was rejected or
    corrected; ``None`` when it was applied as entered.
    """

    installments: List[Installment]
    warning: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.warning is None


@dataclass
class Reconciliation:
    """Balance snapshot of one entry rebuilt from its payment history."""

    entry_id: str
    expected_amount: Decimal
    paid_amount: Decimal
    remaining: Decimal
    status: InstallmentStatus
    payments: List[PaymentEntry] = field(default_factory=list)
