"""Payment reconciliation against installments and ledger entries.

The reconciler validates payment requests on the client side and delegates
every write to a payment collaborator (``gateway``). The collaborator is
expected to apply each call atomically: insert/update/delete the payment,
refresh the parent entry's paid amount and status, and record the settlement
account movement. After a successful call the balance is rebuilt from the
collaborator's payment history; after a failure an ``ExternalCallError`` is
raised and no new balance is produced.

Gateway interface
-----------------
``list_payments(parent_entry_id) -> List[PaymentEntry]``
``register_payment(parent_entry_id, amount, date, method, notes, account_id) -> PaymentResult``
``update_payment(payment_id, amount, date) -> PaymentResult``
``delete_payment(payment_id) -> PaymentResult``
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, Optional, Set, Union

from .config import DEFAULT_LOCALE, LocaleConfig
from .data_models import (
    Installment,
    LedgerEntry,
    PaymentEntry,
    PaymentMethod,
    PaymentResult,
    Reconciliation,
)
from .errors import (
    ExternalCallError,
    PaymentExceedsTotalError,
    PaymentNotFoundError,
    PaymentValidationError,
    SubmissionInFlightError,
)
from .planner import derive_status
from .utils import MONEY_TOLERANCE, Number, parse_iso_date, sum_money, to_money

logger = logging.getLogger(__name__)

AuditCallback = Callable[[str, Dict[str, Any]], None]

# Installment or LedgerEntry: anything with ``id`` and ``expected_amount``.
Payable = Union[Installment, LedgerEntry]


def total_paid(payments: Iterable[PaymentEntry]) -> Decimal:
    return sum_money(p.amount for p in payments)


def remaining_balance(expected_amount: Number, payments: Iterable[PaymentEntry]) -> Decimal:
    return to_money(expected_amount) - total_paid(payments)


def check_payment_total(
    expected_amount: Number, other_payments_total: Number, new_amount: Number
) -> None:
    """Raise ``PaymentExceedsTotalError`` if ``new_amount`` overpays the entry.

    The sum of all payments of an entry may exceed its expected amount by at
    most one cent.
    """
    limit = to_money(expected_amount)
    attempted = to_money(other_payments_total) + to_money(new_amount)
    if attempted > limit + MONEY_TOLERANCE:
        raise PaymentExceedsTotalError(limit, attempted)


def _coerce_method(method: Any) -> PaymentMethod:
    try:
        return PaymentMethod(method)
    except ValueError as exc:
        raise PaymentValidationError(f"Unknown payment method: {method}") from exc


class PaymentReconciler:
    """Register, edit and delete payments and keep balances consistent."""

    def __init__(
        self,
        gateway: Any,
        audit: Optional[AuditCallback] = None,
        locale: LocaleConfig = DEFAULT_LOCALE,
    ) -> None:
        self._gateway = gateway
        self._audit = audit
        self._locale = locale
        self._in_flight: Set[str] = set()

    def reconcile(self, entry: Payable) -> Reconciliation:
        """Rebuild the balance of an entry from its payment history."""
        entry_id = entry.id
        payments = list(self._gateway.list_payments(entry_id))
        paid = total_paid(payments)
        expected = to_money(entry.expected_amount)
        return Reconciliation(
            entry_id=entry_id,
            expected_amount=expected,
            paid_amount=paid,
            remaining=expected - paid,
            status=derive_status(expected, paid),
            payments=payments,
        )

    def register_payment(
        self,
        entry: Payable,
        amount: Number,
        payment_date: Any = None,
        method: Any = PaymentMethod.PIX,
        notes: str = "",
        account_id: Optional[str] = None,
    ) -> Reconciliation:
        """Record a (possibly partial) payment against an entry.

        ``payment_date`` defaults to today in the company timezone. A
        settlement account is required.
        """
        if not entry.id:
            raise PaymentValidationError("Save the entry before registering payments.")
        value = to_money(amount)
        if value <= 0:
            raise PaymentValidationError("The payment amount must be greater than zero.")
        when = parse_iso_date(payment_date) if payment_date is not None else self._locale.today()
        if when is None:
            raise PaymentValidationError("Select the payment date.")
        if not account_id:
            raise PaymentValidationError("Select the settlement account.")
        payment_method = _coerce_method(method)

        entry_id = entry.id
        with self._submission(entry_id):
            current = self.reconcile(entry)
            check_payment_total(current.expected_amount, current.paid_amount, value)
            details = {
                "entry_id": entry_id,
                "paid_amount": str(value),
                "payment_method": payment_method.value,
                "account_id": account_id,
            }
            result = self._call(
                "register_payment",
                details,
                self._gateway.register_payment,
                entry_id,
                value,
                when,
                payment_method,
                notes,
                account_id,
            )
            details["payment_id"] = result.payment_id
            self._record("register_payment_success", details)
            return self.reconcile(entry)

    def edit_payment(
        self,
        entry: Payable,
        payment_id: str,
        new_amount: Number,
        new_date: Any,
    ) -> Reconciliation:
        """Change amount and date of an existing payment.

        Rejected with ``PaymentExceedsTotalError`` before any write when the
        new amount plus the entry's other payments exceeds its total.
        """
        value = to_money(new_amount)
        if value <= 0:
            raise PaymentValidationError("The payment amount must be greater than zero.")
        when = parse_iso_date(new_date)
        if when is None:
            raise PaymentValidationError("Select the payment date.")

        entry_id = entry.id
        with self._submission(entry_id):
            payments = list(self._gateway.list_payments(entry_id))
            if not any(p.id == payment_id for p in payments):
                raise PaymentNotFoundError(f"Payment {payment_id} not found")
            others = total_paid(p for p in payments if p.id != payment_id)
            check_payment_total(entry.expected_amount, others, value)
            details = {"entry_id": entry_id, "payment_id": payment_id, "new_amount": str(value)}
            self._call(
                "update_payment", details, self._gateway.update_payment, payment_id, value, when
            )
            self._record("update_payment_success", details)
            return self.reconcile(entry)

    def delete_payment(self, entry: Payable, payment_id: str) -> Reconciliation:
        """Permanently remove a payment and rebuild the balance."""
        entry_id = entry.id
        with self._submission(entry_id):
            payments = self._gateway.list_payments(entry_id)
            if not any(p.id == payment_id for p in payments):
                raise PaymentNotFoundError(f"Payment {payment_id} not found")
            details = {"entry_id": entry_id, "payment_id": payment_id}
            self._call("delete_payment", details, self._gateway.delete_payment, payment_id)
            self._record("delete_payment_success", details)
            return self.reconcile(entry)

    def _call(self, action: str, details: Dict[str, Any], func, *args) -> PaymentResult:
        try:
            result = func(*args)
        except Exception as exc:
            logger.warning("%s failed for entry %s: %s", action, details.get("entry_id"), exc)
            self._record(f"{action}_failed", dict(details, error=str(exc)))
            raise ExternalCallError(str(exc)) from exc
        if not result.success:
            logger.warning("%s rejected for entry %s: %s", action, details.get("entry_id"), result.message)
            self._record(f"{action}_failed", dict(details, error=result.message))
            raise ExternalCallError(result.message)
        logger.info("%s succeeded for entry %s", action, details.get("entry_id"))
        return result

    def _record(self, action: str, details: Dict[str, Any]) -> None:
        if self._audit is not None:
            self._audit(action, details)

    def _submission(self, entry_id: str) -> "_InFlight":
        return _InFlight(self._in_flight, entry_id)


class _InFlight:
    """Context manager rejecting a second submission for the same entry."""

    def __init__(self, registry: Set[str], key: str) -> None:
        self._registry = registry
        self._key = key

    def __enter__(self) -> None:
        if self._key in self._registry:
            raise SubmissionInFlightError(
                "A request for this entry is already being processed."
            )
        self._registry.add(self._key)

    def __exit__(self, *exc_info) -> None:
        self._registry.discard(self._key)
