"""Tests for payment registration, editing and deletion."""

from datetime import date
from decimal import Decimal

import pytest

from installment_ledger.data_models import InstallmentStatus, PaymentMethod, PaymentResult
from installment_ledger.errors import (
    ExternalCallError,
    PaymentExceedsTotalError,
    PaymentNotFoundError,
    PaymentValidationError,
    SubmissionInFlightError,
)
from installment_ledger.memory_gateway import InMemoryPaymentGateway
from installment_ledger.reconciler import (
    PaymentReconciler,
    check_payment_total,
    remaining_balance,
)

PAID_ON = date(2026, 2, 10)


@pytest.fixture
def audit_log():
    return []


@pytest.fixture
def reconciler(gateway, audit_log):
    return PaymentReconciler(gateway, audit=lambda action, details: audit_log.append((action, details)))


def pay(reconciler, entry, amount, **kwargs):
    kwargs.setdefault("account_id", "acc-1")
    return reconciler.register_payment(entry, Decimal(amount), PAID_ON, PaymentMethod.PIX, **kwargs)


def test_partial_payments_and_balance(reconciler, receivable):
    pay(reconciler, receivable, "40.00")
    rec = pay(reconciler, receivable, "35.00")
    assert rec.paid_amount == Decimal("75.00")
    assert rec.remaining == Decimal("25.00")
    assert rec.status == InstallmentStatus.PARTIALLY_PAID
    assert remaining_balance(receivable.expected_amount, rec.payments) == Decimal("25.00")


def test_payment_exceeding_total_is_rejected(reconciler, gateway, receivable):
    pay(reconciler, receivable, "40.00")
    pay(reconciler, receivable, "35.00")
    with pytest.raises(PaymentExceedsTotalError) as excinfo:
        pay(reconciler, receivable, "30.00")
    assert excinfo.value.attempted_total == Decimal("105.00")
    assert len(gateway.list_payments(receivable.id)) == 2


def test_full_payment_marks_entry_paid(reconciler, receivable):
    rec = pay(reconciler, receivable, "100.00")
    assert rec.status == InstallmentStatus.PAID
    assert rec.remaining == Decimal("0.00")


def test_one_cent_tolerance():
    check_payment_total("100.00", "99.00", "1.01")
    with pytest.raises(PaymentExceedsTotalError):
        check_payment_total("100.00", "99.00", "1.02")


@pytest.mark.parametrize(
    "amount, kwargs",
    [
        ("0", {}),
        ("-5.00", {}),
        ("10.00", {"account_id": None}),
        ("10.00", {"account_id": ""}),
    ],
)
def test_invalid_payment_requests(reconciler, gateway, receivable, amount, kwargs):
    with pytest.raises(PaymentValidationError):
        pay(reconciler, receivable, amount, **kwargs)
    assert gateway.list_payments(receivable.id) == []


def test_unknown_method_and_bad_date(reconciler, receivable):
    with pytest.raises(PaymentValidationError):
        reconciler.register_payment(receivable, Decimal("1"), PAID_ON, "barter", account_id="acc-1")
    with pytest.raises(PaymentValidationError):
        reconciler.register_payment(receivable, Decimal("1"), "yesterday", "pix", account_id="acc-1")


def test_default_payment_date_is_today(reconciler, receivable):
    rec = reconciler.register_payment(receivable, Decimal("10.00"), account_id="acc-1")
    assert isinstance(rec.payments[0].date, date)


def test_edit_payment(reconciler, receivable):
    pay(reconciler, receivable, "40.00")
    rec = pay(reconciler, receivable, "35.00")
    second = [p for p in rec.payments if p.amount == Decimal("35.00")][0]
    rec = reconciler.edit_payment(receivable, second.id, Decimal("60.00"), date(2026, 2, 20))
    assert rec.remaining == Decimal("0.00")
    assert rec.status == InstallmentStatus.PAID
    with pytest.raises(PaymentExceedsTotalError):
        reconciler.edit_payment(receivable, second.id, Decimal("61.00"), date(2026, 2, 20))


def test_edit_unknown_payment(reconciler, receivable):
    with pytest.raises(PaymentNotFoundError):
        reconciler.edit_payment(receivable, "missing", Decimal("1.00"), PAID_ON)


def test_delete_payment_recomputes_balance(reconciler, receivable):
    first = pay(reconciler, receivable, "40.00").payments[0]
    pay(reconciler, receivable, "35.00")
    rec = reconciler.delete_payment(receivable, first.id)
    assert rec.paid_amount == Decimal("35.00")
    assert rec.remaining == Decimal("65.00")
    with pytest.raises(PaymentNotFoundError):
        reconciler.delete_payment(receivable, first.id)


def test_everything_deleted_returns_to_pending(reconciler, receivable):
    payment = pay(reconciler, receivable, "40.00").payments[0]
    rec = reconciler.delete_payment(receivable, payment.id)
    assert rec.status == InstallmentStatus.PENDING


class RejectingGateway(InMemoryPaymentGateway):
    def register_payment(self, *args):
        return PaymentResult(False, "Account is closed.")


class BrokenGateway(InMemoryPaymentGateway):
    def register_payment(self, *args):
        raise ConnectionError("service unavailable")


def test_collaborator_failure_is_surfaced(receivable, audit_log):
    reconciler = PaymentReconciler(RejectingGateway(), audit=lambda a, d: audit_log.append((a, d)))
    with pytest.raises(ExternalCallError, match="Account is closed."):
        pay(reconciler, receivable, "10.00")
    assert reconciler.reconcile(receivable).paid_amount == Decimal("0.00")
    assert audit_log[-1][0] == "register_payment_failed"
    assert audit_log[-1][1]["error"] == "Account is closed."


def test_collaborator_exception_is_surfaced(receivable):
    reconciler = PaymentReconciler(BrokenGateway())
    with pytest.raises(ExternalCallError, match="service unavailable"):
        pay(reconciler, receivable, "10.00")
    # Guard released after the failure.
    with pytest.raises(ExternalCallError):
        pay(reconciler, receivable, "10.00")


class ReentrantGateway(InMemoryPaymentGateway):
    """Submits the same payment again while the first one is pending."""

    reconciler = None
    seen = None

    def register_payment(self, parent_entry_id, *args):
        if self.seen is None:
            try:
                pay(self.reconciler, self.entry, "1.00")
            except SubmissionInFlightError as exc:
                self.seen = exc
        return super().register_payment(parent_entry_id, *args)


def test_duplicate_submission_is_blocked(receivable):
    gateway = ReentrantGateway()
    reconciler = PaymentReconciler(gateway)
    gateway.reconciler = reconciler
    gateway.entry = receivable
    rec = pay(reconciler, receivable, "10.00")
    assert isinstance(gateway.seen, SubmissionInFlightError)
    assert len(rec.payments) == 1
    rec = pay(reconciler, receivable, "5.00")
    assert rec.paid_amount == Decimal("15.00")


def test_audit_records_successful_actions(reconciler, receivable, audit_log):
    payment = pay(reconciler, receivable, "40.00").payments[0]
    reconciler.edit_payment(receivable, payment.id, Decimal("20.00"), PAID_ON)
    reconciler.delete_payment(receivable, payment.id)
    assert [action for action, _ in audit_log] == [
        "register_payment_success",
        "update_payment_success",
        "delete_payment_success",
    ]
    assert audit_log[0][1]["payment_id"] == payment.id


def test_installment_can_be_reconciled(reconciler, three_way_plan):
    installment = three_way_plan[2]
    installment.id = "inst-3"
    rec = pay(reconciler, installment, "33.34")
    assert rec.status == InstallmentStatus.PAID


def test_unsaved_installment_cannot_be_paid(reconciler, gateway, three_way_plan):
    with pytest.raises(PaymentValidationError):
        pay(reconciler, three_way_plan[0], "10.00")
    assert gateway.list_payments(None) == []
