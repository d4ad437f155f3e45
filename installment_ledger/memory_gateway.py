"""In-memory payment collaborator.

Keeps payments in a dictionary and applies every call immediately. Used by
the command-line ``balance`` command and as a stand-in for the SQL store.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import uuid4

from .data_models import PaymentEntry, PaymentMethod, PaymentResult


class InMemoryPaymentGateway:
    def __init__(self, payments: Optional[List[PaymentEntry]] = None) -> None:
        self._payments: Dict[str, PaymentEntry] = {}
        for payment in payments or []:
            self._payments[payment.id] = payment

    def list_payments(self, parent_entry_id: str) -> List[PaymentEntry]:
        return sorted(
            (p for p in self._payments.values() if p.parent_entry_id == parent_entry_id),
            key=lambda p: p.date,
        )

    def register_payment(
        self,
        parent_entry_id: str,
        amount: Decimal,
        payment_date: date,
        method: PaymentMethod,
        notes: str,
        account_id: str,
    ) -> PaymentResult:
        payment = PaymentEntry(
            id=uuid4().hex,
            parent_entry_id=parent_entry_id,
            amount=amount,
            date=payment_date,
            method=method,
            notes=notes,
            account_id=account_id,
        )
        self._payments[payment.id] = payment
        return PaymentResult(True, "Payment registered.", payment_id=payment.id)

    def update_payment(self, payment_id: str, amount: Decimal, payment_date: date) -> PaymentResult:
        payment = self._payments.get(payment_id)
        if payment is None:
            return PaymentResult(False, "Payment not found.")
        payment.amount = amount
        payment.date = payment_date
        return PaymentResult(True, "Payment updated.", payment_id=payment_id)

    def delete_payment(self, payment_id: str) -> PaymentResult:
        if self._payments.pop(payment_id, None) is None:
            return PaymentResult(False, "Payment not found.")
        return PaymentResult(True, "Payment deleted.", payment_id=payment_id)
