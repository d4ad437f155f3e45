"""Persistence layer for ledger entries, installments and payments.

The store plays the role of the hosted database behind the application: it
keeps credit/debit entries with their installments, the payments recorded
against them, the settlement account movement of each payment and an audit
log of user actions. Every payment call runs in a single transaction that
also refreshes the paid amount and status of the parent entry, so callers
either see the whole change or none of it.

It defaults to SQLite for local development, but accepts any
SQLAlchemy-compatible URL (e.g. PostgreSQL).
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Union
from uuid import uuid4

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    create_engine,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from installment_ledger.data_models import (
    EntryKind,
    Installment,
    InstallmentStatus,
    LedgerEntry,
    PaymentEntry,
    PaymentMethod,
    PaymentResult,
)
from installment_ledger.errors import ExternalCallError
from installment_ledger.planner import derive_status
from installment_ledger.utils import MONEY_TOLERANCE, ZERO, sum_money, to_money

logger = logging.getLogger(__name__)

Base = declarative_base()


class LedgerEntryModel(Base):
    __tablename__ = "ledger_entries"

    id = Column(String(64), primary_key=True)
    # Installments point at the credit/debit record they split.
    parent_record_id = Column(String(64), index=True, nullable=True)
    kind = Column(String(16), nullable=False)
    description = Column(String(255), nullable=False, default="")
    installment_number = Column(Integer, nullable=True)
    issue_date = Column(Date, nullable=False)
    expected_amount = Column(Numeric(12, 2), nullable=False)
    paid_amount = Column(Numeric(12, 2), nullable=False, default=ZERO)
    paid_date = Column(Date, nullable=True)
    status = Column(String(32), nullable=False, default=InstallmentStatus.PENDING.value)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class PaymentModel(Base):
    __tablename__ = "payments"

    id = Column(String(64), primary_key=True)
    entry_id = Column(String(64), ForeignKey("ledger_entries.id"), index=True, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    payment_date = Column(Date, nullable=False)
    method = Column(String(32), nullable=False)
    notes = Column(Text, nullable=False, default="")
    account_id = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class AccountMovementModel(Base):
    __tablename__ = "account_movements"

    id = Column(String(64), primary_key=True)
    account_id = Column(String(64), index=True, nullable=False)
    payment_id = Column(String(64), ForeignKey("payments.id"), index=True, nullable=False)
    direction = Column(String(8), nullable=False)  # "in" or "out"
    amount = Column(Numeric(12, 2), nullable=False)
    movement_date = Column(Date, nullable=False)


class ActionLogModel(Base):
    __tablename__ = "action_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    action = Column(String(64), nullable=False)
    details_json = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class LedgerStore:
    """Database-backed ledger and payment collaborator."""

    def __init__(self, url: str) -> None:
        self._engine = create_engine(url, future=True)
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False, future=True)

    # Entries and installment plans

    def upsert_entry(self, entry: LedgerEntry) -> LedgerEntry:
        with self._session_factory.begin() as session:
            row = session.get(LedgerEntryModel, entry.id) if entry.id else None
            if row is None:
                row = LedgerEntryModel(id=entry.id or uuid4().hex, paid_amount=ZERO)
                session.add(row)
            row.kind = EntryKind(entry.kind).value
            row.description = entry.description
            row.parent_record_id = entry.parent_record_id
            row.issue_date = entry.issue_date
            row.expected_amount = to_money(entry.expected_amount)
            row.status = derive_status(row.expected_amount, row.paid_amount or ZERO).value
            return self._to_entry(row)

    def save_installment_plan(
        self, parent_record_id: str, installments: Iterable[Installment]
    ) -> List[Installment]:
        """Persist a plan, matching rows by id and then by installment number.

        Rows numbered beyond the new plan are removed unless they already
        carry payments, in which case nothing is saved.
        """
        plan = list(installments)
        with self._session_factory.begin() as session:
            parent = session.get(LedgerEntryModel, parent_record_id)
            kind = parent.kind if parent is not None else EntryKind.CREDIT.value
            description = parent.description if parent is not None else ""
            rows = self._installment_rows(session, parent_record_id)
            by_id = {row.id: row for row in rows}
            by_number = {row.installment_number: row for row in rows}
            kept = set()
            saved_rows = []
            for inst in plan:
                row = by_id.get(inst.id) if inst.id else None
                if row is None:
                    row = by_number.get(inst.installment_number)
                if row is None:
                    row = LedgerEntryModel(
                        id=uuid4().hex,
                        parent_record_id=parent_record_id,
                        kind=kind,
                        description=description,
                        paid_amount=ZERO,
                    )
                    session.add(row)
                row.installment_number = inst.installment_number
                row.issue_date = inst.due_date
                row.expected_amount = to_money(inst.expected_amount)
                row.status = derive_status(row.expected_amount, row.paid_amount or ZERO).value
                kept.add(row.id)
                saved_rows.append(row)
            for row in rows:
                if row.id in kept:
                    continue
                if to_money(row.paid_amount or ZERO) > 0:
                    raise ExternalCallError(
                        f"Installment {row.installment_number} has payments and cannot be removed."
                    )
                session.delete(row)
            logger.info("Saved %d installments for record %s", len(saved_rows), parent_record_id)
            return [self._to_installment(row) for row in saved_rows]

    def list_installments(self, parent_record_id: str) -> List[Installment]:
        with self._session_factory() as session:
            return [self._to_installment(row) for row in self._installment_rows(session, parent_record_id)]

    def get_entry(self, entry_id: str) -> Optional[Union[Installment, LedgerEntry]]:
        with self._session_factory() as session:
            row = session.get(LedgerEntryModel, entry_id)
            if row is None:
                return None
            if row.installment_number is not None:
                return self._to_installment(row)
            return self._to_entry(row)

    # Payment collaborator

    def list_payments(self, parent_entry_id: str) -> List[PaymentEntry]:
        with self._session_factory() as session:
            return [self._to_payment(row) for row in self._payment_rows(session, parent_entry_id)]

    def register_payment(
        self,
        parent_entry_id: str,
        amount: Decimal,
        payment_date: date,
        method: Union[PaymentMethod, str],
        notes: str,
        account_id: str,
    ) -> PaymentResult:
        try:
            with self._session_factory.begin() as session:
                entry = session.get(LedgerEntryModel, parent_entry_id)
                if entry is None:
                    return PaymentResult(False, "Entry not found.")
                value = to_money(amount)
                paid = sum_money(p.amount for p in self._payment_rows(session, parent_entry_id))
                if paid + value > to_money(entry.expected_amount) + MONEY_TOLERANCE:
                    return PaymentResult(False, "Payment exceeds the entry total.")
                payment = PaymentModel(
                    id=uuid4().hex,
                    entry_id=parent_entry_id,
                    amount=value,
                    payment_date=payment_date,
                    method=PaymentMethod(method).value,
                    notes=notes or "",
                    account_id=account_id,
                )
                session.add(payment)
                session.add(
                    AccountMovementModel(
                        id=uuid4().hex,
                        account_id=account_id,
                        payment_id=payment.id,
                        direction="in" if entry.kind == EntryKind.CREDIT.value else "out",
                        amount=value,
                        movement_date=payment_date,
                    )
                )
                balance_after = self._refresh_entry(session, entry)
                payment_id = payment.id
        except (SQLAlchemyError, ValueError) as exc:
            logger.exception("register_payment failed for entry %s", parent_entry_id)
            return PaymentResult(False, f"Error: {exc}")
        return PaymentResult(
            True, "Payment registered.", payment_id=payment_id, balance_after=balance_after
        )

    def update_payment(self, payment_id: str, amount: Decimal, payment_date: date) -> PaymentResult:
        try:
            with self._session_factory.begin() as session:
                payment = session.get(PaymentModel, payment_id)
                if payment is None:
                    return PaymentResult(False, "Payment not found.")
                entry = session.get(LedgerEntryModel, payment.entry_id)
                value = to_money(amount)
                others = sum_money(
                    p.amount for p in self._payment_rows(session, entry.id) if p.id != payment_id
                )
                if others + value > to_money(entry.expected_amount) + MONEY_TOLERANCE:
                    return PaymentResult(False, "Payment exceeds the entry total.")
                payment.amount = value
                payment.payment_date = payment_date
                for movement in self._movement_rows(session, payment_id):
                    movement.amount = value
                    movement.movement_date = payment_date
                balance_after = self._refresh_entry(session, entry)
        except (SQLAlchemyError, ValueError) as exc:
            logger.exception("update_payment failed for payment %s", payment_id)
            return PaymentResult(False, f"Error: {exc}")
        return PaymentResult(
            True, "Payment updated.", payment_id=payment_id, balance_after=balance_after
        )

    def delete_payment(self, payment_id: str) -> PaymentResult:
        try:
            with self._session_factory.begin() as session:
                payment = session.get(PaymentModel, payment_id)
                if payment is None:
                    return PaymentResult(False, "Payment not found.")
                entry = session.get(LedgerEntryModel, payment.entry_id)
                for movement in self._movement_rows(session, payment_id):
                    session.delete(movement)
                session.delete(payment)
                session.flush()
                balance_after = self._refresh_entry(session, entry)
        except SQLAlchemyError as exc:
            logger.exception("delete_payment failed for payment %s", payment_id)
            return PaymentResult(False, f"Error: {exc}")
        return PaymentResult(
            True, "Payment deleted.", payment_id=payment_id, balance_after=balance_after
        )

    # Audit log

    def log_action(self, action: str, details: Dict[str, Any]) -> None:
        with self._session_factory.begin() as session:
            session.add(ActionLogModel(action=action, details_json=json.dumps(details, default=str)))

    def list_actions(self) -> List[Dict[str, Any]]:
        with self._session_factory() as session:
            rows = session.execute(
                select(ActionLogModel).order_by(ActionLogModel.id.asc())
            ).scalars()
            return [
                {
                    "action": row.action,
                    "details": json.loads(row.details_json),
                    "created_at": row.created_at.isoformat(),
                }
                for row in rows
            ]

    def account_movements(self, account_id: str) -> List[Dict[str, Any]]:
        with self._session_factory() as session:
            rows = session.execute(
                select(AccountMovementModel)
                .where(AccountMovementModel.account_id == account_id)
                .order_by(AccountMovementModel.movement_date.asc())
            ).scalars()
            return [
                {
                    "payment_id": row.payment_id,
                    "direction": row.direction,
                    "amount": to_money(row.amount),
                    "date": row.movement_date,
                }
                for row in rows
            ]

    # Helpers

    @staticmethod
    def _installment_rows(session, parent_record_id: str) -> List[LedgerEntryModel]:
        return list(
            session.execute(
                select(LedgerEntryModel)
                .where(LedgerEntryModel.parent_record_id == parent_record_id)
                .where(LedgerEntryModel.installment_number.is_not(None))
                .order_by(LedgerEntryModel.installment_number.asc())
            ).scalars()
        )

    @staticmethod
    def _payment_rows(session, entry_id: str) -> List[PaymentModel]:
        return list(
            session.execute(
                select(PaymentModel)
                .where(PaymentModel.entry_id == entry_id)
                .order_by(PaymentModel.payment_date.asc(), PaymentModel.created_at.asc())
            ).scalars()
        )

    @staticmethod
    def _movement_rows(session, payment_id: str) -> List[AccountMovementModel]:
        return list(
            session.execute(
                select(AccountMovementModel).where(AccountMovementModel.payment_id == payment_id)
            ).scalars()
        )

    def _refresh_entry(self, session, entry: LedgerEntryModel) -> Decimal:
        payments = self._payment_rows(session, entry.id)
        paid = sum_money(p.amount for p in payments)
        entry.paid_amount = paid
        entry.paid_date = max((p.payment_date for p in payments), default=None)
        entry.status = derive_status(entry.expected_amount, paid).value
        return to_money(entry.expected_amount) - paid

    @staticmethod
    def _to_installment(row: LedgerEntryModel) -> Installment:
        return Installment(
            installment_number=row.installment_number,
            due_date=row.issue_date,
            expected_amount=to_money(row.expected_amount),
            paid_amount=to_money(row.paid_amount or ZERO),
            paid_date=row.paid_date,
            status=InstallmentStatus(row.status),
            id=row.id,
        )

    @staticmethod
    def _to_entry(row: LedgerEntryModel) -> LedgerEntry:
        return LedgerEntry(
            kind=EntryKind(row.kind),
            description=row.description,
            expected_amount=to_money(row.expected_amount),
            issue_date=row.issue_date,
            paid_amount=to_money(row.paid_amount or ZERO),
            paid_date=row.paid_date,
            status=InstallmentStatus(row.status),
            parent_record_id=row.parent_record_id,
            id=row.id,
        )

    @staticmethod
    def _to_payment(row: PaymentModel) -> PaymentEntry:
        return PaymentEntry(
            id=row.id,
            parent_entry_id=row.entry_id,
            amount=to_money(row.amount),
            date=row.payment_date,
            method=PaymentMethod(row.method),
            notes=row.notes or "",
            account_id=row.account_id,
        )


def create_store_from_env(url: Optional[str]) -> LedgerStore:
    return LedgerStore(url or "sqlite:///ledger_data.sqlite3")
