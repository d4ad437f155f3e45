"""Flask application exposing plans and payments as JSON endpoints.

Plan generation and edits run the pure planner functions on the posted
plan, so the editing surface can call them on every change. Saving a plan
and the payment actions go through the SQL store.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from flask import Flask, jsonify, request

from installment_ledger.config import AppConfig, LocaleConfig, load_config
from installment_ledger.currency import format_currency, parse_currency
from installment_ledger.data_models import (
    EntryKind,
    Installment,
    InstallmentStatus,
    LedgerEntry,
    PaymentEntry,
    Reconciliation,
)
from installment_ledger.errors import (
    ExternalCallError,
    LedgerError,
    PaymentNotFoundError,
    SubmissionInFlightError,
)
from installment_ledger.main import installment_to_dict
from installment_ledger.planner import (
    edit_installment_amount,
    edit_installment_due_date,
    generate_installments,
    plan_difference,
)
from installment_ledger.reconciler import PaymentReconciler
from installment_ledger.utils import parse_iso_date, to_money
from installment_ledger_web.ledger_store import LedgerStore, create_store_from_env


def installment_from_dict(data: Dict[str, Any]) -> Installment:
    """Read an installment posted back by the client (plain decimal strings)."""
    due = parse_iso_date(data.get("due_date"))
    if due is None:
        raise ValueError(f"Invalid due date: {data.get('due_date')}")
    number = data.get("installment_number")
    if number is None:
        raise ValueError("Installment number is required")
    return Installment(
        installment_number=int(number),
        due_date=due,
        expected_amount=to_money(data.get("expected_amount") or "0"),
        paid_amount=to_money(data.get("paid_amount") or "0"),
        paid_date=parse_iso_date(data.get("paid_date")),
        status=InstallmentStatus(data.get("status") or InstallmentStatus.PENDING.value),
        id=data.get("id"),
    )


def _plan_from_payload(payload: Dict[str, Any], key: str) -> List[Installment]:
    return [installment_from_dict(item) for item in payload.get(key) or []]


def _serialize_plan(installments: List[Installment], locale: LocaleConfig) -> List[Dict[str, Any]]:
    serialized = []
    for inst in installments:
        item = installment_to_dict(inst)
        item["id"] = inst.id
        item["expected_display"] = format_currency(inst.expected_amount, locale)
        serialized.append(item)
    return serialized


def _serialize_payment(payment: PaymentEntry, locale: LocaleConfig) -> Dict[str, Any]:
    return {
        "id": payment.id,
        "amount": str(payment.amount),
        "amount_display": format_currency(payment.amount, locale),
        "date": payment.date.isoformat(),
        "method": payment.method.value,
        "notes": payment.notes,
        "account_id": payment.account_id,
    }


def _serialize_reconciliation(rec: Reconciliation, locale: LocaleConfig) -> Dict[str, Any]:
    return {
        "entry_id": rec.entry_id,
        "expected_amount": str(rec.expected_amount),
        "paid_amount": str(rec.paid_amount),
        "remaining": str(rec.remaining),
        "remaining_display": format_currency(rec.remaining, locale),
        "status": rec.status.value,
        "payments": [_serialize_payment(p, locale) for p in rec.payments],
    }


def _error(message: str, status: int):
    return jsonify({"error": message}), status


def create_app(config: Optional[AppConfig] = None, store: Optional[LedgerStore] = None) -> Flask:
    config = config or load_config()
    locale = config.locale
    app = Flask(__name__)
    ledger_store = store or create_store_from_env(config.database_url)
    reconciler = PaymentReconciler(ledger_store, audit=ledger_store.log_action, locale=locale)

    @app.errorhandler(PaymentNotFoundError)
    def handle_not_found(exc):
        return _error(str(exc), 404)

    @app.errorhandler(SubmissionInFlightError)
    def handle_in_flight(exc):
        return _error(str(exc), 409)

    @app.errorhandler(ExternalCallError)
    def handle_external(exc):
        return _error(str(exc), 502)

    @app.errorhandler(LedgerError)
    def handle_ledger_error(exc):
        return _error(str(exc), 400)

    @app.errorhandler(ValueError)
    def handle_value_error(exc):
        return _error(str(exc), 400)

    def _payload() -> Dict[str, Any]:
        return request.get_json(silent=True) or {}

    def _plan_response(installments: List[Installment], payload: Dict[str, Any], warning=None):
        body: Dict[str, Any] = {"installments": _serialize_plan(installments, locale), "warning": warning}
        if "total_value" in payload:
            difference = plan_difference(
                installments,
                parse_currency(payload["total_value"], locale),
                parse_currency(payload.get("down_payment") or "0", locale),
            )
            body["difference"] = str(difference)
        return jsonify(body)

    def _load_payable(entry_id: str):
        entry = ledger_store.get_entry(entry_id)
        if entry is None:
            raise PaymentNotFoundError(f"Entry {entry_id} not found")
        return entry

    @app.post("/plans/preview")
    def preview_plan():
        payload = _payload()
        installments = generate_installments(
            parse_currency(payload.get("total_value") or "0", locale),
            parse_currency(payload.get("down_payment") or "0", locale),
            int(payload.get("installments_number") or 0),
            payload.get("issue_date"),
            _plan_from_payload(payload, "existing_installments"),
        )
        return _plan_response(installments, payload)

    @app.post("/plans/edit-amount")
    def edit_amount():
        payload = _payload()
        installments = _plan_from_payload(payload, "installments")
        total_expected = None
        if "total_value" in payload:
            total_expected = parse_currency(payload["total_value"], locale) - parse_currency(
                payload.get("down_payment") or "0", locale
            )
        try:
            result = edit_installment_amount(
                installments,
                int(payload.get("index", -1)),
                parse_currency(payload.get("amount") or "0", locale),
                total_expected,
            )
        except IndexError as exc:
            return _error(str(exc), 400)
        return _plan_response(result.installments, payload, result.warning)

    @app.post("/plans/edit-due-date")
    def edit_due_date():
        payload = _payload()
        installments = _plan_from_payload(payload, "installments")
        try:
            result = edit_installment_due_date(
                installments,
                int(payload.get("index", -1)),
                payload.get("due_date"),
                payload.get("issue_date"),
            )
        except IndexError as exc:
            return _error(str(exc), 400)
        return _plan_response(result.installments, payload, result.warning)

    @app.get("/records/<record_id>/installments")
    def list_installments(record_id: str):
        return jsonify({"installments": _serialize_plan(ledger_store.list_installments(record_id), locale)})

    @app.put("/records/<record_id>/installments")
    def save_installments(record_id: str):
        installments = _plan_from_payload(_payload(), "installments")
        saved = ledger_store.save_installment_plan(record_id, installments)
        return jsonify({"installments": _serialize_plan(saved, locale)})

    @app.post("/entries")
    def upsert_entry():
        payload = _payload()
        issued = parse_iso_date(payload.get("issue_date"))
        if issued is None:
            return _error("Invalid issue date", 400)
        entry = ledger_store.upsert_entry(
            LedgerEntry(
                kind=EntryKind(payload.get("kind") or EntryKind.CREDIT.value),
                description=payload.get("description") or "",
                expected_amount=parse_currency(payload.get("expected_amount") or "0", locale),
                issue_date=issued,
                parent_record_id=payload.get("parent_record_id"),
                id=payload.get("id"),
            )
        )
        return jsonify(
            {
                "id": entry.id,
                "kind": entry.kind.value,
                "expected_amount": str(to_money(entry.expected_amount)),
                "status": entry.status.value,
            }
        ), 201

    @app.get("/entries/<entry_id>/payments")
    def payment_history(entry_id: str):
        rec = reconciler.reconcile(_load_payable(entry_id))
        return jsonify(_serialize_reconciliation(rec, locale))

    @app.post("/entries/<entry_id>/payments")
    def register_payment(entry_id: str):
        payload = _payload()
        rec = reconciler.register_payment(
            _load_payable(entry_id),
            parse_currency(payload.get("amount") or "0", locale),
            payload.get("date"),
            payload.get("method") or "pix",
            payload.get("notes") or "",
            payload.get("account_id"),
        )
        return jsonify(_serialize_reconciliation(rec, locale)), 201

    @app.patch("/entries/<entry_id>/payments/<payment_id>")
    def edit_payment(entry_id: str, payment_id: str):
        payload = _payload()
        rec = reconciler.edit_payment(
            _load_payable(entry_id),
            payment_id,
            parse_currency(payload.get("amount") or "0", locale),
            payload.get("date"),
        )
        return jsonify(_serialize_reconciliation(rec, locale))

    @app.delete("/entries/<entry_id>/payments/<payment_id>")
    def delete_payment(entry_id: str, payment_id: str):
        rec = reconciler.delete_payment(_load_payable(entry_id), payment_id)
        return jsonify(_serialize_reconciliation(rec, locale))

    return app


if __name__ == "__main__":
    print("Starting installment ledger web app...")
    create_app().run(host="0.0.0.0", port=8710, debug=True)
