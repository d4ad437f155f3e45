"""Tests for the Flask JSON endpoints."""

import pytest

from installment_ledger.config import AppConfig
from installment_ledger_web.app import create_app


@pytest.fixture
def client(store):
    app = create_app(AppConfig(database_url="sqlite://"), store=store)
    app.config["TESTING"] = True
    return app.test_client()


@pytest.fixture
def preview(client):
    response = client.post(
        "/plans/preview",
        json={
            "total_value": "100,00",
            "down_payment": "0,00",
            "installments_number": 3,
            "issue_date": "2026-01-31",
        },
    )
    assert response.status_code == 200
    return response.get_json()


@pytest.fixture
def entry_id(client):
    response = client.post(
        "/entries",
        json={"id": "e1", "kind": "credit", "description": "Collection", "expected_amount": "100,00", "issue_date": "2026-01-10"},
    )
    assert response.status_code == 201
    return response.get_json()["id"]


def post_payment(client, entry_id, amount, **extra):
    body = {"amount": amount, "date": "2026-02-01", "method": "pix", "account_id": "acc-1"}
    body.update(extra)
    return client.post(f"/entries/{entry_id}/payments", json=body)


def test_preview_plan(preview):
    assert [i["expected_amount"] for i in preview["installments"]] == ["33.33", "33.33", "33.34"]
    assert preview["installments"][0]["due_date"] == "2026-02-28"
    assert preview["installments"][2]["expected_display"] == "R$ 33,34"
    assert preview["difference"] == "0.00"
    assert preview["warning"] is None


def test_preview_not_ready(client):
    response = client.post("/plans/preview", json={"total_value": "100,00", "installments_number": 0, "issue_date": "2026-01-31"})
    assert response.get_json()["installments"] == []


def test_edit_amount_round_trip(client, preview):
    response = client.post(
        "/plans/edit-amount",
        json={"installments": preview["installments"], "index": 0, "amount": "40,00", "total_value": "100,00"},
    )
    body = response.get_json()
    assert [i["expected_amount"] for i in body["installments"]] == ["40.00", "33.33", "26.67"]
    assert body["warning"] is None
    assert body["difference"] == "0.00"


def test_edit_last_amount_warns(client, preview):
    response = client.post(
        "/plans/edit-amount",
        json={"installments": preview["installments"], "index": 2, "amount": "50,00", "total_value": "100,00"},
    )
    body = response.get_json()
    assert body["warning"]
    assert body["installments"][2]["expected_amount"] == "33.34"


def test_edit_amount_bad_index(client, preview):
    response = client.post(
        "/plans/edit-amount", json={"installments": preview["installments"], "index": 7, "amount": "1,00"}
    )
    assert response.status_code == 400


def test_edit_due_date(client, preview):
    response = client.post(
        "/plans/edit-due-date",
        json={"installments": preview["installments"], "index": 0, "due_date": "2025-12-01", "issue_date": "2026-01-31"},
    )
    body = response.get_json()
    assert body["installments"][0]["due_date"] == "2025-12-01"
    assert body["warning"]


def test_save_and_list_installments(client, preview):
    response = client.put("/records/r1/installments", json={"installments": preview["installments"]})
    assert response.status_code == 200
    saved = response.get_json()["installments"]
    assert all(i["id"] for i in saved)
    listed = client.get("/records/r1/installments").get_json()["installments"]
    assert [i["id"] for i in listed] == [i["id"] for i in saved]


def test_payment_flow(client, entry_id):
    assert post_payment(client, entry_id, "40,00").status_code == 201
    body = post_payment(client, entry_id, "35,00").get_json()
    assert body["remaining"] == "25.00"
    assert body["remaining_display"] == "R$ 25,00"
    assert body["status"] == "partially_paid"

    rejected = post_payment(client, entry_id, "30,00")
    assert rejected.status_code == 400
    assert "exceed" in rejected.get_json()["error"]

    payments = client.get(f"/entries/{entry_id}/payments").get_json()["payments"]
    second = [p for p in payments if p["amount"] == "35.00"][0]
    edited = client.patch(f"/entries/{entry_id}/payments/{second['id']}", json={"amount": "60,00", "date": "2026-02-03"})
    assert edited.get_json()["status"] == "paid"

    first = [p for p in payments if p["amount"] == "40.00"][0]
    deleted = client.delete(f"/entries/{entry_id}/payments/{first['id']}")
    assert deleted.get_json()["remaining"] == "40.00"


def test_payment_requires_account(client, entry_id):
    response = post_payment(client, entry_id, "10,00", account_id=None)
    assert response.status_code == 400


def test_unknown_entry_and_payment(client, entry_id):
    assert post_payment(client, "missing", "10,00").status_code == 404
    response = client.patch(f"/entries/{entry_id}/payments/nope", json={"amount": "1,00", "date": "2026-02-03"})
    assert response.status_code == 404


def test_installment_without_number_is_rejected(client, preview):
    rows = preview["installments"]
    del rows[1]["installment_number"]
    response = client.post(
        "/plans/edit-amount", json={"installments": rows, "index": 0, "amount": "40,00"}
    )
    assert response.status_code == 400
    assert "number" in response.get_json()["error"]


def test_edit_amount_rejects_total_below_other_installments(client, preview):
    response = client.post(
        "/plans/edit-amount",
        json={"installments": preview["installments"], "index": 2, "amount": "5,00", "total_value": "50,00"},
    )
    body = response.get_json()
    assert "exceed" in body["warning"]
    assert [i["expected_amount"] for i in body["installments"]] == ["33.33", "33.33", "33.34"]
