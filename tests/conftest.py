from datetime import date
from decimal import Decimal

import pytest

from installment_ledger.data_models import EntryKind, LedgerEntry
from installment_ledger.memory_gateway import InMemoryPaymentGateway
from installment_ledger.planner import generate_installments
from installment_ledger_web.ledger_store import LedgerStore


@pytest.fixture
def issue_date():
    return date(2026, 1, 31)


@pytest.fixture
def three_way_plan(issue_date):
    return generate_installments(Decimal("100.00"), Decimal("0"), 3, issue_date)


@pytest.fixture
def gateway():
    return InMemoryPaymentGateway()


@pytest.fixture
def store():
    return LedgerStore("sqlite://")


@pytest.fixture
def receivable():
    return LedgerEntry(
        kind=EntryKind.CREDIT,
        description="Oil collection contract",
        expected_amount=Decimal("100.00"),
        issue_date=date(2026, 1, 10),
        id="entry-1",
    )
