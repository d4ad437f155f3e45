"""Exceptions raised by the installment ledger core."""

from __future__ import annotations

from decimal import Decimal


class LedgerError(Exception):
    """Base class for ledger errors that should be shown to the user."""


class PaymentValidationError(LedgerError, ValueError):
    """A payment request was rejected before reaching the collaborator."""


class PaymentExceedsTotalError(PaymentValidationError):
    def __init__(self, limit: Decimal, attempted_total: Decimal) -> None:
        self.limit = limit
        self.attempted_total = attempted_total
        super().__init__(
            f"Total paid ({attempted_total}) cannot exceed the entry total ({limit})."
        )


class PaymentNotFoundError(LedgerError, LookupError):
    pass


class ExternalCallError(LedgerError):
    """The persistence or payment collaborator reported a failure."""


class SubmissionInFlightError(LedgerError):
    """A request for the same entry is still waiting for its result."""
