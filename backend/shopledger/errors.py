# Overview: Domain error kinds raised by the ledger services and mapped to HTTP by the routes.

"""
Ledger error kinds

Validation errors (InvalidInput, InvalidPaymentAmount, InsufficientStock) are
raised before the first write of an operation, so they never leave partial
effects. PartialWriteFailure is the only kind raised after writes started.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for every ledger/lifecycle failure."""

    kind = "LedgerError"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind, "details": self.details}


class InvalidInput(LedgerError):
    """Missing required fields, non-numeric quantity/price, bad status."""

    kind = "InvalidInput"
    status_code = 400


class InsufficientStock(LedgerError):
    """Consumption (or a rejected sale under the reject policy) exceeds what is available."""

    kind = "InsufficientStock"
    status_code = 409


class InvalidPaymentAmount(LedgerError):
    kind = "InvalidPaymentAmount"
    status_code = 400


class ReferenceNotFound(LedgerError):
    kind = "ReferenceNotFound"
    status_code = 404


class PartialWriteFailure(LedgerError):
    """
    A store write failed while an operation was in progress.

    rolled_back=True means the operation ran inside one transaction and nothing
    was kept. rolled_back=False means earlier writes were already committed and
    the intent record must be recovered (see maintenance_service.recover_intents).
    """

    kind = "PartialWriteFailure"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        intent_id: str | None = None,
        rolled_back: bool = False,
        details: dict | None = None,
    ):
        details = dict(details or {})
        details.setdefault("intent_id", intent_id)
        details.setdefault("rolled_back", rolled_back)
        super().__init__(message, details)
        self.intent_id = intent_id
        self.rolled_back = rolled_back
