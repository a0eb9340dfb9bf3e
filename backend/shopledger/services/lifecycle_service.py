# Overview: Sale/purchase status state machine and the write-ahead intent runner used by every lifecycle operation.

"""
Lifecycle Service

================================================================================
PURPOSE: Status rules for sales/purchases, and one transaction boundary per
lifecycle operation
================================================================================

STATE MACHINES:
    Sale:      (new) -> completed | returned
               completed -> completed (edit) | returned
               returned  -> returned (header edit)
               completed | returned -> deleted
    Purchase:  (new) -> pending | completed
               pending   -> pending | completed
               completed -> completed (edit)
               pending | completed -> deleted

INTENTS:
Every lifecycle operation is split into a validation phase (reads only) and a
write phase. Before the write phase starts, an intent document
{tenant}/intents/{id} is committed with status "pending" and the product ids
and old-battery names the operation may touch.

    success            -> intent "completed" (same commit as the writes)
    LedgerError        -> nothing was written: intent discarded
    store failure      -> session rolled back, intent "failed",
                          PartialWriteFailure raised

With autocommit writes (LEDGER_ATOMIC_OPERATIONS=False) a failed intent means
earlier steps are already committed; maintenance_service.recover_intents()
replays the stock ledger and old-battery aggregates it names.
================================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable, TypeVar

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..errors import InvalidInput, LedgerError, PartialWriteFailure
from ..time_utils import now_z
from .concurrency import run_with_retry
from .document_store import DocumentStore


SALE_STATUSES = {"completed", "returned"}
PURCHASE_STATUSES = {"pending", "completed"}

SALE_TRANSITIONS = {
    ("completed", "completed"),
    ("completed", "returned"),
    ("returned", "returned"),
}

PURCHASE_TRANSITIONS = {
    ("pending", "pending"),
    ("pending", "completed"),
    ("completed", "completed"),
}

INTENT_PENDING = "pending"
INTENT_COMPLETED = "completed"
INTENT_FAILED = "failed"
INTENT_RECOVERED = "recovered"

T = TypeVar("T")


@dataclass
class LifecycleOutcome:
    """What a lifecycle operation did besides persisting its document."""
    document: dict | None
    movements: list[dict] = field(default_factory=list)
    skipped_product_ids: list[str] = field(default_factory=list)
    consumptions: list[dict] = field(default_factory=list)
    reversals: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "document": self.document,
            "movements": self.movements,
            "skippedProductIds": self.skipped_product_ids,
            "consumptions": self.consumptions,
            "reversals": self.reversals,
        }


def validate_status(status, allowed: set[str], what: str) -> str:
    if not isinstance(status, str) or status not in allowed:
        raise InvalidInput(
            f"Invalid {what} status '{status}'. Must be one of: {', '.join(sorted(allowed))}"
        )
    return status


def can_transition(from_status: str, to_status: str, transitions: set[tuple[str, str]]) -> bool:
    return (from_status, to_status) in transitions


def require_transition(from_status: str, to_status: str, transitions: set[tuple[str, str]], what: str) -> None:
    if not can_transition(from_status, to_status, transitions):
        raise InvalidInput(f"Cannot change {what} status from {from_status} to {to_status}")


# =============================================================================
# WRITE-AHEAD INTENTS
# =============================================================================

def begin_intent(
    store: DocumentStore,
    *,
    operation: str,
    target: str | None,
    product_ids: Iterable[str] = (),
    battery_names: Iterable[str] = (),
) -> str:
    intent_id = store.push_key("intents")
    store.put(f"intents/{intent_id}", {
        "operation": operation,
        "target": target,
        "productIds": sorted({str(p) for p in product_ids if p}),
        "oldBatteryNames": sorted({str(n) for n in battery_names if n}),
        "status": INTENT_PENDING,
        "error": None,
        "createdAt": now_z(),
        "finishedAt": None,
    })
    db.session.commit()
    return intent_id


def _finish_intent(store: DocumentStore, intent_id: str, status: str, error: str | None = None) -> None:
    store.update(f"intents/{intent_id}", {
        "status": status,
        "error": error,
        "finishedAt": now_z(),
    })


def list_intents(store: DocumentStore, statuses: Iterable[str] | None = None) -> list[dict]:
    wanted = set(statuses) if statuses is not None else None
    return store.list("intents", where=lambda d: wanted is None or d.get("status") in wanted)


def execute(
    store: DocumentStore,
    *,
    operation: str,
    target: str | None,
    apply: Callable[[], T],
    product_ids: Iterable[str] = (),
    battery_names: Iterable[str] = (),
) -> T:
    """
    Run the write phase of a lifecycle operation under an intent record.

    apply() performs the writes; it must not commit. Validation belongs before
    this call so that rejected operations never reach the store.
    """
    intent_id = begin_intent(
        store,
        operation=operation,
        target=target,
        product_ids=product_ids,
        battery_names=battery_names,
    )
    writes_before = store.write_count

    def _op():
        result = apply()
        _finish_intent(store, intent_id, INTENT_COMPLETED)
        db.session.commit()
        return result

    try:
        if store.autocommit:
            return _op()
        return run_with_retry(_op)
    except LedgerError as exc:
        db.session.rollback()
        if store.autocommit and store.write_count > writes_before:
            _fail_intent(store, intent_id, exc)
            raise PartialWriteFailure(
                f"{operation} stopped after partial writes: {exc.message}",
                intent_id=intent_id,
                rolled_back=False,
                details={"cause": exc.kind},
            ) from exc
        store.remove(f"intents/{intent_id}")
        db.session.commit()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Lifecycle operation %s failed (intent %s)", operation, intent_id)
        _fail_intent(store, intent_id, exc)
        raise PartialWriteFailure(
            f"{operation} failed while writing; reconcile before retrying",
            intent_id=intent_id,
            rolled_back=not store.autocommit,
        ) from exc


def _fail_intent(store: DocumentStore, intent_id: str, exc: Exception) -> None:
    try:
        _finish_intent(store, intent_id, INTENT_FAILED, error=str(exc)[:500])
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        # The intent stays "pending"; recover_intents() treats it the same way.
        current_app.logger.exception("Could not mark intent %s as failed", intent_id)
