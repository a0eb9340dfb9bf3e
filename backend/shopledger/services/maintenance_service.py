# Overview: Maintenance tasks; stock reconciliation, old-battery rebuilds and recovery of interrupted lifecycle operations.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..time_utils import now_z
from . import ledger_service, old_battery_service
from .document_store import DocumentStore
from .lifecycle_service import INTENT_FAILED, INTENT_PENDING, INTENT_RECOVERED, list_intents


def reconcile(store: DocumentStore, product_id: str | None = None, *, fix: bool = False) -> list[dict]:
    """Report stock drift and, with fix=True, rewrite the cached stock. Commits."""
    reports = ledger_service.reconcile_stock(store, product_id, fix=fix)
    db.session.commit()
    return reports


def rebuild_old_batteries(store: DocumentStore) -> list[dict]:
    rebuilt = old_battery_service.rebuild_old_battery_stock(store)
    db.session.commit()
    return rebuilt


def recover_intents(store: DocumentStore) -> list[dict]:
    """
    Repair the derived state touched by lifecycle operations that never finished.

    For every pending/failed intent: replay currentStock of each product it
    names, rebuild the old-battery aggregates it names, then mark it
    "recovered". Documents themselves are left as they are.
    """
    recovered = []
    for intent in list_intents(store, [INTENT_PENDING, INTENT_FAILED]):
        fixed = []
        for product_id in intent.get("productIds") or []:
            if ledger_service.get_product_doc(store, product_id) is None:
                current_app.logger.warning(
                    "Intent %s names missing product %s; nothing to replay", intent["id"], product_id
                )
                continue
            fixed.extend(ledger_service.reconcile_stock(store, product_id, fix=True))

        names = intent.get("oldBatteryNames") or []
        if names:
            old_battery_service.rebuild_old_battery_stock(store, names)

        store.update(f"intents/{intent['id']}", {
            "status": INTENT_RECOVERED,
            "recoveredAt": now_z(),
        })
        db.session.commit()
        current_app.logger.info(
            "Recovered intent %s (%s): %s stock correction(s), %s old battery name(s)",
            intent["id"], intent.get("operation"), len(fixed), len(names),
        )
        recovered.append({
            "intentId": intent["id"],
            "operation": intent.get("operation"),
            "target": intent.get("target"),
            "stockCorrections": fixed,
            "oldBatteryNames": names,
        })
    return recovered
