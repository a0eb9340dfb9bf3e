# Overview: Invoice sequencer; next identifier per document series (scan-max or counter mode).

from __future__ import annotations

import re
import time

from flask import current_app

from ..errors import InvalidInput
from .document_store import DocumentStore


SEQUENCE_MODES = {"scan", "counter"}


def series_config(series: str) -> dict:
    """{prefix, collection} for a configured series; InvalidInput if unknown."""
    configured = current_app.config.get("INVOICE_SERIES") or {}
    config = configured.get(series)
    if not config:
        raise InvalidInput(
            f"Unknown invoice series '{series}'. Must be one of: {', '.join(sorted(configured))}"
        )
    return config


def _width() -> int:
    return int(current_app.config.get("INVOICE_NUMBER_WIDTH", 3))


def format_invoice_number(prefix: str, number: int) -> str:
    return f"{prefix}-{str(number).zfill(_width())}"


def _timestamp_number(prefix: str) -> str:
    return f"{prefix}-{str(int(time.time() * 1000))[-6:]}"


def scan_series_max(store: DocumentStore, series: str) -> tuple[int | None, bool]:
    """
    Highest numeric suffix among the series' invoice numbers.

    Returns (max_or_None, saw_prefixed_identifiers).
    """
    config = series_config(series)
    pattern = re.compile(rf"^{re.escape(config['prefix'])}-(\d+)$")
    highest = None
    saw_prefixed = False
    for doc in store.list(config["collection"]):
        invoice = doc.get("invoiceNumber")
        if not isinstance(invoice, str) or not invoice.startswith(config["prefix"] + "-"):
            continue
        saw_prefixed = True
        match = pattern.match(invoice)
        if match is None:
            continue
        value = int(match.group(1))
        if highest is None or value > highest:
            highest = value
    return highest, saw_prefixed


def next_invoice_number(store: DocumentStore, series: str) -> str:
    """
    Next identifier for a document series, e.g. "OB-004".

    scan mode: max existing suffix + 1, read-then-write (racy under concurrent
    writers). Empty series starts at 1. When identifiers exist but none carry a
    numeric suffix, or the scan fails, falls back to the last 6 digits of the
    current timestamp.

    counter mode: increments counters/invoice-{series}, seeded from the scan max
    the first time. The counter write joins the caller's transaction.
    """
    config = series_config(series)
    prefix = config["prefix"]
    mode = current_app.config.get("INVOICE_SEQUENCE_MODE", "scan")
    if mode not in SEQUENCE_MODES:
        raise InvalidInput(f"Unknown INVOICE_SEQUENCE_MODE '{mode}'")

    try:
        highest, saw_prefixed = scan_series_max(store, series)
    except (TypeError, ValueError):
        current_app.logger.exception("Invoice scan failed for series %s", series)
        return _timestamp_number(prefix)

    if mode == "counter":
        path = f"counters/invoice-{series}"
        seed = highest or 0
        existing = store.get(path)
        if existing is not None:
            seed = max(seed, int(existing.get("value") or 0))
            store.update(path, {"value": seed})
        value = store.increment(path, "value", 1, initial=seed)
        return format_invoice_number(prefix, value)

    if highest is None:
        if saw_prefixed:
            current_app.logger.warning(
                "No numeric %s- invoice numbers found; using timestamp suffix", prefix
            )
            return _timestamp_number(prefix)
        return format_invoice_number(prefix, 1)
    return format_invoice_number(prefix, highest + 1)


def ensure_invoice_unused(store: DocumentStore, series: str, invoice_number: str, *, exclude_id: str | None = None) -> None:
    config = series_config(series)
    clash = store.list(
        config["collection"],
        where=lambda d: d.get("invoiceNumber") == invoice_number and d.get("id") != exclude_id,
    )
    if clash:
        raise InvalidInput(
            f"Invoice number {invoice_number} is already used",
            {"invoiceNumber": invoice_number},
        )
