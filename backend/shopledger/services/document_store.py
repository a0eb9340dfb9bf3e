# Overview: Tenant-scoped document store gateway (get/put/update/remove/subscribe) over the documents table.

"""
Document Store Gateway

Every piece of ledger state lives in one JSON document addressed by a path:

    {tenant}/products/{id}
    {tenant}/sales/{id}
    {tenant}/stockMovements/{id}
    {tenant}/oldBatteries/{id}
    ...

The gateway is bound to one tenant. Paths may be passed either as
"collection/key" or fully qualified with the tenant prefix; a path naming a
different tenant is rejected.

WRITE MODES:
- autocommit=False: writes are flushed into the current session; the caller
  (lifecycle_service.execute) commits once per lifecycle operation.
- autocommit=True: each write commits on its own, which is how a per-key
  document store behaves. A failure between two writes leaves the earlier ones
  in place; the write-ahead intent record is what makes that detectable.

LISTENERS: subscribe() callbacks are process-local and fire after each write
under the subscribed path prefix with (path, document_or_None).
"""

from __future__ import annotations

import copy
import uuid
from typing import Callable, Iterable

from flask import current_app

from ..extensions import db
from ..models import Document
from ..errors import InvalidInput, ReferenceNotFound
from .concurrency import lock_for_update


Listener = Callable[[str, "dict | None"], None]

# full path prefix -> listeners
_listeners: dict[str, list[Listener]] = {}


class DocumentStore:
    def __init__(self, tenant_id: str, *, autocommit: bool = False, session=None):
        tenant_id = (tenant_id or "").strip()
        if not tenant_id or "/" in tenant_id:
            raise InvalidInput("tenant id is required and cannot contain '/'")
        self.tenant_id = tenant_id
        self.autocommit = autocommit
        self.session = session or db.session
        # Number of document writes issued through this gateway
        self.write_count = 0

    @classmethod
    def for_tenant(cls, tenant_id: str) -> "DocumentStore":
        """Build a gateway using the app's LEDGER_ATOMIC_OPERATIONS setting."""
        atomic = current_app.config.get("LEDGER_ATOMIC_OPERATIONS", True)
        return cls(tenant_id, autocommit=not atomic)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def path(self, collection: str, key: str) -> str:
        return f"{self.tenant_id}/{collection}/{key}"

    def _split(self, path: str) -> tuple[str, str]:
        parts = [p for p in (path or "").strip("/").split("/") if p]
        if len(parts) == 3:
            if parts[0] != self.tenant_id:
                raise InvalidInput(f"path {path!r} is outside tenant {self.tenant_id!r}")
            parts = parts[1:]
        if len(parts) != 2:
            raise InvalidInput(f"invalid document path {path!r}")
        return parts[0], parts[1]

    def _collection_prefix(self, path: str) -> str:
        parts = [p for p in (path or "").strip("/").split("/") if p]
        if parts and parts[0] == self.tenant_id:
            parts = parts[1:]
        return "/".join([self.tenant_id, *parts])

    def _row(self, collection: str, key: str, *, lock: bool = False) -> Document | None:
        query = self.session.query(Document).filter_by(
            tenant_id=self.tenant_id,
            collection=collection,
            doc_key=key,
        )
        if lock:
            query = lock_for_update(query)
        return query.first()

    @staticmethod
    def _materialize(row: Document) -> dict:
        value = copy.deepcopy(row.body or {})
        value["id"] = row.doc_key
        return value

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, path: str) -> dict | None:
        collection, key = self._split(path)
        row = self._row(collection, key)
        return self._materialize(row) if row is not None else None

    def list(self, collection: str, where: Callable[[dict], bool] | None = None) -> list[dict]:
        """All documents of a collection in insertion order."""
        rows = (
            self.session.query(Document)
            .filter_by(tenant_id=self.tenant_id, collection=collection)
            .order_by(Document.id.asc())
            .all()
        )
        docs = [self._materialize(row) for row in rows]
        if where is not None:
            docs = [d for d in docs if where(d)]
        return docs

    def push_key(self, collection: str) -> str:
        """New unique key for a document in collection."""
        return uuid.uuid4().hex

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def put(self, path: str, value: dict) -> dict:
        """Create or replace a document."""
        collection, key = self._split(path)
        body = copy.deepcopy(dict(value or {}))
        body.pop("id", None)

        row = self._row(collection, key, lock=True)
        if row is None:
            row = Document(tenant_id=self.tenant_id, collection=collection, doc_key=key, body=body)
            self.session.add(row)
        else:
            row.body = body
        self._after_write()

        stored = self._materialize(row)
        self._notify(self.path(collection, key), stored)
        return stored

    def update(self, path: str, partial: dict) -> dict:
        """Shallow-merge partial into an existing document."""
        collection, key = self._split(path)
        row = self._row(collection, key, lock=True)
        if row is None:
            raise ReferenceNotFound(f"document {self.path(collection, key)} not found")

        body = copy.deepcopy(row.body or {})
        for field, val in (partial or {}).items():
            if field == "id":
                continue
            body[field] = copy.deepcopy(val)
        # Reassign so the JSON column is marked dirty
        row.body = body
        self._after_write()

        stored = self._materialize(row)
        self._notify(self.path(collection, key), stored)
        return stored

    def increment(self, path: str, field: str, by: int = 1, *, initial: int = 0) -> int:
        """
        Read-modify-write a numeric field under a row lock and return the new value.

        Concurrent writers collide on Document.version_id (StaleDataError) and are
        retried by run_with_retry at the caller.
        """
        collection, key = self._split(path)
        row = self._row(collection, key, lock=True)
        if row is None:
            value = initial + by
            row = Document(tenant_id=self.tenant_id, collection=collection, doc_key=key, body={field: value})
            self.session.add(row)
        else:
            body = copy.deepcopy(row.body or {})
            value = int(body.get(field, initial)) + by
            body[field] = value
            row.body = body
        self._after_write()
        self._notify(self.path(collection, key), self._materialize(row))
        return value

    def remove(self, path: str) -> bool:
        collection, key = self._split(path)
        row = self._row(collection, key, lock=True)
        if row is None:
            return False
        self.session.delete(row)
        self._after_write()
        self._notify(self.path(collection, key), None)
        return True

    def _after_write(self) -> None:
        self.session.flush()
        self.write_count += 1
        if self.autocommit:
            self.session.commit()

    # ------------------------------------------------------------------
    # Change subscription
    # ------------------------------------------------------------------

    def subscribe(self, path: str, on_change: Listener) -> Callable[[], None]:
        """
        Register on_change for every write at or below path.

        Returns an unsubscribe callable.
        """
        prefix = self._collection_prefix(path)
        _listeners.setdefault(prefix, []).append(on_change)

        def unsubscribe() -> None:
            callbacks = _listeners.get(prefix, [])
            if on_change in callbacks:
                callbacks.remove(on_change)
            if not callbacks:
                _listeners.pop(prefix, None)

        return unsubscribe

    def _notify(self, full_path: str, value: dict | None) -> None:
        for prefix, callbacks in list(_listeners.items()):
            if full_path == prefix or full_path.startswith(prefix + "/"):
                for callback in list(callbacks):
                    callback(full_path, copy.deepcopy(value) if value is not None else None)


def clear_listeners(prefixes: Iterable[str] | None = None) -> None:
    """Drop registered listeners (all of them when prefixes is None)."""
    if prefixes is None:
        _listeners.clear()
        return
    for prefix in prefixes:
        _listeners.pop(prefix, None)
