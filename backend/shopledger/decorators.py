# Overview: Request decorators for API routes; tenant store binding and ledger error translation.

from functools import wraps

from flask import current_app, g, jsonify, request

from .errors import InvalidInput, LedgerError
from .extensions import db
from .services.document_store import DocumentStore


def with_tenant_store(f):
    """
    Bind the tenant's document store to g.store.

    Tenant comes from the X-Tenant-ID header, falling back to DEFAULT_TENANT.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        tenant_id = request.headers.get("X-Tenant-ID") or current_app.config.get("DEFAULT_TENANT")
        try:
            g.store = DocumentStore.for_tenant(tenant_id)
        except InvalidInput as e:
            return jsonify(e.to_dict()), e.status_code
        return f(*args, **kwargs)

    return decorated_function


def ledger_error_response(e: LedgerError):
    """JSON body + status for a domain error; the session is left clean."""
    db.session.rollback()
    if e.status_code >= 500:
        current_app.logger.error("%s: %s %s", e.kind, e.message, e.details)
    return jsonify(e.to_dict()), e.status_code
