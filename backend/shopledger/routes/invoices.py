# Overview: Flask API route for the next invoice number of a series.

from flask import Blueprint, g, jsonify, request

from ..decorators import ledger_error_response, with_tenant_store
from ..errors import LedgerError
from ..extensions import db
from ..services.document_service import next_invoice_number


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@invoices_bp.get("/next")
@with_tenant_store
def next_invoice_route():
    """
    Next invoice number for ?series=sale|purchase|old_battery (default sale).

    In counter mode this reserves the number.
    """
    series = request.args.get("series", "sale")
    try:
        invoice_number = next_invoice_number(g.store, series)
        db.session.commit()
    except LedgerError as e:
        return ledger_error_response(e)
    return jsonify({"series": series, "invoiceNumber": invoice_number}), 200
