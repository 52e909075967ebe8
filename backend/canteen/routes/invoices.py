# Overview: Flask API routes for invoice operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import CanteenError
from ..validation import clamp_page
from ..services import invoice_service
from ..decorators import require_auth, require_permission


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@invoices_bp.get("")
@require_auth
def list_invoices_route():
    """
    Students get their own invoices; staff/admin get all.

    Query params: status, limit (default 100, max 500), offset
    """
    try:
        limit, offset = clamp_page(
            request.args.get("limit", type=int),
            request.args.get("offset", type=int),
        )
        invoices, total = invoice_service.list_invoices(
            g.current_user,
            status=request.args.get("status"),
            limit=limit,
            offset=offset,
        )
        return jsonify({
            "invoices": [invoice.to_dict() for invoice in invoices],
            "count": total,
            "limit": limit,
            "offset": offset,
        }), 200

    except CanteenError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list invoices")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/<int:invoice_id>")
@require_auth
def get_invoice_route(invoice_id: int):
    try:
        invoice = invoice_service.get_invoice(g.current_user, invoice_id)
        return jsonify({"invoice": invoice.to_dict()}), 200

    except CanteenError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get invoice %s", invoice_id)
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("")
@require_auth
@require_permission("ISSUE_INVOICE")
def issue_invoice_route():
    """
    Manually issue an invoice.

    Body: {order_id, tax_cents?, discount_cents?, notes?}

    Requires: ISSUE_INVOICE permission
    Available to: admin, staff
    """
    try:
        data = request.get_json(silent=True) or {}
        if data.get("order_id") is None:
            return jsonify({"error": "order_id required", "kind": "validation_error"}), 400

        invoice = invoice_service.issue_invoice(
            g.current_user,
            data.get("order_id"),
            tax_cents=data.get("tax_cents"),
            discount_cents=data.get("discount_cents"),
            notes=data.get("notes"),
        )
        return jsonify({"invoice": invoice.to_dict()}), 201

    except CanteenError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to issue invoice")
        return jsonify({"error": "Internal server error"}), 500
