# Overview: Flask API routes for order operations; parses input and returns JSON responses.

# backend/canteen/routes/orders.py
"""Order API routes with permission enforcement"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import CanteenError
from ..validation import clamp_page
from ..services import invoice_service, order_service
from ..decorators import require_auth, require_permission


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@require_auth
@require_permission("PLACE_ORDER")
def create_order_route():
    """
    Place an order.

    Body: {items: [{menu_item_id, quantity}], payment_method?, notes?}

    Requires: PLACE_ORDER permission
    Available to: admin, staff, student
    """
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.create_order(
            g.current_user,
            data.get("items"),
            payment_method=data.get("payment_method"),
            notes=data.get("notes"),
        )
        return jsonify({"order": order.to_dict()}), 201

    except CanteenError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_auth
def list_orders_route():
    """
    List orders. Students get their own; staff/admin get all.

    Query params:
    - status: filter by order status
    - limit: page size (default 100, max 500)
    - offset: rows to skip (default 0)
    """
    try:
        limit, offset = clamp_page(
            request.args.get("limit", type=int),
            request.args.get("offset", type=int),
        )
        orders, total = order_service.list_orders(
            g.current_user,
            status=request.args.get("status"),
            limit=limit,
            offset=offset,
        )
        return jsonify({
            "orders": [order.to_dict() for order in orders],
            "count": total,
            "limit": limit,
            "offset": offset,
        }), 200

    except CanteenError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(g.current_user, order_id)
        return jsonify({"order": order.to_dict()}), 200

    except CanteenError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get order %s", order_id)
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>/status")
@require_auth
@require_permission("UPDATE_ORDER_STATUS")
def update_status_route(order_id: int):
    """
    Move an order through its lifecycle.

    Body: {status}

    Requires: UPDATE_ORDER_STATUS permission
    Available to: admin, staff
    """
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.transition_status(g.current_user, order_id, data.get("status"))
        return jsonify({"order": order.to_dict()}), 200

    except CanteenError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update status of order %s", order_id)
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/cancel")
@require_auth
@require_permission("CANCEL_OWN_ORDER")
def cancel_order_route(order_id: int):
    """
    Cancel an order. Students: own orders, while pending.

    Requires: CANCEL_OWN_ORDER permission
    Available to: admin, staff, student
    """
    try:
        order = order_service.cancel_order(g.current_user, order_id)
        return jsonify({"order": order.to_dict()}), 200

    except CanteenError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel order %s", order_id)
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>/invoice")
@require_auth
def get_order_invoice_route(order_id: int):
    """
    Get the order's invoice.

    A delivered order whose automatic invoice never got written is
    invoiced on this read.
    """
    try:
        invoice = invoice_service.get_invoice_for_order(g.current_user, order_id)
        return jsonify({"invoice": invoice.to_dict()}), 200

    except CanteenError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get invoice for order %s", order_id)
        return jsonify({"error": "Internal server error"}), 500
