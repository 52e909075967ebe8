# Overview: Flask API routes for menu operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import CanteenError
from ..services import catalog_service
from ..decorators import require_auth, require_permission


menu_bp = Blueprint("menu", __name__, url_prefix="/api/menu")


@menu_bp.get("")
def list_menu_route():
    """
    List menu items. Public.

    Query params:
    - category: exact category match
    - available=true: only items that can currently be ordered
    """
    available_only = request.args.get("available", "").strip().lower() in {"1", "true", "yes"}
    items = catalog_service.list_menu_items(
        category=request.args.get("category"),
        available_only=available_only,
    )
    return jsonify({"items": [item.to_dict() for item in items]}), 200


@menu_bp.get("/<int:menu_item_id>")
def get_menu_item_route(menu_item_id: int):
    try:
        item = catalog_service.get_menu_item(menu_item_id)
        return jsonify({"item": item.to_dict()}), 200
    except CanteenError as e:
        return jsonify(e.to_dict()), e.status_code


@menu_bp.post("")
@require_auth
@require_permission("MANAGE_MENU")
def create_menu_item_route():
    """
    Create a menu item.

    Requires: MANAGE_MENU permission
    Available to: admin, staff
    """
    try:
        item = catalog_service.create_menu_item(g.current_user, request.get_json(silent=True))
        return jsonify({"item": item.to_dict()}), 201

    except CanteenError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create menu item")
        return jsonify({"error": "Internal server error"}), 500


@menu_bp.patch("/<int:menu_item_id>")
@require_auth
@require_permission("MANAGE_MENU")
def update_menu_item_route(menu_item_id: int):
    """
    Update a menu item (partial).

    Requires: MANAGE_MENU permission
    Available to: admin, staff
    """
    try:
        item = catalog_service.update_menu_item(
            g.current_user, menu_item_id, request.get_json(silent=True)
        )
        return jsonify({"item": item.to_dict()}), 200

    except CanteenError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update menu item %s", menu_item_id)
        return jsonify({"error": "Internal server error"}), 500
