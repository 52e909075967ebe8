# Overview: Flask API routes for user administration; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import CanteenError
from ..services import auth_service
from ..decorators import require_auth, require_permission


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_permission("MANAGE_USERS")
def list_users_route():
    """
    List users, optionally ?role=staff.

    Requires: MANAGE_USERS permission
    Available to: admin
    """
    try:
        users = auth_service.list_users(g.current_user, role=request.args.get("role"))
        return jsonify({"users": [user.to_dict() for user in users]}), 200

    except CanteenError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list users")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.patch("/<int:user_id>")
@require_auth
@require_permission("MANAGE_USERS")
def update_user_route(user_id: int):
    """
    Update name, phone, role or is_active (block/unblock).

    Requires: MANAGE_USERS permission
    Available to: admin
    """
    try:
        user = auth_service.update_user(g.current_user, user_id, request.get_json(silent=True))
        return jsonify({"user": user.to_dict()}), 200

    except CanteenError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update user %s", user_id)
        return jsonify({"error": "Internal server error"}), 500
