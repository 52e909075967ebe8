# Overview: Flask API routes for notification operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import CanteenError
from ..services import notification_service
from ..decorators import require_auth


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
def list_notifications_route():
    """Caller's own notifications, newest first. ?unread=true filters."""
    unread_only = request.args.get("unread", "").strip().lower() in {"1", "true", "yes"}
    notifications = notification_service.list_notifications(g.current_user, unread_only=unread_only)
    return jsonify({"notifications": [n.to_dict() for n in notifications]}), 200


@notifications_bp.post("/<int:notification_id>/read")
@require_auth
def mark_read_route(notification_id: int):
    try:
        notification = notification_service.mark_read(g.current_user, notification_id)
        return jsonify({"notification": notification.to_dict()}), 200

    except CanteenError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to mark notification %s read", notification_id)
        return jsonify({"error": "Internal server error"}), 500
