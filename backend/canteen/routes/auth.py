# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/canteen/routes/auth.py
"""
Authentication API routes

- Students register themselves; staff and admin accounts come from the CLI
- Login exchanges email + password for an opaque bearer token
- Failed logins are written to the security event log
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..errors import CanteenError
from ..services import auth_service
from ..services import session_service
from ..services import permission_service
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/register")
def register_route():
    """
    Self-register a student account.

    Body: {name, email, password, phone?}
    """
    try:
        data = request.get_json(silent=True) or {}
        name = data.get("name")
        email = data.get("email")
        password = data.get("password")

        if not all([name, email, password]):
            return jsonify({"error": "name, email and password required", "kind": "validation_error"}), 400

        user = auth_service.register_student(
            name=name,
            email=email,
            password=password,
            phone=data.get("phone"),
        )

        return jsonify({"user": user.to_dict(), "message": "Registration successful"}), 201

    except CanteenError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Returns user info, permission codes and the session token.
    Token must be included in Authorization header for protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not all([email, password]):
            return jsonify({"error": "email and password required", "kind": "validation_error"}), 400

        user_agent = request.headers.get("User-Agent")
        ip_address = request.remote_addr

        user = auth_service.authenticate(email, password)

        if not user:
            permission_service.log_security_event(
                user_id=None,
                event_type="LOGIN_FAILED",
                success=False,
                resource="auth",
                action="LOGIN",
                reason=f"Invalid credentials for {auth_service.normalize_email(email)}",
            )
            return jsonify({"error": "Invalid credentials", "kind": "unauthorized"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=user_agent,
            ip_address=ip_address
        )
        permissions = sorted(permission_service.get_user_permissions(user))

        return jsonify({
            "user": user.to_dict(),
            "permissions": permissions,
            "token": token,
            "session": session.to_dict(),
            "message": "Login successful"
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """
    Revoke session token (logout).

    WHY: Explicit logout prevents token reuse.
    """
    try:
        session_service.revoke_session(g.session_token, reason="User logout")
        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    """Current user plus the permission codes their role carries (for UI filtering)."""
    user = g.current_user
    return jsonify({
        "user": user.to_dict(),
        "permissions": sorted(permission_service.get_user_permissions(user)),
    }), 200


@auth_bp.patch("/profile")
@require_auth
def update_profile_route():
    """
    Update the current user's own name and/or phone.

    Body: {name?, phone?}
    """
    try:
        user = auth_service.update_profile(g.current_user, request.get_json(silent=True))
        return jsonify({"user": user.to_dict()}), 200

    except CanteenError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update profile")
        return jsonify({"error": "Internal server error"}), 500
