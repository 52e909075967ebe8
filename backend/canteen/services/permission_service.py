# Overview: Service-layer operations for permission; encapsulates business logic and database work.

"""
Permission Checking and Security Event Logging

WHY: Enforce role-based access control and create audit trail.
Every denied check is logged for security monitoring.

THREE CHECKS GUARD EVERY ORDER/INVOICE OPERATION:
(a) caller authenticated           -> UnauthorizedError (401)
(b) caller's role grants the code  -> PermissionDeniedError (403)
(c) student callers own the record -> ForbiddenError (403)

The services call these themselves, with the actor passed explicitly, so a
direct service call is exactly as protected as the HTTP route in front of it.

DESIGN PRINCIPLES:
- Fail closed: Deny by default, require explicit permission grant
- Log denials only: Permission grants are not logged
"""

from flask import has_request_context, request

from ..extensions import db
from ..errors import ForbiddenError, PermissionDeniedError, UnauthorizedError
from ..models import SecurityEvent, User
from ..permissions import DEFAULT_ROLE_PERMISSIONS
from canteen.time_utils import utcnow


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
) -> SecurityEvent:
    """
    Log security event to audit trail.

    Client IP and user agent are taken from the current request when there
    is one (CLI and background callers have none).

    event_type examples:
    - PERMISSION_DENIED
    - OWNERSHIP_DENIED
    - LOGIN_FAILED
    """
    ip_address = None
    user_agent = None
    if has_request_context():
        ip_address = request.remote_addr
        user_agent = request.headers.get("User-Agent")

    event = SecurityEvent(
        user_id=user_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow()
    )

    db.session.add(event)
    db.session.commit()

    return event


def get_user_permissions(user: User) -> set[str]:
    """
    Get all permission codes for a user.

    Returns set of permission codes (e.g., {"PLACE_ORDER", "CANCEL_OWN_ORDER"}).
    Inactive users have none.
    """
    if user is None or not user.is_active:
        return set()
    return set(DEFAULT_ROLE_PERMISSIONS.get(user.role, set()))


def user_has_permission(user: User, permission_code: str) -> bool:
    return permission_code in get_user_permissions(user)


def require_authenticated(actor: User | None) -> User:
    if actor is None:
        raise UnauthorizedError("Authentication required")
    if not actor.is_active:
        raise UnauthorizedError("Account is deactivated")
    return actor


def require_permission(
    actor: User | None,
    permission_code: str,
    resource: str | None = None,
) -> None:
    """
    Require actor to have permission, raise PermissionDeniedError if not.

    Usage:
        require_permission(actor, "UPDATE_ORDER_STATUS", resource=f"order:{order_id}")
    """
    require_authenticated(actor)

    if not user_has_permission(actor, permission_code):
        # Log only denials (policy: no granted logs)
        log_security_event(
            user_id=actor.id,
            event_type="PERMISSION_DENIED",
            success=False,
            resource=resource,
            action=permission_code,
            reason=f"Missing permission: {permission_code}",
        )
        raise PermissionDeniedError(
            f"Permission denied: {permission_code}",
            details={"required_permission": permission_code},
        )


def _require_ownership(
    actor: User | None,
    owner_id: int,
    view_all_code: str,
    resource: str,
) -> None:
    require_authenticated(actor)

    if user_has_permission(actor, view_all_code):
        return
    if owner_id == actor.id:
        return

    log_security_event(
        user_id=actor.id,
        event_type="OWNERSHIP_DENIED",
        success=False,
        resource=resource,
        action=view_all_code,
        reason="Caller does not own this record",
    )
    raise ForbiddenError(f"You are not allowed to access {resource.split(':')[0]} records you do not own")


def require_order_access(actor: User | None, order) -> None:
    """Staff/admin see every order; everyone else only their own."""
    _require_ownership(actor, order.customer_id, "VIEW_ALL_ORDERS", f"order:{order.id}")


def require_invoice_access(actor: User | None, invoice) -> None:
    """Staff/admin see every invoice; everyone else only their own."""
    _require_ownership(actor, invoice.customer_id, "VIEW_ALL_INVOICES", f"invoice:{invoice.id}")
