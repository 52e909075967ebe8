# Overview: Service-layer operations for customer notifications.

from __future__ import annotations

from ..extensions import db
from ..errors import NotFoundError
from ..models import Notification, Order, User
from .permission_service import log_security_event, require_authenticated
from canteen.time_utils import utcnow


STATUS_MESSAGES = {
    "pending": "Your order has been received",
    "preparing": "Your order is being prepared",
    "ready": "Your order is ready for pickup!",
    "delivered": "Your order has been delivered",
    "cancelled": "Your order has been cancelled",
}


def record_status_change(order: Order, status: str) -> Notification:
    """
    Record the "order status changed" event for the order's customer.

    Added to the caller's transaction; does not commit.
    """
    notification = Notification(
        user_id=order.customer_id,
        order_id=order.id,
        status=status,
        message=STATUS_MESSAGES[status],
        notification_type="info",
    )
    db.session.add(notification)
    return notification


def list_notifications(actor: User, *, unread_only: bool = False, limit: int = 50) -> list[Notification]:
    require_authenticated(actor)

    q = db.session.query(Notification).filter(Notification.user_id == actor.id)
    if unread_only:
        q = q.filter(Notification.is_read.is_(False))

    limit = max(1, min(limit, 200))
    return q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def mark_read(actor: User, notification_id: int) -> Notification:
    require_authenticated(actor)

    notification = db.session.get(Notification, notification_id)
    if notification is None:
        raise NotFoundError("Notification not found")

    # Someone else's notification looks exactly like a missing one
    if notification.user_id != actor.id:
        log_security_event(
            user_id=actor.id,
            event_type="OWNERSHIP_DENIED",
            success=False,
            resource=f"notification:{notification_id}",
            action="MARK_READ",
            reason="Caller does not own this notification",
        )
        raise NotFoundError("Notification not found")

    if not notification.is_read:
        notification.is_read = True
        notification.read_at = utcnow()
        db.session.commit()
    return notification
