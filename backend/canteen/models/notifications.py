from __future__ import annotations

from ..extensions import db
from canteen.time_utils import to_utc_z


class Notification(db.Model):
    """
    In-app notification for a customer.

    Written in the same transaction as the order status change it
    describes. Delivery beyond the API (push, email) is not handled here.
    """
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_user_read", "user_id", "is_read"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    status = db.Column(db.String(16), nullable=True)
    message = db.Column(db.String(255), nullable=False)
    notification_type = db.Column(db.String(16), nullable=False, default="info")  # info, success, warning, error

    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "order_id": self.order_id,
            "status": self.status,
            "message": self.message,
            "type": self.notification_type,
            "is_read": self.is_read,
            "read_at": to_utc_z(self.read_at),
            "created_at": to_utc_z(self.created_at),
        }
