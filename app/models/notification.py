"""
Notification models.

A ``Notification`` row is one message on one channel. The in-app row is
what the inbox shows; email and SMS rows are picked up by the delivery
processor (``flask process-notifications``). Failed deliveries are
recorded in ``NotificationDeliveryLog``.

``channel`` values: ``in_app``, ``email``, ``sms``, ``push``.
"""

from app.extensions import db


class Notification(db.Model):
    """A message addressed to a user on one delivery channel."""

    __tablename__ = "notification"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("app_user.id"), nullable=False, index=True
    )
    notification_type = db.Column(db.String(50), nullable=False)
    channel = db.Column(db.String(20), nullable=False, default="in_app")
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    # JSON-encoded extra data (booking id, amounts, ...).
    data = db.Column(db.Text, nullable=True)
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    delivered = db.Column(db.Boolean, nullable=False, default=False)
    delivery_attempted_at = db.Column(db.DateTime, nullable=True)
    delivered_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, index=True)

    # -- Relationships -----------------------------------------------------
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.notification_type,
            "channel": self.channel,
            "title": self.title,
            "message": self.message,
            "data": self.data,
            "is_read": self.is_read,
            "delivered": self.delivered,
            "created_at": self.created_at.isoformat(),
        }

    def __repr__(self) -> str:
        return (
            f"<Notification {self.id} user={self.user_id} "
            f"{self.channel} delivered={self.delivered}>"
        )


class NotificationDeliveryLog(db.Model):
    """Outcome of a failed delivery attempt."""

    __tablename__ = "notification_delivery_log"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    notification_id = db.Column(
        db.Integer, db.ForeignKey("notification.id"), nullable=False, index=True
    )
    channel = db.Column(db.String(20), nullable=False)
    status = db.Column(db.String(20), nullable=False)
    error_message = db.Column(db.Text, nullable=True)
    failed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return (
            f"<NotificationDeliveryLog notification={self.notification_id} "
            f"{self.status}>"
        )
