"""
Notification service — queueing, delivery and the in-app inbox.

Other services call ``notify_user()`` while they hold an open session;
it only adds rows and the caller commits them together with the change
that caused the notification. An in-app row is always written. Email
and SMS rows are added according to the user's preferences and are
delivered later by ``process_pending_notifications()``, normally from
the ``flask process-notifications`` command.

Each queued row is attempted once. A failed delivery is recorded in
``NotificationDeliveryLog`` and the batch carries on with the next row.
"""

import json
import logging
from dataclasses import dataclass, field

from flask import current_app

from app.extensions import db
from app.models.notification import Notification, NotificationDeliveryLog
from app.models.user import User
from app.services.clock import utcnow
from app.services.email_sender import EmailDeliveryError, send_email
from app.services.sms_client import SmsDeliveryError, SmsGatewayClient

logger = logging.getLogger(__name__)

CHANNELS = ("in_app", "email", "sms", "push")


@dataclass
class DeliveryReport:
    """Counts from one run of the delivery processor."""

    processed: int = 0
    delivered: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "delivered": self.delivered,
            "failed": self.failed,
            "errors": list(self.errors),
        }


# =========================================================================
# Queueing
# =========================================================================


def notify_user(
    user_id: int,
    notification_type: str,
    title: str,
    message: str,
    data: dict | None = None,
) -> list[Notification]:
    """
    Queue a notification for a user on every channel they accept.

    Does not commit; the caller's transaction owns the new rows.

    Args:
        user_id:           Recipient.
        notification_type: Machine-readable kind (``booking_accepted``, ...).
        title:             Short heading, also used as the email subject.
        message:           Body text.
        data:              Optional extra fields stored as JSON.

    Returns:
        The notification rows added to the session.
    """
    user = db.session.get(User, user_id)
    if user is None:
        logger.warning(
            "Dropping %s notification for unknown user %s", notification_type, user_id
        )
        return []

    channels = ["in_app"]
    if user.notify_email and user.email:
        channels.append("email")
    if user.notify_sms and user.phone:
        channels.append("sms")

    payload = json.dumps(data, default=str) if data else None
    now = utcnow()
    rows = []
    for channel in channels:
        row = Notification(
            user_id=user_id,
            notification_type=notification_type,
            channel=channel,
            title=title,
            message=message,
            data=payload,
            is_read=False,
            delivered=False,
            created_at=now,
        )
        db.session.add(row)
        rows.append(row)
    return rows


# =========================================================================
# Delivery
# =========================================================================


def _deliver(notification: Notification, sms_client: SmsGatewayClient) -> bool:
    """
    Send one notification on its channel.

    Returns:
        True when the row counts as delivered.

    Raises:
        EmailDeliveryError, SmsDeliveryError: On a failed send.
    """
    user = notification.user
    if notification.channel == "email":
        if not user or not user.email:
            raise EmailDeliveryError("Recipient has no email address.")
        first_name = (user.full_name.split(" ")[0] if user.full_name else "") or "User"
        send_email(user.email, notification.title, first_name, notification.message)
        return True
    if notification.channel == "sms":
        sms_client.send(
            user.phone if user else "",
            f"{notification.title}: {notification.message}",
        )
        return True
    if notification.channel == "push":
        # No push provider yet; the attempt is only logged.
        logger.info(
            "Push notification %s for user %s skipped (no push provider)",
            notification.id,
            notification.user_id,
        )
        return False
    # In-app rows need no transport.
    return True


def process_pending_notifications(limit: int | None = None) -> DeliveryReport:
    """
    Deliver queued notifications, oldest first.

    Picks rows that are undelivered and never attempted, stamps
    ``delivery_attempted_at`` on each, then sends it. Successful rows
    get ``delivered`` and ``delivered_at``; failures are written to the
    delivery log.

    Args:
        limit: Maximum rows to process. Defaults to
               ``NOTIFICATION_BATCH_SIZE``.
    """
    if limit is None:
        limit = current_app.config["NOTIFICATION_BATCH_SIZE"]

    pending = (
        Notification.query.filter(
            Notification.delivered.is_(False),
            Notification.delivery_attempted_at.is_(None),
        )
        .order_by(Notification.created_at, Notification.id)
        .limit(limit)
        .all()
    )

    report = DeliveryReport()
    if not pending:
        return report

    sms_client = SmsGatewayClient()
    for notification in pending:
        report.processed += 1
        notification.delivery_attempted_at = utcnow()
        # Stamp first so a crash mid-send never resends the row.
        db.session.commit()

        try:
            delivered = _deliver(notification, sms_client)
        except (EmailDeliveryError, SmsDeliveryError) as exc:
            report.failed += 1
            report.errors.append(f"Notification {notification.id}: {exc}")
            db.session.add(
                NotificationDeliveryLog(
                    notification_id=notification.id,
                    channel=notification.channel,
                    status="failed",
                    error_message=str(exc),
                    failed_at=utcnow(),
                )
            )
            db.session.commit()
            logger.warning(
                "Delivery of notification %s via %s failed: %s",
                notification.id,
                notification.channel,
                exc,
            )
            continue

        if delivered:
            notification.delivered = True
            notification.delivered_at = utcnow()
            report.delivered += 1
            db.session.commit()

    logger.info(
        "Processed %d notifications: %d delivered, %d failed",
        report.processed,
        report.delivered,
        report.failed,
    )
    return report


# =========================================================================
# Inbox
# =========================================================================


def get_user_notifications(
    user_id: int, unread_only: bool = False, limit: int = 50
) -> list[Notification]:
    """Return the user's in-app notifications, newest first."""
    query = Notification.query.filter_by(user_id=user_id, channel="in_app")
    if unread_only:
        query = query.filter_by(is_read=False)
    return (
        query.order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .all()
    )


def get_unread_count(user_id: int) -> int:
    """Return how many in-app notifications the user has not read."""
    return Notification.query.filter_by(
        user_id=user_id, channel="in_app", is_read=False
    ).count()


def mark_read(user_id: int, notification_id: int) -> Notification:
    """
    Mark one notification as read.

    Raises:
        ValueError: If the notification does not exist.
        PermissionError: If it belongs to another user.
    """
    notification = db.session.get(Notification, notification_id)
    if notification is None:
        raise ValueError(f"Notification ID {notification_id} not found.")
    if notification.user_id != user_id:
        raise PermissionError("You can only update your own notifications.")
    notification.is_read = True
    db.session.commit()
    return notification


def mark_all_read(user_id: int) -> int:
    """Mark every unread in-app notification as read; return the count."""
    count = Notification.query.filter_by(
        user_id=user_id, channel="in_app", is_read=False
    ).update({"is_read": True}, synchronize_session=False)
    db.session.commit()
    logger.info("Marked %d notifications read for user %s", count, user_id)
    return count
