"""
Routes for the notifications blueprint — the signed-in user's in-app
inbox and the admin trigger for delivering queued notifications.
"""

from flask import request
from flask_login import current_user, login_required

from app.blueprints.notifications import bp
from app.blueprints.utils import error_response, query_flag
from app.decorators import permission_required
from app.services import notification_service


@bp.route("")
@login_required
def list_notifications():
    """Newest first; ``?unread=1`` for unread only."""
    notifications = notification_service.get_user_notifications(
        current_user.id,
        unread_only=query_flag("unread"),
        limit=request.args.get("limit", 50, type=int),
    )
    return {"notifications": [n.to_dict() for n in notifications]}


@bp.route("/unread-count")
@login_required
def unread_count():
    return {"unread": notification_service.get_unread_count(current_user.id)}


@bp.route("/<int:notification_id>/read", methods=["POST"])
@login_required
def mark_read(notification_id):
    try:
        notification = notification_service.mark_read(current_user.id, notification_id)
    except (ValueError, PermissionError) as exc:
        return error_response(exc)
    return {"notification": notification.to_dict()}


@bp.route("/read-all", methods=["POST"])
@login_required
def mark_all_read():
    return {"marked": notification_service.mark_all_read(current_user.id)}


@bp.route("/process", methods=["POST"])
@login_required
@permission_required("notification.process")
def process_pending():
    """Send queued email and SMS notifications now."""
    report = notification_service.process_pending_notifications(
        limit=request.args.get("limit", type=int)
    )
    return report.to_dict()
