"""
Audit trail writer and reader.

Services call ``log_change`` right before they commit, so the audit row
lands in the same transaction as the change it describes. Snapshots are
plain dicts; dates and ``Decimal`` amounts are stringified on the way in.
"""

import json
import logging
from datetime import datetime
from typing import Any

from flask import has_request_context, request
from sqlalchemy import desc

from app.extensions import db
from app.models.audit import ACTION_TYPES, AuditLog

logger = logging.getLogger(__name__)

SESSION_ENTITY = "auth.user"


def _snapshot(values: dict[str, Any] | None) -> str | None:
    if not values:
        return None
    return json.dumps(values, default=str, sort_keys=True)


def _client_details() -> tuple[str | None, str | None]:
    """Caller IP and user agent, or (None, None) outside a request."""
    if not has_request_context():
        return None, None
    return request.remote_addr, str(request.user_agent)[:500]


def log_change(
    user_id: int | None,
    action_type: str,
    entity_type: str,
    entity_id: int | None,
    previous_value: dict[str, Any] | None = None,
    new_value: dict[str, Any] | None = None,
) -> AuditLog:
    """
    Add an audit row to the session and flush it. The caller commits.

    Args:
        user_id:        Acting user; None when a scheduled job acts.
        action_type:    One of ``ACTION_TYPES``.
        entity_type:    ``<area>.<thing>``, e.g. ``payout.payout``.
        entity_id:      Primary key of the row that changed.
        previous_value: Fields as they were.
        new_value:      Fields as they are now.

    Raises:
        ValueError: For an action outside ``ACTION_TYPES``.
    """
    if action_type not in ACTION_TYPES:
        raise ValueError(f"Unknown audit action '{action_type}'.")

    ip_address, user_agent = _client_details()
    entry = AuditLog(
        user_id=user_id,
        action_type=action_type,
        entity_type=entity_type,
        entity_id=entity_id,
        previous_value=_snapshot(previous_value),
        new_value=_snapshot(new_value),
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.session.add(entry)
    db.session.flush()

    logger.info(
        "%s %s #%s (actor=%s)",
        action_type,
        entity_type,
        entity_id,
        user_id if user_id is not None else "system",
    )
    return entry


def log_session(user_id: int, action_type: str) -> AuditLog:
    """Record a sign-in (``LOGIN``) or sign-out (``LOGOUT``)."""
    if action_type not in ("LOGIN", "LOGOUT"):
        raise ValueError("Session events are LOGIN or LOGOUT.")
    return log_change(user_id, action_type, SESSION_ENTITY, user_id)


def log_login(user_id: int) -> AuditLog:
    return log_session(user_id, "LOGIN")


def log_logout(user_id: int) -> AuditLog:
    return log_session(user_id, "LOGOUT")


def get_audit_logs(
    page: int = 1,
    per_page: int = 50,
    user_id: int | None = None,
    action_type: str | None = None,
    entity_type: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
):
    """
    Newest-first page of audit rows.

    Every filter is optional; ``start_date`` and ``end_date`` are
    inclusive bounds on ``created_at``.
    """
    criteria = []
    if user_id is not None:
        criteria.append(AuditLog.user_id == user_id)
    if action_type:
        criteria.append(AuditLog.action_type == action_type)
    if entity_type:
        criteria.append(AuditLog.entity_type == entity_type)
    if start_date:
        criteria.append(AuditLog.created_at >= start_date)
    if end_date:
        criteria.append(AuditLog.created_at <= end_date)

    return (
        AuditLog.query.filter(*criteria)
        .order_by(desc(AuditLog.created_at), desc(AuditLog.id))
        .paginate(page=page, per_page=per_page, error_out=False)
    )


def get_entity_history(entity_type: str, entity_id: int) -> list[AuditLog]:
    """Every audit row for one record, oldest first."""
    return (
        AuditLog.query.filter_by(entity_type=entity_type, entity_id=entity_id)
        .order_by(AuditLog.created_at, AuditLog.id)
        .all()
    )


def get_distinct_entity_types() -> list[str]:
    """Entity types present in the log, for the admin filter dropdown."""
    return [
        entity_type
        for (entity_type,) in db.session.query(AuditLog.entity_type)
        .distinct()
        .order_by(AuditLog.entity_type)
    ]
