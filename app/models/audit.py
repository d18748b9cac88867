"""
Audit trail for the marketplace.

One ``AuditLog`` row is written for every state-changing service call:
bookings moving through their lifecycle, deposits being reviewed,
payouts being approved, profiles being edited and staff signing in.
"""

import json

from app.extensions import db

# Verbs accepted in ``AuditLog.action_type``; mirrored by a CHECK constraint.
ACTION_TYPES = (
    "CREATE",
    "UPDATE",
    "DELETE",
    "LOGIN",
    "LOGOUT",
    "ASSIGN",
    "STATUS_CHANGE",
    "APPROVE",
    "DECLINE",
)


def _decode(raw: str | None):
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return raw


class AuditLog(db.Model):
    """
    A single audited action.

    ``entity_type`` names the table in ``<area>.<thing>`` form, for
    example ``booking.booking`` or ``payment.transaction``. The before
    and after snapshots are JSON text; a CREATE has no ``previous_value``
    and a DELETE has no ``new_value``.
    """

    __tablename__ = "audit_log"
    __table_args__ = (
        db.CheckConstraint(
            "action_type IN ({})".format(
                ", ".join(f"'{action}'" for action in ACTION_TYPES)
            ),
            name="ck_audit_log_action_type",
        ),
    )

    id = db.Column(
        db.BigInteger().with_variant(db.Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    # NULL for jobs run by the scheduler (expiry sweep, automated payouts).
    user_id = db.Column(db.Integer, db.ForeignKey("app_user.id"), nullable=True)
    action_type = db.Column(db.String(50), nullable=False)
    entity_type = db.Column(db.String(100), nullable=False)
    entity_id = db.Column(db.Integer, nullable=True)
    previous_value = db.Column(db.Text, nullable=True)
    new_value = db.Column(db.Text, nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(500), nullable=True)
    created_at = db.Column(
        db.DateTime, nullable=False, server_default=db.func.now(), index=True
    )

    actor = db.relationship("User")

    @property
    def actor_name(self) -> str:
        return self.actor.full_name if self.actor else "System"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "actor": self.actor_name,
            "action_type": self.action_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "before": _decode(self.previous_value),
            "after": _decode(self.new_value),
            "ip_address": self.ip_address,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<AuditLog #{self.id} {self.action_type} {self.entity_type}:{self.entity_id}>"
