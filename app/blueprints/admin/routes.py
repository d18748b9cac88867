"""
Routes for the admin blueprint — user management, audit logs and the
suburb distance table used for provider matching.

User management requires the ``user.manage`` permission; the audit log
needs ``audit.view`` and distances ``location.manage``.
"""

from datetime import datetime

from flask import request
from flask_login import current_user, login_required

from app.blueprints.admin import bp
from app.blueprints.utils import error_response, json_body, query_flag
from app.decorators import permission_required
from app.services import audit_service, location_service, user_service


# =========================================================================
# User Management
# =========================================================================


@bp.route("/users")
@login_required
@permission_required("user.manage")
def manage_users():
    """List application users, optionally by ``?role=``."""
    users = user_service.get_all_users(
        include_inactive=query_flag("show_inactive"),
        role_name=request.args.get("role"),
        page=request.args.get("page", 1, type=int),
        per_page=request.args.get("per_page", 25, type=int),
    )
    return {
        "users": [u.to_dict() for u in users.items],
        "page": users.page,
        "pages": users.pages,
        "total": users.total,
    }


@bp.route("/roles")
@login_required
@permission_required("user.manage")
def list_roles():
    return {
        "roles": [
            {"id": r.id, "role_name": r.role_name, "description": r.description}
            for r in user_service.get_all_roles()
        ]
    }


@bp.route("/users", methods=["POST"])
@login_required
@permission_required("user.manage")
def provision_user():
    """
    Create a user on someone's behalf.

    Staff who sign in through Entra ID need no password; a pre-created
    account is linked on their first SSO login by email.
    """
    data = json_body()
    try:
        user = user_service.provision_user(
            email=data.get("email", ""),
            first_name=data.get("first_name", ""),
            last_name=data.get("last_name", ""),
            role_name=data.get("role", "client"),
            provisioned_by=current_user.id,
            phone=data.get("phone"),
            password=data.get("password"),
        )
    except ValueError as exc:
        return error_response(exc)
    return {"user": user.to_dict()}, 201


@bp.route("/users/<int:user_id>/role", methods=["PUT"])
@login_required
@permission_required("user.manage")
def update_user_role(user_id):
    try:
        user = user_service.update_user_role(
            user_id, json_body().get("role", ""), changed_by=current_user.id
        )
    except ValueError as exc:
        return error_response(exc)
    return {"user": user.to_dict()}


@bp.route("/users/<int:user_id>/deactivate", methods=["POST"])
@login_required
@permission_required("user.manage")
def deactivate_user(user_id):
    try:
        user = user_service.deactivate_user(user_id, changed_by=current_user.id)
    except ValueError as exc:
        return error_response(exc)
    return {"user": user.to_dict()}


@bp.route("/users/<int:user_id>/reactivate", methods=["POST"])
@login_required
@permission_required("user.manage")
def reactivate_user(user_id):
    try:
        user = user_service.reactivate_user(user_id, changed_by=current_user.id)
    except ValueError as exc:
        return error_response(exc)
    return {"user": user.to_dict()}


# =========================================================================
# Audit Logs
# =========================================================================


def _parse_datetime_arg(name: str) -> datetime | None:
    value = request.args.get(name)
    if not value:
        return None
    return datetime.fromisoformat(value)


@bp.route("/audit-logs")
@login_required
@permission_required("audit.view")
def audit_logs():
    """Paginated audit logs with optional filters."""
    try:
        start_date = _parse_datetime_arg("start_date")
        end_date = _parse_datetime_arg("end_date")
    except ValueError:
        return {"error": "Dates must be ISO 8601, e.g. 2025-03-14T08:00."}, 400

    logs = audit_service.get_audit_logs(
        page=request.args.get("page", 1, type=int),
        per_page=50,
        user_id=request.args.get("user_id", type=int),
        action_type=request.args.get("action_type"),
        entity_type=request.args.get("entity_type"),
        start_date=start_date,
        end_date=end_date,
    )
    return {
        "logs": [log.to_dict() for log in logs.items],
        "page": logs.page,
        "pages": logs.pages,
        "total": logs.total,
        # Filter options for the UI.
        "entity_types": audit_service.get_distinct_entity_types(),
    }


@bp.route("/audit-logs/<entity_type>/<int:entity_id>")
@login_required
@permission_required("audit.view")
def entity_history(entity_type, entity_id):
    """Full change history of one record, oldest first."""
    entries = audit_service.get_entity_history(entity_type, entity_id)
    return {
        "entity_type": entity_type,
        "entity_id": entity_id,
        "history": [entry.to_dict() for entry in entries],
    }


# =========================================================================
# Suburb Distances
# =========================================================================


@bp.route("/distances")
@login_required
@permission_required("location.manage")
def list_distances():
    distances = location_service.get_suburb_distances(request.args.get("town"))
    return {"distances": [d.to_dict() for d in distances]}


@bp.route("/distances", methods=["PUT"])
@login_required
@permission_required("location.manage")
def set_distance():
    """Record the travel distance (km) between two suburbs of a town."""
    data = json_body()
    try:
        location_service.set_suburb_distance(
            data.get("town", ""),
            data.get("suburb_a", ""),
            data.get("suburb_b", ""),
            data.get("distance"),
            changed_by=current_user.id,
        )
    except ValueError as exc:
        return error_response(exc)
    return {
        "distance": location_service.get_suburb_distance(
            data["town"], data["suburb_a"], data["suburb_b"]
        )
    }
