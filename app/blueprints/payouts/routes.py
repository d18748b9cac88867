"""
Routes for the payouts blueprint — provider payouts, automated batch
runs, payout rules and payout exports.

Creating payouts and editing rules needs ``payout.manage``; approving
and marking them paid needs ``payout.approve``.
"""

from flask import make_response, request
from flask_login import current_user, login_required

from app.blueprints.payouts import bp
from app.blueprints.utils import error_response, json_body
from app.decorators import permission_required
from app.services import export_service, payout_service

_RULE_FIELDS = (
    "rule_name",
    "minimum_payout_amount",
    "payout_frequency",
    "payout_day",
    "auto_approve_under_amount",
    "performance_bonus_enabled",
    "performance_bonus_threshold",
    "performance_bonus_percentage",
)


@bp.route("")
@login_required
@permission_required("payout.manage")
def list_payouts():
    payouts = payout_service.get_payouts(
        provider_id=request.args.get("provider_id", type=int),
        status=request.args.get("status"),
    )
    return {"payouts": [p.to_dict() for p in payouts]}


@bp.route("/<int:payout_id>")
@login_required
def payout_detail(payout_id):
    """A payout with its bookings; providers may only see their own."""
    try:
        payout = payout_service.get_payout(payout_id)
    except ValueError as exc:
        return error_response(exc)
    if payout.provider_id != current_user.id and not current_user.has_permission(
        "payout.manage"
    ):
        return {"error": "You can only view your own payouts."}, 403
    data = payout.to_dict()
    data["booking_ids"] = [b.id for b in payout.bookings]
    return {"payout": data}


@bp.route("", methods=["POST"])
@login_required
@permission_required("payout.manage")
def create_payout():
    """Pay one provider for all their completed, unpaid bookings."""
    data = json_body()
    try:
        payout = payout_service.create_provider_payout(
            data.get("provider_id"),
            current_user.id,
            payout_type=data.get("payout_type", "manual"),
            payment_method=data.get("payment_method"),
        )
    except ValueError as exc:
        return error_response(exc)
    return {"payout": payout.to_dict()}, 201


@bp.route("/<int:payout_id>/approve", methods=["POST"])
@login_required
@permission_required("payout.approve")
def approve_payout(payout_id):
    try:
        payout = payout_service.approve_payout(payout_id, current_user.id)
    except ValueError as exc:
        return error_response(exc)
    return {"payout": payout.to_dict()}


@bp.route("/<int:payout_id>/paid", methods=["POST"])
@login_required
@permission_required("payout.approve")
def mark_paid(payout_id):
    try:
        payout = payout_service.mark_payout_paid(
            payout_id, current_user.id, json_body().get("payment_reference")
        )
    except ValueError as exc:
        return error_response(exc)
    return {"payout": payout.to_dict()}


# =========================================================================
# Automated runs and batches
# =========================================================================


@bp.route("/run", methods=["POST"])
@login_required
@permission_required("payout.manage")
def run_automated_payouts():
    """Create this week's payouts for every provider the rules allow."""
    result = payout_service.trigger_automated_payouts(triggered_by=current_user.id)
    return result.to_dict(), 201 if result.batch else 200


@bp.route("/batches")
@login_required
@permission_required("payout.manage")
def list_batches():
    batches = payout_service.get_batches(request.args.get("limit", 20, type=int))
    return {"batches": [b.to_dict() for b in batches]}


@bp.route("/batches/<int:batch_id>")
@login_required
@permission_required("payout.manage")
def batch_detail(batch_id):
    try:
        batch = payout_service.get_batch(batch_id)
    except ValueError as exc:
        return error_response(exc)
    return {"batch": batch.to_dict(), "payouts": [p.to_dict() for p in batch.payouts]}


@bp.route("/batches/<int:batch_id>/approve", methods=["POST"])
@login_required
@permission_required("payout.approve")
def approve_batch(batch_id):
    try:
        batch = payout_service.approve_batch(
            batch_id, current_user.id, json_body().get("notes")
        )
    except ValueError as exc:
        return error_response(exc)
    return {"batch": batch.to_dict()}


@bp.route("/batches/<int:batch_id>/processed", methods=["POST"])
@login_required
@permission_required("payout.approve")
def mark_batch_processed(batch_id):
    try:
        batch = payout_service.mark_batch_processed(batch_id, current_user.id)
    except ValueError as exc:
        return error_response(exc)
    return {"batch": batch.to_dict()}


# =========================================================================
# Rules
# =========================================================================


@bp.route("/rules")
@login_required
@permission_required("payout.manage")
def list_rules():
    return {"rules": [r.to_dict() for r in payout_service.get_payout_rules()]}


@bp.route("/rules", methods=["PUT"])
@login_required
@permission_required("payout.manage")
def set_rule():
    """
    Create or replace a payout rule.

    Omit ``provider_id`` to set the platform default.
    """
    data = json_body()
    provider_id = data.pop("provider_id", None)
    unknown = set(data) - set(_RULE_FIELDS)
    if unknown:
        return {"error": f"Unknown rule fields: {', '.join(sorted(unknown))}."}, 400
    try:
        rule = payout_service.set_payout_rule(provider_id, current_user.id, **data)
    except ValueError as exc:
        return error_response(exc)
    return {"rule": rule.to_dict()}


# =========================================================================
# Export
# =========================================================================


@bp.route("/export/<fmt>")
@login_required
@permission_required("payout.manage")
def export_payouts(fmt):
    """
    Export payouts as CSV or Excel.

    Args:
        fmt: Export format — 'csv' or 'xlsx'.

    Accepts the same ``provider_id`` and ``status`` filters as the list.
    """
    payouts = payout_service.get_payouts(
        provider_id=request.args.get("provider_id", type=int),
        status=request.args.get("status"),
    )

    if fmt == "xlsx":
        buffer = export_service.export_payouts_excel(payouts)
        response = make_response(buffer.read())
        response.headers["Content-Type"] = (
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        )
    elif fmt == "csv":
        buffer = export_service.export_payouts_csv(payouts)
        response = make_response(buffer.read())
        response.headers["Content-Type"] = "text/csv; charset=utf-8"
    else:
        return {"error": f"Unknown export format '{fmt}'."}, 404

    response.headers["Content-Disposition"] = (
        f"attachment; filename={export_service.export_filename(fmt)}"
    )
    return response
