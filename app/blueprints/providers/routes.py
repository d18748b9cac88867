"""
Routes for the providers blueprint — finding nearby providers, a
provider's own profile, verification review and earnings.
"""

from flask import request
from flask_login import current_user, login_required

from app.blueprints.providers import bp
from app.blueprints.utils import error_response, json_body
from app.decorators import permission_required, role_required
from app.services import assignment_service, payout_service, user_service


@bp.route("/nearby")
@login_required
def nearby_providers():
    """
    Providers who serve ``?town=&suburb=``, best match first.

    ``category_id`` narrows the search to providers who offer that
    kind of service.
    """
    town = request.args.get("town", "").strip()
    suburb = request.args.get("suburb", "").strip()
    if not town or not suburb:
        return {"error": "Query parameters 'town' and 'suburb' are required."}, 400
    matches = assignment_service.find_providers_for_location(
        town, suburb, category_id=request.args.get("category_id", type=int)
    )
    return {"providers": [m.to_dict() for m in matches]}


@bp.route("")
@login_required
@permission_required("provider.verify")
def list_providers():
    """All provider profiles, optionally by ``?verification_status=``."""
    profiles = user_service.get_providers(request.args.get("verification_status"))
    return {
        "providers": [
            dict(p.to_dict(), name=p.user.full_name, email=p.user.email)
            for p in profiles
        ]
    }


# =========================================================================
# The signed-in provider's profile
# =========================================================================


@bp.route("/me")
@login_required
@role_required("provider")
def my_profile():
    try:
        profile = user_service.get_provider_profile(current_user.id)
    except ValueError as exc:
        return error_response(exc)
    return {"profile": profile.to_dict()}


@bp.route("/me/location", methods=["PUT"])
@login_required
@role_required("provider")
def update_location():
    data = json_body()
    try:
        profile = user_service.update_provider_location(
            current_user.id,
            data.get("town", ""),
            data.get("suburb", ""),
            max_distance=data.get("max_distance"),
        )
    except ValueError as exc:
        return error_response(exc)
    return {"profile": profile.to_dict()}


@bp.route("/me/availability", methods=["PUT"])
@login_required
@role_required("provider")
def update_availability():
    data = json_body()
    if "is_available" not in data:
        return {"error": "'is_available' is required."}, 400
    try:
        profile = user_service.set_provider_availability(
            current_user.id, bool(data["is_available"])
        )
    except ValueError as exc:
        return error_response(exc)
    return {"profile": profile.to_dict()}


@bp.route("/me/categories", methods=["PUT"])
@login_required
@role_required("provider")
def update_categories():
    try:
        profile = user_service.set_provider_categories(
            current_user.id, json_body().get("category_ids") or []
        )
    except ValueError as exc:
        return error_response(exc)
    return {"profile": profile.to_dict()}


@bp.route("/me/banking", methods=["PUT"])
@login_required
@role_required("provider")
def update_banking():
    data = json_body()
    try:
        profile = user_service.update_banking_details(
            current_user.id,
            data.get("payment_method", ""),
            bank_name=data.get("bank_name"),
            account_number=data.get("account_number"),
            account_holder=data.get("account_holder"),
            mobile_money_number=data.get("mobile_money_number"),
        )
    except ValueError as exc:
        return error_response(exc)
    return {"profile": profile.to_dict()}


@bp.route("/me/verification", methods=["POST"])
@login_required
@role_required("provider")
def submit_verification():
    try:
        profile = user_service.submit_verification(
            current_user.id, json_body().get("id_number", "")
        )
    except ValueError as exc:
        return error_response(exc)
    return {"profile": profile.to_dict()}


@bp.route("/me/earnings")
@login_required
@role_required("provider")
def my_earnings():
    return {"earnings": payout_service.get_provider_earnings(current_user.id).to_dict()}


@bp.route("/me/payouts")
@login_required
@role_required("provider")
def my_payouts():
    payouts = payout_service.get_payouts(provider_id=current_user.id)
    return {"payouts": [p.to_dict() for p in payouts]}


# =========================================================================
# Admin review
# =========================================================================


@bp.route("/<int:user_id>/verification/approve", methods=["POST"])
@login_required
@permission_required("provider.verify")
def approve_verification(user_id):
    try:
        profile = user_service.approve_verification(
            user_id, current_user.id, json_body().get("notes")
        )
    except ValueError as exc:
        return error_response(exc)
    return {"profile": profile.to_dict()}


@bp.route("/<int:user_id>/verification/reject", methods=["POST"])
@login_required
@permission_required("provider.verify")
def reject_verification(user_id):
    try:
        profile = user_service.reject_verification(
            user_id, current_user.id, json_body().get("notes", "")
        )
    except ValueError as exc:
        return error_response(exc)
    return {"profile": profile.to_dict()}


@bp.route("/<int:user_id>/earnings")
@login_required
@permission_required("payout.manage")
def provider_earnings(user_id):
    return {"earnings": payout_service.get_provider_earnings(user_id).to_dict()}
