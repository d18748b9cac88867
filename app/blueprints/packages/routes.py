"""
Routes for the packages blueprint — a client's subscription package,
its remaining quota and booking the jobs it covers.

Packages are bought through a bank-deposit payment (see the payments
blueprint). Admins can also grant or cancel one directly.
"""

from flask_login import current_user, login_required

from app.blueprints.packages import bp
from app.blueprints.utils import error_response, json_body
from app.decorators import permission_required, role_required
from app.services import booking_service, entitlement_service


@bp.route("/mine")
@login_required
@role_required("client")
def my_package():
    """The active package with its usage, and the package history."""
    active = entitlement_service.get_active_package(current_user.id)
    return {
        "active": active.to_dict() if active else None,
        "usage": [
            u.to_dict() for u in entitlement_service.get_user_service_usage(current_user.id)
        ],
        "history": [
            p.to_dict() for p in entitlement_service.get_user_packages(current_user.id)
        ],
    }


@bp.route("/access/<int:service_id>")
@login_required
@role_required("client")
def check_access(service_id):
    """May the client book this subscription service right now?"""
    return entitlement_service.check_service_access(current_user.id, service_id).to_dict()


@bp.route("/<int:package_id>/book", methods=["POST"])
@login_required
@role_required("client")
def book_package_services(package_id):
    """
    Book every job left in the package's current cycle on one date.

    Body: optional ``scheduled_date`` (YYYY-MM-DD), defaulting to today.
    """
    data = json_body()
    try:
        scheduled_date = (
            booking_service.parse_booking_date(data["scheduled_date"])
            if data.get("scheduled_date")
            else None
        )
        result = entitlement_service.process_package_booking(
            current_user.id, package_id, scheduled_date=scheduled_date
        )
    except ValueError as exc:
        return error_response(exc)
    return result.to_dict(), 201


# =========================================================================
# Admin
# =========================================================================


@bp.route("/users/<int:user_id>")
@login_required
@permission_required("payment.review")
def user_packages(user_id):
    return {
        "packages": [p.to_dict() for p in entitlement_service.get_user_packages(user_id)]
    }


@bp.route("/users/<int:user_id>", methods=["POST"])
@login_required
@permission_required("payment.review")
def activate_package(user_id):
    """Grant a package without a payment, e.g. as a goodwill gesture."""
    data = json_body()
    try:
        start_date = (
            booking_service.parse_booking_date(data["start_date"])
            if data.get("start_date")
            else None
        )
        user_package = entitlement_service.activate_package(
            user_id,
            data.get("package_id"),
            start_date=start_date,
            activated_by=current_user.id,
        )
    except ValueError as exc:
        return error_response(exc)
    return {"package": user_package.to_dict()}, 201


@bp.route("/user-packages/<int:user_package_id>/cancel", methods=["POST"])
@login_required
@permission_required("payment.review")
def cancel_package(user_package_id):
    try:
        user_package = entitlement_service.cancel_user_package(
            user_package_id, changed_by=current_user.id
        )
    except ValueError as exc:
        return error_response(exc)
    return {"package": user_package.to_dict()}
