"""
Routes for the bookings blueprint — creating bookings, the job
lifecycle, admin assignment and recurring schedules.

Every booking route is restricted to the booking's client, its
assigned provider and admins by ``@booking_access``; the services then
check which of those may perform the particular action.
"""

from flask import g, request
from flask_login import current_user, login_required

from app.blueprints.bookings import bp
from app.blueprints.utils import error_response, json_body, query_flag
from app.decorators import booking_access, permission_required, role_required
from app.services import (
    assignment_service,
    booking_service,
    recurring_service,
)


@bp.route("", methods=["POST"])
@login_required
@role_required("client")
def create_booking():
    """
    Book a service.

    The response says whether a provider was matched straight away or
    the booking is waiting for manual assignment.
    """
    data = json_body()
    try:
        result = booking_service.create_booking(
            client_id=current_user.id,
            service_id=data.get("service_id"),
            booking_date=data.get("booking_date"),
            booking_time=data.get("booking_time"),
            client_town=data.get("client_town") or current_user.town or "",
            client_suburb=data.get("client_suburb") or current_user.suburb or "",
            service_address=data.get("service_address") or current_user.address or "",
            duration_minutes=data.get("duration_minutes"),
            special_instructions=data.get("special_instructions"),
            emergency_booking=bool(data.get("emergency_booking")),
        )
    except (ValueError, PermissionError) as exc:
        return error_response(exc)
    return result.to_dict(), 201


@bp.route("")
@login_required
def list_bookings():
    """
    List the caller's bookings.

    Clients get bookings they made and providers the jobs they hold.
    Admins get every booking, paginated and filterable by ``status``,
    ``provider_id`` and ``client_id``. ``?upcoming=1`` narrows any of
    these to future open bookings.
    """
    status = request.args.get("status")
    if query_flag("upcoming"):
        bookings = booking_service.get_upcoming_bookings(current_user)
        return {"bookings": [b.to_dict() for b in bookings]}

    if current_user.is_admin:
        page = booking_service.get_all_bookings(
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", 50, type=int),
            status=status,
            provider_id=request.args.get("provider_id", type=int),
            client_id=request.args.get("client_id", type=int),
        )
        return {
            "bookings": [b.to_dict() for b in page.items],
            "page": page.page,
            "pages": page.pages,
            "total": page.total,
        }

    if current_user.is_provider:
        bookings = booking_service.get_bookings_for_provider(current_user.id, status)
    else:
        bookings = booking_service.get_bookings_for_client(current_user.id, status)
    return {"bookings": [b.to_dict() for b in bookings]}


@bp.route("/emergency")
@login_required
@permission_required("booking.view_all")
def emergency_bookings():
    bookings = booking_service.get_emergency_bookings(
        open_only=not query_flag("include_closed")
    )
    return {"bookings": [b.to_dict() for b in bookings]}


@bp.route("/manual-queue")
@login_required
@permission_required("booking.assign")
def manual_queue():
    """Bookings nobody was matched to, soonest first."""
    bookings = assignment_service.get_bookings_requiring_manual_assignment()
    return {"bookings": [b.to_dict() for b in bookings]}


@bp.route("/<int:booking_id>")
@login_required
@booking_access()
def booking_detail(booking_id):
    return {"booking": g.booking.to_dict()}


@bp.route("/<int:booking_id>", methods=["PATCH"])
@login_required
@booking_access()
def update_booking(booking_id):
    data = json_body()
    try:
        booking = booking_service.update_booking_details(
            booking_id,
            current_user,
            booking_date=data.get("booking_date"),
            booking_time=data.get("booking_time"),
            special_instructions=data.get("special_instructions"),
            service_address=data.get("service_address"),
            reason=data.get("reason"),
        )
    except (ValueError, PermissionError) as exc:
        return error_response(exc)
    return {"booking": booking.to_dict()}


@bp.route("/<int:booking_id>/modifications")
@login_required
@booking_access()
def modification_history(booking_id):
    history = booking_service.get_modification_history(booking_id)
    return {"modifications": [m.to_dict() for m in history]}


# =========================================================================
# Provider actions
# =========================================================================


@bp.route("/<int:booking_id>/accept", methods=["POST"])
@login_required
@role_required("provider")
@booking_access()
def accept_booking(booking_id):
    try:
        booking = booking_service.accept_booking(booking_id, current_user.id)
    except (ValueError, PermissionError) as exc:
        return error_response(exc)
    return {"booking": booking.to_dict()}


@bp.route("/<int:booking_id>/decline", methods=["POST"])
@login_required
@role_required("provider")
@booking_access()
def decline_booking(booking_id):
    """Turn down an offered job; it is passed to the next provider."""
    try:
        new_provider_id = assignment_service.decline_assignment(
            booking_id, current_user.id, json_body().get("reason")
        )
    except (ValueError, PermissionError) as exc:
        return error_response(exc)
    return {"reassigned": new_provider_id is not None}


@bp.route("/<int:booking_id>/start", methods=["POST"])
@login_required
@role_required("provider")
@booking_access()
def start_job(booking_id):
    try:
        booking = booking_service.start_job(booking_id, current_user.id)
    except (ValueError, PermissionError) as exc:
        return error_response(exc)
    return {"booking": booking.to_dict()}


@bp.route("/<int:booking_id>/complete", methods=["POST"])
@login_required
@role_required("provider")
@booking_access()
def complete_job(booking_id):
    try:
        booking = booking_service.complete_job(booking_id, current_user.id)
    except (ValueError, PermissionError) as exc:
        return error_response(exc)
    return {"booking": booking.to_dict()}


# =========================================================================
# Client actions
# =========================================================================


@bp.route("/<int:booking_id>/cancel", methods=["POST"])
@login_required
@booking_access()
def cancel_booking(booking_id):
    data = json_body()
    try:
        booking = booking_service.cancel_booking(
            booking_id,
            current_user,
            reason=data.get("reason"),
            refund=bool(data.get("refund")),
        )
    except (ValueError, PermissionError) as exc:
        return error_response(exc)
    return {"booking": booking.to_dict()}


@bp.route("/<int:booking_id>/rate", methods=["POST"])
@login_required
@booking_access()
def rate_booking(booking_id):
    data = json_body()
    try:
        booking = booking_service.rate_booking(
            booking_id, current_user.id, data.get("rating"), data.get("comment")
        )
    except (ValueError, PermissionError) as exc:
        return error_response(exc)
    return {"booking": booking.to_dict()}


@bp.route("/<int:booking_id>/no-show", methods=["POST"])
@login_required
@booking_access()
def mark_no_show(booking_id):
    data = json_body()
    try:
        booking = booking_service.mark_no_show(
            booking_id, data.get("type", ""), data.get("reason", ""), current_user.id
        )
    except ValueError as exc:
        return error_response(exc)
    return {"booking": booking.to_dict()}


# =========================================================================
# Admin actions
# =========================================================================


@bp.route("/<int:booking_id>/assign", methods=["POST"])
@login_required
@permission_required("booking.assign")
def assign_provider(booking_id):
    try:
        booking = assignment_service.assign_provider(
            booking_id, json_body().get("provider_id"), current_user.id
        )
    except ValueError as exc:
        return error_response(exc)
    return {"booking": booking.to_dict()}


@bp.route("/<int:booking_id>/reassign", methods=["POST"])
@login_required
@permission_required("booking.assign")
def reassign_provider(booking_id):
    data = json_body()
    try:
        booking = assignment_service.reassign_provider(
            booking_id, data.get("provider_id"), data.get("reason", ""), current_user.id
        )
    except ValueError as exc:
        return error_response(exc)
    return {"booking": booking.to_dict()}


@bp.route("/<int:booking_id>/candidates")
@login_required
@permission_required("booking.assign")
def candidate_providers(booking_id):
    """Providers who could take the booking, best match first."""
    try:
        booking = booking_service.get_booking(booking_id)
    except ValueError as exc:
        return error_response(exc)
    matches = assignment_service.find_providers_for_location(
        booking.client_town,
        booking.client_suburb,
        category_id=booking.service.category_id if booking.service else None,
        booking_date=booking.booking_date,
        booking_time=booking.booking_time,
        duration_minutes=booking.duration_minutes,
        exclude_booking_id=booking.id,
    )
    return {"providers": [m.to_dict() for m in matches]}


@bp.route("/<int:booking_id>/rollback", methods=["POST"])
@login_required
@permission_required("booking.rollback")
def rollback_status(booking_id):
    data = json_body()
    try:
        booking = booking_service.rollback_booking_status(
            booking_id, data.get("status", ""), data.get("reason", ""), current_user.id
        )
    except ValueError as exc:
        return error_response(exc)
    return {"booking": booking.to_dict()}


# =========================================================================
# Recurring schedules
# =========================================================================


@bp.route("/recurring")
@login_required
@role_required("client")
def list_recurring():
    return {"schedules": recurring_service.get_recurring_schedules(current_user.id)}


@bp.route("/<int:booking_id>/recurring", methods=["POST"])
@login_required
@role_required("client")
@booking_access()
def create_recurring(booking_id):
    """
    Repeat a booking.

    Body: ``frequency`` (weekly, bi-weekly, monthly), ``day_of_week``
    (0 = Sunday) and an optional ``end_date``.
    """
    data = json_body()
    try:
        end_date = (
            booking_service.parse_booking_date(data["end_date"])
            if data.get("end_date")
            else None
        )
        created = recurring_service.create_recurring_schedule(
            current_user.id,
            booking_id,
            data.get("frequency", ""),
            data.get("day_of_week"),
            end_date=end_date,
        )
    except (ValueError, PermissionError) as exc:
        return error_response(exc)
    return {"created": created}, 201


@bp.route("/<int:booking_id>/recurring", methods=["DELETE"])
@login_required
@role_required("client")
@booking_access()
def cancel_recurring(booking_id):
    try:
        booking = recurring_service.cancel_recurring_schedule(current_user.id, booking_id)
    except (ValueError, PermissionError) as exc:
        return error_response(exc)
    return {"booking": booking.to_dict()}
