"""
Booking service — booking creation, the status lifecycle and queries.

Booking creation:
  1. Validate the client, service, date, time, duration and address.
  2. Subscription services must pass the entitlement check; the use is
     logged against the client's package.
  3. Insert the booking with an acceptance deadline.
  4. Offer it to the best nearby provider; with no match it is queued
     for manual assignment.

Status lifecycle (anything else is rejected)::

    pending     -> assigned | accepted | cancelled
    assigned    -> accepted | cancelled | no_show_client | no_show_provider
    accepted    -> in_progress | cancelled | no_show_client | no_show_provider
    in_progress -> completed

Admins may roll a booking back to an earlier status. Every changed
field is written to the booking's modification history.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal

from sqlalchemy import func

from app.extensions import db
from app.models.booking import Booking, BookingModification
from app.models.catalog import Service, ServiceUsageLog
from app.models.user import ProviderProfile, User
from app.services import (
    assignment_service,
    audit_service,
    entitlement_service,
    location_service,
    notification_service,
)
from app.services.clock import today, utcnow

logger = logging.getLogger(__name__)

STATUSES = (
    "pending",
    "assigned",
    "accepted",
    "in_progress",
    "completed",
    "cancelled",
    "no_show_client",
    "no_show_provider",
)

ALLOWED_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "pending": ("assigned", "accepted", "cancelled"),
    "assigned": ("accepted", "cancelled", "no_show_client", "no_show_provider"),
    "accepted": ("in_progress", "cancelled", "no_show_client", "no_show_provider"),
    "in_progress": ("completed",),
}

TERMINAL_STATUSES = ("completed", "cancelled", "no_show_client", "no_show_provider")
OPEN_STATUSES = ("pending", "assigned", "accepted")

# Position of each forward status; used to validate rollbacks.
_STATUS_RANK = {"pending": 0, "assigned": 1, "accepted": 2, "in_progress": 3, "completed": 4}

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")

EXPIRY_REASON = "No provider response"


@dataclass
class BookingResult:
    """Outcome of creating a booking."""

    booking: Booking
    provider_id: int | None
    auto_assigned: bool

    def to_dict(self) -> dict:
        return {
            "booking": self.booking.to_dict(),
            "provider_id": self.provider_id,
            "auto_assigned": self.auto_assigned,
        }


# =========================================================================
# Lookups and helpers
# =========================================================================


def get_booking(booking_id: int) -> Booking:
    """
    Return a booking by ID.

    Raises:
        ValueError: If the booking does not exist.
    """
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        raise ValueError(f"Booking ID {booking_id} not found.")
    return booking


def parse_booking_time(value) -> time:
    """
    Parse a ``HH:MM`` (24-hour) string into a time.

    Raises:
        ValueError: If the string is not a valid ``HH:MM`` time.
    """
    if isinstance(value, time):
        return value
    match = _TIME_PATTERN.match(str(value or "").strip())
    if match is None:
        raise ValueError("Booking time must be in HH:MM format.")
    return time(int(match.group(1)), int(match.group(2)))


def parse_booking_date(value) -> date:
    """Parse an ISO ``YYYY-MM-DD`` string into a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError as exc:
        raise ValueError("Booking date must be in YYYY-MM-DD format.") from exc


def record_modification(
    booking: Booking,
    field: str,
    old_value,
    new_value,
    reason: str | None = None,
    changed_by: int | None = None,
) -> BookingModification | None:
    """Append a field change to the booking's history (no commit)."""
    old_text = None if old_value is None else str(old_value)
    new_text = None if new_value is None else str(new_value)
    if old_text == new_text:
        return None
    entry = BookingModification(
        booking_id=booking.id,
        field=field,
        old_value=old_text,
        new_value=new_text,
        reason=reason,
        changed_by=changed_by,
        changed_at=utcnow(),
    )
    db.session.add(entry)
    return entry


def get_modification_history(booking_id: int) -> list[BookingModification]:
    """Return the booking's field changes in the order they happened."""
    get_booking(booking_id)
    return (
        BookingModification.query.filter_by(booking_id=booking_id)
        .order_by(BookingModification.id)
        .all()
    )


# =========================================================================
# Availability
# =========================================================================


def get_conflicting_bookings(
    provider_id: int,
    booking_date: date,
    booking_time: time,
    duration_minutes: int = 60,
    exclude_booking_id: int | None = None,
) -> list[Booking]:
    """
    Return the provider's stored bookings that overlap a slot.

    Two slots overlap when ``start < other_end and end > other_start``.
    Cancelled bookings never conflict. Neighbouring days are checked
    too so late-evening jobs that run past midnight are caught.
    """
    start = datetime.combine(booking_date, booking_time)
    end = start + timedelta(minutes=duration_minutes or 60)

    query = Booking.query.filter(
        Booking.provider_id == provider_id,
        Booking.status != "cancelled",
        Booking.booking_date.between(
            booking_date - timedelta(days=1), booking_date + timedelta(days=1)
        ),
    )
    if exclude_booking_id is not None:
        query = query.filter(Booking.id != exclude_booking_id)

    return [b for b in query.all() if start < b.ends_at and end > b.starts_at]


def check_provider_availability(
    provider_id: int,
    booking_date: date,
    booking_time: time,
    duration_minutes: int = 60,
    exclude_booking_id: int | None = None,
) -> bool:
    """Return True if the provider has nothing booked in the slot."""
    return not get_conflicting_bookings(
        provider_id, booking_date, booking_time, duration_minutes, exclude_booking_id
    )


# =========================================================================
# Creation
# =========================================================================


def create_booking(
    client_id: int,
    service_id: int,
    booking_date,
    booking_time,
    client_town: str,
    client_suburb: str,
    service_address: str,
    duration_minutes: int | None = None,
    special_instructions: str | None = None,
    emergency_booking: bool = False,
) -> BookingResult:
    """
    Create a booking and offer it to the nearest suitable provider.

    Args:
        client_id:            The client making the booking.
        service_id:           The service requested.
        booking_date:         ``date`` or ISO string; today or later.
        booking_time:         ``time`` or ``HH:MM`` string.
        client_town:          Town of the service address.
        client_suburb:        Suburb of the service address.
        service_address:      Street address.
        duration_minutes:     Job length; defaults to the service's.
        special_instructions: Free text for the provider.
        emergency_booking:    Emergency jobs carry a higher commission.

    Returns:
        A BookingResult holding the booking and who (if anyone) got it.

    Raises:
        ValueError: For any invalid input or a denied entitlement.
    """
    client = db.session.get(User, client_id)
    if client is None or not client.is_active:
        raise ValueError(f"User ID {client_id} not found.")

    service = db.session.get(Service, service_id)
    if service is None or not service.is_active:
        raise ValueError(f"Service ID {service_id} not found.")

    booking_date = parse_booking_date(booking_date)
    if booking_date < today():
        raise ValueError("Booking date cannot be in the past.")
    booking_time = parse_booking_time(booking_time)

    if duration_minutes is None:
        duration_minutes = service.duration_minutes
    if int(duration_minutes) <= 0:
        raise ValueError("Duration must be greater than zero.")

    missing = [
        name
        for name, value in (
            ("town", client_town),
            ("suburb", client_suburb),
            ("service address", service_address),
        )
        if not value or not str(value).strip()
    ]
    if missing:
        raise ValueError(f"Missing required field(s): {', '.join(missing)}.")
    client_town = location_service.supported_city(client_town)

    package_id = None
    total_amount = service.client_price
    if service.service_type == "subscription":
        access = entitlement_service.check_service_access(client_id, service_id)
        if not access.allowed:
            raise ValueError(access.reason)
        package_id = access.usage.package_id
        total_amount = 0

    booking = Booking(
        client_id=client_id,
        service_id=service_id,
        package_id=package_id,
        booking_date=booking_date,
        booking_time=booking_time,
        duration_minutes=int(duration_minutes),
        total_amount=total_amount,
        job_type=service.service_type,
        status="pending",
        assignment_status="pending_assignment",
        client_town=client_town,
        client_suburb=client_suburb.strip(),
        service_address=service_address.strip(),
        special_instructions=special_instructions,
        emergency_booking=bool(emergency_booking),
        acceptance_deadline=assignment_service.acceptance_deadline(),
    )
    db.session.add(booking)
    db.session.flush()

    if package_id is not None:
        entitlement_service.log_service_usage(
            client_id, package_id, service_id, booking.id
        )

    audit_service.log_change(
        user_id=client_id,
        action_type="CREATE",
        entity_type="booking.booking",
        entity_id=booking.id,
        new_value={
            "service": service.name,
            "booking_date": booking_date.isoformat(),
            "booking_time": booking_time.strftime("%H:%M"),
            "town": booking.client_town,
            "suburb": booking.client_suburb,
            "total_amount": str(total_amount),
        },
    )
    notification_service.notify_user(
        client_id,
        "booking_created",
        "Booking received",
        f"Your {service.name} booking for {booking_date.isoformat()} at "
        f"{booking_time.strftime('%H:%M')} has been received.",
        {"booking_id": booking.id},
    )

    matches = assignment_service.find_providers_for_location(
        booking.client_town,
        booking.client_suburb,
        category_id=service.category_id,
        booking_date=booking.booking_date,
        booking_time=booking.booking_time,
        duration_minutes=booking.duration_minutes,
        exclude_booking_id=booking.id,
    )
    provider_id = None
    if matches:
        assignment_service.apply_auto_assignment(booking, matches[0])
        provider_id = matches[0].provider_id
    else:
        booking.assignment_status = "manual_assignment_required"
        logger.warning(
            "Booking %s needs manual assignment (%s/%s)",
            booking.id,
            booking.client_town,
            booking.client_suburb,
        )
    db.session.commit()

    logger.info(
        "Created booking %s for client %s (%s on %s %s)",
        booking.id,
        client_id,
        service.name,
        booking_date,
        booking_time.strftime("%H:%M"),
    )
    return BookingResult(
        booking=booking, provider_id=provider_id, auto_assigned=provider_id is not None
    )


# =========================================================================
# Status transitions
# =========================================================================


def _transition(
    booking: Booking,
    new_status: str,
    changed_by: int | None,
    reason: str | None = None,
) -> str:
    """
    Move a booking to a new status if the lifecycle allows it (no commit).

    Returns:
        The previous status.

    Raises:
        ValueError: If the transition is not allowed.
    """
    old_status = booking.status
    if new_status not in ALLOWED_TRANSITIONS.get(old_status, ()):
        raise ValueError(
            f"Cannot change booking from {old_status} to {new_status}."
        )

    record_modification(
        booking, "status", old_status, new_status, reason=reason, changed_by=changed_by
    )
    booking.status = new_status
    booking.updated_at = utcnow()

    if new_status == "in_progress":
        booking.check_in_time = utcnow()
    elif new_status == "completed":
        booking.completion_date = today()

    audit_service.log_change(
        user_id=changed_by,
        action_type="STATUS_CHANGE",
        entity_type="booking.booking",
        entity_id=booking.id,
        previous_value={"status": old_status},
        new_value={"status": new_status, "reason": reason},
    )
    return old_status


def _require_provider(booking: Booking, provider_id: int) -> None:
    if booking.provider_id != provider_id:
        raise PermissionError("You are not assigned to this booking.")


def accept_booking(booking_id: int, provider_id: int) -> Booking:
    """
    Accept an assigned job as its provider.

    Raises:
        PermissionError: If the caller is not the assigned provider.
        ValueError: If the booking is not awaiting acceptance.
    """
    booking = get_booking(booking_id)
    _require_provider(booking, provider_id)
    _transition(booking, "accepted", provider_id)

    notification_service.notify_user(
        booking.client_id,
        "booking_accepted",
        "Booking accepted",
        f"{booking.provider.full_name} accepted your booking on "
        f"{booking.booking_date.isoformat()}.",
        {"booking_id": booking.id},
    )
    db.session.commit()

    logger.info("Provider %s accepted booking %s", provider_id, booking.id)
    return booking


def start_job(booking_id: int, provider_id: int) -> Booking:
    """Check in to an accepted job; stamps ``check_in_time``."""
    booking = get_booking(booking_id)
    _require_provider(booking, provider_id)
    _transition(booking, "in_progress", provider_id)

    notification_service.notify_user(
        booking.client_id,
        "job_started",
        "Job started",
        f"{booking.provider.full_name} has started your {booking.service.name}.",
        {"booking_id": booking.id},
    )
    db.session.commit()

    logger.info("Provider %s started booking %s", provider_id, booking.id)
    return booking


def complete_job(booking_id: int, provider_id: int) -> Booking:
    """
    Finish an in-progress job.

    Stamps ``completion_date`` and adds one to the provider's completed
    job count, which feeds assignment ranking.
    """
    booking = get_booking(booking_id)
    _require_provider(booking, provider_id)
    _transition(booking, "completed", provider_id)

    profile = ProviderProfile.query.filter_by(user_id=provider_id).first()
    if profile is not None:
        profile.total_jobs = (profile.total_jobs or 0) + 1

    notification_service.notify_user(
        booking.client_id,
        "job_completed",
        "Job completed",
        f"Your {booking.service.name} is complete. Please rate your provider.",
        {"booking_id": booking.id},
    )
    db.session.commit()

    logger.info("Provider %s completed booking %s", provider_id, booking.id)
    return booking


def _release_usage(booking: Booking) -> None:
    """Give a cancelled package booking's use back to the client."""
    if booking.package_id is None:
        return
    ServiceUsageLog.query.filter_by(booking_id=booking.id).delete()


def _reclaim_usage(booking: Booking) -> None:
    """
    Take a use from the client's quota again for a reinstated package
    booking (no commit).

    Raises:
        ValueError: If the client's package no longer has room for it.
    """
    if booking.package_id is None:
        return
    if ServiceUsageLog.query.filter_by(booking_id=booking.id).first() is not None:
        return
    access = entitlement_service.check_service_access(
        booking.client_id, booking.service_id
    )
    if not access.allowed:
        raise ValueError(f"Cannot reinstate this package booking: {access.reason}.")
    booking.package_id = access.usage.package_id
    entitlement_service.log_service_usage(
        booking.client_id, booking.package_id, booking.service_id, booking.id
    )


def cancel_booking(
    booking_id: int,
    cancelled_by: User,
    reason: str | None = None,
    refund: bool = False,
) -> Booking:
    """
    Cancel an open booking.

    Clients may cancel their own bookings; admins may cancel any.
    Cancelling a package booking returns the use to the client's quota.
    With ``refund`` a paid booking is flagged ``refund_pending``.

    Raises:
        PermissionError: If the caller does not own the booking.
        ValueError: If the booking can no longer be cancelled.
    """
    booking = get_booking(booking_id)
    if not cancelled_by.is_admin and booking.client_id != cancelled_by.id:
        raise PermissionError("You can only cancel your own bookings.")

    _transition(booking, "cancelled", cancelled_by.id, reason=reason)
    booking.cancellation_reason = reason
    _release_usage(booking)

    if refund and booking.payment_status == "paid":
        record_modification(
            booking, "payment_status", "paid", "refund_pending",
            reason=reason, changed_by=cancelled_by.id,
        )
        booking.payment_status = "refund_pending"

    message = f"Booking #{booking.id} on {booking.booking_date.isoformat()} was cancelled."
    if reason:
        message += f" Reason: {reason}"
    notification_service.notify_user(
        booking.client_id, "booking_cancelled", "Booking cancelled", message,
        {"booking_id": booking.id},
    )
    if booking.provider_id is not None:
        notification_service.notify_user(
            booking.provider_id, "booking_cancelled", "Booking cancelled", message,
            {"booking_id": booking.id},
        )
    db.session.commit()

    logger.info(
        "Booking %s cancelled by user %s (refund=%s): %s",
        booking.id,
        cancelled_by.id,
        refund,
        reason,
    )
    return booking


def mark_no_show(
    booking_id: int, no_show_type: str, reason: str, changed_by: int
) -> Booking:
    """
    Record that the client or the provider did not turn up.

    Args:
        no_show_type: ``client`` or ``provider``.

    Raises:
        ValueError: For an unknown type, a missing reason or a booking
                    that is not assigned or accepted.
    """
    if no_show_type not in ("client", "provider"):
        raise ValueError("No-show type must be 'client' or 'provider'.")
    if not reason or not reason.strip():
        raise ValueError("A reason is required to record a no-show.")

    booking = get_booking(booking_id)
    _transition(booking, f"no_show_{no_show_type}", changed_by, reason=reason)
    booking.cancellation_reason = reason

    notification_service.notify_user(
        booking.client_id,
        "no_show",
        "No-show recorded",
        f"A {no_show_type} no-show was recorded for booking #{booking.id}: {reason}",
        {"booking_id": booking.id},
    )
    if booking.provider_id is not None:
        notification_service.notify_user(
            booking.provider_id,
            "no_show",
            "No-show recorded",
            f"A {no_show_type} no-show was recorded for booking #{booking.id}: {reason}",
            {"booking_id": booking.id},
        )
    db.session.commit()

    logger.info("Booking %s marked no_show_%s", booking.id, no_show_type)
    return booking


def rollback_booking_status(
    booking_id: int, new_status: str, reason: str, changed_by: int
) -> Booking:
    """
    Return a booking to an earlier status (admin correction).

    Cancelled and no-show bookings may be reinstated to any open
    status. Timestamps belonging to the undone stages are cleared and a
    completed job is taken off the provider's job count. Rolling back
    to ``pending`` also releases the provider. A reinstated package
    booking takes its use from the client's quota again.

    Raises:
        ValueError: If no reason is given, the target status is not
                    earlier than the current one, or a reinstated
                    package booking no longer fits the quota.
    """
    if not reason or not reason.strip():
        raise ValueError("A reason is required to roll back a booking.")
    if new_status not in _STATUS_RANK:
        raise ValueError(f"Cannot roll a booking back to '{new_status}'.")

    booking = get_booking(booking_id)
    old_status = booking.status
    if old_status in _STATUS_RANK:
        if _STATUS_RANK[new_status] >= _STATUS_RANK[old_status]:
            raise ValueError(
                f"Cannot roll back from {old_status} to {new_status}; "
                "the target must be an earlier status."
            )
    elif new_status not in OPEN_STATUSES:
        raise ValueError(
            f"A {old_status} booking can only be reinstated as "
            f"{', '.join(OPEN_STATUSES)}."
        )
    if new_status in ("assigned", "accepted") and booking.provider_id is None:
        raise ValueError("Assign a provider before moving the booking to that status.")
    if old_status in ("cancelled", "no_show_client", "no_show_provider"):
        _reclaim_usage(booking)

    record_modification(
        booking, "status", old_status, new_status, reason=reason, changed_by=changed_by
    )
    booking.status = new_status
    booking.updated_at = utcnow()

    if old_status == "completed" and booking.provider_id is not None:
        profile = ProviderProfile.query.filter_by(user_id=booking.provider_id).first()
        if profile is not None and profile.total_jobs:
            profile.total_jobs -= 1
    if _STATUS_RANK[new_status] < _STATUS_RANK["completed"]:
        booking.completion_date = None
    if _STATUS_RANK[new_status] < _STATUS_RANK["in_progress"]:
        booking.check_in_time = None
    if old_status in ("cancelled", "no_show_client", "no_show_provider"):
        booking.cancellation_reason = None
    if new_status == "pending" and booking.provider_id is not None:
        record_modification(
            booking, "provider_id", booking.provider_id, None,
            reason=reason, changed_by=changed_by,
        )
        booking.provider_id = None
        booking.assigned_at = None
        booking.assignment_status = "pending_assignment"

    audit_service.log_change(
        user_id=changed_by,
        action_type="STATUS_CHANGE",
        entity_type="booking.booking",
        entity_id=booking.id,
        previous_value={"status": old_status},
        new_value={"status": new_status, "reason": reason, "rollback": True},
    )
    db.session.commit()

    logger.info(
        "Booking %s rolled back %s -> %s by user %s: %s",
        booking.id,
        old_status,
        new_status,
        changed_by,
        reason,
    )
    return booking


# =========================================================================
# Detail edits and reviews
# =========================================================================


def update_booking_details(
    booking_id: int,
    changed_by: User,
    booking_date=None,
    booking_time=None,
    special_instructions: str | None = None,
    service_address: str | None = None,
    reason: str | None = None,
) -> Booking:
    """
    Change the date, time, instructions or address of an open booking.

    A new slot is checked against the assigned provider's other
    bookings.

    Raises:
        PermissionError: If the caller is neither the client nor an admin.
        ValueError: If the booking is closed, the new date is past or
                    the provider is busy in the new slot.
    """
    booking = get_booking(booking_id)
    if not changed_by.is_admin and booking.client_id != changed_by.id:
        raise PermissionError("You can only change your own bookings.")
    if booking.status not in OPEN_STATUSES:
        raise ValueError(f"Cannot change a booking that is {booking.status}.")

    new_date = parse_booking_date(booking_date) if booking_date else booking.booking_date
    new_time = parse_booking_time(booking_time) if booking_time else booking.booking_time
    if new_date < today():
        raise ValueError("Booking date cannot be in the past.")

    slot_changed = new_date != booking.booking_date or new_time != booking.booking_time
    if slot_changed and booking.provider_id is not None:
        conflicts = get_conflicting_bookings(
            booking.provider_id,
            new_date,
            new_time,
            booking.duration_minutes,
            exclude_booking_id=booking.id,
        )
        if conflicts:
            raise ValueError("The assigned provider is not available at that time.")

    changes = {}
    for field, new_value in (
        ("booking_date", new_date),
        ("booking_time", new_time),
        ("special_instructions", special_instructions),
        ("service_address", service_address),
    ):
        if new_value is None:
            continue
        old_value = getattr(booking, field)
        if old_value == new_value:
            continue
        record_modification(
            booking, field, old_value, new_value, reason=reason, changed_by=changed_by.id
        )
        setattr(booking, field, new_value)
        changes[field] = (str(old_value), str(new_value))

    if not changes:
        return booking

    booking.updated_at = utcnow()
    audit_service.log_change(
        user_id=changed_by.id,
        action_type="UPDATE",
        entity_type="booking.booking",
        entity_id=booking.id,
        previous_value={k: v[0] for k, v in changes.items()},
        new_value={k: v[1] for k, v in changes.items()},
    )
    if booking.provider_id is not None:
        notification_service.notify_user(
            booking.provider_id,
            "booking_updated",
            "Booking updated",
            f"Booking #{booking.id} was changed: {', '.join(changes)}.",
            {"booking_id": booking.id},
        )
    db.session.commit()

    logger.info("Updated booking %s: %s", booking.id, ", ".join(changes))
    return booking


def rate_booking(
    booking_id: int, client_id: int, rating: int, comment: str | None = None
) -> Booking:
    """
    Rate a completed booking and refresh the provider's average rating.

    Raises:
        PermissionError: If the caller is not the booking's client.
        ValueError: If the booking is not completed, was already rated,
                    or the rating is outside 1-5.
    """
    booking = get_booking(booking_id)
    if booking.client_id != client_id:
        raise PermissionError("You can only rate your own bookings.")
    if booking.status != "completed":
        raise ValueError("Only completed bookings can be rated.")
    if booking.rating is not None:
        raise ValueError("This booking has already been rated.")
    try:
        rating = int(rating)
    except (TypeError, ValueError) as exc:
        raise ValueError("Rating must be a whole number from 1 to 5.") from exc
    if not 1 <= rating <= 5:
        raise ValueError("Rating must be a whole number from 1 to 5.")
    if comment and len(comment) > 500:
        raise ValueError("Review comment must be 500 characters or fewer.")

    booking.rating = rating
    booking.review_comment = comment
    db.session.flush()

    profile = ProviderProfile.query.filter_by(user_id=booking.provider_id).first()
    if profile is not None:
        average = (
            db.session.query(func.avg(Booking.rating))
            .filter(
                Booking.provider_id == booking.provider_id,
                Booking.rating.isnot(None),
            )
            .scalar()
        )
        profile.rating = Decimal(str(round(float(average or 0), 2)))

    audit_service.log_change(
        user_id=client_id,
        action_type="UPDATE",
        entity_type="booking.booking",
        entity_id=booking.id,
        new_value={"rating": rating, "review_comment": comment},
    )
    notification_service.notify_user(
        booking.provider_id,
        "booking_rated",
        "New rating",
        f"You received a {rating}-star rating for booking #{booking.id}.",
        {"booking_id": booking.id},
    )
    db.session.commit()

    logger.info("Booking %s rated %s by client %s", booking.id, rating, client_id)
    return booking


# =========================================================================
# Expiry
# =========================================================================


def expire_unaccepted_bookings() -> int:
    """
    Cancel bookings nobody accepted before their deadline.

    Pending and assigned bookings whose ``acceptance_deadline`` has
    passed are cancelled with reason "No provider response" and the
    client is told.

    Returns:
        The number of bookings cancelled.
    """
    now = utcnow()
    overdue = Booking.query.filter(
        Booking.status.in_(("pending", "assigned")),
        Booking.acceptance_deadline.isnot(None),
        Booking.acceptance_deadline < now,
    ).all()

    for booking in overdue:
        _transition(booking, "cancelled", None, reason=EXPIRY_REASON)
        booking.cancellation_reason = EXPIRY_REASON
        _release_usage(booking)
        notification_service.notify_user(
            booking.client_id,
            "booking_expired",
            "Booking cancelled",
            f"Booking #{booking.id} on {booking.booking_date.isoformat()} was "
            "cancelled because no provider accepted it in time.",
            {"booking_id": booking.id},
        )
    db.session.commit()

    if overdue:
        logger.info("Expired %d unaccepted booking(s)", len(overdue))
    return len(overdue)


# =========================================================================
# Queries
# =========================================================================


def get_bookings_for_client(client_id: int, status: str | None = None) -> list[Booking]:
    """Return a client's bookings, most recent date first."""
    query = Booking.query.filter_by(client_id=client_id)
    if status:
        query = query.filter(Booking.status == status)
    return query.order_by(Booking.booking_date.desc(), Booking.booking_time.desc()).all()


def get_bookings_for_provider(
    provider_id: int, status: str | None = None
) -> list[Booking]:
    """Return a provider's jobs, soonest first."""
    query = Booking.query.filter_by(provider_id=provider_id)
    if status:
        query = query.filter(Booking.status == status)
    return query.order_by(Booking.booking_date, Booking.booking_time).all()


def get_bookings_by_status(status: str) -> list[Booking]:
    """Return every booking in a status."""
    if status not in STATUSES:
        raise ValueError(f"Unknown booking status '{status}'.")
    return (
        Booking.query.filter_by(status=status)
        .order_by(Booking.booking_date, Booking.booking_time)
        .all()
    )


def get_emergency_bookings(open_only: bool = True) -> list[Booking]:
    """Return emergency bookings, open ones only by default."""
    query = Booking.query.filter(Booking.emergency_booking == True)  # noqa: E712
    if open_only:
        query = query.filter(Booking.status.in_(OPEN_STATUSES))
    return query.order_by(Booking.booking_date, Booking.booking_time).all()


def get_upcoming_bookings(user: User) -> list[Booking]:
    """
    Return the user's future bookings that are still open.

    Clients see bookings they made, providers the jobs they hold and
    admins every open booking.
    """
    query = Booking.query.filter(
        Booking.status.in_(OPEN_STATUSES),
        Booking.booking_date >= today(),
    )
    if user.is_provider:
        query = query.filter(Booking.provider_id == user.id)
    elif not user.is_admin:
        query = query.filter(Booking.client_id == user.id)

    now = utcnow()
    bookings = query.order_by(Booking.booking_date, Booking.booking_time).all()
    return [b for b in bookings if b.starts_at > now]


def get_all_bookings(
    page: int = 1,
    per_page: int = 50,
    status: str | None = None,
    provider_id: int | None = None,
    client_id: int | None = None,
):
    """Return a paginated, filterable list of bookings for admins."""
    query = Booking.query.order_by(Booking.booking_date.desc(), Booking.id.desc())
    if status:
        query = query.filter(Booking.status == status)
    if provider_id is not None:
        query = query.filter(Booking.provider_id == provider_id)
    if client_id is not None:
        query = query.filter(Booking.client_id == client_id)
    return query.paginate(page=page, per_page=per_page, error_out=False)
