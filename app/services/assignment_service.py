"""
Assignment service — proximity matching of bookings to providers.

Candidate providers must:
  - have the ``provider`` role and an active account,
  - be marked available and be verified,
  - live in the booking's town with a home suburb on file,
  - be willing to travel the suburb-to-suburb distance
    (``distance <= max_distance``; unknown pairs count as
    ``DEFAULT_DISTANCE_KM``),
  - offer the service's category, when one is required, and
  - have no overlapping, non-cancelled booking in the requested slot.

Candidates are ranked by distance (nearest first), then rating
(highest first), then completed jobs (most first).
"""

import logging
from dataclasses import dataclass
from datetime import date, time, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from app.extensions import db
from app.models.booking import Booking
from app.models.user import ProviderProfile, Role, User
from app.services import (
    audit_service,
    booking_service,
    location_service,
    notification_service,
)
from app.services.clock import utcnow

logger = logging.getLogger(__name__)


@dataclass
class ProviderMatch:
    """A provider eligible for a booking, with the distance to travel."""

    provider_id: int
    name: str
    town: str
    suburb: str
    max_distance: int
    rating: Decimal
    total_jobs: int
    distance: int

    def to_dict(self) -> dict:
        return {
            "provider_id": self.provider_id,
            "name": self.name,
            "town": self.town,
            "suburb": self.suburb,
            "max_distance": self.max_distance,
            "rating": float(self.rating),
            "total_jobs": self.total_jobs,
            "distance": self.distance,
        }


def acceptance_deadline():
    """Return when a booking created now must be accepted by."""
    return utcnow() + timedelta(hours=current_app.config["BOOKING_ACCEPTANCE_HOURS"])


# =========================================================================
# Matching
# =========================================================================


def find_providers_for_location(
    town: str,
    suburb: str,
    category_id: int | None = None,
    booking_date: date | None = None,
    booking_time: time | None = None,
    duration_minutes: int = 60,
    exclude_provider_ids=(),
    exclude_booking_id: int | None = None,
) -> list[ProviderMatch]:
    """
    Return the providers who can serve a location, best match first.

    Args:
        town:               Client's town.
        suburb:             Client's suburb.
        category_id:        Only providers offering this category.
        booking_date:       With ``booking_time``, skip providers
                            already booked in the slot.
        booking_time:       Start of the slot.
        duration_minutes:   Length of the slot.
        exclude_provider_ids: Providers never to return (e.g. a
                            provider who declined).
        exclude_booking_id: Booking ignored by the overlap check (the
                            booking being assigned).

    Returns:
        Ranked list of ProviderMatch records (may be empty).
    """
    candidates = (
        ProviderProfile.query.join(User, ProviderProfile.user_id == User.id)
        .join(Role, User.role_id == Role.id)
        .filter(
            Role.role_name == "provider",
            User.is_active == True,  # noqa: E712
            ProviderProfile.is_available == True,  # noqa: E712
            ProviderProfile.verification_status == "verified",
            func.lower(ProviderProfile.town) == (town or "").strip().lower(),
            ProviderProfile.suburb.isnot(None),
        )
        .all()
    )

    excluded = set(exclude_provider_ids)
    matches: list[ProviderMatch] = []
    for profile in candidates:
        if profile.user_id in excluded:
            continue
        if category_id is not None and not profile.offers_category(category_id):
            continue

        distance = location_service.get_suburb_distance(town, profile.suburb, suburb)
        if distance > profile.max_distance:
            continue

        if booking_date is not None and booking_time is not None:
            conflicts = booking_service.get_conflicting_bookings(
                profile.user_id,
                booking_date,
                booking_time,
                duration_minutes,
                exclude_booking_id=exclude_booking_id,
            )
            if conflicts:
                continue

        matches.append(
            ProviderMatch(
                provider_id=profile.user_id,
                name=profile.user.full_name,
                town=profile.town,
                suburb=profile.suburb,
                max_distance=profile.max_distance,
                rating=Decimal(str(profile.rating or 0)),
                total_jobs=profile.total_jobs or 0,
                distance=distance,
            )
        )

    matches.sort(key=lambda m: (m.distance, -m.rating, -m.total_jobs))
    return matches


# =========================================================================
# Assignment
# =========================================================================


def apply_auto_assignment(booking: Booking, match: ProviderMatch) -> None:
    """Give a booking to a matched provider and notify them (no commit)."""
    booking_service.record_modification(
        booking, "provider_id", booking.provider_id, match.provider_id,
        reason="Automatic proximity assignment",
    )
    booking_service.record_modification(booking, "status", booking.status, "assigned")
    booking.provider_id = match.provider_id
    booking.assignment_status = "auto_assigned"
    booking.status = "assigned"
    booking.assigned_at = utcnow()
    booking.updated_at = utcnow()

    notification_service.notify_user(
        match.provider_id,
        "job_assigned",
        "New job assigned",
        f"You have been assigned a {booking.service.name} job on "
        f"{booking.booking_date.isoformat()} at "
        f"{booking.booking_time.strftime('%H:%M')} in {booking.client_suburb} "
        f"({match.distance} km away).",
        {"booking_id": booking.id},
    )
    logger.info(
        "Auto-assigned booking %s to provider %s (%skm, rating %s)",
        booking.id,
        match.provider_id,
        match.distance,
        match.rating,
    )


def assign_job_to_nearby_provider(
    booking_id: int, exclude_provider_ids=()
) -> int | None:
    """
    Assign a booking to the best-ranked nearby provider.

    On success the booking becomes ``assigned`` with assignment status
    ``auto_assigned``. When nobody matches, the booking is flagged
    ``manual_assignment_required`` for an admin.

    Returns:
        The chosen provider's user ID, or None.

    Raises:
        ValueError: If the booking does not exist.
    """
    booking = booking_service.get_booking(booking_id)

    matches = find_providers_for_location(
        booking.client_town,
        booking.client_suburb,
        category_id=booking.service.category_id if booking.service else None,
        booking_date=booking.booking_date,
        booking_time=booking.booking_time,
        duration_minutes=booking.duration_minutes,
        exclude_provider_ids=exclude_provider_ids,
        exclude_booking_id=booking.id,
    )
    if not matches:
        booking.assignment_status = "manual_assignment_required"
        booking.updated_at = utcnow()
        db.session.commit()
        logger.warning(
            "No provider available for booking %s in %s/%s",
            booking.id,
            booking.client_town,
            booking.client_suburb,
        )
        return None

    best = matches[0]
    apply_auto_assignment(booking, best)
    audit_service.log_change(
        user_id=None,
        action_type="ASSIGN",
        entity_type="booking.booking",
        entity_id=booking.id,
        new_value={"provider_id": best.provider_id, "distance": best.distance},
    )
    db.session.commit()
    return best.provider_id


def _get_provider(provider_id: int) -> User:
    provider = db.session.get(User, provider_id)
    if provider is None or not provider.is_provider:
        raise ValueError(f"Provider ID {provider_id} not found.")
    if not provider.is_active:
        raise ValueError(f"Provider {provider.full_name} is deactivated.")
    return provider


def assign_provider(booking_id: int, provider_id: int, assigned_by: int) -> Booking:
    """
    Manually assign a provider to a booking on an admin's behalf.

    A manual assignment counts as accepted: the booking moves straight
    to ``accepted`` with assignment status ``assigned``.

    Raises:
        ValueError: If the booking or provider is missing, the booking
                    is no longer open, or the provider is busy.
    """
    booking = booking_service.get_booking(booking_id)
    if booking.status not in ("pending", "assigned"):
        raise ValueError(
            f"Cannot assign a provider to a booking that is {booking.status}."
        )
    provider = _get_provider(provider_id)
    conflicts = booking_service.get_conflicting_bookings(
        provider_id,
        booking.booking_date,
        booking.booking_time,
        booking.duration_minutes,
        exclude_booking_id=booking.id,
    )
    if conflicts:
        raise ValueError(
            f"{provider.full_name} already has a booking at that time."
        )

    previous = {"provider_id": booking.provider_id, "status": booking.status}
    booking_service.record_modification(
        booking, "provider_id", booking.provider_id, provider_id,
        reason="Manual assignment", changed_by=assigned_by,
    )
    booking_service.record_modification(
        booking, "status", booking.status, "accepted", changed_by=assigned_by
    )
    now = utcnow()
    booking.provider_id = provider_id
    booking.assigned_by = assigned_by
    booking.assigned_at = now
    booking.assignment_status = "assigned"
    booking.status = "accepted"
    booking.updated_at = now

    audit_service.log_change(
        user_id=assigned_by,
        action_type="ASSIGN",
        entity_type="booking.booking",
        entity_id=booking.id,
        previous_value=previous,
        new_value={"provider_id": provider_id, "status": "accepted"},
    )
    notification_service.notify_user(
        provider_id,
        "job_assigned",
        "New job assigned",
        f"An administrator assigned you booking #{booking.id} on "
        f"{booking.booking_date.isoformat()}.",
        {"booking_id": booking.id},
    )
    notification_service.notify_user(
        booking.client_id,
        "booking_accepted",
        "Provider confirmed",
        f"{provider.full_name} will handle your booking on "
        f"{booking.booking_date.isoformat()}.",
        {"booking_id": booking.id},
    )
    db.session.commit()

    logger.info(
        "Booking %s manually assigned to provider %s by user %s",
        booking.id,
        provider_id,
        assigned_by,
    )
    return booking


def reassign_provider(
    booking_id: int, new_provider_id: int, reason: str, changed_by: int
) -> Booking:
    """
    Move a booking from its current provider to another.

    Raises:
        ValueError: If no reason is given, the booking is finished,
                    the new provider is the current one, or is busy.
    """
    if not reason or not reason.strip():
        raise ValueError("A reason is required to reassign a booking.")
    booking = booking_service.get_booking(booking_id)
    if booking.status in booking_service.TERMINAL_STATUSES:
        raise ValueError(f"Cannot reassign a booking that is {booking.status}.")
    if booking.provider_id == new_provider_id:
        raise ValueError("The booking is already assigned to that provider.")

    provider = _get_provider(new_provider_id)
    conflicts = booking_service.get_conflicting_bookings(
        new_provider_id,
        booking.booking_date,
        booking.booking_time,
        booking.duration_minutes,
        exclude_booking_id=booking.id,
    )
    if conflicts:
        raise ValueError(f"{provider.full_name} already has a booking at that time.")

    old_provider_id = booking.provider_id
    booking_service.record_modification(
        booking, "provider_id", old_provider_id, new_provider_id,
        reason=reason, changed_by=changed_by,
    )
    booking.provider_id = new_provider_id
    booking.assigned_by = changed_by
    booking.assigned_at = utcnow()
    booking.assignment_status = "assigned"
    if booking.status == "pending":
        booking_service.record_modification(
            booking, "status", "pending", "assigned", changed_by=changed_by
        )
        booking.status = "assigned"
    booking.updated_at = utcnow()

    audit_service.log_change(
        user_id=changed_by,
        action_type="ASSIGN",
        entity_type="booking.booking",
        entity_id=booking.id,
        previous_value={"provider_id": old_provider_id},
        new_value={"provider_id": new_provider_id, "reason": reason},
    )
    if old_provider_id is not None:
        notification_service.notify_user(
            old_provider_id,
            "job_reassigned",
            "Job reassigned",
            f"Booking #{booking.id} has been reassigned: {reason}",
            {"booking_id": booking.id},
        )
    notification_service.notify_user(
        new_provider_id,
        "job_assigned",
        "New job assigned",
        f"You have been assigned booking #{booking.id} on "
        f"{booking.booking_date.isoformat()}.",
        {"booking_id": booking.id},
    )
    db.session.commit()

    logger.info(
        "Booking %s reassigned from provider %s to %s: %s",
        booking.id,
        old_provider_id,
        new_provider_id,
        reason,
    )
    return booking


def decline_assignment(booking_id: int, provider_id: int, reason: str | None = None):
    """
    Let an assigned provider turn a job down.

    The booking returns to ``pending`` and is offered to the next best
    provider, excluding the one who declined.

    Returns:
        The new provider's ID, or None if the booking now needs manual
        assignment.

    Raises:
        PermissionError: If the provider is not the one assigned.
        ValueError: If the booking is not awaiting acceptance.
    """
    booking = booking_service.get_booking(booking_id)
    if booking.provider_id != provider_id:
        raise PermissionError("You are not assigned to this booking.")
    if booking.status != "assigned":
        raise ValueError("Only a job awaiting acceptance can be declined.")

    booking_service.record_modification(
        booking, "provider_id", provider_id, None,
        reason=reason or "Declined by provider", changed_by=provider_id,
    )
    booking_service.record_modification(
        booking, "status", "assigned", "pending", changed_by=provider_id
    )
    booking.provider_id = None
    booking.status = "pending"
    booking.assignment_status = "pending_assignment"
    booking.assigned_at = None
    audit_service.log_change(
        user_id=provider_id,
        action_type="UPDATE",
        entity_type="booking.booking",
        entity_id=booking.id,
        previous_value={"provider_id": provider_id, "status": "assigned"},
        new_value={"provider_id": None, "status": "pending", "reason": reason},
    )
    db.session.flush()

    logger.info("Provider %s declined booking %s", provider_id, booking.id)
    return assign_job_to_nearby_provider(
        booking.id, exclude_provider_ids=(provider_id,)
    )


def get_bookings_requiring_manual_assignment() -> list[Booking]:
    """
    Return pending bookings without a provider, soonest first.

    Covers bookings automatic matching gave up on and generated
    recurring bookings that have not been handed out yet.
    """
    return (
        Booking.query.filter(
            Booking.provider_id.is_(None),
            Booking.status == "pending",
        )
        .order_by(Booking.booking_date, Booking.booking_time)
        .all()
    )
