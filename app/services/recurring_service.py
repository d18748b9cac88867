"""
Recurring service — repeat bookings generated from a parent booking.

A client turns one of their bookings into a schedule by giving a
frequency and a weekday. The parent is flagged ``is_recurring`` and
future child bookings are created up front, ``RECURRING_MONTHS_AHEAD``
months out and at most ``RECURRING_MAX_BOOKINGS`` of them. Cancelling a
schedule only clears the parent's flags; children already created stay.

Weekdays are numbered 0 (Sunday) to 6 (Saturday).
"""

import logging
from datetime import date, timedelta

from dateutil.relativedelta import relativedelta
from flask import current_app

from app.extensions import db
from app.models.booking import Booking
from app.services import (
    audit_service,
    booking_service,
    entitlement_service,
    notification_service,
)
from app.services.clock import today

logger = logging.getLogger(__name__)

FREQUENCIES = ("weekly", "bi-weekly", "monthly")


def _to_python_weekday(day_of_week: int) -> int:
    """Convert 0=Sunday numbering to ``date.weekday()`` (0=Monday)."""
    return (day_of_week - 1) % 7


def get_next_recurring_dates(
    start_date: date,
    frequency: str,
    day_of_week: int,
    months_ahead: int = 3,
) -> list[date]:
    """
    Return the occurrence dates of a schedule.

    The first occurrence is the first date on or after ``start_date``
    that falls on ``day_of_week``. Later ones follow every 7 days
    (weekly), 14 days (bi-weekly) or on the same day of each following
    month (monthly, clamped to the month's last day). Dates run up to
    and including ``start_date`` plus ``months_ahead`` months.

    Raises:
        ValueError: For an unknown frequency or weekday.
    """
    if frequency not in FREQUENCIES:
        raise ValueError(
            f"Unknown frequency '{frequency}'. Valid options: {', '.join(FREQUENCIES)}"
        )
    try:
        day_of_week = int(day_of_week)
    except (TypeError, ValueError) as exc:
        raise ValueError("Day of week must be a number.") from exc
    if not 0 <= day_of_week <= 6:
        raise ValueError("Day of week must be between 0 (Sunday) and 6 (Saturday).")

    offset = (_to_python_weekday(day_of_week) - start_date.weekday()) % 7
    first = start_date + timedelta(days=offset)
    horizon = start_date + relativedelta(months=months_ahead)

    dates = []
    step = 0
    current = first
    while current <= horizon:
        dates.append(current)
        step += 1
        if frequency == "weekly":
            current = first + timedelta(days=7 * step)
        elif frequency == "bi-weekly":
            current = first + timedelta(days=14 * step)
        else:
            # Offset from the anchor so a 31st never drifts to the 28th.
            current = first + relativedelta(months=step)
    return dates


def create_recurring_schedule(
    client_id: int,
    parent_booking_id: int,
    frequency: str,
    day_of_week: int,
    end_date: date | None = None,
) -> int:
    """
    Make a booking recurring and create its future occurrences.

    Children copy the parent's service, time, duration, location and
    instructions and start ``pending`` with no provider. One-off
    services cost the current price. Subscription services draw on the
    client's package like any other package booking, so generation
    stops as soon as the cycle's quota is used up. Only dates after
    today and after the parent's own date are used, up to ``end_date``
    when given.

    Returns:
        The number of child bookings created.

    Raises:
        PermissionError: If the client does not own the parent booking.
        ValueError: If the parent cannot start a schedule or the
                    frequency, weekday or end date is invalid.
    """
    parent = booking_service.get_booking(parent_booking_id)
    if parent.client_id != client_id:
        raise PermissionError("You can only schedule repeats of your own bookings.")
    if parent.is_auto_scheduled:
        raise ValueError("A generated booking cannot start its own schedule.")
    if parent.is_recurring:
        raise ValueError("This booking already has a recurring schedule.")
    if parent.status in ("cancelled", "no_show_client", "no_show_provider"):
        raise ValueError(f"Cannot repeat a booking that is {parent.status}.")
    if end_date is not None and end_date < parent.booking_date:
        raise ValueError("End date cannot be before the first booking.")

    dates = get_next_recurring_dates(
        parent.booking_date,
        frequency,
        day_of_week,
        current_app.config["RECURRING_MONTHS_AHEAD"],
    )
    max_bookings = current_app.config["RECURRING_MAX_BOOKINGS"]

    parent.is_recurring = True
    parent.recurring_frequency = frequency
    parent.recurring_day_of_week = int(day_of_week)
    parent.recurring_end_date = end_date

    is_subscription = parent.service.service_type == "subscription"
    created = 0
    quota_reason = None
    cutoff = max(today(), parent.booking_date)
    for occurrence in dates:
        if created >= max_bookings:
            break
        if occurrence <= cutoff:
            continue
        if end_date is not None and occurrence > end_date:
            break

        package_id = None
        total_amount = parent.service.client_price
        if is_subscription:
            access = entitlement_service.check_service_access(
                parent.client_id, parent.service_id
            )
            if not access.allowed:
                quota_reason = access.reason
                break
            package_id = access.usage.package_id
            total_amount = 0

        child = Booking(
            client_id=parent.client_id,
            service_id=parent.service_id,
            package_id=package_id,
            booking_date=occurrence,
            booking_time=parent.booking_time,
            duration_minutes=parent.duration_minutes,
            total_amount=total_amount,
            job_type=parent.job_type,
            status="pending",
            assignment_status="pending_assignment",
            client_town=parent.client_town,
            client_suburb=parent.client_suburb,
            service_address=parent.service_address,
            special_instructions=parent.special_instructions,
            emergency_booking=parent.emergency_booking,
            is_recurring=True,
            recurring_frequency=frequency,
            recurring_day_of_week=int(day_of_week),
            recurring_parent_id=parent.id,
            is_auto_scheduled=True,
        )
        db.session.add(child)
        db.session.flush()
        if package_id is not None:
            entitlement_service.log_service_usage(
                parent.client_id, package_id, parent.service_id, child.id
            )
        created += 1

    audit_service.log_change(
        user_id=client_id,
        action_type="UPDATE",
        entity_type="booking.recurring_schedule",
        entity_id=parent.id,
        new_value={
            "frequency": frequency,
            "day_of_week": int(day_of_week),
            "end_date": end_date.isoformat() if end_date else None,
            "bookings_created": created,
            "stopped_by_quota": quota_reason,
        },
    )
    message = f"{created} future bookings have been scheduled."
    if quota_reason:
        message += f" No more could be added: {quota_reason}."
    notification_service.notify_user(
        client_id,
        "recurring_created",
        "Recurring booking created",
        message,
        {"booking_id": parent.id},
    )
    db.session.commit()

    logger.info(
        "Recurring schedule on booking %s (%s, day %s): %d bookings created",
        parent.id,
        frequency,
        day_of_week,
        created,
    )
    return created


def cancel_recurring_schedule(client_id: int, parent_booking_id: int) -> Booking:
    """
    Stop a recurring schedule.

    The parent's recurring flags are cleared; bookings already created
    from it are left as they are.

    Raises:
        PermissionError: If the client does not own the booking.
        ValueError: If the booking has no schedule.
    """
    parent = booking_service.get_booking(parent_booking_id)
    if parent.client_id != client_id:
        raise PermissionError("You can only cancel your own schedules.")
    if not parent.is_recurring or parent.is_auto_scheduled:
        raise ValueError("This booking has no recurring schedule.")

    previous = {
        "frequency": parent.recurring_frequency,
        "day_of_week": parent.recurring_day_of_week,
        "end_date": (
            parent.recurring_end_date.isoformat() if parent.recurring_end_date else None
        ),
    }
    parent.is_recurring = False
    parent.recurring_frequency = None
    parent.recurring_day_of_week = None
    parent.recurring_end_date = None

    audit_service.log_change(
        user_id=client_id,
        action_type="UPDATE",
        entity_type="booking.recurring_schedule",
        entity_id=parent.id,
        previous_value=previous,
        new_value={"cancelled": True},
    )
    db.session.commit()

    logger.info("Cancelled recurring schedule on booking %s", parent.id)
    return parent


def get_recurring_schedules(client_id: int) -> list[dict]:
    """Return the client's active schedules with their generated counts."""
    parents = (
        Booking.query.filter_by(
            client_id=client_id, is_recurring=True, is_auto_scheduled=False
        )
        .order_by(Booking.created_at.desc(), Booking.id.desc())
        .all()
    )
    schedules = []
    for parent in parents:
        children = Booking.query.filter_by(recurring_parent_id=parent.id).count()
        schedules.append(
            {
                "parent_booking_id": parent.id,
                "service_id": parent.service_id,
                "frequency": parent.recurring_frequency,
                "day_of_week": parent.recurring_day_of_week,
                "booking_time": parent.booking_time.strftime("%H:%M"),
                "start_date": parent.booking_date.isoformat(),
                "end_date": (
                    parent.recurring_end_date.isoformat()
                    if parent.recurring_end_date
                    else None
                ),
                "duration_minutes": parent.duration_minutes,
                "location_town": parent.client_town,
                "bookings_created": children,
            }
        )
    return schedules
