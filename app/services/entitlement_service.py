"""
Entitlement service — package ownership and per-cycle service quotas.

A client's active package grants a set of ``PackageEntitlement`` rows.
Each entitlement allows ``quantity_per_cycle`` uses of one service in
any rolling window of ``cycle_days`` days. Usage is counted from
``ServiceUsageLog`` rows, one per booking made against the quota.

Booking creation calls ``check_service_access`` before inserting a
subscription booking and ``log_service_usage`` after.
"""

import logging
from dataclasses import dataclass, field
from datetime import time, timedelta

from app.extensions import db
from app.models.booking import Booking
from app.models.catalog import (
    PackageEntitlement,
    Service,
    ServiceUsageLog,
    SubscriptionPackage,
    UserPackage,
)
from app.models.user import User
from app.services import assignment_service, audit_service, notification_service
from app.services.clock import today, utcnow

logger = logging.getLogger(__name__)

NO_PACKAGE_REASON = (
    "No active package found. Please purchase a package to book services."
)
NOT_INCLUDED_REASON = "Service not included in your active package"

# Package jobs are scheduled at the start of the business day.
PACKAGE_BOOKING_TIME = time(9, 0)


# =========================================================================
# Data classes
# =========================================================================


@dataclass
class ServiceUsage:
    """Usage of one entitlement within its current cycle."""

    service_id: int
    package_id: int
    used_count: int
    allowed_count: int
    cycle_days: int

    @property
    def remaining(self) -> int:
        return max(0, self.allowed_count - self.used_count)

    def to_dict(self) -> dict:
        return {
            "service_id": self.service_id,
            "package_id": self.package_id,
            "used_count": self.used_count,
            "allowed_count": self.allowed_count,
            "remaining": self.remaining,
            "cycle_days": self.cycle_days,
        }


@dataclass
class AccessResult:
    """Outcome of an entitlement check."""

    allowed: bool
    reason: str | None = None
    usage: ServiceUsage | None = None

    def to_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "reason": self.reason,
            "usage": self.usage.to_dict() if self.usage else None,
        }


@dataclass
class PackageBookingResult:
    """Totals returned after booking every job a package covers."""

    total_jobs: int = 0
    successful_assignments: int = 0
    unassigned_jobs: int = 0
    booking_ids: list[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "success": True,
            "total_jobs": self.total_jobs,
            "successful_assignments": self.successful_assignments,
            "unassigned_jobs": self.unassigned_jobs,
            "booking_ids": self.booking_ids,
        }


# =========================================================================
# Package lookup and activation
# =========================================================================


def get_active_package(user_id: int) -> UserPackage | None:
    """
    Return the user's active package, or None.

    A package is active when its status is ``active`` and it has not
    passed its expiry date (the expiry day itself still counts).
    """
    return (
        UserPackage.query.filter(
            UserPackage.user_id == user_id,
            UserPackage.status == "active",
            UserPackage.expiry_date >= today(),
        )
        .order_by(UserPackage.expiry_date.desc())
        .first()
    )


def get_user_packages(user_id: int) -> list[UserPackage]:
    """Return every package the user has owned, newest first."""
    return (
        UserPackage.query.filter_by(user_id=user_id)
        .order_by(UserPackage.start_date.desc(), UserPackage.id.desc())
        .all()
    )


def activate_package(
    user_id: int,
    package_id: int,
    start_date=None,
    activated_by: int | None = None,
) -> UserPackage:
    """
    Give a user a package, expiring any package they already hold.

    Args:
        user_id:      The client receiving the package.
        package_id:   The subscription package.
        start_date:   First day of cover; defaults to today.
        activated_by: Admin (or payment approver) making the change.

    Returns:
        The new active UserPackage.

    Raises:
        ValueError: If the user or package is missing or the package
                    is inactive.
    """
    user = db.session.get(User, user_id)
    if user is None:
        raise ValueError(f"User ID {user_id} not found.")
    package = db.session.get(SubscriptionPackage, package_id)
    if package is None:
        raise ValueError(f"Package ID {package_id} not found.")
    if not package.is_active:
        raise ValueError(f"Package '{package.name}' is no longer offered.")

    start_date = start_date or today()

    # Only one active package per user.
    superseded = UserPackage.query.filter_by(user_id=user_id, status="active").all()
    for old in superseded:
        old.status = "expired"

    user_package = UserPackage(
        user_id=user_id,
        package_id=package_id,
        start_date=start_date,
        expiry_date=start_date + timedelta(days=package.duration_days),
        status="active",
    )
    db.session.add(user_package)
    db.session.flush()

    audit_service.log_change(
        user_id=activated_by,
        action_type="CREATE",
        entity_type="catalog.user_package",
        entity_id=user_package.id,
        new_value={
            "user_id": user_id,
            "package": package.name,
            "start_date": start_date.isoformat(),
            "expiry_date": user_package.expiry_date.isoformat(),
            "superseded": [old.id for old in superseded],
        },
    )
    notification_service.notify_user(
        user_id,
        "package_activated",
        "Package activated",
        f"Your {package.name} package is active until "
        f"{user_package.expiry_date.isoformat()}.",
        {"user_package_id": user_package.id},
    )
    db.session.commit()

    logger.info(
        "Activated package %s for user %s (expires %s)",
        package.name,
        user_id,
        user_package.expiry_date,
    )
    return user_package


def cancel_user_package(user_package_id: int, changed_by: int | None = None) -> UserPackage:
    """Cancel a user's package; existing bookings are unaffected."""
    user_package = db.session.get(UserPackage, user_package_id)
    if user_package is None:
        raise ValueError(f"User package ID {user_package_id} not found.")
    if user_package.status != "active":
        raise ValueError("Only an active package can be cancelled.")

    user_package.status = "cancelled"
    audit_service.log_change(
        user_id=changed_by,
        action_type="UPDATE",
        entity_type="catalog.user_package",
        entity_id=user_package.id,
        previous_value={"status": "active"},
        new_value={"status": "cancelled"},
    )
    db.session.commit()

    logger.info("Cancelled user package %s", user_package_id)
    return user_package


# =========================================================================
# Quota checks
# =========================================================================


def _count_usage(user_id: int, package_id: int, entitlement: PackageEntitlement) -> int:
    """Count usage logs for an entitlement inside its rolling cycle."""
    cycle_start = utcnow() - timedelta(days=entitlement.cycle_days)
    return ServiceUsageLog.query.filter(
        ServiceUsageLog.user_id == user_id,
        ServiceUsageLog.package_id == package_id,
        ServiceUsageLog.allowed_service_id == entitlement.allowed_service_id,
        ServiceUsageLog.used_at >= cycle_start,
    ).count()


def check_service_access(user_id: int, service_id: int) -> AccessResult:
    """
    Decide whether a client may book a service against their package.

    Returns:
        An AccessResult. ``allowed`` is False when the user has no
        active package, the package does not include the service, or
        the current cycle's quota is used up.
    """
    active = get_active_package(user_id)
    if active is None:
        logger.warning("Access denied for user %s: no active package", user_id)
        return AccessResult(allowed=False, reason=NO_PACKAGE_REASON)

    entitlement = PackageEntitlement.query.filter_by(
        package_id=active.package_id, allowed_service_id=service_id
    ).first()
    if entitlement is None:
        logger.warning(
            "Access denied for user %s: service %s not in package %s",
            user_id,
            service_id,
            active.package_id,
        )
        return AccessResult(allowed=False, reason=NOT_INCLUDED_REASON)

    used = _count_usage(user_id, active.package_id, entitlement)
    usage = ServiceUsage(
        service_id=service_id,
        package_id=active.package_id,
        used_count=used,
        allowed_count=entitlement.quantity_per_cycle,
        cycle_days=entitlement.cycle_days,
    )
    if used >= entitlement.quantity_per_cycle:
        logger.warning(
            "Access denied for user %s: service %s quota used (%s/%s)",
            user_id,
            service_id,
            used,
            entitlement.quantity_per_cycle,
        )
        return AccessResult(
            allowed=False,
            reason=(
                "You've used all your available services for this cycle "
                f"({used}/{entitlement.quantity_per_cycle})"
            ),
            usage=usage,
        )
    return AccessResult(allowed=True, usage=usage)


def log_service_usage(
    user_id: int,
    package_id: int,
    service_id: int,
    booking_id: int | None = None,
) -> ServiceUsageLog:
    """Record one use of an entitlement (no commit)."""
    entry = ServiceUsageLog(
        user_id=user_id,
        package_id=package_id,
        allowed_service_id=service_id,
        booking_id=booking_id,
        used_at=utcnow(),
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def get_user_service_usage(user_id: int) -> list[ServiceUsage]:
    """Return current-cycle usage for every entitlement of the active package."""
    active = get_active_package(user_id)
    if active is None:
        return []

    entitlements = (
        PackageEntitlement.query.filter_by(package_id=active.package_id)
        .order_by(PackageEntitlement.id)
        .all()
    )
    return [
        ServiceUsage(
            service_id=e.allowed_service_id,
            package_id=active.package_id,
            used_count=_count_usage(user_id, active.package_id, e),
            allowed_count=e.quantity_per_cycle,
            cycle_days=e.cycle_days,
        )
        for e in entitlements
    ]


# =========================================================================
# Package bookings
# =========================================================================


def process_package_booking(
    client_id: int,
    package_id: int,
    scheduled_date=None,
) -> PackageBookingResult:
    """
    Book every remaining job the client's package covers on one date.

    For each entitlement, one booking is created per unused use in the
    current cycle. Each booking goes to the nearest available provider
    who offers the service's category; bookings nobody can take are
    queued for manual assignment.

    Args:
        client_id:      The client whose package is being used.
        package_id:     Must match the client's active package.
        scheduled_date: Date of service; defaults to today.

    Returns:
        A PackageBookingResult with job and assignment totals.

    Raises:
        ValueError: If the client has no matching active package or no
                    service location on file.
    """
    client = db.session.get(User, client_id)
    if client is None:
        raise ValueError(f"User ID {client_id} not found.")
    active = get_active_package(client_id)
    if active is None or active.package_id != package_id:
        raise ValueError(NO_PACKAGE_REASON)
    if not (client.town and client.suburb and client.address):
        raise ValueError(
            "Add your town, suburb and address to your profile before "
            "booking package services."
        )

    scheduled_date = scheduled_date or today()
    if scheduled_date < today():
        raise ValueError("Booking date cannot be in the past.")

    result = PackageBookingResult()
    entitlements = (
        PackageEntitlement.query.filter_by(package_id=package_id)
        .order_by(PackageEntitlement.id)
        .all()
    )
    for entitlement in entitlements:
        service = db.session.get(Service, entitlement.allowed_service_id)
        if service is None or not service.is_active:
            continue
        remaining = entitlement.quantity_per_cycle - _count_usage(
            client_id, package_id, entitlement
        )
        for _ in range(max(0, remaining)):
            booking = Booking(
                client_id=client_id,
                service_id=service.id,
                package_id=package_id,
                booking_date=scheduled_date,
                booking_time=PACKAGE_BOOKING_TIME,
                duration_minutes=service.duration_minutes,
                total_amount=0,
                job_type="subscription",
                status="pending",
                client_town=client.town,
                client_suburb=client.suburb,
                service_address=client.address,
                acceptance_deadline=assignment_service.acceptance_deadline(),
            )
            db.session.add(booking)
            db.session.flush()
            log_service_usage(client_id, package_id, service.id, booking.id)
            result.total_jobs += 1
            result.booking_ids.append(booking.id)

            matches = assignment_service.find_providers_for_location(
                booking.client_town,
                booking.client_suburb,
                category_id=service.category_id,
                booking_date=booking.booking_date,
                booking_time=booking.booking_time,
                duration_minutes=booking.duration_minutes,
            )
            if matches:
                assignment_service.apply_auto_assignment(booking, matches[0])
                result.successful_assignments += 1
            else:
                booking.assignment_status = "manual_assignment_required"
                result.unassigned_jobs += 1

    audit_service.log_change(
        user_id=client_id,
        action_type="CREATE",
        entity_type="booking.package_booking",
        entity_id=package_id,
        new_value=result.to_dict(),
    )
    notification_service.notify_user(
        client_id,
        "package_booking",
        "Package services booked",
        f"{result.successful_assignments} of {result.total_jobs} jobs were "
        "assigned to providers.",
        {"booking_ids": result.booking_ids},
    )
    db.session.commit()

    logger.info(
        "Package booking for client %s: %s jobs, %s assigned, %s unassigned",
        client_id,
        result.total_jobs,
        result.successful_assignments,
        result.unassigned_jobs,
    )
    return result
